from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, Integer, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


ROOM_TYPE = Enum(
    "lecture",
    "lab",
    "seminar",
    "other",
    name="room_type",
)


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    room_type = Column(ROOM_TYPE, nullable=False, default="lecture")
    building = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (CheckConstraint("capacity >= 0", name="ck_rooms_capacity"),)
