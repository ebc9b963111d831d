from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Integer, JSON, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class ScheduleEntry(Base):
    __tablename__ = "schedule_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    activity_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    room_id = Column(Uuid(as_uuid=True), nullable=False)
    # Ordered, same-day, back-to-back time slot ids (stringified UUIDs).
    reserved_timeslot_ids = Column(JSON, nullable=False, default=list)
    total_duration = Column(Integer, nullable=False)
    student_group_id = Column(Uuid(as_uuid=True), nullable=True)
    created_by = Column(Text, nullable=True)
    semester = Column(Text, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
