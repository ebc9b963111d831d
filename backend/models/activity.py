from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, Integer, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


ROOM_REQUIREMENT = Enum(
    "lecture",
    "lab",
    "seminar",
    name="room_requirement",
)


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid(as_uuid=True), nullable=True)
    # Nullable at the storage level; the session expander rejects incomplete rows.
    instructor_id = Column(Uuid(as_uuid=True), nullable=True)
    student_group_id = Column(Uuid(as_uuid=True), nullable=True)
    semester = Column(Text, nullable=False, index=True)
    room_requirement = Column(ROOM_REQUIREMENT, nullable=True)
    # Minutes per week, and maximum minutes per session.
    total_duration = Column(Integer, nullable=False)
    split = Column(Integer, nullable=False)
    created_by = Column(Text, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_duration >= 0", name="ck_activities_total_duration"),
        CheckConstraint("split >= 0", name="ck_activities_split"),
    )
