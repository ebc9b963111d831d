from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class StudentGroup(Base):
    __tablename__ = "student_groups"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    department = Column(Text, nullable=False)
    year = Column(Integer, nullable=False)
    section = Column(Text, nullable=False)
    expected_enrollment = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "expected_enrollment is null or expected_enrollment >= 1",
            name="ck_student_groups_expected_enrollment",
        ),
    )

    @property
    def label(self) -> str:
        return f"{self.department} Y{self.year} {self.section}"
