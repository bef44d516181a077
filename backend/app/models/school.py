import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


def default_teaching_days() -> list[int]:
    return [0, 1, 2, 3, 4]


class School(Base):
    __tablename__ = "schools"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    timetable_start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="08:00")
    timetable_end_time: Mapped[str] = mapped_column(String(5), nullable=False, default="17:00")
    teaching_days: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=default_teaching_days)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Section(Base):
    __tablename__ = "sections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    level_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Hours per week used when requirements are inferred; NULL falls back to 2.
    weekly_hours: Mapped[float | None] = mapped_column(Float, nullable=True)


class SubjectLevel(Base):
    """A subject taught at a school level, used to infer missing requirements."""

    __tablename__ = "subject_levels"
    __table_args__ = (UniqueConstraint("subject_id", "level_id", name="uq_subject_levels_identity"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    level_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class StaffSubjectLevel(Base):
    __tablename__ = "staff_subject_levels"
    __table_args__ = (
        UniqueConstraint("staff_id", "subject_id", "level_id", name="uq_staff_subject_levels_identity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL means the teacher is eligible for the subject at every level.
    level_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
