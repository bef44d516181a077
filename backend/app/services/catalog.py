"""Read access to the academic entities the scheduler consumes.

Sections, subjects, staff, rooms and school hours are owned elsewhere; the
engine only queries them, always scoped to one school.
"""
from __future__ import annotations

from collections import defaultdict

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError
from app.models.room import Room
from app.models.school import School, Section, StaffSubjectLevel, Subject, SubjectLevel
from app.models.staff import Staff
from app.services.time_grid import TimeGrid


def get_school(db: Session, school_id: str) -> School:
    school = db.get(School, school_id)
    if school is None:
        raise ResourceNotFoundError("School", school_id)
    return school


def school_time_grid(school: School) -> TimeGrid:
    return TimeGrid.from_school_hours(
        school.timetable_start_time,
        school.timetable_end_time,
        step=get_settings().grid_step_minutes,
        days=school.teaching_days,
    )


def _get_scoped(db: Session, model, school_id: str, record_id: str, label: str):
    record = db.get(model, record_id)
    if record is None or record.school_id != school_id:
        raise ResourceNotFoundError(label, record_id)
    return record


def require_section(db: Session, school_id: str, section_id: str) -> Section:
    return _get_scoped(db, Section, school_id, section_id, "Section")


def require_subject(db: Session, school_id: str, subject_id: str) -> Subject:
    return _get_scoped(db, Subject, school_id, subject_id, "Subject")


def require_staff(db: Session, school_id: str, staff_id: str) -> Staff:
    return _get_scoped(db, Staff, school_id, staff_id, "Staff")


def require_room(db: Session, school_id: str, room_id: str) -> Room:
    return _get_scoped(db, Room, school_id, room_id, "Room")


def list_sections(db: Session, school_id: str, section_ids: list[str] | None = None) -> list[Section]:
    query = select(Section).where(Section.school_id == school_id)
    if section_ids is not None:
        query = query.where(Section.id.in_(section_ids))
    return list(db.execute(query.order_by(Section.name, Section.id)).scalars())


def list_rooms(db: Session, school_id: str) -> list[Room]:
    return list(db.execute(select(Room).where(Room.school_id == school_id).order_by(Room.name, Room.id)).scalars())


def eligible_staff_ids(db: Session, school_id: str, subject_id: str, level_id: str | None) -> list[str]:
    """Teachers linked to the subject at the section's level, by name then id."""
    level_filter = StaffSubjectLevel.level_id.is_(None)
    if level_id is not None:
        level_filter = or_(level_filter, StaffSubjectLevel.level_id == level_id)
    rows = db.execute(
        select(Staff.id, Staff.name)
        .join(StaffSubjectLevel, StaffSubjectLevel.staff_id == Staff.id)
        .where(
            StaffSubjectLevel.school_id == school_id,
            StaffSubjectLevel.subject_id == subject_id,
            level_filter,
        )
        .distinct()
        .order_by(Staff.name, Staff.id)
    )
    return [row.id for row in rows]


def level_subjects(db: Session, school_id: str, level_ids: set[str]) -> dict[str, list[Subject]]:
    """Subjects taught at each level, by name then id."""
    subjects: dict[str, list[Subject]] = defaultdict(list)
    if not level_ids:
        return subjects
    rows = db.execute(
        select(SubjectLevel.level_id, Subject)
        .join(Subject, Subject.id == SubjectLevel.subject_id)
        .where(SubjectLevel.school_id == school_id, SubjectLevel.level_id.in_(level_ids))
        .order_by(Subject.name, Subject.id)
    )
    for level_id, subject in rows:
        subjects[level_id].append(subject)
    return subjects
