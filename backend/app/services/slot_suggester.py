from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from sqlalchemy.orm import Session

from app.core.exceptions import NoSlotAvailableError, ValidationError
from app.services import catalog
from app.services.availability import AvailabilityIndex, IndexPolicy
from app.services.conflict_checker import PlacementCandidate, check_conflict
from app.services.time_grid import TimeGrid, format_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuggestionCriteria:
    duration_minutes: int
    section_id: str | None = None
    subject_id: str | None = None
    staff_id: str | None = None
    day_of_week: int | None = None
    preferred_room_id: str | None = None


@dataclass(frozen=True)
class SuggestedSlot:
    day_of_week: int
    start: int
    end: int
    room_id: str | None = None
    staff_id: str | None = None

    @property
    def start_time(self) -> str:
        return format_time(self.start)

    @property
    def end_time(self) -> str:
        return format_time(self.end)


def first_free_slot(
    index: AvailabilityIndex,
    grid: TimeGrid,
    *,
    duration_minutes: int,
    days: Iterable[int],
    section_id: str | None = None,
    subject_id: str | None = None,
    staff_ids: Sequence[str | None] = (None,),
    room_ids: Sequence[str | None] = (None,),
    window_start: int | None = None,
    window_end: int | None = None,
    accept: Callable[[PlacementCandidate], bool] | None = None,
) -> PlacementCandidate | None:
    """Scan days, then grid starts, then staff, then rooms; return the first clean fit.

    The order is fixed so the same state always yields the same slot.
    ``accept`` lets callers layer extra rules (e.g. subject spacing) on top of
    the conflict check.
    """
    for day in days:
        for start in grid.starts(duration_minutes, window_start=window_start, window_end=window_end):
            for staff_id in staff_ids:
                for room_id in room_ids:
                    candidate = PlacementCandidate(
                        day_of_week=day,
                        start=start,
                        end=start + duration_minutes,
                        section_id=section_id,
                        staff_id=staff_id,
                        room_id=room_id,
                        subject_id=subject_id,
                    )
                    if check_conflict(index, candidate):
                        continue
                    if accept is not None and not accept(candidate):
                        continue
                    return candidate
    return None


class SlotSuggester:
    """Read-only search for the earliest free slot of a single lesson.

    The result is not reserved; placing it goes back through the placement
    writer, which may still reject it if another change landed first.
    """

    def __init__(self, db: Session, school_id: str) -> None:
        self.db = db
        self.school_id = school_id

    def suggest(self, criteria: SuggestionCriteria) -> SuggestedSlot:
        school = catalog.get_school(self.db, self.school_id)
        grid = catalog.school_time_grid(school)
        grid.validate_duration(criteria.duration_minutes)
        if criteria.day_of_week is not None and not 0 <= criteria.day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        self._validate_references(criteria)

        index = AvailabilityIndex.load(self.db, self.school_id, IndexPolicy())
        days = [criteria.day_of_week] if criteria.day_of_week is not None else list(grid.days)
        found = first_free_slot(
            index,
            grid,
            duration_minutes=criteria.duration_minutes,
            days=days,
            section_id=criteria.section_id,
            subject_id=criteria.subject_id,
            staff_ids=(criteria.staff_id,),
            room_ids=(criteria.preferred_room_id,),
        )
        if found is None:
            logger.info("No slot available for %s in school %s", criteria, self.school_id)
            raise NoSlotAvailableError(
                details={"days": days, "duration_minutes": criteria.duration_minutes},
            )
        return SuggestedSlot(
            day_of_week=found.day_of_week,
            start=found.start,
            end=found.end,
            room_id=found.room_id,
            staff_id=found.staff_id,
        )

    def _validate_references(self, criteria: SuggestionCriteria) -> None:
        if criteria.section_id is not None:
            catalog.require_section(self.db, self.school_id, criteria.section_id)
        if criteria.subject_id is not None:
            catalog.require_subject(self.db, self.school_id, criteria.subject_id)
        if criteria.staff_id is not None:
            catalog.require_staff(self.db, self.school_id, criteria.staff_id)
        if criteria.preferred_room_id is not None:
            catalog.require_room(self.db, self.school_id, criteria.preferred_room_id)
