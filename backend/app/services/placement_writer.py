from __future__ import annotations

import logging
from dataclasses import replace

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError, TimetableConflictError, ValidationError
from app.models.school import School
from app.models.timetable import TimetableEntry
from app.services import catalog
from app.services.availability import AvailabilityIndex, IndexPolicy
from app.services.conflict_checker import ConflictCode, ConflictReason, PlacementCandidate, check_conflict
from app.services.time_grid import TimeGrid, format_time, parse_time

logger = logging.getLogger(__name__)


class PlacementWriter:
    """The only code path that creates, moves or deletes timetable entries.

    Every write runs in one transaction: the school row is locked, the busy
    state is reloaded from the store, the candidate is checked and only then
    written. The pre-flight checks done elsewhere are advisory; this one is
    authoritative.
    """

    def __init__(self, db: Session, school_id: str, *, policy: IndexPolicy | None = None) -> None:
        self.db = db
        self.school_id = school_id
        self.policy = policy or IndexPolicy()
        self.removed_entry_ids: list[str] = []
        self._grid: TimeGrid | None = None

    @property
    def grid(self) -> TimeGrid:
        if self._grid is None:
            self._grid = catalog.school_time_grid(catalog.get_school(self.db, self.school_id))
        return self._grid

    def get_entry(self, entry_id: str) -> TimetableEntry:
        entry = self.db.get(TimetableEntry, entry_id)
        if entry is None or entry.school_id != self.school_id:
            raise ResourceNotFoundError("TimetableEntry", entry_id)
        return entry

    def place(
        self,
        candidate: PlacementCandidate,
        *,
        override_conflict: bool = False,
        run_id: str | None = None,
        validate_references: bool = True,
    ) -> TimetableEntry:
        self._validate(candidate, validate_references=validate_references)
        return self._write(candidate, override_conflict=override_conflict, run_id=run_id)

    def update(self, entry_id: str, changes: dict, *, override_conflict: bool = False) -> TimetableEntry:
        entry = self.get_entry(entry_id)
        current = PlacementCandidate(
            day_of_week=entry.day_of_week,
            start=parse_time(entry.start_time),
            end=parse_time(entry.end_time),
            section_id=entry.section_id,
            staff_id=entry.staff_id,
            room_id=entry.room_id,
            subject_id=entry.subject_id,
        )
        candidate = replace(current, **changes)
        self._validate(candidate, validate_references=True)
        return self._write(candidate, override_conflict=override_conflict, existing=entry)

    def delete(self, entry_id: str) -> None:
        entry = self.get_entry(entry_id)
        self.db.delete(entry)
        self.db.commit()

    def remove_entries(self, entry_ids: list[str]) -> None:
        """Drop entries created by a generation run (used when backtracking)."""
        if not entry_ids:
            return
        self.db.execute(
            delete(TimetableEntry).where(
                TimetableEntry.school_id == self.school_id,
                TimetableEntry.id.in_(entry_ids),
            )
        )
        self.db.commit()

    def clear_sections(self, section_ids: list[str]) -> int:
        if not section_ids:
            return 0
        result = self.db.execute(
            delete(TimetableEntry).where(
                TimetableEntry.school_id == self.school_id,
                TimetableEntry.section_id.in_(section_ids),
            )
        )
        self.db.commit()
        logger.info("Cleared %s timetable entries for %s section(s)", result.rowcount, len(section_ids))
        return result.rowcount

    def _validate(self, candidate: PlacementCandidate, *, validate_references: bool) -> None:
        if candidate.section_id is None or candidate.staff_id is None or candidate.subject_id is None:
            raise ValidationError("section_id, subject_id and staff_id are required")
        if not 0 <= candidate.day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        if candidate.end <= candidate.start:
            raise ValidationError(
                "End time must be after start time",
                details={"start_time": format_time(candidate.start), "end_time": format_time(candidate.end)},
            )
        self.grid.validate_duration(candidate.end - candidate.start)
        if validate_references:
            catalog.require_section(self.db, self.school_id, candidate.section_id)
            catalog.require_subject(self.db, self.school_id, candidate.subject_id)
            catalog.require_staff(self.db, self.school_id, candidate.staff_id)
            if candidate.room_id is not None:
                catalog.require_room(self.db, self.school_id, candidate.room_id)

    def _lock_school(self) -> None:
        locked = self.db.execute(
            select(School.id).where(School.id == self.school_id).with_for_update()
        ).scalar_one_or_none()
        if locked is None:
            raise ResourceNotFoundError("School", self.school_id)

    def _resolve_override(
        self,
        index: AvailabilityIndex,
        candidate: PlacementCandidate,
        reasons: list[ConflictReason],
        exclude_entry_id: str | None,
    ) -> list[str]:
        fixed = [
            reason
            for reason in reasons
            if not reason.overridable and reason.code != ConflictCode.staff_weekly_limit
        ]
        if fixed:
            raise TimetableConflictError(
                reasons,
                message="Override cannot remove pinned slots or unavailability windows",
            )
        doomed = sorted({reason.entry_id for reason in reasons if reason.entry_id is not None})
        for entry_id in doomed:
            index.remove_entry(entry_id)
        remaining = check_conflict(index, candidate, exclude_entry_id=exclude_entry_id)
        if remaining:
            raise TimetableConflictError(remaining)
        return doomed

    def _write(
        self,
        candidate: PlacementCandidate,
        *,
        override_conflict: bool,
        existing: TimetableEntry | None = None,
        run_id: str | None = None,
    ) -> TimetableEntry:
        exclude_entry_id = existing.id if existing is not None else None
        self.removed_entry_ids = []
        try:
            self._lock_school()
            index = AvailabilityIndex.load(self.db, self.school_id, self.policy)
            reasons = check_conflict(index, candidate, exclude_entry_id=exclude_entry_id)
            if reasons:
                if not override_conflict:
                    raise TimetableConflictError(reasons)
                doomed = self._resolve_override(index, candidate, reasons, exclude_entry_id)
                self.removed_entry_ids = doomed
                for entry_id in doomed:
                    self.db.delete(self.db.get(TimetableEntry, entry_id))
                # Deletes must reach the store before the insert hits the unique guards.
                self.db.flush()
                logger.info(
                    "Override on day %s %s-%s removed %s entr%s: %s",
                    candidate.day_of_week,
                    format_time(candidate.start),
                    format_time(candidate.end),
                    len(doomed),
                    "y" if len(doomed) == 1 else "ies",
                    ", ".join(doomed),
                )

            entry = existing or TimetableEntry(school_id=self.school_id, generated_by_run_id=run_id)
            entry.section_id = candidate.section_id
            entry.subject_id = candidate.subject_id
            entry.staff_id = candidate.staff_id
            entry.room_id = candidate.room_id
            entry.day_of_week = candidate.day_of_week
            entry.start_time = format_time(candidate.start)
            entry.end_time = format_time(candidate.end)
            if existing is None:
                self.db.add(entry)
            self.db.commit()
        except TimetableConflictError:
            self.db.rollback()
            self.removed_entry_ids = []
            raise
        except IntegrityError as exc:
            self.db.rollback()
            self.removed_entry_ids = []
            logger.warning("Placement lost a concurrent write race: %s", exc.orig)
            raise TimetableConflictError(
                [], message="Timetable slot was taken by a concurrent change; reload and retry"
            ) from exc
        self.db.refresh(entry)
        return entry
