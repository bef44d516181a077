from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from app.services.availability import AvailabilityIndex, Window, WindowKind
from app.services.time_grid import format_time, intervals_overlap


class ConflictCode(str, Enum):
    section_busy = "SECTION_BUSY"
    staff_busy = "STAFF_BUSY"
    room_busy = "ROOM_BUSY"
    staff_unavailable = "STAFF_UNAVAILABLE"
    room_unavailable = "ROOM_UNAVAILABLE"
    pinned_conflict = "PINNED_CONFLICT"
    staff_weekly_limit = "STAFF_WEEKLY_LIMIT"


@dataclass(frozen=True)
class PlacementCandidate:
    day_of_week: int
    start: int
    end: int
    section_id: str | None = None
    staff_id: str | None = None
    room_id: str | None = None
    subject_id: str | None = None

    @property
    def minutes(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class ConflictReason:
    code: ConflictCode
    source_kind: WindowKind | None
    source_id: str | None
    start: int | None = None
    end: int | None = None

    @property
    def entry_id(self) -> str | None:
        return self.source_id if self.source_kind == WindowKind.entry else None

    @property
    def overridable(self) -> bool:
        """Only existing lessons can be deleted away by an override."""
        return self.source_kind == WindowKind.entry

    def as_dict(self) -> dict:
        return {
            "code": self.code.value,
            "source": self.source_kind.value if self.source_kind is not None else None,
            "source_id": self.source_id,
            "entry_id": self.entry_id,
            "start_time": format_time(self.start) if self.start is not None else None,
            "end_time": format_time(self.end) if self.end is not None else None,
        }


_SECTION_CODES = {
    WindowKind.entry: ConflictCode.section_busy,
    WindowKind.pinned: ConflictCode.pinned_conflict,
}
_STAFF_CODES = {
    WindowKind.entry: ConflictCode.staff_busy,
    WindowKind.pinned: ConflictCode.pinned_conflict,
    WindowKind.staff_unavailable: ConflictCode.staff_unavailable,
}
_ROOM_CODES = {
    WindowKind.entry: ConflictCode.room_busy,
    WindowKind.pinned: ConflictCode.pinned_conflict,
    WindowKind.room_unavailable: ConflictCode.room_unavailable,
}


def _overlapping(windows: list[Window], candidate: PlacementCandidate, exclude_entry_id: str | None) -> list[Window]:
    return [
        window
        for window in windows
        if not (window.kind == WindowKind.entry and window.source_id == exclude_entry_id)
        and intervals_overlap(candidate.start, candidate.end, window.start, window.end)
    ]


def check_conflict(
    index: AvailabilityIndex,
    candidate: PlacementCandidate,
    *,
    exclude_entry_id: str | None = None,
) -> list[ConflictReason]:
    """Report every reason the candidate cannot be placed as-is.

    Section, staff and room checks run independently so callers see all of
    them at once. A missing section, staff or room on the candidate skips the
    matching check.
    """
    reasons: list[ConflictReason] = []
    seen: set[tuple[ConflictCode, str | None]] = set()

    def report(code: ConflictCode, window: Window) -> None:
        key = (code, window.source_id)
        if key in seen:
            return
        seen.add(key)
        reasons.append(
            ConflictReason(code=code, source_kind=window.kind, source_id=window.source_id, start=window.start, end=window.end)
        )

    day = candidate.day_of_week
    if candidate.section_id is not None:
        for window in _overlapping(index.section_windows(candidate.section_id, day), candidate, exclude_entry_id):
            report(_SECTION_CODES[window.kind], window)
    if candidate.staff_id is not None:
        for window in _overlapping(index.staff_windows(candidate.staff_id, day), candidate, exclude_entry_id):
            report(_STAFF_CODES[window.kind], window)
    if candidate.room_id is not None:
        for window in _overlapping(index.room_windows(candidate.room_id, day), candidate, exclude_entry_id):
            report(_ROOM_CODES[window.kind], window)

    if candidate.staff_id is not None:
        cap = index.staff_weekly_caps.get(candidate.staff_id)
        if cap is not None:
            current = index.staff_minutes(candidate.staff_id)
            excluded = index.entry(exclude_entry_id) if exclude_entry_id else None
            if excluded is not None and excluded.staff_id == candidate.staff_id:
                current -= excluded.minutes
            if current + candidate.minutes > cap:
                reasons.append(
                    ConflictReason(
                        code=ConflictCode.staff_weekly_limit,
                        source_kind=None,
                        source_id=candidate.staff_id,
                    )
                )
    return reasons
