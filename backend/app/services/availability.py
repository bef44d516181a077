from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.staff import Staff
from app.models.timetable import PinnedSlot, RoomUnavailability, StaffUnavailability, TimetableEntry
from app.services.time_grid import parse_time


class WindowKind(str, Enum):
    entry = "entry"
    pinned = "pinned"
    staff_unavailable = "staff_unavailable"
    room_unavailable = "room_unavailable"


@dataclass(frozen=True)
class Window:
    kind: WindowKind
    day: int
    start: int
    end: int
    source_id: str
    section_id: str | None = None
    subject_id: str | None = None
    staff_id: str | None = None
    room_id: str | None = None

    @property
    def minutes(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class IndexPolicy:
    """Which records make up the occupied/forbidden state.

    Manual placement and suggestions use the defaults: entries, pinned slots
    and unavailability. The weekly generator follows its options and limits
    pinned slots to the sections it is generating for.
    """

    include_pinned: bool = True
    honor_unavailability: bool = True
    pinned_section_ids: frozenset[str] | None = None


def entry_window(entry: TimetableEntry) -> Window:
    return Window(
        kind=WindowKind.entry,
        day=entry.day_of_week,
        start=parse_time(entry.start_time),
        end=parse_time(entry.end_time),
        source_id=entry.id,
        section_id=entry.section_id,
        subject_id=entry.subject_id,
        staff_id=entry.staff_id,
        room_id=entry.room_id,
    )


class AvailabilityIndex:
    """Request-scoped snapshot of every busy window per section, staff and room."""

    def __init__(self, *, staff_weekly_caps: dict[str, int] | None = None) -> None:
        self._by_section: dict[tuple[str, int], list[Window]] = defaultdict(list)
        self._by_staff: dict[tuple[str, int], list[Window]] = defaultdict(list)
        self._by_room: dict[tuple[str, int], list[Window]] = defaultdict(list)
        self._entries: dict[str, Window] = {}
        self._staff_minutes: dict[str, int] = defaultdict(int)
        self.staff_weekly_caps: dict[str, int] = dict(staff_weekly_caps or {})

    def add(self, window: Window) -> Window:
        if window.kind in (WindowKind.entry, WindowKind.pinned):
            if window.section_id is not None:
                self._by_section[(window.section_id, window.day)].append(window)
            if window.staff_id is not None:
                self._by_staff[(window.staff_id, window.day)].append(window)
                self._staff_minutes[window.staff_id] += window.minutes
            if window.room_id is not None:
                self._by_room[(window.room_id, window.day)].append(window)
            if window.kind == WindowKind.entry:
                self._entries[window.source_id] = window
        elif window.kind == WindowKind.staff_unavailable:
            self._by_staff[(window.staff_id, window.day)].append(window)
        elif window.kind == WindowKind.room_unavailable:
            self._by_room[(window.room_id, window.day)].append(window)
        return window

    def add_entry(self, entry: TimetableEntry) -> Window:
        return self.add(entry_window(entry))

    def remove_entry(self, entry_id: str) -> Window | None:
        window = self._entries.pop(entry_id, None)
        if window is None:
            return None
        buckets = [(self._by_section, window.section_id), (self._by_staff, window.staff_id), (self._by_room, window.room_id)]
        for bucket, key in buckets:
            if key is None:
                continue
            items = bucket.get((key, window.day), [])
            bucket[(key, window.day)] = [item for item in items if item is not window]
        if window.staff_id is not None:
            self._staff_minutes[window.staff_id] -= window.minutes
        return window

    def entry(self, entry_id: str) -> Window | None:
        return self._entries.get(entry_id)

    def section_windows(self, section_id: str, day: int) -> list[Window]:
        return self._by_section.get((section_id, day), [])

    def staff_windows(self, staff_id: str, day: int) -> list[Window]:
        return self._by_staff.get((staff_id, day), [])

    def room_windows(self, room_id: str, day: int) -> list[Window]:
        return self._by_room.get((room_id, day), [])

    def pair_windows(self, section_id: str, subject_id: str, day: int) -> list[Window]:
        """Lessons of one subject for one section on one day, sorted by start."""
        return sorted(
            (window for window in self.section_windows(section_id, day) if window.subject_id == subject_id),
            key=lambda window: window.start,
        )

    def pair_count(self, section_id: str, subject_id: str, *, kinds: Iterable[WindowKind]) -> int:
        wanted = set(kinds)
        return sum(
            1
            for (section, _day), windows in self._by_section.items()
            if section == section_id
            for window in windows
            if window.subject_id == subject_id and window.kind in wanted
        )

    def staff_minutes(self, staff_id: str) -> int:
        return self._staff_minutes.get(staff_id, 0)

    @classmethod
    def load(cls, db: Session, school_id: str, policy: IndexPolicy | None = None) -> "AvailabilityIndex":
        policy = policy or IndexPolicy()
        caps = {
            staff_id: int(round(hours * 60))
            for staff_id, hours in db.execute(
                select(Staff.id, Staff.max_weekly_teaching_hours).where(
                    Staff.school_id == school_id,
                    Staff.max_weekly_teaching_hours.is_not(None),
                )
            )
        }
        index = cls(staff_weekly_caps=caps)

        for entry in db.execute(select(TimetableEntry).where(TimetableEntry.school_id == school_id)).scalars():
            index.add_entry(entry)

        if policy.include_pinned:
            query = select(PinnedSlot).where(PinnedSlot.school_id == school_id)
            if policy.pinned_section_ids is not None:
                query = query.where(PinnedSlot.section_id.in_(policy.pinned_section_ids))
            for pinned in db.execute(query).scalars():
                index.add(
                    Window(
                        kind=WindowKind.pinned,
                        day=pinned.day_of_week,
                        start=parse_time(pinned.start_time),
                        end=parse_time(pinned.end_time),
                        source_id=pinned.id,
                        section_id=pinned.section_id,
                        subject_id=pinned.subject_id,
                        staff_id=pinned.staff_id,
                        room_id=pinned.room_id,
                    )
                )

        if policy.honor_unavailability:
            for record in db.execute(
                select(StaffUnavailability).where(StaffUnavailability.school_id == school_id)
            ).scalars():
                index.add(
                    Window(
                        kind=WindowKind.staff_unavailable,
                        day=record.day_of_week,
                        start=parse_time(record.start_time),
                        end=parse_time(record.end_time),
                        source_id=record.id,
                        staff_id=record.staff_id,
                    )
                )
            for record in db.execute(
                select(RoomUnavailability).where(RoomUnavailability.school_id == school_id)
            ).scalars():
                index.add(
                    Window(
                        kind=WindowKind.room_unavailable,
                        day=record.day_of_week,
                        start=parse_time(record.start_time),
                        end=parse_time(record.end_time),
                        source_id=record.id,
                        room_id=record.room_id,
                    )
                )
        return index
