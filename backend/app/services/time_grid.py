from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

from app.core.exceptions import ValidationError

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")
DEFAULT_STEP_MINUTES = 30


def parse_time(value: str) -> int:
    """Convert an ``HH:MM`` string into minutes past midnight."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationError("Time must be in HH:MM 24-hour format", details={"value": value})
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap test: ``[start_a, end_a)`` and ``[start_b, end_b)``."""
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class TimeGrid:
    """The fixed-step sequence of lesson start times in one school day.

    All values are minutes past midnight. The grid is the same for every
    teaching day; ``days`` lists those days in Monday..Sunday order.
    """

    day_start: int
    day_end: int
    step: int = DEFAULT_STEP_MINUTES
    days: tuple[int, ...] = (0, 1, 2, 3, 4)

    @classmethod
    def from_school_hours(
        cls,
        start_time: str,
        end_time: str,
        *,
        step: int = DEFAULT_STEP_MINUTES,
        days: list[int] | tuple[int, ...] | None = None,
    ) -> "TimeGrid":
        day_start = parse_time(start_time)
        day_end = parse_time(end_time)
        if day_end <= day_start:
            raise ValidationError(
                "School end time must be after start time",
                details={"start_time": start_time, "end_time": end_time},
            )
        resolved_days = tuple(sorted({int(day) for day in (days if days is not None else range(5))}))
        invalid = [day for day in resolved_days if day < 0 or day > 6]
        if invalid:
            raise ValidationError("Teaching days must be between 0 (Monday) and 6 (Sunday)", details={"days": invalid})
        return cls(day_start=day_start, day_end=day_end, step=step, days=resolved_days)

    def validate_duration(self, duration_minutes: int) -> None:
        if duration_minutes <= 0 or duration_minutes % self.step != 0:
            raise ValidationError(
                f"Duration must be a positive multiple of {self.step} minutes",
                details={"duration_minutes": duration_minutes},
            )

    def starts(
        self,
        duration_minutes: int,
        *,
        window_start: int | None = None,
        window_end: int | None = None,
    ) -> Iterator[int]:
        """Yield every grid start, ascending, at which the lesson fits.

        A window narrows the search; the lesson must both start and end inside
        it. Starts stay aligned to the school's grid, not to the window.
        """
        lower = self.day_start if window_start is None else max(self.day_start, window_start)
        upper = self.day_end if window_end is None else min(self.day_end, window_end)
        cursor = self.day_start
        while cursor + duration_minutes <= upper:
            if cursor >= lower:
                yield cursor
            cursor += self.step

    def start_count(self, duration_minutes: int, *, window_start: int | None = None, window_end: int | None = None) -> int:
        return sum(1 for _ in self.starts(duration_minutes, window_start=window_start, window_end=window_end))
