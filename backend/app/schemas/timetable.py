from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_optional_time(value: str | None) -> str | None:
    if value is None:
        return value
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    return value


class DayTimeRange(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self):
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class TimetableEntryCreate(DayTimeRange):
    section_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    staff_id: str = Field(min_length=1, max_length=36)
    room_id: str | None = Field(default=None, max_length=36)
    override_conflict: bool = False


class TimetableEntryUpdate(BaseModel):
    section_id: str | None = Field(default=None, min_length=1, max_length=36)
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    staff_id: str | None = Field(default=None, min_length=1, max_length=36)
    room_id: str | None = Field(default=None, max_length=36)
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None
    override_conflict: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str | None) -> str | None:
        return validate_optional_time(value)


class TimetableEntryOut(BaseModel):
    id: str
    school_id: str
    section_id: str
    subject_id: str
    staff_id: str
    room_id: str | None = None
    day_of_week: int
    start_time: str
    end_time: str
    generated_by_run_id: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SuggestionRequest(BaseModel):
    duration_minutes: int = Field(gt=0, le=24 * 60)
    section_id: str | None = Field(default=None, max_length=36)
    subject_id: str | None = Field(default=None, max_length=36)
    staff_id: str | None = Field(default=None, max_length=36)
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    preferred_room_id: str | None = Field(default=None, max_length=36)


class SuggestedSlotOut(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str
    room_id: str | None = None
    staff_id: str | None = None
