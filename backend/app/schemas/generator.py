from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.timetable_generation import RunStatus
from app.schemas.timetable import TimetableEntryOut, parse_time_to_minutes, validate_optional_time
from app.services.weekly_generator import GenerationOptions


class GenerateTimetableRequest(BaseModel):
    target_section_ids: list[str] | None = Field(default=None, max_length=500)
    include_pinned: bool = True
    honor_unavailability: bool = True
    preferred_start_time: str | None = None
    preferred_end_time: str | None = None
    count_pinned: bool = True
    clear_existing: bool = False
    auto_infer_requirements: bool = True

    @field_validator("preferred_start_time", "preferred_end_time")
    @classmethod
    def validate_time_format(cls, value: str | None) -> str | None:
        return validate_optional_time(value)

    @model_validator(mode="after")
    def validate_window(self) -> "GenerateTimetableRequest":
        if self.preferred_start_time is not None and self.preferred_end_time is not None:
            if parse_time_to_minutes(self.preferred_end_time) <= parse_time_to_minutes(self.preferred_start_time):
                raise ValueError("preferred_end_time must be after preferred_start_time")
        return self

    def to_options(self) -> GenerationOptions:
        targets = None
        if self.target_section_ids:
            targets = tuple(dict.fromkeys(self.target_section_ids))
        return GenerationOptions(
            target_section_ids=targets,
            include_pinned=self.include_pinned,
            honor_unavailability=self.honor_unavailability,
            preferred_start_time=self.preferred_start_time,
            preferred_end_time=self.preferred_end_time,
            count_pinned=self.count_pinned,
            clear_existing=self.clear_existing,
            auto_infer_requirements=self.auto_infer_requirements,
        )


class UnsatisfiedRequirementOut(BaseModel):
    # NULL for requirements inferred from level subjects.
    requirement_id: int | None = None
    section_id: str
    subject_id: str
    periods_per_week: int
    missing: int
    inferred: bool = False

    model_config = {"from_attributes": True}


class GenerateTimetableResponse(BaseModel):
    run_id: str
    placed_count: int
    placements: list[TimetableEntryOut] = Field(default_factory=list)
    unsatisfied: list[UnsatisfiedRequirementOut] = Field(default_factory=list)


class TimetableRunOut(BaseModel):
    id: str
    school_id: str
    status: RunStatus
    options: dict = Field(default_factory=dict)
    metrics: dict = Field(default_factory=dict)
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = {"from_attributes": True}
