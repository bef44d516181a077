from pydantic import BaseModel, Field

from app.schemas.timetable import DayTimeRange


class RequirementBase(BaseModel):
    section_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    periods_per_week: int = Field(default=1, ge=0, le=60)
    duration_minutes: int = Field(default=60, gt=0, le=24 * 60)
    min_gap_mins: int = Field(default=0, ge=0, le=24 * 60)
    allow_double: bool = False
    preferred_room_type: str | None = Field(default=None, max_length=50)


class RequirementCreate(RequirementBase):
    pass


class RequirementUpdate(BaseModel):
    periods_per_week: int | None = Field(default=None, ge=0, le=60)
    duration_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    min_gap_mins: int | None = Field(default=None, ge=0, le=24 * 60)
    allow_double: bool | None = None
    preferred_room_type: str | None = Field(default=None, max_length=50)


class RequirementOut(RequirementBase):
    id: int
    school_id: str

    model_config = {"from_attributes": True}


class PinnedSlotCreate(DayTimeRange):
    section_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    staff_id: str | None = Field(default=None, max_length=36)
    room_id: str | None = Field(default=None, max_length=36)


class PinnedSlotOut(PinnedSlotCreate):
    id: str
    school_id: str

    model_config = {"from_attributes": True}


class StaffUnavailabilityCreate(DayTimeRange):
    staff_id: str = Field(min_length=1, max_length=36)
    reason: str | None = Field(default=None, max_length=200)


class StaffUnavailabilityOut(StaffUnavailabilityCreate):
    id: str
    school_id: str

    model_config = {"from_attributes": True}


class RoomUnavailabilityCreate(DayTimeRange):
    room_id: str = Field(min_length=1, max_length=36)
    reason: str | None = Field(default=None, max_length=200)


class RoomUnavailabilityOut(RoomUnavailabilityCreate):
    id: str
    school_id: str

    model_config = {"from_attributes": True}
