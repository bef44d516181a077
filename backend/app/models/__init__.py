from app.models.room import Room  # noqa: F401
from app.models.school import School, Section, StaffSubjectLevel, Subject, SubjectLevel  # noqa: F401
from app.models.staff import Staff  # noqa: F401
from app.models.timetable import (  # noqa: F401
    PinnedSlot,
    RoomUnavailability,
    SectionSubjectRequirement,
    StaffUnavailability,
    TimetableEntry,
)
from app.models.timetable_generation import (  # noqa: F401
    RunStatus,
    TimetableGenerationLock,
    TimetableRun,
)
