from app.core.exceptions import (
    AppError,
    GenerationBusyError,
    NoSlotAvailableError,
    ResourceNotFoundError,
    TimetableConflictError,
    ValidationError,
)
from app.services.availability import WindowKind
from app.services.conflict_checker import ConflictCode, ConflictReason


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.code == "ERROR"
    assert err.details == {}


def test_error_codes_and_statuses():
    assert (ValidationError("bad").code, ValidationError("bad").status_code) == ("VALIDATION", 422)
    not_found = ResourceNotFoundError("Section", "s1")
    assert (not_found.code, not_found.status_code) == ("NOT_FOUND", 404)
    assert not_found.details == {"resource_type": "Section", "resource_id": "s1"}
    assert (NoSlotAvailableError().code, NoSlotAvailableError().status_code) == ("NO_SLOT_AVAILABLE", 404)
    busy = GenerationBusyError(["b", "a"])
    assert (busy.code, busy.status_code, busy.details["section_ids"]) == ("BUSY", 409, ["a", "b"])
    assert all(isinstance(err, AppError) for err in (not_found, busy))


def test_conflict_error_carries_reasons():
    reasons = [
        ConflictReason(code=ConflictCode.staff_busy, source_kind=WindowKind.entry, source_id="e2", start=540, end=600),
        ConflictReason(code=ConflictCode.room_busy, source_kind=WindowKind.entry, source_id="e1", start=540, end=600),
    ]
    err = TimetableConflictError(reasons)

    assert err.status_code == 409
    assert err.code == "CONFLICT"
    assert err.reasons == reasons
    assert err.details["codes"] == ["ROOM_BUSY", "STAFF_BUSY"]
    assert [item["entry_id"] for item in err.details["reasons"]] == ["e2", "e1"]
    assert "ROOM_BUSY" in err.message
