import pytest

from app.services.availability import AvailabilityIndex, Window, WindowKind
from app.services.conflict_checker import ConflictCode, PlacementCandidate, check_conflict


def _entry(entry_id, *, day=0, start=540, end=600, section="A", staff="f1", room="r1", subject="math"):
    return Window(
        kind=WindowKind.entry,
        day=day,
        start=start,
        end=end,
        source_id=entry_id,
        section_id=section,
        subject_id=subject,
        staff_id=staff,
        room_id=room,
    )


@pytest.fixture
def index():
    index = AvailabilityIndex()
    index.add(_entry("e1"))
    return index


def _codes(reasons):
    return {reason.code for reason in reasons}


def test_detect_room_conflict(index):
    candidate = PlacementCandidate(day_of_week=0, start=570, end=630, section_id="B", staff_id="f2", room_id="r1")
    reasons = check_conflict(index, candidate)

    assert _codes(reasons) == {ConflictCode.room_busy}
    assert reasons[0].entry_id == "e1"
    assert reasons[0].overridable


def test_every_reason_is_reported(index):
    candidate = PlacementCandidate(day_of_week=0, start=540, end=600, section_id="A", staff_id="f1", room_id="r1")
    reasons = check_conflict(index, candidate)

    assert _codes(reasons) == {ConflictCode.section_busy, ConflictCode.staff_busy, ConflictCode.room_busy}
    assert {reason.entry_id for reason in reasons} == {"e1"}


def test_adjacent_and_other_day_placements_are_clean(index):
    after = PlacementCandidate(day_of_week=0, start=600, end=660, section_id="A", staff_id="f1", room_id="r1")
    other_day = PlacementCandidate(day_of_week=1, start=540, end=600, section_id="A", staff_id="f1", room_id="r1")
    assert check_conflict(index, after) == []
    assert check_conflict(index, other_day) == []


def test_missing_fields_skip_their_checks(index):
    roomless = PlacementCandidate(day_of_week=0, start=540, end=600, section_id="B", staff_id="f2")
    assert check_conflict(index, roomless) == []
    staff_only = PlacementCandidate(day_of_week=0, start=540, end=600, staff_id="f1")
    assert _codes(check_conflict(index, staff_only)) == {ConflictCode.staff_busy}


def test_excluded_entry_is_ignored(index):
    candidate = PlacementCandidate(day_of_week=0, start=570, end=630, section_id="A", staff_id="f1", room_id="r1")
    assert check_conflict(index, candidate, exclude_entry_id="e1") == []


def test_unavailability_and_pinned_windows_are_not_overridable():
    index = AvailabilityIndex()
    index.add(Window(kind=WindowKind.staff_unavailable, day=2, start=480, end=720, source_id="u1", staff_id="f1"))
    index.add(Window(kind=WindowKind.room_unavailable, day=2, start=480, end=540, source_id="u2", room_id="r1"))
    index.add(
        Window(kind=WindowKind.pinned, day=2, start=600, end=660, source_id="p1", section_id="A", subject_id="art")
    )

    candidate = PlacementCandidate(day_of_week=2, start=510, end=630, section_id="A", staff_id="f1", room_id="r1")
    reasons = check_conflict(index, candidate)

    assert _codes(reasons) == {
        ConflictCode.staff_unavailable,
        ConflictCode.room_unavailable,
        ConflictCode.pinned_conflict,
    }
    assert not any(reason.overridable for reason in reasons)
    assert all(reason.entry_id is None for reason in reasons)
    assert {reason.source_id for reason in reasons} == {"u1", "u2", "p1"}


def test_weekly_limit_counts_current_load():
    index = AvailabilityIndex(staff_weekly_caps={"f1": 120})
    index.add(_entry("e1", day=0))
    index.add(_entry("e2", day=1))

    candidate = PlacementCandidate(day_of_week=2, start=540, end=600, section_id="A", staff_id="f1")
    reasons = check_conflict(index, candidate)
    assert _codes(reasons) == {ConflictCode.staff_weekly_limit}
    assert reasons[0].source_id == "f1"

    # Moving an existing lesson does not add to the load.
    assert check_conflict(index, candidate, exclude_entry_id="e2") == []


def test_removed_entries_free_their_windows(index):
    candidate = PlacementCandidate(day_of_week=0, start=540, end=600, section_id="A", staff_id="f1", room_id="r1")
    index.remove_entry("e1")
    assert check_conflict(index, candidate) == []
    assert index.staff_minutes("f1") == 0


def test_reason_serialization(index):
    candidate = PlacementCandidate(day_of_week=0, start=540, end=600, room_id="r1")
    payload = check_conflict(index, candidate)[0].as_dict()
    assert payload == {
        "code": "ROOM_BUSY",
        "source": "entry",
        "source_id": "e1",
        "entry_id": "e1",
        "start_time": "09:00",
        "end_time": "10:00",
    }
