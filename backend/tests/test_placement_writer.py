import pytest

from app.core.exceptions import ResourceNotFoundError, TimetableConflictError, ValidationError
from app.models.staff import Staff
from app.models.timetable import PinnedSlot, StaffUnavailability, TimetableEntry
from app.services.availability import IndexPolicy
from app.services.conflict_checker import ConflictCode, PlacementCandidate
from app.services.placement_writer import PlacementWriter


def _candidate(school, *, section="10-A", subject="math", staff="alice", room="r1", day=0, start=540, end=600):
    return PlacementCandidate(
        day_of_week=day,
        start=start,
        end=end,
        section_id=school.sections[section],
        subject_id=school.subjects[subject],
        staff_id=school.staff[staff],
        room_id=school.rooms[room] if room else None,
    )


def _entry_count(db):
    return db.query(TimetableEntry).count()


def test_place_persists_entry(db, school):
    entry = PlacementWriter(db, school.id).place(_candidate(school))

    assert entry.id
    assert entry.start_time == "09:00"
    assert entry.end_time == "10:00"
    assert entry.generated_by_run_id is None
    assert _entry_count(db) == 1


def test_conflict_without_override_is_rejected(db, school):
    writer = PlacementWriter(db, school.id)
    first = writer.place(_candidate(school))

    with pytest.raises(TimetableConflictError) as exc_info:
        writer.place(_candidate(school, section="10-B", staff="carol", start=570, end=630))

    reasons = exc_info.value.reasons
    assert {reason.code for reason in reasons} == {ConflictCode.room_busy}
    assert reasons[0].entry_id == first.id
    assert exc_info.value.details["codes"] == ["ROOM_BUSY"]
    assert _entry_count(db) == 1


def test_override_replaces_conflicting_entries(db, school):
    writer = PlacementWriter(db, school.id)
    first = writer.place(_candidate(school))
    first_id = first.id
    kept_id = writer.place(_candidate(school, section="10-B", staff="bob", subject="science", room="r2")).id

    replacement = writer.place(
        _candidate(school, section="10-B", staff="carol", room="r1", start=570, end=630),
        override_conflict=True,
    )

    ids = {entry.id for entry in db.query(TimetableEntry).all()}
    assert first_id not in ids
    # The science lesson also overlapped section 10-B and was removed.
    assert kept_id not in ids
    assert ids == {replacement.id}


def test_override_cannot_remove_unavailability_or_pinned(db, school):
    db.add(
        StaffUnavailability(
            school_id=school.id, staff_id=school.staff["alice"], day_of_week=0, start_time="08:00", end_time="12:00"
        )
    )
    db.commit()
    writer = PlacementWriter(db, school.id)

    with pytest.raises(TimetableConflictError) as exc_info:
        writer.place(_candidate(school), override_conflict=True)
    assert {reason.code for reason in exc_info.value.reasons} == {ConflictCode.staff_unavailable}

    db.add(
        PinnedSlot(
            school_id=school.id,
            section_id=school.sections["10-B"],
            subject_id=school.subjects["art"],
            day_of_week=1,
            start_time="09:00",
            end_time="10:00",
        )
    )
    db.commit()
    with pytest.raises(TimetableConflictError) as pinned_info:
        writer.place(_candidate(school, section="10-B", staff="carol", day=1), override_conflict=True)
    assert {reason.code for reason in pinned_info.value.reasons} == {ConflictCode.pinned_conflict}
    assert _entry_count(db) == 0


def test_pinned_slot_blocks_manual_placement(db, school):
    db.add(
        PinnedSlot(
            school_id=school.id,
            section_id=school.sections["10-A"],
            subject_id=school.subjects["art"],
            room_id=school.rooms["r1"],
            day_of_week=0,
            start_time="08:00",
            end_time="09:00",
        )
    )
    db.commit()
    on_pin = _candidate(school, start=480, end=540)

    with pytest.raises(TimetableConflictError) as exc_info:
        PlacementWriter(db, school.id).place(on_pin)
    assert exc_info.value.details["codes"] == ["PINNED_CONFLICT"]
    assert {reason.entry_id for reason in exc_info.value.reasons} == {None}
    assert _entry_count(db) == 0

    unpinned = PlacementWriter(db, school.id, policy=IndexPolicy(include_pinned=False))
    assert unpinned.place(on_pin).start_time == "08:00"


def test_update_with_override_moves_entry_over_another(db, school):
    writer = PlacementWriter(db, school.id)
    displaced_id = writer.place(_candidate(school)).id
    moving = writer.place(_candidate(school, section="10-B", staff="bob", subject="science", room="r2", start=660, end=720))
    moving_id = moving.id
    target = {"room_id": school.rooms["r1"], "start": 540, "end": 600}

    with pytest.raises(TimetableConflictError) as exc_info:
        writer.update(moving_id, target)
    assert exc_info.value.details["codes"] == ["ROOM_BUSY"]
    assert writer.removed_entry_ids == []

    moved = writer.update(moving_id, target, override_conflict=True)

    assert moved.id == moving_id
    assert (moved.room_id, moved.start_time, moved.end_time) == (school.rooms["r1"], "09:00", "10:00")
    assert writer.removed_entry_ids == [displaced_id]
    assert [entry.id for entry in db.query(TimetableEntry).all()] == [moving_id]


def test_update_ignores_its_own_slot(db, school):
    writer = PlacementWriter(db, school.id)
    entry = writer.place(_candidate(school))

    moved = writer.update(entry.id, {"start": 570, "end": 630})
    assert moved.id == entry.id
    assert (moved.start_time, moved.end_time) == ("09:30", "10:30")

    other = writer.place(_candidate(school, section="10-B", staff="bob", subject="science", room="r2", start=660, end=720))
    with pytest.raises(TimetableConflictError):
        writer.update(entry.id, {"room_id": school.rooms["r2"], "start": 660, "end": 720})
    db.refresh(other)
    assert other.start_time == "11:00"


def test_validation_and_missing_references(db, school):
    writer = PlacementWriter(db, school.id)
    with pytest.raises(ValidationError):
        writer.place(_candidate(school, start=600, end=540))
    with pytest.raises(ValidationError):
        writer.place(_candidate(school, start=540, end=585))
    with pytest.raises(ResourceNotFoundError):
        writer.place(
            PlacementCandidate(
                day_of_week=0,
                start=540,
                end=600,
                section_id="missing",
                subject_id=school.subjects["math"],
                staff_id=school.staff["alice"],
            )
        )
    with pytest.raises(ResourceNotFoundError):
        writer.delete("missing")


def test_weekly_cap_blocks_placement(db, school):
    db.get(Staff, school.staff["alice"]).max_weekly_teaching_hours = 1.5
    db.commit()
    writer = PlacementWriter(db, school.id)
    writer.place(_candidate(school))

    with pytest.raises(TimetableConflictError) as exc_info:
        writer.place(_candidate(school, day=1))
    assert {reason.code for reason in exc_info.value.reasons} == {ConflictCode.staff_weekly_limit}

    writer.place(_candidate(school, day=1, start=540, end=570))
    assert _entry_count(db) == 2


def test_clear_sections_only_touches_given_sections(db, school):
    writer = PlacementWriter(db, school.id)
    writer.place(_candidate(school))
    writer.place(_candidate(school, section="10-B", staff="bob", subject="science", room="r2"))

    assert writer.clear_sections([school.sections["10-A"]]) == 1
    remaining = db.query(TimetableEntry).all()
    assert [entry.section_id for entry in remaining] == [school.sections["10-B"]]
