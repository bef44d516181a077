from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import GenerationBusyError
from app.models.timetable_generation import TimetableGenerationLock
from app.services.generation_lock import acquire_generation_lock, generation_lock, release_generation_lock


def _held(db):
    return sorted((lock.section_id, lock.run_id) for lock in db.query(TimetableGenerationLock).all())


def test_lock_covers_every_section_until_released(db, school):
    sections = [school.sections["10-A"], school.sections["10-B"]]
    acquire_generation_lock(db, school_id=school.id, section_ids=sections, run_id="run-1", ttl_seconds=60)
    assert _held(db) == [("sec-10a", "run-1"), ("sec-10b", "run-1")]

    with pytest.raises(GenerationBusyError) as exc_info:
        acquire_generation_lock(
            db, school_id=school.id, section_ids=[school.sections["10-B"]], run_id="run-2", ttl_seconds=60
        )
    assert exc_info.value.code == "BUSY"
    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"section_ids": ["sec-10b"]}

    release_generation_lock(db, run_id="run-1")
    assert _held(db) == []


def test_expired_locks_are_purged(db, school):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    db.add(
        TimetableGenerationLock(
            school_id=school.id,
            section_id=school.sections["10-A"],
            run_id="stale",
            acquired_at=past - timedelta(minutes=15),
            expires_at=past,
        )
    )
    db.commit()

    acquire_generation_lock(
        db, school_id=school.id, section_ids=[school.sections["10-A"]], run_id="fresh", ttl_seconds=60
    )
    assert _held(db) == [("sec-10a", "fresh")]


def test_context_manager_releases_on_error(db, school):
    with pytest.raises(RuntimeError):
        with generation_lock(
            db, school_id=school.id, section_ids=[school.sections["10-A"]], run_id="run-1", ttl_seconds=60
        ):
            assert _held(db) == [("sec-10a", "run-1")]
            raise RuntimeError("boom")
    assert _held(db) == []
