import os
from types import SimpleNamespace

# Keep app.db.session off the real database before app modules import it.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.db.base import Base
import app.models  # noqa: F401
from app.main import app
from app.models.room import Room
from app.models.school import School, Section, StaffSubjectLevel, Subject
from app.models.staff import Staff


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def school(db):
    """One school with two grade-10 sections, three subjects, three teachers and three rooms.

    Alice and Carol teach Math in grade 10, Bob teaches Science at every level
    and Carol also teaches Art. Rooms list as Lab, R1, R2.
    """
    record = School(id="school-1", name="Springfield High", timetable_start_time="08:00", timetable_end_time="17:00")
    db.add(record)
    db.flush()

    sections = {
        "10-A": Section(id="sec-10a", school_id=record.id, name="10-A", level_id="grade-10"),
        "10-B": Section(id="sec-10b", school_id=record.id, name="10-B", level_id="grade-10"),
    }
    subjects = {
        "math": Subject(id="sub-math", school_id=record.id, name="Math"),
        "science": Subject(id="sub-science", school_id=record.id, name="Science"),
        "art": Subject(id="sub-art", school_id=record.id, name="Art"),
    }
    staff = {
        "alice": Staff(id="staff-alice", school_id=record.id, name="Alice"),
        "bob": Staff(id="staff-bob", school_id=record.id, name="Bob"),
        "carol": Staff(id="staff-carol", school_id=record.id, name="Carol"),
    }
    rooms = {
        "lab": Room(id="room-lab", school_id=record.id, name="Lab", room_type="lab", capacity=24),
        "r1": Room(id="room-r1", school_id=record.id, name="R1", room_type="classroom", capacity=32),
        "r2": Room(id="room-r2", school_id=record.id, name="R2", room_type="classroom", capacity=32),
    }
    db.add_all([*sections.values(), *subjects.values(), *staff.values(), *rooms.values()])
    db.flush()
    db.add_all(
        [
            StaffSubjectLevel(school_id=record.id, staff_id="staff-alice", subject_id="sub-math", level_id="grade-10"),
            StaffSubjectLevel(school_id=record.id, staff_id="staff-carol", subject_id="sub-math", level_id="grade-10"),
            StaffSubjectLevel(school_id=record.id, staff_id="staff-bob", subject_id="sub-science", level_id=None),
            StaffSubjectLevel(school_id=record.id, staff_id="staff-carol", subject_id="sub-art", level_id=None),
        ]
    )
    db.commit()

    return SimpleNamespace(
        id=record.id,
        sections={key: value.id for key, value in sections.items()},
        subjects={key: value.id for key, value in subjects.items()},
        staff={key: value.id for key, value in staff.items()},
        rooms={key: value.id for key, value in rooms.items()},
    )
