"""Pinned lessons and staff/room unavailability windows.

These records never become timetable entries; they only shape what the
conflict checker and the generator treat as occupied or forbidden.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.exceptions import ResourceNotFoundError
from app.models.timetable import PinnedSlot, RoomUnavailability, StaffUnavailability
from app.schemas.constraints import (
    PinnedSlotCreate,
    PinnedSlotOut,
    RoomUnavailabilityCreate,
    RoomUnavailabilityOut,
    StaffUnavailabilityCreate,
    StaffUnavailabilityOut,
)
from app.services import catalog

router = APIRouter()


def _delete_scoped(db: Session, model, school_id: str, record_id: str, label: str) -> dict:
    record = db.get(model, record_id)
    if record is None or record.school_id != school_id:
        raise ResourceNotFoundError(label, record_id)
    db.delete(record)
    db.commit()
    return {"success": True, "id": record_id}


@router.get("/pinned", response_model=list[PinnedSlotOut])
def list_pinned_slots(
    school_id: str,
    section_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[PinnedSlotOut]:
    catalog.get_school(db, school_id)
    query = select(PinnedSlot).where(PinnedSlot.school_id == school_id)
    if section_id is not None:
        query = query.where(PinnedSlot.section_id == section_id)
    return list(db.execute(query.order_by(PinnedSlot.day_of_week, PinnedSlot.start_time, PinnedSlot.id)).scalars())


@router.post("/pinned", response_model=PinnedSlotOut, status_code=status.HTTP_201_CREATED)
def create_pinned_slot(school_id: str, payload: PinnedSlotCreate, db: Session = Depends(get_db)) -> PinnedSlotOut:
    catalog.get_school(db, school_id)
    catalog.require_section(db, school_id, payload.section_id)
    catalog.require_subject(db, school_id, payload.subject_id)
    if payload.staff_id is not None:
        catalog.require_staff(db, school_id, payload.staff_id)
    if payload.room_id is not None:
        catalog.require_room(db, school_id, payload.room_id)

    pinned = PinnedSlot(school_id=school_id, **payload.model_dump())
    db.add(pinned)
    db.commit()
    db.refresh(pinned)
    return pinned


@router.delete("/pinned/{pinned_id}")
def delete_pinned_slot(school_id: str, pinned_id: str, db: Session = Depends(get_db)) -> dict:
    return _delete_scoped(db, PinnedSlot, school_id, pinned_id, "PinnedSlot")


@router.get("/unavailability/staff", response_model=list[StaffUnavailabilityOut])
def list_staff_unavailability(
    school_id: str,
    staff_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[StaffUnavailabilityOut]:
    catalog.get_school(db, school_id)
    query = select(StaffUnavailability).where(StaffUnavailability.school_id == school_id)
    if staff_id is not None:
        query = query.where(StaffUnavailability.staff_id == staff_id)
    return list(
        db.execute(
            query.order_by(StaffUnavailability.day_of_week, StaffUnavailability.start_time, StaffUnavailability.id)
        ).scalars()
    )


@router.post("/unavailability/staff", response_model=StaffUnavailabilityOut, status_code=status.HTTP_201_CREATED)
def create_staff_unavailability(
    school_id: str,
    payload: StaffUnavailabilityCreate,
    db: Session = Depends(get_db),
) -> StaffUnavailabilityOut:
    catalog.get_school(db, school_id)
    catalog.require_staff(db, school_id, payload.staff_id)
    record = StaffUnavailability(school_id=school_id, **payload.model_dump())
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@router.delete("/unavailability/staff/{record_id}")
def delete_staff_unavailability(school_id: str, record_id: str, db: Session = Depends(get_db)) -> dict:
    return _delete_scoped(db, StaffUnavailability, school_id, record_id, "StaffUnavailability")


@router.get("/unavailability/rooms", response_model=list[RoomUnavailabilityOut])
def list_room_unavailability(
    school_id: str,
    room_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[RoomUnavailabilityOut]:
    catalog.get_school(db, school_id)
    query = select(RoomUnavailability).where(RoomUnavailability.school_id == school_id)
    if room_id is not None:
        query = query.where(RoomUnavailability.room_id == room_id)
    return list(
        db.execute(
            query.order_by(RoomUnavailability.day_of_week, RoomUnavailability.start_time, RoomUnavailability.id)
        ).scalars()
    )


@router.post("/unavailability/rooms", response_model=RoomUnavailabilityOut, status_code=status.HTTP_201_CREATED)
def create_room_unavailability(
    school_id: str,
    payload: RoomUnavailabilityCreate,
    db: Session = Depends(get_db),
) -> RoomUnavailabilityOut:
    catalog.get_school(db, school_id)
    catalog.require_room(db, school_id, payload.room_id)
    record = RoomUnavailability(school_id=school_id, **payload.model_dump())
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@router.delete("/unavailability/rooms/{record_id}")
def delete_room_unavailability(school_id: str, record_id: str, db: Session = Depends(get_db)) -> dict:
    return _delete_scoped(db, RoomUnavailability, school_id, record_id, "RoomUnavailability")
