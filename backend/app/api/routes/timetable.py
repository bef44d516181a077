from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.timetable import TimetableEntry
from app.schemas.timetable import (
    SuggestedSlotOut,
    SuggestionRequest,
    TimetableEntryCreate,
    TimetableEntryOut,
    TimetableEntryUpdate,
)
from app.services import catalog
from app.services.conflict_checker import PlacementCandidate
from app.services.placement_writer import PlacementWriter
from app.services.slot_suggester import SlotSuggester, SuggestionCriteria
from app.services.time_grid import parse_time

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/timetable", response_model=list[TimetableEntryOut])
def list_timetable_entries(
    school_id: str,
    section_id: str | None = Query(default=None),
    staff_id: str | None = Query(default=None),
    room_id: str | None = Query(default=None),
    day_of_week: int | None = Query(default=None, ge=0, le=6),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    catalog.get_school(db, school_id)
    query = select(TimetableEntry).where(TimetableEntry.school_id == school_id)
    if section_id is not None:
        query = query.where(TimetableEntry.section_id == section_id)
    if staff_id is not None:
        query = query.where(TimetableEntry.staff_id == staff_id)
    if room_id is not None:
        query = query.where(TimetableEntry.room_id == room_id)
    if day_of_week is not None:
        query = query.where(TimetableEntry.day_of_week == day_of_week)
    query = query.order_by(TimetableEntry.day_of_week, TimetableEntry.start_time, TimetableEntry.id)
    return list(db.execute(query).scalars())


@router.post("/timetable/suggest", response_model=SuggestedSlotOut)
def suggest_slot(school_id: str, payload: SuggestionRequest, db: Session = Depends(get_db)) -> SuggestedSlotOut:
    slot = SlotSuggester(db, school_id).suggest(SuggestionCriteria(**payload.model_dump()))
    return SuggestedSlotOut(
        day_of_week=slot.day_of_week,
        start_time=slot.start_time,
        end_time=slot.end_time,
        room_id=slot.room_id,
        staff_id=slot.staff_id,
    )


@router.get("/timetable/{entry_id}", response_model=TimetableEntryOut)
def get_timetable_entry(school_id: str, entry_id: str, db: Session = Depends(get_db)) -> TimetableEntryOut:
    return PlacementWriter(db, school_id).get_entry(entry_id)


@router.post("/timetable", response_model=TimetableEntryOut, status_code=status.HTTP_201_CREATED)
def create_timetable_entry(
    school_id: str,
    payload: TimetableEntryCreate,
    response: Response,
    db: Session = Depends(get_db),
) -> TimetableEntryOut:
    candidate = PlacementCandidate(
        day_of_week=payload.day_of_week,
        start=parse_time(payload.start_time),
        end=parse_time(payload.end_time),
        section_id=payload.section_id,
        staff_id=payload.staff_id,
        room_id=payload.room_id,
        subject_id=payload.subject_id,
    )
    writer = PlacementWriter(db, school_id)
    entry = writer.place(candidate, override_conflict=payload.override_conflict)
    if writer.removed_entry_ids:
        # An override replaced existing lessons rather than filling a free slot.
        response.status_code = status.HTTP_200_OK
    logger.info("Created timetable entry %s in school %s", entry.id, school_id)
    return entry


@router.put("/timetable/{entry_id}", response_model=TimetableEntryOut)
def update_timetable_entry(
    school_id: str,
    entry_id: str,
    payload: TimetableEntryUpdate,
    db: Session = Depends(get_db),
) -> TimetableEntryOut:
    data = payload.model_dump(exclude_unset=True)
    override_conflict = data.pop("override_conflict", False)
    changes = {}
    for key, value in data.items():
        if key == "start_time":
            changes["start"] = parse_time(value)
        elif key == "end_time":
            changes["end"] = parse_time(value)
        elif value is not None or key == "room_id":
            changes[key] = value
    return PlacementWriter(db, school_id).update(entry_id, changes, override_conflict=override_conflict)


@router.delete("/timetable/{entry_id}")
def delete_timetable_entry(school_id: str, entry_id: str, db: Session = Depends(get_db)) -> dict:
    PlacementWriter(db, school_id).delete(entry_id)
    logger.info("Deleted timetable entry %s in school %s", entry_id, school_id)
    return {"success": True, "id": entry_id}
