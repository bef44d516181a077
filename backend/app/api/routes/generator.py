from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.timetable_generation import TimetableRun
from app.schemas.generator import (
    GenerateTimetableRequest,
    GenerateTimetableResponse,
    TimetableRunOut,
    UnsatisfiedRequirementOut,
)
from app.schemas.timetable import TimetableEntryOut
from app.services import catalog
from app.services.weekly_generator import WeeklyGenerator

router = APIRouter()


@router.post("/timetable/generate", response_model=GenerateTimetableResponse)
def generate_timetable(
    school_id: str,
    payload: GenerateTimetableRequest | None = None,
    db: Session = Depends(get_db),
) -> GenerateTimetableResponse:
    request = payload or GenerateTimetableRequest()
    result = WeeklyGenerator(db, school_id, request.to_options()).run()
    return GenerateTimetableResponse(
        run_id=result.run_id,
        placed_count=result.placed_count,
        placements=[TimetableEntryOut.model_validate(entry) for entry in result.placements],
        unsatisfied=[UnsatisfiedRequirementOut.model_validate(item) for item in result.unsatisfied],
    )


@router.get("/timetable/runs", response_model=list[TimetableRunOut])
def list_generation_runs(
    school_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[TimetableRunOut]:
    catalog.get_school(db, school_id)
    return list(
        db.execute(
            select(TimetableRun)
            .where(TimetableRun.school_id == school_id)
            .order_by(TimetableRun.started_at.desc(), TimetableRun.id)
            .limit(limit)
        ).scalars()
    )
