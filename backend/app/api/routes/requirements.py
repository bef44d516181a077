from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.exceptions import DuplicateResourceError, ResourceNotFoundError
from app.models.timetable import SectionSubjectRequirement
from app.schemas.constraints import RequirementCreate, RequirementOut, RequirementUpdate
from app.services import catalog

router = APIRouter()


def _get_requirement(db: Session, school_id: str, requirement_id: int) -> SectionSubjectRequirement:
    requirement = db.get(SectionSubjectRequirement, requirement_id)
    if requirement is None or requirement.school_id != school_id:
        raise ResourceNotFoundError("Requirement", str(requirement_id))
    return requirement


@router.get("/requirements", response_model=list[RequirementOut])
def list_requirements(
    school_id: str,
    section_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[RequirementOut]:
    catalog.get_school(db, school_id)
    query = select(SectionSubjectRequirement).where(SectionSubjectRequirement.school_id == school_id)
    if section_id is not None:
        query = query.where(SectionSubjectRequirement.section_id == section_id)
    return list(db.execute(query.order_by(SectionSubjectRequirement.id)).scalars())


@router.post("/requirements", response_model=RequirementOut, status_code=status.HTTP_201_CREATED)
def create_requirement(school_id: str, payload: RequirementCreate, db: Session = Depends(get_db)) -> RequirementOut:
    school = catalog.get_school(db, school_id)
    catalog.require_section(db, school_id, payload.section_id)
    catalog.require_subject(db, school_id, payload.subject_id)
    catalog.school_time_grid(school).validate_duration(payload.duration_minutes)

    existing = db.execute(
        select(SectionSubjectRequirement).where(
            SectionSubjectRequirement.school_id == school_id,
            SectionSubjectRequirement.section_id == payload.section_id,
            SectionSubjectRequirement.subject_id == payload.subject_id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise DuplicateResourceError(
            "A requirement for this section and subject already exists",
            details={"requirement_id": existing.id},
        )

    requirement = SectionSubjectRequirement(school_id=school_id, **payload.model_dump())
    db.add(requirement)
    db.commit()
    db.refresh(requirement)
    return requirement


@router.put("/requirements/{requirement_id}", response_model=RequirementOut)
def update_requirement(
    school_id: str,
    requirement_id: int,
    payload: RequirementUpdate,
    db: Session = Depends(get_db),
) -> RequirementOut:
    requirement = _get_requirement(db, school_id, requirement_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("duration_minutes") is not None:
        school = catalog.get_school(db, school_id)
        catalog.school_time_grid(school).validate_duration(data["duration_minutes"])

    for key, value in data.items():
        if value is None and key != "preferred_room_type":
            continue
        setattr(requirement, key, value)
    db.commit()
    db.refresh(requirement)
    return requirement


@router.delete("/requirements/{requirement_id}")
def delete_requirement(school_id: str, requirement_id: int, db: Session = Depends(get_db)) -> dict:
    requirement = _get_requirement(db, school_id, requirement_id)
    db.delete(requirement)
    db.commit()
    return {"success": True, "id": requirement_id}
