from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import GenerationBusyError
from app.models.timetable_generation import TimetableGenerationLock

logger = logging.getLogger(__name__)


def acquire_generation_lock(
    db: Session,
    *,
    school_id: str,
    section_ids: list[str],
    run_id: str,
    ttl_seconds: int,
) -> None:
    """Claim every section for one generation run, or raise ``BUSY``.

    One row per (school, section); the unique constraint settles races between
    two requests that both pass the pre-check.
    """
    now = datetime.now(timezone.utc)
    db.execute(
        delete(TimetableGenerationLock).where(
            TimetableGenerationLock.school_id == school_id,
            TimetableGenerationLock.expires_at < now,
        )
    )
    db.commit()

    held = list(
        db.execute(
            select(TimetableGenerationLock.section_id).where(
                TimetableGenerationLock.school_id == school_id,
                TimetableGenerationLock.section_id.in_(section_ids),
            )
        ).scalars()
    )
    if held:
        logger.info("Generation %s rejected; sections already locked: %s", run_id, ", ".join(sorted(held)))
        raise GenerationBusyError(held)

    expires_at = now + timedelta(seconds=ttl_seconds)
    for section_id in sorted(set(section_ids)):
        db.add(
            TimetableGenerationLock(
                school_id=school_id,
                section_id=section_id,
                run_id=run_id,
                acquired_at=now,
                expires_at=expires_at,
            )
        )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise GenerationBusyError(section_ids) from exc


def release_generation_lock(db: Session, *, run_id: str) -> None:
    db.execute(delete(TimetableGenerationLock).where(TimetableGenerationLock.run_id == run_id))
    db.commit()


@contextmanager
def generation_lock(
    db: Session,
    *,
    school_id: str,
    section_ids: list[str],
    run_id: str,
    ttl_seconds: int,
) -> Iterator[None]:
    acquire_generation_lock(db, school_id=school_id, section_ids=section_ids, run_id=run_id, ttl_seconds=ttl_seconds)
    try:
        yield
    finally:
        # A failed run may leave the session mid-transaction.
        db.rollback()
        release_generation_lock(db, run_id=run_id)
