from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.enums import TERMINAL_STATUSES, JobStatus
from app.db import models


def get_job_record(db: Session, job_id: str) -> Optional[models.TranslationJobRecord]:
    return db.get(models.TranslationJobRecord, job_id)


def create_job_record(
    db: Session,
    *,
    job_id: str,
    translation_id: str,
    display_name: str | None,
    status: JobStatus,
    payload: dict,
) -> models.TranslationJobRecord:
    record = models.TranslationJobRecord(
        id=job_id,
        translation_id=translation_id,
        display_name=display_name,
        status=status,
        payload=payload,
        version=1,
    )
    db.add(record)
    db.flush()
    return record


def update_job_record(
    db: Session,
    *,
    job_id: str,
    expected_version: int,
    status: JobStatus,
    payload: dict,
) -> bool:
    """Compare-and-set on ``version``; returns False when another writer got there first."""
    result = db.execute(
        update(models.TranslationJobRecord)
        .where(models.TranslationJobRecord.id == job_id)
        .where(models.TranslationJobRecord.version == expected_version)
        .values(status=status, payload=payload, version=expected_version + 1)
    )
    return result.rowcount == 1


def list_job_records(
    db: Session, status: JobStatus | None = None, limit: int = 100
) -> list[models.TranslationJobRecord]:
    stmt = select(models.TranslationJobRecord)
    if status:
        stmt = stmt.where(models.TranslationJobRecord.status == status)
    stmt = stmt.order_by(models.TranslationJobRecord.created_at.desc()).limit(limit)
    return list(db.scalars(stmt))


def list_active_job_ids(db: Session) -> list[str]:
    stmt = (
        select(models.TranslationJobRecord.id)
        .where(models.TranslationJobRecord.status.not_in(list(TERMINAL_STATUSES)))
        .order_by(models.TranslationJobRecord.created_at)
    )
    return list(db.scalars(stmt))


def list_audit_events(db: Session, *, entity_id: str, action: str | None = None) -> list[models.AuditLog]:
    stmt = select(models.AuditLog).where(models.AuditLog.entity_id == entity_id)
    if action:
        stmt = stmt.where(models.AuditLog.action == action)
    stmt = stmt.order_by(models.AuditLog.id)
    return list(db.scalars(stmt))
