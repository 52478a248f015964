from sqlalchemy.orm import Session

from app.db import models

JOB_ENTITY = "translation_job"


def audit_event(
    db: Session,
    *,
    actor_type: str,
    actor_id: str | None,
    action: str,
    entity_id: str,
    entity_type: str = JOB_ENTITY,
    payload: dict | None = None,
) -> models.AuditLog:
    event = models.AuditLog(
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload or {},
    )
    db.add(event)
    db.flush()
    return event
