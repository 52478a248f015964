from sqlalchemy.orm import Session, sessionmaker

from app.core.enums import JobStatus
from app.core.errors import JobNotFoundError, StaleJobStateError
from app.core.logging import get_logger
from app.db import crud
from app.models.job import Job
from app.services.audit import audit_event

logger = get_logger(__name__)


def _to_payload(job: Job) -> dict:
    return job.model_dump(mode="json", exclude={"version"})


def _from_record(record) -> Job:
    job = Job.model_validate(record.payload)
    job.version = record.version
    return job


class JobStore:
    """Durable job records: the single source of truth for the workflow and status queries."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def create(self, job: Job, *, actor_id: str = "api") -> Job:
        with self.session_factory() as db:
            record = crud.create_job_record(
                db,
                job_id=job.job_id,
                translation_id=job.translation_id,
                display_name=job.request.display_name or None,
                status=job.status,
                payload=_to_payload(job),
            )
            audit_event(
                db,
                actor_type="api",
                actor_id=actor_id,
                action="job_submitted",
                entity_id=job.job_id,
                payload={"status": job.status.value, "translation_id": job.translation_id},
            )
            db.commit()
            job.version = record.version
        return job

    def get(self, job_id: str) -> Job | None:
        with self.session_factory() as db:
            record = crud.get_job_record(db, job_id)
            if not record:
                return None
            return _from_record(record)

    def require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def save(self, job: Job, *, actor_type: str = "workflow", actor_id: str | None = None) -> Job:
        """Persist ``job`` if nobody else wrote it since it was read; audits status changes."""
        with self.session_factory() as db:
            record = crud.get_job_record(db, job.job_id)
            if not record:
                raise JobNotFoundError(f"Job not found: {job.job_id}")
            previous_status = record.status
            if not crud.update_job_record(
                db,
                job_id=job.job_id,
                expected_version=job.version,
                status=job.status,
                payload=_to_payload(job),
            ):
                db.rollback()
                raise StaleJobStateError(
                    f"Job {job.job_id} was modified concurrently (expected version {job.version})"
                )
            if previous_status != job.status:
                audit_event(
                    db,
                    actor_type=actor_type,
                    actor_id=actor_id,
                    action="status_changed",
                    entity_id=job.job_id,
                    payload={
                        "from": previous_status.value,
                        "to": job.status.value,
                        "message": job.status_message,
                        "error": job.error,
                    },
                )
            db.commit()
            job.version += 1
        return job

    def record_event(self, job_id: str, action: str, payload: dict, *, actor_id: str | None = None) -> None:
        with self.session_factory() as db:
            audit_event(
                db,
                actor_type="workflow",
                actor_id=actor_id,
                action=action,
                entity_id=job_id,
                payload=payload,
            )
            db.commit()

    def list_jobs(self, status: JobStatus | None = None, limit: int = 100) -> list[Job]:
        with self.session_factory() as db:
            return [_from_record(record) for record in crud.list_job_records(db, status=status, limit=limit)]

    def list_active(self) -> list[str]:
        with self.session_factory() as db:
            return crud.list_active_job_ids(db)

    def status_history(self, job_id: str) -> list[str]:
        with self.session_factory() as db:
            events = crud.list_audit_events(db, entity_id=job_id, action="status_changed")
            return [event.payload["to"] for event in events]
