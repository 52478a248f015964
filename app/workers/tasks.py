import asyncio

from redis import asyncio as redis_asyncio

from app.agents.graph import run_workflow
from app.agents.runtime import build_runtime
from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.db.session import SessionLocal
from app.services.job_store import JobStore
from app.workers.celery_app import celery
from app.workers.locking import WORKFLOW_LOCK_TTL_SECONDS, LockHeld, run_locked

logger = get_logger(__name__)


async def _run_exclusive(job_id: str, settings: Settings, actor_id: str) -> dict:
    client = redis_asyncio.from_url(settings.redis_url)
    key = f"workflow-lock:{job_id}"
    lock = client.lock(key, timeout=WORKFLOW_LOCK_TTL_SECONDS)
    runtime = build_runtime(settings, session_factory=SessionLocal, actor_id=actor_id)
    try:
        job = await run_locked(lock, key, lambda: run_workflow(job_id, runtime))
    except LockHeld:
        logger.info("workflow already running elsewhere", extra={"extra": {"job_id": job_id}})
        return {"job_id": job_id, "skipped": True}
    finally:
        await client.aclose()
    return {"job_id": job_id, "status": job.status.value, "error": job.error}


def run_translation_workflow_sync(job_id: str, *, actor_id: str = "worker") -> dict:
    return asyncio.run(_run_exclusive(job_id, get_settings(), actor_id))


@celery.task(name="app.workers.tasks.run_translation_workflow")
def run_translation_workflow(job_id: str, actor_id: str = "worker"):
    return run_translation_workflow_sync(job_id, actor_id=actor_id)


@celery.task(name="app.workers.tasks.resume_active_workflows")
def resume_active_workflows():
    job_ids = JobStore(SessionLocal).list_active()
    for job_id in job_ids:
        run_translation_workflow.delay(job_id)
    return {"ok": True, "enqueued": len(job_ids)}
