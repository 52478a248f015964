from celery import Celery

from app.core.config import get_settings
from app.core.logging import setup_logging
from app.workers.schedules import CELERY_BEAT_SCHEDULE

settings = get_settings()
setup_logging()

# Longest a single workflow execution can stay active: both poll ceilings plus the
# approval window, with slack for retries and the review.
WORKFLOW_MAX_SECONDS = int(
    settings.translation_poll_timeout_seconds
    + settings.iteration_poll_timeout_seconds
    + settings.approval_timeout_seconds
    + 2 * 60 * 60
)

celery = Celery(
    "video_translation",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workers.tasks"],
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # A worker that dies mid-job leaves the message unacknowledged; it is redelivered and
    # the workflow resumes from the last checkpoint.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    broker_transport_options={"visibility_timeout": WORKFLOW_MAX_SECONDS},
    beat_schedule=CELERY_BEAT_SCHEDULE,
)
