from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import JobStatus
from app.core.logging import get_logger
from app.models.job import Job

logger = get_logger(__name__)


def _has_subtitles(job: Job) -> bool:
    result = job.result
    return bool(
        result and result.preferred_source_subtitle_url() and result.preferred_target_subtitle_url()
    )


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def run_validation_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        job = runtime.checkpoint(job, JobStatus.RUNNING_VALIDATION, "Running quality review...")
        threshold = runtime.settings.max_degraded_fields

        if job.review is None and not _has_subtitles(job):
            logger.warning(
                "Missing source or target subtitle URLs, skipping quality review",
                extra={"extra": {"job_id": job.job_id}},
            )
            job.mark_degraded("review", threshold=threshold)
            job = runtime.save(job)
        elif job.review is None:
            try:
                review = await runtime.coordinator.review(job)
            except Exception as exc:
                logger.warning(
                    "quality review failed, continuing without it",
                    extra={"extra": {"job_id": job.job_id, "error": str(exc)}},
                    exc_info=True,
                )
                job.mark_degraded("review", threshold=threshold)
            else:
                job.review = review
                for field in review.degraded_fields():
                    job.mark_degraded(field, threshold=threshold)
            job = runtime.save(job)

        if job.reliability_warning:
            logger.warning(
                "job flagged as unreliable",
                extra={"extra": {"job_id": job.job_id, "degraded_fields": job.degraded_fields}},
            )
        state["status"] = job.status.value
        return state

    return run_validation_node
