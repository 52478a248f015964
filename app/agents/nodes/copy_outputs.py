from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import JobStatus
from app.core.logging import get_logger

logger = get_logger(__name__)


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def copy_outputs_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        job = runtime.checkpoint(job, JobStatus.COPYING_OUTPUTS, "Copying outputs to storage...")

        if job.result is not None and job.result.stored_outputs is None:
            outputs = job.result
            try:
                stored = await runtime.call(
                    "copy_outputs", lambda: runtime.activities.copy_outputs(job, outputs)
                )
                job.result.stored_outputs = stored
            except Exception as exc:
                # External URLs stay usable; the job continues without owned copies.
                logger.warning(
                    "output copy failed, keeping external urls",
                    extra={"extra": {"job_id": job.job_id, "error": str(exc)}},
                )
                job.mark_degraded("stored_outputs", threshold=runtime.settings.max_degraded_fields)
            job = runtime.save(job)

        state["status"] = job.status.value
        return state

    return copy_outputs_node
