from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import JobStatus
from app.core.errors import ActivityRejectedError, RetryExhaustedError


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def create_translation_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        job = runtime.checkpoint(job, JobStatus.CREATING_TRANSLATION, "Creating translation...")

        try:
            await runtime.call(
                "create_translation", lambda: runtime.activities.create_translation(job)
            )
        except (ActivityRejectedError, RetryExhaustedError) as exc:
            return runtime.fail_state(
                state, job, f"Failed to create translation: {exc}", "Failed to create translation"
            )

        job = runtime.checkpoint(
            job, JobStatus.TRANSLATION_CREATED, "Translation created, waiting for completion..."
        )
        state["status"] = job.status.value
        return state

    return create_translation_node
