from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import JobStatus
from app.core.errors import ActivityRejectedError, RetryExhaustedError


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def create_iteration_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        job = runtime.checkpoint(job, JobStatus.CREATING_ITERATION, "Creating iteration...")

        try:
            await runtime.call("create_iteration", lambda: runtime.activities.create_iteration(job))
        except (ActivityRejectedError, RetryExhaustedError) as exc:
            return runtime.fail_state(
                state, job, f"Failed to create iteration: {exc}", "Failed to create iteration"
            )

        job = runtime.checkpoint(job, JobStatus.PROCESSING, "Translation in progress...")
        state["status"] = job.status.value
        return state

    return create_iteration_node
