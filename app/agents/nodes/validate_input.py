from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import JobStatus
from app.core.errors import ActivityRejectedError, InputValidationError, RetryExhaustedError


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def validate_input_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        job = runtime.checkpoint(job, JobStatus.VALIDATING, "Validating input...")

        try:
            video_url = await runtime.call(
                "validate_input", lambda: runtime.activities.validate_input(job)
            )
        except (InputValidationError, ActivityRejectedError, RetryExhaustedError) as exc:
            return runtime.fail_state(state, job, str(exc), "Validation failed")

        job.video_file_url = video_url
        job = runtime.checkpoint(job, JobStatus.VALIDATED, "Input validated")
        state["status"] = job.status.value
        return state

    return validate_input_node
