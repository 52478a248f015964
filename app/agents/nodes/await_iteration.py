from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.errors import ActivityRejectedError, PollingTimeoutError, RetryExhaustedError
from app.models.job import TranslationResult


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def await_iteration_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        settings = runtime.settings

        try:
            job, result = await runtime.poll_until_terminal(
                job,
                poll=runtime.activities.get_iteration_status,
                label="iteration",
                message_prefix="Processing",
                interval_seconds=settings.iteration_poll_interval_seconds,
                ceiling_seconds=settings.iteration_poll_timeout_seconds,
            )
        except PollingTimeoutError as exc:
            return runtime.fail_state(state, job, str(exc), "Iteration timeout")
        except (ActivityRejectedError, RetryExhaustedError) as exc:
            return runtime.fail_state(
                state, job, f"Failed to get iteration status: {exc}", "Failed to get iteration status"
            )

        if not result.success:
            error = f"Iteration failed with status: {result.status}"
            if result.error:
                error = f"{error} ({result.error})"
            return runtime.fail_state(state, job, error, "Translation failed")

        job.result = result.outputs or TranslationResult()
        job = runtime.save(job)
        state["status"] = job.status.value
        return state

    return await_iteration_node
