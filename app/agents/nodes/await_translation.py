from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.errors import ActivityRejectedError, PollingTimeoutError, RetryExhaustedError


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def await_translation_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        settings = runtime.settings

        try:
            job, result = await runtime.poll_until_terminal(
                job,
                poll=runtime.activities.get_translation_status,
                label="translation",
                message_prefix="Translation status",
                interval_seconds=settings.translation_poll_interval_seconds,
                ceiling_seconds=settings.translation_poll_timeout_seconds,
            )
        except PollingTimeoutError as exc:
            return runtime.fail_state(state, job, str(exc), "Translation operation timeout")
        except (ActivityRejectedError, RetryExhaustedError) as exc:
            return runtime.fail_state(
                state, job, f"Failed to get translation status: {exc}", "Failed to get translation status"
            )

        if not result.success:
            error = f"Translation failed with status: {result.status}"
            if result.error:
                error = f"{error} ({result.error})"
            return runtime.fail_state(state, job, error, "Translation failed")

        state["status"] = job.status.value
        return state

    return await_translation_node
