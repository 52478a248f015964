from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def tracker_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        runtime.store.record_event(
            job.job_id,
            "workflow_finished",
            {
                "status": job.status.value,
                "run_id": state.get("run_id"),
                "error": job.error,
                "degraded_fields": job.degraded_fields,
            },
            actor_id=runtime.actor_id,
        )
        state["status"] = job.status.value
        return state

    return tracker_node
