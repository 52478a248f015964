import uuid

from langgraph.graph import END, START, StateGraph

from app.agents.nodes import (
    approval_gate,
    await_iteration,
    await_translation,
    copy_outputs,
    create_iteration,
    create_translation,
    run_validation,
    tracker,
    validate_input,
)
from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import TERMINAL_STATUSES, JobStatus
from app.core.logging import get_logger
from app.models.job import Job

logger = get_logger(__name__)

# First undone step for each persisted status.
RESUME_NODES: dict[JobStatus, str] = {
    JobStatus.SUBMITTED: "validate_input",
    JobStatus.VALIDATING: "validate_input",
    JobStatus.VALIDATED: "create_translation",
    JobStatus.CREATING_TRANSLATION: "create_translation",
    JobStatus.TRANSLATION_CREATED: "await_translation",
    JobStatus.CREATING_ITERATION: "create_iteration",
    JobStatus.PROCESSING: "await_iteration",
    JobStatus.COPYING_OUTPUTS: "copy_outputs",
    JobStatus.RUNNING_VALIDATION: "run_validation",
    JobStatus.PENDING_APPROVAL: "approval_gate",
}


def _route_entry(state: WorkflowState) -> str:
    status = JobStatus(state.get("status") or JobStatus.SUBMITTED.value)
    if status in TERMINAL_STATUSES:
        return END
    return RESUME_NODES[status]


def _continue_or_track(next_node: str):
    def route(state: WorkflowState) -> str:
        if JobStatus(state["status"]) in TERMINAL_STATUSES:
            return "tracker"
        return next_node

    route.__name__ = f"_route_to_{next_node}"
    return route


def build_workflow(runtime: WorkflowRuntime):
    graph = StateGraph(WorkflowState)

    graph.add_node("validate_input", validate_input.make_node(runtime))
    graph.add_node("create_translation", create_translation.make_node(runtime))
    graph.add_node("await_translation", await_translation.make_node(runtime))
    graph.add_node("create_iteration", create_iteration.make_node(runtime))
    graph.add_node("await_iteration", await_iteration.make_node(runtime))
    graph.add_node("copy_outputs", copy_outputs.make_node(runtime))
    graph.add_node("run_validation", run_validation.make_node(runtime))
    graph.add_node("approval_gate", approval_gate.make_node(runtime))
    graph.add_node("tracker", tracker.make_node(runtime))

    graph.add_conditional_edges(
        START,
        _route_entry,
        {**{node: node for node in set(RESUME_NODES.values())}, END: END},
    )

    steps = [
        "validate_input",
        "create_translation",
        "await_translation",
        "create_iteration",
        "await_iteration",
        "copy_outputs",
        "run_validation",
        "approval_gate",
    ]
    for current, following in zip(steps, steps[1:]):
        graph.add_conditional_edges(
            current,
            _continue_or_track(following),
            {following: following, "tracker": "tracker"},
        )
    graph.add_edge("approval_gate", "tracker")
    graph.add_edge("tracker", END)

    return graph.compile()


async def run_workflow(job_id: str, runtime: WorkflowRuntime) -> Job:
    """Run (or resume) one job from its persisted status until it is terminal."""
    job = runtime.store.require(job_id)
    if job.is_terminal:
        return job

    app = build_workflow(runtime)
    initial_state: WorkflowState = {
        "run_id": str(uuid.uuid4()),
        "job_id": job_id,
        "actor_id": runtime.actor_id,
        "status": job.status.value,
        "errors": [],
    }
    logger.info(
        "workflow started",
        extra={"extra": {"job_id": job_id, "resume_status": job.status.value, "run_id": initial_state["run_id"]}},
    )
    try:
        await app.ainvoke(initial_state)
    except Exception as exc:
        logger.exception("workflow crashed", extra={"extra": {"job_id": job_id}})
        job = runtime.store.require(job_id)
        if not job.is_terminal:
            runtime.fail(job, str(exc) or exc.__class__.__name__, "Unhandled error")
    return runtime.store.require(job_id)
