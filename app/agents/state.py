from typing import TypedDict


class WorkflowState(TypedDict, total=False):
    run_id: str
    job_id: str
    actor_id: str
    status: str
    errors: list[str]
