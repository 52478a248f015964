from functools import lru_cache
from typing import Callable

from app.agents.runtime import WorkflowRuntime, build_runtime
from app.core.config import get_settings
from app.services.jobs import JobService
from app.workers.dispatch import build_dispatcher


@lru_cache(maxsize=1)
def get_runtime() -> WorkflowRuntime:
    return build_runtime(get_settings(), actor_id="api-workflow")


@lru_cache(maxsize=1)
def get_dispatcher() -> Callable[[str], None]:
    return build_dispatcher(get_settings(), get_runtime())


@lru_cache(maxsize=1)
def get_job_service() -> JobService:
    runtime = get_runtime()
    # Shares the runtime's approval channel so in-process decisions reach waiting workflows.
    return JobService(runtime.store, runtime.approvals, get_dispatcher(), clock=runtime.clock)
