import asyncio
from typing import Callable

from app.agents.graph import run_workflow
from app.agents.runtime import WorkflowRuntime
from app.core.config import Settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class InlineWorkflowDispatcher:
    """Runs workflows as tasks on the caller's event loop (single-process deployments)."""

    def __init__(self, runtime: WorkflowRuntime):
        self.runtime = runtime
        self._tasks: dict[str, asyncio.Task] = {}

    def __call__(self, job_id: str) -> None:
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            return
        task = asyncio.get_running_loop().create_task(
            run_workflow(job_id, self.runtime), name=f"workflow:{job_id}"
        )
        self._tasks[job_id] = task
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task) -> None:
        job_id = task.get_name().removeprefix("workflow:")
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    def resume_all(self) -> list[str]:
        job_ids = self.runtime.store.list_active()
        for job_id in job_ids:
            self(job_id)
        if job_ids:
            logger.info("resumed active workflows", extra={"extra": {"count": len(job_ids)}})
        return job_ids

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def celery_dispatch(job_id: str) -> None:
    from app.workers.tasks import run_translation_workflow

    run_translation_workflow.delay(job_id)


def build_dispatcher(settings: Settings, runtime: WorkflowRuntime) -> Callable[[str], None]:
    if settings.workflow_dispatch.lower() == "celery":
        return celery_dispatch
    return InlineWorkflowDispatcher(runtime)
