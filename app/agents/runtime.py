from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from app.agents.review import MultiAgentCoordinator
from app.agents.state import WorkflowState
from app.core.clock import WorkflowClock
from app.core.config import Settings
from app.core.enums import JobStatus
from app.core.errors import PollingTimeoutError
from app.core.logging import get_logger
from app.core.retry import RetryPolicy
from app.models.job import Job
from app.services.activities import ActivityClient, PollResult, build_activity_client
from app.services.agent_backend import build_agent_backend
from app.services.approvals import ApprovalChannel, build_approval_channel
from app.services.job_store import JobStore

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class WorkflowRuntime:
    """Collaborators shared by the workflow nodes of one execution."""

    settings: Settings
    store: JobStore
    activities: ActivityClient
    coordinator: MultiAgentCoordinator
    approvals: ApprovalChannel
    clock: WorkflowClock
    retry: RetryPolicy
    actor_id: str = "workflow"

    def load(self, job_id: str) -> Job:
        return self.store.require(job_id)

    def save(self, job: Job) -> Job:
        return self.store.save(job, actor_type="workflow", actor_id=self.actor_id)

    def checkpoint(self, job: Job, status: JobStatus, message: str) -> Job:
        changed = job.advance(status, message, now=self.clock.now())
        job = self.save(job)
        if changed:
            logger.info(
                "job status changed",
                extra={"extra": {"job_id": job.job_id, "status": status.value, "status_message": message}},
            )
        return job

    def fail(self, job: Job, error: str, message: str) -> Job:
        job.fail(error, message, now=self.clock.now())
        job = self.save(job)
        logger.error(
            "job failed",
            extra={"extra": {"job_id": job.job_id, "status_message": message, "error": error}},
        )
        return job

    def fail_state(self, state: WorkflowState, job: Job, error: str, message: str) -> WorkflowState:
        job = self.fail(job, error, message)
        state.setdefault("errors", []).append(error)
        state["status"] = job.status.value
        return state

    async def call(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await self.retry.run(operation, name=name, sleep=self.clock.sleep)

    async def poll_until_terminal(
        self,
        job: Job,
        *,
        poll: Callable[[Job], Awaitable[PollResult]],
        label: str,
        message_prefix: str,
        interval_seconds: float,
        ceiling_seconds: float,
    ) -> tuple[Job, PollResult]:
        """Poll until the external status is terminal.

        The ceiling is measured from when the job entered its current status, so a resumed
        execution keeps the original deadline.
        """
        while True:
            result = await self.call(f"poll_{label}", lambda: poll(job))
            job = self.checkpoint(job, job.status, f"{message_prefix}: {result.status}")
            if result.terminal:
                return job, result
            elapsed = (self.clock.now() - job.status_entered_at).total_seconds()
            if elapsed >= ceiling_seconds:
                raise PollingTimeoutError(label.replace("_", " ").capitalize(), ceiling_seconds)
            await self.clock.sleep(interval_seconds, name=f"poll:{label}:{job.job_id}")


def build_runtime(
    settings: Settings,
    *,
    session_factory: sessionmaker[Session] | None = None,
    approvals: ApprovalChannel | None = None,
    clock: WorkflowClock | None = None,
    actor_id: str = "workflow",
) -> WorkflowRuntime:
    if session_factory is None:
        from app.db.session import SessionLocal

        session_factory = SessionLocal
    clock = clock or WorkflowClock()
    activities = build_activity_client(settings)
    coordinator = MultiAgentCoordinator(
        build_agent_backend(settings),
        activities.fetch_subtitle_text,
        settings=settings,
        clock=clock,
    )
    return WorkflowRuntime(
        settings=settings,
        store=JobStore(session_factory),
        activities=activities,
        coordinator=coordinator,
        approvals=approvals or build_approval_channel(settings),
        clock=clock,
        retry=RetryPolicy.from_settings(settings),
        actor_id=actor_id,
    )
