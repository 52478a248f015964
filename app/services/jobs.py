import uuid
from typing import Callable

from app.core.clock import WorkflowClock
from app.core.enums import JobStatus
from app.core.errors import ApprovalConflictError, StaleJobStateError
from app.core.logging import get_logger
from app.models.job import ApprovalDecision, Job, TranslationJobRequest
from app.services.approvals import ApprovalChannel
from app.services.job_store import JobStore

logger = get_logger(__name__)


def new_job_id() -> str:
    return uuid.uuid4().hex[:12]


class JobService:
    """Operations offered to the HTTP layer: submit, query and decide."""

    def __init__(
        self,
        store: JobStore,
        approvals: ApprovalChannel,
        dispatch: Callable[[str], None],
        *,
        clock: WorkflowClock | None = None,
    ):
        self.store = store
        self.approvals = approvals
        self.dispatch = dispatch
        self.clock = clock or WorkflowClock()

    def submit_job(self, request: TranslationJobRequest, *, actor_id: str = "api") -> Job:
        job_id = new_job_id()
        now = self.clock.now()
        job = Job(
            job_id=job_id,
            translation_id=f"vt-{job_id}",
            iteration_number=1,
            iteration_id="iteration-1",
            request=request,
            status=JobStatus.SUBMITTED,
            status_message="Job submitted",
            created_at=now,
            last_updated_at=now,
            status_entered_at=now,
        )
        job = self.store.create(job, actor_id=actor_id)
        logger.info(
            "job submitted",
            extra={
                "extra": {
                    "job_id": job_id,
                    "source_locale": request.source_locale,
                    "target_locale": request.target_locale,
                }
            },
        )
        self.dispatch(job_id)
        return job

    def get_job_state(self, job_id: str) -> Job | None:
        return self.store.get(job_id)

    def list_jobs(self, status: JobStatus | None = None, limit: int = 100) -> list[Job]:
        return self.store.list_jobs(status=status, limit=limit)

    async def raise_approval_decision(
        self,
        job_id: str,
        *,
        approved: bool,
        reviewer: str,
        reason: str | None = None,
        comments: str | None = None,
    ) -> Job:
        job = self.store.require(job_id)
        if job.status != JobStatus.PENDING_APPROVAL:
            raise ApprovalConflictError(
                f"Job {job_id} is {job.status.value}; decisions are accepted only while PendingApproval"
            )
        if job.approval_decision is not None:
            raise ApprovalConflictError(f"Job {job_id} already has an approval decision")

        decision = ApprovalDecision(
            approved=approved,
            reviewer=reviewer,
            reason=reason,
            comments=comments,
            decided_at=self.clock.now(),
        )
        job.approval_decision = decision
        try:
            job = self.store.save(job, actor_type="reviewer", actor_id=reviewer)
        except StaleJobStateError as exc:
            raise ApprovalConflictError(f"Job {job_id} changed while recording the decision") from exc

        await self.approvals.publish(job_id, decision)
        logger.info(
            "approval decision raised",
            extra={"extra": {"job_id": job_id, "approved": approved, "reviewer": reviewer}},
        )
        return job
