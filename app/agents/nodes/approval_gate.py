from typing import Awaitable, Callable

from app.agents.runtime import WorkflowRuntime
from app.agents.state import WorkflowState
from app.core.enums import JobStatus, Recommendation
from app.core.errors import StaleJobStateError
from app.core.logging import get_logger
from app.models.job import ApprovalDecision, Job
from app.services.approvals import race_approval

logger = get_logger(__name__)

AUTOMATED_REVIEWER = "quality-review"
MAX_SAVE_ATTEMPTS = 3


def _automated_decision(runtime: WorkflowRuntime, job: Job) -> ApprovalDecision | None:
    if not runtime.settings.auto_approve_recommended or job.review is None:
        return None
    if job.reliability_warning or job.review.recommendation != Recommendation.APPROVE:
        return None
    return ApprovalDecision(
        approved=True,
        reviewer=AUTOMATED_REVIEWER,
        reason=f"Automated review score {job.review.overall_score:.1f}",
        decided_at=runtime.clock.now(),
    )


def _terminal_message(decision: ApprovalDecision) -> tuple[JobStatus, str]:
    if decision.approved:
        return JobStatus.APPROVED, f"Approved by {decision.reviewer}"
    if decision.reason:
        return JobStatus.REJECTED, f"Rejected by {decision.reviewer}: {decision.reason}"
    return JobStatus.REJECTED, f"Rejected by {decision.reviewer}"


def make_node(runtime: WorkflowRuntime) -> Callable[[WorkflowState], Awaitable[WorkflowState]]:
    async def approval_gate_node(state: WorkflowState) -> WorkflowState:
        job = runtime.load(state["job_id"])
        if job.status != JobStatus.PENDING_APPROVAL:
            job.approval_requested_at = runtime.clock.now()
            # Observers read this record while the workflow is suspended below.
            job = runtime.checkpoint(job, JobStatus.PENDING_APPROVAL, "Awaiting approval decision")

        decision = job.approval_decision or _automated_decision(runtime, job)
        if decision is None:
            requested_at = job.approval_requested_at or runtime.clock.now()
            waited = (runtime.clock.now() - requested_at).total_seconds()
            remaining = max(runtime.settings.approval_timeout_seconds - waited, 0.0)
            logger.info(
                "waiting for approval",
                extra={"extra": {"job_id": job.job_id, "timeout_seconds": remaining}},
            )
            decision = await race_approval(
                runtime.approvals, runtime.clock, job_id=job.job_id, timeout_seconds=remaining
            )

        for attempt in range(1, MAX_SAVE_ATTEMPTS + 1):
            # A decision persisted by the API while we waited takes precedence.
            job = runtime.load(job.job_id)
            if job.is_terminal:
                break
            if job.approval_decision is None:
                job.approval_decision = decision
            status, message = _terminal_message(job.approval_decision)
            job.advance(status, message, now=runtime.clock.now())
            try:
                job = runtime.save(job)
                break
            except StaleJobStateError:
                if attempt == MAX_SAVE_ATTEMPTS:
                    raise

        logger.info(
            "approval resolved",
            extra={
                "extra": {
                    "job_id": job.job_id,
                    "status": job.status.value,
                    "reviewer": job.approval_decision.reviewer if job.approval_decision else None,
                }
            },
        )
        state["status"] = job.status.value
        return state

    return approval_gate_node
