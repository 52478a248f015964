import asyncio
import json
import threading
from abc import ABC, abstractmethod

from redis import asyncio as redis_asyncio

from app.core.clock import WorkflowClock
from app.core.config import Settings
from app.core.logging import get_logger
from app.models.job import ApprovalDecision

logger = get_logger(__name__)

SYSTEM_REVIEWER = "system"
TIMEOUT_REASON = "timeout"


class ApprovalChannel(ABC):
    """Delivers externally raised approval decisions to the waiting workflow."""

    @abstractmethod
    async def publish(self, job_id: str, decision: ApprovalDecision) -> None:
        raise NotImplementedError

    @abstractmethod
    async def wait_for(self, job_id: str) -> ApprovalDecision:
        raise NotImplementedError


class InMemoryApprovalChannel(ApprovalChannel):
    """Single-process channel. Decisions published before anyone waits are buffered."""

    def __init__(self):
        self._lock = threading.Lock()
        self._buffered: dict[str, ApprovalDecision] = {}
        self._waiters: dict[str, asyncio.Future] = {}

    async def publish(self, job_id: str, decision: ApprovalDecision) -> None:
        with self._lock:
            waiter = self._waiters.pop(job_id, None)
            if waiter is None or waiter.done():
                self._buffered[job_id] = decision
                return
        # The waiter may live on another event loop (API thread vs workflow loop).
        waiter.get_loop().call_soon_threadsafe(_resolve, waiter, decision)

    async def wait_for(self, job_id: str) -> ApprovalDecision:
        loop = asyncio.get_running_loop()
        with self._lock:
            buffered = self._buffered.pop(job_id, None)
            if buffered is not None:
                return buffered
            waiter = loop.create_future()
            self._waiters[job_id] = waiter
        try:
            return await waiter
        finally:
            with self._lock:
                if self._waiters.get(job_id) is waiter:
                    del self._waiters[job_id]


def _resolve(waiter: asyncio.Future, decision: ApprovalDecision) -> None:
    if not waiter.done():
        waiter.set_result(decision)


class RedisApprovalChannel(ApprovalChannel):
    """Cross-process channel: one Redis list per job, consumed with a blocking pop."""

    def __init__(self, redis_url: str, *, key_prefix: str = "approval", poll_seconds: int = 30):
        self._client = redis_asyncio.from_url(redis_url, decode_responses=True)
        self.key_prefix = key_prefix
        self.poll_seconds = poll_seconds

    def _key(self, job_id: str) -> str:
        return f"{self.key_prefix}:{job_id}"

    async def publish(self, job_id: str, decision: ApprovalDecision) -> None:
        await self._client.rpush(self._key(job_id), decision.model_dump_json())

    async def wait_for(self, job_id: str) -> ApprovalDecision:
        key = self._key(job_id)
        while True:
            item = await self._client.blpop([key], timeout=self.poll_seconds)
            if item is None:
                continue
            _, raw = item
            return ApprovalDecision.model_validate(json.loads(raw))


def build_approval_channel(settings: Settings) -> ApprovalChannel:
    # Celery workers never share memory with the API process that publishes decisions.
    if settings.approval_channel.lower() == "redis" or settings.workflow_dispatch.lower() == "celery":
        return RedisApprovalChannel(settings.redis_url)
    return InMemoryApprovalChannel()


def timeout_decision(clock: WorkflowClock) -> ApprovalDecision:
    return ApprovalDecision(
        approved=False,
        reviewer=SYSTEM_REVIEWER,
        reason=TIMEOUT_REASON,
        decided_at=clock.now(),
    )


async def race_approval(
    channel: ApprovalChannel,
    clock: WorkflowClock,
    *,
    job_id: str,
    timeout_seconds: float,
) -> ApprovalDecision:
    """Wait for a decision or the timer, whichever comes first; the loser is cancelled."""
    decision_task = asyncio.create_task(channel.wait_for(job_id), name=f"approval-decision:{job_id}")
    timer_task = asyncio.create_task(
        clock.sleep(timeout_seconds, name=f"approval-timeout:{job_id}"),
        name=f"approval-timeout:{job_id}",
    )
    try:
        done, _ = await asyncio.wait({decision_task, timer_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (decision_task, timer_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(decision_task, timer_task, return_exceptions=True)

    if decision_task in done:
        # A decision that lands in the same tick as the timer still wins.
        return decision_task.result()
    logger.warning(
        "approval timed out",
        extra={"extra": {"job_id": job_id, "timeout_seconds": timeout_seconds}},
    )
    return timeout_decision(clock)
