import asyncio
from datetime import datetime, timezone

from app.core.logging import get_logger

logger = get_logger(__name__)


class WorkflowClock:
    """Wall clock and cancellable named timers used by the workflow.

    Every wait inside the orchestrator goes through ``sleep`` so tests can swap in a
    clock that advances virtual time instead of blocking.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float, *, name: str) -> None:
        logger.debug("timer started", extra={"extra": {"timer": name, "seconds": seconds}})
        try:
            await asyncio.sleep(max(seconds, 0))
        except asyncio.CancelledError:
            logger.debug("timer cancelled", extra={"extra": {"timer": name}})
            raise