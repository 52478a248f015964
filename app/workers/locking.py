import asyncio
from typing import Any, Awaitable, Callable

from redis.exceptions import LockError

from app.core.logging import get_logger

logger = get_logger(__name__)

# The lock lives only as long as its holder keeps refreshing it, so a crashed worker
# frees the job within one TTL.
WORKFLOW_LOCK_TTL_SECONDS = 300
WORKFLOW_LOCK_REFRESH_SECONDS = 60


class LockHeld(Exception):
    """Another worker owns the workflow lock."""


async def _keep_alive(lock, key: str, interval: float, sleep: Callable[[float], Awaitable[None]]) -> None:
    while True:
        await sleep(interval)
        try:
            await lock.reacquire()
        except LockError:
            logger.warning("workflow lock lost", extra={"extra": {"lock": key}})
            return


async def run_locked(
    lock,
    key: str,
    work: Callable[[], Awaitable[Any]],
    *,
    refresh_seconds: float = WORKFLOW_LOCK_REFRESH_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """Run ``work`` while holding ``lock`` (a redis asyncio lock), refreshing its TTL."""
    if not await lock.acquire(blocking=False):
        raise LockHeld(key)

    heartbeat = asyncio.create_task(_keep_alive(lock, key, refresh_seconds, sleep))
    try:
        return await work()
    finally:
        heartbeat.cancel()
        await asyncio.gather(heartbeat, return_exceptions=True)
        try:
            await lock.release()
        except LockError:
            logger.warning("workflow lock expired before release", extra={"extra": {"lock": key}})
