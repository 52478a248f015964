import asyncio

import pytest
from redis.exceptions import LockError, LockNotOwnedError

from app.workers.locking import LockHeld, run_locked


class FakeLock:
    def __init__(self, *, available: bool = True, lost_after: int | None = None):
        self.available = available
        self.lost_after = lost_after
        self.refreshes = 0
        self.released = False

    async def acquire(self, blocking: bool = True) -> bool:
        assert blocking is False
        return self.available

    async def reacquire(self) -> bool:
        if self.lost_after is not None and self.refreshes >= self.lost_after:
            raise LockNotOwnedError("lock expired")
        self.refreshes += 1
        return True

    async def release(self) -> None:
        if self.released:
            raise LockError("not locked")
        self.released = True


async def _instant_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


def test_lock_is_refreshed_while_the_workflow_runs_and_released_after():
    lock = FakeLock()

    async def work():
        for _ in range(5):
            await asyncio.sleep(0)
        return "done"

    result = asyncio.run(run_locked(lock, "workflow-lock:job", work, sleep=_instant_sleep))

    assert result == "done"
    assert lock.refreshes >= 2
    assert lock.released


def test_busy_lock_skips_the_work():
    lock = FakeLock(available=False)
    ran = []

    async def work():
        ran.append(True)

    with pytest.raises(LockHeld):
        asyncio.run(run_locked(lock, "workflow-lock:job", work, sleep=_instant_sleep))
    assert ran == []
    assert not lock.released


def test_lost_lock_stops_refreshing_and_failures_still_release():
    lock = FakeLock(lost_after=1)

    async def work():
        for _ in range(5):
            await asyncio.sleep(0)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(run_locked(lock, "workflow-lock:job", work, sleep=_instant_sleep))
    assert lock.refreshes == 1
    assert lock.released
