import asyncio

from app.models.job import ApprovalDecision
from app.services.approvals import InMemoryApprovalChannel, race_approval

DAY = 24 * 60 * 60


def _decision(fake_clock, approved=True) -> ApprovalDecision:
    return ApprovalDecision(approved=approved, reviewer="alice", reason="Looks good", decided_at=fake_clock.now())


def test_timer_wins_without_decision(fake_clock):
    channel = InMemoryApprovalChannel()

    decision = asyncio.run(race_approval(channel, fake_clock, job_id="job1", timeout_seconds=3 * DAY))

    assert decision.approved is False
    assert decision.reviewer == "system"
    assert decision.reason == "timeout"
    assert fake_clock.sleeps == [("approval-timeout:job1", 3 * DAY)]


def test_decision_wins_and_cancels_timer(clock_factory):
    clock = clock_factory(block_after=60)
    channel = InMemoryApprovalChannel()

    async def scenario():
        race = asyncio.create_task(race_approval(channel, clock, job_id="job2", timeout_seconds=3 * DAY))
        await asyncio.sleep(0)
        await channel.publish("job2", _decision(clock))
        return await race

    decision = asyncio.run(scenario())

    assert decision.approved is True
    assert decision.reviewer == "alice"
    assert clock.cancelled == ["approval-timeout:job2"]


def test_decision_published_before_waiting_is_buffered(fake_clock):
    channel = InMemoryApprovalChannel()

    async def scenario():
        await channel.publish("job3", _decision(fake_clock, approved=False))
        return await channel.wait_for("job3")

    decision = asyncio.run(scenario())

    assert decision.approved is False
    assert decision.reviewer == "alice"


def test_decisions_are_routed_per_job(clock_factory):
    clock = clock_factory(block_after=60)
    channel = InMemoryApprovalChannel()

    async def scenario():
        first = asyncio.create_task(race_approval(channel, clock, job_id="a", timeout_seconds=DAY))
        second = asyncio.create_task(race_approval(channel, clock, job_id="b", timeout_seconds=DAY))
        await asyncio.sleep(0)
        await channel.publish("b", _decision(clock, approved=False))
        await channel.publish("a", _decision(clock, approved=True))
        return await first, await second

    first, second = asyncio.run(scenario())

    assert first.approved is True
    assert second.approved is False
