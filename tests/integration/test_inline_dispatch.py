import asyncio

from app.core.enums import JobStatus
from app.services.approvals import InMemoryApprovalChannel, RedisApprovalChannel, build_approval_channel
from app.workers.dispatch import InlineWorkflowDispatcher, build_dispatcher, celery_dispatch


def test_resume_all_runs_every_active_job_once(make_runtime, submit, advance_to, store, fake_activities, fake_clock):
    runtime = make_runtime(activities=fake_activities)
    waiting = submit(runtime)
    processing = submit(runtime)
    done = submit(runtime)
    advance_to(processing.job_id, JobStatus.PROCESSING)
    finished = advance_to(done.job_id, JobStatus.PENDING_APPROVAL)
    finished.advance(JobStatus.APPROVED, "Approved by alice", now=fake_clock.now())
    store.save(finished)

    dispatcher = InlineWorkflowDispatcher(runtime)

    async def scenario():
        resumed = dispatcher.resume_all()
        dispatcher(waiting.job_id)
        running = list(dispatcher._tasks.values())
        await asyncio.gather(*running)
        return resumed, len(running)

    resumed, started = asyncio.run(scenario())

    assert sorted(resumed) == sorted([waiting.job_id, processing.job_id])
    assert started == 2
    assert fake_activities.calls.count("validate_input") == 1
    assert store.require(waiting.job_id).status == JobStatus.REJECTED
    assert store.require(processing.job_id).status == JobStatus.REJECTED
    assert store.require(done.job_id).status == JobStatus.APPROVED


def test_build_dispatcher_selects_mode(make_runtime, settings_factory):
    runtime = make_runtime()
    assert isinstance(build_dispatcher(settings_factory(), runtime), InlineWorkflowDispatcher)
    assert build_dispatcher(settings_factory(workflow_dispatch="celery"), runtime) is celery_dispatch


def test_celery_dispatch_uses_a_cross_process_approval_channel(settings_factory):
    assert isinstance(build_approval_channel(settings_factory()), InMemoryApprovalChannel)
    assert isinstance(build_approval_channel(settings_factory(approval_channel="redis")), RedisApprovalChannel)
    celery_settings = settings_factory(workflow_dispatch="celery", approval_channel="memory")
    assert isinstance(build_approval_channel(celery_settings), RedisApprovalChannel)
