import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest

from app.agents.review import MultiAgentCoordinator
from app.agents.runtime import WorkflowRuntime
from app.core.clock import WorkflowClock
from app.core.config import Settings
from app.core.enums import JobStatus
from app.core.retry import RetryPolicy
from app.db.session import build_engine, build_session_factory, init_db
from app.models.job import Job, StoredOutputs, TranslationJobRequest, TranslationResult
from app.services.activities import OUTPUT_FILE_NAMES, ActivityClient, PollResult, check_request
from app.services.agent_backend import AgentBackend, MockAgentBackend, ToolCall
from app.services.approvals import InMemoryApprovalChannel
from app.services.job_store import JobStore
from app.services.jobs import JobService

SOURCE_VTT = "WEBVTT\n\n00:00:00.000 --> 00:00:02.000\nHello and welcome.\n"
TARGET_VTT = "WEBVTT\n\n00:00:00.000 --> 00:00:02.000\nHola y bienvenidos.\n"


class FakeClock(WorkflowClock):
    """Virtual time: sleeps return at once unless longer than ``block_after``."""

    def __init__(self, block_after: float | None = None):
        self.current = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        self.block_after = block_after
        self.sleeps: list[tuple[str, float]] = []
        self.cancelled: list[str] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float, *, name: str) -> None:
        self.sleeps.append((name, seconds))
        if self.block_after is not None and seconds > self.block_after:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(name)
                raise
        self.current += timedelta(seconds=seconds)
        await asyncio.sleep(0)


class FakeActivities(ActivityClient):
    def __init__(self):
        self.calls: list[str] = []
        self.failures: dict[str, list[Exception]] = {}
        self.translation_statuses = ["Running", "Succeeded"]
        self.iteration_statuses = ["Running", "Succeeded"]
        self.copy_error: Exception | None = None
        self.iteration_outputs = TranslationResult(
            translated_video_url="https://speech.test/video.mp4",
            source_subtitle_url="https://speech.test/source.vtt",
            target_subtitle_url="https://speech.test/target.vtt",
            metadata_url="https://speech.test/metadata.json",
        )
        self.created_translations: set[str] = set()
        self.created_iterations: set[tuple[str, str]] = set()
        self.subtitles = {
            "https://speech.test/source.vtt": SOURCE_VTT,
            "https://speech.test/target.vtt": TARGET_VTT,
            "https://storage.test/outputs/source-subtitles.vtt": SOURCE_VTT,
            "https://storage.test/outputs/target-subtitles.vtt": TARGET_VTT,
        }

    def _record(self, name: str) -> None:
        self.calls.append(name)
        queued = self.failures.get(name)
        if queued:
            raise queued.pop(0)

    @staticmethod
    def _next(statuses: list[str]) -> str:
        return statuses.pop(0) if len(statuses) > 1 else statuses[0]

    async def validate_input(self, job) -> str:
        self._record("validate_input")
        check_request(job.request)
        return f"https://storage.test/videos/{job.job_id}/video.mp4?se=1&sig=abc"

    async def create_translation(self, job) -> None:
        self._record("create_translation")
        self.created_translations.add(job.translation_id)

    async def get_translation_status(self, job) -> PollResult:
        self._record("get_translation_status")
        status = self._next(self.translation_statuses)
        return PollResult(status=status, terminal=status in {"Succeeded", "Failed"}, success=status == "Succeeded")

    async def create_iteration(self, job) -> None:
        self._record("create_iteration")
        self.created_iterations.add((job.translation_id, job.iteration_id))

    async def get_iteration_status(self, job) -> PollResult:
        self._record("get_iteration_status")
        status = self._next(self.iteration_statuses)
        outputs = self.iteration_outputs if status == "Succeeded" else None
        return PollResult(
            status=status,
            terminal=status in {"Succeeded", "Failed"},
            success=status == "Succeeded",
            outputs=outputs,
        )

    async def copy_outputs(self, job, outputs) -> StoredOutputs:
        self._record("copy_outputs")
        if self.copy_error is not None:
            raise self.copy_error
        return StoredOutputs(
            **{
                field_name: f"https://storage.test/outputs/{file_name}" if getattr(outputs, field_name) else None
                for field_name, file_name in OUTPUT_FILE_NAMES.items()
            }
        )

    async def fetch_subtitle_text(self, url: str) -> str:
        self.calls.append(f"fetch:{url}")
        return self.subtitles[url]


class ScriptedAgentBackend(AgentBackend):
    """Replies per agent name; an Exception value is raised instead of replying."""

    def __init__(self, replies: dict[str, object] | None = None, existing: dict[str, str] | None = None):
        self.replies = replies or {}
        self.agents: dict[str, str] = dict(existing or {})
        self.created: list[str] = []
        self.prompts: dict[str, str] = {}
        self.tool_results: dict[str, list[str]] = {}
        self._threads = 0
        self.deleted_threads: list[str] = []
        self.list_error: Exception | None = None

    async def list_agents(self) -> dict[str, str]:
        await asyncio.sleep(0)
        if self.list_error is not None:
            raise self.list_error
        return dict(self.agents)

    async def create_agent(self, *, name, instructions, tools, model) -> str:
        await asyncio.sleep(0)
        self.created.append(name)
        self.agents[name] = f"agent-{name}"
        return self.agents[name]

    async def create_thread(self) -> str:
        self._threads += 1
        return f"thread-{self._threads}"

    async def delete_thread(self, thread_id: str) -> None:
        self.deleted_threads.append(thread_id)

    async def chat_complete(self, *, agent_id, thread_id, prompt, tool_executor) -> str:
        name = next(agent_name for agent_name, value in self.agents.items() if value == agent_id)
        self.prompts[name] = prompt
        job_id = re.search(r"Job ID:\s*(\S+)", prompt).group(1)
        self.tool_results[name] = [
            await tool_executor(ToolCall(id="call-1", name="GetSourceSubtitles", arguments={"jobId": job_id})),
            await tool_executor(ToolCall(id="call-2", name="GetTargetSubtitles", arguments={"jobId": job_id})),
        ]
        reply = self.replies.get(name, '{"score": 90, "reasoning": "Looks good", "issues": []}')
        if isinstance(reply, Exception):
            raise reply
        return str(reply)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def make_request(**overrides) -> TranslationJobRequest:
    values = {
        "display_name": "Product launch",
        "video_url": "https://media.example.com/launch.mp4",
        "source_locale": "en-US",
        "target_locale": "es-ES",
    }
    values.update(overrides)
    return TranslationJobRequest(**values)


def make_job(job_id: str = "abc123def456", **fields) -> Job:
    now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    values = {
        "job_id": job_id,
        "translation_id": f"vt-{job_id}",
        "request": make_request(),
        "created_at": now,
        "last_updated_at": now,
        "status_entered_at": now,
    }
    values.update(fields)
    return Job(**values)


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_activities():
    return FakeActivities()


@pytest.fixture
def backend_factory():
    return ScriptedAgentBackend


@pytest.fixture
def clock_factory():
    return FakeClock


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def request_factory():
    return make_request


@pytest.fixture
def job_factory():
    return make_job


@pytest.fixture
def make_runtime(store, fake_clock):
    def factory(*, settings=None, activities=None, backend=None, clock=None, approvals=None):
        settings = settings or make_settings()
        clock = clock or fake_clock
        activities = activities or FakeActivities()
        coordinator = MultiAgentCoordinator(
            backend or MockAgentBackend(),
            activities.fetch_subtitle_text,
            settings=settings,
            clock=clock,
        )
        return WorkflowRuntime(
            settings=settings,
            store=store,
            activities=activities,
            coordinator=coordinator,
            approvals=approvals or InMemoryApprovalChannel(),
            clock=clock,
            retry=RetryPolicy.from_settings(settings),
        )

    return factory


@pytest.fixture
def submit(store):
    """Create a job record without starting a workflow."""

    def factory(runtime=None, **request_overrides):
        clock = runtime.clock if runtime else FakeClock()
        approvals = runtime.approvals if runtime else InMemoryApprovalChannel()
        service = JobService(store, approvals, dispatch=lambda _: None, clock=clock)
        return service.submit_job(make_request(**request_overrides))

    return factory


@pytest.fixture
def advance_to(store, fake_clock):
    """Walk a stored job forward to ``status`` the way the workflow would."""

    def factory(job_id: str, status: JobStatus, **fields):
        job = store.require(job_id)
        for step in JobStatus:
            if step in (JobStatus.SUBMITTED, JobStatus.FAILED):
                continue
            job.advance(step, f"moved to {step.value}", now=fake_clock.now())
            if step == status:
                break
        for name, value in fields.items():
            setattr(job, name, value)
        return store.save(job)

    return factory
