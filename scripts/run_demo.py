import asyncio
import logging
import tempfile
from pathlib import Path

import httpx

from app.agents.graph import run_workflow
from app.agents.review import MultiAgentCoordinator
from app.agents.runtime import WorkflowRuntime
from app.core.clock import WorkflowClock
from app.core.config import Settings
from app.core.logging import setup_logging
from app.core.retry import RetryPolicy
from app.db.session import build_engine, build_session_factory, init_db
from app.models.job import TranslationJobRequest
from app.services.activities import SpeechActivityClient
from app.services.agent_backend import MockAgentBackend
from app.services.approvals import InMemoryApprovalChannel
from app.services.job_store import JobStore
from app.services.jobs import JobService
from app.services.speech_client import SpeechTranslationClient
from app.services.storage import LocalObjectStorage

SPEECH_ENDPOINT = "https://speech.demo"
SOURCE_VTT = (
    "WEBVTT\n\n00:00:00.000 --> 00:00:02.500\nWelcome to the spring product launch.\n\n"
    "00:00:02.500 --> 00:00:05.000\nToday we are showing three new features.\n"
)
TARGET_VTT = (
    "WEBVTT\n\n00:00:00.000 --> 00:00:02.500\nBienvenidos al lanzamiento de primavera.\n\n"
    "00:00:02.500 --> 00:00:05.000\nHoy presentamos tres funciones nuevas.\n"
)


class FakeTranslationService:
    """Answers the translation REST API; each resource succeeds on its second poll."""

    def __init__(self) -> None:
        self.polls: dict[str, int] = {}

    def _status(self, path: str) -> str:
        self.polls[path] = self.polls.get(path, 0) + 1
        return "Succeeded" if self.polls[path] > 1 else "Running"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/videotranslation/")
        if request.method == "PUT":
            return httpx.Response(201, json={"id": path.rsplit("/", 1)[-1], "status": "NotStarted"})
        status = self._status(path)
        payload: dict = {"id": path.rsplit("/", 1)[-1], "status": status}
        if "/iterations/" in path and status == "Succeeded":
            payload["result"] = {
                "translatedVideoFileUrl": f"{SPEECH_ENDPOINT}/files/translated.mp4",
                "sourceLocaleSubtitleWebvttFileUrl": f"{SPEECH_ENDPOINT}/files/source.vtt",
                "targetLocaleSubtitleWebvttFileUrl": f"{SPEECH_ENDPOINT}/files/target.vtt",
                "metadataJsonWebvttFileUrl": f"{SPEECH_ENDPOINT}/files/metadata.json",
            }
        return httpx.Response(200, json=payload)


def serve_media(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("source.vtt"):
        return httpx.Response(200, text=SOURCE_VTT)
    if path.endswith("target.vtt"):
        return httpx.Response(200, text=TARGET_VTT)
    if path.endswith(".json"):
        return httpx.Response(200, json={"segments": 2})
    return httpx.Response(200, content=b"\x00\x00\x00\x18ftypmp42")


async def run_demo(storage_root: Path) -> None:
    settings = Settings(
        _env_file=None,
        database_url="sqlite+pysqlite:///:memory:",
        storage_root=storage_root,
        storage_public_base_url="http://localhost:8000/storage",
        translation_poll_interval_seconds=0.2,
        iteration_poll_interval_seconds=0.2,
        auto_approve_recommended=True,
    )
    engine = build_engine(settings.database_url)
    init_db(engine)
    store = JobStore(build_session_factory(engine))
    clock = WorkflowClock()

    storage = LocalObjectStorage(
        root=settings.storage_root,
        public_base_url=settings.storage_public_base_url,
        secret_key=settings.secret_key,
        transport=httpx.MockTransport(serve_media),
    )
    speech = SpeechTranslationClient(
        endpoint=SPEECH_ENDPOINT,
        api_key="demo-key",
        api_version=settings.speech_api_version,
        transport=httpx.MockTransport(FakeTranslationService()),
    )
    activities = SpeechActivityClient(speech=speech, storage=storage, settings=settings)
    runtime = WorkflowRuntime(
        settings=settings,
        store=store,
        activities=activities,
        coordinator=MultiAgentCoordinator(
            MockAgentBackend(), activities.fetch_subtitle_text, settings=settings, clock=clock
        ),
        approvals=InMemoryApprovalChannel(),
        clock=clock,
        retry=RetryPolicy.from_settings(settings),
        actor_id="demo",
    )
    service = JobService(store, runtime.approvals, dispatch=lambda _: None, clock=clock)

    job = service.submit_job(
        TranslationJobRequest(
            display_name="Spring launch",
            video_url="https://media.example.com/spring-launch.mp4",
            source_locale="en-US",
            target_locale="es-ES",
        )
    )
    print(f"Submitted job {job.job_id} ({job.translation_id})")

    job = await run_workflow(job.job_id, runtime)
    print("Status history:", " -> ".join(store.status_history(job.job_id)))
    print(f"Final status: {job.status.value} ({job.status_message})")
    if job.review:
        print(
            "Review:",
            f"overall={job.review.overall_score}",
            f"recommendation={job.review.recommendation.value}",
            f"issues={len(job.review.issues)}",
        )
        print("Summary:", job.review.summary)
    if job.result and job.result.stored_outputs:
        print("Stored target subtitles:", job.result.stored_outputs.target_subtitle_url)
    if job.degraded_fields:
        print("Degraded:", ", ".join(job.degraded_fields))


def main() -> None:
    setup_logging(logging.WARNING)
    with tempfile.TemporaryDirectory() as storage_root:
        asyncio.run(run_demo(Path(storage_root)))
    print("Demo flow completed.")


if __name__ == "__main__":
    main()
