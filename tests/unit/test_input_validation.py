import asyncio

import httpx
import pytest

from app.core.errors import InputValidationError
from app.services.activities import SpeechActivityClient, check_request
from app.services.speech_client import SpeechTranslationClient
from app.services.storage import LocalObjectStorage

PUBLIC_BASE = "http://localhost:8000/storage"


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"blob_path": "clips/launch.mp4"}, "Provide either videoUrl or blobPath, not both"),
        ({"video_url": None}, "Either videoUrl or blobPath must be provided"),
        ({"video_url": "   "}, "Either videoUrl or blobPath must be provided"),
        ({"target_locale": ""}, "Both sourceLocale and targetLocale are required"),
        ({"source_locale": "xx-XX"}, "Unsupported source locale: xx-XX"),
        ({"target_locale": "tlh-QO"}, "Unsupported target locale: tlh-QO"),
        ({"target_locale": "EN-us"}, "Source and target locales must be different"),
        ({"voice_kind": "CloneVoice"}, "Invalid voice kind: CloneVoice"),
    ],
)
def test_check_request_rejects(request_factory, overrides, message):
    with pytest.raises(InputValidationError) as exc:
        check_request(request_factory(**overrides))
    assert str(exc.value).startswith(message)


def test_check_request_accepts_case_insensitive_locales(request_factory):
    check_request(request_factory(source_locale="EN-us", target_locale="ja-jp", voice_kind="PersonalVoice"))


def _client(tmp_path, settings_factory, handler) -> tuple[SpeechActivityClient, LocalObjectStorage]:
    storage = LocalObjectStorage(
        root=tmp_path,
        public_base_url=PUBLIC_BASE,
        secret_key="test-secret",
        transport=httpx.MockTransport(handler),
    )
    speech = SpeechTranslationClient(endpoint="https://speech.test", api_key="k", api_version="2025-05-20")
    settings = settings_factory(storage_root=tmp_path, storage_public_base_url=PUBLIC_BASE, secret_key="test-secret")
    return SpeechActivityClient(speech=speech, storage=storage, settings=settings), storage


def test_external_video_is_copied_and_signed(tmp_path, settings_factory, job_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"video-bytes")

    client, storage = _client(tmp_path, settings_factory, handler)
    job = job_factory()

    url = asyncio.run(client.validate_input(job))

    assert url.startswith(f"{PUBLIC_BASE}/videos/abc123def456/launch.mp4?")
    assert storage.is_signed_url(url)
    assert (tmp_path / "videos" / "abc123def456" / "launch.mp4").read_bytes() == b"video-bytes"


def test_already_signed_video_url_is_used_as_is(tmp_path, settings_factory, job_factory, request_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no download expected")

    client, storage = _client(tmp_path, settings_factory, handler)
    signed = storage.signed_url("videos", "shared/launch.mp4", 600)
    job = job_factory(request=request_factory(video_url=signed))

    assert asyncio.run(client.validate_input(job)) == signed


def test_unreachable_video_url_fails_validation(tmp_path, settings_factory, job_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    client, _ = _client(tmp_path, settings_factory, handler)

    with pytest.raises(InputValidationError, match="Failed to process video URL"):
        asyncio.run(client.validate_input(job_factory()))


def test_blob_path_must_exist(tmp_path, settings_factory, job_factory, request_factory):
    client, storage = _client(tmp_path, settings_factory, lambda request: httpx.Response(500))
    missing = job_factory(request=request_factory(video_url=None, blob_path="clips/missing.mp4"))

    with pytest.raises(InputValidationError, match="Video file not found in storage: clips/missing.mp4"):
        asyncio.run(client.validate_input(missing))

    (tmp_path / "videos" / "clips").mkdir(parents=True)
    (tmp_path / "videos" / "clips" / "launch.mp4").write_bytes(b"x")
    present = job_factory(request=request_factory(video_url=None, blob_path="clips/launch.mp4"))
    url = asyncio.run(client.validate_input(present))
    assert storage.is_signed_url(url)


def test_video_url_escaping_storage_root_fails_validation(tmp_path, settings_factory, job_factory, request_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no download expected")

    root = tmp_path / "storage"
    root.mkdir()
    (tmp_path / "credentials.env").write_text("SECRET_KEY=hunter2", encoding="utf-8")
    client, _ = _client(root, settings_factory, handler)
    job = job_factory(request=request_factory(video_url=f"{PUBLIC_BASE}/videos/../../credentials.env"))

    with pytest.raises(InputValidationError, match="Failed to process video URL: Invalid storage path"):
        asyncio.run(client.validate_input(job))
    assert not (root / "videos" / "abc123def456").exists()
