import asyncio

import httpx
import pytest

from app.core.errors import ActivityRejectedError, TransientActivityError
from app.models.job import TranslationResult
from app.services.activities import SpeechActivityClient
from app.services.speech_client import SpeechTranslationClient
from app.services.storage import LocalObjectStorage

PUBLIC_BASE = "http://localhost:8000/storage"


def _storage(tmp_path, handler=None) -> LocalObjectStorage:
    return LocalObjectStorage(
        root=tmp_path,
        public_base_url=PUBLIC_BASE,
        secret_key="test-secret",
        transport=httpx.MockTransport(handler or (lambda request: httpx.Response(200, content=b"data"))),
    )


def test_signed_urls_verify_and_detect_tampering(tmp_path):
    storage = _storage(tmp_path)
    url = storage.signed_url("videos", "job/clip.mp4", 3600)

    assert storage.is_signed_url(url)
    assert not storage.is_signed_url(url.replace("clip.mp4", "other.mp4"))
    assert not storage.is_signed_url(url.split("&sig=")[0] + "&sig=deadbeef")
    assert not storage.is_signed_url("https://media.example.com/clip.mp4?se=1&sig=abc")
    assert not storage.is_signed_url(storage.signed_url("videos", "job/clip.mp4", -10))


def test_path_traversal_is_refused(tmp_path):
    storage = _storage(tmp_path)
    with pytest.raises(ValueError):
        storage.signed_url("videos", "../secrets.txt", 60)


@pytest.mark.parametrize(("status_code", "error"), [(503, TransientActivityError), (429, TransientActivityError), (403, ActivityRejectedError)])
def test_download_errors_are_classified(tmp_path, status_code, error):
    storage = _storage(tmp_path, lambda request: httpx.Response(status_code))
    with pytest.raises(error):
        asyncio.run(storage.copy_from_url("https://speech.test/video.mp4", "outputs", "job/video.mp4"))


def test_copy_outputs_stores_every_file_and_reads_subtitles_back(tmp_path, settings_factory, job_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(".vtt"):
            return httpx.Response(200, text=f"WEBVTT\n\n{request.url.path}")
        return httpx.Response(200, content=b"binary")

    storage = _storage(tmp_path, handler)
    client = SpeechActivityClient(
        speech=SpeechTranslationClient(endpoint="https://speech.test", api_key="", api_version="v"),
        storage=storage,
        settings=settings_factory(),
    )
    outputs = TranslationResult(
        translated_video_url="https://speech.test/video.mp4",
        source_subtitle_url="https://speech.test/source.vtt",
        target_subtitle_url="https://speech.test/target.vtt",
        metadata_url=None,
    )

    stored = asyncio.run(client.copy_outputs(job_factory(), outputs))

    assert stored.translated_video_url == f"{PUBLIC_BASE}/outputs/abc123def456/iteration-1/translated-video.mp4"
    assert stored.metadata_url is None
    assert (tmp_path / "outputs" / "abc123def456" / "iteration-1" / "source-subtitles.vtt").is_file()
    text = asyncio.run(client.fetch_subtitle_text(stored.target_subtitle_url))
    assert text == "WEBVTT\n\n/target.vtt"


def test_owned_urls_cannot_escape_the_storage_root(tmp_path):
    storage = _storage(tmp_path / "root", lambda request: httpx.Response(200, content=b"remote"))
    (tmp_path / "secret.txt").write_text("do not copy", encoding="utf-8")
    escaping = f"{PUBLIC_BASE}/videos/../../secret.txt"

    assert not storage.is_signed_url(escaping)
    with pytest.raises(ValueError):
        asyncio.run(storage.copy_from_url(escaping, "videos", "job/clip.mp4"))
    with pytest.raises(ValueError):
        asyncio.run(storage.read_text(escaping))
    assert not (tmp_path / "root" / "videos" / "job" / "clip.mp4").exists()
