from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx

from app.core.config import Settings
from app.core.enums import ExternalStatus, VoiceKind
from app.core.errors import (
    ActivityRejectedError,
    InputValidationError,
    TransientActivityError,
)
from app.core.logging import get_logger
from app.models.job import Job, StoredOutputs, TranslationJobRequest, TranslationResult
from app.services.speech_client import SpeechTranslationClient, build_speech_client
from app.services.storage import ObjectStorage, build_object_storage

logger = get_logger(__name__)

SUPPORTED_LOCALES = frozenset(
    locale.lower()
    for locale in (
        # English
        "en-US", "en-GB", "en-AU", "en-CA", "en-IN", "en-IE", "en-NZ", "en-SG", "en-ZA",
        "en-HK", "en-KE", "en-NG", "en-PH", "en-TZ",
        # Arabic
        "ar-SA", "ar-EG", "ar-AE", "ar-BH", "ar-DZ", "ar-IQ", "ar-JO", "ar-KW", "ar-LB",
        "ar-LY", "ar-MA", "ar-OM", "ar-QA", "ar-SY", "ar-TN", "ar-YE",
        # Chinese
        "zh-CN", "zh-TW", "zh-HK", "yue-CN",
        # European
        "de-DE", "de-AT", "de-CH", "fr-FR", "fr-CA", "fr-BE", "fr-CH",
        "es-ES", "es-MX", "es-AR", "es-BO", "es-CL", "es-CO", "es-CR", "es-CU", "es-DO",
        "es-EC", "es-GQ", "es-GT", "es-HN", "es-NI", "es-PA", "es-PE", "es-PR", "es-PY",
        "es-SV", "es-US", "es-UY", "es-VE",
        "it-IT", "pt-BR", "pt-PT", "nl-NL", "nl-BE", "pl-PL", "ru-RU", "uk-UA",
        "cs-CZ", "da-DK", "fi-FI", "el-GR", "hu-HU", "nb-NO", "ro-RO", "sk-SK", "sl-SI",
        "sv-SE", "bg-BG", "hr-HR", "et-EE", "lv-LV", "lt-LT", "sr-RS",
        "ca-ES", "eu-ES", "gl-ES", "cy-GB", "ga-IE", "is-IS", "mt-MT", "sq-AL", "bs-BA", "mk-MK",
        # Asian
        "ja-JP", "ko-KR", "hi-IN", "th-TH", "vi-VN", "id-ID", "ms-MY", "fil-PH",
        "ta-IN", "te-IN", "bn-IN", "gu-IN", "kn-IN", "ml-IN", "mr-IN",
        "jv-ID", "km-KH", "lo-LA", "my-MM", "ne-NP", "si-LK", "mn-MN",
        "kk-KZ", "uz-UZ", "az-AZ", "hy-AM", "ka-GE",
        # Middle Eastern and African
        "he-IL", "tr-TR", "fa-IR", "ps-AF", "af-ZA", "am-ET", "sw-KE", "sw-TZ", "so-SO",
        "su-ID", "zu-ZA",
    )
)

OUTPUT_FILE_NAMES = {
    "translated_video_url": "translated-video.mp4",
    "source_subtitle_url": "source-subtitles.vtt",
    "target_subtitle_url": "target-subtitles.vtt",
    "metadata_url": "metadata.json",
}


@dataclass
class PollResult:
    status: str
    terminal: bool
    success: bool
    outputs: TranslationResult | None = None
    error: str | None = None


def _poll_result(payload: dict[str, Any], *, with_outputs: bool) -> PollResult:
    status = str(payload.get("status") or ExternalStatus.NOT_STARTED.value)
    terminal = status in {ExternalStatus.SUCCEEDED.value, ExternalStatus.FAILED.value}
    success = status == ExternalStatus.SUCCEEDED.value
    outputs = None
    if with_outputs and success:
        raw = payload.get("result") or {}
        outputs = TranslationResult(
            translated_video_url=raw.get("translatedVideoFileUrl"),
            source_subtitle_url=raw.get("sourceLocaleSubtitleWebvttFileUrl"),
            target_subtitle_url=raw.get("targetLocaleSubtitleWebvttFileUrl"),
            metadata_url=raw.get("metadataJsonWebvttFileUrl"),
        )
    error = None
    if terminal and not success:
        error_payload = payload.get("error") or {}
        error = error_payload.get("message") if isinstance(error_payload, dict) else str(error_payload)
    return PollResult(status=status, terminal=terminal, success=success, outputs=outputs, error=error)


def check_request(request: TranslationJobRequest) -> None:
    """Static request rules; raises InputValidationError on the first violation."""
    has_url = bool((request.video_url or "").strip())
    has_blob = bool((request.blob_path or "").strip())
    if has_url and has_blob:
        raise InputValidationError("Provide either videoUrl or blobPath, not both")
    if not has_url and not has_blob:
        raise InputValidationError("Either videoUrl or blobPath must be provided")
    if not request.source_locale or not request.target_locale:
        raise InputValidationError("Both sourceLocale and targetLocale are required")
    if request.source_locale.lower() not in SUPPORTED_LOCALES:
        raise InputValidationError(f"Unsupported source locale: {request.source_locale}")
    if request.target_locale.lower() not in SUPPORTED_LOCALES:
        raise InputValidationError(f"Unsupported target locale: {request.target_locale}")
    if request.source_locale.lower() == request.target_locale.lower():
        raise InputValidationError("Source and target locales must be different")
    if request.voice_kind not in {kind.value for kind in VoiceKind}:
        raise InputValidationError(
            f"Invalid voice kind: {request.voice_kind}. Must be 'PlatformVoice' or 'PersonalVoice'"
        )


def translation_operation_id(job: Job) -> str:
    return f"{job.translation_id}-create"


def iteration_operation_id(job: Job) -> str:
    return f"{job.translation_id}-{job.iteration_id}-create"


class ActivityClient(ABC):
    """Side-effecting steps of the workflow. Every call is idempotent for the same job identifiers."""

    @abstractmethod
    async def validate_input(self, job: Job) -> str:
        """Validate the request and return the media URL the translation service should read."""
        raise NotImplementedError

    @abstractmethod
    async def create_translation(self, job: Job) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_translation_status(self, job: Job) -> PollResult:
        raise NotImplementedError

    @abstractmethod
    async def create_iteration(self, job: Job) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_iteration_status(self, job: Job) -> PollResult:
        raise NotImplementedError

    @abstractmethod
    async def copy_outputs(self, job: Job, outputs: TranslationResult) -> StoredOutputs:
        raise NotImplementedError

    @abstractmethod
    async def fetch_subtitle_text(self, url: str) -> str:
        raise NotImplementedError


class SpeechActivityClient(ActivityClient):
    def __init__(self, *, speech: SpeechTranslationClient, storage: ObjectStorage, settings: Settings):
        self.speech = speech
        self.storage = storage
        self.settings = settings

    async def validate_input(self, job: Job) -> str:
        request = job.request
        check_request(request)
        container = self.settings.storage_video_container

        if request.video_url:
            if self.storage.is_signed_url(request.video_url):
                return request.video_url
            file_name = PurePosixPath(urlparse(request.video_url).path).name or "video.mp4"
            blob_path = f"{job.job_id}/{file_name}"
            try:
                await self.storage.copy_from_url(request.video_url, container, blob_path)
            except (ActivityRejectedError, ValueError) as exc:
                raise InputValidationError(f"Failed to process video URL: {exc}") from exc
            return self.storage.signed_url(
                container, blob_path, self.settings.storage_external_media_ttl_seconds
            )

        blob_path = request.blob_path or ""
        try:
            exists = await self.storage.exists(container, blob_path)
        except ValueError as exc:
            raise InputValidationError(str(exc)) from exc
        if not exists:
            raise InputValidationError(f"Video file not found in storage: {blob_path}")
        return self.storage.signed_url(container, blob_path, self.settings.storage_blob_media_ttl_seconds)

    async def create_translation(self, job: Job) -> None:
        request = job.request
        translation_input: dict[str, Any] = {
            "sourceLocale": request.source_locale,
            "targetLocale": request.target_locale,
            "voiceKind": request.voice_kind,
            "videoFileUrl": job.video_file_url,
        }
        if request.speaker_count is not None:
            translation_input["speakerCount"] = request.speaker_count
        if request.subtitle_max_char_count_per_segment is not None:
            translation_input["subtitleMaxCharCountPerSegment"] = request.subtitle_max_char_count_per_segment
        if request.export_subtitle_in_video:
            translation_input["exportSubtitleInVideo"] = True
        if request.enable_lip_sync:
            translation_input["enableLipSync"] = True
        body = {
            "displayName": request.display_name or job.job_id,
            "description": request.description,
            "input": translation_input,
        }
        await self.speech.create_translation(job.translation_id, translation_operation_id(job), body)

    async def get_translation_status(self, job: Job) -> PollResult:
        payload = await self.speech.get_translation(job.translation_id)
        return _poll_result(payload, with_outputs=False)

    async def create_iteration(self, job: Job) -> None:
        request = job.request
        iteration_input: dict[str, Any] = {}
        if request.speaker_count is not None:
            iteration_input["speakerCount"] = request.speaker_count
        if request.subtitle_max_char_count_per_segment is not None:
            iteration_input["subtitleMaxCharCountPerSegment"] = request.subtitle_max_char_count_per_segment
        if request.export_subtitle_in_video:
            iteration_input["exportSubtitleInVideo"] = True
        await self.speech.create_iteration(
            job.translation_id,
            job.iteration_id,
            iteration_operation_id(job),
            {"input": iteration_input},
        )

    async def get_iteration_status(self, job: Job) -> PollResult:
        payload = await self.speech.get_iteration(job.translation_id, job.iteration_id)
        return _poll_result(payload, with_outputs=True)

    async def copy_outputs(self, job: Job, outputs: TranslationResult) -> StoredOutputs:
        base_path = f"{job.job_id}/iteration-{job.iteration_number}"
        stored: dict[str, str | None] = {}
        for field_name, file_name in OUTPUT_FILE_NAMES.items():
            source_url = getattr(outputs, field_name)
            if not source_url:
                stored[field_name] = None
                continue
            stored[field_name] = await self.storage.copy_from_url(
                source_url, self.settings.storage_output_container, f"{base_path}/{file_name}"
            )
        return StoredOutputs(**stored)

    async def fetch_subtitle_text(self, url: str) -> str:
        owned = await self.storage.read_text(url)
        if owned is not None:
            return owned
        try:
            async with httpx.AsyncClient(timeout=30, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.TransportError as exc:
            raise TransientActivityError(f"Subtitle download failed: {exc}") from exc
        if response.status_code >= 400:
            raise ActivityRejectedError(f"Subtitle download returned HTTP {response.status_code}")
        return response.text


def build_activity_client(settings: Settings) -> ActivityClient:
    return SpeechActivityClient(
        speech=build_speech_client(settings),
        storage=build_object_storage(settings),
        settings=settings,
    )
