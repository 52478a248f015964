import asyncio
import enum
import json
from typing import Any, Awaitable, Callable

from app.core.logging import get_logger
from app.models.job import Job
from app.services.agent_backend import ToolCall
from app.services.subtitles import describe, parse_webvtt

logger = get_logger(__name__)

TRUNCATION_MARKER = "\n\n[Content truncated due to length...]"
DEFAULT_MAX_SUBTITLE_CHARS = 50_000


class ReviewTool(str, enum.Enum):
    GET_JOB_INFO = "GetJobInfo"
    GET_SOURCE_SUBTITLES = "GetSourceSubtitles"
    GET_TARGET_SUBTITLES = "GetTargetSubtitles"


def _function_schema(tool: ReviewTool, description: str) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.value,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": {
                    "jobId": {"type": "string", "description": "The translation job ID"},
                },
                "required": ["jobId"],
            },
        },
    }


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function_schema(
        ReviewTool.GET_JOB_INFO,
        "Get the translation job details: locales, voice settings and output locations.",
    ),
    _function_schema(
        ReviewTool.GET_SOURCE_SUBTITLES,
        "Get the source language subtitles (WebVTT) of the translation job.",
    ),
    _function_schema(
        ReviewTool.GET_TARGET_SUBTITLES,
        "Get the translated target language subtitles (WebVTT) of the translation job.",
    ),
]


def truncate_subtitles(content: str, max_chars: int = DEFAULT_MAX_SUBTITLE_CHARS) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + TRUNCATION_MARKER


class ReviewToolbox:
    """Executes agent tool calls against one job's read-only context."""

    def __init__(
        self,
        job: Job,
        fetch_text: Callable[[str], Awaitable[str]],
        *,
        max_subtitle_chars: int = DEFAULT_MAX_SUBTITLE_CHARS,
    ):
        self.job = job
        self.fetch_text = fetch_text
        self.max_subtitle_chars = max_subtitle_chars
        self._fetches: dict[str, asyncio.Future] = {}

    async def execute(self, call: ToolCall) -> str:
        try:
            tool = ReviewTool(call.name)
        except ValueError:
            return f"Error: Unknown tool '{call.name}'"

        job_id = str(call.arguments.get("jobId") or self.job.job_id)
        if job_id != self.job.job_id:
            return f"Error: Job {job_id} not found in context"

        logger.debug("tool call", extra={"extra": {"job_id": job_id, "tool": tool.value}})
        if tool is ReviewTool.GET_JOB_INFO:
            return self._job_info()
        if tool is ReviewTool.GET_SOURCE_SUBTITLES:
            url = self.job.result.preferred_source_subtitle_url() if self.job.result else None
            return await self._subtitles(url, "Source")
        if tool is ReviewTool.GET_TARGET_SUBTITLES:
            url = self.job.result.preferred_target_subtitle_url() if self.job.result else None
            return await self._subtitles(url, "Target")
        return f"Error: Unknown tool '{call.name}'"

    def _job_info(self) -> str:
        request = self.job.request
        result = self.job.result
        return json.dumps(
            {
                "jobId": self.job.job_id,
                "displayName": request.display_name,
                "sourceLocale": request.source_locale,
                "targetLocale": request.target_locale,
                "voiceKind": request.voice_kind,
                "speakerCount": request.speaker_count,
                "subtitleMaxCharCountPerSegment": request.subtitle_max_char_count_per_segment,
                "status": self.job.status.value,
                "iteration": self.job.iteration_number,
                "hasSourceSubtitles": bool(result and result.preferred_source_subtitle_url()),
                "hasTargetSubtitles": bool(result and result.preferred_target_subtitle_url()),
            },
            indent=2,
        )

    async def _subtitles(self, url: str | None, label: str) -> str:
        if not url:
            return f"Error: {label} subtitles URL not available"
        fetch = self._fetches.get(url)
        if fetch is None:
            # Specialists run concurrently; they all await the same download.
            fetch = asyncio.ensure_future(self.fetch_text(url))
            self._fetches[url] = fetch
        try:
            content = await asyncio.shield(fetch)
        except Exception as exc:
            if self._fetches.get(url) is fetch:
                del self._fetches[url]
            logger.warning(
                "subtitle fetch failed",
                extra={"extra": {"job_id": self.job.job_id, "label": label, "error": str(exc)}},
            )
            return f"Error fetching {label.lower()} subtitles: {exc}"

        body = truncate_subtitles(content, self.max_subtitle_chars)
        document = parse_webvtt(content)
        if not document.cues:
            return body
        return f"{describe(document)}\n\n{body}"
