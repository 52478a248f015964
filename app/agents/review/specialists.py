import json
import re
from dataclasses import dataclass

from app.core.clock import WorkflowClock
from app.core.enums import AgentType, IssueSeverity
from app.core.logging import get_logger
from app.models.job import Job
from app.models.review import Issue, SpecialistResult
from app.services.agent_backend import AgentBackend, ToolExecutor

logger = get_logger(__name__)

DEFAULT_SCORE = 50.0

SCORE_PATTERNS = [
    re.compile(r"score[:\s]+(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*/\s*100", re.IGNORECASE),
    re.compile(r"(\d+)\s*out of\s*100", re.IGNORECASE),
]

SEVERITY_ALIASES = {
    "critical": IssueSeverity.CRITICAL,
    "blocker": IssueSeverity.CRITICAL,
    "high": IssueSeverity.HIGH,
    "major": IssueSeverity.HIGH,
    "medium": IssueSeverity.MEDIUM,
    "moderate": IssueSeverity.MEDIUM,
    "low": IssueSeverity.LOW,
    "minor": IssueSeverity.LOW,
}

SCORING_GUIDE = """Scoring guide:
- 90-100: excellent, ready to publish
- 70-89: good, minor fixes only
- 50-69: acceptable but needs revision
- 30-49: poor, significant rework required
- 0-29: unusable"""

RESPONSE_FORMAT = """Respond with JSON only:
{
  "score": <0-100>,
  "reasoning": "<short explanation>",
  "issues": [
    {"severity": "critical|major|minor", "description": "...", "location": "<cue timestamp or null>", "suggestion": "..."}
  ]
}"""

TRANSLATION_INSTRUCTIONS = f"""You review subtitle translations for linguistic quality.
Use the GetSourceSubtitles and GetTargetSubtitles tools to read both subtitle files, then judge:
- accuracy: the meaning of every cue is preserved without omissions or additions
- fluency: the target text reads naturally and is grammatically correct
- terminology: names and domain terms are translated consistently

{SCORING_GUIDE}

{RESPONSE_FORMAT}"""

TECHNICAL_INSTRUCTIONS = f"""You review subtitle files for technical compliance.
Use the GetSourceSubtitles and GetTargetSubtitles tools to read both subtitle files, then judge:
- timing: cue start/end times align between source and target and do not overlap
- reading speed: cues stay readable (roughly 15-20 characters per second)
- format: the files are valid WebVTT and cue lengths respect the configured segment limit
Each subtitle result starts with a "Cue statistics" line (cue count, words, duration, reading
speed, overlapping cues) computed from the file; compare the source and target lines.

{SCORING_GUIDE}

{RESPONSE_FORMAT}"""

CULTURAL_INSTRUCTIONS = f"""You review subtitle translations for cultural adaptation.
Use the GetJobInfo tool for the target locale and the subtitle tools to read both files, then judge:
- idioms and humour are adapted rather than translated literally
- formality and register suit the target audience
- references, units and formats are localized, and nothing is offensive in the target culture

{SCORING_GUIDE}

{RESPONSE_FORMAT}"""


@dataclass(frozen=True)
class SpecialistReviewer:
    agent_type: AgentType
    agent_name: str
    instructions: str
    focus: str

    def build_prompt(self, job: Job) -> str:
        request = job.request
        return (
            f"Review the {self.focus} of this subtitle translation.\n\n"
            f"Job ID: {job.job_id}\n"
            f"Source locale: {request.source_locale}\n"
            f"Target locale: {request.target_locale}\n\n"
            "Fetch the source and target subtitles with the available tools before answering. "
            "Return the JSON object described in your instructions."
        )

    async def review(
        self,
        *,
        backend: AgentBackend,
        agent_id: str,
        job: Job,
        tool_executor: ToolExecutor,
        clock: WorkflowClock,
    ) -> SpecialistResult:
        thread_id = ""
        try:
            thread_id = await backend.create_thread()
            try:
                response = await backend.chat_complete(
                    agent_id=agent_id,
                    thread_id=thread_id,
                    prompt=self.build_prompt(job),
                    tool_executor=tool_executor,
                )
            finally:
                await backend.delete_thread(thread_id)
            score, reasoning, issues = parse_specialist_response(response, self.agent_type)
            degraded = False
        except Exception as exc:
            logger.warning(
                "specialist review failed",
                extra={"extra": {"job_id": job.job_id, "agent": self.agent_name, "error": str(exc)}},
            )
            score, reasoning, issues = DEFAULT_SCORE, f"Agent encountered an error: {exc}", []
            degraded = True

        return SpecialistResult(
            agent_name=self.agent_name,
            agent_type=self.agent_type,
            score=score,
            reasoning=reasoning,
            issues=issues,
            thread_id=thread_id,
            reviewed_at=clock.now(),
            degraded=degraded,
        )


SPECIALISTS: tuple[SpecialistReviewer, ...] = (
    SpecialistReviewer(
        AgentType.TRANSLATION, "TranslationReviewAgent", TRANSLATION_INSTRUCTIONS, "translation quality"
    ),
    SpecialistReviewer(
        AgentType.TECHNICAL, "TechnicalReviewAgent", TECHNICAL_INSTRUCTIONS, "technical compliance"
    ),
    SpecialistReviewer(
        AgentType.CULTURAL, "CulturalReviewAgent", CULTURAL_INSTRUCTIONS, "cultural adaptation"
    ),
)


def _severity(raw) -> IssueSeverity:
    return SEVERITY_ALIASES.get(str(raw or "").strip().lower(), IssueSeverity.LOW)


def _score_from_text(text: str) -> float:
    for pattern in SCORE_PATTERNS:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return DEFAULT_SCORE


def _parse_issues(raw_issues, agent_type: AgentType) -> list[Issue]:
    issues: list[Issue] = []
    if not isinstance(raw_issues, list):
        return issues
    for raw in raw_issues:
        if not isinstance(raw, dict):
            continue
        description = str(raw.get("description") or "").strip()
        if not description:
            continue
        location = raw.get("location")
        suggestion = raw.get("suggestion")
        issues.append(
            Issue(
                severity=_severity(raw.get("severity")),
                category=agent_type.value,
                description=description,
                location=str(location) if location else None,
                suggestion=str(suggestion) if suggestion else None,
            )
        )
    return issues


def parse_specialist_response(text: str, agent_type: AgentType) -> tuple[float, str, list[Issue]]:
    """Extract ``(score, reasoning, issues)`` from an agent reply, tolerating prose around the JSON."""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            payload = json.loads(text[start : end + 1])
        except ValueError:
            payload = None
        if isinstance(payload, dict) and "score" in payload:
            try:
                score = float(payload["score"])
            except (TypeError, ValueError):
                score = _score_from_text(text)
            reasoning = str(payload.get("reasoning") or "").strip()
            return max(0.0, min(100.0, score)), reasoning, _parse_issues(payload.get("issues"), agent_type)

    return max(0.0, min(100.0, _score_from_text(text))), text.strip(), []
