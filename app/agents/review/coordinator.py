import asyncio
from typing import Awaitable, Callable

from app.agents.review.specialists import SPECIALISTS, SpecialistReviewer
from app.agents.review.tools import TOOL_DEFINITIONS, ReviewToolbox
from app.core.clock import WorkflowClock
from app.core.config import Settings
from app.core.enums import AgentType
from app.core.logging import get_logger
from app.models.job import Job
from app.models.review import AggregatedReview, SpecialistResult
from app.services.agent_backend import AgentBackend
from app.services.scoring import SPECIALIST_WEIGHTS, aggregate_review

logger = get_logger(__name__)

ORCHESTRATOR_AGENT_NAME = "ValidationOrchestratorAgent"

ORCHESTRATOR_INSTRUCTIONS = """You coordinate a panel of subtitle reviewers.
You receive the scores, reasoning and issue counts of three specialists (translation quality,
technical compliance, cultural adaptation) together with the weighted overall score and the
recommendation. Write a short summary for the human approver: the overall verdict, the most
important problems to fix first and anything that needs a human decision. You may call
GetJobInfo or the subtitle tools to check a claim. Do not change the score or the recommendation."""


def build_summary_prompt(job: Job, review: AggregatedReview) -> str:
    lines = [
        f"Job ID: {job.job_id}",
        f"Locales: {job.request.source_locale} -> {job.request.target_locale}",
        "",
        "Specialist results:",
    ]
    for result in review.specialists():
        weight = int(round(SPECIALIST_WEIGHTS[result.agent_type] * 100))
        lines.append(
            f"- {result.agent_name} ({result.agent_type.value}, weight {weight}%): "
            f"score {result.score:.0f}/100, {len(result.issues)} issue(s)"
        )
        lines.append(f"  Reasoning: {result.reasoning}")
    lines.extend(
        [
            "",
            f"Overall score: {review.overall_score:.1f}",
            f"Recommendation: {review.recommendation.value}",
            f"Total issues: {len(review.issues)}",
            "",
            "Write the summary for the approver.",
        ]
    )
    return "\n".join(lines)


class MultiAgentCoordinator:
    """Runs the three specialist reviews in parallel and summarizes them."""

    def __init__(
        self,
        backend: AgentBackend,
        fetch_text: Callable[[str], Awaitable[str]],
        *,
        settings: Settings,
        clock: WorkflowClock | None = None,
        specialists: tuple[SpecialistReviewer, ...] = SPECIALISTS,
    ):
        self.backend = backend
        self.fetch_text = fetch_text
        self.settings = settings
        self.clock = clock or WorkflowClock()
        self.specialists = specialists
        self._agent_ids: dict[AgentType, str] = {}
        self._agent_lock = asyncio.Lock()

    def _agent_definitions(self) -> list[tuple[AgentType, str, str]]:
        definitions = [
            (reviewer.agent_type, reviewer.agent_name, reviewer.instructions) for reviewer in self.specialists
        ]
        definitions.append((AgentType.ORCHESTRATOR, ORCHESTRATOR_AGENT_NAME, ORCHESTRATOR_INSTRUCTIONS))
        return definitions

    async def ensure_agents(self) -> dict[AgentType, str]:
        async with self._agent_lock:
            definitions = self._agent_definitions()
            if all(agent_type in self._agent_ids for agent_type, _, _ in definitions):
                return dict(self._agent_ids)

            existing = await self.backend.list_agents()
            missing = []
            for agent_type, name, instructions in definitions:
                if name in existing:
                    self._agent_ids[agent_type] = existing[name]
                else:
                    missing.append((agent_type, name, instructions))

            created = await asyncio.gather(
                *(
                    self.backend.create_agent(
                        name=name,
                        instructions=instructions,
                        tools=TOOL_DEFINITIONS,
                        model=self.settings.model_for_agent(agent_type.value),
                    )
                    for agent_type, name, instructions in missing
                )
            )
            for (agent_type, _, _), agent_id in zip(missing, created):
                self._agent_ids[agent_type] = agent_id
            return dict(self._agent_ids)

    async def review(self, job: Job) -> AggregatedReview:
        agent_ids = await self.ensure_agents()
        toolbox = ReviewToolbox(job, self.fetch_text, max_subtitle_chars=self.settings.subtitle_max_chars)

        # Each branch absorbs its own failure, so one specialist never cancels its siblings.
        async with asyncio.TaskGroup() as group:
            tasks = {
                reviewer.agent_type: group.create_task(
                    reviewer.review(
                        backend=self.backend,
                        agent_id=agent_ids[reviewer.agent_type],
                        job=job,
                        tool_executor=toolbox.execute,
                        clock=self.clock,
                    )
                )
                for reviewer in self.specialists
            }
        results: dict[AgentType, SpecialistResult] = {
            agent_type: task.result() for agent_type, task in tasks.items()
        }

        review = aggregate_review(
            translation=results[AgentType.TRANSLATION],
            technical=results[AgentType.TECHNICAL],
            cultural=results[AgentType.CULTURAL],
            reviewed_at=self.clock.now(),
        )
        logger.info(
            "specialist reviews complete",
            extra={
                "extra": {
                    "job_id": job.job_id,
                    "overall_score": review.overall_score,
                    "recommendation": review.recommendation.value,
                    "degraded": review.degraded_fields(),
                }
            },
        )

        summary, summary_thread_id, summary_degraded = await self._summarize(
            job, review, agent_ids[AgentType.ORCHESTRATOR], toolbox
        )
        return review.model_copy(
            update={
                "summary": summary,
                "summary_thread_id": summary_thread_id,
                "summary_degraded": summary_degraded,
            }
        )

    async def _summarize(
        self, job: Job, review: AggregatedReview, agent_id: str, toolbox: ReviewToolbox
    ) -> tuple[str, str, bool]:
        try:
            thread_id = await self.backend.create_thread()
            try:
                summary = await self.backend.chat_complete(
                    agent_id=agent_id,
                    thread_id=thread_id,
                    prompt=build_summary_prompt(job, review),
                    tool_executor=toolbox.execute,
                )
            finally:
                await self.backend.delete_thread(thread_id)
            return summary, thread_id, False
        except Exception as exc:
            logger.warning(
                "summary generation failed",
                extra={"extra": {"job_id": job.job_id, "error": str(exc)}},
            )
            return f"Unable to generate summary: {exc}", "", True
