from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.core.enums import AgentType, IssueSeverity, Recommendation


class Issue(BaseModel):
    severity: IssueSeverity = IssueSeverity.LOW
    category: str
    description: str
    location: str | None = None
    suggestion: str | None = None


class SpecialistResult(BaseModel):
    agent_name: str
    agent_type: AgentType
    score: float
    reasoning: str = ""
    issues: list[Issue] = Field(default_factory=list)
    thread_id: str = ""
    reviewed_at: datetime
    degraded: bool = False

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        return max(0.0, min(100.0, float(value)))


class AggregatedReview(BaseModel):
    translation: SpecialistResult
    technical: SpecialistResult
    cultural: SpecialistResult
    overall_score: float
    recommendation: Recommendation
    is_valid: bool
    issues: list[Issue] = Field(default_factory=list)
    summary: str = ""
    summary_thread_id: str = ""
    summary_degraded: bool = False
    reviewed_at: datetime

    def specialists(self) -> list[SpecialistResult]:
        return [self.translation, self.technical, self.cultural]

    def degraded_fields(self) -> list[str]:
        fields = [f"review.{result.agent_type.value}" for result in self.specialists() if result.degraded]
        if self.summary_degraded:
            fields.append("review.summary")
        return fields
