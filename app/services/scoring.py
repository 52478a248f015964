import re
from datetime import datetime

from app.core.enums import SEVERITY_RANK, AgentType, IssueSeverity, Recommendation
from app.models.review import AggregatedReview, Issue, SpecialistResult

SPECIALIST_WEIGHT_PERCENT: dict[AgentType, int] = {
    AgentType.TRANSLATION: 40,
    AgentType.TECHNICAL: 30,
    AgentType.CULTURAL: 30,
}
SPECIALIST_WEIGHTS: dict[AgentType, float] = {
    agent_type: percent / 100 for agent_type, percent in SPECIALIST_WEIGHT_PERCENT.items()
}

APPROVE_THRESHOLD = 80.0
NEEDS_REVIEW_THRESHOLD = 50.0


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def weighted_score(translation: float, technical: float, cultural: float) -> float:
    """Unrounded 0..100 score; thresholds are applied to this value."""
    total = (
        SPECIALIST_WEIGHT_PERCENT[AgentType.TRANSLATION] * _clamp(translation)
        + SPECIALIST_WEIGHT_PERCENT[AgentType.TECHNICAL] * _clamp(technical)
        + SPECIALIST_WEIGHT_PERCENT[AgentType.CULTURAL] * _clamp(cultural)
    ) / 100
    return _clamp(total)


def compute_overall_score(translation: float, technical: float, cultural: float) -> float:
    return round(weighted_score(translation, technical, cultural), 2)


def recommend(overall_score: float, issues: list[Issue]) -> Recommendation:
    has_critical = any(issue.severity == IssueSeverity.CRITICAL for issue in issues)
    if overall_score >= APPROVE_THRESHOLD and not has_critical:
        return Recommendation.APPROVE
    if overall_score >= NEEDS_REVIEW_THRESHOLD:
        return Recommendation.NEEDS_REVIEW
    return Recommendation.REJECT


def _issue_key(issue: Issue) -> tuple[str, str, str]:
    description = re.sub(r"\s+", " ", issue.description).strip().lower()
    return issue.category, description, (issue.location or "").strip().lower()


def merge_issues(results: list[SpecialistResult]) -> list[Issue]:
    merged: list[Issue] = []
    seen: set[tuple[str, str, str]] = set()
    for result in results:
        for issue in result.issues:
            key = _issue_key(issue)
            if key in seen:
                continue
            seen.add(key)
            merged.append(issue)
    # Stable sort keeps specialist order within a severity band.
    return sorted(merged, key=lambda issue: SEVERITY_RANK[issue.severity])


def aggregate_review(
    *,
    translation: SpecialistResult,
    technical: SpecialistResult,
    cultural: SpecialistResult,
    reviewed_at: datetime,
) -> AggregatedReview:
    exact = weighted_score(translation.score, technical.score, cultural.score)
    issues = merge_issues([translation, technical, cultural])
    recommendation = recommend(exact, issues)
    return AggregatedReview(
        translation=translation,
        technical=technical,
        cultural=cultural,
        overall_score=round(exact, 2),
        recommendation=recommendation,
        is_valid=recommendation == Recommendation.APPROVE,
        issues=issues,
        reviewed_at=reviewed_at,
    )
