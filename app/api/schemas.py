from datetime import datetime

from pydantic import BaseModel, Field

from app.core.enums import JobStatus
from app.models.job import ApprovalDecision, TranslationJobRequest, TranslationResult
from app.models.review import AggregatedReview


class JobSubmitRequest(TranslationJobRequest):
    display_name: str = Field(default="", max_length=255)
    speaker_count: int | None = Field(default=None, ge=1, le=20)
    subtitle_max_char_count_per_segment: int | None = Field(default=None, ge=1, le=500)


class JobSubmitResponse(BaseModel):
    job_id: str
    status: JobStatus
    status_url: str


class JobResponse(BaseModel):
    job_id: str
    translation_id: str
    iteration_id: str
    iteration_number: int
    status: JobStatus
    status_message: str
    request: TranslationJobRequest
    result: TranslationResult | None = None
    review: AggregatedReview | None = None
    approval_decision: ApprovalDecision | None = None
    approval_requested_at: datetime | None = None
    degraded_fields: list[str] = Field(default_factory=list)
    reliability_warning: bool = False
    error: str | None = None
    created_at: datetime
    last_updated_at: datetime

    model_config = {"from_attributes": True}


class ApprovalActionRequest(BaseModel):
    reviewer: str = Field(min_length=1, max_length=255)
    reason: str | None = None
    comments: str | None = None
