from datetime import datetime

from pydantic import BaseModel, Field

from app.core.enums import STATUS_RANK, TERMINAL_STATUSES, JobStatus, VoiceKind
from app.core.errors import InvalidTransitionError
from app.models.review import AggregatedReview


class TranslationJobRequest(BaseModel):
    display_name: str = ""
    description: str | None = None
    video_url: str | None = None
    blob_path: str | None = None
    source_locale: str = ""
    target_locale: str = ""
    voice_kind: str = VoiceKind.PLATFORM_VOICE.value
    speaker_count: int | None = None
    subtitle_max_char_count_per_segment: int | None = None
    export_subtitle_in_video: bool = False
    enable_lip_sync: bool = False


class StoredOutputs(BaseModel):
    translated_video_url: str | None = None
    source_subtitle_url: str | None = None
    target_subtitle_url: str | None = None
    metadata_url: str | None = None


class TranslationResult(BaseModel):
    translated_video_url: str | None = None
    source_subtitle_url: str | None = None
    target_subtitle_url: str | None = None
    metadata_url: str | None = None
    stored_outputs: StoredOutputs | None = None

    def preferred_source_subtitle_url(self) -> str | None:
        if self.stored_outputs and self.stored_outputs.source_subtitle_url:
            return self.stored_outputs.source_subtitle_url
        return self.source_subtitle_url

    def preferred_target_subtitle_url(self) -> str | None:
        if self.stored_outputs and self.stored_outputs.target_subtitle_url:
            return self.stored_outputs.target_subtitle_url
        return self.target_subtitle_url


class ApprovalDecision(BaseModel):
    approved: bool
    reviewer: str
    reason: str | None = None
    comments: str | None = None
    decided_at: datetime


class Job(BaseModel):
    job_id: str
    translation_id: str
    iteration_number: int = 1
    iteration_id: str = "iteration-1"
    request: TranslationJobRequest
    status: JobStatus = JobStatus.SUBMITTED
    status_message: str = "Job submitted"
    video_file_url: str | None = None
    result: TranslationResult | None = None
    review: AggregatedReview | None = None
    approval_decision: ApprovalDecision | None = None
    approval_requested_at: datetime | None = None
    degraded_fields: list[str] = Field(default_factory=list)
    reliability_warning: bool = False
    error: str | None = None
    created_at: datetime
    last_updated_at: datetime
    status_entered_at: datetime
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(self, status: JobStatus, message: str, *, now: datetime) -> bool:
        """Move forward to ``status``. Returns False when already there (message refresh only)."""
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Job {self.job_id} is {self.status.value}; terminal jobs are immutable"
            )
        if status == self.status:
            self.status_message = message
            self.last_updated_at = now
            return False
        if status != JobStatus.FAILED and STATUS_RANK[status] < STATUS_RANK[self.status]:
            raise InvalidTransitionError(
                f"Job {self.job_id} cannot move from {self.status.value} back to {status.value}"
            )
        self.status = status
        self.status_message = message
        self.last_updated_at = now
        self.status_entered_at = now
        return True

    def fail(self, error: str, message: str, *, now: datetime) -> None:
        self.error = error
        self.advance(JobStatus.FAILED, message, now=now)

    def mark_degraded(self, field: str, *, threshold: int) -> None:
        if field not in self.degraded_fields:
            self.degraded_fields.append(field)
        if threshold > 0 and len(self.degraded_fields) >= threshold:
            self.reliability_warning = True
