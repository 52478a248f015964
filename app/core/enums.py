import enum


class JobStatus(str, enum.Enum):
    SUBMITTED = "Submitted"
    VALIDATING = "Validating"
    VALIDATED = "Validated"
    CREATING_TRANSLATION = "CreatingTranslation"
    TRANSLATION_CREATED = "TranslationCreated"
    CREATING_ITERATION = "CreatingIteration"
    PROCESSING = "Processing"
    COPYING_OUTPUTS = "CopyingOutputs"
    RUNNING_VALIDATION = "RunningValidation"
    PENDING_APPROVAL = "PendingApproval"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    FAILED = "Failed"


# Forward order of the lifecycle. Approved and Rejected share a rank: exactly one is reached.
STATUS_RANK: dict[JobStatus, int] = {
    JobStatus.SUBMITTED: 0,
    JobStatus.VALIDATING: 1,
    JobStatus.VALIDATED: 2,
    JobStatus.CREATING_TRANSLATION: 3,
    JobStatus.TRANSLATION_CREATED: 4,
    JobStatus.CREATING_ITERATION: 5,
    JobStatus.PROCESSING: 6,
    JobStatus.COPYING_OUTPUTS: 7,
    JobStatus.RUNNING_VALIDATION: 8,
    JobStatus.PENDING_APPROVAL: 9,
    JobStatus.APPROVED: 10,
    JobStatus.REJECTED: 10,
    JobStatus.FAILED: 11,
}

TERMINAL_STATUSES = frozenset({JobStatus.APPROVED, JobStatus.REJECTED, JobStatus.FAILED})


class VoiceKind(str, enum.Enum):
    PLATFORM_VOICE = "PlatformVoice"
    PERSONAL_VOICE = "PersonalVoice"


class IssueSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK: dict[IssueSeverity, int] = {
    IssueSeverity.CRITICAL: 0,
    IssueSeverity.HIGH: 1,
    IssueSeverity.MEDIUM: 2,
    IssueSeverity.LOW: 3,
}


class Recommendation(str, enum.Enum):
    APPROVE = "Approve"
    NEEDS_REVIEW = "NeedsReview"
    REJECT = "Reject"


class AgentType(str, enum.Enum):
    ORCHESTRATOR = "orchestrator"
    TRANSLATION = "translation"
    TECHNICAL = "technical"
    CULTURAL = "cultural"


class ExternalStatus(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
