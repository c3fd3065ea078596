"""
Status constants for the content validation & moderation pipeline.
Moderation lifecycle: Queued → Approved | Rejected (terminal, never deleted)
Assessment lifecycle: Pending → Processing → Done | Failed (retried up to the attempt limit)
"""


class RuleType:
    """Validation rule categories."""
    SAFETY = 'safety'
    QUALITY = 'quality'
    PLAGIARISM = 'plagiarism'

    ALL = (SAFETY, QUALITY, PLAGIARISM)


class Severity:
    """Validation rule severities."""
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    ALL = (LOW, MEDIUM, HIGH, CRITICAL)


SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class MaturityRating:
    """Maturity ratings, lowest to highest."""
    G = 'G'
    PG = 'PG'
    PG_13 = 'PG-13'
    R = 'R'
    NC_17 = 'NC-17'


RATING_RANK = {
    MaturityRating.G: 0,
    MaturityRating.PG: 1,
    MaturityRating.PG_13: 2,
    MaturityRating.R: 3,
    MaturityRating.NC_17: 4,
}

# Rating suggested by a safety match when the rule names no tier
SEVERITY_RATING = {
    Severity.LOW: MaturityRating.PG,
    Severity.MEDIUM: MaturityRating.PG_13,
    Severity.HIGH: MaturityRating.R,
    Severity.CRITICAL: MaturityRating.NC_17,
}


class SubjectType:
    """What a moderation entry or validation result points at."""
    WORK = 'work'
    SECTION = 'section'

    ALL = (WORK, SECTION)


class PublishStatus:
    """Publish status of works and sections."""
    DRAFT = 'draft'
    PUBLISHED = 'published'
    ONGOING = 'ongoing'


class QueueStatus:
    """Moderation queue entry statuses."""
    QUEUED = 'queued'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    TERMINAL = (APPROVED, REJECTED)


class QueuePriority:
    """Moderation queue priorities."""
    URGENT = 'urgent'
    HIGH = 'high'
    NORMAL = 'normal'
    LOW = 'low'

    ALL = (URGENT, HIGH, NORMAL, LOW)


PRIORITY_RANK = {
    QueuePriority.URGENT: 3,
    QueuePriority.HIGH: 2,
    QueuePriority.NORMAL: 1,
    QueuePriority.LOW: 0,
}


class ReviewAction:
    """Actions a moderator can take on a queue entry."""
    APPROVE = 'approve'
    REJECT = 'reject'
    FLAG = 'flag'

    ALL = (APPROVE, REJECT, FLAG)


class JobStatus:
    """Quality-assessment job statuses."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    DONE = 'done'
    FAILED = 'failed'

    ALL = (PENDING, PROCESSING, DONE, FAILED)


class VariantType:
    """Competing fan-content variants."""
    TRANSLATION = 'translation'
    AUDIOBOOK = 'audiobook'

    ALL = (TRANSLATION, AUDIOBOOK)


class VariantStatus:
    """Fan-content variant statuses."""
    ACTIVE = 'active'
    PENDING_APPROVAL = 'pending_approval'
    REJECTED = 'rejected'


class DealStatus:
    """Tier 3 revenue-share deal statuses."""
    PENDING_CREATOR = 'pending_creator'
    ACTIVE = 'active'
    REJECTED = 'rejected'


class DealAction:
    """Creator decisions on a deal."""
    APPROVE = 'approve'
    REJECT = 'reject'

    ALL = (APPROVE, REJECT)


class DealContentType:
    """Content covered by a Tier 3 deal."""
    TRANSLATION = 'TRANSLATION'
    AUDIOBOOK = 'AUDIOBOOK'


class UserRole:
    """Cognito groups used for capability checks."""
    READER = 'reader'
    CREATOR = 'creator'
    MODERATOR = 'moderator'
    ADMIN = 'admin'
