"""
Service layer enums
These enums mirror the string values stored in the database so services can
reason about state without importing the models.
"""

from enum import Enum


class JobStatus(str, Enum):
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    DO_NOT_SEND = 'do_not_send'


class EnrollmentStatus(str, Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'
    STOPPED = 'stopped'


class EnrollmentResolution(str, Enum):
    """Disposition of a job whose enrollment could not simply be created"""
    NONE = 'none'
    CONFLICT = 'conflict'
    QUEUE_AFTER = 'queue_after'
    REPLACE_ON_COMPLETE = 'replace_on_complete'
    SUPPRESSED = 'suppressed'
    SKIPPED = 'skipped'


class ResolutionAction(str, Enum):
    """Operator choices for a job in conflict"""
    REPLACE = 'replace'
    SKIP = 'skip'
    QUEUE_AFTER = 'queue_after'


class EnrollmentOutcome(str, Enum):
    """What evaluating a completed job produced"""
    ENROLLED = 'enrolled'
    ALREADY_ENROLLED = 'already_enrolled'
    CONFLICT = 'conflict'
    SUPPRESSED = 'suppressed'
    SKIPPED = 'skipped'
    QUEUED = 'queued'
    ONE_OFF = 'one_off'
    NOT_ENROLLED = 'not_enrolled'


class StopReason(str, Enum):
    REPLACED = 'replaced'
    OWNER_STOPPED = 'owner_stopped'
    REVIEW_CLICKED = 'review_clicked'
    FEEDBACK_SUBMITTED = 'feedback_submitted'
    OPTED_OUT = 'opted_out'
    CAMPAIGN_PAUSED = 'campaign_paused'


# Stopping for one of these means the customer already reviewed
REVIEW_STOP_REASONS = (StopReason.REVIEW_CLICKED.value, StopReason.FEEDBACK_SUBMITTED.value)


class Channel(str, Enum):
    EMAIL = 'email'
    SMS = 'sms'


class SendStatus(str, Enum):
    PENDING = 'pending'
    SENT = 'sent'
    DELIVERED = 'delivered'
    FAILED = 'failed'
    BOUNCED = 'bounced'
    COMPLAINED = 'complained'


# Statuses that used up a unit of monthly quota
CONSUMED_SEND_STATUSES = (
    SendStatus.SENT.value,
    SendStatus.DELIVERED.value,
    SendStatus.BOUNCED.value,
    SendStatus.COMPLAINED.value,
)

# Statuses an operator may explicitly re-send
RESENDABLE_STATUSES = (
    SendStatus.FAILED.value,
    SendStatus.BOUNCED.value,
    SendStatus.COMPLAINED.value,
)


class ScheduledSendStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


class SkipReason(str, Enum):
    """Why a recipient was not sent to. Never raised as an error."""
    NOT_FOUND = 'not_found'
    OPTED_OUT = 'opted_out'
    ARCHIVED = 'archived'
    MISSING_CHANNEL = 'missing_channel'
    COOLDOWN = 'cooldown'


class RecipientStatus(str, Enum):
    SENT = 'sent'
    SKIPPED = 'skipped'
    FAILED = 'failed'


class TouchOutcomeStatus(str, Enum):
    SENT = 'sent'
    SKIPPED = 'skipped'
    FAILED = 'failed'
    DEFERRED = 'deferred'
    ALREADY_LOGGED = 'already_logged'


class AccountTier(str, Enum):
    TRIAL = 'trial'
    BASIC = 'basic'
    PRO = 'pro'


class ErrorCode(str, Enum):
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    NOT_FOUND = 'NOT_FOUND'
    QUOTA_EXCEEDED = 'QUOTA_EXCEEDED'
    INELIGIBLE = 'INELIGIBLE'
    TRANSPORT_FAILED = 'TRANSPORT_FAILED'
    INVALID_STATE = 'INVALID_STATE'
