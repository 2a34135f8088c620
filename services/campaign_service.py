"""
CampaignService - authoring and matching of review request campaigns

Campaigns are built through CampaignBuilder or new_campaign(), both of which
refuse to produce an invalid touch list. The service persists drafts and
picks which campaign a completed job should enroll into.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any
from logging_config import get_logger
from services.common.result import Result
from services.enums import Channel, ErrorCode, StopReason
from services.touch_scheduler import TouchDefinition
from utils.datetime_utils import utc_now

logger = get_logger(__name__)


MAX_TOUCHES = 4
MIN_DELAY_HOURS = 1
MAX_DELAY_HOURS = 720  # 30 days

SERVICE_TYPES = (
    'hvac', 'plumbing', 'electrical', 'cleaning',
    'roofing', 'painting', 'handyman', 'other',
)

ONE_OFF_OVERRIDE = 'one_off'


class CampaignValidationError(ValueError):
    """Raised when a campaign definition breaks the authoring rules"""
    def __init__(self, field_errors: Dict[str, List[str]]):
        super().__init__('; '.join(
            f"{name}: {', '.join(messages)}" for name, messages in sorted(field_errors.items())
        ))
        self.field_errors = field_errors


@dataclass(frozen=True)
class CampaignDraft:
    """A validated, not yet persisted campaign"""
    name: str
    touches: List[TouchDefinition]
    service_type: Optional[str] = None


@dataclass(frozen=True)
class CampaignPreset:
    id: str
    name: str
    description: str
    touches: List[TouchDefinition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'touches': [t.to_dict() for t in self.touches],
        }


CAMPAIGN_PRESETS = {
    'conservative': CampaignPreset(
        id='conservative',
        name='Gentle Follow-Up',
        description='Two emails over 3 days. Good for established relationships or high-ticket services.',
        touches=[
            TouchDefinition(1, Channel.EMAIL.value, 24),
            TouchDefinition(2, Channel.EMAIL.value, 72),
        ],
    ),
    'standard': CampaignPreset(
        id='standard',
        name='Standard Follow-Up',
        description='Two emails and a text message over 7 days. Works well for most businesses.',
        touches=[
            TouchDefinition(1, Channel.EMAIL.value, 24),
            TouchDefinition(2, Channel.EMAIL.value, 72),
            TouchDefinition(3, Channel.SMS.value, 168),
        ],
    ),
    'aggressive': CampaignPreset(
        id='aggressive',
        name='Aggressive Follow-Up',
        description='A text within hours, then email and SMS reminders. Best for quick-turnaround services.',
        touches=[
            TouchDefinition(1, Channel.SMS.value, 4),
            TouchDefinition(2, Channel.EMAIL.value, 24),
            TouchDefinition(3, Channel.SMS.value, 72),
            TouchDefinition(4, Channel.EMAIL.value, 168),
        ],
    ),
}


def _validate(name: str, touches: List[TouchDefinition], service_type: Optional[str]) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}

    if not name or not name.strip():
        errors.setdefault('name', []).append('Name is required')

    if service_type is not None and service_type not in SERVICE_TYPES:
        errors.setdefault('service_type', []).append(f"Unknown service type: {service_type}")

    if not touches:
        errors.setdefault('touches', []).append('At least one touch is required')
    elif len(touches) > MAX_TOUCHES:
        errors.setdefault('touches', []).append(f"At most {MAX_TOUCHES} touches are allowed")

    numbers = [t.touch_number for t in touches]
    if touches and numbers != list(range(1, len(touches) + 1)):
        errors.setdefault('touches', []).append('Touch numbers must be contiguous starting at 1')

    for touch in touches:
        key = f"touches[{touch.touch_number}]"
        if touch.channel not in (Channel.EMAIL.value, Channel.SMS.value):
            errors.setdefault(key, []).append(f"Unknown channel: {touch.channel}")
        if not isinstance(touch.delay_hours, int) or isinstance(touch.delay_hours, bool) \
                or not MIN_DELAY_HOURS <= touch.delay_hours <= MAX_DELAY_HOURS:
            errors.setdefault(key, []).append(
                f"Delay must be between {MIN_DELAY_HOURS} and {MAX_DELAY_HOURS} hours"
            )

    return errors


def new_campaign(name: str,
                 touches: List[Dict[str, Any]],
                 service_type: Optional[str] = None) -> CampaignDraft:
    """
    Build a campaign from explicit touch dicts.

    Touches may arrive in any order but must number 1..n with no gaps.

    Raises:
        CampaignValidationError: If any authoring rule is broken
    """
    try:
        definitions = sorted(
            (
                TouchDefinition(
                    touch_number=t['touch_number'],
                    channel=t['channel'],
                    delay_hours=t['delay_hours'],
                    template_id=t.get('template_id')
                )
                for t in touches
            ),
            key=lambda t: t.touch_number
        )
    except (KeyError, TypeError) as e:
        raise CampaignValidationError({'touches': [f"Malformed touch: {e}"]}) from e

    errors = _validate(name, definitions, service_type)
    if errors:
        raise CampaignValidationError(errors)
    return CampaignDraft(name=name.strip(), touches=definitions, service_type=service_type)


class CampaignBuilder:
    """
    Fluent construction of a campaign. Touch numbers are assigned in the
    order touches are added, so contiguity holds by construction.

        draft = CampaignBuilder('Roof follow-up', 'roofing')\\
            .add_touch('email', 24)\\
            .add_touch('sms', 72)\\
            .build()
    """

    def __init__(self, name: str, service_type: Optional[str] = None):
        self.name = name
        self.service_type = service_type
        self._touches: List[TouchDefinition] = []

    def add_touch(self, channel: str, delay_hours: int, template_id: Optional[int] = None) -> 'CampaignBuilder':
        if len(self._touches) >= MAX_TOUCHES:
            raise CampaignValidationError({'touches': [f"At most {MAX_TOUCHES} touches are allowed"]})
        self._touches.append(TouchDefinition(
            touch_number=len(self._touches) + 1,
            channel=channel,
            delay_hours=delay_hours,
            template_id=template_id
        ))
        return self

    def build(self) -> CampaignDraft:
        errors = _validate(self.name, self._touches, self.service_type)
        if errors:
            raise CampaignValidationError(errors)
        return CampaignDraft(name=self.name.strip(), touches=list(self._touches), service_type=self.service_type)

    @classmethod
    def from_preset(cls, preset_id: str, name: Optional[str] = None,
                    service_type: Optional[str] = None) -> 'CampaignBuilder':
        """
        Raises:
            KeyError: Unknown preset id
        """
        preset = CAMPAIGN_PRESETS[preset_id]
        builder = cls(name or preset.name, service_type)
        for touch in preset.touches:
            builder.add_touch(touch.channel, touch.delay_hours, touch.template_id)
        return builder


class CampaignService:
    """Persists campaigns and matches jobs to them"""

    def __init__(self, campaign_repository, enrollment_repository):
        self.campaign_repository = campaign_repository
        self.enrollment_repository = enrollment_repository

    def create_campaign(self, account_id: int, draft: CampaignDraft) -> Result:
        campaign = self.campaign_repository.create(
            account_id=account_id,
            name=draft.name,
            service_type=draft.service_type,
            status='active'
        )
        self.campaign_repository.replace_touches(campaign, [t.to_dict() for t in draft.touches])
        self.campaign_repository.commit()
        logger.info("Campaign created", account_id=account_id, campaign_id=campaign.id,
                    touches=len(draft.touches))
        return Result.success(campaign)

    def create_from_preset(self, account_id: int, preset_id: str,
                           name: Optional[str] = None,
                           service_type: Optional[str] = None) -> Result:
        if preset_id not in CAMPAIGN_PRESETS:
            return Result.validation_error({'preset': [f"Unknown preset: {preset_id}"]})
        try:
            draft = CampaignBuilder.from_preset(preset_id, name, service_type).build()
        except CampaignValidationError as e:
            return Result.validation_error(e.field_errors)
        return self.create_campaign(account_id, draft)

    def replace_touches(self, account_id: int, campaign_id: int, draft: CampaignDraft) -> Result:
        """
        Change a campaign's touches. Existing enrollments keep the plan they
        enrolled with; only new enrollments see the change.
        """
        campaign = self.campaign_repository.get_for_account(account_id, campaign_id)
        if campaign is None:
            return Result.failure("Campaign not found", code=ErrorCode.NOT_FOUND.value)
        self.campaign_repository.replace_touches(campaign, [t.to_dict() for t in draft.touches])
        self.campaign_repository.commit()
        return Result.success(campaign)

    def pause_campaign(self, account_id: int, campaign_id: int, now: Optional[datetime] = None) -> Result:
        """Pause a campaign and stop its active enrollments."""
        now = now or utc_now()
        campaign = self.campaign_repository.get_for_account(account_id, campaign_id)
        if campaign is None:
            return Result.failure("Campaign not found", code=ErrorCode.NOT_FOUND.value)

        self.campaign_repository.update(campaign, status='paused')
        stopped = self.enrollment_repository.stop_active_for_campaign(
            campaign.id, StopReason.CAMPAIGN_PAUSED.value, now
        )
        self.campaign_repository.commit()
        logger.info("Campaign paused", campaign_id=campaign.id, enrollments_stopped=stopped)
        return Result.success({'campaign_id': campaign.id, 'enrollments_stopped': stopped})

    def find_campaign_for_job(self, job):
        """
        The campaign a completed job should enroll into, or None.

        An explicit override wins when it still points at an active campaign
        of the same account. Otherwise: the campaign for the job's service
        type, then the "all services" campaign.
        """
        override = job.campaign_override
        if override and override != ONE_OFF_OVERRIDE:
            campaign = None
            if override.isdigit():
                campaign = self.campaign_repository.get_for_account(job.account_id, int(override))
            if campaign is not None and campaign.status == 'active':
                return campaign
            logger.info("Campaign override is stale, falling back to auto-match",
                        job_id=job.id, campaign_override=override)

        if job.service_type:
            campaign = self.campaign_repository.find_active_for_service_type(job.account_id, job.service_type)
            if campaign is not None:
                return campaign

        return self.campaign_repository.find_active_for_service_type(job.account_id, None)
