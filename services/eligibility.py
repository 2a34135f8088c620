"""
Eligibility filter for outbound review requests.

Pure functions: no database access, no clock reads. Callers pass the
recipient, the current time and the cooldown that applies to them.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from services.enums import SkipReason, Channel
from utils.datetime_utils import ensure_utc


@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    reason: Optional[str] = None
    days_remaining: Optional[int] = None

    @classmethod
    def ok(cls) -> 'EligibilityDecision':
        return cls(eligible=True)

    @classmethod
    def skip(cls, reason: SkipReason, days_remaining: Optional[int] = None) -> 'EligibilityDecision':
        return cls(eligible=False, reason=reason.value, days_remaining=days_remaining)


def has_channel(customer, channel: Optional[str]) -> bool:
    """Whether the customer can be reached on the given channel at all."""
    if channel == Channel.EMAIL.value:
        return bool(customer.email)
    if channel == Channel.SMS.value:
        return bool(customer.phone) and customer.phone_status != 'invalid'
    return True


def cooldown_days_remaining(last_sent_at: Optional[datetime], now: datetime, cooldown: timedelta) -> int:
    """
    Whole days left before the customer may be contacted again, rounded up.

    Zero means the window has elapsed. The window end is exclusive, so a send
    exactly at last_sent_at + cooldown is allowed.
    """
    if last_sent_at is None or cooldown <= timedelta(0):
        return 0
    window_end = ensure_utc(last_sent_at) + cooldown
    remaining = window_end - ensure_utc(now)
    if remaining <= timedelta(0):
        return 0
    return math.ceil(remaining / timedelta(days=1))


def check_eligibility(customer,
                      now: datetime,
                      cooldown: timedelta,
                      channel: Optional[str] = None) -> EligibilityDecision:
    """
    Decide whether a single customer may receive a send right now.

    Reasons are checked in a fixed order so the same inputs always give the
    same reason: not found, opted out, archived, unreachable on the channel,
    then cooldown.

    Args:
        customer: Customer record, or None when the id did not resolve
        now: Current time
        cooldown: Minimum spacing since the customer's last send. Campaign
            touches pass timedelta(0); their spacing comes from touch delays.
        channel: When given, the customer must be reachable on it

    Returns:
        EligibilityDecision
    """
    if customer is None:
        return EligibilityDecision.skip(SkipReason.NOT_FOUND)

    if customer.opted_out:
        return EligibilityDecision.skip(SkipReason.OPTED_OUT)

    if customer.status == 'archived':
        return EligibilityDecision.skip(SkipReason.ARCHIVED)

    if channel is not None and not has_channel(customer, channel):
        return EligibilityDecision.skip(SkipReason.MISSING_CHANNEL)

    days = cooldown_days_remaining(customer.last_sent_at, now, cooldown)
    if days > 0:
        return EligibilityDecision.skip(SkipReason.COOLDOWN, days_remaining=days)

    return EligibilityDecision.ok()
