"""
TouchScheduler - when each touch of an enrollment is due

Touch 1 fires `delay_hours` after enrollment. Every later touch fires
`delay_hours` after the previous touch was processed, so a late touch pushes
the rest of the sequence back rather than bunching it up.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, time
from typing import List, Optional
from services.enums import EnrollmentStatus
from utils.datetime_utils import ensure_utc, utc_to_local, local_to_utc, is_valid_timezone, DEFAULT_TIMEZONE


@dataclass(frozen=True)
class TouchDefinition:
    touch_number: int
    channel: str
    delay_hours: int
    template_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'touch_number': self.touch_number,
            'channel': self.channel,
            'delay_hours': self.delay_hours,
            'template_id': self.template_id,
        }


@dataclass(frozen=True)
class DueTouch:
    enrollment_id: int
    touch: TouchDefinition
    fire_at: datetime
    is_final: bool


def plan_for(enrollment) -> List[TouchDefinition]:
    """The enrollment's touch plan, ordered by touch number."""
    touches = [
        TouchDefinition(
            touch_number=t['touch_number'],
            channel=t['channel'],
            delay_hours=t['delay_hours'],
            template_id=t.get('template_id')
        )
        for t in (enrollment.touch_plan or [])
    ]
    return sorted(touches, key=lambda t: t.touch_number)


def touch_at(enrollment, touch_number: int) -> Optional[TouchDefinition]:
    for touch in plan_for(enrollment):
        if touch.touch_number == touch_number:
            return touch
    return None


def fire_time(enrollment, touch_number: int) -> Optional[datetime]:
    """
    When a touch becomes due, or None if the touch doesn't exist.

    Only the touch the enrollment is waiting on (and touch 1) can be timed:
    later touches depend on when their predecessor is actually processed.
    """
    touch = touch_at(enrollment, touch_number)
    if touch is None:
        return None

    delay = timedelta(hours=touch.delay_hours)
    if touch_number == 1:
        return ensure_utc(enrollment.enrolled_at) + delay

    if touch_number != enrollment.current_touch:
        return None

    if enrollment.last_touch_at is not None:
        return ensure_utc(enrollment.last_touch_at) + delay

    # No recorded completion; assume every earlier touch went out on time
    elapsed = sum(t.delay_hours for t in plan_for(enrollment) if t.touch_number < touch_number)
    return ensure_utc(enrollment.enrolled_at) + timedelta(hours=elapsed) + delay


def next_due_at(enrollment) -> Optional[datetime]:
    """Fire time of the touch the enrollment is waiting on."""
    if enrollment.status != EnrollmentStatus.ACTIVE.value:
        return None
    return fire_time(enrollment, enrollment.current_touch)


def adjust_for_quiet_hours(when: datetime,
                           timezone_name: Optional[str],
                           quiet_start: int = 21,
                           quiet_end: int = 8) -> datetime:
    """
    Push an SMS send time out of the recipient's quiet hours.

    Sending is allowed from quiet_end:00 up to quiet_start:00 local time.
    Anything outside that window moves to the next quiet_end:00 local.
    """
    tz = timezone_name if is_valid_timezone(timezone_name) else DEFAULT_TIMEZONE
    local = utc_to_local(when, tz)
    if quiet_end <= local.hour < quiet_start:
        return ensure_utc(when)

    next_day = local.date()
    if local.hour >= quiet_start:
        next_day = next_day + timedelta(days=1)
    return local_to_utc(datetime.combine(next_day, time(quiet_end, 0)), tz)


class TouchScheduler:
    """Decides which touch, if any, an enrollment should fire now"""

    def __init__(self, send_log_ledger):
        self.send_log_ledger = send_log_ledger

    def due_touch(self, enrollment, now: datetime) -> Optional[DueTouch]:
        """
        The touch to fire, or None.

        None when the enrollment isn't active, it has run out of touches,
        the touch isn't due yet, or the ledger shows the touch already fired.
        """
        if enrollment.status != EnrollmentStatus.ACTIVE.value:
            return None

        plan = plan_for(enrollment)
        touch = touch_at(enrollment, enrollment.current_touch)
        if touch is None:
            return None

        fire_at = fire_time(enrollment, touch.touch_number)
        if fire_at is None or fire_at > ensure_utc(now):
            return None

        if self.send_log_ledger.has_touch_log(enrollment.id, touch.touch_number):
            return None

        return DueTouch(
            enrollment_id=enrollment.id,
            touch=touch,
            fire_at=fire_at,
            is_final=touch.touch_number == plan[-1].touch_number
        )
