"""
ConflictResolver - the enrollment resolution state machine

A job's enrollment_resolution only changes through transition(). Anything
not in the table raises InvalidTransitionError, so an impossible state can't
be reached by adding a flag somewhere else.

    none ──detect_conflict──▶ conflict ──skip──▶ skipped ──revert──▶ none
      │                          │  └──queue_after──▶ queue_after ──revert──▶ none
      │                          └──replace──▶ none (new enrollment, old one stopped)
      ├──suppress──▶ suppressed   (also from conflict and queue_after)
      └──preflight_replace──▶ replace_on_complete ──replace──▶ none
"""

from enum import Enum
from typing import Optional, Union
from services.enums import EnrollmentResolution as R, ResolutionAction


class ResolverEvent(str, Enum):
    DETECT_CONFLICT = 'detect_conflict'
    SUPPRESS = 'suppress'
    PREFLIGHT_REPLACE = 'preflight_replace'
    REPLACE = 'replace'
    SKIP = 'skip'
    QUEUE_AFTER = 'queue_after'
    REVERT = 'revert'
    ENROLLED = 'enrolled'


class InvalidTransitionError(Exception):
    """Raised for an event the current resolution doesn't accept"""
    def __init__(self, current: R, event: ResolverEvent):
        super().__init__(f"Cannot {event.value} a job whose resolution is {current.value}")
        self.current = current
        self.event = event


TRANSITIONS = {
    (R.NONE, ResolverEvent.DETECT_CONFLICT): R.CONFLICT,
    (R.NONE, ResolverEvent.SUPPRESS): R.SUPPRESSED,
    (R.CONFLICT, ResolverEvent.SUPPRESS): R.SUPPRESSED,
    (R.QUEUE_AFTER, ResolverEvent.SUPPRESS): R.SUPPRESSED,
    (R.NONE, ResolverEvent.PREFLIGHT_REPLACE): R.REPLACE_ON_COMPLETE,
    (R.REPLACE_ON_COMPLETE, ResolverEvent.PREFLIGHT_REPLACE): R.REPLACE_ON_COMPLETE,

    # Replace is destructive: the old enrollment is stopped for good
    (R.CONFLICT, ResolverEvent.REPLACE): R.NONE,
    (R.REPLACE_ON_COMPLETE, ResolverEvent.REPLACE): R.NONE,

    (R.CONFLICT, ResolverEvent.SKIP): R.SKIPPED,
    (R.SKIPPED, ResolverEvent.SKIP): R.SKIPPED,
    (R.CONFLICT, ResolverEvent.QUEUE_AFTER): R.QUEUE_AFTER,
    (R.QUEUE_AFTER, ResolverEvent.QUEUE_AFTER): R.QUEUE_AFTER,

    (R.SKIPPED, ResolverEvent.REVERT): R.NONE,
    (R.QUEUE_AFTER, ResolverEvent.REVERT): R.NONE,
    (R.REPLACE_ON_COMPLETE, ResolverEvent.REVERT): R.NONE,

    # The blocker went away before anyone decided
    (R.NONE, ResolverEvent.ENROLLED): R.NONE,
    (R.CONFLICT, ResolverEvent.ENROLLED): R.NONE,
    (R.QUEUE_AFTER, ResolverEvent.ENROLLED): R.NONE,
}

ACTION_EVENTS = {
    ResolutionAction.REPLACE: ResolverEvent.REPLACE,
    ResolutionAction.SKIP: ResolverEvent.SKIP,
    ResolutionAction.QUEUE_AFTER: ResolverEvent.QUEUE_AFTER,
}


def as_resolution(value: Union[str, R, None]) -> R:
    """Map the stored column value (NULL for none) to the enum."""
    if value is None:
        return R.NONE
    return R(value)


def to_column(resolution: R) -> Optional[str]:
    return None if resolution == R.NONE else resolution.value


def transition(current: Union[str, R, None], event: ResolverEvent) -> R:
    """
    The single authority on resolution changes.

    Raises:
        InvalidTransitionError: The event isn't valid from the current resolution
    """
    state = as_resolution(current)
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None


def can_transition(current: Union[str, R, None], event: ResolverEvent) -> bool:
    return (as_resolution(current), event) in TRANSITIONS


def event_for_action(action: Union[str, ResolutionAction]) -> ResolverEvent:
    """
    Raises:
        ValueError: Unknown action
    """
    return ACTION_EVENTS[ResolutionAction(action)]
