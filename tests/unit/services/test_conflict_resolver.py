"""
Tests for the enrollment resolution state machine
"""

import pytest
from services.conflict_resolver import (
    ResolverEvent, InvalidTransitionError, TRANSITIONS,
    transition, can_transition, as_resolution, to_column, event_for_action
)
from services.enums import EnrollmentResolution as R


class TestTransition:

    @pytest.mark.parametrize('current,event,expected', [
        (None, ResolverEvent.DETECT_CONFLICT, R.CONFLICT),
        ('conflict', ResolverEvent.SKIP, R.SKIPPED),
        ('conflict', ResolverEvent.QUEUE_AFTER, R.QUEUE_AFTER),
        ('conflict', ResolverEvent.REPLACE, R.NONE),
        ('skipped', ResolverEvent.REVERT, R.NONE),
        ('queue_after', ResolverEvent.REVERT, R.NONE),
        ('replace_on_complete', ResolverEvent.REVERT, R.NONE),
        (None, ResolverEvent.PREFLIGHT_REPLACE, R.REPLACE_ON_COMPLETE),
        ('replace_on_complete', ResolverEvent.REPLACE, R.NONE),
        (None, ResolverEvent.SUPPRESS, R.SUPPRESSED),
        ('conflict', ResolverEvent.SUPPRESS, R.SUPPRESSED),
        ('queue_after', ResolverEvent.SUPPRESS, R.SUPPRESSED),
        ('queue_after', ResolverEvent.ENROLLED, R.NONE),
    ])
    def test_allowed(self, current, event, expected):
        assert transition(current, event) == expected

    @pytest.mark.parametrize('current,event', [
        (None, ResolverEvent.SKIP),
        (None, ResolverEvent.REVERT),
        (None, ResolverEvent.REPLACE),
        ('suppressed', ResolverEvent.REVERT),
        ('suppressed', ResolverEvent.DETECT_CONFLICT),
        ('skipped', ResolverEvent.REPLACE),
        ('skipped', ResolverEvent.ENROLLED),
        ('conflict', ResolverEvent.DETECT_CONFLICT),
        ('conflict', ResolverEvent.PREFLIGHT_REPLACE),
    ])
    def test_rejected(self, current, event):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(current, event)
        assert exc_info.value.event == event
        assert exc_info.value.current == as_resolution(current)
        assert can_transition(current, event) is False

    def test_suppressed_is_terminal(self):
        assert not any(state == R.SUPPRESSED for state, _ in TRANSITIONS)

    def test_skip_and_queue_after_are_idempotent(self):
        assert transition('skipped', ResolverEvent.SKIP) == R.SKIPPED
        assert transition('queue_after', ResolverEvent.QUEUE_AFTER) == R.QUEUE_AFTER


class TestColumnMapping:

    def test_null_column_is_none(self):
        assert as_resolution(None) == R.NONE
        assert to_column(R.NONE) is None

    def test_round_trip_for_stored_values(self):
        assert to_column(as_resolution('queue_after')) == 'queue_after'

    def test_unknown_column_value(self):
        with pytest.raises(ValueError):
            as_resolution('maybe')


class TestEventForAction:

    def test_operator_actions(self):
        assert event_for_action('replace') == ResolverEvent.REPLACE
        assert event_for_action('skip') == ResolverEvent.SKIP
        assert event_for_action('queue_after') == ResolverEvent.QUEUE_AFTER

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            event_for_action('ignore')
