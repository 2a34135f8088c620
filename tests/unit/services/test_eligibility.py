"""
Tests for the eligibility filter
"""

import pytest
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone
from services.eligibility import check_eligibility, cooldown_days_remaining, has_channel

NOW = datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)
COOLDOWN = timedelta(days=14)


def make_customer(**overrides):
    values = {
        'email': 'jamie@example.com',
        'phone': '+15551234567',
        'phone_status': 'valid',
        'opted_out': False,
        'status': 'active',
        'last_sent_at': None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestCheckEligibility:

    def test_missing_customer_is_not_found(self):
        decision = check_eligibility(None, NOW, COOLDOWN)
        assert decision.eligible is False
        assert decision.reason == 'not_found'

    def test_fresh_customer_is_eligible(self):
        decision = check_eligibility(make_customer(), NOW, COOLDOWN, 'email')
        assert decision.eligible is True
        assert decision.reason is None

    def test_opted_out_wins_over_every_later_reason(self):
        customer = make_customer(
            opted_out=True,
            status='archived',
            email=None,
            last_sent_at=NOW - timedelta(days=1)
        )
        assert check_eligibility(customer, NOW, COOLDOWN, 'email').reason == 'opted_out'

    def test_archived_checked_before_channel_and_cooldown(self):
        customer = make_customer(status='archived', email=None, last_sent_at=NOW)
        assert check_eligibility(customer, NOW, COOLDOWN, 'email').reason == 'archived'

    def test_missing_channel_checked_before_cooldown(self):
        customer = make_customer(email=None, last_sent_at=NOW)
        assert check_eligibility(customer, NOW, COOLDOWN, 'email').reason == 'missing_channel'

    def test_channel_not_checked_when_not_given(self):
        customer = make_customer(email=None, phone=None)
        assert check_eligibility(customer, NOW, COOLDOWN).eligible is True

    def test_cooldown_reports_days_remaining(self):
        customer = make_customer(last_sent_at=NOW - timedelta(days=10))
        decision = check_eligibility(customer, NOW, COOLDOWN, 'email')
        assert decision.reason == 'cooldown'
        assert decision.days_remaining == 4

    def test_send_exactly_at_window_end_is_allowed(self):
        customer = make_customer(last_sent_at=NOW - COOLDOWN)
        assert check_eligibility(customer, NOW, COOLDOWN, 'email').eligible is True

    def test_send_one_second_inside_window_is_blocked(self):
        customer = make_customer(last_sent_at=NOW - COOLDOWN + timedelta(seconds=1))
        decision = check_eligibility(customer, NOW, COOLDOWN, 'email')
        assert decision.eligible is False
        assert decision.reason == 'cooldown'
        assert decision.days_remaining == 1

    def test_zero_cooldown_ignores_last_send(self):
        customer = make_customer(last_sent_at=NOW)
        assert check_eligibility(customer, NOW, timedelta(0), 'email').eligible is True

    def test_naive_last_sent_at_is_treated_as_utc(self):
        customer = make_customer(last_sent_at=datetime(2026, 2, 27, 17, 0))
        decision = check_eligibility(customer, NOW, COOLDOWN, 'email')
        assert decision.days_remaining == 11


class TestCooldownDaysRemaining:

    @pytest.mark.parametrize('sent_ago,expected', [
        (timedelta(days=14), 0),
        (timedelta(days=13, hours=23, minutes=59), 1),
        (timedelta(days=13), 1),
        (timedelta(hours=1), 14),
        (timedelta(days=30), 0),
    ])
    def test_rounds_partial_days_up(self, sent_ago, expected):
        assert cooldown_days_remaining(NOW - sent_ago, NOW, COOLDOWN) == expected

    def test_never_sent(self):
        assert cooldown_days_remaining(None, NOW, COOLDOWN) == 0


class TestHasChannel:

    def test_invalid_phone_is_unreachable_by_sms(self):
        assert has_channel(make_customer(phone_status='invalid'), 'sms') is False

    def test_unknown_phone_status_is_still_reachable(self):
        assert has_channel(make_customer(phone_status='unknown'), 'sms') is True

    def test_email_needs_an_address(self):
        assert has_channel(make_customer(email=''), 'email') is False
