"""
Tests for QuotaService in soft and strict mode
"""

import pytest
from types import SimpleNamespace
from unittest.mock import Mock
from datetime import datetime, timezone
from repositories.account_repository import AccountRepository, QuotaUsageRepository
from repositories.send_log_repository import SendLogRepository
from services.quota_service import QuotaService, QuotaReservation, QuotaStatus

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def account():
    return SimpleNamespace(id=1, tier='trial')


@pytest.fixture
def mock_account_repository(account):
    mock = Mock(spec=AccountRepository)
    mock.get_by_id.return_value = account
    return mock


@pytest.fixture
def mock_send_log_repository():
    mock = Mock(spec=SendLogRepository)
    mock.count_consumed_since.return_value = 0
    return mock


@pytest.fixture
def mock_quota_usage_repository():
    return Mock(spec=QuotaUsageRepository)


def build(account_repo, send_log_repo, usage_repo, strict=False):
    return QuotaService(
        account_repository=account_repo,
        send_log_repository=send_log_repo,
        quota_usage_repository=usage_repo,
        strict=strict
    )


class TestSoftQuota:

    @pytest.fixture
    def service(self, mock_account_repository, mock_send_log_repository, mock_quota_usage_repository):
        return build(mock_account_repository, mock_send_log_repository, mock_quota_usage_repository)

    def test_counts_consumed_sends_since_start_of_month(self, service, mock_send_log_repository):
        mock_send_log_repository.count_consumed_since.return_value = 20

        result = service.check(1, 5, NOW)

        assert result.is_success
        assert result.data.strict is False
        assert result.data.status == QuotaStatus(limit=25, used=20)
        mock_send_log_repository.count_consumed_since.assert_called_once_with(
            1, datetime(2026, 3, 1, tzinfo=timezone.utc)
        )

    def test_whole_batch_is_rejected_when_it_does_not_fit(self, service, mock_send_log_repository):
        mock_send_log_repository.count_consumed_since.return_value = 21

        result = service.check(1, 5, NOW)

        assert result.is_failure
        assert result.error_code == 'QUOTA_EXCEEDED'
        assert result.metadata == {'remaining': 4, 'limit': 25, 'used': 21}

    def test_exhausted_quota(self, service, mock_send_log_repository):
        mock_send_log_repository.count_consumed_since.return_value = 30

        result = service.check(1, 1, NOW)

        assert result.metadata['remaining'] == 0

    def test_unknown_account(self, service, mock_account_repository):
        mock_account_repository.get_by_id.return_value = None
        assert service.check(99, 1, NOW).error_code == 'NOT_FOUND'

    def test_settle_is_a_no_op(self, service, mock_quota_usage_repository):
        reservation = QuotaReservation(1, '2026-03', 5, False, QuotaStatus(25, 0))
        service.settle(reservation, 2)
        mock_quota_usage_repository.release.assert_not_called()

    def test_limits_by_tier(self, service):
        assert service.limit_for(SimpleNamespace(tier='trial')) == 25
        assert service.limit_for(SimpleNamespace(tier='pro')) == 500
        assert service.limit_for(SimpleNamespace(tier='legacy')) == 200


class TestStrictQuota:

    @pytest.fixture
    def service(self, mock_account_repository, mock_send_log_repository, mock_quota_usage_repository):
        return build(mock_account_repository, mock_send_log_repository, mock_quota_usage_repository, strict=True)

    def test_reserves_units_for_the_period(self, service, mock_quota_usage_repository):
        mock_quota_usage_repository.get_reserved.return_value = 3
        mock_quota_usage_repository.reserve.return_value = True

        result = service.check(1, 5, NOW)

        assert result.is_success
        assert result.data.strict is True
        assert result.data.period == '2026-03'
        assert result.data.status.used == 8
        mock_quota_usage_repository.reserve.assert_called_once_with(1, '2026-03', 5, 25)
        mock_quota_usage_repository.commit.assert_called_once()

    def test_failed_reservation_reports_current_usage(self, service, mock_quota_usage_repository):
        mock_quota_usage_repository.get_reserved.return_value = 24
        mock_quota_usage_repository.reserve.return_value = False

        result = service.check(1, 2, NOW)

        assert result.error_code == 'QUOTA_EXCEEDED'
        assert result.metadata['remaining'] == 1

    def test_settle_releases_unused_units(self, service, mock_quota_usage_repository):
        reservation = QuotaReservation(1, '2026-03', 5, True, QuotaStatus(25, 5))

        service.settle(reservation, 2)

        mock_quota_usage_repository.release.assert_called_once_with(1, '2026-03', 3)
        mock_quota_usage_repository.commit.assert_called_once()

    def test_settle_with_everything_used(self, service, mock_quota_usage_repository):
        reservation = QuotaReservation(1, '2026-03', 5, True, QuotaStatus(25, 5))
        service.settle(reservation, 5)
        mock_quota_usage_repository.release.assert_not_called()
