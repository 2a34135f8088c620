"""
QuotaService - monthly send limits per account

Soft mode (the default) counts this month's consumed sends from the ledger.
Two batches checked at the same moment can both pass and jointly overshoot
the limit by at most one batch. Strict mode reserves units with an atomic
conditional increment instead and releases what the batch didn't use.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
from logging_config import get_logger
from services.common.result import Result
from services.enums import ErrorCode, AccountTier
from utils.datetime_utils import start_of_month, month_key, utc_now

logger = get_logger(__name__)


DEFAULT_MONTHLY_SEND_LIMITS = {
    AccountTier.TRIAL.value: 25,
    AccountTier.BASIC.value: 200,
    AccountTier.PRO.value: 500,
}


@dataclass(frozen=True)
class QuotaStatus:
    limit: int
    used: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


@dataclass(frozen=True)
class QuotaReservation:
    """What a successful check grants the caller"""
    account_id: int
    period: str
    units: int
    strict: bool
    status: QuotaStatus


class QuotaService:
    """Gate every send path on the account's monthly allowance"""

    def __init__(self,
                 account_repository,
                 send_log_repository,
                 quota_usage_repository,
                 monthly_limits: Optional[Dict[str, int]] = None,
                 strict: bool = False):
        self.account_repository = account_repository
        self.send_log_repository = send_log_repository
        self.quota_usage_repository = quota_usage_repository
        self.monthly_limits = monthly_limits or DEFAULT_MONTHLY_SEND_LIMITS
        self.strict = strict

    def limit_for(self, account) -> int:
        """Unknown tiers fall back to the basic allowance."""
        tier = getattr(account, 'tier', None)
        if tier in self.monthly_limits:
            return self.monthly_limits[tier]
        return self.monthly_limits.get(AccountTier.BASIC.value, DEFAULT_MONTHLY_SEND_LIMITS['basic'])

    def status(self, account, now: Optional[datetime] = None) -> QuotaStatus:
        now = now or utc_now()
        limit = self.limit_for(account)
        if self.strict:
            used = self.quota_usage_repository.get_reserved(account.id, month_key(now))
        else:
            used = self.send_log_repository.count_consumed_since(account.id, start_of_month(now))
        return QuotaStatus(limit=limit, used=used)

    def check(self, account_id: int, units: int, now: Optional[datetime] = None) -> Result[QuotaReservation]:
        """
        Confirm the account can make `units` more sends this month.

        The whole request passes or fails: a batch of 10 with 6 remaining is
        rejected, not trimmed.

        Returns:
            Result with a QuotaReservation, or QUOTA_EXCEEDED with remaining/limit in metadata
        """
        now = now or utc_now()
        account = self.account_repository.get_by_id(account_id)
        if account is None:
            return Result.failure("Account not found", code=ErrorCode.NOT_FOUND.value)

        period = month_key(now)
        quota = self.status(account, now)

        if self.strict:
            reserved = self.quota_usage_repository.reserve(account.id, period, units, quota.limit)
            if reserved:
                self.quota_usage_repository.commit()
                granted = QuotaStatus(limit=quota.limit, used=quota.used + units)
                return Result.success(QuotaReservation(account.id, period, units, True, granted))
            quota = self.status(account, now)
        elif quota.remaining >= units:
            return Result.success(QuotaReservation(account.id, period, units, False, quota))

        logger.info("Monthly send limit reached",
                    account_id=account.id,
                    requested=units,
                    remaining=quota.remaining,
                    limit=quota.limit)
        return Result.failure(
            f"Monthly send limit reached ({quota.used}/{quota.limit}). "
            f"{quota.remaining} sends remaining this month.",
            code=ErrorCode.QUOTA_EXCEEDED.value,
            metadata={'remaining': quota.remaining, 'limit': quota.limit, 'used': quota.used}
        )

    def settle(self, reservation: QuotaReservation, units_used: int) -> None:
        """
        Return units a strict reservation didn't consume. A no-op in soft
        mode, where the ledger itself is the counter.
        """
        if not reservation.strict:
            return
        unused = reservation.units - units_used
        if unused > 0:
            self.quota_usage_repository.release(reservation.account_id, reservation.period, unused)
            self.quota_usage_repository.commit()
