"""
AccountRepository - Data access layer for Account and QuotaUsage models
"""

from typing import Optional
from sqlalchemy.exc import IntegrityError
from repositories.base_repository import BaseRepository
from outreach_database import Account, QuotaUsage
import logging

logger = logging.getLogger(__name__)


class AccountRepository(BaseRepository[Account]):
    """Repository for Account data access"""

    def __init__(self, session):
        super().__init__(session, Account)


class QuotaUsageRepository(BaseRepository[QuotaUsage]):
    """
    Per-period reservation counters for strict quota enforcement.

    Reservations are a single conditional UPDATE so two concurrent batches
    cannot both take the last units.
    """

    def __init__(self, session):
        super().__init__(session, QuotaUsage)

    def get_reserved(self, account_id: int, period: str) -> int:
        usage = self.find_one_by(account_id=account_id, period=period)
        return usage.reserved if usage else 0

    def ensure_period(self, account_id: int, period: str) -> None:
        """Create the counter row for a period if it doesn't exist yet."""
        if self.find_one_by(account_id=account_id, period=period) is not None:
            return
        try:
            self.create(account_id=account_id, period=period, reserved=0)
            self.commit()
        except IntegrityError:
            # Another worker created it first
            logger.debug(f"Quota period {period} for account {account_id} already exists")

    def reserve(self, account_id: int, period: str, units: int, limit: int) -> bool:
        """
        Atomically add units to the counter if the result stays within limit.

        Returns:
            True if the units were reserved
        """
        self.ensure_period(account_id, period)
        updated = self.update_where(
            [
                QuotaUsage.account_id == account_id,
                QuotaUsage.period == period,
                QuotaUsage.reserved + units <= limit,
            ],
            {'reserved': QuotaUsage.reserved + units}
        )
        return updated == 1

    def release(self, account_id: int, period: str, units: int) -> None:
        if units <= 0:
            return
        self.update_where(
            [
                QuotaUsage.account_id == account_id,
                QuotaUsage.period == period,
                QuotaUsage.reserved >= units,
            ],
            {'reserved': QuotaUsage.reserved - units}
        )
