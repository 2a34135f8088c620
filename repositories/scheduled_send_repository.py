"""
ScheduledSendRepository - Data access layer for ScheduledSend model
"""

from datetime import datetime
from typing import List, Iterable
from sqlalchemy import asc
from repositories.base_repository import BaseRepository
from outreach_database import ScheduledSend
from services.enums import ScheduledSendStatus


class ScheduledSendRepository(BaseRepository[ScheduledSend]):
    """Repository for ScheduledSend data access"""

    def __init__(self, session):
        super().__init__(session, ScheduledSend)

    def get_many_for_account(self, account_id: int, ids: Iterable[int]) -> List[ScheduledSend]:
        return self.get_many_by_ids(ids, account_id=account_id)

    def _open_criteria(self, account_id: int, ids: List[int]):
        return [
            ScheduledSend.account_id == account_id,
            ScheduledSend.id.in_(ids),
            ScheduledSend.status == ScheduledSendStatus.PENDING.value,
            ScheduledSend.claimed_at.is_(None),
        ]

    def update_open(self, account_id: int, ids: List[int], values: dict) -> int:
        """Update rows that are still pending and unclaimed."""
        return self.update_where(self._open_criteria(account_id, ids), values)

    def find_due_unclaimed(self, now: datetime, limit: int = 50) -> List[ScheduledSend]:
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.status == ScheduledSendStatus.PENDING.value,
                self.model_class.claimed_at.is_(None),
                self.model_class.scheduled_for <= now
            )\
            .order_by(asc(self.model_class.scheduled_for))\
            .limit(limit)\
            .all()

    def claim(self, scheduled_send_id: int, now: datetime) -> bool:
        """Only one worker gets a given row."""
        return self.update_where(
            [
                ScheduledSend.id == scheduled_send_id,
                ScheduledSend.status == ScheduledSendStatus.PENDING.value,
                ScheduledSend.claimed_at.is_(None),
            ],
            {'claimed_at': now}
        ) == 1

    def release_stale_claims(self, claimed_before: datetime) -> int:
        """Give rows claimed by a worker that died back to the queue."""
        return self.update_where(
            [
                ScheduledSend.status == ScheduledSendStatus.PENDING.value,
                ScheduledSend.claimed_at.isnot(None),
                ScheduledSend.claimed_at < claimed_before,
            ],
            {'claimed_at': None}
        )
