"""
SendLogRepository - Data access layer for SendLog model
"""

from datetime import datetime
from typing import List, Optional, Iterable
from sqlalchemy import asc
from repositories.base_repository import BaseRepository
from outreach_database import SendLog
from services.enums import SendStatus, CONSUMED_SEND_STATUSES


class SendLogRepository(BaseRepository[SendLog]):
    """Repository for SendLog data access"""

    def __init__(self, session):
        super().__init__(session, SendLog)

    def find_touch_log(self, enrollment_id: int, touch_number: int) -> Optional[SendLog]:
        return self.session.query(self.model_class)\
            .filter_by(campaign_enrollment_id=enrollment_id, touch_number=touch_number)\
            .first()

    def count_consumed_since(self, account_id: int, since: datetime) -> int:
        """Sends that used up quota for the account since the given instant."""
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.account_id == account_id,
                self.model_class.status.in_(CONSUMED_SEND_STATUSES),
                self.model_class.created_at >= since
            )\
            .count()

    def finish_pending(self, log_id: int, values: dict) -> bool:
        """Terminal update that only applies to a row still pending."""
        return self.update_where(
            [SendLog.id == log_id, SendLog.status == SendStatus.PENDING.value],
            values
        ) == 1

    def find_pending_older_than(self, cutoff: datetime, account_id: Optional[int] = None) -> List[SendLog]:
        query = self.session.query(self.model_class)\
            .filter(
                self.model_class.status == SendStatus.PENDING.value,
                self.model_class.created_at < cutoff
            )
        if account_id is not None:
            query = query.filter(self.model_class.account_id == account_id)
        return query.order_by(asc(self.model_class.created_at)).all()

    def get_many_for_account(self, account_id: int, log_ids: Iterable[int]) -> List[SendLog]:
        return self.get_many_by_ids(log_ids, account_id=account_id)
