"""
CustomerRepository - Data access layer for Customer model
"""

from datetime import datetime
from typing import List, Optional, Iterable
from repositories.base_repository import BaseRepository
from outreach_database import Customer


class CustomerRepository(BaseRepository[Customer]):
    """Repository for Customer data access"""

    def __init__(self, session):
        super().__init__(session, Customer)

    def get_for_account(self, account_id: int, customer_id: int) -> Optional[Customer]:
        return self.session.query(self.model_class)\
            .filter_by(id=customer_id, account_id=account_id)\
            .first()

    def get_many_for_account(self, account_id: int, customer_ids: Iterable[int]) -> List[Customer]:
        """Single IN query; ids from other accounts are left out."""
        return self.get_many_by_ids(customer_ids, account_id=account_id)

    def record_send(self, customer_id: int, sent_at: datetime) -> None:
        """
        Stamp last_sent_at and bump send_count in one statement so concurrent
        sends never lose an increment.
        """
        self.update_where(
            [Customer.id == customer_id],
            {
                'last_sent_at': sent_at,
                'send_count': Customer.send_count + 1,
            }
        )
