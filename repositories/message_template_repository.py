"""
MessageTemplateRepository - Data access layer for MessageTemplate model
"""

from typing import Optional
from repositories.base_repository import BaseRepository
from outreach_database import MessageTemplate


class MessageTemplateRepository(BaseRepository[MessageTemplate]):

    def __init__(self, session):
        super().__init__(session, MessageTemplate)

    def get_for_account(self, account_id: int, template_id: int) -> Optional[MessageTemplate]:
        return self.session.query(self.model_class)\
            .filter_by(id=template_id, account_id=account_id)\
            .first()
