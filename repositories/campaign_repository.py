"""
CampaignRepository - Data access layer for Campaign and CampaignTouch models
"""

from typing import List, Optional
from sqlalchemy import asc
from repositories.base_repository import BaseRepository
from outreach_database import Campaign, CampaignTouch


class CampaignRepository(BaseRepository[Campaign]):
    """Repository for Campaign data access"""

    def __init__(self, session):
        super().__init__(session, Campaign)

    def get_for_account(self, account_id: int, campaign_id: int) -> Optional[Campaign]:
        return self.session.query(self.model_class)\
            .filter_by(id=campaign_id, account_id=account_id)\
            .first()

    def find_active_for_service_type(self, account_id: int, service_type: Optional[str]) -> Optional[Campaign]:
        """
        Oldest active campaign targeting exactly this service type.
        A None service type looks up the "all services" campaign.
        """
        query = self.session.query(self.model_class)\
            .filter(
                self.model_class.account_id == account_id,
                self.model_class.status == 'active'
            )
        if service_type is None:
            query = query.filter(self.model_class.service_type.is_(None))
        else:
            query = query.filter(self.model_class.service_type == service_type)
        return query.order_by(asc(self.model_class.id)).first()

    def find_by_account(self, account_id: int) -> List[Campaign]:
        return self.session.query(self.model_class)\
            .filter_by(account_id=account_id)\
            .order_by(asc(self.model_class.id))\
            .all()

    def replace_touches(self, campaign: Campaign, touches: List[dict]) -> Campaign:
        """Swap a campaign's touch list for a new one in a single flush."""
        campaign.touches.clear()
        self.session.flush()
        for touch in touches:
            campaign.touches.append(CampaignTouch(**touch))
        self.session.flush()
        return campaign
