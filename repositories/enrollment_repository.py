"""
EnrollmentRepository - Data access layer for CampaignEnrollment model
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from sqlalchemy import asc
from repositories.base_repository import BaseRepository
from outreach_database import CampaignEnrollment
from services.enums import EnrollmentStatus, REVIEW_STOP_REASONS


class EnrollmentRepository(BaseRepository[CampaignEnrollment]):
    """Repository for CampaignEnrollment data access"""

    def __init__(self, session):
        super().__init__(session, CampaignEnrollment)

    def find_active_for_customer(self, customer_id: int) -> Optional[CampaignEnrollment]:
        return self.session.query(self.model_class)\
            .filter_by(customer_id=customer_id, status=EnrollmentStatus.ACTIVE.value)\
            .first()

    def find_due(self, now: datetime, limit: int = 100) -> List[CampaignEnrollment]:
        """Active enrollments whose next touch is due, earliest first."""
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.status == EnrollmentStatus.ACTIVE.value,
                self.model_class.next_touch_due_at.isnot(None),
                self.model_class.next_touch_due_at <= now
            )\
            .order_by(asc(self.model_class.next_touch_due_at))\
            .limit(limit)\
            .all()

    def find_last_ended_for_customer(self, customer_id: int) -> Optional[CampaignEnrollment]:
        """Most recently completed or stopped enrollment for a customer."""
        enrollments = self.session.query(self.model_class)\
            .filter(
                self.model_class.customer_id == customer_id,
                self.model_class.status != EnrollmentStatus.ACTIVE.value
            )\
            .all()
        if not enrollments:
            return None
        return max(enrollments, key=lambda e: e.completed_at or e.stopped_at or e.enrolled_at)

    def has_review_stop_since(self, customer_id: int, since: datetime) -> bool:
        """Whether the customer ended a sequence by reviewing on or after since."""
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.customer_id == customer_id,
                self.model_class.status == EnrollmentStatus.STOPPED.value,
                self.model_class.stop_reason.in_(REVIEW_STOP_REASONS),
                self.model_class.stopped_at >= since
            )\
            .first() is not None

    def advance(self, enrollment_id: int, expected_touch: int, values: Dict[str, Any]) -> bool:
        """
        Apply values only while the enrollment is active and still waiting on
        expected_touch. Two workers racing on the same touch: one wins.
        """
        return self.update_where(
            [
                CampaignEnrollment.id == enrollment_id,
                CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
                CampaignEnrollment.current_touch == expected_touch,
            ],
            values
        ) == 1

    def stop(self, enrollment_id: int, reason: str, now: datetime) -> bool:
        return self.update_where(
            [
                CampaignEnrollment.id == enrollment_id,
                CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
            ],
            {
                'status': EnrollmentStatus.STOPPED.value,
                'stop_reason': reason,
                'stopped_at': now,
                'next_touch_due_at': None,
            }
        ) == 1

    def stop_active_for_customer(self, customer_id: int, reason: str, now: datetime) -> int:
        return self.update_where(
            [
                CampaignEnrollment.customer_id == customer_id,
                CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
            ],
            {
                'status': EnrollmentStatus.STOPPED.value,
                'stop_reason': reason,
                'stopped_at': now,
                'next_touch_due_at': None,
            }
        )

    def stop_active_for_campaign(self, campaign_id: int, reason: str, now: datetime) -> int:
        return self.update_where(
            [
                CampaignEnrollment.campaign_id == campaign_id,
                CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
            ],
            {
                'status': EnrollmentStatus.STOPPED.value,
                'stop_reason': reason,
                'stopped_at': now,
                'next_touch_due_at': None,
            }
        )
