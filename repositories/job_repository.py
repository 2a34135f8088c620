"""
JobRepository - Data access layer for Job model
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import asc, select
from repositories.base_repository import BaseRepository
from outreach_database import Job, CampaignEnrollment


class JobRepository(BaseRepository[Job]):
    """Repository for Job data access"""

    def __init__(self, session):
        super().__init__(session, Job)

    def get_for_account(self, account_id: int, job_id: int) -> Optional[Job]:
        return self.session.query(self.model_class)\
            .filter_by(id=job_id, account_id=account_id)\
            .first()

    def set_resolution(self,
                       job_id: int,
                       expected: Optional[str],
                       new: Optional[str],
                       **extra) -> bool:
        """
        Move a job's enrollment_resolution from expected to new.

        Args:
            job_id: Job to update
            expected: Resolution the job must currently hold (None for unresolved)
            new: Resolution to store (None clears it)
            **extra: Other columns to set in the same statement

        Returns:
            False if another writer changed the resolution first
        """
        current = Job.enrollment_resolution.is_(None) if expected is None \
            else Job.enrollment_resolution == expected
        values = {'enrollment_resolution': new}
        values.update(extra)
        if self.update_where([Job.id == job_id, current], values) != 1:
            return False

        job = self.session.get(Job, job_id)
        if job is not None:
            self.session.refresh(job)
        return True

    def find_waiting_in_queue(self, limit: int = 100) -> List[Job]:
        """
        Queue-after jobs whose customer has no active enrollment, oldest
        completion first. Jobs still blocked never crowd out the rest.
        """
        active = select(CampaignEnrollment.customer_id)\
            .where(CampaignEnrollment.status == 'active')
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.enrollment_resolution == 'queue_after',
                self.model_class.customer_id.notin_(active)
            )\
            .order_by(asc(self.model_class.completed_at), asc(self.model_class.id))\
            .limit(limit)\
            .all()

    def find_queued_for_customer(self, customer_id: int) -> List[Job]:
        """Queue-after jobs for a customer, oldest first."""
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.customer_id == customer_id,
                self.model_class.enrollment_resolution == 'queue_after'
            )\
            .order_by(asc(self.model_class.completed_at), asc(self.model_class.id))\
            .all()

    def find_stale_conflicts(self, detected_before: datetime, limit: int = 100) -> List[Job]:
        """Conflicts nobody has resolved since detected_before."""
        return self.session.query(self.model_class)\
            .filter(
                self.model_class.enrollment_resolution == 'conflict',
                self.model_class.conflict_detected_at.isnot(None),
                self.model_class.conflict_detected_at <= detected_before
            )\
            .order_by(asc(self.model_class.conflict_detected_at))\
            .limit(limit)\
            .all()
