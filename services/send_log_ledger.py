"""
SendLogLedger - the record of every send attempt

Each attempt is written as a pending row and committed before the
transport is called. After the call the row moves to sent or failed exactly
once. A pending row that stays pending means the process died mid-call.
Nobody knows whether the provider got the message, so those rows are shown
to operators and never retried automatically.
"""

from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from logging_config import get_logger
from outreach_database import SendLog
from services.enums import SendStatus
from utils.datetime_utils import utc_now

logger = get_logger(__name__)


class DuplicateTouchLog(Exception):
    """A SendLog already exists for this enrollment and touch"""
    def __init__(self, enrollment_id: int, touch_number: int):
        super().__init__(f"Touch {touch_number} of enrollment {enrollment_id} already logged")
        self.enrollment_id = enrollment_id
        self.touch_number = touch_number


def touch_idempotency_key(enrollment_id: int, touch_number: int) -> str:
    return f"campaign-touch-{enrollment_id}-{touch_number}"


def send_idempotency_key(log_id: int) -> str:
    return f"send-{log_id}"


class SendLogLedger:

    def __init__(self, send_log_repository):
        self.send_log_repository = send_log_repository

    def open_pending(self,
                     account_id: int,
                     customer_id: int,
                     channel: str,
                     template_id: Optional[int] = None,
                     subject: Optional[str] = None,
                     campaign_id: Optional[int] = None,
                     enrollment_id: Optional[int] = None,
                     touch_number: Optional[int] = None,
                     now: Optional[datetime] = None) -> SendLog:
        """
        Insert and commit a pending row.

        Campaign touches carry (enrollment_id, touch_number), which the
        database holds unique. Losing that race raises DuplicateTouchLog and
        the caller must not send.

        Raises:
            DuplicateTouchLog: A row for this touch already exists
        """
        if enrollment_id is not None and touch_number is not None:
            if self.has_touch_log(enrollment_id, touch_number):
                raise DuplicateTouchLog(enrollment_id, touch_number)

        try:
            log = self.send_log_repository.create(
                account_id=account_id,
                customer_id=customer_id,
                channel=channel,
                template_id=template_id,
                subject=subject,
                campaign_id=campaign_id,
                campaign_enrollment_id=enrollment_id,
                touch_number=touch_number,
                status=SendStatus.PENDING.value,
                created_at=now or utc_now()
            )
            if enrollment_id is not None and touch_number is not None:
                log.idempotency_key = touch_idempotency_key(enrollment_id, touch_number)
            else:
                log.idempotency_key = send_idempotency_key(log.id)
            self.send_log_repository.commit()
        except IntegrityError as e:
            if enrollment_id is None:
                raise
            logger.info("Touch already logged by another worker",
                        enrollment_id=enrollment_id, touch_number=touch_number)
            raise DuplicateTouchLog(enrollment_id, touch_number) from e

        return log

    def mark_sent(self, log: SendLog, provider_id: Optional[str], now: Optional[datetime] = None) -> bool:
        """Terminal update; False if the row had already left pending."""
        updated = self.send_log_repository.finish_pending(log.id, {
            'status': SendStatus.SENT.value,
            'provider_id': provider_id,
            'completed_at': now or utc_now(),
        })
        self.send_log_repository.commit()
        if not updated:
            logger.warning("Send log was no longer pending", send_log_id=log.id)
        return updated

    def mark_failed(self, log: SendLog, error: str, now: Optional[datetime] = None) -> bool:
        updated = self.send_log_repository.finish_pending(log.id, {
            'status': SendStatus.FAILED.value,
            'error_message': error[:1000],
            'completed_at': now or utc_now(),
        })
        self.send_log_repository.commit()
        if not updated:
            logger.warning("Send log was no longer pending", send_log_id=log.id)
        return updated

    def has_touch_log(self, enrollment_id: int, touch_number: int) -> bool:
        return self.send_log_repository.find_touch_log(enrollment_id, touch_number) is not None

    def touch_log(self, enrollment_id: int, touch_number: int) -> Optional[SendLog]:
        return self.send_log_repository.find_touch_log(enrollment_id, touch_number)

    def find_ambiguous_pending(self,
                               older_than: timedelta,
                               account_id: Optional[int] = None,
                               now: Optional[datetime] = None) -> List[SendLog]:
        """Pending rows older than the given age: outcome unknown."""
        cutoff = (now or utc_now()) - older_than
        return self.send_log_repository.find_pending_older_than(cutoff, account_id=account_id)
