"""
ScheduledSendService - batch sends queued for a later time

Rows move pending -> completed | failed | cancelled. Every change is a
conditional update on the row's expected state, so a cancel racing the
processor either wins cleanly or is told the row is already in flight.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any
from logging_config import get_logger
from services.common.result import Result
from services.enums import ErrorCode, ScheduledSendStatus, Channel
from utils.datetime_utils import utc_now, ensure_utc

logger = get_logger(__name__)


MIN_LEAD_TIME = timedelta(minutes=1)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ScheduledSendService:

    def __init__(self,
                 scheduled_send_repository,
                 send_orchestrator,
                 max_bulk_size: int = 50,
                 claim_timeout_minutes: int = 10):
        self.scheduled_send_repository = scheduled_send_repository
        self.send_orchestrator = send_orchestrator
        self.max_bulk_size = max_bulk_size
        self.claim_timeout = timedelta(minutes=claim_timeout_minutes)

    def schedule(self,
                 account_id: int,
                 customer_ids: List[int],
                 scheduled_for: datetime,
                 template_id: Optional[int] = None,
                 channel: str = Channel.EMAIL.value,
                 custom_subject: Optional[str] = None,
                 custom_body: Optional[str] = None,
                 now: Optional[datetime] = None) -> Result:
        now = now or utc_now()
        errors = self.send_orchestrator.validate_batch(customer_ids, channel, template_id)
        if scheduled_for is None or ensure_utc(scheduled_for) < now + MIN_LEAD_TIME:
            errors['scheduled_for'] = ['Scheduled time must be at least 1 minute in the future']
        if errors:
            return Result.validation_error(errors)

        scheduled = self.scheduled_send_repository.create(
            account_id=account_id,
            customer_ids=list(customer_ids),
            template_id=template_id,
            channel=channel,
            custom_subject=custom_subject,
            custom_body=custom_body,
            scheduled_for=ensure_utc(scheduled_for),
            status=ScheduledSendStatus.PENDING.value
        )
        self.scheduled_send_repository.commit()
        logger.info("Send scheduled", account_id=account_id, scheduled_send_id=scheduled.id,
                    recipients=len(customer_ids))
        return Result.success(scheduled)

    def cancel(self, account_id: int, scheduled_send_id: int) -> Result:
        """Cancel one pending send. Fails once processing has claimed it."""
        return self.bulk_cancel(account_id, [scheduled_send_id])

    def bulk_cancel(self, account_id: int, ids: List[int]) -> Result:
        """
        Cancel every listed send, or none of them.

        Returns:
            Result with the cancelled count, or INVALID_STATE listing the ids
            that are no longer pending
        """
        return self._bulk_update(account_id, ids, {'status': ScheduledSendStatus.CANCELLED.value}, 'cancelled')

    def bulk_reschedule(self, account_id: int, ids: List[int], new_time: datetime,
                        now: Optional[datetime] = None) -> Result:
        """Move every listed send to new_time, or none of them."""
        now = now or utc_now()
        if new_time is None or ensure_utc(new_time) < now + MIN_LEAD_TIME:
            return Result.validation_error({'new_time': ['Scheduled time must be at least 1 minute in the future']})
        return self._bulk_update(account_id, ids, {'scheduled_for': ensure_utc(new_time)}, 'rescheduled')

    def process_due(self, now: Optional[datetime] = None, limit: int = 50) -> Dict[str, int]:
        """
        Release stale claims, then claim and run every due send. A claim is
        only taken by one worker; the others see zero rows updated and move on.
        """
        now = now or utc_now()
        stats = {'released': 0, 'processed': 0, 'completed': 0, 'failed': 0}

        stats['released'] = self.scheduled_send_repository.release_stale_claims(now - self.claim_timeout)
        if stats['released']:
            self.scheduled_send_repository.commit()
            logger.warning("Released stuck scheduled sends", count=stats['released'])

        for scheduled in self.scheduled_send_repository.find_due_unclaimed(now, limit):
            if not self.scheduled_send_repository.claim(scheduled.id, now):
                continue
            self.scheduled_send_repository.commit()
            stats['processed'] += 1

            if self._run(scheduled, now):
                stats['completed'] += 1
            else:
                stats['failed'] += 1

        if stats['processed']:
            logger.info("Scheduled sends processed", **stats)
        return stats

    def _run(self, scheduled, now: datetime) -> bool:
        try:
            result = self.send_orchestrator.send_batch(
                scheduled.account_id,
                list(scheduled.customer_ids or []),
                template_id=scheduled.template_id,
                channel=scheduled.channel,
                custom_subject=scheduled.custom_subject,
                custom_body=scheduled.custom_body,
                now=now
            )
        except Exception as e:
            logger.error("Scheduled send crashed", scheduled_send_id=scheduled.id, error=str(e))
            self.scheduled_send_repository.rollback()
            result = Result.failure(str(e))

        if result.is_success:
            batch = result.data
            values = {
                'status': ScheduledSendStatus.COMPLETED.value,
                'executed_at': now,
                'result': {'sent': batch.sent, 'skipped': batch.skipped, 'failed': batch.failed},
            }
        else:
            values = {
                'status': ScheduledSendStatus.FAILED.value,
                'executed_at': now,
                'error_message': result.error,
            }

        self.scheduled_send_repository.update(scheduled, **values)
        self.scheduled_send_repository.commit()
        return result.is_success

    def _bulk_update(self, account_id: int, ids: List[int], values: Dict[str, Any], verb: str) -> Result:
        if not isinstance(ids, list) or not ids:
            return Result.validation_error({'ids': ['At least one scheduled send is required']})
        if len(ids) > self.max_bulk_size:
            return Result.validation_error({'ids': [f"At most {self.max_bulk_size} scheduled sends at a time"]})
        if not all(_is_int(i) for i in ids):
            return Result.validation_error({'ids': ['Ids must be integers']})

        wanted = sorted(set(ids))
        rows = {row.id: row for row in self.scheduled_send_repository.get_many_for_account(account_id, wanted)}
        missing = [i for i in wanted if i not in rows]
        if missing:
            return Result.failure("Some scheduled sends were not found",
                                  code=ErrorCode.NOT_FOUND.value, metadata={'ids': missing})

        not_open = [
            i for i in wanted
            if rows[i].status != ScheduledSendStatus.PENDING.value or rows[i].claimed_at is not None
        ]
        if not_open:
            return Result.failure("Some scheduled sends are no longer pending",
                                  code=ErrorCode.INVALID_STATE.value, metadata={'ids': not_open})

        updated = self.scheduled_send_repository.update_open(account_id, wanted, values)
        if updated != len(wanted):
            # A row was claimed between the check and the update
            self.scheduled_send_repository.rollback()
            return Result.failure("Some scheduled sends started processing; nothing was changed",
                                  code=ErrorCode.INVALID_STATE.value)

        self.scheduled_send_repository.commit()
        logger.info(f"Scheduled sends {verb}", account_id=account_id, count=updated)
        return Result.success({verb: updated})
