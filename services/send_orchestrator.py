"""
SendOrchestrator - every outbound review request goes through here

Three entry points share one delivery path:
- send_one: a single ad-hoc request
- send_batch: up to MAX_BATCH_SIZE ad-hoc requests with per-recipient outcomes
- deliver_touch: one touch of a campaign enrollment

Delivery is always pending log -> transport -> terminal log update. A
transport failure for one recipient is recorded and the batch moves on.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any
from logging_config import get_logger
from services.common.result import Result
from services.eligibility import check_eligibility
from services.enums import (
    Channel, ErrorCode, RecipientStatus, SkipReason, TouchOutcomeStatus, RESENDABLE_STATUSES
)
from services.send_log_ledger import DuplicateTouchLog
from services.touch_scheduler import DueTouch, adjust_for_quiet_hours
from services.transport import OutboundMessage
from utils.datetime_utils import utc_now, start_of_next_month, format_utc_iso

logger = get_logger(__name__)


@dataclass
class RecipientOutcome:
    customer_id: Any
    status: str
    reason: Optional[str] = None
    days_remaining: Optional[int] = None
    send_log_id: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BatchResult:
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    details: List[RecipientOutcome] = field(default_factory=list)

    def add(self, outcome: RecipientOutcome) -> None:
        if outcome.status == RecipientStatus.SENT.value:
            self.sent += 1
        elif outcome.status == RecipientStatus.SKIPPED.value:
            self.skipped += 1
        else:
            self.failed += 1
        self.details.append(outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sent': self.sent,
            'skipped': self.skipped,
            'failed': self.failed,
            'details': [d.to_dict() for d in self.details],
        }


@dataclass
class TouchOutcome:
    status: str
    reason: Optional[str] = None
    send_log_id: Optional[int] = None
    defer_until: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def advances(self) -> bool:
        """Whether the enrollment should move past this touch."""
        return self.status in (
            TouchOutcomeStatus.SENT.value,
            TouchOutcomeStatus.SKIPPED.value,
            TouchOutcomeStatus.FAILED.value,
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class SendOrchestrator:

    def __init__(self,
                 account_repository,
                 customer_repository,
                 send_log_repository,
                 quota_service,
                 send_log_ledger,
                 template_resolver,
                 transport,
                 send_cooldown_days: int = 14,
                 max_batch_size: int = 25,
                 quiet_hours_start: int = 21,
                 quiet_hours_end: int = 8):
        self.account_repository = account_repository
        self.customer_repository = customer_repository
        self.send_log_repository = send_log_repository
        self.quota_service = quota_service
        self.send_log_ledger = send_log_ledger
        self.template_resolver = template_resolver
        self.transport = transport
        self.send_cooldown = timedelta(days=send_cooldown_days)
        self.max_batch_size = max_batch_size
        self.quiet_hours_start = quiet_hours_start
        self.quiet_hours_end = quiet_hours_end

    # --- Validation ---

    def validate_batch(self, customer_ids, channel: str, template_id=None) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        if not isinstance(customer_ids, list) or not customer_ids:
            errors['customer_ids'] = ['At least one recipient is required']
        elif len(customer_ids) > self.max_batch_size:
            errors['customer_ids'] = [f"At most {self.max_batch_size} recipients per send"]
        elif not all(_is_int(cid) for cid in customer_ids):
            errors['customer_ids'] = ['Recipient ids must be integers']
        elif len(set(customer_ids)) != len(customer_ids):
            errors['customer_ids'] = ['Recipient ids must be unique']

        if channel not in (Channel.EMAIL.value, Channel.SMS.value):
            errors['channel'] = [f"Unknown channel: {channel}"]
        if template_id is not None and not _is_int(template_id):
            errors['template_id'] = ['Template id must be an integer']
        return errors

    # --- Entry points ---

    def send_one(self,
                 account_id: int,
                 customer_id: int,
                 template_id: Optional[int] = None,
                 channel: str = Channel.EMAIL.value,
                 custom_subject: Optional[str] = None,
                 now: Optional[datetime] = None) -> Result[RecipientOutcome]:
        """
        Send one review request: validate, eligibility, quota, then deliver.

        Returns:
            Result with the RecipientOutcome on success; otherwise NOT_FOUND,
            INELIGIBLE (reason and days_remaining in metadata),
            QUOTA_EXCEEDED or TRANSPORT_FAILED
        """
        now = now or utc_now()
        errors = self.validate_batch([customer_id], channel, template_id)
        if errors:
            return Result.validation_error(errors)

        account = self.account_repository.get_by_id(account_id)
        customer = self.customer_repository.get_for_account(account_id, customer_id)
        if account is None or customer is None:
            return Result.failure("Customer not found", code=ErrorCode.NOT_FOUND.value)

        decision = check_eligibility(customer, now, self.send_cooldown, channel)
        if not decision.eligible:
            message = self._ineligible_message(decision.reason, decision.days_remaining)
            return Result.failure(
                message,
                code=ErrorCode.INELIGIBLE.value,
                metadata={'reason': decision.reason, 'days_remaining': decision.days_remaining}
            )

        quota = self.quota_service.check(account_id, 1, now)
        if quota.is_failure:
            return quota

        outcome = self._deliver(account, customer, channel, template_id, custom_subject, now=now)
        self.quota_service.settle(quota.data, 1 if outcome.status == RecipientStatus.SENT.value else 0)

        if outcome.status == RecipientStatus.FAILED.value:
            return Result.failure(
                outcome.error or "Transport failed",
                code=ErrorCode.TRANSPORT_FAILED.value,
                metadata={'send_log_id': outcome.send_log_id}
            )
        return Result.success(outcome)

    def send_batch(self,
                   account_id: int,
                   customer_ids: List[int],
                   template_id: Optional[int] = None,
                   channel: str = Channel.EMAIL.value,
                   custom_subject: Optional[str] = None,
                   custom_body: Optional[str] = None,
                   now: Optional[datetime] = None) -> Result[BatchResult]:
        """
        Send to up to MAX_BATCH_SIZE customers.

        The quota is checked against the full batch before anything is sent.
        After that every input id gets exactly one detail (sent, skipped or
        failed) and the three counts always add up to the input size.

        Returns:
            Result with a BatchResult, or VALIDATION_ERROR / NOT_FOUND / QUOTA_EXCEEDED
        """
        now = now or utc_now()
        errors = self.validate_batch(customer_ids, channel, template_id)
        if errors:
            return Result.validation_error(errors)

        account = self.account_repository.get_by_id(account_id)
        if account is None:
            return Result.failure("Account not found", code=ErrorCode.NOT_FOUND.value)

        quota = self.quota_service.check(account_id, len(customer_ids), now)
        if quota.is_failure:
            return quota

        customers = {
            c.id: c for c in self.customer_repository.get_many_for_account(account_id, customer_ids)
        }

        batch = BatchResult()
        for customer_id in customer_ids:
            customer = customers.get(customer_id)
            decision = check_eligibility(customer, now, self.send_cooldown, channel)
            if not decision.eligible:
                batch.add(RecipientOutcome(
                    customer_id=customer_id,
                    status=RecipientStatus.SKIPPED.value,
                    reason=decision.reason,
                    days_remaining=decision.days_remaining
                ))
                continue

            batch.add(self._deliver(
                account, customer, channel, template_id, custom_subject,
                custom_body=custom_body, now=now
            ))

        self.quota_service.settle(quota.data, batch.sent)

        logger.info("Batch send completed",
                    account_id=account_id,
                    total=len(customer_ids),
                    sent=batch.sent,
                    skipped=batch.skipped,
                    failed=batch.failed)
        return Result.success(batch)

    def deliver_touch(self, enrollment, due: DueTouch, now: Optional[datetime] = None) -> TouchOutcome:
        """
        Fire one campaign touch.

        Campaign touches skip the ad-hoc cooldown; their spacing comes from
        the touch delays. SMS touches inside quiet hours and touches that
        find the quota exhausted are deferred rather than dropped.
        """
        now = now or utc_now()
        touch = due.touch
        account = self.account_repository.get_by_id(enrollment.account_id)
        customer = self.customer_repository.get_by_id(enrollment.customer_id)

        decision = check_eligibility(customer, now, timedelta(0), touch.channel)
        if not decision.eligible:
            logger.info("Touch skipped",
                        enrollment_id=enrollment.id,
                        touch_number=touch.touch_number,
                        reason=decision.reason)
            return TouchOutcome(status=TouchOutcomeStatus.SKIPPED.value, reason=decision.reason)

        if touch.channel == Channel.SMS.value:
            allowed_at = adjust_for_quiet_hours(
                now,
                customer.timezone or (account.timezone if account else None),
                self.quiet_hours_start,
                self.quiet_hours_end
            )
            if allowed_at > now:
                return TouchOutcome(
                    status=TouchOutcomeStatus.DEFERRED.value,
                    reason='quiet_hours',
                    defer_until=allowed_at
                )

        quota = self.quota_service.check(enrollment.account_id, 1, now)
        if quota.is_failure:
            return TouchOutcome(
                status=TouchOutcomeStatus.DEFERRED.value,
                reason='quota_exceeded',
                defer_until=start_of_next_month(now)
            )

        try:
            outcome = self._deliver(
                account, customer, touch.channel, touch.template_id, None,
                campaign_id=enrollment.campaign_id,
                enrollment_id=enrollment.id,
                touch_number=touch.touch_number,
                now=now
            )
        except DuplicateTouchLog:
            self.quota_service.settle(quota.data, 0)
            return TouchOutcome(status=TouchOutcomeStatus.ALREADY_LOGGED.value)

        self.quota_service.settle(quota.data, 1 if outcome.status == RecipientStatus.SENT.value else 0)
        return TouchOutcome(
            status=outcome.status,
            send_log_id=outcome.send_log_id,
            error=outcome.error
        )

    def resend(self, account_id: int, send_log_ids: List[int], now: Optional[datetime] = None) -> Result:
        """
        Explicit operator re-send of failed, bounced or complained sends.
        Each one goes through send_one, so eligibility and quota apply again.
        """
        now = now or utc_now()
        if not isinstance(send_log_ids, list) or not send_log_ids:
            return Result.validation_error({'send_log_ids': ['At least one send is required']})
        if len(send_log_ids) > self.max_batch_size:
            return Result.validation_error({'send_log_ids': [f"At most {self.max_batch_size} sends at a time"]})
        if not all(_is_int(i) for i in send_log_ids):
            return Result.validation_error({'send_log_ids': ['Send ids must be integers']})

        logs = self.send_log_repository.get_many_for_account(account_id, send_log_ids)
        resendable = [log for log in logs if log.status in RESENDABLE_STATUSES]
        if not resendable:
            return Result.failure("No failed messages found to retry", code=ErrorCode.NOT_FOUND.value)

        succeeded, failed = 0, 0
        for log in resendable:
            result = self.send_one(
                account_id,
                log.customer_id,
                template_id=log.template_id,
                channel=log.channel,
                now=now
            )
            if result.is_success:
                succeeded += 1
            else:
                failed += 1

        return Result.success({'total_success': succeeded, 'total_failed': failed})

    def find_ambiguous_sends(self, account_id: int, older_than_minutes: int = 15,
                             now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Pending sends old enough that their outcome is unknown."""
        logs = self.send_log_ledger.find_ambiguous_pending(
            timedelta(minutes=older_than_minutes), account_id=account_id, now=now
        )
        return [
            {
                'id': log.id,
                'customer_id': log.customer_id,
                'channel': log.channel,
                'campaign_enrollment_id': log.campaign_enrollment_id,
                'touch_number': log.touch_number,
                'created_at': format_utc_iso(log.created_at),
            }
            for log in logs
        ]

    # --- Delivery ---

    def _deliver(self,
                 account,
                 customer,
                 channel: str,
                 template_id: Optional[int],
                 custom_subject: Optional[str],
                 custom_body: Optional[str] = None,
                 campaign_id: Optional[int] = None,
                 enrollment_id: Optional[int] = None,
                 touch_number: Optional[int] = None,
                 now: Optional[datetime] = None) -> RecipientOutcome:
        now = now or utc_now()
        rendered = self.template_resolver.resolve(
            account.id,
            template_id,
            channel,
            customer_name=customer.name,
            business_name=account.name,
            custom_subject=custom_subject,
            custom_body=custom_body
        )

        log = self.send_log_ledger.open_pending(
            account_id=account.id,
            customer_id=customer.id,
            channel=channel,
            template_id=template_id,
            subject=rendered.subject,
            campaign_id=campaign_id,
            enrollment_id=enrollment_id,
            touch_number=touch_number,
            now=now
        )

        message = OutboundMessage(
            channel=channel,
            to=customer.email if channel == Channel.EMAIL.value else customer.phone,
            subject=rendered.subject,
            body=rendered.body,
            template_id=template_id,
            tags={'send_log_id': log.id, 'account_id': account.id}
        )

        try:
            result = self.transport.send(message, log.idempotency_key)
        except Exception as e:
            logger.error("Send failed",
                         send_log_id=log.id,
                         customer_id=customer.id,
                         channel=channel,
                         error=str(e))
            self.send_log_ledger.mark_failed(log, str(e) or e.__class__.__name__, now=now)
            return RecipientOutcome(
                customer_id=customer.id,
                status=RecipientStatus.FAILED.value,
                send_log_id=log.id,
                error=str(e) or e.__class__.__name__
            )

        self.send_log_ledger.mark_sent(log, result.provider_id, now=now)
        self.customer_repository.record_send(customer.id, now)
        self.customer_repository.commit()
        return RecipientOutcome(
            customer_id=customer.id,
            status=RecipientStatus.SENT.value,
            send_log_id=log.id
        )

    @staticmethod
    def _ineligible_message(reason: Optional[str], days_remaining: Optional[int]) -> str:
        if reason == SkipReason.COOLDOWN.value:
            return f"Customer was contacted recently; try again in {days_remaining} days"
        if reason == SkipReason.OPTED_OUT.value:
            return "Customer has opted out of review requests"
        if reason == SkipReason.ARCHIVED.value:
            return "Customer is archived"
        if reason == SkipReason.MISSING_CHANNEL.value:
            return "Customer has no contact details for this channel"
        return "Customer not found"
