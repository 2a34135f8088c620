"""
EnrollmentService - turns completed jobs into campaign enrollments and walks
enrollments through their touches.

Job-facing operations (evaluate, resolve, revert, preflight) return a
Result[EnrollmentDecision]. The background operations (process_due_touches,
process_queued_jobs, auto_resolve_stale_conflicts) return counters and are
driven by Celery beat or the CLI.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from sqlalchemy.exc import IntegrityError
from logging_config import get_logger
from services.common.result import Result
from services.conflict_resolver import (
    ResolverEvent, InvalidTransitionError, transition, can_transition,
    as_resolution, to_column, event_for_action
)
from services.enums import (
    EnrollmentOutcome, EnrollmentResolution as R, EnrollmentStatus,
    ErrorCode, JobStatus, StopReason, TouchOutcomeStatus, SendStatus
)
from services.campaign_service import ONE_OFF_OVERRIDE
from services.touch_scheduler import plan_for, touch_at, next_due_at
from utils.datetime_utils import utc_now, ensure_utc

logger = get_logger(__name__)

CUSTOMER_STOP_REASONS = (
    StopReason.REVIEW_CLICKED.value,
    StopReason.FEEDBACK_SUBMITTED.value,
    StopReason.OPTED_OUT.value,
)


@dataclass
class EnrollmentDecision:
    job_id: int
    outcome: str
    resolution: str
    enrollment_id: Optional[int] = None
    campaign_id: Optional[int] = None
    reason: Optional[str] = None
    blocking_enrollment: Optional[Dict[str, Any]] = None
    replaced: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class EnrollmentService:

    def __init__(self,
                 job_repository,
                 account_repository,
                 customer_repository,
                 enrollment_repository,
                 campaign_service,
                 touch_scheduler,
                 send_log_ledger,
                 send_orchestrator,
                 queue_after_gap_days: int = 7,
                 conflict_auto_resolve_hours: int = 24):
        self.job_repository = job_repository
        self.account_repository = account_repository
        self.customer_repository = customer_repository
        self.enrollment_repository = enrollment_repository
        self.campaign_service = campaign_service
        self.touch_scheduler = touch_scheduler
        self.send_log_ledger = send_log_ledger
        self.send_orchestrator = send_orchestrator
        self.queue_after_gap = timedelta(days=queue_after_gap_days)
        self.conflict_auto_resolve_hours = conflict_auto_resolve_hours

    # --- Job-facing operations ---

    def evaluate_job(self, job_id: int, account_id: Optional[int] = None,
                     now: Optional[datetime] = None) -> Result[EnrollmentDecision]:
        """
        Decide what a completed job means for its customer: a new enrollment,
        a conflict needing an operator, suppression, or nothing at all.

        Safe to call repeatedly; a customer already enrolled in the matched
        campaign is left alone.
        """
        now = now or utc_now()
        job = self._load_job(job_id, account_id)
        if job is None:
            return Result.failure("Job not found", code=ErrorCode.NOT_FOUND.value)

        if job.status == JobStatus.DO_NOT_SEND.value:
            return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, reason='do_not_send'))

        if job.status != JobStatus.COMPLETED.value:
            return Result.failure("Job must be completed before enrolling",
                                  code=ErrorCode.INVALID_STATE.value)

        return self._evaluate(job, now)

    def resolve(self, job_id: int, action: str, account_id: Optional[int] = None,
                now: Optional[datetime] = None) -> Result[EnrollmentDecision]:
        """Apply an operator's replace, skip or queue_after choice to a job."""
        now = now or utc_now()
        job = self._load_job(job_id, account_id)
        if job is None:
            return Result.failure("Job not found", code=ErrorCode.NOT_FOUND.value)

        try:
            event = event_for_action(action)
        except ValueError:
            return Result.validation_error({'action': [f"Unknown action: {action}"]})

        current = as_resolution(job.enrollment_resolution)
        try:
            new = transition(current, event)
        except InvalidTransitionError as e:
            return Result.failure(str(e), code=ErrorCode.INVALID_STATE.value)

        if event == ResolverEvent.REPLACE:
            return self._replace(job, now)

        if new != current and not self.job_repository.set_resolution(job.id, to_column(current), to_column(new)):
            return self._concurrent_update(job)
        self.job_repository.commit()

        logger.info("Enrollment conflict resolved", job_id=job.id, action=event.value)
        outcome = EnrollmentOutcome.SKIPPED if new == R.SKIPPED else EnrollmentOutcome.QUEUED
        return Result.success(self._decision(job, outcome, resolution=new))

    def revert(self, job_id: int, account_id: Optional[int] = None,
               now: Optional[datetime] = None) -> Result[EnrollmentDecision]:
        """
        Undo a skip, queue_after or pre-set replace. The job goes back to
        unresolved and, if completed, is evaluated again from scratch.
        """
        now = now or utc_now()
        job = self._load_job(job_id, account_id)
        if job is None:
            return Result.failure("Job not found", code=ErrorCode.NOT_FOUND.value)

        current = as_resolution(job.enrollment_resolution)
        try:
            transition(current, ResolverEvent.REVERT)
        except InvalidTransitionError as e:
            return Result.failure(str(e), code=ErrorCode.INVALID_STATE.value)

        if not self.job_repository.set_resolution(job.id, to_column(current), None, conflict_detected_at=None):
            return self._concurrent_update(job)
        self.job_repository.commit()
        logger.info("Enrollment resolution reverted", job_id=job.id, previous=current.value)

        if job.status != JobStatus.COMPLETED.value:
            return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, reason='awaiting_completion',
                                                 resolution=R.NONE))
        return self._evaluate(job, now)

    def preflight_replace(self, job_id: int, account_id: Optional[int] = None) -> Result[EnrollmentDecision]:
        """
        Decide ahead of time that a scheduled job should replace whatever
        sequence the customer is in once it completes.
        """
        job = self._load_job(job_id, account_id)
        if job is None:
            return Result.failure("Job not found", code=ErrorCode.NOT_FOUND.value)
        if job.status != JobStatus.SCHEDULED.value:
            return Result.failure("Only scheduled jobs can be set to replace on completion",
                                  code=ErrorCode.INVALID_STATE.value)

        current = as_resolution(job.enrollment_resolution)
        try:
            new = transition(current, ResolverEvent.PREFLIGHT_REPLACE)
        except InvalidTransitionError as e:
            return Result.failure(str(e), code=ErrorCode.INVALID_STATE.value)

        if new != current and not self.job_repository.set_resolution(job.id, to_column(current), to_column(new)):
            return self._concurrent_update(job)
        self.job_repository.commit()
        return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, reason='awaiting_completion',
                                                 resolution=new))

    def stop_enrollment(self, enrollment_id: int, reason: str = StopReason.OWNER_STOPPED.value,
                        account_id: Optional[int] = None, now: Optional[datetime] = None) -> Result:
        now = now or utc_now()
        try:
            reason = StopReason(reason).value
        except ValueError:
            return Result.validation_error({'reason': [f"Unknown stop reason: {reason}"]})

        enrollment = self.enrollment_repository.get_by_id(enrollment_id)
        if enrollment is None or (account_id is not None and enrollment.account_id != account_id):
            return Result.failure("Enrollment not found", code=ErrorCode.NOT_FOUND.value)

        if not self.enrollment_repository.stop(enrollment.id, reason, now):
            return Result.failure("Enrollment is not active", code=ErrorCode.INVALID_STATE.value)
        self.enrollment_repository.commit()
        logger.info("Enrollment stopped", enrollment_id=enrollment.id, reason=reason)

        self._reevaluate_queued_for_customer(enrollment.customer_id, now)
        return Result.success({'enrollment_id': enrollment.id, 'status': EnrollmentStatus.STOPPED.value})

    def stop_customer_enrollments(self, customer_id: int, reason: str,
                                  account_id: Optional[int] = None,
                                  now: Optional[datetime] = None) -> Result[Dict[str, Any]]:
        """
        Stop whatever the customer is enrolled in because they reviewed, left
        feedback or opted out. An opt-out is also recorded on the customer so
        later jobs are suppressed.
        """
        now = now or utc_now()
        if reason not in CUSTOMER_STOP_REASONS:
            return Result.validation_error({'reason': [f"Unknown stop reason: {reason}"]})

        customer = self.customer_repository.get_by_id(customer_id)
        if customer is None or (account_id is not None and customer.account_id != account_id):
            return Result.failure("Customer not found", code=ErrorCode.NOT_FOUND.value)

        if reason == StopReason.OPTED_OUT.value and not customer.opted_out:
            self.customer_repository.update(customer, opted_out=True)

        stopped = self.enrollment_repository.stop_active_for_customer(customer.id, reason, now)
        self.enrollment_repository.commit()
        if stopped:
            logger.info("Customer enrollments stopped", customer_id=customer.id, reason=reason, count=stopped)
            self._reevaluate_queued_for_customer(customer.id, now)
        return Result.success({'customer_id': customer.id, 'stopped': stopped})

    # --- Background operations ---

    def process_due_touches(self, now: Optional[datetime] = None, limit: int = 100) -> Dict[str, int]:
        """
        Fire every touch that is due. Each enrollment is handled on its own:
        one failing doesn't stop the rest.
        """
        now = now or utc_now()
        stats = {'processed': 0, 'sent': 0, 'skipped': 0, 'failed': 0,
                 'deferred': 0, 'already_logged': 0, 'repaired': 0, 'parked': 0,
                 'errors': 0}

        for enrollment in self.enrollment_repository.find_due(now, limit):
            stats['processed'] += 1
            try:
                self._process_enrollment(enrollment, now, stats)
            except Exception as e:
                logger.error("Error processing touch",
                             enrollment_id=enrollment.id,
                             touch_number=enrollment.current_touch,
                             error=str(e))
                self.enrollment_repository.rollback()
                stats['errors'] += 1

        if stats['processed']:
            logger.info("Campaign touches processed", **stats)
        return stats

    def process_queued_jobs(self, now: Optional[datetime] = None, limit: int = 100) -> Dict[str, int]:
        """Enroll queue_after jobs whose blocking sequence has ended."""
        now = now or utc_now()
        stats = {'enrolled': 0, 'suppressed': 0, 'waiting': 0}
        for job in self.job_repository.find_waiting_in_queue(limit):
            result = self._evaluate(job, now)
            if result.is_failure:
                continue
            if result.data.outcome == EnrollmentOutcome.ENROLLED.value:
                stats['enrolled'] += 1
            elif result.data.outcome == EnrollmentOutcome.SUPPRESSED.value:
                stats['suppressed'] += 1
            else:
                stats['waiting'] += 1
        return stats

    def auto_resolve_stale_conflicts(self, now: Optional[datetime] = None, limit: int = 100) -> Dict[str, int]:
        """
        Conflicts nobody decided on within the configured window are resolved
        as replace. A window of 0 turns the policy off.
        """
        now = now or utc_now()
        stats = {'replaced': 0, 'errors': 0}
        if not self.conflict_auto_resolve_hours or self.conflict_auto_resolve_hours <= 0:
            return stats

        cutoff = now - timedelta(hours=self.conflict_auto_resolve_hours)
        for job in self.job_repository.find_stale_conflicts(cutoff, limit):
            result = self._replace(job, now)
            if result.is_success:
                stats['replaced'] += 1
            else:
                stats['errors'] += 1
                logger.warning("Failed to auto-resolve conflict", job_id=job.id, error=result.error)
        return stats

    def advance_enrollment(self, enrollment, touch_number: int, completed_at: datetime) -> bool:
        """
        Move an enrollment past touch_number. The next touch is timed from
        completed_at. After the final touch the enrollment completes.

        Returns:
            False if the enrollment was no longer waiting on touch_number
        """
        plan = plan_for(enrollment)
        is_final = not plan or touch_number >= plan[-1].touch_number
        values = {
            'current_touch': touch_number + 1,
            'last_touch_at': completed_at,
        }
        if is_final:
            values.update({
                'status': EnrollmentStatus.COMPLETED.value,
                'completed_at': completed_at,
                'next_touch_due_at': None,
            })
        else:
            next_touch = touch_at(enrollment, touch_number + 1)
            values['next_touch_due_at'] = completed_at + timedelta(hours=next_touch.delay_hours)

        advanced = self.enrollment_repository.advance(enrollment.id, touch_number, values)
        self.enrollment_repository.commit()

        if advanced and is_final:
            logger.info("Enrollment completed", enrollment_id=enrollment.id, customer_id=enrollment.customer_id)
            self._reevaluate_queued_for_customer(enrollment.customer_id, completed_at)
        return advanced

    # --- Internals ---

    def _process_enrollment(self, enrollment, now: datetime, stats: Dict[str, int]) -> None:
        due = self.touch_scheduler.due_touch(enrollment, now)
        if due is None:
            self._repair(enrollment, now, stats)
            return

        outcome = self.send_orchestrator.deliver_touch(enrollment, due, now)

        if outcome.advances:
            self.advance_enrollment(enrollment, due.touch.touch_number, now)
            stats[outcome.status] += 1
        elif outcome.status == TouchOutcomeStatus.DEFERRED.value:
            self.enrollment_repository.advance(
                enrollment.id, due.touch.touch_number, {'next_touch_due_at': outcome.defer_until}
            )
            self.enrollment_repository.commit()
            stats['deferred'] += 1
        else:
            stats['already_logged'] += 1

    def _repair(self, enrollment, now: datetime, stats: Dict[str, int]) -> None:
        """
        An enrollment came up as due but has nothing to fire. Either its
        touch already has a finished log (a worker died before advancing),
        or the denormalised due time is stale.
        """
        touch_number = enrollment.current_touch
        if touch_at(enrollment, touch_number) is None:
            self.enrollment_repository.advance(enrollment.id, touch_number, {
                'status': EnrollmentStatus.COMPLETED.value,
                'completed_at': now,
                'next_touch_due_at': None,
            })
            self.enrollment_repository.commit()
            stats['repaired'] += 1
            return

        log = self.send_log_ledger.touch_log(enrollment.id, touch_number)
        if log is not None:
            if log.status != SendStatus.PENDING.value:
                self.advance_enrollment(enrollment, touch_number, ensure_utc(log.completed_at) or now)
                stats['repaired'] += 1
                return

            # Outcome unknown: the provider may or may not have the message.
            # Park it for an operator; it stays listed as an ambiguous send.
            self.enrollment_repository.advance(enrollment.id, touch_number, {'next_touch_due_at': None})
            self.enrollment_repository.commit()
            logger.warning("Enrollment parked on ambiguous send",
                           enrollment_id=enrollment.id,
                           touch_number=touch_number,
                           send_log_id=log.id)
            stats['parked'] += 1
            return

        expected = next_due_at(enrollment)
        if expected is not None and expected != ensure_utc(enrollment.next_touch_due_at):
            self.enrollment_repository.advance(enrollment.id, touch_number, {'next_touch_due_at': expected})
            self.enrollment_repository.commit()

    def _evaluate(self, job, now: datetime, retry_on_race: bool = True) -> Result[EnrollmentDecision]:
        if job.campaign_override == ONE_OFF_OVERRIDE:
            return Result.success(self._decision(job, EnrollmentOutcome.ONE_OFF))

        current = as_resolution(job.enrollment_resolution)
        if current == R.SUPPRESSED:
            return Result.success(self._decision(job, EnrollmentOutcome.SUPPRESSED))
        if current == R.SKIPPED:
            return Result.success(self._decision(job, EnrollmentOutcome.SKIPPED))
        if current == R.REPLACE_ON_COMPLETE:
            return self._replace(job, now)

        campaign = self.campaign_service.find_campaign_for_job(job)
        if campaign is None:
            return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, reason='no_matching_campaign'))

        active = self.enrollment_repository.find_active_for_customer(job.customer_id)
        if active is not None:
            return self._handle_active(job, current, campaign, active, now)

        if self._should_suppress(job, now):
            if not can_transition(current, ResolverEvent.SUPPRESS):
                return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, reason='suppressed'))
            new = transition(current, ResolverEvent.SUPPRESS)
            if not self.job_repository.set_resolution(job.id, to_column(current), to_column(new)):
                return self._concurrent_update(job)
            self.job_repository.commit()
            logger.info("Enrollment suppressed", job_id=job.id, customer_id=job.customer_id)
            return Result.success(self._decision(job, EnrollmentOutcome.SUPPRESSED, resolution=new))

        if current == R.QUEUE_AFTER and not self._queue_gap_elapsed(job.customer_id, now):
            return Result.success(self._decision(job, EnrollmentOutcome.QUEUED, reason='waiting_for_gap'))

        transition(current, ResolverEvent.ENROLLED)
        try:
            enrollment = self._create_enrollment(job, campaign, now)
        except IntegrityError:
            # Another worker enrolled this customer between our check and insert
            logger.info("Concurrent enrollment detected", job_id=job.id, customer_id=job.customer_id)
            if retry_on_race:
                return self._evaluate(self.job_repository.refresh(job), now, retry_on_race=False)
            return self._concurrent_update(job)

        if enrollment is None:
            return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, campaign=campaign,
                                                 reason='campaign_has_no_touches'))

        if current != R.NONE:
            self.job_repository.set_resolution(job.id, to_column(current), None, conflict_detected_at=None)
        self.enrollment_repository.commit()

        logger.info("Customer enrolled in campaign",
                    job_id=job.id,
                    customer_id=job.customer_id,
                    campaign_id=campaign.id,
                    enrollment_id=enrollment.id)
        return Result.success(self._decision(job, EnrollmentOutcome.ENROLLED, enrollment=enrollment,
                                             resolution=R.NONE))

    def _handle_active(self, job, current: R, campaign, active, now: datetime) -> Result[EnrollmentDecision]:
        blocking = {
            'enrollment_id': active.id,
            'campaign_id': active.campaign_id,
            'campaign_name': active.campaign.name if active.campaign else None,
            'current_touch': active.current_touch,
        }

        if active.campaign_id == campaign.id:
            return Result.success(self._decision(job, EnrollmentOutcome.ALREADY_ENROLLED, enrollment=active))

        if current == R.QUEUE_AFTER:
            return Result.success(self._decision(job, EnrollmentOutcome.QUEUED, blocking=blocking))

        if current == R.CONFLICT:
            return Result.success(self._decision(job, EnrollmentOutcome.CONFLICT, blocking=blocking))

        new = transition(current, ResolverEvent.DETECT_CONFLICT)
        if not self.job_repository.set_resolution(job.id, to_column(current), to_column(new),
                                                  conflict_detected_at=now):
            return self._concurrent_update(job)
        self.job_repository.commit()

        logger.info("Enrollment conflict detected",
                    job_id=job.id,
                    customer_id=job.customer_id,
                    blocking_enrollment_id=active.id)
        return Result.success(self._decision(job, EnrollmentOutcome.CONFLICT, blocking=blocking,
                                             resolution=new))

    def _replace(self, job, now: datetime) -> Result[EnrollmentDecision]:
        """Stop the customer's current sequence and enroll this job instead."""
        current = as_resolution(job.enrollment_resolution)
        try:
            transition(current, ResolverEvent.REPLACE)
        except InvalidTransitionError as e:
            return Result.failure(str(e), code=ErrorCode.INVALID_STATE.value)

        if job.status != JobStatus.COMPLETED.value:
            return Result.failure("Job must be completed before enrolling",
                                  code=ErrorCode.INVALID_STATE.value)

        campaign = self.campaign_service.find_campaign_for_job(job)
        if campaign is None:
            return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, reason='no_matching_campaign'))

        if not self.job_repository.set_resolution(job.id, to_column(current), None, conflict_detected_at=None):
            return self._concurrent_update(job)

        stopped = self.enrollment_repository.stop_active_for_customer(
            job.customer_id, StopReason.REPLACED.value, now
        )
        try:
            enrollment = self._create_enrollment(job, campaign, now)
        except IntegrityError:
            # Another worker enrolled this customer after we stopped the old sequence
            logger.info("Concurrent enrollment detected", job_id=job.id, customer_id=job.customer_id)
            return self._concurrent_update(job)
        self.enrollment_repository.commit()

        logger.info("Enrollment replaced",
                    job_id=job.id,
                    customer_id=job.customer_id,
                    stopped=stopped,
                    enrollment_id=enrollment.id if enrollment else None)
        if enrollment is None:
            return Result.success(self._decision(job, EnrollmentOutcome.NOT_ENROLLED, campaign=campaign,
                                                 reason='campaign_has_no_touches', replaced=stopped))
        return Result.success(self._decision(job, EnrollmentOutcome.ENROLLED, enrollment=enrollment,
                                             replaced=stopped))

    def _create_enrollment(self, job, campaign, now: datetime):
        plan = [
            {
                'touch_number': t.touch_number,
                'channel': t.channel,
                'delay_hours': t.delay_hours,
                'template_id': t.template_id,
            }
            for t in campaign.touches
        ]
        if not plan:
            return None

        enrollment = self.enrollment_repository.create(
            account_id=job.account_id,
            customer_id=job.customer_id,
            job_id=job.id,
            campaign_id=campaign.id,
            status=EnrollmentStatus.ACTIVE.value,
            current_touch=1,
            touch_plan=plan,
            enrolled_at=now
        )
        return self.enrollment_repository.update(enrollment, next_touch_due_at=next_due_at(enrollment))

    def _should_suppress(self, job, now: datetime) -> bool:
        """Customer opted out, or reviewed within the account's cooldown."""
        customer = self.customer_repository.get_by_id(job.customer_id)
        if customer is not None and customer.opted_out:
            return True

        account = self.account_repository.get_by_id(job.account_id)
        cooldown_days = account.review_cooldown_days if account else 30
        return self.enrollment_repository.has_review_stop_since(
            job.customer_id, now - timedelta(days=cooldown_days)
        )

    def _queue_gap_elapsed(self, customer_id: int, now: datetime) -> bool:
        last = self.enrollment_repository.find_last_ended_for_customer(customer_id)
        if last is None:
            return True
        ended_at = ensure_utc(last.completed_at or last.stopped_at)
        return ended_at is None or ended_at + self.queue_after_gap <= now

    def _reevaluate_queued_for_customer(self, customer_id: int, now: datetime) -> None:
        for job in self.job_repository.find_queued_for_customer(customer_id):
            result = self._evaluate(job, now)
            if result.is_success and result.data.outcome == EnrollmentOutcome.ENROLLED.value:
                break

    def _load_job(self, job_id: int, account_id: Optional[int]):
        if account_id is None:
            return self.job_repository.get_by_id(job_id)
        return self.job_repository.get_for_account(account_id, job_id)

    def _concurrent_update(self, job) -> Result[EnrollmentDecision]:
        self.job_repository.rollback()
        return Result.failure("Job was updated by another request; please retry",
                              code=ErrorCode.INVALID_STATE.value)

    def _decision(self, job, outcome: EnrollmentOutcome, enrollment=None, campaign=None,
                  reason: Optional[str] = None, blocking: Optional[Dict[str, Any]] = None,
                  replaced: Optional[int] = None, resolution: Optional[R] = None) -> EnrollmentDecision:
        if resolution is None:
            resolution = as_resolution(job.enrollment_resolution)
        return EnrollmentDecision(
            job_id=job.id,
            outcome=outcome.value,
            resolution=resolution.value,
            enrollment_id=enrollment.id if enrollment else None,
            campaign_id=enrollment.campaign_id if enrollment else (campaign.id if campaign else None),
            reason=reason,
            blocking_enrollment=blocking,
            replaced=replaced
        )
