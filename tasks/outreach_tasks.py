"""
Celery tasks for the outreach engine
Periodic sweeps for campaign touches, scheduled sends and conflicts
"""

from flask import current_app
from utils.datetime_utils import utc_now
from celery_worker import celery
from logging_config import get_logger

logger = get_logger(__name__)


def _service(name: str):
    service = current_app.services.get(name)
    if not service:
        raise ValueError(f"{name} service not registered")
    return service


@celery.task(bind=True)
def process_campaign_touches(self):
    """Fire every campaign touch that has come due"""
    try:
        enrollment_service = _service('enrollment')
        stats = enrollment_service.process_due_touches(
            limit=current_app.config.get('TOUCH_BATCH_LIMIT', 200)
        )
        return {'success': True, 'timestamp': utc_now().isoformat(), 'stats': stats}

    except Exception as e:
        logger.error("Campaign touch processing failed", error=str(e))
        if "not registered" in str(e):
            raise
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries), max_retries=3)


@celery.task(bind=True)
def process_scheduled_sends(self):
    """Run scheduled batch sends that are due"""
    try:
        stats = _service('scheduled_send').process_due()
        return {'success': True, 'timestamp': utc_now().isoformat(), 'stats': stats}

    except Exception as e:
        logger.error("Scheduled send processing failed", error=str(e))
        if "not registered" in str(e):
            raise
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries), max_retries=3)


@celery.task
def process_queued_jobs():
    """Enroll queue_after jobs whose blocking sequence has ended"""
    stats = _service('enrollment').process_queued_jobs()
    if stats['enrolled']:
        logger.info("Queued jobs enrolled", **stats)
    return {'success': True, 'timestamp': utc_now().isoformat(), 'stats': stats}


@celery.task
def resolve_enrollment_conflicts():
    """Auto-resolve conflicts left undecided past the configured window"""
    stats = _service('enrollment').auto_resolve_stale_conflicts()
    if stats['replaced'] or stats['errors']:
        logger.info("Stale enrollment conflicts resolved", **stats)
    return {'success': True, 'timestamp': utc_now().isoformat(), 'stats': stats}


@celery.task
def evaluate_job_enrollment(job_id: int):
    """Evaluate a job for enrollment as soon as it is marked completed"""
    result = _service('enrollment').evaluate_job(job_id)
    if result.is_failure:
        logger.warning("Job enrollment evaluation failed", job_id=job_id, error=result.error)
        return {'success': False, 'error': result.error, 'error_code': result.error_code}
    return {'success': True, 'decision': result.data.to_dict()}


@celery.task
def stop_customer_enrollments(customer_id: int, reason: str):
    """Stop a customer's sequence after a review, feedback or opt-out event"""
    result = _service('enrollment').stop_customer_enrollments(customer_id, reason)
    if result.is_failure:
        logger.warning("Stopping customer enrollments failed",
                       customer_id=customer_id, reason=reason, error=result.error)
        return {'success': False, 'error': result.error, 'error_code': result.error_code}
    return {'success': True, **result.data}
