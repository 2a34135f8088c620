"""Enrollment decision endpoints used by operators."""

from flask import Blueprint, request, current_app
from auth_utils import login_required, current_account_id
from routes.responses import result_response, bad_request
from services.enums import StopReason

enrollment_bp = Blueprint('enrollments', __name__)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@enrollment_bp.route('/enrollments/evaluate', methods=['POST'])
@login_required
def evaluate_job():
    data = request.get_json(silent=True) or {}
    job_id = data.get('job_id')
    if not _is_int(job_id):
        return bad_request('job_id must be an integer', field='job_id')

    enrollment_service = current_app.services.get('enrollment')
    return result_response(enrollment_service.evaluate_job(job_id, account_id=current_account_id()))


@enrollment_bp.route('/enrollments/<int:job_id>/resolve', methods=['POST'])
@login_required
def resolve_conflict(job_id):
    """
    Resolve an enrollment conflict.

    Expected JSON payload: {"action": "replace" | "skip" | "queue_after"}
    """
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    if not action:
        return bad_request('Action is required', field='action')

    enrollment_service = current_app.services.get('enrollment')
    return result_response(enrollment_service.resolve(job_id, action, account_id=current_account_id()))


@enrollment_bp.route('/enrollments/<int:job_id>/revert', methods=['POST'])
@login_required
def revert_resolution(job_id):
    enrollment_service = current_app.services.get('enrollment')
    return result_response(enrollment_service.revert(job_id, account_id=current_account_id()))


@enrollment_bp.route('/enrollments/<int:job_id>/preflight-replace', methods=['POST'])
@login_required
def preflight_replace(job_id):
    enrollment_service = current_app.services.get('enrollment')
    return result_response(enrollment_service.preflight_replace(job_id, account_id=current_account_id()))


@enrollment_bp.route('/enrollments/<int:enrollment_id>/stop', methods=['POST'])
@login_required
def stop_enrollment(enrollment_id):
    data = request.get_json(silent=True) or {}
    reason = data.get('reason') or StopReason.OWNER_STOPPED.value

    enrollment_service = current_app.services.get('enrollment')
    return result_response(enrollment_service.stop_enrollment(
        enrollment_id, reason, account_id=current_account_id()
    ))


@enrollment_bp.route('/customers/<int:customer_id>/stop-enrollments', methods=['POST'])
@login_required
def stop_customer_enrollments(customer_id):
    """
    Record that a customer reviewed, left feedback or opted out, and stop
    their active sequence.

    Expected JSON payload: {"reason": "review_clicked" | "feedback_submitted" | "opted_out"}
    """
    data = request.get_json(silent=True) or {}
    reason = data.get('reason')
    if not reason:
        return bad_request('Reason is required', field='reason')

    enrollment_service = current_app.services.get('enrollment')
    return result_response(enrollment_service.stop_customer_enrollments(
        customer_id, reason, account_id=current_account_id()
    ))
