"""Ad-hoc and scheduled review request sends."""

from flask import Blueprint, jsonify, request, current_app
from auth_utils import login_required, current_account_id
from routes.responses import result_response, bad_request
from services.enums import Channel
from utils.datetime_utils import parse_utc_iso, format_utc_iso

send_bp = Blueprint('sends', __name__)


def _scheduled_dict(scheduled):
    return {
        'id': scheduled.id,
        'status': scheduled.status,
        'scheduled_for': format_utc_iso(scheduled.scheduled_for),
        'customer_ids': scheduled.customer_ids,
        'channel': scheduled.channel,
    }


def _parse_time(value):
    if not isinstance(value, str):
        return None
    try:
        return parse_utc_iso(value)
    except ValueError:
        return None


@send_bp.route('/sends', methods=['POST'])
@login_required
def create_send():
    """
    Send review requests now, or schedule them.

    Expected JSON payload:
    {
        "customer_ids": [1, 2, 3],
        "template_id": 7,
        "channel": "email",
        "custom_subject": "Optional subject",
        "scheduled_for": "2026-05-01T15:00:00Z"
    }

    Returns:
        200: Batch result with per-recipient details
        201: Scheduled send created
        400/402/404: Validation, quota or lookup failure
    """
    data = request.get_json(silent=True)
    if not data:
        return bad_request('No data provided')

    account_id = current_account_id()
    kwargs = {
        'template_id': data.get('template_id'),
        'channel': data.get('channel') or Channel.EMAIL.value,
        'custom_subject': data.get('custom_subject'),
        'custom_body': data.get('custom_body'),
    }

    if data.get('scheduled_for') is not None:
        scheduled_for = _parse_time(data['scheduled_for'])
        if scheduled_for is None:
            return bad_request('scheduled_for must be an ISO-8601 timestamp', field='scheduled_for')
        scheduled_send_service = current_app.services.get('scheduled_send')
        result = scheduled_send_service.schedule(account_id, data.get('customer_ids'), scheduled_for, **kwargs)
        return result_response(result, 201, serialize=_scheduled_dict)

    send_orchestrator = current_app.services.get('send_orchestrator')
    return result_response(send_orchestrator.send_batch(account_id, data.get('customer_ids'), **kwargs))


@send_bp.route('/sends/resend', methods=['POST'])
@login_required
def resend():
    data = request.get_json(silent=True) or {}
    send_orchestrator = current_app.services.get('send_orchestrator')
    return result_response(send_orchestrator.resend(current_account_id(), data.get('send_log_ids')))


@send_bp.route('/sends/ambiguous', methods=['GET'])
@login_required
def ambiguous_sends():
    """Sends left pending long enough that nobody knows whether they went out"""
    minutes = request.args.get('older_than_minutes', type=int) \
        or current_app.config.get('AMBIGUOUS_SEND_MINUTES', 15)
    send_orchestrator = current_app.services.get('send_orchestrator')
    sends = send_orchestrator.find_ambiguous_sends(current_account_id(), older_than_minutes=minutes)
    return jsonify({'success': True, 'data': sends})


@send_bp.route('/scheduled-sends/<int:scheduled_send_id>/cancel', methods=['POST'])
@login_required
def cancel_scheduled_send(scheduled_send_id):
    scheduled_send_service = current_app.services.get('scheduled_send')
    return result_response(scheduled_send_service.cancel(current_account_id(), scheduled_send_id))


@send_bp.route('/scheduled-sends/bulk-cancel', methods=['POST'])
@login_required
def bulk_cancel():
    data = request.get_json(silent=True) or {}
    scheduled_send_service = current_app.services.get('scheduled_send')
    return result_response(scheduled_send_service.bulk_cancel(current_account_id(), data.get('ids')))


@send_bp.route('/scheduled-sends/bulk-reschedule', methods=['POST'])
@login_required
def bulk_reschedule():
    data = request.get_json(silent=True) or {}
    new_time = _parse_time(data.get('new_time'))
    if new_time is None:
        return bad_request('new_time must be an ISO-8601 timestamp', field='new_time')

    scheduled_send_service = current_app.services.get('scheduled_send')
    return result_response(scheduled_send_service.bulk_reschedule(current_account_id(), data.get('ids'), new_time))
