"""Campaign authoring endpoints."""

from flask import Blueprint, jsonify, request, current_app
from auth_utils import login_required, current_account_id
from routes.responses import result_response, error_response, bad_request
from services.common.result import Result
from services.campaign_service import CAMPAIGN_PRESETS, CampaignValidationError, new_campaign

campaign_bp = Blueprint('campaigns', __name__)


def _campaign_dict(campaign):
    return {
        'id': campaign.id,
        'name': campaign.name,
        'service_type': campaign.service_type,
        'status': campaign.status,
        'touches': [
            {
                'touch_number': t.touch_number,
                'channel': t.channel,
                'delay_hours': t.delay_hours,
                'template_id': t.template_id,
            }
            for t in campaign.touches
        ],
    }


@campaign_bp.route('', methods=['POST'])
@login_required
def create_campaign():
    """
    Create a campaign from explicit touches or a preset.

    Expected JSON payload:
    {
        "name": "Roof follow-up",
        "service_type": "roofing",
        "touches": [{"touch_number": 1, "channel": "email", "delay_hours": 24}]
    }
    or {"preset": "standard", "name": "...", "service_type": "..."}
    """
    data = request.get_json(silent=True)
    if not data:
        return bad_request('No data provided')

    campaign_service = current_app.services.get('campaign')
    account_id = current_account_id()

    if data.get('preset'):
        result = campaign_service.create_from_preset(
            account_id, data['preset'], name=data.get('name'), service_type=data.get('service_type')
        )
        return result_response(result, 201, serialize=_campaign_dict)

    touches = data.get('touches')
    if not isinstance(touches, list):
        return bad_request('Touches must be a list', field='touches')
    try:
        draft = new_campaign(data.get('name') or '', touches, data.get('service_type'))
    except CampaignValidationError as e:
        return error_response(Result.validation_error(e.field_errors))

    return result_response(campaign_service.create_campaign(account_id, draft), 201, serialize=_campaign_dict)


@campaign_bp.route('/presets', methods=['GET'])
@login_required
def list_presets():
    return jsonify({
        'success': True,
        'data': [preset.to_dict() for preset in CAMPAIGN_PRESETS.values()]
    })


@campaign_bp.route('/<int:campaign_id>/pause', methods=['POST'])
@login_required
def pause_campaign(campaign_id):
    campaign_service = current_app.services.get('campaign')
    return result_response(campaign_service.pause_campaign(current_account_id(), campaign_id))
