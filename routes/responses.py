"""Shared JSON response helpers for the API blueprints."""

from flask import jsonify
from services.common.result import Result
from services.enums import ErrorCode

ERROR_STATUS = {
    ErrorCode.VALIDATION_ERROR.value: 400,
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.INELIGIBLE.value: 422,
    ErrorCode.QUOTA_EXCEEDED.value: 402,
    ErrorCode.INVALID_STATE.value: 409,
    ErrorCode.TRANSPORT_FAILED.value: 502,
}


def error_response(result: Result):
    return jsonify(result.to_dict()), ERROR_STATUS.get(result.error_code, 500)


def result_response(result: Result, status: int = 200, serialize=None):
    """Render a service Result: payload on success, mapped error otherwise."""
    if result.is_failure:
        return error_response(result)
    data = serialize(result.data) if serialize else result.data
    if hasattr(data, 'to_dict'):
        data = data.to_dict()
    return jsonify({'success': True, 'data': data}), status


def bad_request(message: str, field: str = 'body'):
    return error_response(Result.validation_error({field: [message]}))
