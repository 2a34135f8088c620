# auth_utils.py
"""
Authentication utilities for testing and production
"""

from functools import wraps
from flask import current_app, g, jsonify
from flask_login import current_user as flask_current_user
from unittest.mock import Mock


def get_current_user():
    """
    Get current user, respecting LOGIN_DISABLED config for testing
    """
    if current_app.config.get('LOGIN_DISABLED', False):
        if not hasattr(g, 'mock_user'):
            mock_user = Mock()
            mock_user.id = 1
            mock_user.account_id = current_app.config.get('TEST_ACCOUNT_ID', 1)
            mock_user.email = 'test@example.com'
            mock_user.is_active = True
            mock_user.is_authenticated = True
            mock_user.is_anonymous = False
            mock_user.get_id.return_value = '1'
            g.mock_user = mock_user
        return g.mock_user

    return flask_current_user


def current_account_id() -> int:
    """The account every query in this request is scoped to"""
    return get_current_user().account_id


def login_required(f):
    """login_required that respects LOGIN_DISABLED and answers in JSON"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_app.config.get('LOGIN_DISABLED', False):
            g.account_id = current_account_id()
            return f(*args, **kwargs)

        if not flask_current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Authentication required',
                            'error_code': 'UNAUTHORIZED'}), 401

        g.account_id = flask_current_user.account_id
        return f(*args, **kwargs)
    return decorated_function
