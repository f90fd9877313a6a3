"""
Authentication middleware for protecting Flask routes

require_auth rejects requests without a valid Supabase access token.
"""

from functools import wraps
from flask import request, jsonify, g

from auth_utils import bearer_token, verify_token


def require_auth(f):
    """
    Decorator to require valid Supabase access token

    Usage:
        @bp.route('/protected')
        @require_auth
        def protected_route():
            user = g.current_user
            return jsonify({'user': user})

    The decorated function will have access to g.current_user containing:
    - id: User UUID
    - email: User email
    - user_metadata: Profile metadata (username, ...)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            token = bearer_token(request.headers.get('Authorization'))
            g.current_user = verify_token(token)
            g.token = token
        except ValueError as e:
            return jsonify({'success': False, 'message': f'Access denied: {e}'}), 401

        return f(*args, **kwargs)

    return decorated_function
