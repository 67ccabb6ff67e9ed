# Overview: Permission decorators for the HTTP layer.

"""
Thin boundary between the request layer and the AuthorizationEngine.

The authentication layer sets g.current_user_id; these decorators turn a
Forbidden from the engine into a 403 JSON response.
"""

from functools import wraps
from flask import jsonify, g

from .services.authorization_service import Forbidden, get_authorization_engine


def _current_user_id():
    return getattr(g, "current_user_id", None)


def require_permission(permission_name: str):
    """Require a specific permission."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = _current_user_id()
            if user_id is None:
                return jsonify({"error": "Authentication required"}), 401

            try:
                get_authorization_engine().authorize(user_id, permission_name)
            except Forbidden as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": e.permission,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permission_names):
    """Require any of the specified permissions."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = _current_user_id()
            if user_id is None:
                return jsonify({"error": "Authentication required"}), 401

            try:
                get_authorization_engine().authorize_any(user_id, permission_names)
            except Forbidden as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permissions": list(permission_names),
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
