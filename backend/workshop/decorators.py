# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'org_id')


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context) - REQUIRED
    - g.org_role: The caller's role in that organization (Owner / Member)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle token
    - User account, organization or membership no longer active
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        if not context.org_id:
            current_app.logger.error("Session %s has no tenant context", context.session.id)
            return jsonify({"error": "Invalid session: missing tenant context"}), 401

        g.current_user = context.user
        g.org_id = context.org_id
        g.org_role = context.role
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the caller's organization role to be one of `roles`.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.org_role not in roles:
                current_app.logger.warning(
                    "Role denied: user %s (%s) on %s %s",
                    g.current_user.id, g.org_role, request.method, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_role": " or ".join(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
