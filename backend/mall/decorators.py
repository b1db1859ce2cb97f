# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .errors import MallError, TokenError, error_response
from .extensions import db
from .models import User
from .permissions import format_user_subject
from .services.authorization_service import get_authorization_engine
from .services.token_service import get_token_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'claims')


def require_auth(f):
    """
    Require a valid Bearer session token.

    Sets the following Flask g attributes:
    - g.claims: SessionClaims decoded from the token
    - g.current_user: the User the token was issued to
    - g.subject: the policy subject ("user:<id>")

    Returns 401 if:
    - No Authorization header
    - Invalid, malformed or expired token (expired adds a refresh hint)
    - User account missing or deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        try:
            claims = get_token_service().parse_token(token)
        except TokenError as e:
            body, status = error_response(e)
            return jsonify(body), status

        user = db.session.get(User, claims.user_id)
        if user is None or not user.is_active:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.claims = claims
        g.current_user = user
        g.subject = format_user_subject(user.id)

        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str, action: str):
    """
    Require the authenticated subject to hold (resource, action), directly
    or through an inherited role. Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                allowed = get_authorization_engine().check_permission(g.subject, resource, action)
            except MallError as e:
                current_app.logger.exception("Failed to check permission")
                body, status = error_response(e)
                return jsonify(body), status

            if not allowed:
                current_app.logger.info(
                    "Permission denied: subject=%s resource=%s action=%s path=%s",
                    g.subject, resource, action, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": {"resource": resource, "action": action},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permissions):
    """
    Require any of the given (resource, action) pairs.

    Used where either a scoped grant (product/write) or the admin grant
    (product/manage) is enough.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                engine = get_authorization_engine()
                allowed = any(
                    engine.check_permission(g.subject, resource, action)
                    for resource, action in permissions
                )
            except MallError as e:
                current_app.logger.exception("Failed to check permission")
                body, status = error_response(e)
                return jsonify(body), status

            if not allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_permissions": [
                        {"resource": resource, "action": action} for resource, action in permissions
                    ],
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
