# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login    username/email + password -> session token
- POST /api/auth/refresh  old token -> new token (see TokenService refresh policy)
- GET  /api/auth/me       current user, claims and effective permissions

Self-registration is disabled. Users are created by administrators via
POST /api/admin/users or the CLI (flask users create).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import MallError, error_response
from ..services import auth_service
from ..services.authorization_service import get_authorization_engine
from ..validation import require_json_object
from ..services.token_service import get_token_service
from mall.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a session token.

    The token must be sent as "Authorization: Bearer <token>".
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        username = data.get("username") or data.get("email") or data.get("identifier")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        result = auth_service.login(username, password, get_token_service())
        result["message"] = "Login successful"
        return jsonify(result), 200

    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/refresh")
def refresh_route():
    """
    Exchange a token for a fresh one.

    Accepts the token in the Authorization header or as {"token": "..."}.
    Expired tokens are accepted within the refresh grace period.
    """
    try:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1].strip()
        else:
            token = require_json_object(request.get_json(silent=True)).get("token")

        if not token:
            return jsonify({"error": "token required"}), 400

        tokens = get_token_service()
        new_token = tokens.refresh_token(token)
        claims = tokens.parse_token(new_token)
        return jsonify({
            "token": new_token,
            "expires_at": to_utc_z(claims.expires_at),
        }), 200

    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to refresh token")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, token claims and effective (inherited) permissions."""
    try:
        engine = get_authorization_engine()
        permissions = [
            {"role": role, "resource": resource, "action": action}
            for role, resource, action in engine.get_permissions_for_subject(g.subject)
        ]
        return jsonify({
            "user": g.current_user.to_dict(),
            "claims": g.claims.to_dict(),
            "roles": engine.get_implicit_roles_for_subject(g.subject),
            "permissions": permissions,
        }), 200
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
