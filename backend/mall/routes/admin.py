# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for users, roles and permission policies.

Provides endpoints for:
- User management (list, create)
- Role assignment (assign, remove, list; role-to-role inheritance too)
- Policy grants (list, add, remove, check)
- Persistence (save the in-memory policy, reload it from the database)

Every endpoint requires system/manage.

NOTE: Policy changes live in memory until POST /api/admin/policy/save.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import MallError, error_response
from ..extensions import db
from ..models import User
from ..permissions import (
    ACTION_DESCRIPTIONS,
    ACTION_MANAGE,
    RESOURCE_DESCRIPTIONS,
    RESOURCE_SYSTEM,
    ROLES,
    format_user_subject,
)
from ..services import auth_service
from ..services.authorization_service import get_authorization_engine
from ..validation import require_json_object

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _fields(payload: dict, *names: str):
    missing = [n for n in names if not payload.get(n)]
    if missing:
        return None, ({"error": f"Missing required fields: {', '.join(missing)}"}, 400)
    return [payload[n] for n in names], None


def _policy_dict(rule) -> dict:
    role, resource, action = rule
    return {"role": role, "resource": resource, "action": action}


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def list_users():
    """
    List users with their directly assigned roles.

    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"

    query = db.session.query(User)
    if not include_inactive:
        query = query.filter_by(is_active=True)

    try:
        engine = get_authorization_engine()
        users = []
        for user in query.order_by(User.username).all():
            data = user.to_dict()
            data["roles"] = engine.get_roles_for_subject(format_user_subject(user.id))
            users.append(data)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status

    return jsonify({"users": users, "count": len(users)})


@admin_bp.post("/users")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def create_user():
    """
    Create a user and assign their role in the policy (saved immediately).

    Body: {"username", "email", "password", "role"?}
    """
    payload = require_json_object(request.get_json(silent=True))
    values, error = _fields(payload, "username", "email", "password")
    if error:
        return error
    username, email, password = values

    try:
        user = auth_service.create_user(
            username,
            email,
            password,
            payload.get("role") or "user",
            engine=get_authorization_engine(),
        )
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict()}), 201


# =============================================================================
# ROLE ASSIGNMENT
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def list_roles():
    """Built-in roles with the subjects holding each."""
    try:
        engine = get_authorization_engine()
        roles = [{"name": role, "subjects": engine.get_users_for_role(role)} for role in ROLES]
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"roles": roles})


@admin_bp.get("/subjects/<subject>/roles")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def subject_roles(subject: str):
    """Direct and inherited roles of a subject ("user:42" or a role name)."""
    try:
        engine = get_authorization_engine()
        return jsonify({
            "subject": subject,
            "roles": engine.get_roles_for_subject(subject),
            "implicit_roles": engine.get_implicit_roles_for_subject(subject),
        })
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status


@admin_bp.get("/subjects/<subject>/permissions")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def subject_permissions(subject: str):
    try:
        rules = get_authorization_engine().get_permissions_for_subject(subject)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"subject": subject, "permissions": [_policy_dict(r) for r in rules]})


@admin_bp.post("/roles/assign")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def assign_role():
    """
    Body: {"subject", "role"}. The subject may be a role name, which makes
    it inherit every grant of "role".
    """
    payload = require_json_object(request.get_json(silent=True))
    values, error = _fields(payload, "subject", "role")
    if error:
        return error

    try:
        added = get_authorization_engine().add_role_for_subject(*values)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"added": added})


@admin_bp.post("/roles/remove")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def remove_role():
    payload = require_json_object(request.get_json(silent=True))
    values, error = _fields(payload, "subject", "role")
    if error:
        return error

    try:
        removed = get_authorization_engine().delete_role_for_subject(*values)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"removed": removed})


# =============================================================================
# POLICY GRANTS
# =============================================================================

@admin_bp.get("/policies")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def list_policies():
    try:
        rules = get_authorization_engine().get_policy()
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"policies": [_policy_dict(r) for r in rules], "count": len(rules)})


@admin_bp.get("/policies/vocabulary")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def policy_vocabulary():
    return jsonify({"resources": RESOURCE_DESCRIPTIONS, "actions": ACTION_DESCRIPTIONS, "roles": list(ROLES)})


@admin_bp.post("/policies")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def add_policy():
    """Body: {"role", "resource", "action"}. 200 with added=false if it already exists."""
    payload = require_json_object(request.get_json(silent=True))
    values, error = _fields(payload, "role", "resource", "action")
    if error:
        return error

    try:
        added = get_authorization_engine().add_policy(*values)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"added": added}), 201 if added else 200


@admin_bp.delete("/policies")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def remove_policy():
    payload = require_json_object(request.get_json(silent=True))
    values, error = _fields(payload, "role", "resource", "action")
    if error:
        return error

    try:
        removed = get_authorization_engine().remove_policy(*values)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"removed": removed})


@admin_bp.post("/policies/check")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def check_policy():
    """Body: {"subject", "resource", "action"} -> {"allowed": bool}."""
    payload = require_json_object(request.get_json(silent=True))
    values, error = _fields(payload, "subject", "resource", "action")
    if error:
        return error

    try:
        allowed = get_authorization_engine().check_permission(*values)
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"allowed": allowed})


@admin_bp.post("/policy/save")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def save_policy():
    try:
        get_authorization_engine().save_policy()
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"message": "Policy saved"})


@admin_bp.post("/policy/reload")
@require_auth
@require_permission(RESOURCE_SYSTEM, ACTION_MANAGE)
def reload_policy():
    """Discard unsaved in-memory changes and reload from the database."""
    try:
        get_authorization_engine().load_policy()
    except MallError as e:
        body, status = error_response(e)
        return jsonify(body), status
    return jsonify({"message": "Policy reloaded"})
