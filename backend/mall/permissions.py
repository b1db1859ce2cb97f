"""
Access-control vocabulary and default grants.

Resources and actions form a closed set: grants and permission checks that
name anything else are rejected before the policy is consulted.

DESIGN PRINCIPLES:
- A grant is (role, resource, action); matching is exact
- "manage" is its own action, it does not imply read/write/create/delete
- Users are subjects of the form "user:<id>"; roles are plain names
- A role may be assigned to another role to inherit its grants
"""
from __future__ import annotations

# =============================================================================
# ROLES
# =============================================================================

ROLE_USER = "user"
ROLE_MERCHANT = "merchant"
ROLE_ADMIN = "admin"

ROLES = (ROLE_USER, ROLE_MERCHANT, ROLE_ADMIN)


# =============================================================================
# RESOURCES
# =============================================================================

RESOURCE_USER = "user"
RESOURCE_PRODUCT = "product"
RESOURCE_CATEGORY = "category"
RESOURCE_ORDER = "order"
RESOURCE_STORE = "store"
RESOURCE_SYSTEM = "system"
RESOURCE_CONFIG = "config"
RESOURCE_FILE = "file"
RESOURCE_REPORT = "report"

RESOURCE_DESCRIPTIONS = {
    RESOURCE_USER: "User management",
    RESOURCE_PRODUCT: "Product management",
    RESOURCE_CATEGORY: "Category management",
    RESOURCE_ORDER: "Order management",
    RESOURCE_STORE: "Store management",
    RESOURCE_SYSTEM: "System administration",
    RESOURCE_CONFIG: "Configuration",
    RESOURCE_FILE: "File management",
    RESOURCE_REPORT: "Reports",
}


# =============================================================================
# ACTIONS
# =============================================================================

ACTION_READ = "read"
ACTION_WRITE = "write"
ACTION_CREATE = "create"
ACTION_DELETE = "delete"
ACTION_MANAGE = "manage"

ACTION_DESCRIPTIONS = {
    ACTION_READ: "View",
    ACTION_WRITE: "Edit",
    ACTION_CREATE: "Create",
    ACTION_DELETE: "Delete",
    ACTION_MANAGE: "Manage",
}


# =============================================================================
# DEFAULT ROLE GRANTS
# =============================================================================

DEFAULT_ROLE_POLICIES = {
    ROLE_USER: [
        (RESOURCE_USER, ACTION_READ),
        (RESOURCE_USER, ACTION_WRITE),
        (RESOURCE_PRODUCT, ACTION_READ),
        (RESOURCE_CATEGORY, ACTION_READ),
        (RESOURCE_ORDER, ACTION_READ),
        (RESOURCE_ORDER, ACTION_CREATE),
        (RESOURCE_FILE, ACTION_CREATE),
    ],
    ROLE_MERCHANT: [
        (RESOURCE_PRODUCT, ACTION_READ),
        (RESOURCE_PRODUCT, ACTION_WRITE),
        (RESOURCE_PRODUCT, ACTION_CREATE),
        (RESOURCE_PRODUCT, ACTION_DELETE),
        (RESOURCE_CATEGORY, ACTION_READ),
        (RESOURCE_CATEGORY, ACTION_WRITE),
        (RESOURCE_CATEGORY, ACTION_CREATE),
        (RESOURCE_ORDER, ACTION_READ),
        (RESOURCE_ORDER, ACTION_WRITE),
        (RESOURCE_STORE, ACTION_READ),
        (RESOURCE_STORE, ACTION_WRITE),
        (RESOURCE_FILE, ACTION_CREATE),
        (RESOURCE_FILE, ACTION_READ),
        (RESOURCE_REPORT, ACTION_READ),
    ],
    ROLE_ADMIN: [
        (RESOURCE_USER, ACTION_MANAGE),
        (RESOURCE_PRODUCT, ACTION_MANAGE),
        (RESOURCE_CATEGORY, ACTION_MANAGE),
        (RESOURCE_ORDER, ACTION_MANAGE),
        (RESOURCE_STORE, ACTION_MANAGE),
        (RESOURCE_SYSTEM, ACTION_MANAGE),
        (RESOURCE_CONFIG, ACTION_MANAGE),
        (RESOURCE_FILE, ACTION_MANAGE),
        (RESOURCE_REPORT, ACTION_MANAGE),
    ],
}


# =============================================================================
# HELPERS
# =============================================================================

USER_SUBJECT_PREFIX = "user:"


def is_valid_role(role: str) -> bool:
    return role in ROLES


def is_valid_resource(resource: str) -> bool:
    return resource in RESOURCE_DESCRIPTIONS


def is_valid_action(action: str) -> bool:
    return action in ACTION_DESCRIPTIONS


def get_default_policies() -> list[tuple[str, str, str]]:
    """Flatten DEFAULT_ROLE_POLICIES into (role, resource, action) triples."""
    return [
        (role, resource, action)
        for role, grants in DEFAULT_ROLE_POLICIES.items()
        for resource, action in grants
    ]


def format_user_subject(user_id: int) -> str:
    """User id -> policy subject ("user:42")."""
    return f"{USER_SUBJECT_PREFIX}{user_id}"

