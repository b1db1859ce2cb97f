# Overview: Service-layer operations for authorization; evaluates role grants with inheritance.

"""
Role-Based Authorization with Role Inheritance

WHY: Every mutating route needs a yes/no answer to "may this subject do
this action on this resource". Grants are attached to roles; subjects hold
roles; roles may hold other roles and inherit their grants.

STATE:
- grants:      {(role, resource, action)}
- assignments: {subject: {role, ...}}  (a role can be a subject too)

The engine keeps both in memory. The policy store is the durable copy and
the two can diverge until save_policy() is called. load_policy() replaces
the in-memory state with the stored one.

DESIGN PRINCIPLES:
- Fail closed: no reachable grant means False
- Exact match: "manage" does not imply read/write/create/delete
- Not loaded is an error, never a silent False
- No cycles: an assignment that would close a cycle is rejected, and
  evaluation keeps a visited set so stored cycles still terminate
"""
from __future__ import annotations

import logging
import threading
from collections import deque

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InvalidArgumentError, NotInitializedError, StorageFailureError
from ..models import PolicyRule
from ..permissions import get_default_policies, is_valid_action, is_valid_resource

logger = logging.getLogger(__name__)

PTYPE_GRANT = "p"
PTYPE_ASSIGNMENT = "g"

EXTENSION_KEY = "authz"


class SQLAlchemyPolicyStore:
    """Persists grants and assignments as PolicyRule rows."""

    def __init__(self, session):
        self.session = session

    def load_all(self) -> tuple[set[tuple[str, str, str]], dict[str, set[str]]]:
        grants: set[tuple[str, str, str]] = set()
        assignments: dict[str, set[str]] = {}
        try:
            rules = self.session.query(PolicyRule).order_by(PolicyRule.id.asc()).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageFailureError("load_policy", exc) from exc

        for rule in rules:
            if rule.ptype == PTYPE_GRANT:
                grants.add((rule.v0, rule.v1, rule.v2))
            elif rule.ptype == PTYPE_ASSIGNMENT:
                assignments.setdefault(rule.v0, set()).add(rule.v1)
            else:
                logger.warning("Ignoring policy rule with unknown ptype %r (id=%s)", rule.ptype, rule.id)
        return grants, assignments

    def save_all(self, grants, assignments) -> None:
        """Replace every stored rule with the given state in one transaction."""
        try:
            self.session.query(PolicyRule).delete(synchronize_session=False)
            rows = [PolicyRule(ptype=PTYPE_GRANT, v0=r, v1=res, v2=act) for r, res, act in sorted(grants)]
            rows.extend(
                PolicyRule(ptype=PTYPE_ASSIGNMENT, v0=subject, v1=role, v2="")
                for subject in sorted(assignments)
                for role in sorted(assignments[subject])
            )
            self.session.add_all(rows)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageFailureError("save_policy", exc) from exc


def _require_name(value: str, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{what} is required")
    return value.strip()


def _require_vocabulary(resource: str, action: str) -> None:
    if not is_valid_resource(resource):
        raise InvalidArgumentError(f"Invalid resource: {resource!r}")
    if not is_valid_action(action):
        raise InvalidArgumentError(f"Invalid action: {action!r}")


class AuthorizationEngine:
    def __init__(self, store):
        self._store = store
        self._lock = threading.RLock()
        self._grants: set[tuple[str, str, str]] = set()
        self._assignments: dict[str, set[str]] = {}
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise NotInitializedError("Authorization engine is not initialized; call load_policy() first")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_policy(self) -> None:
        """Replace the in-memory state with the stored policy."""
        grants, assignments = self._store.load_all()
        with self._lock:
            self._grants = set(grants)
            self._assignments = {subject: set(roles) for subject, roles in assignments.items() if roles}
            self._loaded = True
        logger.info("Loaded authorization policy: %d grants, %d subjects",
                    len(grants), len(assignments))

    def save_policy(self) -> None:
        """Write the in-memory state to the store (full replace)."""
        with self._lock:
            self._require_loaded()
            grants = set(self._grants)
            assignments = {subject: set(roles) for subject, roles in self._assignments.items()}
        self._store.save_all(grants, assignments)
        logger.info("Saved authorization policy: %d grants, %d subjects",
                    len(grants), len(assignments))

    def init_default_policies(self) -> int:
        """Add the built-in role grants and save. Returns how many were new."""
        added = 0
        with self._lock:
            self._require_loaded()
            for role, resource, action in get_default_policies():
                if self.add_policy(role, resource, action):
                    added += 1
        self.save_policy()
        return added

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def add_policy(self, role: str, resource: str, action: str) -> bool:
        """Grant (resource, action) to role. False if it was already granted."""
        self._require_loaded()
        role = _require_name(role, "role")
        _require_vocabulary(resource, action)
        with self._lock:
            rule = (role, resource, action)
            if rule in self._grants:
                return False
            self._grants.add(rule)
            return True

    def remove_policy(self, role: str, resource: str, action: str) -> bool:
        self._require_loaded()
        role = _require_name(role, "role")
        _require_vocabulary(resource, action)
        with self._lock:
            rule = (role, resource, action)
            if rule not in self._grants:
                return False
            self._grants.discard(rule)
            return True

    def get_policy(self) -> list[tuple[str, str, str]]:
        """Every grant, sorted."""
        with self._lock:
            self._require_loaded()
            return sorted(self._grants)

    # ------------------------------------------------------------------
    # Role assignments
    # ------------------------------------------------------------------

    def _reachable(self, start: str) -> list[str]:
        """Breadth-first walk over assignments. Includes start. Caller holds the lock."""
        order = [start]
        visited = {start}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            for role in sorted(self._assignments.get(node, ())):
                if role not in visited:
                    visited.add(role)
                    order.append(role)
                    queue.append(role)
        return order

    def add_role_for_subject(self, subject: str, role: str) -> bool:
        """
        Assign role to subject. The subject may itself be a role, which
        makes it inherit every grant of `role`.

        Raises InvalidArgumentError if the assignment would create a cycle.
        """
        self._require_loaded()
        subject = _require_name(subject, "subject")
        role = _require_name(role, "role")
        if subject == role:
            raise InvalidArgumentError(f"Role {role!r} cannot be assigned to itself")
        with self._lock:
            current = self._assignments.setdefault(subject, set())
            if role in current:
                return False
            if subject in self._reachable(role):
                if not current:
                    del self._assignments[subject]
                raise InvalidArgumentError(
                    f"Assigning {role!r} to {subject!r} would create a role inheritance cycle"
                )
            current.add(role)
            return True

    def delete_role_for_subject(self, subject: str, role: str) -> bool:
        self._require_loaded()
        subject = _require_name(subject, "subject")
        role = _require_name(role, "role")
        with self._lock:
            current = self._assignments.get(subject)
            if not current or role not in current:
                return False
            current.discard(role)
            if not current:
                del self._assignments[subject]
            return True

    def has_role_for_subject(self, subject: str, role: str) -> bool:
        """Direct assignment only."""
        with self._lock:
            self._require_loaded()
            return role in self._assignments.get(subject, ())

    def get_roles_for_subject(self, subject: str) -> list[str]:
        """Directly assigned roles."""
        with self._lock:
            self._require_loaded()
            return sorted(self._assignments.get(subject, ()))

    def get_users_for_role(self, role: str) -> list[str]:
        """Subjects directly holding role."""
        with self._lock:
            self._require_loaded()
            return sorted(subject for subject, roles in self._assignments.items() if role in roles)

    def get_implicit_roles_for_subject(self, subject: str) -> list[str]:
        """Every role reachable from subject, nearest first."""
        with self._lock:
            self._require_loaded()
            return self._reachable(subject)[1:]

    def get_permissions_for_subject(self, subject: str) -> list[tuple[str, str, str]]:
        """Grants held by subject or any role it reaches."""
        with self._lock:
            self._require_loaded()
            nodes = set(self._reachable(subject))
            return sorted(rule for rule in self._grants if rule[0] in nodes)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def check_permission(self, subject: str, resource: str, action: str) -> bool:
        """
        True if subject, or any role reachable from it, is granted exactly
        (resource, action).
        """
        self._require_loaded()
        subject = _require_name(subject, "subject")
        _require_vocabulary(resource, action)
        with self._lock:
            visited = {subject}
            queue = deque([subject])
            while queue:
                node = queue.popleft()
                if (node, resource, action) in self._grants:
                    return True
                for role in self._assignments.get(node, ()):
                    if role not in visited:
                        visited.add(role)
                        queue.append(role)
            return False


def get_authorization_engine() -> AuthorizationEngine:
    """The engine registered on the current app by create_app()."""
    engine = current_app.extensions.get(EXTENSION_KEY)
    if engine is None:
        raise NotInitializedError("Authorization engine is not registered on this app")
    return engine
