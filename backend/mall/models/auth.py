from __future__ import annotations

from ..extensions import db
from mall.time_utils import to_utc_z


class User(db.Model):
    """
    User accounts for authentication and attribution.

    A merchant is a User whose role is "merchant"; products reference their
    owning merchant through Product.merchant_id.

    The role column is the role chosen at sign-up and embedded in session
    tokens. Authorization decisions use the policy rules (PolicyRule), where
    the user appears as the subject "user:<id>".
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(32), nullable=False, default="user")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class PolicyRule(db.Model):
    """
    Persisted authorization policy.

    ptype "p": grant      (v0=role,    v1=resource, v2=action)
    ptype "g": assignment (v0=subject, v1=role,     v2="")

    The table is the durable copy of the in-memory AuthorizationEngine state.
    It is only written by SQLAlchemyPolicyStore.save_all (full replace).
    """
    __tablename__ = "policy_rules"
    __table_args__ = (
        db.UniqueConstraint("ptype", "v0", "v1", "v2", name="uq_policy_rules_rule"),
        db.Index("ix_policy_rules_ptype", "ptype"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ptype = db.Column(db.String(8), nullable=False)
    v0 = db.Column(db.String(128), nullable=False)
    v1 = db.Column(db.String(128), nullable=False)
    v2 = db.Column(db.String(128), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<PolicyRule {self.ptype} {self.v0!r} {self.v1!r} {self.v2!r}>"
