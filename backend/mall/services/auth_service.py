# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing
and validates password strength.

LOGIN FLOW:
1. authenticate(): username (or email) + password -> active User
2. TokenService.issue_token(): signed session token carrying id/name/role
3. Client sends the token as "Authorization: Bearer <token>"

ROLES:
User.role is the sign-up role and is embedded in the token. Authorization
decisions go through the AuthorizationEngine, where create_user() assigns
the subject "user:<id>" to that role.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper/lower/digit/special required
- Failed logins never say whether the username or the password was wrong
"""
from __future__ import annotations

import logging
import re

import bcrypt
from flask import current_app

from ..errors import AuthenticationFailedError
from ..extensions import db
from ..models import User
from ..permissions import ROLE_USER, ROLES, format_user_subject, is_valid_role
from ..validation import ValidationError
from mall.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    return int(current_app.config.get("BCRYPT_ROUNDS", 12))


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash. Timing-safe via bcrypt.checkpw().

    A hash bcrypt cannot parse counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = ROLE_USER,
    *,
    engine=None,
) -> User:
    """
    Create a user and, when an AuthorizationEngine is given, assign
    "user:<id>" to role and save the policy.

    Raises:
        ValidationError: bad role, weak password, or username/email taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValidationError("username is required")
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if not is_valid_role(role):
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValidationError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)

    # The row and its role assignment land together or not at all.
    subject = None
    try:
        db.session.flush()
        if engine is not None:
            if engine.add_role_for_subject(format_user_subject(user.id), role):
                subject = format_user_subject(user.id)
            engine.save_policy()
        db.session.commit()
    except Exception:
        db.session.rollback()
        if subject is not None:
            engine.delete_role_for_subject(subject, role)
        logger.warning("Failed to create user username=%s; rolled back", username)
        raise

    logger.info("Created user id=%s username=%s role=%s", user.id, user.username, role)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns the User if credentials are valid and the account is active,
    None otherwise. Updates last_login_at on success.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def login(username: str, password: str, tokens) -> dict:
    """
    Authenticate and issue a session token.

    Returns {"token", "expires_at", "user"}.
    Raises AuthenticationFailedError on bad credentials.
    """
    user = authenticate(username, password)
    if user is None:
        logger.info("Failed login for username=%s", username)
        raise AuthenticationFailedError("Invalid credentials")

    token = tokens.issue_token(user.id, user.username, user.role)
    claims = tokens.parse_token(token)
    return {
        "token": token,
        "expires_at": to_utc_z(claims.expires_at),
        "user": user.to_dict(),
    }
