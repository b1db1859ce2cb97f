# backend/mall/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/mall.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///mall.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session tokens (HS256). JWT_SECRET falls back to SECRET_KEY.
    JWT_SECRET = os.environ.get("JWT_SECRET") or SECRET_KEY
    JWT_ISSUER = os.environ.get("JWT_ISSUER", "mall")
    JWT_EXPIRE_SECONDS = int(os.environ.get("JWT_EXPIRE_SECONDS", "86400"))
    # Refresh is only allowed inside this window before expiry...
    JWT_REFRESH_WINDOW_SECONDS = int(os.environ.get("JWT_REFRESH_WINDOW_SECONDS", "3600"))
    # ...and up to this long after expiry.
    JWT_REFRESH_GRACE_SECONDS = int(os.environ.get("JWT_REFRESH_GRACE_SECONDS", "604800"))

    # Load role/permission policies when the app starts (if the table exists)
    AUTHZ_AUTOLOAD = _env_bool("AUTHZ_AUTOLOAD", True)

    # Attempts for stock updates that hit a locked database
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))

    # Bcrypt cost factor for password hashes
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        ).split(",")
        if origin.strip()
    )
