# Overview: Pytest coverage for session token issue, parse and refresh.

"""
Session token tests.

Verifies:
- Issue/parse round trip carries user_id, username and role
- Expired, foreign-key and garbage tokens map to distinct errors
- Refresh window and grace period are enforced
- A missing signing secret is an initialization error
"""

import time
from datetime import timedelta

import jwt
import pytest

from mall.errors import (
    InvalidArgumentError,
    InvalidSignatureError,
    MalformedTokenError,
    NotInitializedError,
    TokenExpiredError,
)
from mall.services.token_service import TokenService, get_token_service

SECRET = "unit-secret-key-0123456789abcdef0123"
OTHER_SECRET = "other-secret-key-0123456789abcdef012"


def service(**kwargs) -> TokenService:
    return TokenService(kwargs.pop("secret", SECRET), **kwargs)


class TestIssueAndParse:

    def test_round_trip(self):
        tokens = service()
        claims = tokens.parse_token(tokens.issue_token(42, "alice", "merchant"))

        assert claims.user_id == 42
        assert claims.username == "alice"
        assert claims.role == "merchant"
        assert claims.issuer == "mall"
        assert claims.subject == "alice"
        assert claims.expires_at - claims.issued_at == timedelta(hours=24)

    def test_validate_token_is_boolean(self):
        tokens = service()
        assert tokens.validate_token(tokens.issue_token(1, "bob", "user")) is True
        assert tokens.validate_token("not-a-token") is False
        assert tokens.validate_token("") is False

    def test_expired_token(self):
        tokens = service(ttl=timedelta(seconds=-10))
        token = tokens.issue_token(1, "bob", "user")

        with pytest.raises(TokenExpiredError):
            tokens.parse_token(token)

    def test_one_millisecond_ttl_expires(self):
        tokens = service(ttl=timedelta(milliseconds=1))
        token = tokens.issue_token(1, "bob", "user")
        time.sleep(0.05)

        assert tokens.validate_token(token) is False
        with pytest.raises(TokenExpiredError):
            tokens.parse_token(token)

    def test_foreign_key_is_invalid_signature(self):
        token = service(secret=OTHER_SECRET).issue_token(1, "bob", "user")

        with pytest.raises(InvalidSignatureError):
            service().parse_token(token)

    @pytest.mark.parametrize("token", ["garbage", "a.b.c", "   "])
    def test_garbage_is_malformed(self, token):
        with pytest.raises(MalformedTokenError):
            service().parse_token(token)

    def test_missing_claims_is_malformed(self):
        token = jwt.encode({"user_id": 1, "iss": "mall"}, SECRET, algorithm="HS256")

        with pytest.raises(MalformedTokenError):
            service().parse_token(token)

    def test_wrong_issuer_is_malformed(self):
        token = service(issuer="someone-else").issue_token(1, "bob", "user")

        with pytest.raises(MalformedTokenError):
            service().parse_token(token)

    def test_missing_secret(self):
        tokens = TokenService(None)

        with pytest.raises(NotInitializedError):
            tokens.issue_token(1, "bob", "user")
        with pytest.raises(NotInitializedError):
            tokens.parse_token("x.y.z")

    def test_claims_from_token_ignores_expiry(self):
        token = service(ttl=timedelta(seconds=-10)).issue_token(7, "carol", "admin")
        claims = service().claims_from_token(token)
        assert claims.user_id == 7
        assert claims.role == "admin"


class TestRefresh:

    def test_too_early(self):
        tokens = service()
        token = tokens.issue_token(1, "bob", "user")

        with pytest.raises(InvalidArgumentError):
            tokens.refresh_token(token)

    def test_inside_window(self):
        old = service(ttl=timedelta(minutes=30)).issue_token(5, "dave", "merchant")
        tokens = service()

        new = tokens.refresh_token(old)
        old_claims = tokens.parse_token(old)
        new_claims = tokens.parse_token(new)

        assert new_claims.user_id == 5
        assert new_claims.username == "dave"
        assert new_claims.role == "merchant"
        assert new_claims.expires_at > old_claims.expires_at

    def test_expired_within_grace(self):
        old = service(ttl=timedelta(hours=-1)).issue_token(5, "dave", "merchant")
        tokens = service()

        new = tokens.refresh_token(old)
        assert tokens.parse_token(new).user_id == 5

    def test_expired_beyond_grace(self):
        old = service(ttl=timedelta(days=-8)).issue_token(5, "dave", "merchant")

        with pytest.raises(TokenExpiredError):
            service().refresh_token(old)

    def test_refresh_checks_signature(self):
        old = service(secret=OTHER_SECRET, ttl=timedelta(minutes=5)).issue_token(5, "dave", "user")

        with pytest.raises(InvalidSignatureError):
            service().refresh_token(old)

    def test_window_disabled(self):
        tokens = service(refresh_window=None)
        token = tokens.issue_token(1, "bob", "user")
        assert tokens.parse_token(tokens.refresh_token(token)).user_id == 1


class TestAppWiring:

    def test_from_config(self):
        tokens = TokenService.from_config({
            "JWT_SECRET": SECRET,
            "JWT_EXPIRE_SECONDS": 60,
            "JWT_ISSUER": "shop",
            "JWT_REFRESH_WINDOW_SECONDS": 0,
        })
        assert tokens.ttl == timedelta(seconds=60)
        assert tokens.issuer == "shop"
        assert tokens.refresh_window is None

    def test_registered_on_app(self, app):
        with app.app_context():
            tokens = get_token_service()
            assert tokens.parse_token(tokens.issue_token(3, "erin", "user")).user_id == 3
