"""Tests for password hashing, bearer tokens and input validation."""

from __future__ import annotations

import time

import pytest

from sitehost.errors import AuthenticationError, InvalidFormat, PayloadTooLarge
from sitehost.security.passwords import (
    hash_password,
    hash_password_async,
    validate_password,
    verify_password,
    verify_password_async,
)
from sitehost.security.tokens import TokenService
from sitehost.security.validation import (
    bundle_size,
    sanitize_text,
    validate_bundle,
    validate_email,
    validate_site_name,
)
from sitehost.storage.models import User


def make_user() -> User:
    return User(
        username="alice",
        email="alice@example.com",
        password_hash="x",
        domain_extension=".app",
        subdomain="alice-happyfox1.app",
    )


class TestPasswords:
    """Tests for bcrypt helpers."""

    def test_hash_and_verify(self):
        hashed = hash_password("correct horse", rounds=4)
        assert hashed.startswith("$2b$04$")
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_verify_malformed_hash(self):
        assert verify_password("secret", "not-a-bcrypt-hash") is False

    @pytest.mark.asyncio
    async def test_async_helpers(self):
        hashed = await hash_password_async("secret1", rounds=4)
        assert await verify_password_async("secret1", hashed) is True

    def test_validate_password(self):
        assert validate_password("secret") == "secret"
        with pytest.raises(InvalidFormat, match="at least"):
            validate_password("short")
        with pytest.raises(InvalidFormat, match="at most"):
            validate_password("x" * 73)


class TestTokens:
    """Tests for TokenService."""

    def test_issue_and_verify(self):
        service = TokenService("test-secret", ttl=3600)
        user = make_user()

        claims = service.verify(service.issue(user))

        assert claims.user_id == user.id
        assert claims.username == "alice"
        assert claims.subdomain == "alice-happyfox1.app"

    def test_expired_token(self):
        service = TokenService("test-secret", ttl=60)
        token = service.issue(make_user(), now=int(time.time()) - 3600)
        with pytest.raises(AuthenticationError):
            service.verify(token)

    def test_wrong_secret(self):
        token = TokenService("secret-a").issue(make_user())
        with pytest.raises(AuthenticationError):
            TokenService("secret-b").verify(token)

    def test_garbage_token(self):
        with pytest.raises(AuthenticationError):
            TokenService("test-secret").verify("not.a.token")

    def test_empty_secret(self):
        with pytest.raises(ValueError):
            TokenService("")


class TestValidation:
    """Tests for payload validation."""

    def test_email(self):
        assert validate_email("  Alice@Example.COM ") == "alice@example.com"
        for bad in ("alice", "alice@", "@example.com", "a b@example.com"):
            with pytest.raises(InvalidFormat):
                validate_email(bad)

    def test_site_name(self):
        assert validate_site_name("  My Portfolio ") == "My Portfolio"
        with pytest.raises(InvalidFormat):
            validate_site_name("")
        with pytest.raises(InvalidFormat):
            validate_site_name("x" * 101)
        with pytest.raises(InvalidFormat, match="HTML"):
            validate_site_name("<script>alert(1)</script>")

    def test_sanitize_text(self):
        assert sanitize_text(" a\x00b\x07c ") == "abc"

    def test_bundle_size_counts_bytes(self):
        assert bundle_size("é", "a", "") == 3

    def test_validate_bundle(self):
        validate_bundle("<p>hi</p>", "", "", max_bytes=100)
        with pytest.raises(InvalidFormat, match="HTML content is required"):
            validate_bundle("   ", "p{}", "", max_bytes=100)
        with pytest.raises(PayloadTooLarge) as exc_info:
            validate_bundle("x" * 60, "y" * 60, "", max_bytes=100)
        assert exc_info.value.status == 413
