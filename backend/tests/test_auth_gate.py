"""
Expense Tracker Backend — Authentication Gate Unit Tests
=========================================================

What:  AuthGate decisions with a real TokenService and a mocked UserStore.

What we test:
    ✅ Missing or non-Bearer credentials are rejected before any lookup
    ✅ "Bearer " with an empty token is a format error
    ✅ Malformed, foreign-signed and expired tokens get distinct messages
    ✅ A token for a user that no longer exists is rejected
    ✅ A valid token resolves to CurrentUser
"""

import time
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import jwt

from expense_tracker.exceptions import AuthenticationError
from expense_tracker.services.auth_gate import AuthGate, CurrentUser
from expense_tracker.services.token_service import TokenService

SECRET = "gate-test-secret-that-is-long-enough-000"


@pytest.fixture
def user():
    return SimpleNamespace(id=uuid.uuid4(), email="carol@example.com", name="Carol")


@pytest.fixture
def user_store(user):
    store = MagicMock()
    store.find_by_id = AsyncMock(return_value=user)
    return store


@pytest.fixture
def gate(user_store):
    return AuthGate(TokenService(SECRET), user_store)


async def _reject(gate, header):
    with pytest.raises(AuthenticationError) as exc_info:
        await gate.authenticate(MagicMock(), header)
    return exc_info.value


class TestCredentialShape:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", [None, "", "Token abc", "bearer abc", "Basic dXNlcjpwYXNz"])
    async def test_missing_or_wrong_scheme(self, gate, user_store, header):
        exc = await _reject(gate, header)
        assert exc.message == "No token provided. Access denied."
        assert exc.reason == "no_credential"
        user_store.find_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", ["Bearer ", "Bearer    "])
    async def test_empty_token(self, gate, user_store, header):
        exc = await _reject(gate, header)
        assert exc.message == "Invalid token format. Access denied."
        assert exc.reason == "bad_format"
        user_store.find_by_id.assert_not_awaited()


class TestTokenFailures:
    @pytest.mark.asyncio
    async def test_malformed(self, gate):
        exc = await _reject(gate, "Bearer not-a-jwt")
        assert exc.message == "Malformed token. Access denied."
        assert exc.reason == "malformed"

    @pytest.mark.asyncio
    async def test_invalid_signature(self, gate, user):
        token = TokenService("some-other-secret-that-is-long-enough-0").issue(user.id)
        exc = await _reject(gate, f"Bearer {token}")
        assert exc.message == "Invalid token. Access denied."
        assert exc.reason == "invalid_signature"

    @pytest.mark.asyncio
    async def test_expired(self, gate, user):
        now = int(time.time())
        token = jwt.encode({"sub": str(user.id), "iat": now - 20, "exp": now - 10}, SECRET)
        exc = await _reject(gate, f"Bearer {token}")
        assert exc.message == "Token expired. Please login again."
        assert exc.reason == "expired"

    @pytest.mark.asyncio
    async def test_user_missing(self, gate, user_store, user):
        user_store.find_by_id.return_value = None
        token = TokenService(SECRET).issue(user.id)
        exc = await _reject(gate, f"Bearer {token}")
        assert exc.message == "User not found. Access denied."
        assert exc.reason == "user_missing"


class TestAuthenticated:
    @pytest.mark.asyncio
    async def test_valid_token_resolves_user(self, gate, user_store, user):
        token = TokenService(SECRET).issue(user.id)
        current = await gate.authenticate(MagicMock(), f"Bearer {token}")
        assert current == CurrentUser(id=user.id, email=user.email, name=user.name)
        user_store.find_by_id.assert_awaited_once()
        assert user_store.find_by_id.await_args.args[1] == user.id
