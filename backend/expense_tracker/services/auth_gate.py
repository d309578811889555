"""
Expense Tracker Backend — Authentication Gate
==============================================

What:  Turns an `Authorization` header into the authenticated caller, or
       rejects the request with a 401.
Who:   Invoked by the `require_user` dependency on every protected route.
When:  Before any controller code runs. Nothing is cached between requests,
       so a user deleted after their token was issued is rejected.

Decision sequence:
    1. Header absent or not "Bearer <token>"  → no_credential
    2. "Bearer " with nothing after it         → bad_format
    3. Token verification                      → malformed | invalid_signature | expired
    4. User lookup by token subject            → user_missing
    5. Otherwise                               → CurrentUser
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import (
    AuthenticationError,
    ExpiredTokenError,
    InvalidSignatureError,
    MalformedTokenError,
)
from expense_tracker.services.token_service import TokenService
from expense_tracker.services.user_store import UserStore

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller, attached to `request.state.user`."""

    id: uuid.UUID
    email: str
    name: str


class AuthGate:
    def __init__(self, token_service: TokenService, user_store: UserStore):
        self.token_service = token_service
        self.user_store = user_store

    async def authenticate(
        self,
        db: AsyncSession,
        authorization: Optional[str],
    ) -> CurrentUser:
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            raise self._reject("No token provided. Access denied.", "no_credential")

        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            raise self._reject("Invalid token format. Access denied.", "bad_format")

        try:
            claims = self.token_service.verify(token)
        except MalformedTokenError:
            raise self._reject("Malformed token. Access denied.", "malformed")
        except InvalidSignatureError:
            raise self._reject("Invalid token. Access denied.", "invalid_signature")
        except ExpiredTokenError:
            raise self._reject("Token expired. Please login again.", "expired")

        user = await self.user_store.find_by_id(db, claims.user_id)
        if user is None:
            raise self._reject(
                "User not found. Access denied.",
                "user_missing",
                user_id=str(claims.user_id),
            )

        return CurrentUser(id=user.id, email=user.email, name=user.name)

    @staticmethod
    def _reject(message: str, reason: str, **context) -> AuthenticationError:
        logger.warning("Authentication rejected: reason=%s", reason)
        return AuthenticationError(message=message, reason=reason, context=context)
