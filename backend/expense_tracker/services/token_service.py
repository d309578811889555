"""
Expense Tracker Backend — Session Token Service
================================================

What:  Issues and verifies signed session tokens (JWT, HMAC).
How:   python-jose signs `{sub, iat, exp, jti}` with the configured secret.
       Verification distinguishes three failure causes so the authentication
       gate can answer each with its own message.

Failure classification:
    MalformedTokenError     not a JWT, undecodable claims, missing/invalid `sub`
    ExpiredTokenError       good signature, `exp` in the past
    InvalidSignatureError   decodes, but was not signed with our secret

Tokens are stateless. `jti` is a random id per token; nothing records it yet.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from expense_tracker.exceptions import (
    ExpiredTokenError,
    InvalidSignatureError,
    MalformedTokenError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    issued_at: datetime
    expires_at: datetime
    token_id: str


class TokenService:
    """Signs and verifies session tokens with a single shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", expiration_seconds: int = 604800):
        self._secret = secret
        self.algorithm = algorithm
        self.expiration_seconds = expiration_seconds

    def issue(self, user_id: uuid.UUID) -> str:
        now = int(time.time())
        claims: Dict[str, Any] = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + self.expiration_seconds,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify a token and return its claims.

        Raises:
            MalformedTokenError, ExpiredTokenError, InvalidSignatureError
        """
        # Structural check first: a token that cannot even be parsed is
        # malformed regardless of what the signature check would say.
        try:
            jwt.get_unverified_claims(token)
        except JWTError:
            raise MalformedTokenError(context={"stage": "parse"})

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTClaimsError as e:
            raise MalformedTokenError(context={"stage": "claims", "detail": str(e)})
        except JWTError:
            raise InvalidSignatureError()

        subject = claims.get("sub")
        if not isinstance(subject, str):
            raise MalformedTokenError(context={"stage": "subject"})
        try:
            user_id = uuid.UUID(subject)
        except ValueError:
            raise MalformedTokenError(context={"stage": "subject"})

        try:
            issued_at = datetime.fromtimestamp(int(claims.get("iat", 0)), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError):
            raise MalformedTokenError(context={"stage": "timestamps"})

        return TokenClaims(
            user_id=user_id,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(claims.get("jti", "")),
        )
