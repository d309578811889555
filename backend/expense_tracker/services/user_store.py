"""
Expense Tracker Backend — Credential Store
===========================================

What:  Persistence of user accounts and password verification.
How:   bcrypt hashing (salted, configurable cost) runs in a worker thread so
       the event loop is never blocked by the deliberately slow hash.
Who:   Used by AuthService (register, login, profile) and by AuthGate to
       resolve the user id carried in a session token.

Guarantees:
    - One account per email. Enforced by a pre-check and, for concurrent
      registrations, by the unique index (IntegrityError → ConflictError).
    - Emails are stored trimmed and lower-cased; lookups normalize the same way.
    - The plaintext password is never persisted, returned or logged.
"""

import logging
import uuid
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from expense_tracker.exceptions import ConflictError, DatabaseError, InvalidArgumentError
from expense_tracker.models.user import User
from expense_tracker.schemas.changes import UNSET, UserChanges
from expense_tracker.schemas.user import PASSWORD_MAX_BYTES

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """
    Account storage backed by the `users` table.

    The store is stateless apart from the bcrypt cost; callers pass the
    session for each operation and the store commits its own writes.
    """

    def __init__(self, bcrypt_rounds: int = 10):
        self.bcrypt_rounds = bcrypt_rounds

    # ── Password hashing ──────────────────────────────────────────────────

    def _hash_sync(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    async def hash_password(self, password: str) -> str:
        return await run_in_threadpool(self._hash_sync, password)

    async def verify_password(self, password: str, password_hash: str) -> bool:
        """
        Check a plaintext password against a stored bcrypt hash.

        A malformed stored hash verifies as False rather than raising, and so
        does a password longer than bcrypt accepts (no stored hash can match it).
        """
        candidate = password.encode("utf-8")
        if len(candidate) > PASSWORD_MAX_BYTES:
            return False

        def _check() -> bool:
            try:
                return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))
            except ValueError:
                logger.warning("Stored password hash is not a valid bcrypt hash")
                return False

        return await run_in_threadpool(_check)

    # ── Queries ───────────────────────────────────────────────────────────

    async def find_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        try:
            result = await db.execute(
                select(User).where(User.email == _normalize_email(email))
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error looking up user by email: %s", str(e))
            raise DatabaseError(context={"operation": "find_by_email"})

    async def find_by_id(self, db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
        try:
            return await db.get(User, user_id)
        except SQLAlchemyError as e:
            logger.error("Database error looking up user %s: %s", user_id, str(e))
            raise DatabaseError(context={"operation": "find_by_id"})

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, email: str, password: str, name: str) -> User:
        """
        Register a new account.

        Raises:
            ConflictError: The email is already registered (→ 409)
            DatabaseError: Any other persistence failure (→ 500)
        """
        email = _normalize_email(email)
        if await self.find_by_email(db, email) is not None:
            raise ConflictError(message="Email already registered")

        password_hash = await self.hash_password(password)
        user = User(email=email, password_hash=password_hash, name=name.strip())
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            await db.rollback()
            raise ConflictError(message="Email already registered")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error creating user: %s", str(e))
            raise DatabaseError(context={"operation": "create_user"})

        logger.info("User registered: %s", user.id)
        return user

    async def update(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        changes: UserChanges,
    ) -> Optional[User]:
        """
        Apply a partial profile update.

        Returns the updated user, or None if the user no longer exists.
        Raises InvalidArgumentError when `changes` supplies nothing.
        """
        if changes.is_empty():
            raise InvalidArgumentError()

        user = await self.find_by_id(db, user_id)
        if user is None:
            return None

        if changes.name is not UNSET:
            user.name = changes.name
        if changes.avatar is not UNSET:
            user.avatar_url = changes.avatar.url
            user.avatar_public_id = changes.avatar.public_id

        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error updating user %s: %s", user_id, str(e))
            raise DatabaseError(context={"operation": "update_user"})

        logger.info("User %s updated: fields=%s", user_id, sorted(changes.provided()))
        return user
