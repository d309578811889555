"""
Expense Tracker Backend — Auth Service (Account Orchestrator)
==============================================================

What:  Registration, login and profile management.
How:   Composes UserStore, TokenService and UploadService.
Who:   Called by routes/auth.py.

Profile update flow (PUT /api/auth/profile):
    ┌──────────┐   ┌──────────────┐   ┌─────────────┐   ┌───────────────┐
    │ Validate │──▶│ Upload new   │──▶│ Update row  │──▶│ Delete old    │
    │ form+file│   │ avatar       │   │ (commit)    │   │ avatar (best  │
    └──────────┘   └──────────────┘   └─────────────┘   │ effort)       │
                                                        └───────────────┘
    Upload failure → nothing written.
    Row write failure after upload → new asset is orphaned and logged at ERROR.
    Old-avatar deletion failure → logged at WARNING, update still succeeds.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.database import release_connection
from expense_tracker.exceptions import (
    AuthenticationError,
    InvalidArgumentError,
    NotFoundError,
)
from expense_tracker.schemas.user import (
    AuthPayload,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    UserProfile,
    UserPublic,
)
from expense_tracker.services.token_service import TokenService
from expense_tracker.services.upload_service import AVATARS, ImageUpload, UploadService
from expense_tracker.services.user_store import UserStore

logger = logging.getLogger(__name__)

# Same answer for unknown email and wrong password
INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    def __init__(
        self,
        user_store: UserStore,
        token_service: TokenService,
        upload_service: UploadService,
    ):
        self.user_store = user_store
        self.token_service = token_service
        self.upload_service = upload_service

    async def register(self, db: AsyncSession, payload: RegisterRequest) -> AuthPayload:
        """
        Create an account and sign the new user in.

        Raises:
            ConflictError: Email already registered (→ 409)
        """
        user = await self.user_store.create(db, payload.email, payload.password, payload.name)
        return AuthPayload(
            user=UserPublic.model_validate(user),
            token=self.token_service.issue(user.id),
        )

    async def login(self, db: AsyncSession, payload: LoginRequest) -> AuthPayload:
        """
        Exchange credentials for a session token.

        Unknown email and wrong password are answered identically so the
        response does not reveal which emails are registered.
        """
        user = await self.user_store.find_by_email(db, payload.email)
        if user is None or not await self.user_store.verify_password(
            payload.password, user.password_hash
        ):
            logger.info("Login failed")
            raise AuthenticationError(message=INVALID_CREDENTIALS, reason="bad_credentials")

        logger.info("Login succeeded: %s", user.id)
        return AuthPayload(
            user=UserPublic.model_validate(user),
            token=self.token_service.issue(user.id),
        )

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> UserProfile:
        user = await self.user_store.find_by_id(db, user_id)
        if user is None:
            raise NotFoundError(resource="User")
        return UserProfile.model_validate(user)

    async def update_profile(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        fields: Dict[str, Any],
        avatar: Optional[ImageUpload] = None,
    ) -> UserPublic:
        """
        Update name and/or avatar.

        Raises:
            ValidationError: Bad name or bad image (→ 400)
            InvalidArgumentError: Neither a name nor an avatar supplied (→ 400)
            DependencyError: Avatar upload failed (→ 500)
        """
        update = self.upload_service.validate_form(ProfileUpdate, fields, avatar)
        changes = update.to_changes()
        if changes.is_empty() and avatar is None:
            raise InvalidArgumentError()

        current = await self.user_store.find_by_id(db, user_id)
        if current is None:
            raise NotFoundError(resource="User")
        previous_avatar = current.avatar_public_id

        new_avatar = None
        if avatar is not None:
            await release_connection(db)
            new_avatar = await self.upload_service.upload_image(avatar, AVATARS)
            changes = changes.with_values(avatar=new_avatar)

        try:
            user = await self.user_store.update(db, user_id, changes)
            if user is None:
                raise NotFoundError(resource="User")
        except Exception:
            if new_avatar is not None:
                logger.error(
                    "Profile update failed after avatar upload; orphaned asset %s "
                    "requires manual cleanup",
                    new_avatar.public_id,
                )
            raise

        if new_avatar is not None and previous_avatar and previous_avatar != new_avatar.public_id:
            await self.upload_service.discard(previous_avatar, "previous avatar")

        return UserPublic.model_validate(user)
