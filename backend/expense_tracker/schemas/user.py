"""
Expense Tracker Backend — User Request/Response Schemas
========================================================

What:  Pydantic models for registration, login, profile reads and updates.
How:   Request models normalize and validate input (email lower-cased, name
       trimmed) and report every failing field with a field-specific message.
       Response models are projections of the `User` row that never include
       the password hash.
Who:   Used by routes/auth.py and AuthService.
"""

import uuid
from datetime import datetime
from typing import Annotated, Any, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, BeforeValidator, Field, field_validator
from pydantic_core import PydanticCustomError

from expense_tracker.schemas.changes import UNSET, UserChanges

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 6
# bcrypt only looks at the first 72 bytes of its input
PASSWORD_MAX_BYTES = 72


# ══════════════════════════════════════════════════════════════════════════
# Field rules
# ══════════════════════════════════════════════════════════════════════════


def normalize_email(value: Any) -> str:
    """Trim, syntax-check and lower-case an email address."""
    if not isinstance(value, str) or not value.strip():
        raise PydanticCustomError("email_invalid", "Please provide a valid email address")
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise PydanticCustomError("email_invalid", "Please provide a valid email address")
    return result.normalized.lower()


def check_new_password(value: Any) -> str:
    if not isinstance(value, str) or len(value) < PASSWORD_MIN_LENGTH:
        raise PydanticCustomError(
            "password_too_short",
            "Password must be at least {min_length} characters long",
            {"min_length": PASSWORD_MIN_LENGTH},
        )
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise PydanticCustomError(
            "password_too_long",
            "Password must not exceed {max_bytes} bytes",
            {"max_bytes": PASSWORD_MAX_BYTES},
        )
    return value


def check_name(value: Any) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise PydanticCustomError("name_required", "Name is required")
    if not isinstance(value, str):
        raise PydanticCustomError("name_invalid", "Name must be between 2 and 255 characters")
    name = value.strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise PydanticCustomError("name_invalid", "Name must be between 2 and 255 characters")
    return name


EmailField = Annotated[str, BeforeValidator(normalize_email)]
NewPassword = Annotated[str, BeforeValidator(check_new_password)]
PersonName = Annotated[str, BeforeValidator(check_name)]


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    """
    Body of POST /api/auth/register.

    Missing fields are validated like empty ones so each produces its own
    field-specific message rather than a generic "Field required".
    """

    email: EmailField = Field(default=None, validate_default=True)
    password: NewPassword = Field(default=None, validate_default=True)
    name: PersonName = Field(default=None, validate_default=True)


class LoginRequest(BaseModel):
    """Body of POST /api/auth/login."""

    email: EmailField = Field(default=None, validate_default=True)
    password: str = Field(default=None, validate_default=True)

    @field_validator("password", mode="before")
    @classmethod
    def password_required(cls, v: Any) -> str:
        if not isinstance(v, str) or not v:
            raise PydanticCustomError("password_required", "Password is required")
        return v


class ProfileUpdate(BaseModel):
    """
    Form fields of PUT /api/auth/profile (the avatar arrives as a file part).

    Only fields the client actually sent are validated.
    """

    name: Annotated[Optional[str], BeforeValidator(check_name)] = None

    def to_changes(self) -> UserChanges:
        return UserChanges(name=self.name if "name" in self.model_fields_set else UNSET)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserPublic(BaseModel):
    """Public projection of a user. Never carries the password hash."""

    id: uuid.UUID = Field(description="Opaque user identifier")
    email: str
    name: str
    avatar_url: Optional[str] = Field(default=None, description="Avatar image URL")

    model_config = {"from_attributes": True}


class UserProfile(UserPublic):
    """Projection returned by GET /api/auth/profile."""

    created_at: datetime = Field(description="Registration time (UTC ISO 8601)")


class AuthPayload(BaseModel):
    """Data returned by register and login."""

    user: UserPublic
    token: str = Field(description="Bearer session token")
