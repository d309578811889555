"""
Expense Tracker Backend — User SQLAlchemy Model
================================================

What:  ORM model representing the `users` table.
Who:   Used by UserStore for credential persistence and by Alembic for migrations.

Table Design:
    - UUID primary key: non-sequential, cannot be enumerated
    - email: unique, stored trimmed and lower-cased
    - password_hash: bcrypt output; the plaintext password is never stored
    - avatar_url / avatar_public_id: external asset reference on the image host
    - created_at / updated_at: UTC with timezone
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from expense_tracker.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    A registered account.

    Lifecycle:
        1. Created at registration
        2. Mutated only through profile updates (name, avatar)
        3. Never deleted through the API
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Unique index enforces one account per email at the store level
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Avatar (external asset) ───────────────────────────────────────────
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    avatar_public_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        # Email and hash deliberately left out of debug output
        return f"<User(id={self.id}, created_at='{self.created_at}')>"
