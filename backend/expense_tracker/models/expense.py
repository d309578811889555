"""
Expense Tracker Backend — Expense SQLAlchemy Model
===================================================

What:  ORM model representing the `expenses` table.
Who:   Used by ExpenseLedger for CRUD/aggregation and by Alembic for migrations.

Table Design:
    - user_id: owning user; every query against this table filters on it
    - amount: NUMERIC(10, 2), exact two-decimal money (0.01 .. 99,999,999.99)
    - category: one of EXPENSE_CATEGORIES (CHECK constraint)
    - description: optional, at most 500 characters
    - date: calendar date of the expense (never in the future, validated upstream)
    - receipt_url / receipt_public_id: optional external asset reference

    Composite index (user_id, date DESC, created_at DESC):
        Serves the list query: WHERE user_id = ? ORDER BY date DESC, created_at DESC
"""

import enum
import uuid
import datetime as dt
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from expense_tracker.database import Base


class ExpenseCategory(str, enum.Enum):
    """Fixed set of expense categories."""

    FOOD = "food"
    TRANSPORT = "transport"
    SHOPPING = "shopping"
    BILLS = "bills"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    OTHER = "other"


EXPENSE_CATEGORIES = tuple(c.value for c in ExpenseCategory)

AMOUNT_MIN = Decimal("0.01")
AMOUNT_MAX = Decimal("99999999.99")
DESCRIPTION_MAX_LENGTH = 500


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Expense(Base):
    """
    A single expense owned by exactly one user.

    Ownership:
        Reads, updates and deletes always match on (id, user_id). There is no
        query path that loads an expense by id alone.
    """

    __tablename__ = "expenses"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(
        String(DESCRIPTION_MAX_LENGTH),
        nullable=True,
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    # ── Receipt (external asset) ──────────────────────────────────────────
    receipt_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    receipt_public_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "category IN ({})".format(", ".join(f"'{c}'" for c in EXPENSE_CATEGORIES)),
            name="ck_expenses_category",
        ),
        Index("idx_expenses_user_date", "user_id", date.desc(), created_at.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<Expense(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, category='{self.category}', date='{self.date}')>"
        )
