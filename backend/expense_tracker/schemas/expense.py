"""
Expense Tracker Backend — Expense Request/Response Schemas
===========================================================

What:  Pydantic models for expense creation, partial updates, list pages and
       statistics.
How:   Input arrives as multipart form fields (strings), so every rule is a
       `mode="before"` validator that parses and checks the raw value.
       Each failing field yields one `{field, message}` entry.

Field rules:
    amount       0.01 .. 99,999,999.99, at most two decimal places
    category     food, transport, shopping, bills, entertainment, health, other
    description  optional, at most 500 characters; blank means "no description"
    date         YYYY-MM-DD, not after today

Serialization:
    Money is held as Decimal and rendered as a JSON number. Pagination and
    statistics keys are camelCase on the wire (`currentPage`, `byCategory`).
"""

import datetime as dt
import re
import uuid
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer
from pydantic_core import PydanticCustomError

from expense_tracker.models.expense import (
    AMOUNT_MAX,
    AMOUNT_MIN,
    DESCRIPTION_MAX_LENGTH,
    EXPENSE_CATEGORIES,
)
from expense_tracker.schemas.changes import UNSET, ExpenseChanges

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TWO_PLACES = Decimal("0.01")


# ══════════════════════════════════════════════════════════════════════════
# Field rules
# ══════════════════════════════════════════════════════════════════════════


def parse_amount(value: Any) -> Decimal:
    """Parse an amount exactly (no float rounding) and range-check it."""
    error = PydanticCustomError(
        "amount_invalid",
        "Amount must be a positive number with max 2 decimal places",
    )
    if isinstance(value, bool) or not isinstance(value, (str, int, float, Decimal)):
        raise error
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise error
    if not amount.is_finite() or not AMOUNT_MIN <= amount <= AMOUNT_MAX:
        raise error
    if amount != amount.quantize(_TWO_PLACES):
        raise error
    return amount.quantize(_TWO_PLACES)


def parse_category(value: Any) -> str:
    category = value.strip().lower() if isinstance(value, str) else value
    if category not in EXPENSE_CATEGORIES:
        raise PydanticCustomError(
            "category_invalid",
            "Invalid category. Must be one of: {choices}",
            {"choices": ", ".join(EXPENSE_CATEGORIES)},
        )
    return category


def parse_description(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise PydanticCustomError("description_invalid", "Description must be text")
    description = value.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise PydanticCustomError(
            "description_too_long",
            "Description must not exceed {max_length} characters",
            {"max_length": DESCRIPTION_MAX_LENGTH},
        )
    return description or None


def parse_expense_date(value: Any) -> dt.date:
    if isinstance(value, dt.datetime):
        value = value.date()
    if isinstance(value, dt.date):
        parsed = value
    else:
        if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
            raise PydanticCustomError("date_invalid", "Invalid date format. Use YYYY-MM-DD")
        try:
            parsed = dt.date.fromisoformat(value.strip())
        except ValueError:
            raise PydanticCustomError("date_invalid", "Invalid date format. Use YYYY-MM-DD")
    if parsed > dt.date.today():
        raise PydanticCustomError("date_in_future", "Date cannot be in the future")
    return parsed


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ExpenseCreate(BaseModel):
    """Form fields of POST /api/expenses (receipt arrives as a file part)."""

    amount: Annotated[Decimal, BeforeValidator(parse_amount)] = Field(
        default=None, validate_default=True
    )
    category: Annotated[str, BeforeValidator(parse_category)] = Field(
        default=None, validate_default=True
    )
    description: Annotated[Optional[str], BeforeValidator(parse_description)] = None
    date: Annotated[dt.date, BeforeValidator(parse_expense_date)] = Field(
        default=None, validate_default=True
    )


class ExpenseUpdate(BaseModel):
    """
    Form fields of PUT /api/expenses/{id}. Every field is optional.

    Supplying `description` as an empty string clears it; omitting it leaves
    the stored value untouched.
    """

    amount: Annotated[Optional[Decimal], BeforeValidator(parse_amount)] = None
    category: Annotated[Optional[str], BeforeValidator(parse_category)] = None
    description: Annotated[Optional[str], BeforeValidator(parse_description)] = None
    date: Annotated[Optional[dt.date], BeforeValidator(parse_expense_date)] = None

    def to_changes(self) -> ExpenseChanges:
        supplied = self.model_fields_set
        return ExpenseChanges(
            amount=self.amount if "amount" in supplied else UNSET,
            category=self.category if "category" in supplied else UNSET,
            description=self.description if "description" in supplied else UNSET,
            date=self.date if "date" in supplied else UNSET,
        )


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ExpenseOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    amount: Money
    category: str
    description: Optional[str] = None
    date: dt.date
    receipt_url: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class DeletedExpense(BaseModel):
    id: uuid.UUID


class Pagination(BaseModel):
    """Page metadata. `totalPages` is 0 when the user has no expenses."""

    current_page: int = Field(alias="currentPage")
    total_pages: int = Field(alias="totalPages")
    total_count: int = Field(alias="totalCount")
    limit: int

    model_config = {"populate_by_name": True}


class ExpenseList(BaseModel):
    expenses: List[ExpenseOut]
    pagination: Pagination


class CategoryTotal(BaseModel):
    category: str
    count: int
    total: Money


class StatisticsTotal(BaseModel):
    count: int
    amount: Money


class ExpenseStatistics(BaseModel):
    """
    Aggregates over all of one user's expenses.

    `by_category` is ordered by total descending, category name ascending.
    A user with no expenses gets zero totals and an empty list.
    """

    total: StatisticsTotal
    by_category: List[CategoryTotal] = Field(alias="byCategory")

    model_config = {"populate_by_name": True}
