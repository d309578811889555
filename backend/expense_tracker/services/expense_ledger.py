"""
Expense Tracker Backend — Expense Ledger
=========================================

What:  Owner-scoped persistence and aggregation for expenses.
How:   Every statement filters on BOTH the expense id and the owner id.
       There is no method that loads an expense by id alone, so an expense
       owned by another user is indistinguishable from a missing one.
Who:   Used by ExpenseService.

Query plans:
    list:        WHERE user_id = ? ORDER BY date DESC, created_at DESC, id DESC
                 LIMIT ? OFFSET ?   → idx_expenses_user_date
    statistics:  one COUNT/SUM over the user's rows, one GROUP BY category

Input to create()/update() is expected to be validated already (schemas);
the category is re-checked here because the table's CHECK constraint would
otherwise surface as an opaque database error.
"""

import datetime as dt
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import DatabaseError, InvalidArgumentError, ValidationError
from expense_tracker.models.expense import EXPENSE_CATEGORIES, Expense
from expense_tracker.schemas.changes import UNSET, AssetRef, ExpenseChanges
from expense_tracker.schemas.expense import (
    CategoryTotal,
    ExpenseStatistics,
    StatisticsTotal,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")


def _check_category(category: str) -> None:
    if category not in EXPENSE_CATEGORIES:
        raise ValidationError(
            message=f"Invalid category. Must be one of: {', '.join(EXPENSE_CATEGORIES)}",
            field="category",
        )


class ExpenseLedger:
    """Stateless; callers pass the session, the ledger commits its writes."""

    async def create(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        amount: Decimal,
        category: str,
        date: dt.date,
        description: Optional[str] = None,
        receipt: Optional[AssetRef] = None,
    ) -> Expense:
        _check_category(category)
        expense = Expense(
            user_id=owner_id,
            amount=amount,
            category=category,
            description=description,
            date=date,
            receipt_url=receipt.url if receipt else None,
            receipt_public_id=receipt.public_id if receipt else None,
        )
        db.add(expense)
        await self._commit(db, "create_expense")
        logger.info("Expense created: %s (user=%s)", expense.id, owner_id)
        return expense

    async def list(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        page: int,
        page_size: int,
    ) -> Tuple[List[Expense], int]:
        """Return one page of the owner's expenses and the owner's total count."""
        try:
            total = await db.scalar(
                select(func.count()).select_from(Expense).where(Expense.user_id == owner_id)
            )
            result = await db.execute(
                select(Expense)
                .where(Expense.user_id == owner_id)
                .order_by(Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc())
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            return list(result.scalars().all()), int(total or 0)
        except SQLAlchemyError as e:
            logger.error("Database error listing expenses for %s: %s", owner_id, str(e))
            raise DatabaseError(context={"operation": "list_expenses"})

    async def get_by_id(
        self,
        db: AsyncSession,
        expense_id: uuid.UUID,
        owner_id: uuid.UUID,
    ) -> Optional[Expense]:
        try:
            result = await db.execute(
                select(Expense).where(Expense.id == expense_id, Expense.user_id == owner_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching expense %s: %s", expense_id, str(e))
            raise DatabaseError(context={"operation": "get_expense"})

    async def update(
        self,
        db: AsyncSession,
        expense_id: uuid.UUID,
        owner_id: uuid.UUID,
        changes: ExpenseChanges,
    ) -> Optional[Expense]:
        """
        Apply a partial update. Returns None when the expense is absent or
        not owned. Raises InvalidArgumentError when nothing is supplied.
        """
        if changes.is_empty():
            raise InvalidArgumentError()
        if changes.category is not UNSET:
            _check_category(changes.category)

        expense = await self.get_by_id(db, expense_id, owner_id)
        if expense is None:
            return None

        if changes.amount is not UNSET:
            expense.amount = changes.amount
        if changes.category is not UNSET:
            expense.category = changes.category
        if changes.description is not UNSET:
            expense.description = changes.description
        if changes.date is not UNSET:
            expense.date = changes.date
        if changes.receipt is not UNSET:
            expense.receipt_url = changes.receipt.url
            expense.receipt_public_id = changes.receipt.public_id

        await self._commit(db, "update_expense")
        logger.info("Expense %s updated: fields=%s", expense_id, sorted(changes.provided()))
        return expense

    async def delete(
        self,
        db: AsyncSession,
        expense_id: uuid.UUID,
        owner_id: uuid.UUID,
    ) -> Optional[Expense]:
        """Remove the expense and return the removed row, or None."""
        expense = await self.get_by_id(db, expense_id, owner_id)
        if expense is None:
            return None
        await db.delete(expense)
        await self._commit(db, "delete_expense")
        logger.info("Expense deleted: %s (user=%s)", expense_id, owner_id)
        return expense

    async def get_statistics(self, db: AsyncSession, owner_id: uuid.UUID) -> ExpenseStatistics:
        try:
            totals = (
                await db.execute(
                    select(func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
                    .where(Expense.user_id == owner_id)
                )
            ).one()

            category_total = func.sum(Expense.amount)
            rows = (
                await db.execute(
                    select(Expense.category, func.count(Expense.id), category_total)
                    .where(Expense.user_id == owner_id)
                    .group_by(Expense.category)
                    .order_by(category_total.desc(), Expense.category.asc())
                )
            ).all()
        except SQLAlchemyError as e:
            logger.error("Database error computing statistics for %s: %s", owner_id, str(e))
            raise DatabaseError(context={"operation": "expense_statistics"})

        count, amount = totals
        return ExpenseStatistics(
            total=StatisticsTotal(count=int(count), amount=_as_money(amount)),
            by_category=[
                CategoryTotal(category=category, count=int(n), total=_as_money(total))
                for category, n, total in rows
            ],
        )

    @staticmethod
    async def _commit(db: AsyncSession, operation: str) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error during %s: %s", operation, str(e))
            raise DatabaseError(context={"operation": operation})


def _as_money(value) -> Decimal:
    # SQLite returns SUM(NUMERIC) as float/int; PostgreSQL as Decimal
    if value is None:
        return _ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))
