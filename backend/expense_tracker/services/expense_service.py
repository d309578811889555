"""
Expense Tracker Backend — Expense Service (Business Logic Orchestrator)
========================================================================

What:  Expense CRUD, pagination and statistics for the authenticated user.
How:   Composes ExpenseLedger (owner-scoped persistence) and UploadService
       (receipt images).
Who:   Called by routes/expenses.py with the caller's id from the auth gate.

Receipt handling:
    - The receipt is validated together with the form fields, then uploaded
      BEFORE the row write. The session's transaction is ended first so no
      pooled connection waits on the image host.
    - A failed row write after a successful upload leaves the new asset
      orphaned; its public id is logged at ERROR for manual cleanup.
    - A replaced or deleted expense's old receipt is removed best-effort
      after the row write commits. Failure is logged, never rolled back.

Not-found and not-owned both raise NotFoundError("Expense") (→ 404).
"""

import logging
import math
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.database import release_connection
from expense_tracker.exceptions import InvalidArgumentError, NotFoundError
from expense_tracker.schemas.changes import AssetRef
from expense_tracker.schemas.expense import (
    DeletedExpense,
    ExpenseCreate,
    ExpenseList,
    ExpenseOut,
    ExpenseStatistics,
    ExpenseUpdate,
    Pagination,
)
from expense_tracker.services.expense_ledger import ExpenseLedger
from expense_tracker.services.upload_service import RECEIPTS, ImageUpload, UploadService

logger = logging.getLogger(__name__)


class ExpenseService:
    def __init__(
        self,
        ledger: ExpenseLedger,
        upload_service: UploadService,
        default_page_size: int = 50,
        max_page_size: int = 100,
    ):
        self.ledger = ledger
        self.upload_service = upload_service
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    async def create(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        fields: Dict[str, Any],
        receipt: Optional[ImageUpload] = None,
    ) -> ExpenseOut:
        data = self.upload_service.validate_form(ExpenseCreate, fields, receipt)

        stored_receipt = None
        if receipt is not None:
            await release_connection(db)
            stored_receipt = await self.upload_service.upload_image(receipt, RECEIPTS)

        try:
            expense = await self.ledger.create(
                db,
                owner_id,
                amount=data.amount,
                category=data.category,
                date=data.date,
                description=data.description,
                receipt=stored_receipt,
            )
        except Exception:
            self._log_orphan(stored_receipt, "create")
            raise

        return ExpenseOut.model_validate(expense)

    async def list(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ExpenseList:
        """One page of the caller's expenses, newest first. `limit` is capped."""
        page_size = min(limit or self.default_page_size, self.max_page_size)
        expenses, total = await self.ledger.list(db, owner_id, page, page_size)
        return ExpenseList(
            expenses=[ExpenseOut.model_validate(e) for e in expenses],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / page_size),
                total_count=total,
                limit=page_size,
            ),
        )

    async def get(self, db: AsyncSession, owner_id: uuid.UUID, expense_id: uuid.UUID) -> ExpenseOut:
        expense = await self.ledger.get_by_id(db, expense_id, owner_id)
        if expense is None:
            raise NotFoundError(resource="Expense")
        return ExpenseOut.model_validate(expense)

    async def update(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        expense_id: uuid.UUID,
        fields: Dict[str, Any],
        receipt: Optional[ImageUpload] = None,
    ) -> ExpenseOut:
        data = self.upload_service.validate_form(ExpenseUpdate, fields, receipt)
        changes = data.to_changes()

        existing = await self.ledger.get_by_id(db, expense_id, owner_id)
        if existing is None:
            raise NotFoundError(resource="Expense")
        if changes.is_empty() and receipt is None:
            raise InvalidArgumentError()
        previous_receipt = existing.receipt_public_id

        stored_receipt = None
        if receipt is not None:
            await release_connection(db)
            stored_receipt = await self.upload_service.upload_image(receipt, RECEIPTS)
            changes = changes.with_values(receipt=stored_receipt)

        try:
            expense = await self.ledger.update(db, expense_id, owner_id, changes)
            if expense is None:
                # Deleted between the lookup and the write
                raise NotFoundError(resource="Expense")
        except Exception:
            self._log_orphan(stored_receipt, "update")
            raise

        if stored_receipt is not None and previous_receipt:
            await self.upload_service.discard(previous_receipt, "replaced receipt")

        return ExpenseOut.model_validate(expense)

    async def delete(
        self,
        db: AsyncSession,
        owner_id: uuid.UUID,
        expense_id: uuid.UUID,
    ) -> DeletedExpense:
        removed = await self.ledger.delete(db, expense_id, owner_id)
        if removed is None:
            raise NotFoundError(resource="Expense")
        if removed.receipt_public_id:
            await self.upload_service.discard(removed.receipt_public_id, "deleted expense receipt")
        return DeletedExpense(id=removed.id)

    async def statistics(self, db: AsyncSession, owner_id: uuid.UUID) -> ExpenseStatistics:
        return await self.ledger.get_statistics(db, owner_id)

    @staticmethod
    def _log_orphan(asset: Optional[AssetRef], operation: str) -> None:
        if asset is not None:
            logger.error(
                "Expense %s failed after receipt upload; orphaned asset %s "
                "requires manual cleanup",
                operation,
                asset.public_id,
            )
