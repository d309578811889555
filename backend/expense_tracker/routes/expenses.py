"""
Expense Tracker Backend — Expense Routes
=========================================

What:  CRUD, listing and statistics for the caller's expenses under /api/expenses.
How:   Every route requires a bearer token; the caller's id from the auth
       gate is the only owner id that reaches ExpenseService.

Endpoints:
    POST   /api/expenses              multipart {amount, category, description?, date, receipt?}
    GET    /api/expenses?page&limit   paginated list, newest first
    GET    /api/expenses/stats        totals overall and per category
    GET    /api/expenses/{id}
    PUT    /api/expenses/{id}         multipart, any subset of the create fields
    DELETE /api/expenses/{id}

/stats is declared before /{expense_id} so it is not captured as an id.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.database import get_db_session
from expense_tracker.dependencies import (
    Submission,
    get_expense_service,
    read_submission,
    require_user,
)
from expense_tracker.schemas.common import ApiResponse, ErrorResponse
from expense_tracker.schemas.expense import (
    DeletedExpense,
    ExpenseList,
    ExpenseOut,
    ExpenseStatistics,
)
from expense_tracker.services.auth_gate import CurrentUser
from expense_tracker.services.expense_service import ExpenseService

router = APIRouter(prefix="/api/expenses", tags=["Expenses"])

_ERRORS = {
    400: {"description": "Validation failed", "model": ErrorResponse},
    401: {"description": "Not authenticated", "model": ErrorResponse},
}
_NOT_FOUND = {404: {"description": "Expense not found", "model": ErrorResponse}}

# Keeps the row offset inside the database integer range.
MAX_PAGE = 1_000_000


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[ExpenseOut],
    responses=_ERRORS,
    summary="Create an expense",
)
async def create_expense(
    user: CurrentUser = Depends(require_user),
    submission: Submission = Depends(read_submission),
    db: AsyncSession = Depends(get_db_session),
    service: ExpenseService = Depends(get_expense_service),
) -> ApiResponse[ExpenseOut]:
    expense = await service.create(db, user.id, submission.fields, submission.file("receipt"))
    return ApiResponse(message="Expense created successfully", data=expense)


@router.get(
    "",
    response_model=ApiResponse[ExpenseList],
    responses=_ERRORS,
    summary="List the caller's expenses",
)
async def list_expenses(
    page: int = Query(1, ge=1, le=MAX_PAGE, description="1-based page number"),
    limit: Optional[int] = Query(
        None, ge=1, description="Page size (default 50, capped at the configured maximum)"
    ),
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    service: ExpenseService = Depends(get_expense_service),
) -> ApiResponse[ExpenseList]:
    result = await service.list(db, user.id, page=page, limit=limit)
    return ApiResponse(message="Expenses retrieved successfully", data=result)


@router.get(
    "/stats",
    response_model=ApiResponse[ExpenseStatistics],
    responses=_ERRORS,
    summary="Expense statistics",
)
async def get_statistics(
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    service: ExpenseService = Depends(get_expense_service),
) -> ApiResponse[ExpenseStatistics]:
    stats = await service.statistics(db, user.id)
    return ApiResponse(message="Statistics retrieved successfully", data=stats)


@router.get(
    "/{expense_id}",
    response_model=ApiResponse[ExpenseOut],
    responses={**_ERRORS, **_NOT_FOUND},
    summary="Get one expense",
)
async def get_expense(
    expense_id: uuid.UUID,
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    service: ExpenseService = Depends(get_expense_service),
) -> ApiResponse[ExpenseOut]:
    expense = await service.get(db, user.id, expense_id)
    return ApiResponse(message="Expense retrieved successfully", data=expense)


@router.put(
    "/{expense_id}",
    response_model=ApiResponse[ExpenseOut],
    responses={**_ERRORS, **_NOT_FOUND},
    summary="Update an expense",
)
async def update_expense(
    expense_id: uuid.UUID,
    user: CurrentUser = Depends(require_user),
    submission: Submission = Depends(read_submission),
    db: AsyncSession = Depends(get_db_session),
    service: ExpenseService = Depends(get_expense_service),
) -> ApiResponse[ExpenseOut]:
    expense = await service.update(
        db, user.id, expense_id, submission.fields, submission.file("receipt")
    )
    return ApiResponse(message="Expense updated successfully", data=expense)


@router.delete(
    "/{expense_id}",
    response_model=ApiResponse[DeletedExpense],
    responses={**_ERRORS, **_NOT_FOUND},
    summary="Delete an expense",
)
async def delete_expense(
    expense_id: uuid.UUID,
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    service: ExpenseService = Depends(get_expense_service),
) -> ApiResponse[DeletedExpense]:
    deleted = await service.delete(db, user.id, expense_id)
    return ApiResponse(message="Expense deleted successfully", data=deleted)
