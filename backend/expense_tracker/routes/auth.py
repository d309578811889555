"""
Expense Tracker Backend — Auth Routes
======================================

What:  Registration, login and profile endpoints under /api/auth.
How:   Thin handlers: parse the request, call AuthService, wrap the result in
       the success envelope.

Endpoints:
    POST /api/auth/register   JSON {email, password, name}     → 201 {user, token}
    POST /api/auth/login      JSON {email, password}           → 200 {user, token}
    GET  /api/auth/profile    bearer                           → 200 profile
    PUT  /api/auth/profile    bearer, multipart {name, avatar} → 200 user

Register and login are rate limited per client IP by RateLimitMiddleware.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.database import get_db_session
from expense_tracker.dependencies import (
    Submission,
    get_auth_service,
    read_submission,
    require_user,
)
from expense_tracker.schemas.common import ApiResponse, ErrorResponse
from expense_tracker.schemas.user import (
    AuthPayload,
    LoginRequest,
    RegisterRequest,
    UserProfile,
    UserPublic,
)
from expense_tracker.services.auth_gate import CurrentUser
from expense_tracker.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["Auth"])

_AUTH_ERRORS = {401: {"description": "Not authenticated", "model": ErrorResponse}}


@router.post(
    "/register",
    status_code=201,
    response_model=ApiResponse[AuthPayload],
    responses={
        400: {"description": "Validation failed", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    },
    summary="Register a new user",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthPayload]:
    result = await service.register(db, payload)
    return ApiResponse(message="User registered successfully", data=result)


@router.post(
    "/login",
    response_model=ApiResponse[AuthPayload],
    responses={
        400: {"description": "Validation failed", "model": ErrorResponse},
        401: {"description": "Invalid email or password", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    },
    summary="Log in and receive a session token",
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthPayload]:
    result = await service.login(db, payload)
    return ApiResponse(message="Login successful", data=result)


@router.get(
    "/profile",
    response_model=ApiResponse[UserProfile],
    responses=_AUTH_ERRORS,
    summary="Get the logged-in user's profile",
)
async def get_profile(
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserProfile]:
    profile = await service.get_profile(db, user.id)
    return ApiResponse(message="Profile retrieved successfully", data=profile)


@router.put(
    "/profile",
    response_model=ApiResponse[UserPublic],
    responses={
        **_AUTH_ERRORS,
        400: {"description": "Validation failed or nothing to update", "model": ErrorResponse},
    },
    summary="Update name and/or avatar",
    description="Multipart form with optional `name` field and optional `avatar` image.",
)
async def update_profile(
    user: CurrentUser = Depends(require_user),
    submission: Submission = Depends(read_submission),
    db: AsyncSession = Depends(get_db_session),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserPublic]:
    updated = await service.update_profile(
        db, user.id, submission.fields, submission.file("avatar")
    )
    return ApiResponse(message="Profile updated successfully", data=updated)
