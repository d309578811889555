"""
Expense Tracker Backend — FastAPI Application Factory
======================================================

What:  Creates and configures the FastAPI application instance.
How:   `create_app(settings)` builds every component from one frozen Settings
       value (engine, session factory, stores, services), stores them on
       `app.state`, and wires middleware, exception handlers and routes.
Who:   uvicorn (`expense_tracker.main:app`) and the test suite
       (`create_app(test_settings, asset_store=fake)`).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                     FastAPI App                          │
    │                                                          │
    │  Middleware: CORS → GZip → Request ID → Logging → Limit  │
    │                                                          │
    │  Routes:  /api/auth/*   /api/expenses/*   /api/health    │
    │                                                          │
    │  Exception Handlers:                                     │
    │    Validation→400  Auth→401  NotFound→404  Conflict→409  │
    │    RateLimit→429   Dependency/Database/other→500         │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, validate configuration (fatal in production)
    Shutdown: dispose the database engine
"""

import logging
import sys
import time
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from expense_tracker import __version__
from expense_tracker.config import Settings
from expense_tracker.database import build_engine, build_session_factory, dispose_engine
from expense_tracker.exceptions import (
    AuthenticationError,
    ConflictError,
    DatabaseError,
    DependencyError,
    ExpenseTrackerError,
    InvalidArgumentError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
    field_errors_from_pydantic,
)
from expense_tracker.middleware.logging import RequestLoggingMiddleware
from expense_tracker.middleware.rate_limit import RateLimitMiddleware
from expense_tracker.middleware.request_id import RequestIDMiddleware, request_id_var
from expense_tracker.routes import auth, expenses, health
from expense_tracker.services.asset_store import AssetStore
from expense_tracker.services.auth_gate import AuthGate
from expense_tracker.services.auth_service import AuthService
from expense_tracker.services.cloudinary_service import CloudinaryAssetStore
from expense_tracker.services.expense_ledger import ExpenseLedger
from expense_tracker.services.expense_service import ExpenseService
from expense_tracker.services.token_service import TokenService
from expense_tracker.services.upload_service import UploadService
from expense_tracker.services.user_store import UserStore

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure root logging once for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] expense_tracker.access: GET /api/expenses 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info("=" * 60)
    logger.info("Expense Tracker API %s starting (environment=%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        if settings.is_production:
            logger.critical("Configuration error: %s", str(e))
            raise
        logger.warning("Configuration incomplete (allowed outside production): %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Expense Tracker API shutting down...")
    await dispose_engine(app.state.engine)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    message: str,
    errors: Optional[List[Dict[str, str]]] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """
    Map exceptions to the uniform error body `{success: false, message, errors?}`.

    Handler hierarchy:
        ValidationError / RequestValidationError → 400 (every failing field)
        InvalidArgumentError                     → 400
        AuthenticationError                      → 401
        NotFoundError                            → 404
        ConflictError                            → 409
        RateLimitExceededError                   → 429 + Retry-After
        DependencyError                          → 500 (image host)
        DatabaseError                            → 500 (generic message)
        ExpenseTrackerError (base)               → 500
        Exception (fallback)                     → 500, stack trace outside production

    `context` is logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation failed: %s", request_id_var.get(""), exc.errors)
        return _error_response(400, exc.message, errors=exc.errors)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = field_errors_from_pydantic(exc.errors())
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors)
        return _error_response(400, "Validation failed", errors=errors)

    @app.exception_handler(InvalidArgumentError)
    async def handle_invalid_argument(request: Request, exc: InvalidArgumentError):
        return _error_response(400, exc.message)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(401, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error_response(409, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(429, exc.message, headers={"Retry-After": str(exc.retry_after)})

    @app.exception_handler(DependencyError)
    async def handle_dependency_error(request: Request, exc: DependencyError):
        logger.error(
            "[%s] Image host error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(500, "An internal error occurred. Please try again later.")

    @app.exception_handler(ExpenseTrackerError)
    async def handle_application_error(request: Request, exc: ExpenseTrackerError):
        logger.error(
            "[%s] Unhandled application error %s: %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return _error_response(500, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=exc,
        )
        extra: Dict[str, Any] = {}
        if not settings.is_production:
            extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return _error_response(500, "Internal server error", **extra)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    asset_store: Optional[AssetStore] = None,
) -> FastAPI:
    """
    Assemble the application from explicit configuration.

    Args:
        settings:    Frozen configuration. Read from the environment when omitted.
        asset_store: Image host. Defaults to Cloudinary built from `settings`.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Expense Tracker API",
        description=(
            "Personal expense tracking: JWT authentication, per-user expense "
            "ledger, receipt and avatar uploads, spending statistics."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Components ────────────────────────────────────────────────────────
    engine = build_engine(settings)
    user_store = UserStore(bcrypt_rounds=settings.bcrypt_rounds)
    token_service = TokenService(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expiration_seconds=settings.jwt_expiration_seconds,
    )
    upload_service = UploadService(
        asset_store=asset_store or CloudinaryAssetStore(settings),
        root_folder=settings.cloudinary_folder,
        max_upload_size=settings.max_upload_size,
    )

    app.state.settings = settings
    app.state.started_at = time.time()
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.auth_gate = AuthGate(token_service, user_store)
    app.state.auth_service = AuthService(user_store, token_service, upload_service)
    app.state.expense_service = ExpenseService(
        ledger=ExpenseLedger(),
        upload_service=upload_service,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )

    # ── Middleware ────────────────────────────────────────────────────────
    # Last added runs first: CORS → GZip → RequestID → Logging → RateLimit
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.auth_rate_limit_requests,
        window_seconds=settings.auth_rate_limit_window,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    # ── Exception Handlers ────────────────────────────────────────────────
    register_exception_handlers(app, settings)

    # ── Routes ────────────────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(expenses.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expense_tracker.main:app
app = create_app()
