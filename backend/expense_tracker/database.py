"""
Expense Tracker Backend — Database Session Management
======================================================

What:  Async SQLAlchemy engine/session factory builders and the FastAPI
       session dependency.
How:   `build_engine(settings)` creates a pooled async engine, `build_session_factory`
       wraps it, and `create_app()` stores both on `app.state`. The per-request
       dependency yields a session, rolls back on error, and always closes it.
Who:   Route handlers receive sessions via `Depends(get_db_session)`; services
       receive the session as their first argument.

Transaction Model:
    Services commit their own writes (one row per commit). The dependency only
    rolls back what was left uncommitted by a failing request.

    Before any external I/O (image host upload) a service calls
    `release_connection(session)`, which ends the open transaction so the
    pooled connection is not held while waiting on the network.

Connection Pooling Strategy (PostgreSQL):
    pool_size:        Persistent connections for normal load
    max_overflow:     Temporary connections for traffic spikes
    pool_pre_ping:    Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from expense_tracker.config import Settings


# ── Engine Configuration ──────────────────────────────────────────────────
def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database URL.

    SQLite URLs (used by the test suite) get the dialect's default pool;
    pool sizing options only apply to server databases.
    """
    # Echo SQL queries in DEBUG mode for development visibility
    echo = settings.log_level == "DEBUG"

    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=echo)

    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=echo,
    )


# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: loaded attributes stay readable after commit, which
# services rely on when they commit and then build the response.
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class so they register with a single
    metadata object (used by Alembic and by the test suite's create_all).
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the app's factory
        2. Yields it to the route handler (services commit their own writes)
        3. On error: rolls back anything left uncommitted
        4. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/expenses")
        async def list_expenses(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def release_connection(session: AsyncSession) -> None:
    """
    End the session's open transaction, returning its connection to the pool.

    Called before awaiting external I/O. Nothing is pending at that point
    (reads only), so committing is equivalent to closing the read transaction.
    """
    if session.in_transaction():
        await session.commit()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine(engine: AsyncEngine) -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
