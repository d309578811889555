"""
Expense Tracker Backend — Test Configuration (conftest.py)
===========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own application built by `create_app()` against a
       throwaway SQLite file, a low bcrypt cost and an in-memory asset store.
       Nothing talks to PostgreSQL or Cloudinary.

Fixture Hierarchy:
    test_settings  → frozen Settings for a temp database
    asset_store    → FakeAssetStore (records uploads/deletes, can fail on demand)
    app            → create_app(test_settings, asset_store) with tables created
    client         → HTTPX AsyncClient over ASGITransport
    register       → helper that registers a user, returns (user, auth headers)
    png_bytes      → a real 8x8 PNG
"""

import io
import os
from pathlib import Path
from typing import List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# Importing expense_tracker.main builds the module-level app from the
# environment; point it at SQLite before that happens.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"

from expense_tracker.config import Settings  # noqa: E402
from expense_tracker.database import Base  # noqa: E402
from expense_tracker.exceptions import DependencyError  # noqa: E402
from expense_tracker.main import create_app  # noqa: E402
from expense_tracker.schemas.changes import AssetRef  # noqa: E402
from expense_tracker.services.asset_store import AssetStore  # noqa: E402

TEST_JWT_SECRET = "test-jwt-secret-with-at-least-32-characters"


class FakeAssetStore(AssetStore):
    """
    In-memory image host.

    `uploads` holds the public ids handed out, `deleted` the ids removed.
    Set `fail_upload` / `fail_delete` to make the next calls raise
    DependencyError, as the Cloudinary store does after its retries.
    `on_upload`, when set, is called before each upload is accepted.
    """

    def __init__(self):
        self.uploads: List[str] = []
        self.deleted: List[str] = []
        self.staged_files: List[str] = []
        self.fail_upload = False
        self.fail_delete = False
        self.on_upload = None

    async def upload(self, file_path: str, folder: str) -> AssetRef:
        if self.fail_upload:
            raise DependencyError()
        if self.on_upload is not None:
            self.on_upload()
        # The staged temp file must exist while the host reads it
        assert Path(file_path).is_file()
        self.staged_files.append(file_path)
        public_id = f"{folder}/asset-{len(self.uploads) + 1}"
        self.uploads.append(public_id)
        return AssetRef(url=f"https://images.example.com/{public_id}.png", public_id=public_id)

    async def delete(self, public_id: str) -> None:
        if self.fail_delete:
            raise DependencyError()
        self.deleted.append(public_id)


def make_png(color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="PNG")
    return buffer.getvalue()


# ══════════════════════════════════════════════════════════════════════════
# Application Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        retry_max_attempts=2,
        retry_min_wait=0,
        retry_max_wait=0,
        auth_rate_limit_requests=1000,
        log_level="WARNING",
    )


@pytest.fixture
def asset_store() -> FakeAssetStore:
    return FakeAssetStore()


@pytest_asyncio.fixture
async def app(test_settings, asset_store):
    """A fully wired application with an empty schema."""
    application = create_app(test_settings, asset_store=asset_store)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield application
    await application.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient routed straight into the ASGI app.

    raise_app_exceptions=False: Starlette re-raises unhandled errors after the
    500 response is sent; tests want the response.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def db_session(app):
    async with app.state.session_factory() as session:
        yield session


@pytest.fixture
def register(client):
    """
    Register a user through the API.

    Usage:
        user, headers = await register("bob@example.com")
        await client.get("/api/auth/profile", headers=headers)
    """

    async def _register(email="alice@example.com", password="secret123", name="Alice"):
        response = await client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return data["user"], {"Authorization": f"Bearer {data['token']}"}

    return _register


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def image_factory():
    """Build distinct PNGs: image_factory((0, 0, 255))."""
    return make_png
