"""
Expense Tracker Backend — Application Tests
============================================

What we test:
    ✅ Service banner and database health probe (healthy and unhealthy)
    ✅ Unexpected errors → 500 with a stack trace outside production only
    ✅ Unknown routes use the standard error body
    ✅ Production configuration check
"""

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError as PydanticValidationError

from expense_tracker import __version__
from expense_tracker.config import DEV_JWT_SECRET, Settings
from expense_tracker.main import create_app


class _BrokenEngine:
    def connect(self):
        raise OSError("database is down")


async def _boom():
    raise RuntimeError("kaboom")


class TestHealth:
    @pytest.mark.asyncio
    async def test_root_banner(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Expense Tracker API",
            "version": __version__,
            "status": "running",
        }

    @pytest.mark.asyncio
    async def test_healthy(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["version"] == __version__
        assert data["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_unhealthy_when_database_unreachable(self, app, client):
        engine = app.state.engine
        app.state.engine = _BrokenEngine()
        try:
            response = await client.get("/api/health")
        finally:
            app.state.engine = engine

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["data"]["status"] == "unhealthy"
        assert body["data"]["database"] == "disconnected"


class TestErrorHandling:
    @pytest.mark.asyncio
    async def test_unexpected_error_includes_stack_outside_production(self, app, client):
        app.add_api_route("/api/boom", _boom)
        response = await client.get("/api/boom")
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Internal server error"
        assert "RuntimeError: kaboom" in body["stack"]

    @pytest.mark.asyncio
    async def test_unexpected_error_hides_stack_in_production(self, test_settings, asset_store):
        settings = test_settings.model_copy(update={"environment": "production"})
        application = create_app(settings, asset_store=asset_store)
        application.add_api_route("/api/boom", _boom)
        transport = ASGITransport(app=application, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.get("/api/boom")
        await application.state.engine.dispose()

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error"}

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/api/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found"}


class TestConfiguration:
    def test_development_defaults_fail_production_check(self):
        settings = Settings(jwt_secret=DEV_JWT_SECRET, cloudinary_cloud_name="")
        with pytest.raises(ValueError) as exc_info:
            settings.validate_required_for_production()
        message = str(exc_info.value)
        assert "JWT_SECRET" in message
        assert "CLOUDINARY" in message

    def test_complete_configuration_passes(self):
        settings = Settings(
            jwt_secret="p" * 40,
            cloudinary_cloud_name="cloud",
            cloudinary_api_key="key",
            cloudinary_api_secret="secret",
        )
        settings.validate_required_for_production()

    def test_settings_are_immutable(self):
        settings = Settings()
        with pytest.raises(PydanticValidationError):
            settings.jwt_secret = "changed"
