"""
Expense Tracker Backend — Health Check Routes
==============================================

What:  Service banner at `/` and a dependency health probe at `/api/health`.
Who:   Docker health checks, load balancers, uptime monitors.

Status levels:
    healthy:    database answers SELECT 1 (HTTP 200)
    unhealthy:  database unreachable (HTTP 503, stop routing traffic)

The image host is not probed: it is only needed for uploads, and a probe
would spend API quota on every check.
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from expense_tracker import __version__
from expense_tracker.schemas.common import ApiResponse, HealthData

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/", summary="Service information")
async def root() -> dict:
    return {
        "success": True,
        "message": "Expense Tracker API",
        "version": __version__,
        "status": "running",
    }


@router.get(
    "/api/health",
    response_model=ApiResponse[HealthData],
    summary="Service health check",
    responses={503: {"description": "Database unreachable"}},
)
async def health_check(request: Request):
    db_status = "connected"
    overall = "healthy"

    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    body = ApiResponse[HealthData](
        success=overall == "healthy",
        message="Service is healthy" if overall == "healthy" else "Service is unhealthy",
        data=HealthData(
            status=overall,
            version=__version__,
            database=db_status,
            uptime_seconds=round(time.time() - request.app.state.started_at, 2),
        ),
    )
    if overall != "healthy":
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body
