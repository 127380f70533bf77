import asyncio

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from sailsmart.db.base import get_session_factory
from sailsmart.db.redis import get_redis

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "sailsmart-backend"


async def _check_database() -> None:
    async with get_session_factory()() as session:
        await session.execute(text("SELECT 1"))


async def _check_redis() -> None:
    await get_redis().ping()


READINESS_CHECKS = {"database": _check_database, "redis": _check_redis}


async def _run_check(name: str) -> bool:
    try:
        await asyncio.wait_for(READINESS_CHECKS[name](), timeout=2.0)
    except Exception as e:
        logger.error("readiness_check_failed", check=name, error=str(e), error_type=type(e).__name__)
        return False
    return True


@router.get("/health")
async def health_check(request: Request):
    """Liveness check. Answers 503 once shutdown has begun so the load balancer drains."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check():
    results = await asyncio.gather(*(_run_check(name) for name in READINESS_CHECKS))
    checks = dict(zip(READINESS_CHECKS, results))
    ready = all(results)
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
