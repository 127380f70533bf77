"""SailSmart backend: FastAPI application entry point."""

import asyncio
import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST run before the other sailsmart imports: structlog
# caches the processor chain on first use.
from sailsmart.core.logging import configure_structlog
from sailsmart.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from sailsmart.api.routes import api_router
from sailsmart.core.config import get_settings
from sailsmart.core.exceptions import RateLimitedError, SailSmartError
from sailsmart.db import close_db, close_redis, get_redis, get_session_factory, init_db, init_redis
from sailsmart.middleware.correlation import get_correlation_id, setup_correlation_middleware
from sailsmart.services.notifications import InAppNotificationSender, NotificationWorker

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    await init_redis()

    stop = asyncio.Event()
    worker = NotificationWorker(get_redis(), InAppNotificationSender(get_session_factory()))
    worker_task = asyncio.create_task(worker.run(stop))

    yield

    logger.info("shutdown_begin")
    stop.set()
    await worker_task
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    detail,
    *,
    event: str,
    headers: dict[str, str] | None = None,
    **log_fields,
) -> JSONResponse:
    """Log the failure under a fresh debug_id and render ``{"error", "detail", "debug_id"}``."""
    debug_id = str(uuid.uuid4())
    log = logger.warning if status_code < 500 else logger.error
    log(
        event,
        error=error,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        **log_fields,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, "debug_id": debug_id},
        headers=headers,
    )


async def sailsmart_error_handler(request: Request, exc: SailSmartError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return _error_response(
        request, exc.status_code, exc.code, exc.detail, event="request_failed", headers=headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures are reported as ``validation_error`` (400) before any side effect."""
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return _error_response(request, 400, "validation_error", errors, event="request_validation_failed")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (404 route, 405 method) in the same envelope."""
    return _error_response(
        request,
        exc.status_code,
        "http_error",
        exc.detail,
        event="http_exception",
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: full traceback in the log, generic 500 to the client."""
    return _error_response(
        request,
        500,
        "internal_error",
        "Internal server error",
        event="unhandled_exception",
        error_type=type(exc).__name__,
        exc_info=exc,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(SailSmartError)(sailsmart_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="SailSmart onboarding sessions and crew registration approvals",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sailsmart.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
