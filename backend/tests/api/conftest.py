"""API-specific test fixtures.

Routes run in-process through httpx's ASGITransport on the pytest-asyncio
loop, so they share the ``engine`` fixture's global session factory.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from sailsmart.api.deps import (
    get_outbox,
    get_profile_cache,
    get_profile_invalidator,
    get_rate_limiter,
    get_scorer,
)
from sailsmart.api.routes import api_router
from sailsmart.core.auth import AuthUser, optional_auth, require_auth
from sailsmart.main import register_exception_handlers
from sailsmart.middleware.correlation import setup_correlation_middleware
from sailsmart.services.rate_limit import AIRateLimiter


@pytest.fixture(autouse=True)
def fresh_profile_cache():
    """The profile cache is a process-wide singleton; start every test empty."""
    get_profile_cache.cache_clear()
    get_profile_invalidator.cache_clear()
    yield
    get_profile_cache.cache_clear()
    get_profile_invalidator.cache_clear()


@pytest.fixture
def app(redis, outbox, scorer) -> FastAPI:
    """Create test FastAPI app with fakes for Redis-backed and AI collaborators."""
    app = FastAPI()
    setup_correlation_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    app.dependency_overrides[get_outbox] = lambda: outbox
    app.dependency_overrides[get_rate_limiter] = lambda: AIRateLimiter(redis, limit_per_minute=100)
    app.dependency_overrides[get_scorer] = lambda: scorer
    return app


@pytest.fixture
async def client(app, engine):
    """Create test HTTP client. Depends on engine to ensure DB is initialized."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def login(app):
    """Authenticate subsequent requests as ``user``; ``login(None)`` logs out."""

    def _login(user: AuthUser | None) -> None:
        if user is None:
            app.dependency_overrides.pop(require_auth, None)
            app.dependency_overrides[optional_auth] = lambda: None
            return

        async def override_auth():
            return user

        app.dependency_overrides[require_auth] = override_auth
        app.dependency_overrides[optional_auth] = override_auth

    return _login
