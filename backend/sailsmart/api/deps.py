"""Shared FastAPI dependencies.

Every provider here is a plain function so tests can swap it out through
``app.dependency_overrides``.
"""

from functools import lru_cache

import structlog
from fastapi import Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.agent.scorer import MatchScorer
from sailsmart.core.config import get_settings
from sailsmart.db.base import get_session_factory
from sailsmart.db.redis import get_redis
from sailsmart.domain.onboarding import SessionKind
from sailsmart.services.assessment_service import AssessmentService
from sailsmart.services.notifications import NotificationOutbox
from sailsmart.services.profile_cache import CoalescingInvalidator, ProfileCache
from sailsmart.services.profile_service import ProfileService
from sailsmart.services.rate_limit import AIRateLimiter

logger = structlog.get_logger(__name__)

SESSION_ID_HEADER = "X-Session-Id"


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_scorer() -> MatchScorer:
    """Dependency that provides the question scorer.

    Returns AnthropicMatchScorer when ANTHROPIC_API_KEY is set, otherwise
    ScorerFake for local dev. Override in tests via app.dependency_overrides.
    """
    settings = get_settings()

    if settings.anthropic_api_key:
        from sailsmart.agent.scorer import AnthropicMatchScorer

        return AnthropicMatchScorer()

    from sailsmart.agent.scorer_fake import ScorerFake

    logger.warning("scorer_fallback", scorer="ScorerFake", reason="no_anthropic_api_key")
    return ScorerFake()


def get_outbox() -> NotificationOutbox:
    return NotificationOutbox(get_redis())


def get_rate_limiter() -> AIRateLimiter:
    return AIRateLimiter(get_redis(), get_settings().ai_rate_limit_per_minute)


@lru_cache
def get_profile_cache() -> ProfileCache:
    settings = get_settings()
    return ProfileCache(
        ttl_seconds=settings.profile_cache_ttl_seconds,
        max_items=settings.profile_cache_max_items,
    )


@lru_cache
def get_profile_invalidator() -> CoalescingInvalidator:
    return CoalescingInvalidator(
        get_profile_cache(),
        delay_seconds=get_settings().profile_invalidation_delay_seconds,
    )


def get_profile_service() -> ProfileService:
    return ProfileService(get_db_session_factory(), get_profile_cache(), get_profile_invalidator())


def build_assessment_service(
    scorer: MatchScorer, outbox: NotificationOutbox, rate_limiter: AIRateLimiter
) -> AssessmentService:
    return AssessmentService(get_db_session_factory(), scorer, outbox, rate_limiter)


def session_cookie_name(kind: SessionKind) -> str:
    settings = get_settings()
    if kind == SessionKind.OWNER:
        return settings.owner_session_cookie
    return settings.prospect_session_cookie


def read_session_id(request: Request, kind: SessionKind) -> str | None:
    """Session id from the kind's cookie, falling back to the X-Session-Id header."""
    return request.cookies.get(session_cookie_name(kind)) or request.headers.get(SESSION_ID_HEADER) or None


def read_all_session_ids(request: Request) -> dict[SessionKind, str | None]:
    """Both cookies, for the auth callback. The header fallback does not apply here."""
    return {kind: request.cookies.get(session_cookie_name(kind)) for kind in SessionKind}


def write_session_cookie(response: Response, kind: SessionKind, session_id: str) -> None:
    """Set or refresh the kind's cookie with the same sliding lifetime as the session row."""
    settings = get_settings()
    response.set_cookie(
        session_cookie_name(kind),
        session_id,
        max_age=settings.session_expiry_days * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response, kind: SessionKind) -> None:
    settings = get_settings()
    response.delete_cookie(
        session_cookie_name(kind),
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
