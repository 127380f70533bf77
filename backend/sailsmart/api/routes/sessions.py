"""Onboarding session routes, one router per session kind.

Mounted at ``/api/owner/session`` and ``/api/prospect/session``. The session
is addressed by the kind's cookie; auth is optional on the data endpoints
because the cookie itself proves ownership for anonymous and logged-out
callers.
"""

from fastapi import APIRouter, Depends, Request, Response

from sailsmart.api.deps import (
    clear_session_cookie,
    get_db_session_factory,
    get_profile_service,
    read_session_id,
    write_session_cookie,
)
from sailsmart.core.auth import AuthUser, optional_auth, require_auth
from sailsmart.core.exceptions import ForbiddenError, NotFoundError
from sailsmart.domain.onboarding import SessionKind
from sailsmart.schemas.sessions import (
    LinkRequest,
    LinkResponse,
    ProfileCompletionTriggerResponse,
    SessionEnvelope,
    SessionOut,
    SessionSaveRequest,
    SessionStateUpdate,
    SuccessResponse,
)
from sailsmart.services.profile_service import ProfileService
from sailsmart.services.session_linking import SessionLinkingService
from sailsmart.services.session_service import OnboardingSessionService


def _envelope(row) -> SessionEnvelope:
    return SessionEnvelope(session=SessionOut.from_row(row) if row is not None else None)


def build_session_router(kind: SessionKind) -> APIRouter:
    router = APIRouter()

    def require_session_id(request: Request) -> str:
        session_id = read_session_id(request, kind)
        if not session_id:
            raise NotFoundError("No onboarding session cookie")
        return session_id

    def service() -> OnboardingSessionService:
        return OnboardingSessionService(kind, get_db_session_factory())

    @router.get("/data", response_model=SessionEnvelope)
    async def get_session_data(
        session_id: str = Depends(require_session_id),
        user: AuthUser | None = Depends(optional_auth),
    ):
        """Session addressed by the cookie, or ``{"session": null}`` when it is gone or expired."""
        row = await service().get_session(session_id, user)
        return _envelope(row)

    @router.post("/data", response_model=SessionEnvelope)
    async def save_session_data(
        body: SessionSaveRequest,
        response: Response,
        session_id: str = Depends(require_session_id),
        user: AuthUser | None = Depends(optional_auth),
    ):
        """Create or replace the session's conversation, preferences and state."""
        if body.session.session_id != session_id:
            raise ForbiddenError("Session id does not match the session cookie")
        payload = body.session
        row = await service().save_session(
            session_id,
            conversation=payload.conversation,
            gathered_preferences=payload.gathered_preferences,
            onboarding_state=payload.onboarding_state,
            viewed_legs=payload.viewed_legs,
            user=user,
        )
        write_session_cookie(response, kind, session_id)
        return _envelope(row)

    @router.patch("/data", response_model=SessionEnvelope)
    async def update_session_state(
        body: SessionStateUpdate,
        response: Response,
        session_id: str = Depends(require_session_id),
        user: AuthUser | None = Depends(optional_auth),
    ):
        row = await service().update_state(
            session_id,
            event=body.event,
            target_state=body.onboarding_state,
            user=user,
        )
        write_session_cookie(response, kind, session_id)
        return _envelope(row)

    @router.delete("/data", response_model=SuccessResponse)
    async def delete_session_data(
        response: Response,
        session_id: str = Depends(require_session_id),
        user: AuthUser | None = Depends(optional_auth),
    ):
        await service().delete_session(session_id, user)
        clear_session_cookie(response, kind)
        return SuccessResponse()

    @router.post("/link", response_model=LinkResponse)
    async def link_session(
        response: Response,
        body: LinkRequest | None = None,
        session_id: str = Depends(require_session_id),
        user: AuthUser = Depends(require_auth),
        profiles: ProfileService = Depends(get_profile_service),
    ):
        """Attach the cookie session (and same-email anonymous sessions) to the caller."""
        body = body or LinkRequest()
        linking = SessionLinkingService(get_db_session_factory(), profiles)
        result = await linking.link_session(
            kind,
            session_id,
            user,
            email=body.email,
            post_signup_onboarding=body.post_signup_onboarding,
        )
        write_session_cookie(response, kind, session_id)
        return LinkResponse(
            linked=result.linked,
            email_linked=result.email_linked,
            onboarding_state=result.onboarding_state,
        )

    @router.post("/profile-completion-triggered", response_model=ProfileCompletionTriggerResponse)
    async def mark_profile_completion_triggered(
        session_id: str = Depends(require_session_id),
        user: AuthUser = Depends(require_auth),
    ):
        marked = await service().mark_profile_completion_triggered(session_id, user)
        return ProfileCompletionTriggerResponse(marked=marked)

    return router


owner_router = build_session_router(SessionKind.OWNER)
prospect_router = build_session_router(SessionKind.PROSPECT)
