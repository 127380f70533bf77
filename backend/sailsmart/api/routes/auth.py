"""Authentication callback: link onboarding sessions, then pick a redirect."""

from fastapi import APIRouter, Depends, Request

from sailsmart.api.deps import get_db_session_factory, get_profile_service, read_all_session_ids
from sailsmart.core.auth import AuthUser, require_auth
from sailsmart.schemas.sessions import AuthCallbackRequest, AuthCallbackResponse
from sailsmart.services.profile_service import ProfileService
from sailsmart.services.session_linking import SessionLinkingService

router = APIRouter()


@router.post("/callback", response_model=AuthCallbackResponse)
async def auth_callback(
    request: Request,
    body: AuthCallbackRequest | None = None,
    user: AuthUser = Depends(require_auth),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Called by the frontend right after sign-in.

    Session linking never blocks sign-in; a failed link is logged and the
    redirect falls back to profile roles or ``next``.
    """
    linking = SessionLinkingService(get_db_session_factory(), profiles)
    redirect = await linking.handle_auth_callback(
        user,
        read_all_session_ids(request),
        body.next if body else None,
    )
    return AuthCallbackResponse(redirect=redirect)
