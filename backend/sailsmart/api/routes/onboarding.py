"""Post-consent onboarding handoff."""

from fastapi import APIRouter, Depends

from sailsmart.api.deps import get_db_session_factory, get_profile_service
from sailsmart.core.auth import AuthUser, require_auth
from sailsmart.schemas.sessions import AfterConsentRequest, AfterConsentResponse
from sailsmart.services.profile_service import ProfileService
from sailsmart.services.session_linking import SessionLinkingService

router = APIRouter()


@router.post("/after-consent", response_model=AfterConsentResponse)
async def after_consent(
    body: AfterConsentRequest,
    user: AuthUser = Depends(require_auth),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Advance the user's consent_pending session once consents are saved.

    Returns:
        AfterConsentResponse with the redirect and whether AI profile
        completion should start
    """
    linking = SessionLinkingService(get_db_session_factory(), profiles)
    result = await linking.after_consent(user, body.ai_processing_consent)
    return AfterConsentResponse(
        redirect=result.redirect,
        role=result.role,
        trigger_profile_completion=result.trigger_profile_completion,
        session_id=result.session_id,
    )
