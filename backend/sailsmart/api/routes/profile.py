"""Profile routes for the signed-in user."""

from fastapi import APIRouter, Depends

from sailsmart.api.deps import get_profile_service
from sailsmart.core.auth import AuthUser, require_auth
from sailsmart.core.exceptions import NotFoundError
from sailsmart.schemas.profile import ProfileOut, ProfileUpdate
from sailsmart.services.profile_service import ProfileService

router = APIRouter()


@router.get("", response_model=ProfileOut)
async def get_profile(
    user: AuthUser = Depends(require_auth),
    profiles: ProfileService = Depends(get_profile_service),
):
    profile = await profiles.get_profile(user.user_id)
    if profile is None:
        raise NotFoundError("Profile not found")
    return ProfileOut(**profile)


@router.patch("", response_model=ProfileOut)
async def update_profile(
    body: ProfileUpdate,
    user: AuthUser = Depends(require_auth),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Update the caller's profile. Only fields present in the body change."""
    changes = body.model_dump(exclude_unset=True, mode="json")
    profile = await profiles.update_profile(user.user_id, changes)
    return ProfileOut(**profile)
