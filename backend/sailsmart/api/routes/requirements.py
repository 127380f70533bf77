"""Journey requirement and auto-approval routes."""

from fastapi import APIRouter, Depends, Response

from sailsmart.api.deps import get_db_session_factory
from sailsmart.core.auth import AuthUser, optional_auth, require_auth
from sailsmart.schemas.requirements import (
    AutoApprovalOut,
    AutoApprovalUpdate,
    RequirementCreate,
    RequirementList,
    RequirementOut,
    RequirementUpdate,
)
from sailsmart.services.requirement_service import RequirementService

router = APIRouter()


def _service() -> RequirementService:
    return RequirementService(get_db_session_factory())


@router.get("/{journey_id}/requirements", response_model=RequirementList)
async def list_requirements(journey_id: str, user: AuthUser | None = Depends(optional_auth)):
    """Requirements in evaluation order. Public once the journey is published."""
    requirements = await _service().list_requirements(journey_id, user)
    return RequirementList(requirements=[RequirementOut.model_validate(r) for r in requirements])


@router.post("/{journey_id}/requirements", response_model=RequirementOut, status_code=201)
async def create_requirement(
    journey_id: str,
    body: RequirementCreate,
    user: AuthUser = Depends(require_auth),
):
    requirement = await _service().create_requirement(journey_id, user, body.model_dump(mode="json"))
    return RequirementOut.model_validate(requirement)


@router.patch("/{journey_id}/requirements/{requirement_id}", response_model=RequirementOut)
async def update_requirement(
    journey_id: str,
    requirement_id: str,
    body: RequirementUpdate,
    user: AuthUser = Depends(require_auth),
):
    requirement = await _service().update_requirement(
        journey_id, requirement_id, user, body.model_dump(exclude_unset=True, exclude_none=True)
    )
    return RequirementOut.model_validate(requirement)


@router.delete("/{journey_id}/requirements/{requirement_id}", status_code=204)
async def delete_requirement(
    journey_id: str,
    requirement_id: str,
    user: AuthUser = Depends(require_auth),
):
    await _service().delete_requirement(journey_id, requirement_id, user)
    return Response(status_code=204)


@router.get("/{journey_id}/auto-approval", response_model=AutoApprovalOut)
async def get_auto_approval(journey_id: str, user: AuthUser = Depends(require_auth)):
    return AutoApprovalOut(**await _service().get_auto_approval(journey_id, user))


@router.patch("/{journey_id}/auto-approval", response_model=AutoApprovalOut)
async def update_auto_approval(
    journey_id: str,
    body: AutoApprovalUpdate,
    user: AuthUser = Depends(require_auth),
):
    """Enable/disable auto-approval or change its threshold.

    Raises:
        ValidationError(400): Enabling on a journey without requirements
    """
    config = await _service().set_auto_approval(
        journey_id,
        user,
        enabled=body.auto_approval_enabled,
        threshold=body.auto_approval_threshold,
    )
    return AutoApprovalOut(**config)
