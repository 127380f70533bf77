"""RequirementService: journey requirements and auto-approval configuration.

Invariants kept here:
- At most one risk_level / experience_level / passport requirement per journey
- Auto-approval is never enabled on a journey without requirements
- Any requirement change clears the cached assessment of every registration
  on the journey
"""

from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.core.auth import AuthUser
from sailsmart.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from sailsmart.db.models.journey import Journey, Leg
from sailsmart.db.models.registration import Registration, RegistrationAnswer
from sailsmart.db.models.requirement import JourneyRequirement
from sailsmart.domain.matching import SINGLETON_TYPES, RequirementType, canonical_skill_name, canonical_skill_set

logger = structlog.get_logger(__name__)

PUBLISHED = "Published"

CLEARED_ASSESSMENT = {
    "ai_match_score": None,
    "ai_match_reasoning": None,
    "passes_required": None,
    "assessment_decision": None,
    "assessment_fingerprint": None,
    "assessed_at": None,
}


def _or_default(value, default):
    return default if value is None else value


async def get_owned_journey(db: AsyncSession, journey_id: str, user_id: str) -> Journey:
    """Load a journey and check the caller owns it.

    Raises:
        NotFoundError: If the journey does not exist
        ForbiddenError: If the caller is not its owner
    """
    journey = await db.get(Journey, journey_id)
    if journey is None:
        raise NotFoundError("Journey not found")
    if journey.owner_id != user_id:
        raise ForbiddenError("Only the journey owner can do this")
    return journey


async def clear_cached_assessments(db: AsyncSession, journey_id: str) -> int:
    """Drop the stored score of every registration on the journey's legs."""
    leg_ids = select(Leg.id).where(Leg.journey_id == journey_id)
    result = await db.execute(
        update(Registration)
        .where(Registration.leg_id.in_(leg_ids))
        .values(**CLEARED_ASSESSMENT)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def validate_requirement_fields(requirement_type: RequirementType, fields: dict[str, Any], journey_skills: list) -> None:
    """Type-specific field rules.

    Raises:
        ValidationError: On a missing or out-of-range field
    """
    weight = fields.get("weight")
    if weight is not None and not 0 <= weight <= 10:
        raise ValidationError("weight must be between 0 and 10")

    score = fields.get("pass_confidence_score")
    if score is not None and not 0 <= score <= 10:
        raise ValidationError("pass_confidence_score must be between 0 and 10")

    if requirement_type == RequirementType.QUESTION:
        if not (fields.get("question_text") or "").strip():
            raise ValidationError("question_text is required for question requirements")
        if not (fields.get("qualification_criteria") or "").strip():
            raise ValidationError("qualification_criteria is required for question requirements")

    if requirement_type == RequirementType.SKILL:
        skill = canonical_skill_name(fields.get("skill_name"))
        if not skill:
            raise ValidationError("skill_name is required for skill requirements")
        if not (fields.get("qualification_criteria") or "").strip():
            raise ValidationError("qualification_criteria is required for skill requirements")
        allowed = canonical_skill_set(journey_skills)
        if allowed and skill not in allowed:
            raise ValidationError(f"Skill '{skill}' is not one of the journey's skills")


class RequirementService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_requirements(self, journey_id: str, user: AuthUser | None) -> list[JourneyRequirement]:
        """Requirements in evaluation order.

        Public for published journeys, owner-only otherwise.
        """
        async with self.session_factory() as db:
            journey = await db.get(Journey, journey_id)
            if journey is None:
                raise NotFoundError("Journey not found")
            if journey.state != PUBLISHED and (user is None or user.user_id != journey.owner_id):
                raise ForbiddenError("Journey is not published")
            result = await db.execute(
                select(JourneyRequirement)
                .where(JourneyRequirement.journey_id == journey_id)
                .order_by(JourneyRequirement.order, JourneyRequirement.created_at)
            )
            return list(result.scalars().all())

    async def create_requirement(self, journey_id: str, user: AuthUser, fields: dict[str, Any]) -> JourneyRequirement:
        """Create a requirement on an owned journey.

        Raises:
            ConflictError: If a singleton type already exists on the journey
            ValidationError: On type-specific field errors
        """
        requirement_type = RequirementType(fields["requirement_type"])

        async with self.session_factory() as db:
            journey = await get_owned_journey(db, journey_id, user.user_id)
            validate_requirement_fields(requirement_type, fields, journey.skills or [])

            if requirement_type in SINGLETON_TYPES:
                existing = await db.execute(
                    select(JourneyRequirement.id).where(
                        JourneyRequirement.journey_id == journey_id,
                        JourneyRequirement.requirement_type == requirement_type.value,
                    )
                )
                if existing.first() is not None:
                    raise ConflictError(f"Journey already has a {requirement_type.value} requirement")

            order = fields.get("order")
            if order is None:
                max_order = await db.scalar(
                    select(func.max(JourneyRequirement.order)).where(JourneyRequirement.journey_id == journey_id)
                )
                order = max_order + 1 if max_order is not None else 0

            requirement = JourneyRequirement(
                journey_id=journey_id,
                requirement_type=requirement_type.value,
                question_text=fields.get("question_text"),
                skill_name=canonical_skill_name(fields.get("skill_name")) or None,
                qualification_criteria=fields.get("qualification_criteria"),
                weight=_or_default(fields.get("weight"), 5),
                require_photo_validation=bool(fields.get("require_photo_validation", False)),
                pass_confidence_score=_or_default(fields.get("pass_confidence_score"), 7),
                is_required=_or_default(fields.get("is_required"), True),
                order=order,
            )
            db.add(requirement)
            cleared = await clear_cached_assessments(db, journey_id)
            await db.commit()
            await db.refresh(requirement)

        logger.info(
            "requirement_created",
            journey_id=journey_id,
            requirement_id=requirement.id,
            requirement_type=requirement_type.value,
            cleared_assessments=cleared,
        )
        return requirement

    async def update_requirement(
        self, journey_id: str, requirement_id: str, user: AuthUser, changes: dict[str, Any]
    ) -> JourneyRequirement:
        """Patch a requirement; the type itself cannot change."""
        async with self.session_factory() as db:
            journey = await get_owned_journey(db, journey_id, user.user_id)
            requirement = await db.get(JourneyRequirement, requirement_id)
            if requirement is None or requirement.journey_id != journey_id:
                raise NotFoundError("Requirement not found")

            requirement_type = RequirementType(requirement.requirement_type)
            merged = {
                "question_text": requirement.question_text,
                "skill_name": requirement.skill_name,
                "qualification_criteria": requirement.qualification_criteria,
                **changes,
            }
            validate_requirement_fields(requirement_type, merged, journey.skills or [])

            for field, value in changes.items():
                if field == "skill_name":
                    value = canonical_skill_name(value) or None
                setattr(requirement, field, value)

            cleared = await clear_cached_assessments(db, journey_id)
            await db.commit()
            await db.refresh(requirement)

        logger.info(
            "requirement_updated",
            journey_id=journey_id,
            requirement_id=requirement_id,
            fields=sorted(changes),
            cleared_assessments=cleared,
        )
        return requirement

    async def delete_requirement(self, journey_id: str, requirement_id: str, user: AuthUser) -> None:
        """Delete a requirement and its answers.

        Deleting the last requirement turns auto-approval off.
        """
        async with self.session_factory() as db:
            journey = await get_owned_journey(db, journey_id, user.user_id)
            requirement = await db.get(JourneyRequirement, requirement_id)
            if requirement is None or requirement.journey_id != journey_id:
                raise NotFoundError("Requirement not found")

            await db.execute(delete(RegistrationAnswer).where(RegistrationAnswer.requirement_id == requirement_id))
            await db.delete(requirement)
            await db.flush()

            remaining = await db.scalar(
                select(func.count(JourneyRequirement.id)).where(JourneyRequirement.journey_id == journey_id)
            )
            disabled = False
            if remaining == 0 and journey.auto_approval_enabled:
                journey.auto_approval_enabled = False
                disabled = True

            cleared = await clear_cached_assessments(db, journey_id)
            await db.commit()

        logger.info(
            "requirement_deleted",
            journey_id=journey_id,
            requirement_id=requirement_id,
            auto_approval_disabled=disabled,
            cleared_assessments=cleared,
        )

    async def get_auto_approval(self, journey_id: str, user: AuthUser) -> dict[str, Any]:
        async with self.session_factory() as db:
            journey = await get_owned_journey(db, journey_id, user.user_id)
            count = await db.scalar(
                select(func.count(JourneyRequirement.id)).where(JourneyRequirement.journey_id == journey_id)
            )
            return {
                "journey_id": journey_id,
                "auto_approval_enabled": journey.auto_approval_enabled,
                "auto_approval_threshold": journey.auto_approval_threshold,
                "requirement_count": count,
            }

    async def set_auto_approval(
        self,
        journey_id: str,
        user: AuthUser,
        *,
        enabled: bool | None = None,
        threshold: int | None = None,
    ) -> dict[str, Any]:
        """Update auto-approval settings.

        Raises:
            ValidationError: Enabling with zero requirements, or threshold outside 0-100
        """
        if threshold is not None and not 0 <= threshold <= 100:
            raise ValidationError("auto_approval_threshold must be between 0 and 100")

        async with self.session_factory() as db:
            journey = await get_owned_journey(db, journey_id, user.user_id)
            count = await db.scalar(
                select(func.count(JourneyRequirement.id)).where(JourneyRequirement.journey_id == journey_id)
            )
            if enabled and count == 0:
                raise ValidationError("Cannot enable auto-approval without requirements")

            if enabled is not None:
                journey.auto_approval_enabled = enabled
            if threshold is not None:
                journey.auto_approval_threshold = threshold
            await db.commit()

            logger.info(
                "auto_approval_configured",
                journey_id=journey_id,
                enabled=journey.auto_approval_enabled,
                threshold=journey.auto_approval_threshold,
            )
            return {
                "journey_id": journey_id,
                "auto_approval_enabled": journey.auto_approval_enabled,
                "auto_approval_threshold": journey.auto_approval_threshold,
                "requirement_count": count,
            }
