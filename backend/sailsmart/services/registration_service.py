"""RegistrationService: crew applications to journey legs.

Responsibilities:
- Apply (with answers), reopen a cancelled application, cancel
- Owner decisions (Approved / Not approved) from Pending approval only
- Answer upserts, which clear the cached assessment
- Auto-assessment right after applying when the journey has auto-approval on
- Notifications are enqueued after commit and never roll a decision back
"""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.core.auth import AuthUser
from sailsmart.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
    ValidationError,
)
from sailsmart.db.models.journey import Journey, Leg
from sailsmart.db.models.profile import Profile
from sailsmart.db.models.registration import Registration, RegistrationAnswer
from sailsmart.db.models.requirement import JourneyRequirement
from sailsmart.domain.matching import RequirementType
from sailsmart.domain.registration_status import OWNER_DECISIONS, RegistrationStatus, is_active, validate_transition
from sailsmart.services import notifications
from sailsmart.services.assessment_service import AssessmentService, display_name
from sailsmart.services.notifications import NotificationOutbox
from sailsmart.services.requirement_service import CLEARED_ASSESSMENT

logger = structlog.get_logger(__name__)

PUBLISHED = "Published"


@dataclass
class RegistrationDetail:
    registration: Registration
    answers: list[RegistrationAnswer]
    journey_id: str


def _has_answer(answer: dict[str, Any]) -> bool:
    text = answer.get("answer_text")
    return bool(text and text.strip()) or answer.get("answer_json") not in (None, "", [], {})


class RegistrationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        outbox: NotificationOutbox,
        assessor: AssessmentService | None = None,
    ):
        """Initialize with collaborators.

        Args:
            session_factory: SQLAlchemy async session factory for database access
            outbox: Notification outbox for decision messages
            assessor: Runs auto-approval after applying; None skips it
        """
        self.session_factory = session_factory
        self.outbox = outbox
        self.assessor = assessor

    async def _load_with_journey(self, db: AsyncSession, registration_id: str):
        registration = await db.get(Registration, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        leg = await db.get(Leg, registration.leg_id)
        journey = await db.get(Journey, leg.journey_id)
        return registration, leg, journey

    async def _notify(self, envelope: dict[str, Any], registration_id: str) -> None:
        try:
            await self.outbox.enqueue(envelope)
        except Exception as e:
            logger.warning(
                "notification_dispatch_failed",
                registration_id=registration_id,
                type=envelope["type"],
                error=str(e),
                error_type=type(e).__name__,
            )

    async def create_registration(
        self,
        user: AuthUser,
        leg_id: str,
        notes: str | None = None,
        answers: list[dict[str, Any]] | None = None,
    ) -> RegistrationDetail:
        """Apply to a leg.

        Raises:
            NotFoundError: If the leg does not exist
            ValidationError: Journey not published, unknown requirement, or a
                required question left unanswered
            ConflictError: If an active registration already exists
        """
        answers = answers or []

        async with self.session_factory() as db:
            leg = await db.get(Leg, leg_id)
            if leg is None:
                raise NotFoundError("Leg not found")
            journey = await db.get(Journey, leg.journey_id)
            if journey.state != PUBLISHED:
                raise ValidationError("Journey is not accepting registrations")

            result = await db.execute(
                select(JourneyRequirement).where(JourneyRequirement.journey_id == journey.id)
            )
            requirements = {r.id: r for r in result.scalars().all()}

            by_requirement: dict[str, dict[str, Any]] = {}
            for answer in answers:
                if answer["requirement_id"] not in requirements:
                    raise ValidationError(f"Unknown requirement {answer['requirement_id']} for this journey")
                by_requirement[answer["requirement_id"]] = answer

            missing = [
                r.id
                for r in requirements.values()
                if r.requirement_type == RequirementType.QUESTION
                and r.is_required
                and not _has_answer(by_requirement.get(r.id, {}))
            ]
            if missing:
                raise ValidationError(f"Required questions not answered: {', '.join(sorted(missing))}")

            existing = await db.execute(
                select(Registration).where(Registration.leg_id == leg_id, Registration.user_id == user.user_id)
            )
            registration = existing.scalar_one_or_none()
            reopened = False
            if registration is not None:
                if is_active(registration.status):
                    raise ConflictError("You already have a registration for this leg")
                validate_transition(registration.status, RegistrationStatus.PENDING)
                registration.status = RegistrationStatus.PENDING.value
                registration.notes = notes
                registration.auto_approved = False
                registration.notified_decision = None
                for field, value in CLEARED_ASSESSMENT.items():
                    setattr(registration, field, value)
                await db.execute(
                    delete(RegistrationAnswer).where(RegistrationAnswer.registration_id == registration.id)
                )
                reopened = True
            else:
                registration = Registration(
                    leg_id=leg_id,
                    user_id=user.user_id,
                    status=RegistrationStatus.PENDING.value,
                    notes=notes,
                )
                db.add(registration)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                raise ConflictError("You already have a registration for this leg") from None

            for requirement_id, answer in by_requirement.items():
                db.add(RegistrationAnswer(
                    registration_id=registration.id,
                    requirement_id=requirement_id,
                    answer_text=answer.get("answer_text"),
                    answer_json=answer.get("answer_json"),
                ))
            await db.commit()
            registration_id = registration.id
            auto_approval_enabled = journey.auto_approval_enabled

        logger.info(
            "registration_created",
            registration_id=registration_id,
            leg_id=leg_id,
            user_id=user.user_id,
            reopened=reopened,
            answers=len(by_requirement),
        )

        if auto_approval_enabled and self.assessor is not None:
            try:
                await self.assessor.assess(registration_id)
            except (RateLimitedError, UpstreamTimeoutError, UpstreamUnavailableError) as exc:
                logger.warning(
                    "registration_assessment_deferred",
                    registration_id=registration_id,
                    error=exc.detail,
                    error_type=type(exc).__name__,
                )

        return await self.get_registration(registration_id, user)

    async def get_registration(self, registration_id: str, user: AuthUser) -> RegistrationDetail:
        """Registration with its answers.

        Visible to the applicant and the journey owner.
        """
        async with self.session_factory() as db:
            registration, _leg, journey = await self._load_with_journey(db, registration_id)
            if user.user_id not in (registration.user_id, journey.owner_id):
                raise ForbiddenError("Not allowed to view this registration")
            result = await db.execute(
                select(RegistrationAnswer).where(RegistrationAnswer.registration_id == registration_id)
            )
            return RegistrationDetail(registration, list(result.scalars().all()), journey.id)

    async def decide(
        self, registration_id: str, user: AuthUser, status: RegistrationStatus, notes: str | None = None
    ) -> RegistrationDetail:
        """Owner approves or rejects a pending registration.

        Raises:
            ForbiddenError: If the caller does not own the journey
            ValidationError: If status is not an owner decision
            ConflictError: If the registration is no longer pending
        """
        if status not in OWNER_DECISIONS:
            raise ValidationError("Owners can only set 'Approved' or 'Not approved'")

        async with self.session_factory() as db:
            registration, _leg, journey = await self._load_with_journey(db, registration_id)
            if journey.owner_id != user.user_id:
                raise ForbiddenError("Only the journey owner can decide on registrations")
            validate_transition(registration.status, status)

            registration.status = status.value
            registration.auto_approved = False
            if notes is not None:
                registration.notes = notes
            await db.commit()

            owner = await db.get(Profile, journey.owner_id)
            owner_name = display_name(owner, "The boat owner")

        logger.info(
            "registration_decided",
            registration_id=registration_id,
            status=status.value,
            owner_id=user.user_id,
        )

        if status == RegistrationStatus.APPROVED:
            envelope = notifications.registration_approved(
                registration.user_id, journey.id, journey.name, owner_name, journey.owner_id
            )
        else:
            envelope = notifications.registration_denied(
                registration.user_id, journey.id, journey.name, owner_name, notes, journey.owner_id
            )
        await self._notify(envelope, registration_id)

        return await self.get_registration(registration_id, user)

    async def cancel(self, registration_id: str, user: AuthUser) -> RegistrationDetail:
        """Crew member withdraws a pending registration."""
        async with self.session_factory() as db:
            registration, _leg, _journey = await self._load_with_journey(db, registration_id)
            if registration.user_id != user.user_id:
                raise ForbiddenError("Only the applicant can cancel a registration")
            validate_transition(registration.status, RegistrationStatus.CANCELLED)
            registration.status = RegistrationStatus.CANCELLED.value
            await db.commit()

        logger.info("registration_cancelled", registration_id=registration_id, user_id=user.user_id)
        return await self.get_registration(registration_id, user)

    async def upsert_answer(
        self,
        registration_id: str,
        requirement_id: str,
        user: AuthUser,
        answer_text: str | None = None,
        answer_json: Any = None,
    ) -> RegistrationAnswer:
        """Create or replace one answer on a pending registration."""
        async with self.session_factory() as db:
            registration, _leg, journey = await self._load_with_journey(db, registration_id)
            if registration.user_id != user.user_id:
                raise ForbiddenError("Only the applicant can answer")
            if registration.status != RegistrationStatus.PENDING:
                raise ConflictError("Answers can only change while the registration is pending")

            requirement = await db.get(JourneyRequirement, requirement_id)
            if requirement is None or requirement.journey_id != journey.id:
                raise NotFoundError("Requirement not found")

            result = await db.execute(
                select(RegistrationAnswer).where(
                    RegistrationAnswer.registration_id == registration_id,
                    RegistrationAnswer.requirement_id == requirement_id,
                )
            )
            answer = result.scalar_one_or_none()
            if answer is None:
                answer = RegistrationAnswer(registration_id=registration_id, requirement_id=requirement_id)
                db.add(answer)
            answer.answer_text = answer_text
            answer.answer_json = answer_json

            for field, value in CLEARED_ASSESSMENT.items():
                setattr(registration, field, value)
            await db.commit()
            await db.refresh(answer)

        logger.info("registration_answer_saved", registration_id=registration_id, requirement_id=requirement_id)
        return answer
