"""AssessmentService: score a registration against its journey's requirements.

Flow:
1. Load registration, leg, journey, requirements, answers, crew profile and passport
2. Fingerprint the inputs; an unchanged fingerprint returns the stored result
3. Question requirements go to the MatchScorer, only with the crew member's
   AI processing consent and within the per-user rate limit
4. compute_match + decide; persist the result on the registration
5. Auto-approve / auto-deny a pending registration and enqueue notifications
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.agent.scorer import AssessmentRequest, AssessmentVerdict, MatchScorer, QuestionPrompt
from sailsmart.core.auth import AuthUser
from sailsmart.core.config import get_settings
from sailsmart.core.exceptions import ForbiddenError, NotFoundError
from sailsmart.db.models.identity_document import IdentityDocument
from sailsmart.db.models.journey import Journey, Leg
from sailsmart.db.models.profile import Profile
from sailsmart.db.models.registration import Registration, RegistrationAnswer
from sailsmart.db.models.requirement import JourneyRequirement
from sailsmart.domain.matching import (
    CrewProfile,
    Decision,
    LegTerms,
    MatchResult,
    PassportStatus,
    RequirementSpec,
    RequirementType,
    assessment_fingerprint,
    canonical_skill_set,
    compute_match,
    decide,
)
from sailsmart.domain.registration_status import RegistrationStatus
from sailsmart.services import notifications
from sailsmart.services.notifications import NotificationOutbox
from sailsmart.services.rate_limit import AIRateLimiter

logger = structlog.get_logger(__name__)

NO_AI_CONSENT_REASONING = (
    "The crew member has not consented to AI processing, so their answers were not assessed. "
    "Manual review required."
)


@dataclass
class AssessmentOutcome:
    registration_id: str
    score: int
    reasoning: str
    passes_required: bool
    decision: Decision
    cached: bool
    status: str


@dataclass
class _Inputs:
    registration: Registration
    leg: Leg
    journey: Journey
    requirements: list[RequirementSpec]
    answers: dict[str, RegistrationAnswer]
    profile: Profile | None
    passport: PassportStatus


def answer_as_text(answer: RegistrationAnswer | None) -> str | None:
    if answer is None:
        return None
    if answer.answer_text:
        return answer.answer_text
    if answer.answer_json is not None:
        return json.dumps(answer.answer_json, sort_keys=True)
    return None


def to_spec(requirement: JourneyRequirement) -> RequirementSpec:
    return RequirementSpec(
        id=requirement.id,
        requirement_type=RequirementType(requirement.requirement_type),
        weight=requirement.weight,
        is_required=requirement.is_required,
        order=requirement.order,
        question_text=requirement.question_text,
        skill_name=requirement.skill_name,
        qualification_criteria=requirement.qualification_criteria,
        require_photo_validation=requirement.require_photo_validation,
        pass_confidence_score=requirement.pass_confidence_score,
    )


def display_name(profile, fallback: str) -> str:
    if profile is None:
        return fallback
    return profile.full_name or profile.username or fallback


def summarize(result: MatchResult) -> str:
    """Deterministic reasoning text when no AI opinion is available."""
    met = sum(1 for o in result.outcomes if o.passed)
    parts = [f"{met} of {len(result.outcomes)} requirements met (score {result.score}%)."]
    blocking = result.blocking_reasons()
    if blocking:
        parts.append("Required not met: " + "; ".join(blocking) + ".")
    return " ".join(parts)


class AssessmentService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scorer: MatchScorer,
        outbox: NotificationOutbox,
        rate_limiter: AIRateLimiter | None = None,
    ):
        """Initialize with collaborators.

        Args:
            session_factory: SQLAlchemy async session factory for database access
            scorer: MatchScorer implementation (ScorerFake for tests)
            outbox: Notification outbox for approval/review messages
            rate_limiter: Per-user AI rate limit; None disables limiting
        """
        self.session_factory = session_factory
        self.scorer = scorer
        self.outbox = outbox
        self.rate_limiter = rate_limiter
        self.settings = get_settings()

    async def _load(self, db: AsyncSession, registration_id: str) -> _Inputs:
        registration = await db.get(Registration, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        leg = await db.get(Leg, registration.leg_id)
        journey = await db.get(Journey, leg.journey_id)

        result = await db.execute(
            select(JourneyRequirement).where(JourneyRequirement.journey_id == journey.id)
        )
        requirements = [to_spec(r) for r in result.scalars().all()]

        result = await db.execute(
            select(RegistrationAnswer).where(RegistrationAnswer.registration_id == registration_id)
        )
        answers = {a.requirement_id: a for a in result.scalars().all()}

        profile = await db.get(Profile, registration.user_id)

        result = await db.execute(
            select(IdentityDocument)
            .where(IdentityDocument.user_id == registration.user_id, IdentityDocument.document_type == "passport")
            .order_by(IdentityDocument.created_at.desc())
            .limit(1)
        )
        document = result.scalar_one_or_none()
        passport = PassportStatus(
            has_verified_document=bool(document and document.is_verified),
            photo_verification_passed=document.photo_verification_passed if document else None,
            photo_confidence_score=document.photo_confidence_score if document else None,
        )
        return _Inputs(registration, leg, journey, requirements, answers, profile, passport)

    def _fingerprint(self, inputs: _Inputs, crew: CrewProfile, leg: LegTerms) -> str:
        return assessment_fingerprint({
            "requirements": sorted((vars(r) for r in inputs.requirements), key=lambda r: r["id"]),
            "answers": {rid: answer_as_text(a) for rid, a in inputs.answers.items()},
            "profile": vars(crew),
            "leg": vars(leg),
            "passport": vars(inputs.passport),
            "auto_approval_enabled": inputs.journey.auto_approval_enabled,
            "threshold": inputs.journey.auto_approval_threshold,
            "auto_deny_enabled": self.settings.auto_deny_enabled,
        })

    async def assess(self, registration_id: str, user: AuthUser | None = None) -> AssessmentOutcome:
        """Score a registration and apply the auto-approval decision.

        Args:
            registration_id: Registration to assess
            user: Requesting user (crew member or journey owner); None for
                system-triggered runs right after registration

        Raises:
            NotFoundError: If the registration does not exist
            ForbiddenError: If ``user`` is neither the applicant nor the journey owner
            RateLimitedError / UpstreamTimeoutError / UpstreamUnavailableError: From the AI path
        """
        async with self.session_factory() as db:
            inputs = await self._load(db, registration_id)
            registration, journey = inputs.registration, inputs.journey

            if user is not None and user.user_id not in (registration.user_id, journey.owner_id):
                raise ForbiddenError("Not allowed to assess this registration")

            profile = inputs.profile
            crew = CrewProfile(
                experience_level=profile.experience_level if profile else None,
                risk_levels=list(profile.risk_levels or []) if profile else [],
                skills=sorted(canonical_skill_set(profile.skills or [])) if profile else [],
                ai_processing_consent=bool(profile and profile.ai_processing_consent),
            )
            leg = LegTerms(
                min_experience_level=inputs.leg.min_experience_level,
                risk_level=inputs.leg.risk_level,
                skills=sorted(canonical_skill_set(inputs.leg.skills or [])),
            )
            fingerprint = self._fingerprint(inputs, crew, leg)

            if registration.assessment_fingerprint == fingerprint and registration.ai_match_score is not None:
                logger.info("registration_assessment_cache_hit", registration_id=registration_id)
                return AssessmentOutcome(
                    registration_id=registration_id,
                    score=registration.ai_match_score,
                    reasoning=registration.ai_match_reasoning or "",
                    passes_required=bool(registration.passes_required),
                    decision=Decision(registration.assessment_decision or Decision.REVIEW),
                    cached=True,
                    status=registration.status,
                )

            questions = [r for r in inputs.requirements if r.requirement_type == RequirementType.QUESTION]
            verdict: AssessmentVerdict | None = None
            no_consent = bool(questions) and not crew.ai_processing_consent

            if questions and not no_consent:
                if self.rate_limiter is not None:
                    await self.rate_limiter.hit(user.user_id if user else registration.user_id)
                verdict = await self.scorer.assess(AssessmentRequest(
                    registration_id=registration_id,
                    crew_name=display_name(profile, "Crew member"),
                    crew_experience_level=crew.experience_level,
                    crew_skills=list(crew.skills),
                    crew_risk_levels=crew.risk_levels,
                    journey_name=journey.name,
                    leg_name=inputs.leg.name,
                    leg_skills=list(leg.skills),
                    leg_min_experience_level=leg.min_experience_level,
                    leg_risk_level=leg.risk_level,
                    questions=[
                        QuestionPrompt(
                            requirement_id=q.id,
                            question_text=q.question_text or "",
                            qualification_criteria=q.qualification_criteria or "",
                            weight=q.weight,
                            answer_text=answer_as_text(inputs.answers.get(q.id)),
                        )
                        for q in sorted(questions, key=lambda q: (q.order, q.id))
                    ],
                ))

            result = compute_match(
                inputs.requirements,
                crew,
                leg,
                inputs.passport,
                verdict.question_verdicts if verdict else None,
            )
            decision = decide(
                result,
                auto_approval_enabled=journey.auto_approval_enabled,
                threshold=journey.auto_approval_threshold,
                ai_recommendation=verdict.recommendation if verdict else None,
                auto_deny_enabled=self.settings.auto_deny_enabled,
            )

            if no_consent:
                reasoning = NO_AI_CONSENT_REASONING
            elif verdict is not None:
                reasoning = verdict.reasoning
                if result.blocking_reasons():
                    reasoning += " Required not met: " + "; ".join(result.blocking_reasons()) + "."
            else:
                reasoning = summarize(result)

            registration.ai_match_score = result.score
            registration.ai_match_reasoning = reasoning
            registration.passes_required = result.passes_required
            registration.assessment_decision = decision.value
            registration.assessment_fingerprint = fingerprint
            registration.assessed_at = datetime.now(UTC)

            was_pending = registration.status == RegistrationStatus.PENDING
            if was_pending and decision == Decision.APPROVE:
                registration.status = RegistrationStatus.APPROVED.value
                registration.auto_approved = True
            elif was_pending and decision == Decision.DENY:
                registration.status = RegistrationStatus.NOT_APPROVED.value
                registration.auto_approved = False

            announce = (
                was_pending
                and registration.notified_decision != decision.value
                and (decision != Decision.REVIEW or journey.auto_approval_enabled)
            )
            if announce:
                registration.notified_decision = decision.value

            await db.commit()

            owner = await db.get(Profile, journey.owner_id)
            crew_name = display_name(profile, "A crew member")
            owner_name = display_name(owner, "The boat owner")

        logger.info(
            "registration_assessed",
            registration_id=registration_id,
            score=result.score,
            passes_required=result.passes_required,
            decision=decision.value,
            no_ai_consent=no_consent,
            status=registration.status,
        )

        if announce:
            await self._notify(
                decision, registration, journey, crew_name, owner_name, result.score, no_consent
            )

        return AssessmentOutcome(
            registration_id=registration_id,
            score=result.score,
            reasoning=reasoning,
            passes_required=result.passes_required,
            decision=decision,
            cached=False,
            status=registration.status,
        )

    async def _notify(
        self,
        decision: Decision,
        registration: Registration,
        journey: Journey,
        crew_name: str,
        owner_name: str,
        score: int,
        no_consent: bool,
    ) -> None:
        envelopes = []
        if decision == Decision.APPROVE:
            logger.info("registration_auto_approved", registration_id=registration.id, score=score)
            envelopes.append(notifications.registration_approved(
                registration.user_id, journey.id, journey.name, owner_name, journey.owner_id
            ))
            envelopes.append(notifications.ai_auto_approved(
                journey.owner_id, registration.id, journey.id, journey.name, crew_name, registration.user_id, score
            ))
        elif decision == Decision.DENY:
            logger.info("registration_auto_denied", registration_id=registration.id, score=score)
            envelopes.append(notifications.registration_denied(
                registration.user_id, journey.id, journey.name, owner_name, None, journey.owner_id
            ))
        elif journey.auto_approval_enabled:
            envelopes.append(notifications.ai_review_needed(
                journey.owner_id,
                registration.id,
                journey.id,
                journey.name,
                crew_name,
                registration.user_id,
                None if no_consent else score,
                "no_ai_consent" if no_consent else None,
            ))

        for envelope in envelopes:
            try:
                await self.outbox.enqueue(envelope)
            except Exception as e:
                logger.warning(
                    "notification_dispatch_failed",
                    registration_id=registration.id,
                    type=envelope["type"],
                    error=str(e),
                    error_type=type(e).__name__,
                )
