"""Registration routes: apply, read, decide, cancel, answer, assess."""

from fastapi import APIRouter, Depends

from sailsmart.agent.scorer import MatchScorer
from sailsmart.api.deps import (
    build_assessment_service,
    get_db_session_factory,
    get_outbox,
    get_rate_limiter,
    get_scorer,
)
from sailsmart.core.auth import AuthUser, require_auth
from sailsmart.domain.registration_status import RegistrationStatus
from sailsmart.schemas.registrations import (
    AnswerOut,
    AnswerUpsert,
    AssessmentOut,
    RegistrationCreate,
    RegistrationDecisionRequest,
    RegistrationOut,
)
from sailsmart.services.assessment_service import AssessmentService
from sailsmart.services.notifications import NotificationOutbox
from sailsmart.services.rate_limit import AIRateLimiter
from sailsmart.services.registration_service import RegistrationService

router = APIRouter()


def get_assessment_service(
    scorer: MatchScorer = Depends(get_scorer),
    outbox: NotificationOutbox = Depends(get_outbox),
    rate_limiter: AIRateLimiter = Depends(get_rate_limiter),
) -> AssessmentService:
    return build_assessment_service(scorer, outbox, rate_limiter)


def get_registration_service(
    outbox: NotificationOutbox = Depends(get_outbox),
    assessor: AssessmentService = Depends(get_assessment_service),
) -> RegistrationService:
    return RegistrationService(get_db_session_factory(), outbox, assessor)


@router.post("", response_model=RegistrationOut, status_code=201)
async def create_registration(
    body: RegistrationCreate,
    user: AuthUser = Depends(require_auth),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """Apply to a leg with answers to the journey's requirements.

    When the journey has auto-approval on, the assessment runs before the
    response; the returned status already reflects its decision.
    """
    detail = await registrations.create_registration(
        user,
        body.leg_id,
        notes=body.notes,
        answers=[a.model_dump() for a in body.answers],
    )
    return RegistrationOut.from_detail(detail)


@router.get("/{registration_id}", response_model=RegistrationOut)
async def get_registration(
    registration_id: str,
    user: AuthUser = Depends(require_auth),
    registrations: RegistrationService = Depends(get_registration_service),
):
    return RegistrationOut.from_detail(await registrations.get_registration(registration_id, user))


@router.patch("/{registration_id}", response_model=RegistrationOut)
async def decide_registration(
    registration_id: str,
    body: RegistrationDecisionRequest,
    user: AuthUser = Depends(require_auth),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """Owner approves or rejects a pending registration."""
    detail = await registrations.decide(
        registration_id, user, RegistrationStatus(body.status), notes=body.notes
    )
    return RegistrationOut.from_detail(detail)


@router.post("/{registration_id}/cancel", response_model=RegistrationOut)
async def cancel_registration(
    registration_id: str,
    user: AuthUser = Depends(require_auth),
    registrations: RegistrationService = Depends(get_registration_service),
):
    return RegistrationOut.from_detail(await registrations.cancel(registration_id, user))


@router.put("/{registration_id}/answers/{requirement_id}", response_model=AnswerOut)
async def upsert_answer(
    registration_id: str,
    requirement_id: str,
    body: AnswerUpsert,
    user: AuthUser = Depends(require_auth),
    registrations: RegistrationService = Depends(get_registration_service),
):
    answer = await registrations.upsert_answer(
        registration_id,
        requirement_id,
        user,
        answer_text=body.answer_text,
        answer_json=body.answer_json,
    )
    return AnswerOut.model_validate(answer)


@router.post("/{registration_id}/assessment", response_model=AssessmentOut)
async def assess_registration(
    registration_id: str,
    user: AuthUser = Depends(require_auth),
    assessor: AssessmentService = Depends(get_assessment_service),
):
    """Score the registration against its journey's requirements.

    Returns the stored result without calling the AI when nothing that
    affects the decision has changed since the last run.

    Raises:
        RateLimitedError(429): Per-user AI quota exceeded
        UpstreamTimeoutError(504) / UpstreamUnavailableError(503): AI failure
    """
    outcome = await assessor.assess(registration_id, user)
    return AssessmentOut(
        registration_id=outcome.registration_id,
        score=outcome.score,
        reasoning=outcome.reasoning,
        passes_required=outcome.passes_required,
        decision=outcome.decision.value,
        cached=outcome.cached,
        status=outcome.status,
    )
