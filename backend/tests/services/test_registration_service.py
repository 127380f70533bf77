"""Integration tests for RegistrationService.

Covers applying (with answers, reopening), owner decisions with their
notifications, cancellation, answer upserts, and the auto-assessment that
runs right after applying.
"""

import json

import pytest

from sailsmart.agent.scorer_fake import ScorerFake
from sailsmart.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from sailsmart.db.models import Registration
from sailsmart.domain.registration_status import RegistrationStatus
from sailsmart.services.assessment_service import AssessmentService
from sailsmart.services.registration_service import RegistrationService

pytestmark = pytest.mark.integration


class ExplodingOutbox:
    """Outbox whose every enqueue fails."""

    def __init__(self):
        self.attempts = 0

    async def enqueue(self, envelope):
        self.attempts += 1
        raise RuntimeError("notification backend down")


async def queued(redis, outbox) -> list[dict]:
    return [json.loads(raw) for raw in await redis.lrange(outbox.queue_key, 0, -1)]


@pytest.fixture
def registrations(session_factory, outbox, scorer) -> RegistrationService:
    return RegistrationService(session_factory, outbox, AssessmentService(session_factory, scorer, outbox))


@pytest.fixture
async def voyage(seed, owner_user, crew_user):
    """Published journey with one leg, one required question and profiles for both users."""
    await seed.profile(owner_user.user_id, full_name="Grace Hopper", roles=["owner"])
    await seed.profile(crew_user.user_id, full_name="Ada Lovelace", roles=["crew"], ai_processing_consent=True)
    journey = await seed.journey(owner_user.user_id, skills=["navigation"])
    leg = await seed.leg(journey.id, name="Las Palmas to Mindelo")
    question = await seed.requirement(
        journey.id,
        "question",
        question_text="Describe your night watch experience",
        qualification_criteria="Has stood night watches offshore",
        weight=10,
    )
    return journey, leg, question


async def test_apply_with_answers(registrations, voyage, crew_user):
    journey, leg, question = voyage

    detail = await registrations.create_registration(
        crew_user, leg.id, "Keen to help", [{"requirement_id": question.id, "answer_text": "Two Atlantic crossings"}]
    )

    assert detail.registration.status == RegistrationStatus.PENDING
    assert detail.journey_id == journey.id
    assert [a.answer_text for a in detail.answers] == ["Two Atlantic crossings"]


async def test_required_question_must_be_answered(registrations, voyage, crew_user):
    _journey, leg, question = voyage

    with pytest.raises(ValidationError):
        await registrations.create_registration(
            crew_user, leg.id, answers=[{"requirement_id": question.id, "answer_text": "   "}]
        )


async def test_unknown_requirement_rejected(registrations, voyage, crew_user):
    _journey, leg, question = voyage

    with pytest.raises(ValidationError):
        await registrations.create_registration(crew_user, leg.id, answers=[
            {"requirement_id": question.id, "answer_text": "Yes"},
            {"requirement_id": "not-on-this-journey", "answer_text": "Yes"},
        ])


async def test_unpublished_journey_rejected(registrations, seed, owner_user, crew_user):
    journey = await seed.journey(owner_user.user_id, state="In planning")
    leg = await seed.leg(journey.id)

    with pytest.raises(ValidationError):
        await registrations.create_registration(crew_user, leg.id)


async def test_unknown_leg(registrations, crew_user):
    with pytest.raises(NotFoundError):
        await registrations.create_registration(crew_user, "no-such-leg")


async def test_duplicate_active_registration_conflicts(registrations, voyage, crew_user):
    _journey, leg, question = voyage
    answers = [{"requirement_id": question.id, "answer_text": "Plenty"}]
    await registrations.create_registration(crew_user, leg.id, answers=answers)

    with pytest.raises(ConflictError):
        await registrations.create_registration(crew_user, leg.id, answers=answers)


async def test_cancel_then_reapply_reopens(registrations, voyage, crew_user):
    _journey, leg, question = voyage
    answers = [{"requirement_id": question.id, "answer_text": "Plenty"}]
    first = await registrations.create_registration(crew_user, leg.id, answers=answers)

    cancelled = await registrations.cancel(first.registration.id, crew_user)
    assert cancelled.registration.status == RegistrationStatus.CANCELLED

    reopened = await registrations.create_registration(
        crew_user, leg.id, "Second try", [{"requirement_id": question.id, "answer_text": "Even more"}]
    )
    assert reopened.registration.id == first.registration.id
    assert reopened.registration.status == RegistrationStatus.PENDING
    assert [a.answer_text for a in reopened.answers] == ["Even more"]


async def test_only_applicant_cancels(registrations, voyage, crew_user, owner_user, seed):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)

    with pytest.raises(ForbiddenError):
        await registrations.cancel(registration.id, owner_user)


async def test_manual_approval_notifies_crew_once(registrations, voyage, seed, crew_user, owner_user, redis, outbox):
    journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)

    detail = await registrations.decide(registration.id, owner_user, RegistrationStatus.APPROVED)

    assert detail.registration.status == RegistrationStatus.APPROVED
    assert detail.registration.auto_approved is False
    envelopes = await queued(redis, outbox)
    assert len(envelopes) == 1
    assert envelopes[0]["type"] == "registration_approved"
    assert envelopes[0]["user_id"] == crew_user.user_id
    assert envelopes[0]["metadata"]["journey_id"] == journey.id
    assert envelopes[0]["metadata"]["owner_name"] == "Grace Hopper"


async def test_rejection_carries_reason(registrations, voyage, seed, crew_user, owner_user, redis, outbox):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)

    await registrations.decide(registration.id, owner_user, RegistrationStatus.NOT_APPROVED, "Crew is full")

    [envelope] = await queued(redis, outbox)
    assert envelope["type"] == "registration_denied"
    assert "Crew is full" in envelope["message"]


async def test_failed_notification_keeps_approval(session_factory, voyage, seed, crew_user, owner_user):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)
    outbox = ExplodingOutbox()
    service = RegistrationService(session_factory, outbox)

    detail = await service.decide(registration.id, owner_user, RegistrationStatus.APPROVED)

    assert outbox.attempts == 1
    assert detail.registration.status == RegistrationStatus.APPROVED
    assert (await seed.get(Registration, registration.id)).status == RegistrationStatus.APPROVED


async def test_decision_is_final(registrations, voyage, seed, crew_user, owner_user):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id, status="Approved")

    with pytest.raises(ConflictError):
        await registrations.decide(registration.id, owner_user, RegistrationStatus.NOT_APPROVED)


async def test_only_owner_decides(registrations, voyage, seed, crew_user):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)

    with pytest.raises(ForbiddenError):
        await registrations.decide(registration.id, crew_user, RegistrationStatus.APPROVED)


async def test_owner_cannot_set_cancelled(registrations, voyage, seed, crew_user, owner_user):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)

    with pytest.raises(ValidationError):
        await registrations.decide(registration.id, owner_user, RegistrationStatus.CANCELLED)


async def test_registration_hidden_from_strangers(registrations, voyage, seed, crew_user, other_user):
    _journey, leg, _question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id)

    with pytest.raises(ForbiddenError):
        await registrations.get_registration(registration.id, other_user)


async def test_upsert_answer_clears_assessment(registrations, voyage, seed, crew_user):
    _journey, leg, question = voyage
    registration = await seed.registration(
        leg.id, crew_user.user_id, answers={question.id: "Some"}, ai_match_score=70, assessment_fingerprint="f"
    )

    answer = await registrations.upsert_answer(registration.id, question.id, crew_user, answer_text="More detail")

    assert answer.answer_text == "More detail"
    refreshed = await seed.get(Registration, registration.id)
    assert refreshed.ai_match_score is None
    assert refreshed.assessment_fingerprint is None


async def test_upsert_answer_requires_pending(registrations, voyage, seed, crew_user):
    _journey, leg, question = voyage
    registration = await seed.registration(leg.id, crew_user.user_id, status="Approved")

    with pytest.raises(ConflictError):
        await registrations.upsert_answer(registration.id, question.id, crew_user, answer_text="Late")


async def test_no_auto_assessment_when_disabled(registrations, voyage, crew_user, scorer, redis, outbox):
    _journey, leg, question = voyage

    detail = await registrations.create_registration(
        crew_user, leg.id, answers=[{"requirement_id": question.id, "answer_text": "Lots"}]
    )

    assert detail.registration.status == RegistrationStatus.PENDING
    assert detail.registration.ai_match_score is None
    assert scorer.calls == []
    assert await queued(redis, outbox) == []


async def test_auto_approval_after_applying(registrations, voyage, crew_user, owner_user, seed, redis, outbox):
    journey, leg, question = voyage
    journey.auto_approval_enabled = True
    await seed.add(journey)

    detail = await registrations.create_registration(
        crew_user, leg.id, answers=[{"requirement_id": question.id, "answer_text": "Twelve night watches"}]
    )

    assert detail.registration.status == RegistrationStatus.APPROVED
    assert detail.registration.auto_approved is True
    assert detail.registration.ai_match_score == 100
    types = sorted(e["type"] for e in await queued(redis, outbox))
    assert types == ["ai_auto_approved", "registration_approved"]


async def test_missing_required_skill_stays_pending(registrations, voyage, crew_user, seed):
    """High weighted score but a failed required skill: no auto-approval."""
    journey, leg, question = voyage
    second = await seed.requirement(
        journey.id, "question", question_text="Can you cook?", qualification_criteria="Yes", weight=10
    )
    await seed.requirement(
        journey.id, "skill", skill_name="navigation", qualification_criteria="Can plot a course", weight=5
    )
    journey.auto_approval_enabled = True
    await seed.add(journey)

    detail = await registrations.create_registration(crew_user, leg.id, answers=[
        {"requirement_id": question.id, "answer_text": "Many"},
        {"requirement_id": second.id, "answer_text": "Paella for twelve"},
    ])

    assert detail.registration.status == RegistrationStatus.PENDING
    assert detail.registration.ai_match_score == 80
    assert detail.registration.passes_required is False
    assert detail.registration.assessment_decision == "review"


async def test_upstream_failure_leaves_registration_pending(session_factory, voyage, crew_user, seed, outbox):
    journey, leg, question = voyage
    journey.auto_approval_enabled = True
    await seed.add(journey)
    service = RegistrationService(
        session_factory, outbox, AssessmentService(session_factory, ScorerFake("timeout"), outbox)
    )

    detail = await service.create_registration(
        crew_user, leg.id, answers=[{"requirement_id": question.id, "answer_text": "Many"}]
    )

    assert detail.registration.status == RegistrationStatus.PENDING
    assert detail.registration.ai_match_score is None
