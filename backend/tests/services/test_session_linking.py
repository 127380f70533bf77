"""Integration tests for SessionLinkingService.

Covers anonymous onboarding followed by sign-up and the callback redirect,
explicit link requests with email matching, and the after-consent step.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from sailsmart.core.exceptions import ForbiddenError, NotFoundError
from sailsmart.db.models import AIConversation, OwnerSession, ProspectSession
from sailsmart.domain.onboarding import SessionKind
from sailsmart.services.session_linking import SessionLinkingService
from sailsmart.services.session_service import OnboardingSessionService, utcnow

pytestmark = pytest.mark.integration

CHAT = [
    {"role": "assistant", "content": "Tell me about your sailing."},
    {"role": "user", "content": "Two seasons in the Solent"},
]


@pytest.fixture
def linking(session_factory, profiles) -> SessionLinkingService:
    return SessionLinkingService(session_factory, profiles)


def _live(**fields):
    return {"expires_at": utcnow() + timedelta(days=7), **fields}


async def test_callback_links_anonymous_prospect_and_redirects_to_consent(linking, session_factory, seed, crew_user):
    prospects = OnboardingSessionService(SessionKind.PROSPECT, session_factory)
    await prospects.save_session("p-1", conversation=CHAT)

    redirect = await linking.handle_auth_callback(crew_user, {SessionKind.PROSPECT: "p-1"}, "/crew/home")

    row = await seed.get(ProspectSession, "p-1")
    assert row.user_id == crew_user.user_id
    assert row.onboarding_state == "consent_pending"
    assert redirect == "/welcome/crew?step=consent"


async def test_callback_owner_session_takes_precedence(linking, seed, owner_user):
    await seed.add(OwnerSession(session_id="o-1", **_live()))
    await seed.add(ProspectSession(session_id="p-1", **_live()))

    redirect = await linking.handle_auth_callback(
        owner_user, {SessionKind.OWNER: "o-1", SessionKind.PROSPECT: "p-1"}
    )

    assert redirect == "/welcome/owner?step=consent"
    assert (await seed.get(ProspectSession, "p-1")).user_id == owner_user.user_id


async def test_callback_never_relinks(linking, seed, crew_user, other_user):
    await seed.add(ProspectSession(session_id="p-1", user_id=crew_user.user_id, onboarding_state="complete", **_live()))

    results = await linking.link_on_callback(other_user, {SessionKind.PROSPECT: "p-1"})

    assert results == {SessionKind.PROSPECT: False}
    assert (await seed.get(ProspectSession, "p-1")).user_id == crew_user.user_id


async def test_callback_is_idempotent(linking, seed, crew_user):
    await seed.add(ProspectSession(session_id="p-1", **_live()))

    first = await linking.link_on_callback(crew_user, {SessionKind.PROSPECT: "p-1"})
    second = await linking.link_on_callback(crew_user, {SessionKind.PROSPECT: "p-1"})

    assert first[SessionKind.PROSPECT] is True
    assert second[SessionKind.PROSPECT] is False


async def test_callback_ignores_expired_session(linking, seed, crew_user):
    await seed.add(ProspectSession(session_id="p-old", expires_at=utcnow() - timedelta(hours=1)))

    redirect = await linking.handle_auth_callback(crew_user, {SessionKind.PROSPECT: "p-old"}, "/journeys")

    assert (await seed.get(ProspectSession, "p-old")).user_id is None
    assert redirect == "/journeys"


async def test_callback_redirect_uses_profile_roles(linking, seed, owner_user):
    await seed.profile(owner_user.user_id, roles=["owner"])

    assert await linking.handle_auth_callback(owner_user, {}) == "/owner/journeys"


async def test_callback_sanitizes_next(linking, crew_user):
    assert await linking.handle_auth_callback(crew_user, {}, "//evil.example.com") == "/"


async def test_link_session_attaches_email_matches(linking, seed, crew_user):
    await seed.add(ProspectSession(session_id="p-1", **_live()))
    await seed.add(ProspectSession(session_id="p-2", email="deckhand@example.com", **_live()))
    await seed.add(ProspectSession(session_id="p-3", email="someone@example.com", **_live()))

    result = await linking.link_session(SessionKind.PROSPECT, "p-1", crew_user, email=" Deckhand@Example.com ")

    assert result.linked is True
    assert result.email_linked == 1
    assert (await seed.get(ProspectSession, "p-1")).email == "deckhand@example.com"
    assert (await seed.get(ProspectSession, "p-2")).user_id == crew_user.user_id
    assert (await seed.get(ProspectSession, "p-3")).user_id is None


async def test_link_session_keeps_existing_email(linking, seed, crew_user):
    await seed.add(ProspectSession(session_id="p-1", email="first@example.com", **_live()))

    await linking.link_session(SessionKind.PROSPECT, "p-1", crew_user)

    assert (await seed.get(ProspectSession, "p-1")).email == "first@example.com"


async def test_link_session_post_signup_moves_to_consent(linking, seed, owner_user):
    await seed.add(OwnerSession(session_id="o-1", onboarding_state="signup_pending", **_live()))

    result = await linking.link_session(SessionKind.OWNER, "o-1", owner_user, post_signup_onboarding=True)

    assert result.onboarding_state == "consent_pending"


async def test_link_session_already_linked_to_caller(linking, seed, crew_user):
    await seed.add(ProspectSession(session_id="p-1", user_id=crew_user.user_id, **_live()))

    result = await linking.link_session(SessionKind.PROSPECT, "p-1", crew_user)

    assert result.linked is False
    assert result.onboarding_state == "signup_pending"


async def test_link_session_other_user_forbidden(linking, seed, crew_user, other_user):
    await seed.add(ProspectSession(session_id="p-1", user_id=crew_user.user_id, **_live()))

    with pytest.raises(ForbiddenError):
        await linking.link_session(SessionKind.PROSPECT, "p-1", other_user)


async def test_link_session_missing(linking, crew_user):
    with pytest.raises(NotFoundError):
        await linking.link_session(SessionKind.PROSPECT, "ghost", crew_user)


async def test_after_consent_advances_owner_session(linking, seed, owner_user):
    await seed.profile(owner_user.user_id, roles=["owner"])
    await seed.add(OwnerSession(
        session_id="o-1", user_id=owner_user.user_id, onboarding_state="consent_pending", **_live()
    ))

    result = await linking.after_consent(owner_user, True)

    assert result.redirect == "/welcome/owner?profile_completion=true"
    assert result.role == "owner"
    assert result.trigger_profile_completion is True
    assert result.session_id == "o-1"
    assert (await seed.get(OwnerSession, "o-1")).onboarding_state == "profile_pending"


async def test_after_consent_refused_archives_conversation(linking, seed, session_factory, crew_user):
    await seed.profile(crew_user.user_id, roles=["crew"])
    await seed.add(ProspectSession(
        session_id="p-1",
        user_id=crew_user.user_id,
        onboarding_state="consent_pending",
        conversation=CHAT,
        **_live(),
    ))

    result = await linking.after_consent(crew_user, False)

    assert result.redirect == "/"
    assert result.trigger_profile_completion is False
    assert await seed.get(ProspectSession, "p-1") is None

    async with session_factory() as db:
        archived = (await db.execute(select(AIConversation))).scalars().all()
    assert len(archived) == 1
    assert archived[0].title == "Crew Onboarding Chat"
    assert archived[0].messages == CHAT


async def test_after_consent_refused_without_chat_still_advances(linking, seed, crew_user):
    await seed.add(ProspectSession(
        session_id="p-1", user_id=crew_user.user_id, onboarding_state="consent_pending", **_live()
    ))

    result = await linking.after_consent(crew_user, False)

    assert result.redirect == "/welcome/crew?profile_completion=true"
    assert result.trigger_profile_completion is False
    assert (await seed.get(ProspectSession, "p-1")).onboarding_state == "profile_pending"


async def test_after_consent_without_pending_session(linking, crew_user):
    result = await linking.after_consent(crew_user, True)

    assert result.redirect == "/"
    assert result.role is None
