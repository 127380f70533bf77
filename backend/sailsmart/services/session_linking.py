"""Session linking: attach anonymous onboarding sessions to an authenticated user.

Runs inside the authentication callback before any redirect decision, and
from the explicit per-kind link endpoints. Linking is one-way and
idempotent: only rows with ``user_id IS NULL`` are ever updated.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.core.auth import AuthUser
from sailsmart.core.exceptions import ForbiddenError, NotFoundError
from sailsmart.db.models.conversation_archive import AIConversation
from sailsmart.domain.onboarding import (
    OnboardingEvent,
    OnboardingState,
    SessionKind,
    after_consent_redirect,
    apply_event,
    callback_redirect,
)
from sailsmart.services.profile_service import ProfileService
from sailsmart.services.session_service import (
    SESSION_MODELS,
    PrivilegedSessionStore,
    UserSessionStore,
    is_expired,
    normalize_email,
    utcnow,
)

logger = structlog.get_logger(__name__)

# Callback order: owner sessions take precedence over prospect sessions
KIND_PRECEDENCE = (SessionKind.OWNER, SessionKind.PROSPECT)

_ARCHIVE_TITLES = {
    SessionKind.OWNER: "Owner Onboarding Chat",
    SessionKind.PROSPECT: "Crew Onboarding Chat",
}


@dataclass
class LinkResult:
    session_id: str
    linked: bool
    email_linked: int
    onboarding_state: str


@dataclass
class AfterConsentResult:
    redirect: str
    role: str | None
    trigger_profile_completion: bool
    session_id: str | None = None


class SessionLinkingService:
    """Links onboarding sessions to users and computes post-auth redirects."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], profiles: ProfileService):
        self.session_factory = session_factory
        self.profiles = profiles

    async def link_on_callback(self, user: AuthUser, cookies: dict[SessionKind, str | None]) -> dict[SessionKind, bool]:
        """Link every presented cookie's unlinked session to ``user``.

        Each linked session is forced to ``consent_pending``. A database
        failure is logged and skipped: sign-in must never be blocked by it.

        Returns:
            Mapping of kind -> whether a session was linked by this call
        """
        results: dict[SessionKind, bool] = {}
        for kind in KIND_PRECEDENCE:
            session_id = cookies.get(kind)
            if not session_id:
                continue
            model = SESSION_MODELS[kind]
            try:
                async with self.session_factory() as db:
                    store = PrivilegedSessionStore(db, model)
                    row = await store.get(session_id)
                    linked = False
                    if row is not None and row.user_id is None and not is_expired(row):
                        target = apply_event(kind, row.onboarding_state, OnboardingEvent.LINKED)
                        linked = await store.link(session_id, user.user_id, {"onboarding_state": target.value})
                        await db.commit()
            except SQLAlchemyError as exc:
                logger.error(
                    "session_link_failed",
                    kind=kind.value,
                    session_id=session_id,
                    user_id=user.user_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                results[kind] = False
                continue

            results[kind] = linked
            if linked:
                logger.info("session_linked", kind=kind.value, session_id=session_id, user_id=user.user_id)
            else:
                logger.debug("session_link_noop", kind=kind.value, session_id=session_id, user_id=user.user_id)
        return results

    async def link_session(
        self,
        kind: SessionKind,
        session_id: str,
        user: AuthUser,
        *,
        email: str | None = None,
        post_signup_onboarding: bool = False,
    ) -> LinkResult:
        """Explicitly link the cookie session, plus unlinked sessions sharing its email.

        Raises:
            NotFoundError: If the cookie addresses no live session
            ForbiddenError: If the session is already linked to someone else
        """
        model = SESSION_MODELS[kind]
        normalized_email = normalize_email(email) or user.email

        async with self.session_factory() as db:
            privileged = PrivilegedSessionStore(db, model)
            row = await privileged.get(session_id)
            if row is None or is_expired(row):
                raise NotFoundError("Onboarding session not found")
            if row.user_id is not None and row.user_id != user.user_id:
                raise ForbiddenError("Session belongs to another user")

            extra = {"email": normalized_email} if normalized_email and not row.email else {}
            linked = await privileged.link(session_id, user.user_id, extra)

            owned = UserSessionStore(db, model, user.user_id)
            if extra and not linked:
                await owned.update(session_id, extra)

            email_linked = 0
            if normalized_email:
                for other in await privileged.unlinked_with_email(normalized_email):
                    if other.session_id != session_id and await privileged.link(other.session_id, user.user_id):
                        email_linked += 1

            if post_signup_onboarding:
                await owned.update(session_id, {"onboarding_state": OnboardingState.CONSENT_PENDING.value})

            await db.commit()
            row = await owned.get(session_id)

        logger.info(
            "session_link_requested",
            kind=kind.value,
            session_id=session_id,
            user_id=user.user_id,
            linked=linked,
            email_linked=email_linked,
            post_signup_onboarding=post_signup_onboarding,
        )
        return LinkResult(
            session_id=session_id,
            linked=linked,
            email_linked=email_linked,
            onboarding_state=row.onboarding_state,
        )

    async def pending_states(self, user_id: str) -> dict[SessionKind, str | None]:
        """Onboarding state of the user's most recent live session of each kind."""
        states: dict[SessionKind, str | None] = {}
        async with self.session_factory() as db:
            for kind in KIND_PRECEDENCE:
                row = await UserSessionStore(db, SESSION_MODELS[kind], user_id).latest()
                states[kind] = row.onboarding_state if row else None
        return states

    async def handle_auth_callback(
        self,
        user: AuthUser,
        cookies: dict[SessionKind, str | None],
        next_path: str | None = None,
    ) -> str:
        """Link sessions, then decide where the freshly signed-in user goes.

        Linking completes before the state lookup, so the redirect always
        observes the freshly linked sessions.
        """
        await self.link_on_callback(user, cookies)
        states = await self.pending_states(user.user_id)
        profile = await self.profiles.get_profile(user.user_id)
        roles = list(profile.get("roles") or []) if profile else []

        redirect = callback_redirect(
            states.get(SessionKind.OWNER),
            states.get(SessionKind.PROSPECT),
            roles,
            next_path,
        )
        logger.info("auth_callback_redirect", user_id=user.user_id, redirect=redirect)
        return redirect

    async def after_consent(self, user: AuthUser, ai_processing_consent: bool) -> AfterConsentResult:
        """Advance a consent_pending session once the user has saved consents.

        When AI processing is refused and the session holds conversation, the
        conversation is archived and the session ended.
        """
        await self.profiles.set_ai_consent(user.user_id, ai_processing_consent)

        for kind in KIND_PRECEDENCE:
            async with self.session_factory() as db:
                store = UserSessionStore(db, SESSION_MODELS[kind], user.user_id)
                row = await store.latest({OnboardingState.CONSENT_PENDING.value})
                if row is None:
                    continue

                if not ai_processing_consent and row.conversation:
                    db.add(AIConversation(
                        user_id=user.user_id,
                        title=_ARCHIVE_TITLES[kind],
                        messages=[
                            {"role": m.get("role"), "content": m.get("content")}
                            for m in row.conversation
                            if isinstance(m, dict)
                        ],
                    ))
                    await store.delete(row.session_id)
                    await db.commit()
                    logger.info(
                        "onboarding_conversation_archived",
                        kind=kind.value,
                        session_id=row.session_id,
                        user_id=user.user_id,
                        messages=len(row.conversation),
                    )
                    return AfterConsentResult(redirect="/", role=None, trigger_profile_completion=False)

                current = row.onboarding_state
                new_state = apply_event(kind, current, OnboardingEvent.CONSENT_GIVEN)
                await store.update(row.session_id, {"onboarding_state": new_state.value, "last_active_at": utcnow()})
                await db.commit()
                logger.info(
                    "onboarding_state_changed",
                    kind=kind.value,
                    session_id=row.session_id,
                    from_state=current,
                    to_state=new_state.value,
                    event=OnboardingEvent.CONSENT_GIVEN.value,
                )
                return AfterConsentResult(
                    redirect=after_consent_redirect(kind),
                    role=kind.value,
                    trigger_profile_completion=ai_processing_consent,
                    session_id=row.session_id,
                )

        return AfterConsentResult(redirect="/", role=None, trigger_profile_completion=False)
