"""OnboardingSessionService: cookie-addressed onboarding session lifecycle.

Responsibilities:
- Two-tier access: PrivilegedSessionStore (service identity, used only after
  the presented cookie matched a row) and UserSessionStore (every statement
  filtered by user_id)
- Relaxed ownership: the cookie alone proves ownership of an anonymous
  session, and of a linked one when the caller is logged out
- Lazy expiry: an expired session is deleted on access and reported absent
- Save with insert -> duplicate key -> update fallback
- Onboarding state changes through the transition table
"""

from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.core.auth import AuthUser
from sailsmart.core.config import get_settings
from sailsmart.core.exceptions import DuplicateSessionError, ForbiddenError, InternalError, NotFoundError
from sailsmart.db.models.onboarding_session import OwnerSession, ProspectSession
from sailsmart.domain.onboarding import (
    OnboardingEvent,
    OnboardingState,
    SessionKind,
    apply_event,
    resolve_target_state,
)

logger = structlog.get_logger(__name__)

SESSION_MODELS = {
    SessionKind.OWNER: OwnerSession,
    SessionKind.PROSPECT: ProspectSession,
}

# How the caller's access to a session was established
ACCESS_ANONYMOUS = "anonymous"  # session not linked yet; cookie is enough
ACCESS_COOKIE = "cookie"  # linked session, caller logged out; cookie is proof
ACCESS_OWNER = "owner"  # linked session, caller authenticated as its user


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (SQLite round-trips) as UTC."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def is_expired(row, now: datetime | None = None) -> bool:
    return as_utc(row.expires_at) <= (now or utcnow())


def normalize_email(email) -> str | None:
    if not email or not isinstance(email, str):
        return None
    return email.strip().lower() or None


class PrivilegedSessionStore:
    """Service-identity access to one session table.

    Statements filter by session_id only. Callers must already have matched
    the presented cookie value to the row; this store never decides who may
    see a session.
    """

    def __init__(self, db: AsyncSession, model):
        self.db = db
        self.model = model

    async def get(self, session_id: str):
        result = await self.db.execute(
            select(self.model)
            .where(self.model.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert(self, values: dict):
        """Insert a new session row.

        Raises:
            DuplicateSessionError: If a row with this session_id already exists
        """
        row = self.model(**values)
        self.db.add(row)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateSessionError(values["session_id"])
        return row

    async def update(self, session_id: str, values: dict) -> int:
        result = await self.db.execute(
            update(self.model).where(self.model.session_id == session_id).values(**values)
        )
        return result.rowcount

    async def delete(self, session_id: str) -> int:
        result = await self.db.execute(delete(self.model).where(self.model.session_id == session_id))
        return result.rowcount

    async def link(self, session_id: str, user_id: str, extra: dict | None = None) -> bool:
        """Attach an unlinked session to ``user_id``.

        Guarded by ``user_id IS NULL`` so a linked session is never re-linked.
        """
        result = await self.db.execute(
            update(self.model)
            .where(self.model.session_id == session_id, self.model.user_id.is_(None))
            .values(user_id=user_id, last_active_at=utcnow(), **(extra or {}))
        )
        return result.rowcount > 0

    async def unlinked_with_email(self, email: str) -> list:
        result = await self.db.execute(
            select(self.model).where(self.model.email == email, self.model.user_id.is_(None))
        )
        return [row for row in result.scalars().all() if not is_expired(row)]


class UserSessionStore:
    """Per-user access to one session table. Every statement filters on user_id."""

    def __init__(self, db: AsyncSession, model, user_id: str):
        self.db = db
        self.model = model
        self.user_id = user_id

    async def get(self, session_id: str):
        result = await self.db.execute(
            select(self.model)
            .where(self.model.session_id == session_id, self.model.user_id == self.user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update(self, session_id: str, values: dict) -> int:
        result = await self.db.execute(
            update(self.model)
            .where(self.model.session_id == session_id, self.model.user_id == self.user_id)
            .values(**values)
        )
        return result.rowcount

    async def delete(self, session_id: str) -> int:
        result = await self.db.execute(
            delete(self.model).where(self.model.session_id == session_id, self.model.user_id == self.user_id)
        )
        return result.rowcount

    async def latest(self, states: set[str] | None = None):
        """Most recently active unexpired session of this user, optionally filtered by state."""
        stmt = select(self.model).where(self.model.user_id == self.user_id)
        if states:
            stmt = stmt.where(self.model.onboarding_state.in_(states))
        result = await self.db.execute(stmt.order_by(self.model.last_active_at.desc()))
        for row in result.scalars().all():
            if not is_expired(row):
                return row
        return None

    async def mark_profile_completion_triggered(self, session_id: str) -> bool:
        result = await self.db.execute(
            update(self.model)
            .where(
                self.model.session_id == session_id,
                self.model.user_id == self.user_id,
                self.model.profile_completion_triggered_at.is_(None),
            )
            .values(profile_completion_triggered_at=utcnow())
        )
        return result.rowcount > 0


def authorize_session_access(row, user: AuthUser | None) -> str:
    """Decide how the cookie holder may access ``row``.

    Raises:
        ForbiddenError: When an authenticated caller is not the linked user
    """
    if row.user_id is None:
        return ACCESS_ANONYMOUS
    if user is None:
        return ACCESS_COOKIE
    if user.user_id == row.user_id:
        return ACCESS_OWNER
    raise ForbiddenError("Session belongs to another user")


class OnboardingSessionService:
    """Service layer for one kind of onboarding session (owner or prospect)."""

    def __init__(self, kind: SessionKind, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize with the session kind and a session factory.

        Args:
            kind: SessionKind.OWNER or SessionKind.PROSPECT
            session_factory: SQLAlchemy async session factory for database access
        """
        self.kind = kind
        self.model = SESSION_MODELS[kind]
        self.session_factory = session_factory
        self.ttl = timedelta(days=get_settings().session_expiry_days)

    def _store_for(self, db: AsyncSession, access: str, user: AuthUser | None):
        if access == ACCESS_OWNER:
            return UserSessionStore(db, self.model, user.user_id)
        return PrivilegedSessionStore(db, self.model)

    async def _load(self, db: AsyncSession, session_id: str):
        """Privileged lookup by cookie value with lazy expiry."""
        store = PrivilegedSessionStore(db, self.model)
        row = await store.get(session_id)
        if row is None:
            return None
        if is_expired(row):
            await store.delete(session_id)
            await db.commit()
            logger.info("onboarding_session_expired", kind=self.kind.value, session_id=session_id)
            return None
        return row

    async def get_session(self, session_id: str, user: AuthUser | None = None):
        """Return the session addressed by the cookie, or None.

        Raises:
            ForbiddenError: If an authenticated caller is not the linked user
        """
        async with self.session_factory() as db:
            row = await self._load(db, session_id)
            if row is None:
                return None
            access = authorize_session_access(row, user)
            if access == ACCESS_OWNER:
                return await UserSessionStore(db, self.model, user.user_id).get(session_id)
            return row

    async def save_session(
        self,
        session_id: str,
        *,
        conversation: list | None = None,
        gathered_preferences: dict | None = None,
        onboarding_state: OnboardingState | None = None,
        viewed_legs: list | None = None,
        user: AuthUser | None = None,
    ):
        """Create or fully replace the session's conversation data.

        An ``email`` key in gathered preferences moves to the session's email
        column. Existing user_id and email are never cleared. The expiry
        slides to now + session_expiry_days.

        Raises:
            ForbiddenError: If an authenticated caller is not the linked user
            InvalidTransitionError: If onboarding_state is not reachable
        """
        prefs = dict(gathered_preferences or {})
        email = normalize_email(prefs.pop("email", None))
        now = utcnow()

        values = {
            "conversation": list(conversation or []),
            "gathered_preferences": prefs,
            "last_active_at": now,
            "expires_at": now + self.ttl,
        }
        if self.kind == SessionKind.PROSPECT:
            values["viewed_legs"] = list(viewed_legs or [])

        async with self.session_factory() as db:
            row = await self._load(db, session_id)

            if row is None:
                store = PrivilegedSessionStore(db, self.model)
                try:
                    await store.insert({
                        **values,
                        "session_id": session_id,
                        "email": email,
                        "onboarding_state": (onboarding_state or OnboardingState.SIGNUP_PENDING).value,
                        "created_at": now,
                    })
                    await db.commit()
                    logger.info("onboarding_session_created", kind=self.kind.value, session_id=session_id)
                    return await store.get(session_id)
                except DuplicateSessionError:
                    logger.info("onboarding_session_insert_raced", kind=self.kind.value, session_id=session_id)
                    row = await store.get(session_id)
                    if row is None:
                        raise InternalError("Session insert conflicted but no row was found")

            access = authorize_session_access(row, user)
            if onboarding_state is not None and onboarding_state != row.onboarding_state:
                values["onboarding_state"] = resolve_target_state(
                    self.kind, row.onboarding_state, onboarding_state
                ).value
            if email:
                values["email"] = email

            store = self._store_for(db, access, user)
            await store.update(session_id, values)
            await db.commit()
            logger.info(
                "onboarding_session_saved",
                kind=self.kind.value,
                session_id=session_id,
                access=access,
                messages=len(values["conversation"]),
            )
            return await store.get(session_id)

    async def update_state(
        self,
        session_id: str,
        *,
        event: OnboardingEvent | None = None,
        target_state: OnboardingState | None = None,
        user: AuthUser | None = None,
    ):
        """Move the session through the onboarding state machine.

        Exactly one of ``event`` / ``target_state`` is expected; writing the
        current state again is a no-op.

        Raises:
            NotFoundError: If the cookie addresses no live session
            ForbiddenError: If an authenticated caller is not the linked user
            InvalidTransitionError: If the change is not in the transition table
        """
        async with self.session_factory() as db:
            row = await self._load(db, session_id)
            if row is None:
                raise NotFoundError("Onboarding session not found")
            access = authorize_session_access(row, user)

            current = row.onboarding_state
            if event is not None:
                new_state = apply_event(self.kind, current, event)
            else:
                new_state = resolve_target_state(self.kind, current, target_state)

            if new_state == current:
                return row

            store = self._store_for(db, access, user)
            await store.update(session_id, {"onboarding_state": new_state.value, "last_active_at": utcnow()})
            await db.commit()
            logger.info(
                "onboarding_state_changed",
                kind=self.kind.value,
                session_id=session_id,
                from_state=current,
                to_state=new_state.value,
                event=event.value if event else None,
            )
            return await store.get(session_id)

    async def delete_session(self, session_id: str, user: AuthUser | None = None) -> bool:
        """Delete the session. Deleting an absent session is not an error.

        Returns:
            True if a row was deleted
        """
        async with self.session_factory() as db:
            row = await self._load(db, session_id)
            if row is None:
                return False
            access = authorize_session_access(row, user)
            deleted = await self._store_for(db, access, user).delete(session_id)
            await db.commit()
            logger.info("onboarding_session_deleted", kind=self.kind.value, session_id=session_id, access=access)
            return deleted > 0

    async def mark_profile_completion_triggered(self, session_id: str, user: AuthUser) -> bool:
        """Record that AI profile completion started, so it is not triggered twice.

        Returns:
            True the first time, False if it was already marked
        """
        async with self.session_factory() as db:
            row = await self._load(db, session_id)
            if row is None:
                raise NotFoundError("Onboarding session not found")
            if authorize_session_access(row, user) != ACCESS_OWNER:
                raise ForbiddenError("Session is not linked to the current user")
            marked = await UserSessionStore(db, self.model, user.user_id).mark_profile_completion_triggered(session_id)
            await db.commit()
            return marked
