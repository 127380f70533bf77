"""Onboarding state machine and post-authentication redirect rules.

Pure domain functions: no DB access, fully deterministic.
"""

from enum import StrEnum

from sailsmart.core.exceptions import InvalidTransitionError


class SessionKind(StrEnum):
    """Which onboarding flow a session belongs to."""

    OWNER = "owner"
    PROSPECT = "prospect"


class OnboardingState(StrEnum):
    SIGNUP_PENDING = "signup_pending"
    CONSENT_PENDING = "consent_pending"
    PROFILE_PENDING = "profile_pending"
    BOAT_PENDING = "boat_pending"  # owner only
    JOURNEY_PENDING = "journey_pending"  # owner only
    COMPLETE = "complete"


class OnboardingEvent(StrEnum):
    SIGNED_UP = "signed_up"
    CONSENT_GIVEN = "consent_given"
    PROFILE_COMPLETED = "profile_completed"
    BOAT_CREATED = "boat_created"
    JOURNEY_CREATED = "journey_created"
    ONBOARDING_SKIPPED = "onboarding_skipped"
    LINKED = "linked"


_S = OnboardingState
_E = OnboardingEvent

_SHARED_TRANSITIONS: dict[tuple[OnboardingState, OnboardingEvent], OnboardingState] = {
    (_S.SIGNUP_PENDING, _E.SIGNED_UP): _S.CONSENT_PENDING,
    # Existing account that already consented enters mid-flow
    (_S.SIGNUP_PENDING, _E.CONSENT_GIVEN): _S.PROFILE_PENDING,
    (_S.CONSENT_PENDING, _E.CONSENT_GIVEN): _S.PROFILE_PENDING,
}

# (state, event) -> next state, per session kind. `linked` is handled
# separately: it is valid from every state.
TRANSITIONS: dict[SessionKind, dict[tuple[OnboardingState, OnboardingEvent], OnboardingState]] = {
    SessionKind.PROSPECT: {
        **_SHARED_TRANSITIONS,
        (_S.PROFILE_PENDING, _E.PROFILE_COMPLETED): _S.COMPLETE,
    },
    SessionKind.OWNER: {
        **_SHARED_TRANSITIONS,
        (_S.PROFILE_PENDING, _E.PROFILE_COMPLETED): _S.BOAT_PENDING,
        # Profile created during the consent step
        (_S.CONSENT_PENDING, _E.PROFILE_COMPLETED): _S.BOAT_PENDING,
        (_S.BOAT_PENDING, _E.BOAT_CREATED): _S.JOURNEY_PENDING,
        (_S.JOURNEY_PENDING, _E.JOURNEY_CREATED): _S.COMPLETE,
        (_S.BOAT_PENDING, _E.ONBOARDING_SKIPPED): _S.COMPLETE,
        (_S.JOURNEY_PENDING, _E.ONBOARDING_SKIPPED): _S.COMPLETE,
    },
}


def apply_event(kind: SessionKind, current: str, event: OnboardingEvent) -> OnboardingState:
    """Return the state reached from ``current`` by ``event``.

    Raises:
        InvalidTransitionError: If (current, event) is not in the table
    """
    if event == OnboardingEvent.LINKED:
        return OnboardingState.CONSENT_PENDING

    try:
        state = OnboardingState(current)
    except ValueError:
        raise InvalidTransitionError(current, event.value)

    target = TRANSITIONS[kind].get((state, event))
    if target is None:
        raise InvalidTransitionError(current, event.value)
    return target


def reachable_states(kind: SessionKind, current: str) -> set[OnboardingState]:
    """States reachable from ``current`` in one event (``linked`` included)."""
    reachable = {OnboardingState.CONSENT_PENDING}
    for (state, _event), target in TRANSITIONS[kind].items():
        if state == current:
            reachable.add(target)
    return reachable


def resolve_target_state(kind: SessionKind, current: str, target: OnboardingState) -> OnboardingState:
    """Validate a direct state write against the transition table.

    Writing the current state again is a no-op and always accepted.

    Raises:
        InvalidTransitionError: If no single event leads from current to target
    """
    if target == current:
        return target
    if target not in reachable_states(kind, current):
        raise InvalidTransitionError(current, target.value)
    return target


# ---------------------------------------------------------------------------
# Redirects
# ---------------------------------------------------------------------------

_OWNER_IN_PROGRESS = {_S.PROFILE_PENDING, _S.BOAT_PENDING, _S.JOURNEY_PENDING}


def sanitize_next(next_path: str | None) -> str:
    """Only same-site absolute paths are honoured; anything else becomes ``/``."""
    if not next_path or not next_path.startswith("/") or next_path.startswith("//"):
        return "/"
    return next_path


def callback_redirect(
    owner_state: str | None,
    prospect_state: str | None,
    roles: list[str],
    next_path: str | None = None,
) -> str:
    """Where to send a user right after authentication.

    Args:
        owner_state: Onboarding state of the user's owner session, if any
        prospect_state: Onboarding state of the user's prospect session, if any
        roles: Profile roles ("owner", "crew"); empty when no profile exists
        next_path: Redirect requested by the client

    Rules (first match wins):
        - Owner session awaiting consent -> owner welcome, consent step
        - Owner session mid-onboarding -> owner welcome
        - Prospect session awaiting consent -> crew welcome, consent step
        - Prospect session awaiting profile -> crew welcome
        - Profile with owner role -> owner journeys
        - Profile with crew role -> crew home
        - Otherwise the sanitized ``next``
    """
    if owner_state == _S.CONSENT_PENDING:
        return "/welcome/owner?step=consent"
    if owner_state in _OWNER_IN_PROGRESS:
        return "/welcome/owner"
    if prospect_state == _S.CONSENT_PENDING:
        return "/welcome/crew?step=consent"
    if prospect_state == _S.PROFILE_PENDING:
        return "/welcome/crew"
    if "owner" in roles:
        return "/owner/journeys"
    if "crew" in roles:
        return "/crew/home"
    return sanitize_next(next_path)


def after_consent_redirect(kind: SessionKind) -> str:
    if kind == SessionKind.OWNER:
        return "/welcome/owner?profile_completion=true"
    return "/welcome/crew?profile_completion=true"
