"""Registration lifecycle.

Owner decisions are terminal; a crew member may cancel before a decision
and re-apply later, which reopens the cancelled row.
"""

from enum import StrEnum

from sailsmart.core.exceptions import ConflictError


class RegistrationStatus(StrEnum):
    PENDING = "Pending approval"
    APPROVED = "Approved"
    NOT_APPROVED = "Not approved"
    CANCELLED = "Cancelled"


REGISTRATION_TRANSITIONS: dict[RegistrationStatus, set[RegistrationStatus]] = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.APPROVED,
        RegistrationStatus.NOT_APPROVED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.CANCELLED: {RegistrationStatus.PENDING},
    RegistrationStatus.APPROVED: set(),
    RegistrationStatus.NOT_APPROVED: set(),
}

OWNER_DECISIONS = {RegistrationStatus.APPROVED, RegistrationStatus.NOT_APPROVED}


def validate_transition(current: str, target: RegistrationStatus) -> None:
    """Raise ``ConflictError`` unless ``current -> target`` is allowed."""
    allowed = REGISTRATION_TRANSITIONS.get(RegistrationStatus(current), set())
    if target not in allowed:
        raise ConflictError(f"Registration cannot move from '{current}' to '{target.value}'")


def is_active(status: str) -> bool:
    """Cancelled registrations do not block a new application for the same leg."""
    return status != RegistrationStatus.CANCELLED
