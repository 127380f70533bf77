"""Error taxonomy surfaced to API consumers.

Every subclass carries the HTTP status and the stable ``code`` string the
global handler in ``sailsmart.main`` renders into the response body.
"""


class SailSmartError(Exception):
    """Base exception for the SailSmart backend."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, detail: str = "Internal server error"):
        self.detail = detail
        super().__init__(detail)


class UnauthenticatedError(SailSmartError):
    """Raised when a request needs an authenticated user and has none."""

    status_code = 401
    code = "unauthenticated"


class ForbiddenError(SailSmartError):
    """Raised on ownership mismatch or missing role."""

    status_code = 403
    code = "forbidden"


class NotFoundError(SailSmartError):
    """Raised when the addressed row does not exist."""

    status_code = 404
    code = "not_found"


class ValidationError(SailSmartError):
    """Raised when input passes schema checks but breaks a domain rule."""

    status_code = 400
    code = "validation_error"


class RateLimitedError(SailSmartError):
    """Raised when an AI quota or request frequency limit is hit."""

    status_code = 429
    code = "rate_limited"

    def __init__(self, detail: str = "Too many requests", retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(detail)


class UpstreamTimeoutError(SailSmartError):
    """Raised when the AI provider does not answer within the timeout."""

    status_code = 504
    code = "upstream_timeout"


class UpstreamUnavailableError(SailSmartError):
    """Raised when the AI provider or network fails."""

    status_code = 503
    code = "upstream_unavailable"


class ConflictError(SailSmartError):
    """Raised on duplicates (singleton requirements, active registrations)."""

    status_code = 409
    code = "conflict"


class InvalidTransitionError(ConflictError):
    """Raised when an onboarding state change is not in the transition table."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move onboarding state from '{current}' to '{requested}'")


class InternalError(SailSmartError):
    """Raised on unexpected database or programming errors."""


class DuplicateSessionError(SailSmartError):
    """Raised by the session store when an insert hits an existing session_id.

    Never reaches a client: the session service catches it and falls back
    to an update.
    """

    status_code = 409
    code = "conflict"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} already exists")
