"""Supabase JWT authentication for FastAPI."""

from dataclasses import dataclass

import jwt as pyjwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sailsmart.core.config import get_settings
from sailsmart.core.exceptions import UnauthenticatedError

logger = structlog.get_logger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user extracted from a Supabase access token."""

    user_id: str
    email: str | None
    claims: dict


def decode_supabase_jwt(token: str) -> AuthUser:
    """Verify and decode a Supabase access token.

    Raises ``UnauthenticatedError`` on any validation failure.
    """
    settings = get_settings()
    if not settings.supabase_jwt_secret:
        raise UnauthenticatedError("Authentication is not configured")

    try:
        payload = pyjwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=settings.supabase_jwt_audience,
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except pyjwt.InvalidAudienceError:
        raise UnauthenticatedError("Unauthorized audience (aud mismatch)")
    except pyjwt.MissingRequiredClaimError as exc:
        raise UnauthenticatedError(f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise UnauthenticatedError(f"Invalid token: {exc}")

    sub = payload.get("sub")
    if not sub:
        raise UnauthenticatedError("Token missing sub claim")

    email = payload.get("email") or None
    return AuthUser(user_id=sub, email=email.lower().strip() if email else None, claims=payload)


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that requires a valid Supabase token.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise UnauthenticatedError("Missing authorization header")

    user = decode_supabase_jwt(credentials.credentials)
    request.state.user_id = user.user_id
    return user


async def optional_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser | None:
    """Like ``require_auth`` but yields None for anonymous or logged-out callers.

    A present-but-invalid token is treated as logged out: cookie-addressed
    session routes still let the cookie holder through.
    """
    if credentials is None:
        return None

    try:
        user = decode_supabase_jwt(credentials.credentials)
    except UnauthenticatedError as exc:
        logger.info("optional_auth_token_rejected", reason=exc.detail)
        return None

    request.state.user_id = user.user_id
    return user
