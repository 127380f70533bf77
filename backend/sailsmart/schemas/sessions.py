"""Onboarding session schemas. JSON keys are camelCase; snake_case is accepted on input."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from sailsmart.domain.onboarding import OnboardingEvent, OnboardingState


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionPayload(CamelModel):
    """Full client-side session snapshot sent on save."""

    session_id: str = Field(..., min_length=1, max_length=64)
    conversation: list[dict[str, Any]] = Field(default_factory=list)
    gathered_preferences: dict[str, Any] = Field(default_factory=dict)
    onboarding_state: OnboardingState | None = None
    viewed_legs: list[str] = Field(default_factory=list)


class SessionSaveRequest(CamelModel):
    session: SessionPayload


class SessionStateUpdate(CamelModel):
    """Either an event or a target state, not both."""

    onboarding_state: OnboardingState | None = None
    event: OnboardingEvent | None = None

    @model_validator(mode="after")
    def exactly_one(self) -> "SessionStateUpdate":
        if (self.onboarding_state is None) == (self.event is None):
            raise ValueError("Provide exactly one of onboarding_state or event")
        return self


class SessionOut(CamelModel):
    session_id: str
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime
    conversation: list[dict[str, Any]]
    gathered_preferences: dict[str, Any]
    viewed_legs: list[str] | None = None
    session_email: str | None
    has_session_email: bool
    is_linked: bool
    profile_completion_triggered_at: datetime | None
    onboarding_state: OnboardingState

    @classmethod
    def from_row(cls, row) -> "SessionOut":
        return cls(
            session_id=row.session_id,
            created_at=row.created_at,
            last_active_at=row.last_active_at,
            expires_at=row.expires_at,
            conversation=list(row.conversation or []),
            gathered_preferences=dict(row.gathered_preferences or {}),
            viewed_legs=list(row.viewed_legs or []) if hasattr(row, "viewed_legs") else None,
            session_email=row.email,
            has_session_email=bool(row.email),
            is_linked=row.user_id is not None,
            profile_completion_triggered_at=row.profile_completion_triggered_at,
            onboarding_state=row.onboarding_state or OnboardingState.SIGNUP_PENDING,
        )


class SessionEnvelope(CamelModel):
    session: SessionOut | None


class SuccessResponse(CamelModel):
    success: bool = True


class LinkRequest(CamelModel):
    email: str | None = None
    post_signup_onboarding: bool = False


class LinkResponse(CamelModel):
    success: bool = True
    linked: bool
    email_linked: int
    onboarding_state: OnboardingState


class ProfileCompletionTriggerResponse(CamelModel):
    marked: bool


class AfterConsentRequest(CamelModel):
    ai_processing_consent: bool = False


class AfterConsentResponse(CamelModel):
    redirect: str
    role: str | None
    trigger_profile_completion: bool
    session_id: str | None = None


class AuthCallbackRequest(CamelModel):
    next: str | None = None


class AuthCallbackResponse(CamelModel):
    redirect: str
