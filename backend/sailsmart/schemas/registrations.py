"""Registration schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AnswerIn(BaseModel):
    requirement_id: str
    answer_text: str | None = Field(None, max_length=5000)
    answer_json: Any = None


class RegistrationCreate(BaseModel):
    leg_id: str
    notes: str | None = Field(None, max_length=2000)
    answers: list[AnswerIn] = Field(default_factory=list)


class RegistrationDecisionRequest(BaseModel):
    status: Literal["Approved", "Not approved"]
    notes: str | None = Field(None, max_length=2000)


class AnswerUpsert(BaseModel):
    answer_text: str | None = Field(None, max_length=5000)
    answer_json: Any = None


class AnswerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    requirement_id: str
    answer_text: str | None
    answer_json: Any = None
    updated_at: datetime


class RegistrationOut(BaseModel):
    id: str
    leg_id: str
    journey_id: str
    user_id: str
    status: str
    notes: str | None
    auto_approved: bool
    ai_match_score: int | None
    ai_match_reasoning: str | None
    created_at: datetime
    updated_at: datetime
    answers: list[AnswerOut]

    @classmethod
    def from_detail(cls, detail) -> "RegistrationOut":
        r = detail.registration
        return cls(
            id=r.id,
            leg_id=r.leg_id,
            journey_id=detail.journey_id,
            user_id=r.user_id,
            status=r.status,
            notes=r.notes,
            auto_approved=r.auto_approved,
            ai_match_score=r.ai_match_score,
            ai_match_reasoning=r.ai_match_reasoning,
            created_at=r.created_at,
            updated_at=r.updated_at,
            answers=[AnswerOut.model_validate(a) for a in detail.answers],
        )


class AssessmentOut(BaseModel):
    registration_id: str
    score: int
    reasoning: str
    passes_required: bool
    decision: Literal["approve", "deny", "review"]
    cached: bool
    status: str
