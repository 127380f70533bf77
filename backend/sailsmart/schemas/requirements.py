"""Journey requirement and auto-approval schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from sailsmart.domain.matching import RequirementType


class RequirementCreate(BaseModel):
    requirement_type: RequirementType
    question_text: str | None = Field(None, max_length=2000)
    skill_name: str | None = Field(None, max_length=255)
    qualification_criteria: str | None = Field(None, max_length=4000)
    weight: int | None = Field(None, ge=0, le=10)
    require_photo_validation: bool = False
    pass_confidence_score: int | None = Field(None, ge=0, le=10)
    is_required: bool | None = None
    order: int | None = Field(None, ge=0)


class RequirementUpdate(BaseModel):
    question_text: str | None = Field(None, max_length=2000)
    skill_name: str | None = Field(None, max_length=255)
    qualification_criteria: str | None = Field(None, max_length=4000)
    weight: int | None = Field(None, ge=0, le=10)
    require_photo_validation: bool | None = None
    pass_confidence_score: int | None = Field(None, ge=0, le=10)
    is_required: bool | None = None
    order: int | None = Field(None, ge=0)


class RequirementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    journey_id: str
    requirement_type: RequirementType
    question_text: str | None
    skill_name: str | None
    qualification_criteria: str | None
    weight: int
    require_photo_validation: bool
    pass_confidence_score: int
    is_required: bool
    order: int
    created_at: datetime


class RequirementList(BaseModel):
    requirements: list[RequirementOut]


class AutoApprovalUpdate(BaseModel):
    auto_approval_enabled: bool | None = None
    auto_approval_threshold: int | None = Field(None, ge=0, le=100)


class AutoApprovalOut(BaseModel):
    journey_id: str
    auto_approval_enabled: bool
    auto_approval_threshold: int
    requirement_count: int
