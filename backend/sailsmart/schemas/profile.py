"""Profile schemas."""

from typing import Literal

from pydantic import BaseModel, Field

from sailsmart.domain.matching import RiskLevel


class SkillIn(BaseModel):
    skill_name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=2000)


class ProfileUpdate(BaseModel):
    full_name: str | None = Field(None, max_length=255)
    username: str | None = Field(None, max_length=255)
    roles: list[Literal["owner", "crew"]] | None = None
    experience_level: int | None = Field(None, ge=1, le=4)
    risk_levels: list[RiskLevel] | None = None
    skills: list[SkillIn] | None = None
    ai_processing_consent: bool | None = None


class ProfileOut(BaseModel):
    id: str
    full_name: str | None
    username: str | None
    email: str | None
    roles: list[str]
    experience_level: int | None
    risk_levels: list[str]
    skills: list[dict]
    ai_processing_consent: bool
