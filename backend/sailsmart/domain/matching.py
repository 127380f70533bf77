"""Requirement matching and auto-approval decision logic.

Pure domain functions: no DB access, no AI calls. Question requirements are
judged elsewhere and passed in as verdicts; everything else is evaluated
here deterministically.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from enum import StrEnum


class RequirementType(StrEnum):
    QUESTION = "question"
    SKILL = "skill"
    PASSPORT = "passport"
    RISK_LEVEL = "risk_level"
    EXPERIENCE_LEVEL = "experience_level"


class RiskLevel(StrEnum):
    COASTAL = "Coastal"
    OFFSHORE = "Offshore"
    EXTREME = "Extreme"


class Decision(StrEnum):
    APPROVE = "approve"
    DENY = "deny"
    REVIEW = "review"


# At most one requirement of each of these types per journey
SINGLETON_TYPES = frozenset({
    RequirementType.RISK_LEVEL,
    RequirementType.EXPERIENCE_LEVEL,
    RequirementType.PASSPORT,
})

# Types whose weight enters the aggregate percentage
WEIGHTED_TYPES = frozenset({RequirementType.QUESTION, RequirementType.SKILL})

EXPERIENCE_LEVELS = {
    1: "Beginner",
    2: "Competent Crew",
    3: "Coastal Skipper",
    4: "Offshore Skipper",
}

# A failed required item keeps the score below a full match
REQUIRED_FAILURE_SCORE_CAP = 99

_WHITESPACE = re.compile(r"[\s\-]+")


def canonical_skill_name(name: str | None) -> str:
    """Storage format for skill names: ``"Sailing Experience"`` -> ``"sailing_experience"``."""
    if not name:
        return ""
    return _WHITESPACE.sub("_", name.strip().lower())


def canonical_skill_set(skills: list) -> set[str]:
    """Canonical names from a mixed list of strings and ``{skill_name, ...}`` dicts."""
    names = set()
    for skill in skills or []:
        raw = skill.get("skill_name") if isinstance(skill, dict) else skill
        canonical = canonical_skill_name(str(raw)) if raw is not None else ""
        if canonical:
            names.add(canonical)
    return names


@dataclass(frozen=True)
class RequirementSpec:
    """A journey requirement as seen by the matcher."""

    id: str
    requirement_type: RequirementType
    weight: int = 5
    is_required: bool = True
    order: int = 0
    question_text: str | None = None
    skill_name: str | None = None
    qualification_criteria: str | None = None
    require_photo_validation: bool = False
    pass_confidence_score: int = 7


@dataclass(frozen=True)
class CrewProfile:
    experience_level: int | None
    risk_levels: list[str]
    skills: list
    ai_processing_consent: bool = False


@dataclass(frozen=True)
class LegTerms:
    min_experience_level: int | None
    risk_level: str | None
    skills: list = field(default_factory=list)


@dataclass(frozen=True)
class PassportStatus:
    """Verification state of the crew member's passport, if one was uploaded."""

    has_verified_document: bool = False
    photo_verification_passed: bool | None = None
    photo_confidence_score: float | None = None  # 0.0-1.0


@dataclass
class RequirementOutcome:
    """Evaluation of one requirement.

    ``passed`` is None for a question that has not been judged.
    """

    requirement_id: str
    requirement_type: RequirementType
    passed: bool | None
    weight: int
    is_required: bool
    reason: str


@dataclass
class MatchResult:
    """Aggregate of all requirement outcomes for one registration."""

    score: int
    passes_required: bool
    outcomes: list[RequirementOutcome]
    failed_required: list[str]
    pending_judgement: bool

    def blocking_reasons(self) -> list[str]:
        return [o.reason for o in self.outcomes if o.is_required and o.passed is False]


def evaluate_requirement(
    requirement: RequirementSpec,
    profile: CrewProfile,
    leg: LegTerms,
    passport: PassportStatus,
    question_verdicts: dict[str, bool] | None = None,
) -> RequirementOutcome:
    """Evaluate a single requirement against the crew member's profile.

    Args:
        requirement: The requirement to check
        profile: Crew member's experience, risk levels and skills
        leg: Leg the crew member applied to
        passport: Passport verification state
        question_verdicts: requirement_id -> satisfied, for judged questions

    Returns:
        RequirementOutcome with pass/fail and a short human-readable reason
    """
    rtype = requirement.requirement_type

    def outcome(passed: bool | None, reason: str) -> RequirementOutcome:
        return RequirementOutcome(
            requirement_id=requirement.id,
            requirement_type=rtype,
            passed=passed,
            weight=requirement.weight,
            is_required=requirement.is_required,
            reason=reason,
        )

    if rtype == RequirementType.EXPERIENCE_LEVEL:
        if leg.min_experience_level is None:
            return outcome(True, "Leg has no minimum experience level")
        if profile.experience_level is None:
            return outcome(False, "Experience level not set on profile")
        if profile.experience_level >= leg.min_experience_level:
            return outcome(True, f"Experience level {profile.experience_level} meets minimum {leg.min_experience_level}")
        return outcome(False, f"Experience level {profile.experience_level} below minimum {leg.min_experience_level}")

    if rtype == RequirementType.RISK_LEVEL:
        if not leg.risk_level:
            return outcome(True, "Leg has no risk level")
        if leg.risk_level in (profile.risk_levels or []):
            return outcome(True, f"Accepts {leg.risk_level} sailing")
        return outcome(False, f"Does not accept {leg.risk_level} sailing")

    if rtype == RequirementType.SKILL:
        wanted = canonical_skill_name(requirement.skill_name)
        if wanted and wanted in canonical_skill_set(profile.skills):
            return outcome(True, f"Has skill {wanted}")
        return outcome(False, f"Missing skill {wanted}")

    if rtype == RequirementType.PASSPORT:
        if not passport.has_verified_document:
            return outcome(False, "No verified passport on file")
        if not requirement.require_photo_validation:
            return outcome(True, "Verified passport on file")
        if not passport.photo_verification_passed:
            return outcome(False, "Passport photo verification not passed")
        confidence = (passport.photo_confidence_score or 0.0) * 10
        if confidence >= requirement.pass_confidence_score:
            return outcome(True, "Passport photo verified")
        return outcome(
            False,
            f"Photo confidence {confidence:.1f} below required {requirement.pass_confidence_score}",
        )

    # QUESTION
    verdict = (question_verdicts or {}).get(requirement.id)
    if verdict is None:
        return outcome(None, "Answer not yet assessed")
    return outcome(verdict, "Answer meets criteria" if verdict else "Answer does not meet criteria")


def compute_match(
    requirements: list[RequirementSpec],
    profile: CrewProfile,
    leg: LegTerms,
    passport: PassportStatus,
    question_verdicts: dict[str, bool] | None = None,
) -> MatchResult:
    """Evaluate all requirements and aggregate them into a 0-100 score.

    Rules:
        - Score is the satisfied weight of question/skill requirements over
          their total weight, as a percentage
        - With no weighted requirements (or all weights zero) the score is the
          share of passing boolean requirements; no requirements at all is 100
        - Unjudged questions count toward the total but not the satisfied weight
        - A failed required item caps the score at 99
    """
    ordered = sorted(requirements, key=lambda r: (r.order, r.id))
    outcomes = [evaluate_requirement(r, profile, leg, passport, question_verdicts) for r in ordered]

    weighted = [o for o in outcomes if o.requirement_type in WEIGHTED_TYPES]
    total_weight = sum(o.weight for o in weighted)

    if total_weight > 0:
        satisfied = sum(o.weight for o in weighted if o.passed)
        score = round(satisfied / total_weight * 100)
    elif outcomes:
        boolean = [o for o in outcomes if o.requirement_type not in WEIGHTED_TYPES] or outcomes
        score = round(sum(1 for o in boolean if o.passed) / len(boolean) * 100)
    else:
        score = 100

    failed_required = [o.requirement_id for o in outcomes if o.is_required and o.passed is False]
    if failed_required:
        score = min(score, REQUIRED_FAILURE_SCORE_CAP)

    return MatchResult(
        score=score,
        passes_required=not failed_required,
        outcomes=outcomes,
        failed_required=failed_required,
        pending_judgement=any(o.passed is None for o in outcomes),
    )


def decide(
    result: MatchResult,
    *,
    auto_approval_enabled: bool,
    threshold: int,
    ai_recommendation: str | None = None,
    auto_deny_enabled: bool = False,
) -> Decision:
    """Turn a match result into approve / deny / review.

    Rules:
        - Auto-approval disabled, unjudged answers, or a failed required
          item -> REVIEW
        - score >= threshold and the AI did not recommend deny -> APPROVE
        - auto-deny enabled, AI recommended deny and score < threshold -> DENY
        - Otherwise -> REVIEW
    """
    if not auto_approval_enabled or result.pending_judgement or not result.passes_required:
        return Decision.REVIEW

    if result.score >= threshold and ai_recommendation != Decision.DENY:
        return Decision.APPROVE

    if auto_deny_enabled and ai_recommendation == Decision.DENY and result.score < threshold:
        return Decision.DENY

    return Decision.REVIEW


def assessment_fingerprint(payload: dict) -> str:
    """sha256 over the canonical JSON of every input that affects a decision."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
