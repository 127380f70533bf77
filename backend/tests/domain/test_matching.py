"""Tests for requirement matching and the auto-approval decision."""

import pytest

from sailsmart.domain.matching import (
    REQUIRED_FAILURE_SCORE_CAP,
    CrewProfile,
    Decision,
    LegTerms,
    PassportStatus,
    RequirementSpec,
    RequirementType,
    assessment_fingerprint,
    canonical_skill_name,
    canonical_skill_set,
    compute_match,
    decide,
    evaluate_requirement,
)

pytestmark = pytest.mark.unit

NO_PASSPORT = PassportStatus()
OPEN_LEG = LegTerms(min_experience_level=None, risk_level=None)


def crew(**overrides) -> CrewProfile:
    values = {
        "experience_level": 3,
        "risk_levels": ["Coastal", "Offshore"],
        "skills": [{"skill_name": "navigation", "description": "Yachtmaster theory"}],
        "ai_processing_consent": True,
    }
    values.update(overrides)
    return CrewProfile(**values)


def skill(rid: str, name: str, weight: int = 5, required: bool = False, order: int = 0) -> RequirementSpec:
    return RequirementSpec(
        id=rid,
        requirement_type=RequirementType.SKILL,
        skill_name=name,
        weight=weight,
        is_required=required,
        order=order,
    )


def question(rid: str, weight: int = 5, required: bool = False, order: int = 0) -> RequirementSpec:
    return RequirementSpec(
        id=rid,
        requirement_type=RequirementType.QUESTION,
        question_text="Describe your night watch experience",
        qualification_criteria="At least one overnight passage",
        weight=weight,
        is_required=required,
        order=order,
    )


class TestCanonicalSkills:
    def test_spaces_and_case(self):
        assert canonical_skill_name("  Sailing Experience ") == "sailing_experience"

    def test_hyphens(self):
        assert canonical_skill_name("First-Aid") == "first_aid"

    def test_empty(self):
        assert canonical_skill_name(None) == ""

    def test_mixed_list(self):
        assert canonical_skill_set(["Navigation", {"skill_name": "Heavy Weather"}, {"description": "x"}]) == {
            "navigation",
            "heavy_weather",
        }


class TestEvaluateRequirement:
    def test_experience_below_minimum(self):
        req = RequirementSpec(id="exp", requirement_type=RequirementType.EXPERIENCE_LEVEL)
        outcome = evaluate_requirement(req, crew(experience_level=2), LegTerms(3, None), NO_PASSPORT)
        assert outcome.passed is False

    def test_experience_meets_minimum(self):
        req = RequirementSpec(id="exp", requirement_type=RequirementType.EXPERIENCE_LEVEL)
        outcome = evaluate_requirement(req, crew(experience_level=3), LegTerms(3, None), NO_PASSPORT)
        assert outcome.passed is True

    def test_experience_unset_on_profile(self):
        req = RequirementSpec(id="exp", requirement_type=RequirementType.EXPERIENCE_LEVEL)
        outcome = evaluate_requirement(req, crew(experience_level=None), LegTerms(1, None), NO_PASSPORT)
        assert outcome.passed is False

    def test_risk_level_must_be_accepted(self):
        req = RequirementSpec(id="risk", requirement_type=RequirementType.RISK_LEVEL)
        assert evaluate_requirement(req, crew(), LegTerms(None, "Offshore"), NO_PASSPORT).passed is True
        assert evaluate_requirement(req, crew(), LegTerms(None, "Extreme"), NO_PASSPORT).passed is False

    def test_skill_compared_canonically(self):
        outcome = evaluate_requirement(skill("s", "Navigation"), crew(), OPEN_LEG, NO_PASSPORT)
        assert outcome.passed is True

    def test_passport_missing(self):
        req = RequirementSpec(id="pp", requirement_type=RequirementType.PASSPORT)
        assert evaluate_requirement(req, crew(), OPEN_LEG, NO_PASSPORT).passed is False

    def test_passport_verified_without_photo_check(self):
        req = RequirementSpec(id="pp", requirement_type=RequirementType.PASSPORT)
        passport = PassportStatus(has_verified_document=True)
        assert evaluate_requirement(req, crew(), OPEN_LEG, passport).passed is True

    def test_passport_photo_confidence_scaled_to_ten(self):
        req = RequirementSpec(
            id="pp",
            requirement_type=RequirementType.PASSPORT,
            require_photo_validation=True,
            pass_confidence_score=7,
        )
        good = PassportStatus(True, photo_verification_passed=True, photo_confidence_score=0.75)
        weak = PassportStatus(True, photo_verification_passed=True, photo_confidence_score=0.6)
        failed = PassportStatus(True, photo_verification_passed=False, photo_confidence_score=0.95)
        assert evaluate_requirement(req, crew(), OPEN_LEG, good).passed is True
        assert evaluate_requirement(req, crew(), OPEN_LEG, weak).passed is False
        assert evaluate_requirement(req, crew(), OPEN_LEG, failed).passed is False

    def test_unjudged_question_is_pending(self):
        outcome = evaluate_requirement(question("q"), crew(), OPEN_LEG, NO_PASSPORT)
        assert outcome.passed is None


class TestComputeMatch:
    def test_weighted_score(self):
        requirements = [skill("nav", "navigation", 5), skill("aid", "first_aid", 3), question("q", 2)]
        result = compute_match(requirements, crew(), OPEN_LEG, NO_PASSPORT, {"q": True})
        assert result.score == 70
        assert result.passes_required is True
        assert result.pending_judgement is False

    def test_no_requirements_is_full_match(self):
        result = compute_match([], crew(), OPEN_LEG, NO_PASSPORT)
        assert result.score == 100
        assert result.passes_required is True

    def test_boolean_only_requirements_use_pass_share(self):
        requirements = [
            RequirementSpec(id="exp", requirement_type=RequirementType.EXPERIENCE_LEVEL, is_required=False),
            RequirementSpec(id="risk", requirement_type=RequirementType.RISK_LEVEL, is_required=False),
        ]
        result = compute_match(requirements, crew(), LegTerms(2, "Extreme"), NO_PASSPORT)
        assert result.score == 50

    def test_required_failure_caps_score(self):
        requirements = [
            skill("nav", "navigation", 5),
            RequirementSpec(id="risk", requirement_type=RequirementType.RISK_LEVEL, is_required=True),
        ]
        result = compute_match(requirements, crew(), LegTerms(None, "Extreme"), NO_PASSPORT)
        assert result.score == REQUIRED_FAILURE_SCORE_CAP
        assert result.passes_required is False
        assert result.failed_required == ["risk"]
        assert result.blocking_reasons() == ["Does not accept Extreme sailing"]

    def test_missing_required_navigation_keeps_registration_for_review(self):
        """Required Navigation skill missing, other items would reach the threshold."""
        requirements = [
            skill("nav", "Navigation", weight=5, required=True, order=0),
            question("q1", weight=10, order=1),
            question("q2", weight=10, order=2),
        ]
        profile = crew(skills=[{"skill_name": "cooking", "description": ""}])
        result = compute_match(requirements, profile, OPEN_LEG, NO_PASSPORT, {"q1": True, "q2": True})

        assert result.score == 80
        assert result.passes_required is False
        assert "nav" in result.failed_required
        assert decide(result, auto_approval_enabled=True, threshold=80, ai_recommendation="approve") == Decision.REVIEW

    def test_outcomes_follow_requirement_order(self):
        requirements = [question("b", order=2), question("a", order=1), skill("c", "navigation", order=0)]
        result = compute_match(requirements, crew(), OPEN_LEG, NO_PASSPORT, {"a": True, "b": True})
        assert [o.requirement_id for o in result.outcomes] == ["c", "a", "b"]

    def test_same_inputs_same_result(self):
        requirements = [skill("nav", "navigation"), question("q")]
        first = compute_match(requirements, crew(), OPEN_LEG, NO_PASSPORT, {"q": False})
        second = compute_match(requirements, crew(), OPEN_LEG, NO_PASSPORT, {"q": False})
        assert first.score == second.score == 50


class TestDecide:
    def _result(self, score_skill_weight: int = 5, verdict: bool | None = True):
        requirements = [skill("nav", "navigation", score_skill_weight), question("q", 5)]
        verdicts = {"q": verdict} if verdict is not None else None
        return compute_match(requirements, crew(), OPEN_LEG, NO_PASSPORT, verdicts)

    def test_disabled_always_reviews(self):
        result = self._result()
        assert result.score == 100
        assert decide(result, auto_approval_enabled=False, threshold=50) == Decision.REVIEW

    def test_approve_at_threshold(self):
        assert decide(self._result(), auto_approval_enabled=True, threshold=100) == Decision.APPROVE

    def test_below_threshold_reviews(self):
        result = self._result(verdict=False)
        assert result.score == 50
        assert decide(result, auto_approval_enabled=True, threshold=80) == Decision.REVIEW

    def test_pending_judgement_reviews(self):
        result = self._result(verdict=None)
        assert result.pending_judgement is True
        assert decide(result, auto_approval_enabled=True, threshold=0) == Decision.REVIEW

    def test_ai_deny_blocks_approval(self):
        result = self._result()
        assert decide(result, auto_approval_enabled=True, threshold=80, ai_recommendation="deny") == Decision.REVIEW

    def test_auto_deny_requires_flag_and_low_score(self):
        result = self._result(verdict=False)
        kwargs = {"auto_approval_enabled": True, "threshold": 80, "ai_recommendation": "deny"}
        assert decide(result, **kwargs) == Decision.REVIEW
        assert decide(result, auto_deny_enabled=True, **kwargs) == Decision.DENY


class TestFingerprint:
    def test_key_order_does_not_matter(self):
        assert assessment_fingerprint({"a": 1, "b": [1, 2]}) == assessment_fingerprint({"b": [1, 2], "a": 1})

    def test_changed_input_changes_fingerprint(self):
        assert assessment_fingerprint({"answers": {"q": "yes"}}) != assessment_fingerprint({"answers": {"q": "no"}})
