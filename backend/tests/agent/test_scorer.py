"""Tests for the Anthropic-backed scorer: prompt, parsing and error mapping."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from sailsmart.agent.scorer import (
    AnthropicMatchScorer,
    AssessmentRequest,
    MatchScorer,
    QuestionPrompt,
    build_assessment_prompt,
    parse_verdict,
)
from sailsmart.agent.scorer_fake import ScorerFake
from sailsmart.core.exceptions import RateLimitedError, UpstreamTimeoutError, UpstreamUnavailableError
from sailsmart.domain.matching import Decision

pytestmark = pytest.mark.unit

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


@pytest.fixture
def assessment_request() -> AssessmentRequest:
    return AssessmentRequest(
        registration_id="reg-1",
        crew_name="Ada",
        crew_experience_level=3,
        crew_skills=["navigation"],
        crew_risk_levels=["Offshore"],
        journey_name="Atlantic Crossing",
        leg_name="Las Palmas to Mindelo",
        leg_skills=["navigation", "night_watch"],
        leg_min_experience_level=2,
        leg_risk_level="Offshore",
        questions=[
            QuestionPrompt("q-1", "Night watches?", "At least one overnight passage", 8, "Three overnight passages"),
            QuestionPrompt("q-2", "Seasickness?", "Manages seasickness", 3, None),
        ],
    )


def _client_returning(text: str) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[SimpleNamespace(text=text)]))
    return client


def _client_raising(exc: Exception) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=exc)
    return client


def test_prompt_lists_questions_and_profile(assessment_request):
    prompt = build_assessment_prompt(assessment_request)
    assert "[id=q-1]" in prompt
    assert "A2: Not answered" in prompt
    assert "Experience Level: 3 (Coastal Skipper)" in prompt
    assert '"recommendation"' in prompt


class TestParseVerdict:
    def test_full_verdict(self, assessment_request):
        content = json.dumps({
            "questions": [{"id": "q-1", "satisfied": True}, {"id": "q-2", "satisfied": False}],
            "reasoning": "Strong passage record.",
            "recommendation": "Approve",
        })
        verdict = parse_verdict(content, assessment_request)
        assert verdict.question_verdicts == {"q-1": True, "q-2": False}
        assert verdict.recommendation == Decision.APPROVE
        assert verdict.reasoning == "Strong passage record."

    def test_unmentioned_question_is_unsatisfied(self, assessment_request):
        content = '{"questions": [{"id": "q-1", "satisfied": true}], "reasoning": "ok", "recommendation": "review"}'
        verdict = parse_verdict(content, assessment_request)
        assert verdict.question_verdicts["q-2"] is False

    def test_unknown_recommendation_rejected(self, assessment_request):
        with pytest.raises(ValueError):
            parse_verdict('{"questions": [], "reasoning": "ok", "recommendation": "maybe"}', assessment_request)

    def test_missing_reasoning_rejected(self, assessment_request):
        with pytest.raises(ValueError):
            parse_verdict('{"questions": [], "recommendation": "review"}', assessment_request)


class TestAnthropicMatchScorer:
    def test_satisfies_protocol(self):
        assert isinstance(AnthropicMatchScorer(client=MagicMock()), MatchScorer)
        assert isinstance(ScorerFake(), MatchScorer)

    async def test_successful_assessment(self, assessment_request):
        client = _client_returning(
            '```json\n{"questions": [{"id": "q-1", "satisfied": true}], '
            '"reasoning": "Good fit.", "recommendation": "approve"}\n```'
        )
        verdict = await AnthropicMatchScorer(client=client).assess(assessment_request)

        assert verdict.question_verdicts == {"q-1": True, "q-2": False}
        assert verdict.recommendation == Decision.APPROVE
        client.messages.create.assert_awaited_once()

    async def test_timeout_maps_to_upstream_timeout(self, assessment_request):
        scorer = AnthropicMatchScorer(client=_client_raising(anthropic.APITimeoutError(request=_REQUEST)))
        with pytest.raises(UpstreamTimeoutError):
            await scorer.assess(assessment_request)

    async def test_rate_limit_carries_retry_after(self, assessment_request):
        response = httpx.Response(429, headers={"retry-after": "12"}, request=_REQUEST)
        exc = anthropic.RateLimitError("rate limited", response=response, body=None)
        scorer = AnthropicMatchScorer(client=_client_raising(exc))

        with pytest.raises(RateLimitedError) as exc_info:
            await scorer.assess(assessment_request)
        assert exc_info.value.retry_after == 12

    async def test_connection_error_maps_to_unavailable(self, assessment_request):
        scorer = AnthropicMatchScorer(client=_client_raising(anthropic.APIConnectionError(request=_REQUEST)))
        with pytest.raises(UpstreamUnavailableError):
            await scorer.assess(assessment_request)

    async def test_unparseable_response_maps_to_unavailable(self, assessment_request):
        scorer = AnthropicMatchScorer(client=_client_returning("I cannot help with that."))
        with pytest.raises(UpstreamUnavailableError):
            await scorer.assess(assessment_request)

    async def test_no_transparent_retry(self, assessment_request):
        client = _client_raising(anthropic.APIConnectionError(request=_REQUEST))
        with pytest.raises(UpstreamUnavailableError):
            await AnthropicMatchScorer(client=client).assess(assessment_request)
        assert client.messages.create.await_count == 1
