"""MatchScorer Protocol: the testable abstraction for AI answer assessment.

The scorer only judges ``question`` requirements: each answer is compared
with the owner's qualification criteria. Skills, experience, risk level and
passport are evaluated in-process by ``sailsmart.domain.matching``.

Implementations:
- AnthropicMatchScorer: production, Claude via the anthropic SDK
- ScorerFake: scenario-based test double (sailsmart.agent.scorer_fake)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import anthropic
import structlog

from sailsmart.agent.llm_helpers import _parse_json_response
from sailsmart.core.config import get_settings
from sailsmart.core.exceptions import (
    RateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from sailsmart.domain.matching import EXPERIENCE_LEVELS, Decision

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QuestionPrompt:
    requirement_id: str
    question_text: str
    qualification_criteria: str
    weight: int
    answer_text: str | None


@dataclass(frozen=True)
class AssessmentRequest:
    """Everything the scorer needs to judge one registration's answers."""

    registration_id: str
    crew_name: str
    crew_experience_level: int | None
    crew_skills: list[str]
    crew_risk_levels: list[str]
    journey_name: str
    leg_name: str
    leg_skills: list[str]
    leg_min_experience_level: int | None
    leg_risk_level: str | None
    questions: list[QuestionPrompt] = field(default_factory=list)


@dataclass
class AssessmentVerdict:
    """Scorer output: per-question verdicts plus an overall opinion."""

    question_verdicts: dict[str, bool]
    reasoning: str
    recommendation: Decision


@runtime_checkable
class MatchScorer(Protocol):
    """Protocol for AI judgement of registration answers.

    Implementations raise ``RateLimitedError``, ``UpstreamTimeoutError`` or
    ``UpstreamUnavailableError``; callers surface these without retrying.
    """

    async def assess(self, request: AssessmentRequest) -> AssessmentVerdict:
        """Judge each question answer against its qualification criteria.

        Args:
            request: Crew profile, leg terms and the question/answer pairs

        Returns:
            AssessmentVerdict with a verdict for every question in the request
        """
        ...


_SYSTEM_PROMPT = (
    "You are an expert sailing crew matching assistant. You assess whether a crew "
    "member's answers to a boat owner's questions satisfy the owner's qualification "
    "criteria. Be thorough and fair. Respond with ONLY a JSON object, no additional text."
)


def build_assessment_prompt(request: AssessmentRequest) -> str:
    """Render the user message sent to the model."""

    def level(value: int | None) -> str:
        return f"{value} ({EXPERIENCE_LEVELS[value]})" if value in EXPERIENCE_LEVELS else "Not specified"

    qa_lines = []
    for idx, q in enumerate(request.questions, start=1):
        qa_lines.append(
            f"Q{idx} [id={q.requirement_id}] (Weight: {q.weight}/10): {q.question_text}\n"
            f"Criteria: {q.qualification_criteria}\n"
            f"A{idx}: {q.answer_text or 'Not answered'}"
        )

    return (
        "Crew Member Profile:\n"
        f"- Name: {request.crew_name}\n"
        f"- Experience Level: {level(request.crew_experience_level)}\n"
        f"- Skills: {', '.join(request.crew_skills) or 'None listed'}\n"
        f"- Risk Tolerance: {', '.join(request.crew_risk_levels) or 'Not specified'}\n\n"
        "Journey Requirements:\n"
        f"- Journey: {request.journey_name}\n"
        f"- Leg: {request.leg_name}\n"
        f"- Required Skills: {', '.join(request.leg_skills) or 'None specified'}\n"
        f"- Required Experience Level: {level(request.leg_min_experience_level)}\n"
        f"- Risk Level: {request.leg_risk_level or 'Not specified'}\n\n"
        "Custom Questions & Answers:\n"
        + ("\n\n".join(qa_lines) or "No custom questions")
        + "\n\nRespond with a JSON object with exactly this structure:\n"
        "{\n"
        '  "questions": [{"id": "<question id>", "satisfied": <true|false>}],\n'
        '  "reasoning": "<overall assessment>",\n'
        '  "recommendation": "<approve|deny|review>"\n'
        "}"
    )


def parse_verdict(content: str, request: AssessmentRequest) -> AssessmentVerdict:
    """Parse the model's JSON into a verdict.

    Questions the model did not mention are treated as not satisfied.

    Raises:
        ValueError: On missing or malformed fields
    """
    data = _parse_json_response(content)

    judged = {}
    for item in data.get("questions") or []:
        if isinstance(item, dict) and "id" in item:
            judged[str(item["id"])] = bool(item.get("satisfied"))

    try:
        recommendation = Decision(str(data.get("recommendation", "review")).lower())
    except ValueError:
        raise ValueError(f"Invalid recommendation: {data.get('recommendation')!r}")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        raise ValueError("Missing reasoning")

    return AssessmentVerdict(
        question_verdicts={q.requirement_id: judged.get(q.requirement_id, False) for q in request.questions},
        reasoning=reasoning.strip(),
        recommendation=recommendation,
    )


class AnthropicMatchScorer:
    """Production scorer backed by Claude.

    One request per assessment under ``asyncio.wait_for``; failures are
    mapped to the API error taxonomy and never retried here.
    """

    def __init__(self, client: anthropic.AsyncAnthropic | None = None):
        settings = get_settings()
        self._client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self._model = settings.assessment_model
        self._max_tokens = settings.assessment_max_tokens
        self._timeout = settings.assessment_timeout_seconds

    async def assess(self, request: AssessmentRequest) -> AssessmentVerdict:
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    system=_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": build_assessment_prompt(request)}],
                ),
                timeout=self._timeout,
            )
        except (TimeoutError, anthropic.APITimeoutError):
            logger.warning("assessment_ai_timeout", registration_id=request.registration_id, timeout=self._timeout)
            raise UpstreamTimeoutError("AI assessment timed out")
        except anthropic.RateLimitError as exc:
            logger.warning("assessment_ai_rate_limited", registration_id=request.registration_id)
            retry_after = exc.response.headers.get("retry-after") if exc.response is not None else None
            raise RateLimitedError(
                "AI provider rate limit reached",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        except anthropic.APIError as exc:
            logger.warning(
                "assessment_ai_unavailable",
                registration_id=request.registration_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamUnavailableError("AI provider unavailable")

        text = response.content[0].text if response.content else ""
        try:
            verdict = parse_verdict(text, request)
        except ValueError as exc:
            logger.warning("assessment_ai_response_invalid", registration_id=request.registration_id, error=str(exc))
            raise UpstreamUnavailableError("AI provider returned an invalid response")

        logger.info(
            "assessment_ai_completed",
            registration_id=request.registration_id,
            questions=len(request.questions),
            recommendation=verdict.recommendation.value,
        )
        return verdict
