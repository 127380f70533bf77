"""ScorerFake: Scenario-based test double for the MatchScorer protocol.

Provides deterministic, instant responses for named scenarios:
- all_satisfied: every answer meets its criteria, recommends approve
- none_satisfied: no answer meets its criteria, recommends deny
- mixed: odd-numbered questions satisfied, recommends review
- timeout / rate_limited / unavailable: raise the mapped upstream error
"""

from sailsmart.agent.scorer import AssessmentRequest, AssessmentVerdict
from sailsmart.core.exceptions import (
    RateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from sailsmart.domain.matching import Decision


class ScorerFake:
    """Scenario-based test double for MatchScorer.

    Records every request in ``calls`` so tests can assert the scorer was
    (or was not) consulted.
    """

    VALID_SCENARIOS = {"all_satisfied", "none_satisfied", "mixed", "timeout", "rate_limited", "unavailable"}

    def __init__(self, scenario: str = "all_satisfied"):
        """Initialize ScorerFake with a named scenario.

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}")
        self.scenario = scenario
        self.calls: list[AssessmentRequest] = []

    async def assess(self, request: AssessmentRequest) -> AssessmentVerdict:
        self.calls.append(request)

        if self.scenario == "timeout":
            raise UpstreamTimeoutError("AI assessment timed out")
        if self.scenario == "rate_limited":
            raise RateLimitedError("AI provider rate limit reached", retry_after=60)
        if self.scenario == "unavailable":
            raise UpstreamUnavailableError("AI provider unavailable")

        if self.scenario == "all_satisfied":
            verdicts = {q.requirement_id: True for q in request.questions}
            return AssessmentVerdict(verdicts, "Answers show relevant offshore experience.", Decision.APPROVE)

        if self.scenario == "none_satisfied":
            verdicts = {q.requirement_id: False for q in request.questions}
            return AssessmentVerdict(verdicts, "Answers do not address the owner's criteria.", Decision.DENY)

        verdicts = {q.requirement_id: idx % 2 == 0 for idx, q in enumerate(request.questions)}
        return AssessmentVerdict(verdicts, "Some answers meet the criteria; owner should review.", Decision.REVIEW)
