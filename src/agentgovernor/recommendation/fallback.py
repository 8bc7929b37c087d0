"""Deterministic stand-in for the live recommendation provider."""

from __future__ import annotations

from ..policy import Policy
from ..risk import score_risk
from ..types import ActionProposal, AuditSummary, Decision, Recommendation
from .base import Fallback, FallbackReason

DENY_THRESHOLD = 80
CONFIRM_THRESHOLD = 55

FALLBACK_EXPLANATION = (
    "Mock judge used (live provider unavailable). "
    "Decision based on deterministic risk scoring."
)


def fallback_recommendation(proposal: ActionProposal, policy: Policy) -> Recommendation:
    """Pure function of (proposal, policy); spend context is deliberately ignored."""
    risk_score = score_risk(proposal, policy)
    if risk_score >= DENY_THRESHOLD:
        decision = Decision.DENY
    elif risk_score >= CONFIRM_THRESHOLD:
        decision = Decision.REQUIRE_CONFIRMATION
    else:
        decision = Decision.APPROVE
    return Recommendation(
        decision=decision,
        risk_factors=(f"Mock risk score {risk_score}", f"Action: {proposal.action_type.value}"),
        explanation=FALLBACK_EXPLANATION,
    )


class MockRecommendationProvider:
    """Provider that always answers with the deterministic fallback."""

    def __init__(self, reason: FallbackReason = FallbackReason.MOCK_ENABLED) -> None:
        self.reason = reason

    def recommend(
        self, proposal: ActionProposal, policy: Policy, summary: AuditSummary
    ) -> Fallback:
        return Fallback(recommendation=fallback_recommendation(proposal, policy), reason=self.reason)
