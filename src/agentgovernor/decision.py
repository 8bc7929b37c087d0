"""Compose the final governor decision from policy hits and a recommendation."""

from __future__ import annotations

from .evaluator import format_amount
from .policy import Policy
from .rules import REQUIRED_EDITS
from .types import (
    ActionProposal,
    ApiCallProposal,
    Decision,
    DeployProposal,
    GovernorDecision,
    PolicyEvaluation,
    PolicyHit,
    Recommendation,
    Severity,
    SwapProposal,
    TransferProposal,
)

_FALLBACK_RECIPIENT = "allowlisted_recipient"


def _policy_override(evaluation: PolicyEvaluation) -> tuple[Decision, tuple[PolicyHit, ...]] | None:
    deny_hits = evaluation.by_severity(Severity.DENY)
    if deny_hits:
        return Decision.DENY, deny_hits
    confirm_hits = evaluation.by_severity(Severity.CONFIRM)
    if confirm_hits:
        return Decision.REQUIRE_CONFIRMATION, confirm_hits
    return None


def derive_required_edits(evaluation: PolicyEvaluation) -> tuple[str, ...]:
    return tuple(REQUIRED_EDITS.get(hit.rule_id, hit.message) for hit in evaluation.hits)


def derive_safe_alternative(proposal: ActionProposal, policy: Policy) -> str | None:
    """Suggest a constructive variant of ``proposal`` that the policy would accept."""
    if isinstance(proposal, TransferProposal):
        safe_amount = min(policy.max_single_transfer_usdc, policy.max_daily_spend_usdc)
        recipient = (
            policy.allowlist_recipients[0] if policy.allowlist_recipients else _FALLBACK_RECIPIENT
        )
        return f"Propose a transfer of {format_amount(safe_amount)} USDC to {recipient}."
    if isinstance(proposal, SwapProposal):
        return (
            f"Use slippage <= {policy.swap_max_slippage_bps} bps and liquidity >= "
            f"{format_amount(policy.swap_min_liquidity_usdc)} USDC."
        )
    if isinstance(proposal, DeployProposal):
        return "Re-run tests and re-propose after they pass."
    if isinstance(proposal, ApiCallProposal):
        return "Send a redacted payload with no PII."
    return None


def compose_decision(
    proposal: ActionProposal,
    policy: Policy,
    evaluation: PolicyEvaluation,
    recommendation: Recommendation,
    risk_score: int,
) -> GovernorDecision:
    """Merge policy hits with the recommendation.

    Precedence, highest first: any DENY hit, then any CONFIRM hit, then the
    recommendation's own decision. ``policy_hits`` always lists every hit.
    """
    override = _policy_override(evaluation)
    if override is not None:
        final_decision, override_hits = override
        rule_ids = ", ".join(hit.rule_id for hit in override_hits)
        explanation = f"Policy override ({rule_ids}). {recommendation.explanation}"
    else:
        final_decision = recommendation.decision
        explanation = recommendation.explanation

    required_edits = derive_required_edits(evaluation) if evaluation.hits else None
    safe_alternative = (
        derive_safe_alternative(proposal, policy) if final_decision is not Decision.APPROVE else None
    )

    return GovernorDecision(
        proposal_id=proposal.id,
        decision=final_decision,
        risk_score=risk_score,
        policy_hits=tuple(hit.rule_id for hit in evaluation.hits),
        explanation=explanation,
        required_edits=required_edits,
        safe_alternative=safe_alternative,
    )
