from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from agentgovernor import rules
from agentgovernor.decision import compose_decision, derive_safe_alternative
from agentgovernor.evaluator import evaluate_policy
from agentgovernor.policy import DEFAULT_POLICY
from agentgovernor.types import (
    ApiCallProposal,
    Decision,
    DeployProposal,
    PolicyEvaluation,
    PolicyHit,
    Recommendation,
    Severity,
    SwapProposal,
    TransferParams,
    TransferProposal,
)

NOW = datetime(2026, 1, 25, 12, 0, 0, tzinfo=timezone.utc)


def _transfer(amount: str, to: str = "0xSAFE_ALLOWLIST_1") -> TransferProposal:
    return TransferProposal(
        id="p-transfer",
        timestamp=NOW,
        agent_id="agent-1",
        intent="Compose test",
        params=TransferParams(amount_usdc=Decimal(amount), to=to),
    )


def _recommendation(decision: Decision, explanation: str = "Looks fine.") -> Recommendation:
    return Recommendation(decision=decision, risk_factors=("factor",), explanation=explanation)


def test_deny_hit_overrides_approve_recommendation() -> None:
    proposal = _transfer("35")
    evaluation = evaluate_policy(proposal, DEFAULT_POLICY, Decimal(0))

    decision = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.APPROVE), 30
    )

    assert decision.decision is Decision.DENY
    assert decision.policy_hits == (rules.MAX_SINGLE_TRANSFER,)
    assert decision.explanation == "Policy override (maxSingleTransferUSDC). Looks fine."
    assert decision.required_edits == ("Reduce transfer amount below the policy max.",)
    assert decision.safe_alternative == "Propose a transfer of 25 USDC to 0xSAFE_ALLOWLIST_1."
    assert decision.risk_score == 30
    assert decision.proposal_id == proposal.id


def test_deny_beats_confirm_and_lists_every_hit() -> None:
    proposal = _transfer("120", to="0xDENY_1")
    evaluation = evaluate_policy(proposal, DEFAULT_POLICY, Decimal(0))

    decision = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.APPROVE), 100
    )

    assert decision.decision is Decision.DENY
    assert decision.explanation.startswith(
        "Policy override (maxSingleTransferUSDC, denylistRecipients). "
    )
    assert decision.policy_hits == (
        rules.MAX_SINGLE_TRANSFER,
        rules.MAX_DAILY_SPEND,
        rules.DENYLIST_RECIPIENTS,
        rules.ALLOWLIST_RECIPIENTS,
    )
    assert decision.required_edits is not None
    assert len(decision.required_edits) == 4


def test_confirm_hit_overrides_deny_free_recommendation() -> None:
    proposal = _transfer("10")
    evaluation = evaluate_policy(proposal, DEFAULT_POLICY, Decimal(45))

    decision = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.APPROVE), 15
    )

    assert decision.decision is Decision.REQUIRE_CONFIRMATION
    assert decision.explanation == "Policy override (maxDailySpendUSDC). Looks fine."


def test_confirm_hit_outranks_deny_recommendation() -> None:
    proposal = _transfer("10")
    evaluation = evaluate_policy(proposal, DEFAULT_POLICY, Decimal(45))

    decision = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.DENY), 15
    )

    assert decision.decision is Decision.REQUIRE_CONFIRMATION


def test_no_hits_follows_recommendation() -> None:
    proposal = _transfer("10")
    evaluation = evaluate_policy(proposal, DEFAULT_POLICY, Decimal(0))

    approved = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.APPROVE), 5
    )
    denied = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.DENY, "No."), 5
    )

    assert approved.decision is Decision.APPROVE
    assert approved.explanation == "Looks fine."
    assert approved.required_edits is None
    assert approved.safe_alternative is None
    assert denied.decision is Decision.DENY
    assert denied.explanation == "No."
    assert denied.required_edits is None
    assert denied.safe_alternative is not None


def test_unknown_rule_falls_back_to_hit_message() -> None:
    proposal = _transfer("10")
    evaluation = PolicyEvaluation(
        hits=(PolicyHit(rule_id="customRule", message="Custom message.", severity=Severity.CONFIRM),)
    )

    decision = compose_decision(
        proposal, DEFAULT_POLICY, evaluation, _recommendation(Decision.APPROVE), 5
    )

    assert decision.required_edits == ("Custom message.",)


def test_safe_alternatives_per_action_type() -> None:
    swap = SwapProposal(id="s", timestamp=NOW, agent_id="a", intent="x")
    deploy = DeployProposal(id="d", timestamp=NOW, agent_id="a", intent="x")
    api = ApiCallProposal(id="c", timestamp=NOW, agent_id="a", intent="x")

    assert (
        derive_safe_alternative(swap, DEFAULT_POLICY)
        == "Use slippage <= 50 bps and liquidity >= 5000 USDC."
    )
    assert derive_safe_alternative(deploy, DEFAULT_POLICY) == (
        "Re-run tests and re-propose after they pass."
    )
    assert derive_safe_alternative(api, DEFAULT_POLICY) == "Send a redacted payload with no PII."


def test_safe_transfer_without_allowlist_uses_placeholder() -> None:
    policy = DEFAULT_POLICY.model_copy(
        update={"allowlist_recipients": (), "max_daily_spend_usdc": Decimal(20)}
    )

    assert derive_safe_alternative(_transfer("99"), policy) == (
        "Propose a transfer of 20 USDC to allowlisted_recipient."
    )
