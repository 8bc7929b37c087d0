"""Deterministic policy rules for action proposals.

Rules run in a fixed order per action type so the resulting hit list is
reproducible for identical inputs. Evaluation never performs I/O.
"""

from __future__ import annotations

from decimal import Decimal

from . import rules
from .policy import Policy
from .types import (
    ActionProposal,
    ApiCallProposal,
    DeployProposal,
    PolicyEvaluation,
    PolicyHit,
    Severity,
    SwapProposal,
    TransferProposal,
)


def format_amount(value: Decimal | int) -> str:
    """Render a number without exponent or trailing zeros."""
    if isinstance(value, int):
        return str(value)
    if value == 0:
        return "0"
    return f"{value.normalize():f}"


def evaluate_policy(
    proposal: ActionProposal,
    policy: Policy,
    daily_spend_usdc: Decimal = Decimal(0),
) -> PolicyEvaluation:
    """Return the ordered policy hits for ``proposal`` under ``policy``."""
    hits: list[PolicyHit] = []
    if isinstance(proposal, TransferProposal):
        _transfer_rules(proposal, policy, daily_spend_usdc, hits)
    elif isinstance(proposal, SwapProposal):
        _swap_rules(proposal, policy, hits)
    elif isinstance(proposal, DeployProposal):
        _deploy_rules(proposal, policy, hits)
    elif isinstance(proposal, ApiCallProposal):
        _api_call_rules(proposal, policy, hits)
    return PolicyEvaluation(hits=tuple(hits), daily_spend_usdc=daily_spend_usdc)


def _deny(hits: list[PolicyHit], rule_id: str, message: str) -> None:
    hits.append(PolicyHit(rule_id=rule_id, message=message, severity=Severity.DENY))


def _confirm(hits: list[PolicyHit], rule_id: str, message: str) -> None:
    hits.append(PolicyHit(rule_id=rule_id, message=message, severity=Severity.CONFIRM))


def _transfer_rules(
    proposal: TransferProposal,
    policy: Policy,
    daily_spend_usdc: Decimal,
    hits: list[PolicyHit],
) -> None:
    amount = proposal.params.amount_usdc
    recipient = proposal.params.to

    if amount > policy.max_single_transfer_usdc:
        _deny(
            hits,
            rules.MAX_SINGLE_TRANSFER,
            f"Transfer amount {format_amount(amount)} exceeds max single transfer "
            f"{format_amount(policy.max_single_transfer_usdc)}.",
        )

    projected = daily_spend_usdc + amount
    if projected > policy.max_daily_spend_usdc:
        _confirm(
            hits,
            rules.MAX_DAILY_SPEND,
            f"Daily spend {format_amount(projected)} exceeds max daily spend "
            f"{format_amount(policy.max_daily_spend_usdc)}.",
        )

    if recipient in policy.denylist_recipients:
        _deny(hits, rules.DENYLIST_RECIPIENTS, f"Recipient {recipient} is on the denylist.")

    if policy.allowlist_recipients and recipient not in policy.allowlist_recipients:
        _confirm(
            hits, rules.ALLOWLIST_RECIPIENTS, f"Recipient {recipient} is not on the allowlist."
        )


def _swap_rules(proposal: SwapProposal, policy: Policy, hits: list[PolicyHit]) -> None:
    slippage_bps = proposal.params.slippage_bps
    market = proposal.context.market
    liquidity = market.liquidity_usdc if market is not None else Decimal(0)

    if slippage_bps > policy.swap_max_slippage_bps:
        _confirm(
            hits,
            rules.SWAP_MAX_SLIPPAGE,
            f"Slippage {slippage_bps} bps exceeds max {policy.swap_max_slippage_bps} bps.",
        )

    if liquidity < policy.swap_min_liquidity_usdc:
        _deny(
            hits,
            rules.SWAP_MIN_LIQUIDITY,
            f"Liquidity {format_amount(liquidity)} below min "
            f"{format_amount(policy.swap_min_liquidity_usdc)}.",
        )


def _deploy_rules(proposal: DeployProposal, policy: Policy, hits: list[PolicyHit]) -> None:
    repo = proposal.context.repo
    tests_passing = repo.tests_passing if repo is not None else False
    if policy.deploy_requires_tests_passing and not tests_passing:
        _deny(
            hits,
            rules.DEPLOY_REQUIRES_TESTS_PASSING,
            "Tests are not passing for deploy simulation.",
        )


def _api_call_rules(proposal: ApiCallProposal, policy: Policy, hits: list[PolicyHit]) -> None:
    api = proposal.context.api
    contains_pii = api.contains_pii if api is not None else False
    if policy.api_deny_pii_exfiltration and contains_pii:
        _deny(
            hits,
            rules.API_DENY_PII_EXFILTRATION,
            "API call contains PII and policy forbids exfiltration.",
        )
