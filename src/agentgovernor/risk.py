"""Heuristic risk scoring for action proposals.

The weights and thresholds here are tuned separately from the pass/fail rules
in ``evaluator``; a proposal may score high with no policy hit and vice versa.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .policy import Policy
from .types import (
    ActionProposal,
    ApiCallProposal,
    DeployProposal,
    SwapProposal,
    TransferProposal,
)

BASE_RISK = 5
MIN_RISK = 0
MAX_RISK = 100

HIGH_VOLATILITY = Decimal("0.7")
LARGE_DIFF_FILES = 30
SPEND_RATIO_WARN = Decimal("0.7")


def score_risk(
    proposal: ActionProposal,
    policy: Policy,
    daily_spend_usdc: Decimal | None = None,
) -> int:
    """Return an integer risk score in [0, 100]."""
    risk = Decimal(BASE_RISK)

    if isinstance(proposal, TransferProposal):
        amount = proposal.params.amount_usdc
        recipient = proposal.params.to
        if amount > policy.max_single_transfer_usdc:
            risk += 25
        if amount > policy.max_daily_spend_usdc:
            risk += 15
        if recipient in policy.denylist_recipients:
            risk += 50
        if policy.allowlist_recipients and recipient not in policy.allowlist_recipients:
            risk += 15

    elif isinstance(proposal, SwapProposal):
        market = proposal.context.market
        liquidity = market.liquidity_usdc if market is not None else Decimal(0)
        volatility = market.volatility if market is not None else Decimal(0)
        if proposal.params.slippage_bps > policy.swap_max_slippage_bps:
            risk += 20
        if liquidity < policy.swap_min_liquidity_usdc:
            risk += 20
        if volatility > HIGH_VOLATILITY:
            risk += 15

    elif isinstance(proposal, DeployProposal):
        repo = proposal.context.repo
        tests_passing = repo.tests_passing if repo is not None else False
        files_changed = repo.diff_stat.files_changed if repo is not None else 0
        if not tests_passing:
            risk += 25
        if files_changed > LARGE_DIFF_FILES:
            risk += 10

    elif isinstance(proposal, ApiCallProposal):
        api = proposal.context.api
        if api is not None and api.contains_pii:
            risk += 30
        if api is not None and api.sensitivity == "high":
            risk += 15

    if daily_spend_usdc is not None:
        ratio = daily_spend_usdc / max(policy.max_daily_spend_usdc, Decimal(1))
        if ratio > 1:
            risk += 25
        elif ratio > SPEND_RATIO_WARN:
            risk += 10

    rounded = int(risk.to_integral_value(rounding=ROUND_HALF_UP))
    return max(MIN_RISK, min(MAX_RISK, rounded))
