"""Stable rule identifiers emitted in policy hits."""

from __future__ import annotations

MAX_SINGLE_TRANSFER = "maxSingleTransferUSDC"
MAX_DAILY_SPEND = "maxDailySpendUSDC"
DENYLIST_RECIPIENTS = "denylistRecipients"
ALLOWLIST_RECIPIENTS = "allowlistRecipients"
SWAP_MAX_SLIPPAGE = "swapMaxSlippageBps"
SWAP_MIN_LIQUIDITY = "swapMinLiquidityUSDC"
DEPLOY_REQUIRES_TESTS_PASSING = "deployRequiresTestsPassing"
API_DENY_PII_EXFILTRATION = "apiDenyPIIExfiltration"

# Remediation text shown to the proposing agent, one per rule.
REQUIRED_EDITS: dict[str, str] = {
    MAX_SINGLE_TRANSFER: "Reduce transfer amount below the policy max.",
    MAX_DAILY_SPEND: "Wait for the daily spend window to reset or lower amount.",
    ALLOWLIST_RECIPIENTS: "Use an allowlisted recipient or update allowlist.",
    DENYLIST_RECIPIENTS: "Choose a recipient not on the denylist.",
    SWAP_MAX_SLIPPAGE: "Lower slippage tolerance.",
    SWAP_MIN_LIQUIDITY: "Select a pool with higher liquidity.",
    DEPLOY_REQUIRES_TESTS_PASSING: "Run and pass tests before deployment.",
    API_DENY_PII_EXFILTRATION: "Redact or tokenize PII before API calls.",
}
