"""Safety policy model for Agent Governor."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_serializer

from .errors import PolicyValidationError


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class Policy(BaseModel):
    """Numeric and structural limits used to judge proposals.

    Instances are immutable; an admin update replaces the whole snapshot.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_daily_spend_usdc: Decimal = Field(
        ge=0, validation_alias=_alias("max_daily_spend_usdc", "maxDailySpendUSDC")
    )
    max_single_transfer_usdc: Decimal = Field(
        ge=0, validation_alias=_alias("max_single_transfer_usdc", "maxSingleTransferUSDC")
    )
    allowlist_recipients: tuple[str, ...] = Field(
        validation_alias=_alias("allowlist_recipients", "allowlistRecipients")
    )
    denylist_recipients: tuple[str, ...] = Field(
        validation_alias=_alias("denylist_recipients", "denylistRecipients")
    )
    swap_max_slippage_bps: int = Field(
        ge=0, validation_alias=_alias("swap_max_slippage_bps", "swapMaxSlippageBps")
    )
    swap_min_liquidity_usdc: Decimal = Field(
        ge=0, validation_alias=_alias("swap_min_liquidity_usdc", "swapMinLiquidityUSDC")
    )
    deploy_requires_tests_passing: bool = Field(
        validation_alias=_alias("deploy_requires_tests_passing", "deployRequiresTestsPassing")
    )
    api_deny_pii_exfiltration: bool = Field(
        validation_alias=_alias("api_deny_pii_exfiltration", "apiDenyPIIExfiltration")
    )

    @field_serializer(
        "max_daily_spend_usdc",
        "max_single_transfer_usdc",
        "swap_min_liquidity_usdc",
        when_used="json",
    )
    def _amount_as_number(self, value: Decimal) -> int | float:
        if value == value.to_integral_value():
            return int(value)
        return float(value)


DEFAULT_POLICY = Policy(
    max_daily_spend_usdc=Decimal(50),
    max_single_transfer_usdc=Decimal(25),
    allowlist_recipients=("0xSAFE_ALLOWLIST_1", "0xSAFE_ALLOWLIST_2"),
    denylist_recipients=("0xDENY_1", "0xDENY_2"),
    swap_max_slippage_bps=50,
    swap_min_liquidity_usdc=Decimal(5000),
    deploy_requires_tests_passing=True,
    api_deny_pii_exfiltration=True,
)


def validate_policy(data: Policy | Mapping[str, Any]) -> Policy:
    """Return a validated Policy or raise PolicyValidationError."""
    if isinstance(data, Policy):
        return data
    if not isinstance(data, Mapping):
        raise PolicyValidationError("policy must be an object")
    try:
        return Policy.model_validate(dict(data))
    except ValidationError as exc:
        raise PolicyValidationError(
            f"Invalid policy payload: {exc.error_count()} error(s)"
        ) from exc
