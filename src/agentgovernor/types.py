"""Typed models for Agent Governor."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Mapping, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .errors import ProposalValidationError

GENESIS_HASH = "GENESIS"


class ActionType(str, Enum):
    """Kinds of action an agent may propose."""

    TRANSFER = "TRANSFER"
    SWAP = "SWAP"
    DEPLOY_SIM = "DEPLOY_SIM"
    API_CALL = "API_CALL"


class Decision(str, Enum):
    """Outcome of governing a proposal."""

    APPROVE = "APPROVE"
    DENY = "DENY"
    REQUIRE_CONFIRMATION = "REQUIRE_CONFIRMATION"


class Severity(str, Enum):
    """Severity carried by a policy hit."""

    DENY = "DENY"
    CONFIRM = "CONFIRM"


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# -------- Params (one variant per action type) --------


class TransferParams(_Frozen):
    amount_usdc: Decimal = Field(
        default=Decimal(0), validation_alias=_alias("amount_usdc", "amountUSDC", "amount")
    )
    to: str = ""


class SwapParams(_Frozen):
    slippage_bps: int = Field(default=0, validation_alias=_alias("slippage_bps", "slippageBps"))
    amount_usdc: Decimal = Field(
        default=Decimal(0), validation_alias=_alias("amount_usdc", "amountUSDC", "amount")
    )
    pair: str | None = None


class DeployParams(_Frozen):
    branch: str | None = None


class ApiCallParams(_Frozen):
    endpoint: str | None = None
    method: str | None = None
    payload_size: int = Field(default=0, validation_alias=_alias("payload_size", "payloadSize"))


# -------- Context sub-records --------


class MarketContext(_Frozen):
    liquidity_usdc: Decimal = Field(
        default=Decimal(0), validation_alias=_alias("liquidity_usdc", "liquidityUSDC")
    )
    volatility: Decimal = Decimal(0)
    spread_bps: int = Field(default=0, validation_alias=_alias("spread_bps", "spreadBps"))


class WalletContext(_Frozen):
    balance_usdc: Decimal = Field(
        default=Decimal(0), validation_alias=_alias("balance_usdc", "balanceUSDC")
    )


class DiffStat(_Frozen):
    files_changed: int = Field(default=0, validation_alias=_alias("files_changed", "filesChanged"))
    insertions: int = 0
    deletions: int = 0


class RepoContext(_Frozen):
    tests_passing: bool = Field(
        default=False, validation_alias=_alias("tests_passing", "testsPassing")
    )
    diff_stat: DiffStat = Field(
        default_factory=DiffStat, validation_alias=_alias("diff_stat", "diffStat")
    )


class ApiContext(_Frozen):
    contains_pii: bool = Field(default=False, validation_alias=_alias("contains_pii", "containsPII"))
    sensitivity: str = ""


class ProposalContext(_Frozen):
    market: MarketContext | None = None
    wallet: WalletContext | None = None
    repo: RepoContext | None = None
    api: ApiContext | None = None


# -------- Proposals --------


_ACTION_TYPE_ALIAS = _alias("action_type", "actionType")


class _ProposalBase(_Frozen):
    id: str
    timestamp: datetime
    agent_id: str = Field(validation_alias=_alias("agent_id", "agentId"))
    action_type: ActionType
    intent: str
    context: ProposalContext = Field(default_factory=ProposalContext)

    @field_validator("action_type")
    @classmethod
    def _matches_variant(cls, value: ActionType) -> ActionType:
        expected = cls.model_fields["action_type"].default
        if value is not expected:
            raise ValueError(f"action_type must be {expected.value}")
        return value

    @field_validator("id", "agent_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("timestamp")
    @classmethod
    def _timestamp_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("timestamp must be timezone-aware")
        return value


class TransferProposal(_ProposalBase):
    action_type: ActionType = Field(default=ActionType.TRANSFER, validation_alias=_ACTION_TYPE_ALIAS)
    params: TransferParams = Field(default_factory=TransferParams)


class SwapProposal(_ProposalBase):
    action_type: ActionType = Field(default=ActionType.SWAP, validation_alias=_ACTION_TYPE_ALIAS)
    params: SwapParams = Field(default_factory=SwapParams)


class DeployProposal(_ProposalBase):
    action_type: ActionType = Field(default=ActionType.DEPLOY_SIM, validation_alias=_ACTION_TYPE_ALIAS)
    params: DeployParams = Field(default_factory=DeployParams)


class ApiCallProposal(_ProposalBase):
    action_type: ActionType = Field(default=ActionType.API_CALL, validation_alias=_ACTION_TYPE_ALIAS)
    params: ApiCallParams = Field(default_factory=ApiCallParams)


def _proposal_tag(value: Any) -> str | None:
    if isinstance(value, Mapping):
        raw = value.get("action_type", value.get("actionType"))
    else:
        raw = getattr(value, "action_type", None)
    if isinstance(raw, ActionType):
        return raw.value
    return raw if isinstance(raw, str) else None


ActionProposal = Annotated[
    Union[
        Annotated[TransferProposal, Tag(ActionType.TRANSFER.value)],
        Annotated[SwapProposal, Tag(ActionType.SWAP.value)],
        Annotated[DeployProposal, Tag(ActionType.DEPLOY_SIM.value)],
        Annotated[ApiCallProposal, Tag(ActionType.API_CALL.value)],
    ],
    Discriminator(_proposal_tag),
]

_PROPOSAL_ADAPTER: TypeAdapter[Any] = TypeAdapter(ActionProposal)


def parse_proposal(data: Mapping[str, Any]) -> ActionProposal:
    """Validate a raw mapping into the proposal variant for its action type."""
    if not isinstance(data, Mapping):
        raise ProposalValidationError("proposal must be an object")
    try:
        return _PROPOSAL_ADAPTER.validate_python(dict(data))
    except ValidationError as exc:
        raise ProposalValidationError(
            f"Invalid proposal payload: {exc.error_count()} error(s)"
        ) from exc


# -------- Policy evaluation --------


class PolicyHit(_Frozen):
    rule_id: str
    message: str
    severity: Severity


class PolicyEvaluation(_Frozen):
    hits: tuple[PolicyHit, ...] = ()
    daily_spend_usdc: Decimal = Decimal(0)

    def by_severity(self, severity: Severity) -> tuple[PolicyHit, ...]:
        return tuple(hit for hit in self.hits if hit.severity is severity)


# -------- Recommendation and final decision --------


class Recommendation(_Frozen):
    decision: Decision
    risk_factors: tuple[str, ...] = ()
    explanation: str


class GovernorDecision(_Frozen):
    """The final, caller-visible verdict for one proposal."""

    proposal_id: str = Field(validation_alias=_alias("proposal_id", "proposalId"))
    decision: Decision
    risk_score: int = Field(ge=0, le=100, validation_alias=_alias("risk_score", "riskScore"))
    policy_hits: tuple[str, ...] = Field(
        default=(), validation_alias=_alias("policy_hits", "policyHits")
    )
    explanation: str
    required_edits: tuple[str, ...] | None = Field(
        default=None, validation_alias=_alias("required_edits", "requiredEdits")
    )
    safe_alternative: str | None = Field(
        default=None, validation_alias=_alias("safe_alternative", "safeAlternative")
    )


class EvaluationOutcome(_Frozen):
    decision: GovernorDecision
    audit_id: int
    used_fallback: bool = False


# -------- Audit ledger --------


class AuditEntry(_Frozen):
    """A persisted ledger row. Hash fields are None only for pre-hashing rows."""

    id: int
    proposal_id: str
    created_at: datetime
    decision: Decision
    proposal: ActionProposal
    decision_payload: GovernorDecision
    latency_ms: int
    raw_provider_output: str | None = None
    prev_hash: str | None = None
    entry_hash: str | None = None


class RecentActivity(_Frozen):
    proposal_id: str
    decision: Decision
    created_at: datetime


class AuditSummary(_Frozen):
    total: int
    counts: dict[Decision, int] = Field(default_factory=dict)
    recent: tuple[RecentActivity, ...] = ()


class ChainVerification(_Frozen):
    """Result of walking the hash chain.

    On success ``tail_hash`` is the last checked entry's hash (``GENESIS`` for an
    empty ledger). On failure ``first_invalid_audit_id`` and ``reason`` are set.
    """

    valid: bool
    checked: int
    first_invalid_audit_id: int | None = None
    reason: str | None = None
    tail_hash: str | None = None
