"""Agent Governor public API."""

from .async_engine import AsyncGovernor
from .config import GovernorSettings
from .decision import compose_decision
from .engine import Governor
from .errors import GovernorError, PolicyValidationError, ProposalValidationError
from .evaluator import evaluate_policy
from .ledger import LedgerError, LedgerReadError, LedgerWriteError, SQLiteAuditLedger
from .policy import DEFAULT_POLICY, Policy, validate_policy
from .policy_store import PolicyStore
from .recommendation import (
    Fallback,
    FallbackReason,
    GeminiRecommendationProvider,
    MockRecommendationProvider,
    RecommendationProvider,
    Recommended,
)
from .risk import score_risk
from .types import (
    GENESIS_HASH,
    ActionProposal,
    ActionType,
    ApiCallProposal,
    AuditEntry,
    AuditSummary,
    ChainVerification,
    Decision,
    DeployProposal,
    EvaluationOutcome,
    GovernorDecision,
    PolicyEvaluation,
    PolicyHit,
    Recommendation,
    Severity,
    SwapProposal,
    TransferProposal,
    parse_proposal,
)

__all__ = (
    # Orchestration
    "Governor",
    "AsyncGovernor",
    "GovernorSettings",
    # Pipeline stages
    "evaluate_policy",
    "score_risk",
    "compose_decision",
    # Policy
    "Policy",
    "DEFAULT_POLICY",
    "PolicyStore",
    "validate_policy",
    # Recommendation
    "RecommendationProvider",
    "GeminiRecommendationProvider",
    "MockRecommendationProvider",
    "Recommended",
    "Fallback",
    "FallbackReason",
    # Ledger
    "SQLiteAuditLedger",
    "GENESIS_HASH",
    # Types
    "ActionType",
    "ActionProposal",
    "TransferProposal",
    "SwapProposal",
    "DeployProposal",
    "ApiCallProposal",
    "parse_proposal",
    "Decision",
    "Severity",
    "PolicyHit",
    "PolicyEvaluation",
    "Recommendation",
    "GovernorDecision",
    "EvaluationOutcome",
    "AuditEntry",
    "AuditSummary",
    "ChainVerification",
    # Errors
    "GovernorError",
    "ProposalValidationError",
    "PolicyValidationError",
    "LedgerError",
    "LedgerReadError",
    "LedgerWriteError",
)
