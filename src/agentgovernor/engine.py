"""Governor: sequences evaluation, scoring, recommendation, composition and audit."""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from types import TracebackType
from typing import Any, Callable, Mapping

from .config import GovernorSettings
from .decision import compose_decision
from .errors import GovernorError
from .evaluator import evaluate_policy
from .ledger.sqlite import DEFAULT_LIST_LIMIT, DEFAULT_VERIFY_LIMIT, SQLiteAuditLedger
from .policy import DEFAULT_POLICY, Policy
from .policy_store import PolicyStore
from .recommendation import (
    Fallback,
    FallbackReason,
    GeminiRecommendationProvider,
    RecommendationProvider,
    RecommendationResult,
    fallback_recommendation,
)
from .risk import score_risk
from .types import (
    ActionProposal,
    AuditEntry,
    AuditSummary,
    ChainVerification,
    EvaluationOutcome,
    parse_proposal,
)

DEFAULT_SPEND_WINDOW_HOURS: float = 24
DEFAULT_SUMMARY_LIMIT: int = 10

_logger = logging.getLogger(__name__)


class Governor:
    """Single entry point of the core: ``evaluate_proposal`` plus read-only queries.

    Only the final ledger append is serialized; the recommendation call happens
    before it. The daily-spend figure is read before evaluation and is not
    locked against concurrent commits, so two concurrent transfers may both be
    judged against the same spend snapshot.
    """

    def __init__(
        self,
        *,
        ledger: SQLiteAuditLedger,
        provider: RecommendationProvider,
        policy: Policy | PolicyStore = DEFAULT_POLICY,
        daily_spend_window_hours: float = DEFAULT_SPEND_WINDOW_HOURS,
        summary_limit: int = DEFAULT_SUMMARY_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ledger is None:
            raise ValueError("ledger is required")
        if provider is None:
            raise ValueError("provider is required")
        if daily_spend_window_hours <= 0:
            raise ValueError("daily_spend_window_hours must be positive")
        self.ledger = ledger
        self.provider = provider
        self._policy_source = policy
        self.daily_spend_window_hours = daily_spend_window_hours
        self.summary_limit = summary_limit
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: GovernorSettings | None = None) -> "Governor":
        """Wire a governor from configuration, open the ledger and backfill hashes."""
        settings = settings or GovernorSettings()
        ledger = SQLiteAuditLedger(settings.ledger_path).open()
        ledger.backfill()
        store = PolicyStore(settings.policy_path)
        store.load()
        provider = GeminiRecommendationProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            mock=settings.gemini_mock,
            timeout_seconds=settings.provider_timeout_seconds,
        )
        return cls(
            ledger=ledger,
            provider=provider,
            policy=store,
            daily_spend_window_hours=settings.daily_spend_window_hours,
            summary_limit=settings.summary_limit,
        )

    def close(self) -> None:
        self.ledger.close()

    def __enter__(self) -> "Governor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ----- policy -----

    @property
    def policy(self) -> Policy:
        source = self._policy_source
        if isinstance(source, PolicyStore):
            return source.current
        return source

    def update_policy(self, policy: Policy | Mapping[str, Any]) -> Policy:
        """Replace the active policy; only available when backed by a PolicyStore."""
        source = self._policy_source
        if not isinstance(source, PolicyStore):
            raise GovernorError("policy is fixed for this governor; no store configured")
        return source.save(policy)

    # ----- pipeline -----

    def evaluate_proposal(self, proposal: ActionProposal | Mapping[str, Any]) -> EvaluationOutcome:
        """Govern one proposal and record the decision in the audit ledger."""
        started = self._clock()
        if isinstance(proposal, Mapping):
            proposal = parse_proposal(proposal)
        policy = self.policy

        daily_spend = self.ledger.daily_spend(self.daily_spend_window_hours)
        evaluation = evaluate_policy(proposal, policy, daily_spend)
        risk_score = score_risk(proposal, policy, daily_spend)
        summary = self.ledger.summary(self.summary_limit)
        result = self._recommend(proposal, policy, summary)

        decision = compose_decision(
            proposal, policy, evaluation, result.recommendation, risk_score
        )
        latency_ms = max(0, int((self._clock() - started) * 1000))
        audit_id = self.ledger.append(proposal, decision, latency_ms, result.raw_text)
        _logger.info(
            "proposal %s -> %s (risk=%d, audit_id=%d)",
            proposal.id,
            decision.decision.value,
            risk_score,
            audit_id,
        )
        return EvaluationOutcome(
            decision=decision, audit_id=audit_id, used_fallback=result.used_fallback
        )

    def _recommend(
        self, proposal: ActionProposal, policy: Policy, summary: AuditSummary
    ) -> RecommendationResult:
        try:
            result = self.provider.recommend(proposal, policy, summary)
        except Exception:  # one-line justification: a misbehaving provider must not block the pipeline
            _logger.exception("recommendation provider raised; using fallback")
            return Fallback(
                recommendation=fallback_recommendation(proposal, policy),
                reason=FallbackReason.PROVIDER_ERROR,
            )
        if isinstance(result, Fallback):
            _logger.warning(
                "fallback recommendation used for proposal %s (%s)", proposal.id, result.reason.value
            )
        return result

    # ----- read-only queries -----

    def list_audit(self, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> list[AuditEntry]:
        return self.ledger.list(limit, offset)

    def get_audit(self, audit_id: int) -> AuditEntry | None:
        return self.ledger.get(audit_id)

    def verify_chain(self, limit: int = DEFAULT_VERIFY_LIMIT) -> ChainVerification:
        return self.ledger.verify(limit)

    def daily_spend(self, window_hours: float | None = None) -> Decimal:
        return self.ledger.daily_spend(window_hours or self.daily_spend_window_hours)

    def audit_summary(self, limit: int | None = None) -> AuditSummary:
        return self.ledger.summary(limit or self.summary_limit)
