"""Async facade over Governor for event-loop hosts.

Ledger I/O and the provider round trip are blocking, so each call runs in a
worker thread via ``asyncio.to_thread``. Appends stay serialized by the
ledger's own lock and write transaction.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from .engine import Governor
from .ledger.sqlite import DEFAULT_LIST_LIMIT, DEFAULT_VERIFY_LIMIT
from .policy import Policy
from .types import ActionProposal, AuditEntry, AuditSummary, ChainVerification, EvaluationOutcome


@dataclass(frozen=True, slots=True)
class AsyncGovernor:
    """Wraps a sync Governor to provide coroutine entry points.

    Usage:
        governor = Governor.from_settings()
        async_governor = AsyncGovernor(governor)
        outcome = await async_governor.evaluate_proposal(payload)
    """

    governor: Governor

    @property
    def policy(self) -> Policy:
        return self.governor.policy

    async def evaluate_proposal(
        self, proposal: ActionProposal | Mapping[str, Any]
    ) -> EvaluationOutcome:
        return await asyncio.to_thread(self.governor.evaluate_proposal, proposal)

    async def update_policy(self, policy: Policy | Mapping[str, Any]) -> Policy:
        return await asyncio.to_thread(self.governor.update_policy, policy)

    async def list_audit(self, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> list[AuditEntry]:
        return await asyncio.to_thread(self.governor.list_audit, limit, offset)

    async def get_audit(self, audit_id: int) -> AuditEntry | None:
        return await asyncio.to_thread(self.governor.get_audit, audit_id)

    async def verify_chain(self, limit: int = DEFAULT_VERIFY_LIMIT) -> ChainVerification:
        return await asyncio.to_thread(self.governor.verify_chain, limit)

    async def daily_spend(self, window_hours: float | None = None) -> Decimal:
        return await asyncio.to_thread(self.governor.daily_spend, window_hours)

    async def audit_summary(self, limit: int | None = None) -> AuditSummary:
        return await asyncio.to_thread(self.governor.audit_summary, limit)

    async def close(self) -> None:
        await asyncio.to_thread(self.governor.close)
