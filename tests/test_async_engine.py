from __future__ import annotations

import asyncio
from decimal import Decimal

from agentgovernor.async_engine import AsyncGovernor
from agentgovernor.engine import Governor
from agentgovernor.ledger.sqlite import SQLiteAuditLedger
from agentgovernor.recommendation import MockRecommendationProvider
from agentgovernor.types import Decision


def _payload(proposal_id: str, amount: int) -> dict[str, object]:
    return {
        "id": proposal_id,
        "timestamp": "2026-01-25T12:00:00Z",
        "agentId": "agent-async",
        "actionType": "TRANSFER",
        "intent": "Async transfer",
        "params": {"amountUSDC": amount, "to": "0xSAFE_ALLOWLIST_2"},
    }


def test_async_evaluate_and_queries(ledger: SQLiteAuditLedger) -> None:
    async_governor = AsyncGovernor(Governor(ledger=ledger, provider=MockRecommendationProvider()))

    async def run() -> None:
        outcome = await async_governor.evaluate_proposal(_payload("p-1", 10))
        assert outcome.decision.decision is Decision.APPROVE
        assert outcome.used_fallback is True

        entry = await async_governor.get_audit(outcome.audit_id)
        assert entry is not None
        assert entry.proposal_id == "p-1"
        assert [item.id for item in await async_governor.list_audit()] == [1]
        assert await async_governor.daily_spend() == Decimal(10)
        assert (await async_governor.audit_summary()).total == 1
        assert (await async_governor.verify_chain()).valid is True
        await async_governor.close()

    asyncio.run(run())
    assert ledger.is_open is False


def test_concurrent_async_evaluations_keep_chain_valid(ledger: SQLiteAuditLedger) -> None:
    async_governor = AsyncGovernor(Governor(ledger=ledger, provider=MockRecommendationProvider()))

    async def run() -> list[int]:
        outcomes = await asyncio.gather(
            *(async_governor.evaluate_proposal(_payload(f"p-{n}", 1)) for n in range(10))
        )
        return [outcome.audit_id for outcome in outcomes]

    audit_ids = asyncio.run(run())

    assert sorted(audit_ids) == list(range(1, 11))
    result = ledger.verify()
    assert result.valid is True
    assert result.checked == 10
