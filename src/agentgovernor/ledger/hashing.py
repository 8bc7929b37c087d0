"""Chain hash computation for audit entries.

This is the single source of truth for ledger chain hashing; append, backfill
and verify all go through ``compute_entry_hash``.
"""

from __future__ import annotations

from .jcs import sha256_hex


def compute_entry_hash(
    *,
    proposal_id: str,
    created_at: str,
    decision: str,
    proposal_json: str,
    decision_json: str,
    latency_ms: int,
    raw_provider_output: str | None,
    prev_hash: str,
) -> str:
    """Return the SHA-256 hex digest binding every persisted field to ``prev_hash``."""
    return sha256_hex(
        {
            "proposal_id": proposal_id,
            "created_at": created_at,
            "decision": decision,
            "proposal_json": proposal_json,
            "decision_json": decision_json,
            "latency_ms": latency_ms,
            "raw_provider_output": raw_provider_output or "",
            "prev_hash": prev_hash,
        }
    )
