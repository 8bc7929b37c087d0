"""Hash-chained, append-only audit ledger backed by SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from types import TracebackType
from typing import Any, Callable, Iterator

from pydantic import ValidationError

from ..errors import (
    LedgerError,
    LedgerReadError,
    LedgerWriteError,
    ProposalValidationError,
    storage_error_message,
)
from ..types import (
    GENESIS_HASH,
    ActionProposal,
    AuditEntry,
    AuditSummary,
    ChainVerification,
    Decision,
    GovernorDecision,
    RecentActivity,
    TransferProposal,
    parse_proposal,
)
from .hashing import compute_entry_hash
from .jcs import CanonicalizationError, canonical_dumps, format_timestamp

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 1000
DEFAULT_VERIFY_LIMIT = 1000
MAX_VERIFY_LIMIT = 10_000
DEFAULT_SPEND_WINDOW_HOURS = 24

REASON_MISSING_HASH = "Missing hash fields."
REASON_PREV_MISMATCH = "prevHash mismatch."
REASON_ENTRY_MISMATCH = "entryHash mismatch."

_COLUMNS = (
    "id, proposal_id, created_at, decision, proposal_json, decision_json, "
    "latency_ms, raw_provider_output, prev_hash, entry_hash"
)
_HASH_COLUMNS = ("prev_hash", "entry_hash")

_logger = logging.getLogger(__name__)


class SQLiteAuditLedger:
    """Append-only audit ledger whose rows form a SHA-256 hash chain.

    The "read tail hash, compute, insert" step of ``append`` is serialized by a
    process-local lock and a ``BEGIN IMMEDIATE`` write transaction, so two
    appends can never chain onto the same ``prev_hash``. Reads use their own
    connections and only observe committed rows.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._write_lock = threading.Lock()
        self._opened = False

    # ----- lifecycle -----

    def open(self) -> "SQLiteAuditLedger":
        """Create or migrate the store. Safe to call more than once."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._connection() as conn:
                _ensure_schema(conn)
        except (OSError, sqlite3.Error) as exc:
            raise LedgerError(storage_error_message(exc)) from exc
        self._opened = True
        return self

    def close(self) -> None:
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def __enter__(self) -> "SQLiteAuditLedger":
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ----- writes -----

    def append(
        self,
        proposal: ActionProposal,
        decision: GovernorDecision,
        latency_ms: int,
        raw_provider_output: str | None = None,
    ) -> int:
        """Persist a (proposal, decision) pair as the new chain tail and return its id."""
        self._require_open()
        if latency_ms < 0:
            raise ValueError("latency_ms must be non-negative")
        try:
            proposal_json = canonical_dumps(proposal.model_dump(mode="python"))
            decision_json = canonical_dumps(decision.model_dump(mode="python", exclude_none=True))
        except CanonicalizationError as exc:
            raise LedgerWriteError(str(exc)) from exc

        with self._write_lock:
            try:
                with self._transaction() as conn:
                    prev_hash = _read_tail_hash(conn)
                    if prev_hash is None:
                        # Unhashed legacy tail: chain it first so the new row links correctly.
                        _backfill_rows(conn)
                        prev_hash = _read_tail_hash(conn) or GENESIS_HASH
                    created_at = format_timestamp(self._now())
                    entry_hash = compute_entry_hash(
                        proposal_id=proposal.id,
                        created_at=created_at,
                        decision=decision.decision.value,
                        proposal_json=proposal_json,
                        decision_json=decision_json,
                        latency_ms=latency_ms,
                        raw_provider_output=raw_provider_output,
                        prev_hash=prev_hash,
                    )
                    cursor = conn.execute(
                        "INSERT INTO audit (proposal_id, created_at, decision, proposal_json, "
                        "decision_json, latency_ms, raw_provider_output, prev_hash, entry_hash) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            proposal.id,
                            created_at,
                            decision.decision.value,
                            proposal_json,
                            decision_json,
                            latency_ms,
                            raw_provider_output,
                            prev_hash,
                            entry_hash,
                        ),
                    )
                    audit_id = cursor.lastrowid
            except (OSError, sqlite3.Error, CanonicalizationError) as exc:
                raise LedgerWriteError(storage_error_message(exc)) from exc
        if audit_id is None:
            raise LedgerWriteError("insert did not return a row id")
        _logger.debug("appended audit entry %s for proposal %s", audit_id, proposal.id)
        return int(audit_id)

    def backfill(self) -> int:
        """Assign hashes to rows written before hashing existed.

        Rows that already carry both hash fields are never modified. Returns the
        number of rows updated; a second run returns 0.
        """
        self._require_open()
        with self._write_lock:
            try:
                with self._transaction() as conn:
                    updated = _backfill_rows(conn)
            except (OSError, sqlite3.Error, CanonicalizationError) as exc:
                raise LedgerWriteError(storage_error_message(exc)) from exc
        if updated:
            _logger.info("backfilled hashes for %d audit entries", updated)
        return updated

    # ----- reads -----

    def list(self, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> list[AuditEntry]:
        """Return entries newest first."""
        self._require_open()
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        offset = max(0, int(offset))
        rows = self._fetchall(
            f"SELECT {_COLUMNS} FROM audit ORDER BY id DESC LIMIT ? OFFSET ?", (limit, offset)
        )
        return [_row_to_entry(row) for row in rows]

    def get(self, audit_id: int) -> AuditEntry | None:
        """Return the entry with ``audit_id``, or None when absent."""
        self._require_open()
        rows = self._fetchall(f"SELECT {_COLUMNS} FROM audit WHERE id = ?", (int(audit_id),))
        if not rows:
            return None
        return _row_to_entry(rows[0])

    def daily_spend(self, window_hours: float = DEFAULT_SPEND_WINDOW_HOURS) -> Decimal:
        """Sum approved TRANSFER amounts whose entries fall inside the window."""
        self._require_open()
        if window_hours <= 0:
            raise ValueError("window_hours must be positive")
        cutoff = format_timestamp(self._now() - timedelta(hours=window_hours))
        rows = self._fetchall(
            "SELECT id, proposal_json FROM audit WHERE created_at >= ? AND decision = ?",
            (cutoff, Decision.APPROVE.value),
        )
        total = Decimal(0)
        for audit_id, proposal_json in rows:
            try:
                proposal = parse_proposal(json.loads(proposal_json, parse_float=Decimal))
            except (json.JSONDecodeError, ProposalValidationError, TypeError):
                _logger.debug("skipping unreadable proposal in audit entry %s", audit_id)
                continue
            if isinstance(proposal, TransferProposal):
                total += proposal.params.amount_usdc
        return total

    def summary(self, limit: int = 10) -> AuditSummary:
        """Summarize the most recent decisions (input for the recommendation provider).

        ``total`` counts every scanned row. Rows whose decision or timestamp no
        longer parses are left out of ``counts`` and ``recent`` so a damaged
        entry cannot stall evaluation; ``verify`` is where such rows surface.
        """
        self._require_open()
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        rows = self._fetchall(
            "SELECT id, proposal_id, decision, created_at FROM audit ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        counts: dict[Decision, int] = {}
        recent: list[RecentActivity] = []
        for audit_id, proposal_id, decision_text, created_at in rows:
            try:
                activity = RecentActivity(
                    proposal_id=proposal_id, decision=decision_text, created_at=created_at
                )
            except ValidationError:
                _logger.debug("skipping unreadable audit entry %s in summary", audit_id)
                continue
            counts[activity.decision] = counts.get(activity.decision, 0) + 1
            recent.append(activity)
        return AuditSummary(total=len(rows), counts=counts, recent=tuple(recent))

    def verify(self, limit: int = DEFAULT_VERIFY_LIMIT) -> ChainVerification:
        """Walk the chain from the oldest entry and report the first break, if any.

        Integrity failures are returned, never raised. ``limit`` is clamped to
        ``[1, MAX_VERIFY_LIMIT]``.
        """
        self._require_open()
        limit = max(1, min(int(limit), MAX_VERIFY_LIMIT))
        rows = self._fetchall(f"SELECT {_COLUMNS} FROM audit ORDER BY id ASC LIMIT ?", (limit,))

        expected_prev = GENESIS_HASH
        checked = 0
        for row in rows:
            checked += 1
            audit_id = row[0]
            prev_hash, entry_hash = row[8], row[9]
            reason: str | None = None
            if not prev_hash or not entry_hash:
                reason = REASON_MISSING_HASH
            elif prev_hash != expected_prev:
                reason = REASON_PREV_MISMATCH
            elif _recompute_hash(row, prev_hash) != entry_hash:
                reason = REASON_ENTRY_MISMATCH
            if reason is not None:
                _logger.warning("audit chain invalid at entry %s: %s", audit_id, reason)
                return ChainVerification(
                    valid=False, checked=checked, first_invalid_audit_id=audit_id, reason=reason
                )
            expected_prev = entry_hash
        return ChainVerification(valid=True, checked=checked, tail_hash=expected_prev)

    # ----- internal helpers -----

    def _require_open(self) -> None:
        if not self._opened:
            raise LedgerError("ledger is not open")

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, isolation_level=None)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _fetchall(self, sql: str, params: tuple[Any, ...]) -> list[tuple[Any, ...]]:
        try:
            with self._connection() as conn:
                return conn.execute(sql, params).fetchall()
        except (OSError, sqlite3.Error) as exc:
            raise LedgerReadError(storage_error_message(exc)) from exc


_CREATE_AUDIT_TABLE = """
    CREATE TABLE IF NOT EXISTS audit (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        proposal_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        decision TEXT NOT NULL,
        proposal_json TEXT NOT NULL,
        decision_json TEXT NOT NULL,
        latency_ms INTEGER NOT NULL,
        raw_provider_output TEXT,
        prev_hash TEXT,
        entry_hash TEXT
    )
"""

# Column layout of the pre-chain store: camelCase names, epoch-millisecond createdAt.
_CAMEL_CASE_COLUMNS = (
    "id, proposalId, createdAt, decision, proposalJson, decisionJson, latencyMs, geminiRaw"
)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _table_columns(conn: sqlite3.Connection) -> set[str]:
    return {row[1] for row in conn.execute("PRAGMA table_info(audit)").fetchall()}


def _ensure_schema(conn: sqlite3.Connection) -> None:
    columns = _table_columns(conn)
    if "proposalId" in columns and "proposal_id" not in columns:
        _adopt_camel_case_table(conn)
    conn.execute(_CREATE_AUDIT_TABLE)
    existing = _table_columns(conn)
    for column in _HASH_COLUMNS:
        if column not in existing:
            conn.execute(f"ALTER TABLE audit ADD COLUMN {column} TEXT")
            _logger.info("migrated audit table: added column %s", column)
    conn.execute("CREATE INDEX IF NOT EXISTS audit_created_at ON audit (created_at)")


def _millis_to_timestamp(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return format_timestamp(_EPOCH + timedelta(milliseconds=value))
    return str(value)


def _adopt_camel_case_table(conn: sqlite3.Connection) -> None:
    """Rewrite a pre-chain camelCase ``audit`` table into the current layout.

    Ids and payload text are carried over unchanged; hash columns stay empty
    until ``backfill`` chains the rows.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        rows = conn.execute(f"SELECT {_CAMEL_CASE_COLUMNS} FROM audit ORDER BY id").fetchall()
        conn.execute("ALTER TABLE audit RENAME TO audit_pre_chain")
        conn.execute(_CREATE_AUDIT_TABLE)
        conn.executemany(
            "INSERT INTO audit (id, proposal_id, created_at, decision, proposal_json, "
            "decision_json, latency_ms, raw_provider_output) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (audit_id, proposal_id, _millis_to_timestamp(created_at), *rest)
                for audit_id, proposal_id, created_at, *rest in rows
            ],
        )
        conn.execute("DROP TABLE audit_pre_chain")
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
    _logger.info("migrated audit table: adopted %d camelCase entries", len(rows))


def _read_tail_hash(conn: sqlite3.Connection) -> str | None:
    """Return the last entry's hash, GENESIS for an empty ledger, None if unhashed."""
    row = conn.execute("SELECT entry_hash FROM audit ORDER BY id DESC LIMIT 1").fetchone()
    if row is None:
        return GENESIS_HASH
    entry_hash = row[0]
    return entry_hash if isinstance(entry_hash, str) and entry_hash else None


def _recompute_hash(row: tuple[Any, ...], prev_hash: str) -> str | None:
    try:
        return compute_entry_hash(
            proposal_id=row[1],
            created_at=row[2],
            decision=row[3],
            proposal_json=row[4],
            decision_json=row[5],
            latency_ms=row[6],
            raw_provider_output=row[7],
            prev_hash=prev_hash,
        )
    except CanonicalizationError:
        # A column rewritten to a type with no canonical form cannot match.
        return None


def _backfill_rows(conn: sqlite3.Connection) -> int:
    rows = conn.execute(f"SELECT {_COLUMNS} FROM audit ORDER BY id ASC").fetchall()
    expected_prev = GENESIS_HASH
    updated = 0
    for row in rows:
        prev_hash, entry_hash = row[8], row[9]
        if prev_hash and entry_hash:
            expected_prev = entry_hash
            continue
        new_hash = _recompute_hash(row, expected_prev)
        if new_hash is None:
            raise CanonicalizationError(f"audit entry {row[0]} cannot be canonicalized")
        conn.execute(
            "UPDATE audit SET prev_hash = ?, entry_hash = ? WHERE id = ?",
            (expected_prev, new_hash, row[0]),
        )
        expected_prev = new_hash
        updated += 1
    return updated


def _row_to_entry(row: tuple[Any, ...]) -> AuditEntry:
    try:
        return AuditEntry.model_validate(
            {
                "id": row[0],
                "proposal_id": row[1],
                "created_at": row[2],
                "decision": row[3],
                "proposal": json.loads(row[4], parse_float=Decimal),
                "decision_payload": json.loads(row[5], parse_float=Decimal),
                "latency_ms": row[6],
                "raw_provider_output": row[7],
                "prev_hash": row[8],
                "entry_hash": row[9],
            }
        )
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        raise LedgerReadError(f"audit entry {row[0]} is unreadable") from exc
