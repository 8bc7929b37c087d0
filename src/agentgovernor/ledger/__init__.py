"""Hash-chained audit ledger and canonical JSON helpers."""

from ..errors import LedgerError, LedgerReadError, LedgerWriteError
from .hashing import compute_entry_hash
from .sqlite import SQLiteAuditLedger

__all__ = (
    "SQLiteAuditLedger",
    "compute_entry_hash",
    "LedgerError",
    "LedgerReadError",
    "LedgerWriteError",
)
