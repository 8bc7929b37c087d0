"""Exception types for Agent Governor."""

from __future__ import annotations

import sqlite3


class GovernorError(Exception):
    """Base exception for all Agent Governor errors."""


class ProposalValidationError(GovernorError, ValueError):
    """Raised when an action proposal payload is malformed."""


class PolicyValidationError(GovernorError, ValueError):
    """Raised when a policy payload fails validation."""


class LedgerError(GovernorError, RuntimeError):
    """Audit ledger unavailable, unopened, or failing at the storage layer."""


class LedgerWriteError(LedgerError):
    pass


class LedgerReadError(LedgerError):
    pass


def storage_error_message(exc: BaseException) -> str:
    """Describe a storage failure without echoing the database path."""
    if isinstance(exc, OSError):
        detail = exc.strerror or "I/O failure"
        return f"{type(exc).__name__}: {detail}" + (f" (errno {exc.errno})" if exc.errno else "")
    if isinstance(exc, sqlite3.Error):
        code = getattr(exc, "sqlite_errorname", None)
        return f"sqlite: {code or type(exc).__name__}"
    return str(exc)
