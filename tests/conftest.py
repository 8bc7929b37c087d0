from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator

import pytest

from agentgovernor.ledger.sqlite import SQLiteAuditLedger

BASE_TIME = datetime(2026, 1, 25, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Mutable wall clock for ledger timestamps."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "audit.db"


@pytest.fixture
def ledger(ledger_path: Path, clock: Callable[[], datetime]) -> Iterator[SQLiteAuditLedger]:
    with SQLiteAuditLedger(ledger_path, now=clock) as opened:
        yield opened
