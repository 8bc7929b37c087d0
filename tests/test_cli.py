from __future__ import annotations

import csv
import io
import json
import sqlite3
from pathlib import Path

import pytest

from agentgovernor.cli import main
from agentgovernor.engine import Governor
from agentgovernor.ledger.sqlite import SQLiteAuditLedger
from agentgovernor.policy import DEFAULT_POLICY
from agentgovernor.recommendation import MockRecommendationProvider


def _payload(proposal_id: str, amount: int) -> dict[str, object]:
    return {
        "id": proposal_id,
        "timestamp": "2026-01-25T12:00:00Z",
        "agentId": "agent-cli",
        "actionType": "TRANSFER",
        "intent": "CLI transfer",
        "params": {"amountUSDC": amount, "to": "0xSAFE_ALLOWLIST_1"},
    }


def _seed(db_path: Path, amounts: list[int]) -> None:
    with Governor(
        ledger=SQLiteAuditLedger(db_path).open(), provider=MockRecommendationProvider()
    ) as governor:
        for index, amount in enumerate(amounts):
            governor.evaluate_proposal(_payload(f"p-{index}", amount))


def test_verify_ok_and_tampered(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "audit.db"
    _seed(db_path, [5, 6, 7])

    assert main(["verify", str(db_path)]) == 0
    assert "verification ok (3 entries" in capsys.readouterr().out

    conn = sqlite3.connect(db_path)
    try:
        conn.execute("UPDATE audit SET decision = 'DENY' WHERE id = 2")
        conn.commit()
    finally:
        conn.close()

    assert main(["verify", str(db_path), "--json"]) == 1
    result = json.loads(capsys.readouterr().out)
    assert result == {
        "valid": False,
        "checked": 2,
        "first_invalid_audit_id": 2,
        "reason": "entryHash mismatch.",
    }


def test_missing_ledger_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["verify", str(tmp_path / "absent.db")]) == 1
    assert "ledger file not found" in capsys.readouterr().err


def test_list_and_show(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "audit.db"
    _seed(db_path, [5, 35])

    assert main(["list", str(db_path), "--json"]) == 0
    listed = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in listed] == [2, 1]
    assert listed[0]["decision"] == "DENY"

    assert main(["list", str(db_path)]) == 0
    assert "Audit entries" in capsys.readouterr().out

    assert main(["show", str(db_path), "1"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["proposal_id"] == "p-0"
    assert shown["proposal"]["action_type"] == "TRANSFER"

    assert main(["show", str(db_path), "99"]) == 1
    assert "not found" in capsys.readouterr().err


@pytest.mark.parametrize("output_format", ["json", "ndjson", "csv"])
def test_export_is_oldest_first(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], output_format: str
) -> None:
    db_path = tmp_path / "audit.db"
    _seed(db_path, [1, 2, 3])

    assert main(["export", str(db_path), "--format", output_format]) == 0
    out = capsys.readouterr().out

    if output_format == "json":
        ids = [item["id"] for item in json.loads(out)]
    elif output_format == "ndjson":
        ids = [json.loads(line)["id"] for line in out.splitlines()]
    else:
        ids = [int(row["id"]) for row in csv.DictReader(io.StringIO(out))]
    assert ids == [1, 2, 3]


def test_export_to_file(tmp_path: Path) -> None:
    db_path = tmp_path / "audit.db"
    output = tmp_path / "out.ndjson"
    _seed(db_path, [1])

    assert main(["export", str(db_path), "--output", str(output)]) == 0
    lines = output.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["entry_hash"]


def test_backfill_and_spend(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "audit.db"
    _seed(db_path, [5, 7])

    assert main(["backfill", str(db_path)]) == 0
    assert "backfilled 0 entries" in capsys.readouterr().out

    assert main(["spend", str(db_path)]) == 0
    assert capsys.readouterr().out.strip() == "12"

    assert main(["spend", str(db_path), "--hours", "0"]) == 2


def test_evaluate_with_mock(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "audit.db"
    proposal_path = tmp_path / "proposal.json"
    proposal_path.write_text(json.dumps(_payload("p-cli", 35)), encoding="utf-8")

    code = main(
        [
            "evaluate",
            str(proposal_path),
            "--db",
            str(db_path),
            "--policy",
            str(tmp_path / "policy.json"),
            "--mock",
        ]
    )

    assert code == 0
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["audit_id"] == 1
    assert outcome["used_fallback"] is True
    assert outcome["decision"]["decision"] == "DENY"
    assert outcome["decision"]["policy_hits"] == ["maxSingleTransferUSDC"]


def test_evaluate_rejects_bad_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "audit.db"
    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{", encoding="utf-8")
    invalid = tmp_path / "invalid.json"
    invalid.write_text(json.dumps({"id": "x", "actionType": "MINT"}), encoding="utf-8")

    assert main(["evaluate", str(bad_json), "--db", str(db_path), "--mock"]) == 2
    assert main(["evaluate", str(invalid), "--db", str(db_path), "--mock"]) == 2
    assert "Invalid proposal payload" in capsys.readouterr().err


def test_policy_show_and_validate(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    policy_path = tmp_path / "policy.json"

    assert main(["policy", "show", "--policy", str(policy_path)]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["max_single_transfer_usdc"] == 25

    policy_path.write_text(DEFAULT_POLICY.model_dump_json(), encoding="utf-8")
    assert main(["policy", "validate", str(policy_path)]) == 0
    assert "policy ok" in capsys.readouterr().out

    policy_path.write_text(json.dumps({"maxDailySpendUSDC": -1}), encoding="utf-8")
    assert main(["policy", "validate", str(policy_path)]) == 1
    assert "invalid policy" in capsys.readouterr().err
