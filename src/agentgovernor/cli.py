"""Command-line interface for agentgovernor."""

from __future__ import annotations

import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from agentgovernor.config import GovernorSettings
from agentgovernor.engine import Governor
from agentgovernor.errors import (
    GovernorError,
    LedgerError,
    PolicyValidationError,
    ProposalValidationError,
)
from agentgovernor.evaluator import format_amount
from agentgovernor.ledger.sqlite import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_SPEND_WINDOW_HOURS,
    DEFAULT_VERIFY_LIMIT,
    SQLiteAuditLedger,
)
from agentgovernor.policy import validate_policy
from agentgovernor.policy_store import PolicyStore
from agentgovernor.types import AuditEntry

CSV_FIELDS = (
    "id",
    "proposal_id",
    "created_at",
    "decision",
    "action_type",
    "agent_id",
    "risk_score",
    "policy_hits",
    "latency_ms",
    "prev_hash",
    "entry_hash",
)


def _entry_dict(entry: AuditEntry) -> dict[str, object]:
    return entry.model_dump(mode="json")


def _flatten_entry(entry: AuditEntry) -> dict[str, str]:
    return {
        "id": str(entry.id),
        "proposal_id": entry.proposal_id,
        "created_at": entry.created_at.isoformat(),
        "decision": entry.decision.value,
        "action_type": entry.proposal.action_type.value,
        "agent_id": entry.proposal.agent_id,
        "risk_score": str(entry.decision_payload.risk_score),
        "policy_hits": ";".join(entry.decision_payload.policy_hits),
        "latency_ms": str(entry.latency_ms),
        "prev_hash": entry.prev_hash or "",
        "entry_hash": entry.entry_hash or "",
    }


def _write_entries(
    entries: Iterable[AuditEntry],
    output_format: str,
    output_path: Path | None,
) -> int:
    output = sys.stdout
    close_output = False
    if output_path is not None:
        output = output_path.open("w", encoding="utf-8", newline="")
        close_output = True
    try:
        if output_format == "json":
            output.write("[")
            first = True
            for entry in entries:
                if not first:
                    output.write(",")
                first = False
                output.write(json.dumps(_entry_dict(entry), ensure_ascii=False))
            output.write("]\n")
        elif output_format == "ndjson":
            for entry in entries:
                output.write(
                    json.dumps(_entry_dict(entry), ensure_ascii=False, separators=(",", ":")) + "\n"
                )
        elif output_format == "csv":
            writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, lineterminator="\n")
            writer.writeheader()
            for entry in entries:
                writer.writerow(_flatten_entry(entry))
        else:
            raise ValueError(f"unknown format: {output_format}")
    finally:
        if close_output:
            output.close()
    return 0


def _iter_all(ledger: SQLiteAuditLedger, page_size: int = 500) -> Iterable[AuditEntry]:
    """Yield every entry oldest first."""
    pages: list[list[AuditEntry]] = []
    offset = 0
    while True:
        page = ledger.list(page_size, offset)
        if not page:
            break
        pages.append(page)
        offset += len(page)
    for page in reversed(pages):
        yield from reversed(page)


def _open_ledger(db_path: Path) -> SQLiteAuditLedger | None:
    if not db_path.exists():
        print("ledger file not found", file=sys.stderr)
        return None
    return SQLiteAuditLedger(db_path).open()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agentgovernor", add_help=True)
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify_parser = subparsers.add_parser("verify", help="Verify the audit hash chain")
    verify_parser.add_argument("db_path", type=Path, help="Path to audit SQLite database")
    verify_parser.add_argument("--limit", type=int, default=DEFAULT_VERIFY_LIMIT)
    verify_parser.add_argument("--json", action="store_true", help="Output JSON")

    list_parser = subparsers.add_parser("list", help="List audit entries, newest first")
    list_parser.add_argument("db_path", type=Path, help="Path to audit SQLite database")
    list_parser.add_argument("--limit", type=int, default=DEFAULT_LIST_LIMIT)
    list_parser.add_argument("--offset", type=int, default=0)
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    show_parser = subparsers.add_parser("show", help="Show one audit entry")
    show_parser.add_argument("db_path", type=Path, help="Path to audit SQLite database")
    show_parser.add_argument("audit_id", type=int, help="Audit entry id")

    export_parser = subparsers.add_parser("export", help="Export audit entries, oldest first")
    export_parser.add_argument("db_path", type=Path, help="Path to audit SQLite database")
    export_parser.add_argument(
        "--format",
        choices=("json", "ndjson", "csv"),
        default="ndjson",
        help="Output format",
    )
    export_parser.add_argument("--output", type=Path, help="Output file path")

    backfill_parser = subparsers.add_parser("backfill", help="Hash entries written before hashing")
    backfill_parser.add_argument("db_path", type=Path, help="Path to audit SQLite database")

    spend_parser = subparsers.add_parser("spend", help="Approved transfer spend in a window")
    spend_parser.add_argument("db_path", type=Path, help="Path to audit SQLite database")
    spend_parser.add_argument("--hours", type=float, default=DEFAULT_SPEND_WINDOW_HOURS)

    evaluate_parser = subparsers.add_parser("evaluate", help="Govern a proposal from a JSON file")
    evaluate_parser.add_argument("proposal_path", type=Path, help="Path to proposal JSON")
    evaluate_parser.add_argument("--db", dest="db_path", type=Path, required=True)
    evaluate_parser.add_argument("--policy", dest="policy_path", type=Path)
    evaluate_parser.add_argument(
        "--mock", action="store_true", help="Use the deterministic fallback judge"
    )

    policy_parser = subparsers.add_parser("policy", help="Inspect or validate policy files")
    policy_sub = policy_parser.add_subparsers(dest="policy_command", required=True)
    policy_show = policy_sub.add_parser("show", help="Print the effective policy")
    policy_show.add_argument("--policy", dest="policy_path", type=Path, default=Path("policy.json"))
    policy_validate = policy_sub.add_parser("validate", help="Validate a policy file")
    policy_validate.add_argument("policy_path", type=Path)

    return parser.parse_args(argv)


def _cmd_verify(db_path: Path, limit: int, json_output: bool) -> int:
    try:
        ledger = _open_ledger(db_path)
        if ledger is None:
            return 1
        result = ledger.verify(limit)
    except LedgerError as exc:
        print(f"verify failed: {exc}", file=sys.stderr)
        return 1
    if json_output:
        print(result.model_dump_json(exclude_none=True))
    elif result.valid:
        print(f"verification ok ({result.checked} entries, tail {result.tail_hash})")
    else:
        print(
            f"verify failed at entry {result.first_invalid_audit_id}: {result.reason}",
            file=sys.stderr,
        )
    return 0 if result.valid else 1


def _cmd_list(db_path: Path, limit: int, offset: int, json_output: bool) -> int:
    try:
        ledger = _open_ledger(db_path)
        if ledger is None:
            return 1
        entries = ledger.list(limit, offset)
    except LedgerError as exc:
        print(f"list failed: {exc}", file=sys.stderr)
        return 1
    if json_output:
        print(json.dumps([_entry_dict(entry) for entry in entries], ensure_ascii=False))
        return 0
    table = Table(title="Audit entries")
    for column in ("ID", "Created", "Action", "Decision", "Risk", "Policy hits"):
        table.add_column(column)
    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.created_at.isoformat(),
            entry.proposal.action_type.value,
            entry.decision.value,
            str(entry.decision_payload.risk_score),
            escape(", ".join(entry.decision_payload.policy_hits)),
        )
    Console().print(table)
    return 0


def _cmd_show(db_path: Path, audit_id: int) -> int:
    try:
        ledger = _open_ledger(db_path)
        if ledger is None:
            return 1
        entry = ledger.get(audit_id)
    except LedgerError as exc:
        print(f"show failed: {exc}", file=sys.stderr)
        return 1
    if entry is None:
        print("audit entry not found", file=sys.stderr)
        return 1
    print(json.dumps(_entry_dict(entry), ensure_ascii=False, indent=2))
    return 0


def _cmd_export(db_path: Path, output_format: str, output_path: Path | None) -> int:
    try:
        ledger = _open_ledger(db_path)
        if ledger is None:
            return 1
        return _write_entries(_iter_all(ledger), output_format, output_path)
    except (OSError, LedgerError) as exc:
        print(f"export failed: {exc}", file=sys.stderr)
        return 1


def _cmd_backfill(db_path: Path) -> int:
    try:
        ledger = _open_ledger(db_path)
        if ledger is None:
            return 1
        updated = ledger.backfill()
    except LedgerError as exc:
        print(f"backfill failed: {exc}", file=sys.stderr)
        return 1
    print(f"backfilled {updated} entries")
    return 0


def _cmd_spend(db_path: Path, hours: float) -> int:
    if hours <= 0:
        print("--hours must be positive", file=sys.stderr)
        return 2
    try:
        ledger = _open_ledger(db_path)
        if ledger is None:
            return 1
        total = ledger.daily_spend(hours)
    except LedgerError as exc:
        print(f"spend failed: {exc}", file=sys.stderr)
        return 1
    print(format_amount(total))
    return 0


def _cmd_evaluate(
    proposal_path: Path, db_path: Path, policy_path: Path | None, mock: bool
) -> int:
    try:
        payload = json.loads(proposal_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"cannot read proposal: {exc}", file=sys.stderr)
        return 2
    overrides: dict[str, object] = {"ledger_path": db_path}
    if policy_path is not None:
        overrides["policy_path"] = policy_path
    if mock:
        overrides["gemini_mock"] = True
    settings = GovernorSettings(**overrides)
    try:
        with Governor.from_settings(settings) as governor:
            outcome = governor.evaluate_proposal(payload)
    except ProposalValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except (LedgerError, GovernorError) as exc:
        print(f"evaluate failed: {exc}", file=sys.stderr)
        return 1
    print(outcome.model_dump_json(exclude_none=True))
    return 0


def _cmd_policy_show(policy_path: Path) -> int:
    policy = PolicyStore(policy_path).load()
    print(policy.model_dump_json(indent=2))
    return 0


def _cmd_policy_validate(policy_path: Path) -> int:
    try:
        validate_policy(json.loads(policy_path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, PolicyValidationError) as exc:
        print(f"invalid policy: {exc}", file=sys.stderr)
        return 1
    print("policy ok")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    if args.command == "verify":
        return _cmd_verify(args.db_path, args.limit, args.json)
    if args.command == "list":
        return _cmd_list(args.db_path, args.limit, args.offset, args.json)
    if args.command == "show":
        return _cmd_show(args.db_path, args.audit_id)
    if args.command == "export":
        return _cmd_export(args.db_path, args.format, args.output)
    if args.command == "backfill":
        return _cmd_backfill(args.db_path)
    if args.command == "spend":
        return _cmd_spend(args.db_path, args.hours)
    if args.command == "evaluate":
        return _cmd_evaluate(args.proposal_path, args.db_path, args.policy_path, args.mock)
    if args.command == "policy":
        if args.policy_command == "show":
            return _cmd_policy_show(args.policy_path)
        return _cmd_policy_validate(args.policy_path)
    print("unknown command", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
