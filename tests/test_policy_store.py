from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from agentgovernor.errors import PolicyValidationError
from agentgovernor.policy import DEFAULT_POLICY, Policy, validate_policy
from agentgovernor.policy_store import PolicyStore


def _policy_dict(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "maxDailySpendUSDC": 100,
        "maxSingleTransferUSDC": 40,
        "allowlistRecipients": ["0xA"],
        "denylistRecipients": [],
        "swapMaxSlippageBps": 30,
        "swapMinLiquidityUSDC": 1000.5,
        "deployRequiresTestsPassing": False,
        "apiDenyPIIExfiltration": True,
    }
    data.update(overrides)
    return data


def test_missing_file_yields_default(tmp_path: Path) -> None:
    store = PolicyStore(tmp_path / "policy.json")

    assert store.load() == DEFAULT_POLICY
    assert store.current == DEFAULT_POLICY


def test_invalid_file_yields_default(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text("{broken", encoding="utf-8")

    assert PolicyStore(path).load() == DEFAULT_POLICY


def test_save_persists_and_swaps_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "policy.json"
    store = PolicyStore(path)

    saved = store.save(_policy_dict())

    assert saved.max_single_transfer_usdc == Decimal(40)
    assert store.current is saved
    assert PolicyStore(path).load() == saved
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["max_daily_spend_usdc"] == 100
    assert on_disk["swap_min_liquidity_usdc"] == 1000.5
    assert not path.with_name("policy.json.tmp").exists()


def test_invalid_save_keeps_previous_policy(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    store = PolicyStore(path)
    store.save(_policy_dict())

    with pytest.raises(PolicyValidationError):
        store.save(_policy_dict(maxSingleTransferUSDC=-1))

    assert store.current.max_single_transfer_usdc == Decimal(40)
    assert PolicyStore(path).load().max_single_transfer_usdc == Decimal(40)


def test_validate_policy_rejects_unknown_and_missing_fields() -> None:
    with pytest.raises(PolicyValidationError):
        validate_policy(_policy_dict(extraLimit=1))
    data = _policy_dict()
    del data["swapMaxSlippageBps"]
    with pytest.raises(PolicyValidationError):
        validate_policy(data)
    with pytest.raises(PolicyValidationError):
        validate_policy([1, 2, 3])  # type: ignore[arg-type]


def test_validate_policy_accepts_snake_case_and_instances() -> None:
    snake = validate_policy(DEFAULT_POLICY.model_dump(mode="json"))

    assert snake == DEFAULT_POLICY
    assert validate_policy(DEFAULT_POLICY) is DEFAULT_POLICY
    assert isinstance(snake, Policy)
