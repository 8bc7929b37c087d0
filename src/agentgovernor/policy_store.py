"""JSON-file persistence for the active policy."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Mapping

from .errors import PolicyValidationError
from .policy import DEFAULT_POLICY, Policy, validate_policy

_logger = logging.getLogger(__name__)


class PolicyStore:
    """Holds one immutable policy snapshot backed by a JSON file.

    Readers take ``current`` without locking; ``save`` validates, writes the file
    atomically and then swaps the snapshot (last writer wins).
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._snapshot: Policy | None = None

    @property
    def current(self) -> Policy:
        snapshot = self._snapshot
        if snapshot is None:
            snapshot = self.load()
        return snapshot

    def load(self) -> Policy:
        """Read the policy file; fall back to DEFAULT_POLICY if absent or invalid."""
        policy = self._read()
        with self._lock:
            self._snapshot = policy
        return policy

    def save(self, policy: Policy | Mapping[str, Any]) -> Policy:
        """Validate and persist ``policy``; raises PolicyValidationError when invalid."""
        validated = validate_policy(policy)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(validated.model_dump_json(indent=2) + "\n", encoding="utf-8")
            os.replace(tmp_path, self.path)
            self._snapshot = validated
        _logger.info("policy updated at %s", self.path.name)
        return validated

    def _read(self) -> Policy:
        if not self.path.exists():
            return DEFAULT_POLICY
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return validate_policy(raw)
        except (OSError, json.JSONDecodeError, PolicyValidationError) as exc:
            _logger.warning("policy file unusable (%s); using default policy", type(exc).__name__)
            return DEFAULT_POLICY
