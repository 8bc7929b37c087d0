"""Canonical JSON used for audit payload storage and chain hashing.

Rules:
- object keys sorted, no insignificant whitespace
- NFC normalization for keys and string values
- duplicate keys after normalization are rejected
- Decimal rendered fixed-point without exponent or trailing zeros
- binary floats rejected (amounts are Decimal end to end)
- datetimes rendered as UTC ``YYYY-MM-DDTHH:MM:SS.ffffffZ``
"""

from __future__ import annotations

import hashlib
import json
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

_JSON_SEPARATORS = (",", ":")
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class CanonicalizationError(ValueError):
    """Raised when a value has no canonical JSON form."""


def format_timestamp(value: datetime) -> str:
    """Render a timezone-aware datetime in the ledger's fixed UTC format."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise CanonicalizationError("datetime values must be timezone-aware")
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def canonical_dumps(value: Any) -> str:
    """Return the canonical JSON text for ``value``."""
    return _canonical_json(value)


def canonical_bytes(value: Any) -> bytes:
    """Return canonical UTF-8 bytes for ``value``."""
    return _canonical_json(value).encode("utf-8")


def sha256_hex(value: Any) -> str:
    """Return the SHA-256 hex digest of the canonical bytes."""
    return hashlib.sha256(canonical_bytes(value)).hexdigest()


def _canonical_json(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"

    # Enum before str/int: str-valued enums subclass str.
    if isinstance(value, Enum):
        return _canonical_json(value.value)

    # bool is a subclass of int, handled above.
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        raise CanonicalizationError("floats are rejected; use Decimal for exact numbers")
    if isinstance(value, Decimal):
        return _canonical_decimal(value)

    if isinstance(value, str):
        normalized = unicodedata.normalize("NFC", value)
        return json.dumps(normalized, ensure_ascii=False, separators=_JSON_SEPARATORS)

    if isinstance(value, datetime):
        return _canonical_json(format_timestamp(value))

    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical_json(v) for v in value) + "]"

    if isinstance(value, dict):
        normalized_items: dict[str, Any] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise CanonicalizationError("object keys must be strings")
            nk = unicodedata.normalize("NFC", k)
            if nk in normalized_items:
                raise CanonicalizationError(f"duplicate key after NFC normalization: {nk!r}")
            normalized_items[nk] = v

        parts: list[str] = []
        for k in sorted(normalized_items):
            parts.append(
                json.dumps(k, ensure_ascii=False, separators=_JSON_SEPARATORS)
                + ":"
                + _canonical_json(normalized_items[k])
            )
        return "{" + ",".join(parts) + "}"

    raise CanonicalizationError(f"type {type(value).__name__} is not JSON-serializable")


def _canonical_decimal(value: Decimal) -> str:
    if not value.is_finite():
        raise CanonicalizationError("NaN/Infinity are rejected")
    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
