"""Recommendation provider contract.

A provider always yields a recommendation. Whether the live judge answered or
the deterministic fallback was substituted is carried in the result type so
callers can record it in the audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Union, runtime_checkable

from ..policy import Policy
from ..types import ActionProposal, AuditSummary, Recommendation


class FallbackReason(str, Enum):
    MISSING_API_KEY = "missing_api_key"
    MOCK_ENABLED = "mock_enabled"
    UNPARSEABLE_RESPONSE = "unparseable_response"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True, slots=True)
class Recommended:
    """The live provider answered with a well-formed recommendation."""

    recommendation: Recommendation
    raw_text: str | None = None

    @property
    def used_fallback(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class Fallback:
    """The deterministic fallback was used instead of the live provider."""

    recommendation: Recommendation
    reason: FallbackReason
    raw_text: str | None = None

    @property
    def used_fallback(self) -> bool:
        return True


RecommendationResult = Union[Recommended, Fallback]


@runtime_checkable
class RecommendationProvider(Protocol):
    """Judge that suggests a decision for a proposal.

    Implementations must not raise for provider-side failures; they resolve to
    ``Fallback`` instead.
    """

    def recommend(
        self, proposal: ActionProposal, policy: Policy, summary: AuditSummary
    ) -> RecommendationResult:
        ...
