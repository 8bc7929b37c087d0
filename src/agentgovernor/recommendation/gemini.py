"""Gemini-backed recommendation provider over the public REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..policy import Policy
from ..types import ActionProposal, AuditSummary
from .base import Fallback, FallbackReason, Recommended, RecommendationResult
from .fallback import fallback_recommendation
from .parsing import parse_recommendation

DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_SECONDS: float = 10.0
MAX_RAW_ERROR_LENGTH = 200

_logger = logging.getLogger(__name__)

_PROMPT_HEADER = (
    "You are a risk analyst for autonomous agents.",
    "Given an action proposal, current policy, and recent audit summary,",
    "return a JSON object with keys: decision (APPROVE|DENY|REQUIRE_CONFIRMATION),",
    "riskFactors (array of short strings), and explanation (plain English).",
    "Return ONLY valid JSON.",
)


def build_prompt(proposal: ActionProposal, policy: Policy, summary: AuditSummary) -> str:
    return "\n".join(
        [
            *_PROMPT_HEADER,
            "",
            "ACTION_PROPOSAL:",
            proposal.model_dump_json(),
            "",
            "POLICY:",
            policy.model_dump_json(),
            "",
            "AUDIT_SUMMARY:",
            summary.model_dump_json(),
        ]
    )


def _extract_text(body: Any) -> str:
    candidates = body.get("candidates") if isinstance(body, dict) else None
    if not candidates:
        raise ValueError("response has no candidates")
    parts = candidates[0].get("content", {}).get("parts", [])
    texts = [part["text"] for part in parts if isinstance(part, dict) and "text" in part]
    if not texts:
        raise ValueError("response has no text parts")
    return "".join(texts)


def _safe_error_text(exc: BaseException) -> str:
    text = f"{type(exc).__name__}: {exc}"
    if len(text) > MAX_RAW_ERROR_LENGTH:
        text = text[: MAX_RAW_ERROR_LENGTH - 3] + "..."
    return text


class GeminiRecommendationProvider:
    """Ask a Gemini model for a recommendation, falling back deterministically.

    Missing credentials or ``mock=True`` skip the network entirely. HTTP errors,
    timeouts and unparseable output all resolve to ``Fallback``.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        mock: bool = False,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.Client | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.api_key = api_key or ""
        self.model = model
        self.mock = mock
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url.rstrip("/")
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key) and not self.mock

    def recommend(
        self, proposal: ActionProposal, policy: Policy, summary: AuditSummary
    ) -> RecommendationResult:
        if not self.enabled:
            reason = FallbackReason.MOCK_ENABLED if self.api_key else FallbackReason.MISSING_API_KEY
            return Fallback(
                recommendation=fallback_recommendation(proposal, policy), reason=reason
            )

        try:
            text = self._generate(build_prompt(proposal, policy, summary))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            _logger.warning("recommendation provider failed: %s", type(exc).__name__)
            return Fallback(
                recommendation=fallback_recommendation(proposal, policy),
                reason=FallbackReason.PROVIDER_ERROR,
                raw_text=_safe_error_text(exc),
            )

        parsed = parse_recommendation(text)
        if parsed is None:
            _logger.warning("recommendation provider returned unparseable output")
            return Fallback(
                recommendation=fallback_recommendation(proposal, policy),
                reason=FallbackReason.UNPARSEABLE_RESPONSE,
                raw_text=text,
            )
        return Recommended(recommendation=parsed, raw_text=text)

    def _generate(self, prompt: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": self.api_key}
        if self._client is not None:
            response = self._client.post(
                url, json=payload, headers=headers, timeout=self.timeout_seconds
            )
        else:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return _extract_text(response.json())
