"""Recommendation providers and the deterministic fallback judge."""

from .base import (
    Fallback,
    FallbackReason,
    RecommendationProvider,
    RecommendationResult,
    Recommended,
)
from .fallback import MockRecommendationProvider, fallback_recommendation
from .gemini import GeminiRecommendationProvider
from .parsing import normalize_decision, parse_recommendation

__all__ = (
    "RecommendationProvider",
    "RecommendationResult",
    "Recommended",
    "Fallback",
    "FallbackReason",
    "MockRecommendationProvider",
    "GeminiRecommendationProvider",
    "fallback_recommendation",
    "parse_recommendation",
    "normalize_decision",
)
