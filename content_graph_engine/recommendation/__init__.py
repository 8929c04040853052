"""Recommendation and Link Suggestion"""
from .recommendation_engine import (
    RecommendationEngine,
    tag_overlap,
    categorize
)

__all__ = [
    "RecommendationEngine",
    "tag_overlap",
    "categorize"
]
