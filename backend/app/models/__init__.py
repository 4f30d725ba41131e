"""Pydantic models for trending pages and invalidation results."""

from .trending import (
    ALL_RANGES,
    Creator,
    InvalidationResult,
    TimeWindow,
    TrendingEntry,
    TrendingPage,
)

__all__ = [
    "ALL_RANGES",
    "Creator",
    "InvalidationResult",
    "TimeWindow",
    "TrendingEntry",
    "TrendingPage",
]
