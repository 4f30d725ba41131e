"""
Models for trending pages and invalidation results.

TrendingEntry and TrendingPage are what gets cached: they are serialized with
model_dump(mode="json") on write and validated back on read, so a cached page
and a freshly computed one serialize to the same JSON.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class TimeWindow(str, Enum):
    """Rolling time ranges a trending page can be computed over."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


# Invalidation target covering every window at once.
ALL_RANGES = "all-ranges"


class Creator(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    image_url: Optional[str] = None


class TrendingEntry(BaseModel):
    """One ranked content item, snapshot at query time."""
    model_config = ConfigDict(frozen=True)

    content_id: str
    title: str
    thumbnail_url: Optional[str] = None
    created_at: datetime
    view_count: int
    duration: Optional[int] = None
    visibility: str = "public"
    category_id: Optional[str] = None
    comment_count: int
    like_count: int
    trending_score: int
    creator: Creator


class TrendingPage(BaseModel):
    """A page of entries ordered by score, then creation time, both descending."""
    entries: List[TrendingEntry]
    next_cursor: Optional[int] = None


class InvalidationResult(BaseModel):
    time_range: str
    cleared: int
    timestamp: str
