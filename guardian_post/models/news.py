from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NewsStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class NewsCategory(str, Enum):
    DEFENSE = "defense"
    ECONOMY = "economy"
    SOCIETY = "society"
    TECH = "tech"


class FeedQuery(BaseModel):
    """One keyword searched in one locale (one remote feed request)."""

    model_config = ConfigDict(frozen=True)

    keyword: str
    language: str
    country: str

    @property
    def region(self) -> str:
        return self.country.upper()

    @property
    def ceid(self) -> str:
        return f"{self.country.upper()}:{self.language.lower()}"


class RawFeedEntry(BaseModel):
    """
    A single feed entry as collected, tagged with the query that produced it.
    Only the fields the normalizer needs are kept; every one except the query
    may be missing in the upstream feed.
    """

    query: FeedQuery
    link: str = ""
    guid: str = ""
    title: str = ""
    snippet: str = ""
    content_html: str = ""
    published_at: Optional[datetime] = None
    source_name: Optional[str] = None

    @property
    def keyword(self) -> str:
        return self.query.keyword


class NewsRecord(BaseModel):
    """
    Canonical representation of one article after normalization.
    `id` is derived from `source_url` and is the idempotency key for analysis.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    summary: str
    source_url: str
    publisher: str
    published_at: datetime
    collected_at: datetime
    status: NewsStatus = NewsStatus.PENDING
    reliability: int = Field(0, ge=0, le=100)
    keywords: List[str] = Field(min_length=1)
    thumbnail_url: Optional[str] = None
    category: NewsCategory = NewsCategory.TECH

    def seed_text(self) -> str:
        return f"{self.title}\n{self.summary}"


class NewsStats(BaseModel):
    total_collected: int = 0
    analyzing: int = 0
    approved: int = 0
    today_count: int = 0
    analyzed: int = 0
