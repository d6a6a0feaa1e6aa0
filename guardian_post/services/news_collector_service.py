"""
Google News RSS collector.

Fetches one search feed per (keyword, locale) pair concurrently and returns
the raw entries tagged with the query that produced them. A failing feed
contributes nothing; it never aborts the collection.
"""

from __future__ import annotations

import asyncio
import calendar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote_plus

import feedparser
import httpx

from guardian_post.config import settings
from guardian_post.core.logging import get_logger
from guardian_post.models.news import FeedQuery, RawFeedEntry

logger = get_logger().bind(module="news_collector_service")

GOOGLE_NEWS_SEARCH_URL = "https://news.google.com/rss/search"
_USER_AGENT = "guardian-post-collector/1.0"


class FeedFetchError(Exception):
    """A single feed could not be fetched or parsed."""


def build_google_news_url(query: FeedQuery) -> str:
    """Build Google News RSS search URL with language and country parameters."""
    encoded = quote_plus(query.keyword)
    lang = query.language.lower()
    country = query.country.upper()
    return f"{GOOGLE_NEWS_SEARCH_URL}?q={encoded}&hl={lang}&gl={country}&ceid={country}:{lang}"


def _struct_time_to_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        timestamp = calendar.timegm(value)
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except Exception:
        return None


def _str_field(entry: Dict[str, Any], key: str) -> str:
    value = entry.get(key)
    if isinstance(value, str):
        return value.strip()
    return ""


def _get_first_content_value(entry: Dict[str, Any]) -> str:
    content = entry.get("content")
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict):
                val = block.get("value")
                if isinstance(val, str) and val.strip():
                    return val
    return ""


def _extract_source_name(entry: Dict[str, Any]) -> Optional[str]:
    source = entry.get("source")
    if isinstance(source, dict):
        title = source.get("title")
        if isinstance(title, str) and title.strip():
            return title.strip()
    return None


def entry_from_feed(entry: Dict[str, Any], query: FeedQuery) -> RawFeedEntry:
    """Map one feedparser entry onto a RawFeedEntry; missing fields stay empty."""
    summary = _str_field(entry, "summary") or _str_field(entry, "description")
    content_html = _get_first_content_value(entry) or summary
    published_at = (
        _struct_time_to_datetime(entry.get("published_parsed"))
        or _struct_time_to_datetime(entry.get("updated_parsed"))
    )
    return RawFeedEntry(
        query=query,
        link=_str_field(entry, "link"),
        guid=_str_field(entry, "id"),
        title=_str_field(entry, "title"),
        snippet=summary,
        content_html=content_html,
        published_at=published_at,
        source_name=_extract_source_name(entry),
    )


def parse_feed(feed_content: str, query: FeedQuery, *, limit: Optional[int] = None) -> List[RawFeedEntry]:
    parsed = feedparser.parse(feed_content)
    entries = list(getattr(parsed, "entries", []) or [])
    if getattr(parsed, "bozo", False) and not entries:
        raise FeedFetchError(f"malformed_feed: {getattr(parsed, 'bozo_exception', 'unknown')}")
    if limit is not None:
        entries = entries[:limit]
    return [entry_from_feed(entry, query) for entry in entries]


class NewsCollectorService:
    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        max_entries_per_query: int | None = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout_s = timeout_s if timeout_s is not None else settings.NEWS_FETCH_TIMEOUT_S
        self.max_entries_per_query = (
            max_entries_per_query
            if max_entries_per_query is not None
            else settings.NEWS_MAX_ENTRIES_PER_QUERY
        )
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "NewsCollectorService":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers={"User-Agent": _USER_AGENT},
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _fetch_text(self, url: str) -> str:
        if self._client is None:
            raise RuntimeError("NewsCollectorService must be used as an async context manager")
        response = await self._client.get(url)
        response.raise_for_status()
        return response.text

    async def fetch_query(self, query: FeedQuery) -> List[RawFeedEntry]:
        """Fetch one feed. Any failure is logged and yields an empty list."""
        url = build_google_news_url(query)
        try:
            feed_content = await self._fetch_text(url)
            entries = parse_feed(feed_content, query, limit=self.max_entries_per_query)
        except Exception as exc:
            logger.warning(
                "news_collect_fetch_failed",
                keyword=query.keyword,
                locale=query.ceid,
                url=url,
                error=str(exc),
            )
            return []

        logger.info(
            "news_collect_fetch_success",
            keyword=query.keyword,
            locale=query.ceid,
            entries=len(entries),
        )
        return entries

    async def collect(self, queries: Sequence[FeedQuery]) -> List[RawFeedEntry]:
        """
        Issue every query concurrently (no cap: one request per keyword × locale)
        and flatten the successful results. Order between queries is not defined.
        """
        if not queries:
            logger.info("news_collect_no_queries")
            return []

        results = await asyncio.gather(
            *(self.fetch_query(q) for q in queries),
            return_exceptions=True,
        )

        entries: List[RawFeedEntry] = []
        failed = 0
        for query, result in zip(queries, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.error(
                    "news_collect_query_crashed",
                    keyword=query.keyword,
                    locale=query.ceid,
                    error=str(result),
                )
                continue
            if not result:
                failed += 1
            entries.extend(result)

        logger.info(
            "news_collect_summary",
            total_queries=len(queries),
            empty_or_failed=failed,
            total_entries=len(entries),
        )
        return entries


async def collect_feeds(queries: Sequence[FeedQuery]) -> List[RawFeedEntry]:
    async with NewsCollectorService() as service:
        return await service.collect(queries)
