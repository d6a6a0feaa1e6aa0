"""Tests for the Google News feed collector."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from guardian_post.models.news import FeedQuery
from guardian_post.services.news_collector_service import (
    FeedFetchError,
    NewsCollectorService,
    build_google_news_url,
    parse_feed,
)

RSS_XML = """<?xml version="1.0"?>
<rss version="2.0">
    <channel>
        <title>"국방 AI" - Google News</title>
        <item>
            <title>익산시, 국방 AI 센터 유치 - 연합뉴스</title>
            <link>https://news.example.com/articles/1</link>
            <guid>guid-1</guid>
            <description>&lt;a href="https://news.example.com/articles/1"&gt;익산시 국방 AI&lt;/a&gt;</description>
            <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
            <source url="https://www.yna.co.kr">연합뉴스</source>
        </item>
        <item>
            <title>Second item</title>
            <link>https://news.example.com/articles/2</link>
        </item>
    </channel>
</rss>
"""

QUERY = FeedQuery(keyword="국방 AI", language="ko", country="KR")


def test_build_google_news_url():
    url = build_google_news_url(QUERY)
    assert url.startswith("https://news.google.com/rss/search?q=")
    assert "hl=ko" in url
    assert "gl=KR" in url
    assert "ceid=KR:ko" in url
    assert "%EA%B5%AD%EB%B0%A9+AI" in url


def test_parse_feed_maps_entries():
    entries = parse_feed(RSS_XML, QUERY)
    assert len(entries) == 2
    first = entries[0]
    assert first.keyword == "국방 AI"
    assert first.link == "https://news.example.com/articles/1"
    assert first.title.startswith("익산시")
    assert first.source_name == "연합뉴스"
    assert first.published_at == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert "익산시 국방 AI" in first.snippet

    second = entries[1]
    assert second.published_at is None
    assert second.snippet == ""
    assert second.source_name is None


def test_parse_feed_respects_limit():
    assert len(parse_feed(RSS_XML, QUERY, limit=1)) == 1


def test_parse_feed_malformed_raises():
    with pytest.raises(FeedFetchError):
        parse_feed("<<<not xml at all", QUERY)


@pytest.mark.asyncio
async def test_fetch_query_success_with_patched_client():
    mock_response = MagicMock()
    mock_response.text = RSS_XML
    mock_response.raise_for_status = MagicMock()

    with patch("httpx.AsyncClient") as mock_client:
        mock_client.return_value.get = AsyncMock(return_value=mock_response)
        mock_client.return_value.aclose = AsyncMock()

        async with NewsCollectorService() as service:
            entries = await service.fetch_query(QUERY)

        assert len(entries) == 2
        called_url = mock_client.return_value.get.call_args.args[0]
        assert "ceid=KR:ko" in called_url
        mock_client.return_value.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_fetch_query_http_error_returns_empty():
    with patch("httpx.AsyncClient") as mock_client:
        mock_client.return_value.get = AsyncMock(side_effect=httpx.HTTPError("Connection error"))
        mock_client.return_value.aclose = AsyncMock()

        async with NewsCollectorService() as service:
            entries = await service.fetch_query(QUERY)

        assert entries == []


@pytest.mark.asyncio
async def test_collect_isolates_failing_feeds():
    def handler(request: httpx.Request) -> httpx.Response:
        q = request.url.params.get("q")
        if q == "broken":
            return httpx.Response(503, text="unavailable")
        if q == "garbage":
            return httpx.Response(200, text="<<<not xml")
        return httpx.Response(200, text=RSS_XML)

    queries = [
        QUERY,
        FeedQuery(keyword="broken", language="ko", country="KR"),
        FeedQuery(keyword="garbage", language="ko", country="KR"),
        FeedQuery(keyword="익산시", language="en", country="US"),
    ]
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    try:
        async with NewsCollectorService(client=client) as service:
            entries = await service.collect(queries)
    finally:
        await client.aclose()

    assert len(entries) == 4
    assert {e.keyword for e in entries} == {"국방 AI", "익산시"}
    assert {e.query.region for e in entries} == {"KR", "US"}


@pytest.mark.asyncio
async def test_collect_all_failing_returns_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    try:
        async with NewsCollectorService(client=client) as service:
            entries = await service.collect([QUERY])
    finally:
        await client.aclose()

    assert entries == []


@pytest.mark.asyncio
async def test_collect_no_queries():
    async with NewsCollectorService(client=MagicMock()) as service:
        assert await service.collect([]) == []
