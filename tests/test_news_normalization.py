from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from guardian_post.models.news import FeedQuery, NewsCategory, NewsStatus, RawFeedEntry
from guardian_post.services.news_normalization import (
    IMAGE_AI,
    IMAGE_AUTONOMOUS,
    IMAGE_DEFAULT,
    IMAGE_DEFENSE,
    IMAGE_FOOD_CLUSTER,
    IMAGE_REGIONAL,
    NEWS_ID_LENGTH,
    UNTITLED,
    NormalizationError,
    make_news_id,
    normalize_entries,
    normalize_entry,
    select_thumbnail,
    truncate_summary,
)

KR = dict(language="ko", country="KR")
COLLECTED_AT = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entry(keyword: str = "국방 AI", **kwargs) -> RawFeedEntry:
    defaults = dict(
        link="https://example.com/news/1",
        title="Headline one - Yonhap",
        snippet="<p>Some summary text</p>",
        published_at=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return RawFeedEntry(query=FeedQuery(keyword=keyword, **KR), **defaults)


def test_id_is_stable_for_same_link():
    a = normalize_entry(_entry(title="A - X"), COLLECTED_AT)
    b = normalize_entry(_entry(title="B - Y", keyword="익산시"), COLLECTED_AT + timedelta(days=3))
    assert a.id == b.id
    assert len(a.id) == NEWS_ID_LENGTH
    assert a.id == make_news_id("https://example.com/news/1")


def test_id_differs_for_different_links():
    a = normalize_entry(_entry(link="https://example.com/a"), COLLECTED_AT)
    b = normalize_entry(_entry(link="https://example.com/b"), COLLECTED_AT)
    assert a.id != b.id


def test_id_falls_back_to_guid_when_link_missing():
    rec = normalize_entry(_entry(link="", guid="tag:news.google.com,2025:abc"), COLLECTED_AT)
    assert rec.id == make_news_id("tag:news.google.com,2025:abc")
    assert rec.source_url == "tag:news.google.com,2025:abc"


def test_entry_without_title_and_link_is_rejected():
    with pytest.raises(NormalizationError):
        normalize_entry(_entry(link="", title=""), COLLECTED_AT)


def test_record_defaults_and_publisher():
    rec = normalize_entry(_entry(), COLLECTED_AT)
    assert rec.title == "Headline one"
    assert rec.publisher == "[KR] Yonhap"
    assert rec.status == NewsStatus.PENDING
    assert rec.reliability == 0
    assert rec.keywords == ["국방 AI"]
    assert rec.summary == "Some summary text"
    assert rec.collected_at == COLLECTED_AT


def test_publisher_prefers_feed_source_name():
    rec = normalize_entry(_entry(source_name="KBS News"), COLLECTED_AT)
    assert rec.publisher == "[KR] KBS News"


def test_publisher_default_when_no_source():
    rec = normalize_entry(_entry(title="Plain headline"), COLLECTED_AT)
    assert rec.publisher == "[KR] Google News"


def test_published_at_defaults_to_collection_time():
    rec = normalize_entry(_entry(published_at=None), COLLECTED_AT)
    assert rec.published_at == COLLECTED_AT


def test_summary_truncated_with_ellipsis():
    text = "가" * 500
    out = truncate_summary(text, max_length=150)
    assert out.endswith("...")
    assert len(out) == 153
    assert truncate_summary("short", max_length=150) == "short"


@pytest.mark.parametrize(
    "keyword,expected",
    [
        ("자율주행 로봇", IMAGE_AUTONOMOUS),
        ("국방 드론", IMAGE_AUTONOMOUS),
        ("국방 AI", IMAGE_DEFENSE),
        ("K-Defense", IMAGE_DEFENSE),
        ("AI 반도체", IMAGE_AI),
        ("국가식품클러스터", IMAGE_FOOD_CLUSTER),
        ("익산시", IMAGE_REGIONAL),
    ],
)
def test_thumbnail_ranking(keyword, expected):
    assert select_thumbnail(keyword, '<img src="https://cdn.example.com/x.jpg">') == expected


def test_thumbnail_uses_embedded_image_then_default():
    html = '<p>text</p><img src="https://cdn.example.com/photo.jpg" alt="">'
    assert select_thumbnail("반도체 수출", html) == "https://cdn.example.com/photo.jpg"
    assert select_thumbnail("반도체 수출", "<p>no image</p>") == IMAGE_DEFAULT
    assert select_thumbnail("반도체 수출", "") == IMAGE_DEFAULT


def test_ai_term_matches_whole_word_only():
    assert select_thumbnail("said rainfall", "") == IMAGE_DEFAULT


def test_category_inference():
    assert normalize_entry(_entry(keyword="육군부사관학교"), COLLECTED_AT).category == NewsCategory.DEFENSE
    assert normalize_entry(_entry(keyword="자율주행 로봇"), COLLECTED_AT).category == NewsCategory.TECH


def test_dedup_by_title_keeps_first_seen_and_merges_keywords():
    entries = [
        _entry(link="https://a.example/1", title="Same headline - A", keyword="국방 AI"),
        _entry(link="https://b.example/2", title="Same headline - B", keyword="익산시"),
        _entry(link="https://c.example/3", title="Other headline - C"),
    ]
    records = normalize_entries(entries, COLLECTED_AT)
    titles = [r.title for r in records]
    assert titles.count("Same headline") == 1
    survivor = next(r for r in records if r.title == "Same headline")
    assert survivor.source_url == "https://a.example/1"
    assert survivor.keywords == ["국방 AI", "익산시"]
    assert len(records) == 2


def test_sorted_by_published_at_descending():
    t1 = datetime(2025, 3, 3, tzinfo=timezone.utc)
    t2 = datetime(2025, 3, 2, tzinfo=timezone.utc)
    t3 = datetime(2025, 3, 1, tzinfo=timezone.utc)
    entries = [
        _entry(link="https://x/2", title="two", published_at=t2),
        _entry(link="https://x/3", title="three", published_at=t3),
        _entry(link="https://x/1", title="one", published_at=t1),
    ]
    records = normalize_entries(entries, COLLECTED_AT)
    assert [r.published_at for r in records] == [t1, t2, t3]


def test_invalid_entries_are_skipped_not_fatal():
    entries = [
        _entry(link="", title=""),
        _entry(link="https://x/ok", title="ok"),
    ]
    records = normalize_entries(entries, COLLECTED_AT)
    assert [r.title for r in records] == ["ok"]


def test_thumbnail_follows_keyword_not_title():
    rec = normalize_entry(_entry(keyword="반도체", title="국방부 드론 시범 운영 - 연합", snippet="text"), COLLECTED_AT)
    assert rec.thumbnail_url == IMAGE_DEFAULT

    rec = normalize_entry(_entry(keyword="드론", title="반도체 수출 호조 - 연합"), COLLECTED_AT)
    assert rec.thumbnail_url == IMAGE_AUTONOMOUS


def test_untitled_entries_with_distinct_links_are_kept():
    entries = [
        _entry(link="https://x/1", title=""),
        _entry(link="https://x/2", title=""),
        _entry(link="https://x/3", title=""),
        _entry(link="https://x/1", title="", keyword="익산시"),
    ]
    records = normalize_entries(entries, COLLECTED_AT)
    assert len(records) == 3
    assert all(r.title == UNTITLED for r in records)
    first = next(r for r in records if r.source_url == "https://x/1")
    assert first.keywords == ["국방 AI", "익산시"]
