from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from html import unescape
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from guardian_post.config import settings
from guardian_post.core.logging import get_logger
from guardian_post.models.news import NewsCategory, NewsRecord, RawFeedEntry

logger = get_logger().bind(module="news_normalization")

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

NEWS_ID_LENGTH = 16
ELLIPSIS = "..."
UNTITLED = "Untitled"

_UNSPLASH = "https://images.unsplash.com/{}?q=80&w=2070&auto=format&fit=crop"
IMAGE_AUTONOMOUS = _UNSPLASH.format("photo-1485827404703-89b55fcc595e")
IMAGE_DEFENSE = _UNSPLASH.format("photo-1626435307521-7b0b2f567086")
IMAGE_AI = _UNSPLASH.format("photo-1677442136019-21780ecad995")
IMAGE_FOOD_CLUSTER = _UNSPLASH.format("photo-1565793298595-6a879b1d9492")
IMAGE_REGIONAL = _UNSPLASH.format("photo-1517048676732-d65bc937f952")
IMAGE_DEFAULT = _UNSPLASH.format("photo-1504711434969-e33886168f5c")

AUTONOMOUS_TERMS: Tuple[str, ...] = ("자율주행", "로봇", "드론", "무인", "autonomous", "robot", "drone", "unmanned")
DEFENSE_TERMS: Tuple[str, ...] = (
    "국방", "방위", "방산", "군사", "육군", "해군", "공군", "부사관", "k-defense",
    "defense", "defence", "military", "army",
)
AI_TERMS: Tuple[str, ...] = ("인공지능", "ai")
FOOD_CLUSTER_TERMS: Tuple[str, ...] = ("식품", "푸드", "클러스터", "food", "cluster")
REGIONAL_TERMS: Tuple[str, ...] = ("익산", "시청", "지자체", "city")

# Ranked: first match wins.
THUMBNAIL_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (AUTONOMOUS_TERMS, IMAGE_AUTONOMOUS),
    (DEFENSE_TERMS, IMAGE_DEFENSE),
    (AI_TERMS, IMAGE_AI),
    (FOOD_CLUSTER_TERMS, IMAGE_FOOD_CLUSTER),
    (REGIONAL_TERMS, IMAGE_REGIONAL),
)

_ASCII_WORD_RE_CACHE: Dict[str, re.Pattern[str]] = {}


class NormalizationError(Exception):
    """
    Recoverable normalization failure for a single feed entry.
    Logged and counted; never aborts the batch.
    """

    def __init__(self, message: str, entry: RawFeedEntry | None = None):
        super().__init__(message)
        self.entry = entry


def make_news_id(source_url: str, fallback: str = "") -> str:
    """Stable id: SHA-256 over the canonical link (or fallback), hex prefix."""
    basis = (source_url or "").strip() or (fallback or "").strip()
    if not basis:
        raise NormalizationError("missing_id_basis")
    return hashlib.sha256(basis.encode("utf-8")).hexdigest()[:NEWS_ID_LENGTH]


def _strip_html(value: str) -> str:
    text = unescape(value or "")
    text = _HTML_TAG_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def truncate_summary(value: str, max_length: int | None = None) -> str:
    limit = max_length if max_length is not None else settings.SUMMARY_MAX_LENGTH
    value = _strip_html(value)
    if len(value) <= limit:
        return value
    return value[:limit].rstrip() + ELLIPSIS


def _matches(text: str, terms: Iterable[str]) -> bool:
    for term in terms:
        if term.isascii():
            # ASCII terms match on word boundaries ("ai" must not hit "said")
            pattern = _ASCII_WORD_RE_CACHE.get(term)
            if pattern is None:
                pattern = re.compile(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])")
                _ASCII_WORD_RE_CACHE[term] = pattern
            if pattern.search(text):
                return True
        elif term in text:
            return True
    return False


def infer_category(keyword: str) -> NewsCategory:
    if _matches(keyword.lower(), DEFENSE_TERMS):
        return NewsCategory.DEFENSE
    return NewsCategory.TECH


def extract_embedded_image(content_html: str) -> Optional[str]:
    if not content_html or "<img" not in content_html.lower():
        return None
    soup = BeautifulSoup(content_html, "html.parser")
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if src.startswith(("http://", "https://")):
            return src
    return None


def select_thumbnail(keyword: str, content_html: str = "") -> str:
    text = keyword.lower()
    for terms, image in THUMBNAIL_RULES:
        if _matches(text, terms):
            return image
    return extract_embedded_image(content_html) or IMAGE_DEFAULT


def _split_google_title(title: str) -> Tuple[str, Optional[str]]:
    # Google News titles carry the publisher as a " - Publisher" suffix
    head, sep, tail = title.rpartition(" - ")
    if sep and head.strip() and tail.strip():
        return head.strip(), tail.strip()
    return title, None


def build_publisher(region: str, source_name: Optional[str]) -> str:
    return f"[{region}] {source_name or 'Google News'}"


def normalize_entry(entry: RawFeedEntry, collected_at: Optional[datetime] = None) -> NewsRecord:
    """
    Map one raw feed entry to a NewsRecord. Pure apart from the default
    collection timestamp.
    """
    collected = collected_at or datetime.now(timezone.utc)
    raw_title = _strip_html(entry.title)
    if not raw_title and not entry.link:
        raise NormalizationError("missing_title_and_link", entry=entry)

    display_title, title_source = _split_google_title(raw_title) if raw_title else ("", None)
    source_url = entry.link or entry.guid
    news_id = make_news_id(source_url, fallback=raw_title)

    summary_source = entry.snippet or entry.content_html or display_title
    summary = truncate_summary(summary_source)

    return NewsRecord(
        id=news_id,
        title=display_title or UNTITLED,
        summary=summary or display_title or "No summary",
        source_url=source_url or "#",
        publisher=build_publisher(entry.query.region, entry.source_name or title_source),
        published_at=entry.published_at or collected,
        collected_at=collected,
        keywords=[entry.keyword],
        thumbnail_url=select_thumbnail(entry.keyword, entry.content_html),
        category=infer_category(entry.keyword),
    )


def dedupe_by_title(records: Sequence[NewsRecord]) -> List[NewsRecord]:
    """
    Exact-title dedup, first seen wins. Keywords of dropped duplicates are
    merged into the survivor. Placeholder-titled records dedup by id instead.
    """
    survivors: Dict[str, NewsRecord] = {}
    for record in records:
        key = f"id:{record.id}" if record.title == UNTITLED else record.title
        existing = survivors.get(key)
        if existing is None:
            survivors[key] = record
            continue
        merged = list(existing.keywords)
        for kw in record.keywords:
            if kw not in merged:
                merged.append(kw)
        if merged != existing.keywords:
            survivors[key] = existing.model_copy(update={"keywords": merged})
    return list(survivors.values())


def sort_by_recency(records: Iterable[NewsRecord]) -> List[NewsRecord]:
    return sorted(records, key=lambda r: r.published_at, reverse=True)


def normalize_entries(
    entries: Iterable[RawFeedEntry],
    collected_at: Optional[datetime] = None,
) -> List[NewsRecord]:
    """Normalize, dedup by title, sort newest first."""
    collected = collected_at or datetime.now(timezone.utc)
    records: List[NewsRecord] = []
    errors = 0
    for entry in entries:
        try:
            records.append(normalize_entry(entry, collected))
        except NormalizationError as err:
            errors += 1
            logger.debug("news_normalization_entry_skipped", keyword=entry.keyword, error=str(err))
        except Exception as exc:
            errors += 1
            logger.warning("news_normalization_entry_failed", keyword=entry.keyword, error=str(exc))

    unique = dedupe_by_title(records)
    result = sort_by_recency(unique)
    logger.info(
        "news_normalization_summary",
        entries=len(records) + errors,
        normalized=len(records),
        errors=errors,
        duplicates=len(records) - len(unique),
        returned=len(result),
    )
    return result
