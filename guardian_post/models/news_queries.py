"""
Feed query registry loader.

Parses configs/news_queries.yml into FeedQuery objects (one per
keyword × locale) with structlog-backed validation and caching.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from guardian_post.config import settings
from guardian_post.core.logging import get_logger
from guardian_post.models.news import FeedQuery

logger = get_logger()

DEFAULT_LOCALES: Tuple[Tuple[str, str], ...] = (("ko", "KR"),)
DEFAULT_KEYWORDS: Tuple[str, ...] = (
    "국방 AI",
    "익산시",
    "K-Defense",
    "육군부사관학교",
    "국가식품클러스터",
    "자율주행 로봇",
)


def load_news_queries_config(path: Optional[Path] = None) -> Dict[str, object]:
    """
    Load raw YAML config.

    Returns empty dict if file is missing or invalid so collection keeps running.
    """
    cfg_path = Path(path) if path else settings.NEWS_QUERIES_PATH
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("news_queries_config_not_found", path=str(cfg_path))
        return {}
    except OSError as exc:
        logger.error("news_queries_config_read_error", path=str(cfg_path), error=str(exc))
        return {}

    try:
        data = yaml.safe_load(text) or {}
    except Exception as exc:
        logger.error("news_queries_config_parse_error", path=str(cfg_path), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.error(
            "news_queries_config_invalid_root",
            path=str(cfg_path),
            root_type=type(data).__name__,
        )
        return {}
    return data


def _validate_locale(raw: Any, idx: int) -> Optional[Tuple[str, str]]:
    if not isinstance(raw, dict):
        logger.warning("news_query_invalid_locale_type", index=idx, value_type=type(raw).__name__)
        return None
    language = str(raw.get("language") or "").strip().lower()
    country = str(raw.get("country") or "").strip().upper()
    if not language or not country:
        logger.warning("news_query_invalid_locale", index=idx, raw=raw)
        return None
    return language, country


def _validate_keyword(raw: Any, idx: int) -> Optional[str]:
    if not isinstance(raw, str) or not raw.strip():
        logger.warning("news_query_invalid_keyword", index=idx, value=raw)
        return None
    return raw.strip()


def build_queries(keywords: List[str], locales: List[Tuple[str, str]]) -> List[FeedQuery]:
    """Cross product keyword × locale, duplicates removed, input order kept."""
    seen = set()
    queries: List[FeedQuery] = []
    for keyword in keywords:
        for language, country in locales:
            key = (keyword, language, country)
            if key in seen:
                continue
            seen.add(key)
            queries.append(FeedQuery(keyword=keyword, language=language, country=country))
    return queries


@lru_cache(maxsize=8)
def _load_queries_from_path(path_str: str) -> List[FeedQuery]:
    cfg = load_news_queries_config(Path(path_str))

    raw_locales = cfg.get("locales")
    raw_keywords = cfg.get("keywords")

    locales: List[Tuple[str, str]] = []
    if isinstance(raw_locales, list):
        for idx, raw in enumerate(raw_locales):
            parsed = _validate_locale(raw, idx)
            if parsed:
                locales.append(parsed)
    elif raw_locales is not None:
        logger.error("news_queries_invalid_locales_type", actual_type=type(raw_locales).__name__)

    keywords: List[str] = []
    if isinstance(raw_keywords, list):
        for idx, raw in enumerate(raw_keywords):
            parsed_kw = _validate_keyword(raw, idx)
            if parsed_kw:
                keywords.append(parsed_kw)
    elif raw_keywords is not None:
        logger.error("news_queries_invalid_keywords_type", actual_type=type(raw_keywords).__name__)

    if not locales:
        locales = list(DEFAULT_LOCALES)
    if not keywords:
        keywords = list(DEFAULT_KEYWORDS)

    queries = build_queries(keywords, locales)
    logger.info(
        "news_queries_loaded",
        path=path_str,
        keywords=len(keywords),
        locales=len(locales),
        total=len(queries),
    )
    return queries


def get_all_news_queries(path: Optional[Path] = None) -> List[FeedQuery]:
    """
    Public accessor for all feed queries.

    Accepts optional path (useful for tests). Results are cached per-path.
    """
    cfg_path = Path(path) if path else settings.NEWS_QUERIES_PATH
    return list(_load_queries_from_path(str(cfg_path.resolve())))


def clear_news_queries_cache() -> None:
    """Reset LRU cache (useful for tests)."""
    _load_queries_from_path.cache_clear()
