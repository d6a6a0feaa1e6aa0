import textwrap
from pathlib import Path

import pytest

from guardian_post.models.news_queries import (
    DEFAULT_KEYWORDS,
    clear_news_queries_cache,
    get_all_news_queries,
)


def _write_config(path: Path, content: str) -> None:
    path.write_text(textwrap.dedent(content).strip() + "\n", encoding="utf-8")


@pytest.fixture(autouse=True)
def _reset_cache():
    clear_news_queries_cache()
    yield
    clear_news_queries_cache()


def test_news_queries_cross_product(tmp_path):
    cfg = tmp_path / "news_queries.yml"
    _write_config(
        cfg,
        """
        version: 1
        locales:
          - language: "ko"
            country: "kr"
          - language: "en"
            country: "US"
        keywords:
          - "국방 AI"
          - "익산시"
        """,
    )

    queries = get_all_news_queries(path=cfg)
    assert len(queries) == 4
    assert queries[0].keyword == "국방 AI"
    assert queries[0].ceid == "KR:ko"
    assert {q.region for q in queries} == {"KR", "US"}


def test_news_queries_skip_invalid_entries(tmp_path):
    cfg = tmp_path / "news_queries.yml"
    _write_config(
        cfg,
        """
        locales:
          - language: "ko"
          - "not a mapping"
          - language: "ko"
            country: "KR"
        keywords:
          - ""
          - 42
          - "익산시"
          - "익산시"
        """,
    )

    queries = get_all_news_queries(path=cfg)
    assert [(q.keyword, q.ceid) for q in queries] == [("익산시", "KR:ko")]


def test_news_queries_missing_file_uses_defaults(tmp_path):
    queries = get_all_news_queries(path=tmp_path / "missing.yml")
    assert [q.keyword for q in queries] == list(DEFAULT_KEYWORDS)
    assert all(q.ceid == "KR:ko" for q in queries)


def test_news_queries_invalid_yaml_uses_defaults(tmp_path):
    cfg = tmp_path / "news_queries.yml"
    cfg.write_text("keywords: [unclosed", encoding="utf-8")
    queries = get_all_news_queries(path=cfg)
    assert len(queries) == len(DEFAULT_KEYWORDS)


def test_repository_config_loads():
    queries = get_all_news_queries()
    assert queries
    assert all(q.keyword for q in queries)
