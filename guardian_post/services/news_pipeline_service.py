from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from guardian_post.core.logging import get_logger
from guardian_post.models.analysis import AnalysisResult
from guardian_post.models.news import FeedQuery, NewsRecord, NewsStats, NewsStatus
from guardian_post.models.news_queries import get_all_news_queries
from guardian_post.services.analysis_cache_service import AnalysisCache
from guardian_post.services.analysis_fallback import generate_fallback_analysis
from guardian_post.services.analysis_orchestrator import AnalysisOrchestrator
from guardian_post.services.analysis_provider import Provider, get_analysis_provider
from guardian_post.services.news_collector_service import NewsCollectorService
from guardian_post.services.news_normalization import normalize_entries

logger = get_logger().bind(module="news_pipeline_service")

CollectorFactory = Callable[[], Any]


class NewsPipelineService:
    """
    Collector -> normalizer -> eager analysis of every record.
    The consumer-facing operations (list_news, analyze_one, news_stats) never
    raise; the worst case is an empty list or a synthetic analysis.
    """

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        *,
        queries: Optional[Sequence[FeedQuery]] = None,
        queries_path: Optional[Path] = None,
        collector_factory: CollectorFactory = NewsCollectorService,
    ) -> None:
        self.orchestrator = orchestrator
        self._queries = list(queries) if queries is not None else None
        self._queries_path = queries_path
        self._collector_factory = collector_factory
        self._records: List[NewsRecord] = []
        self._collected_once = False

    def _resolve_queries(self) -> List[FeedQuery]:
        if self._queries is not None:
            return list(self._queries)
        return get_all_news_queries(path=self._queries_path)

    async def _collect_records(self) -> List[NewsRecord]:
        queries = self._resolve_queries()
        async with self._collector_factory() as collector:
            entries = await collector.collect(queries)
        return normalize_entries(entries)

    async def _enrich_all(self, records: Sequence[NewsRecord]) -> int:
        results = await asyncio.gather(
            *(self.orchestrator.analyze(r.id, r.seed_text()) for r in records),
            return_exceptions=True,
        )
        failed = 0
        for record, result in zip(records, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.warning("news_pipeline_enrich_failed", news_id=record.id, error=str(result))
        return failed

    def _with_reliability(self, records: Sequence[NewsRecord]) -> List[NewsRecord]:
        out: List[NewsRecord] = []
        for record in records:
            cached = self.get_analysis(record.id)
            if cached is not None and cached.reliability != record.reliability:
                record = record.model_copy(update={"reliability": cached.reliability})
            out.append(record)
        return out

    async def collect_and_enrich_all(self, *, enrich: bool = True) -> List[NewsRecord]:
        try:
            records = await self._collect_records()
        except Exception as exc:
            logger.error("news_pipeline_collect_failed", error=str(exc))
            records = []

        failed = 0
        if enrich and records:
            try:
                failed = await self._enrich_all(records)
            except Exception as exc:
                logger.error("news_pipeline_enrich_batch_failed", error=str(exc))
                failed = len(records)
            records = self._with_reliability(records)

        self._records = records
        self._collected_once = True
        logger.info(
            "news_pipeline_summary",
            records=len(records),
            enriched=enrich,
            enrich_failed=failed,
        )
        return list(records)

    async def list_news(self, *, refresh: bool = False) -> List[NewsRecord]:
        if refresh or not self._collected_once:
            return await self.collect_and_enrich_all()
        return list(self._records)

    async def analyze_one(self, news_id: str, seed_text: str, *, force: bool = False) -> AnalysisResult:
        try:
            return await self.orchestrator.analyze(news_id, seed_text, force=force)
        except Exception as exc:
            logger.error("news_pipeline_analyze_failed", news_id=news_id, error=str(exc))
            return generate_fallback_analysis(seed_text)

    def get_analysis(self, news_id: str) -> Optional[AnalysisResult]:
        try:
            return self.orchestrator.cache.get(news_id)
        except Exception as exc:
            logger.error("news_pipeline_cache_read_failed", news_id=news_id, error=str(exc))
            return None

    def news_stats(self, now: Optional[datetime] = None) -> NewsStats:
        today = (now or datetime.now(timezone.utc)).date()
        records = self._records
        return NewsStats(
            total_collected=len(records),
            analyzing=sum(1 for r in records if r.status == NewsStatus.ANALYZING),
            approved=sum(1 for r in records if r.status == NewsStatus.APPROVED),
            today_count=sum(1 for r in records if r.published_at.astimezone(timezone.utc).date() == today),
            analyzed=sum(1 for r in records if self.get_analysis(r.id) is not None),
        )


def build_pipeline(
    *,
    cache_path: Optional[Path] = None,
    queries_path: Optional[Path] = None,
    provider: Optional[Provider] = None,
    timeout_s: Optional[float] = None,
) -> NewsPipelineService:
    """Wire cache, provider and orchestrator from settings."""
    cache = AnalysisCache(cache_path)
    cache.load()
    orchestrator = AnalysisOrchestrator(
        cache,
        provider if provider is not None else get_analysis_provider(),
        timeout_s=timeout_s,
    )
    return NewsPipelineService(orchestrator, queries_path=queries_path)
