"""
Analysis orchestrator.

analyze(news_id, seed_text):
    1. cache hit            -> cached result, no provider call
    2. provider unconfigured -> fallback
    3. provider raced against the timeout budget:
         success in time -> provider result
         timeout         -> provider call cancelled, fallback
         error           -> fallback
Every computed result is written through to the cache. Provider and cache
problems never reach the caller.

Concurrent calls for the same uncached id share one in-flight task
(single-flight). A forced re-analysis always starts its own task and
replaces the in-flight one; a superseded task still answers its callers but
does not write the cache.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from guardian_post.config import settings
from guardian_post.core.logging import get_logger
from guardian_post.models.analysis import AnalysisResult
from guardian_post.services.analysis_cache_service import AnalysisCache
from guardian_post.services.analysis_fallback import generate_fallback_analysis
from guardian_post.services.analysis_provider import Configured, Provider, Unconfigured

logger = get_logger().bind(module="analysis_orchestrator")

FallbackGenerator = Callable[[str], AnalysisResult]


class AnalysisOrchestrator:
    def __init__(
        self,
        cache: AnalysisCache,
        provider: Provider,
        *,
        timeout_s: Optional[float] = None,
        fallback: FallbackGenerator = generate_fallback_analysis,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.timeout_s = timeout_s if timeout_s is not None else settings.ANALYSIS_TIMEOUT_S
        self._fallback = fallback
        self._inflight: Dict[str, asyncio.Task] = {}

    async def analyze(self, news_id: str, seed_text: str, *, force: bool = False) -> AnalysisResult:
        if not force:
            cached = self._cache_get(news_id)
            if cached is not None:
                logger.debug("analysis_cache_hit", news_id=news_id)
                return cached

            pending = self._inflight.get(news_id)
            if pending is not None:
                logger.debug("analysis_join_inflight", news_id=news_id)
                return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._compute(news_id, seed_text))
        # a forced task supersedes any in-flight one; only the current task writes
        self._inflight[news_id] = task
        task.add_done_callback(lambda t: self._release(news_id, t))
        # shield: a cancelled caller must not cancel work other callers share
        return await asyncio.shield(task)

    def _release(self, news_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(news_id) is task:
            del self._inflight[news_id]

    async def _compute(self, news_id: str, seed_text: str) -> AnalysisResult:
        t0 = time.perf_counter()
        provider = self.provider
        source = "provider"

        if isinstance(provider, Unconfigured):
            source = "fallback_unconfigured"
            result = self._safe_fallback(seed_text)
        elif isinstance(provider, Configured):
            try:
                analysis = await asyncio.wait_for(
                    provider.client.analyze(news_id, seed_text),
                    timeout=self.timeout_s,
                )
                result = analysis.to_result(datetime.now(timezone.utc))
            except asyncio.TimeoutError:
                source = "fallback_timeout"
                logger.warning("analysis_provider_timeout", news_id=news_id, timeout_s=self.timeout_s)
                result = self._safe_fallback(seed_text)
            except Exception as exc:
                source = "fallback_error"
                logger.warning("analysis_provider_failed", news_id=news_id, error=str(exc))
                result = self._safe_fallback(seed_text)
        else:
            source = "fallback_unknown_provider"
            logger.error("analysis_provider_unknown_variant", provider_type=type(provider).__name__)
            result = self._safe_fallback(seed_text)

        if self._inflight.get(news_id) is asyncio.current_task():
            self._cache_set(news_id, result)
        else:
            logger.info("analysis_superseded", news_id=news_id, source=source)
        logger.info(
            "analysis_completed",
            news_id=news_id,
            source=source,
            reliability=result.reliability,
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return result

    def _safe_fallback(self, seed_text: str) -> AnalysisResult:
        try:
            return self._fallback(seed_text)
        except Exception as exc:
            logger.error("analysis_fallback_failed", error=str(exc))
            return generate_fallback_analysis(seed_text)

    def _cache_get(self, news_id: str) -> Optional[AnalysisResult]:
        try:
            return self.cache.get(news_id)
        except Exception as exc:
            logger.error("analysis_cache_get_failed", news_id=news_id, error=str(exc))
            return None

    def _cache_set(self, news_id: str, result: AnalysisResult) -> None:
        try:
            self.cache.set(news_id, result)
        except Exception as exc:
            logger.error("analysis_cache_set_failed", news_id=news_id, error=str(exc))
