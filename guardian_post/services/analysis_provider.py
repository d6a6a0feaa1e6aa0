# -*- coding: utf-8 -*-
"""
Analysis provider selection.
- A provider is either Configured (wraps a client that can analyze seed text)
  or Unconfigured (no key, or explicitly disabled).
- The orchestrator branches on the variant instead of on a nullable client.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

from guardian_post.config import settings
from guardian_post.core.logging import get_logger
from guardian_post.models.analysis import ProviderAnalysis
from guardian_post.services.openai_service import OpenAIService, ProviderError

logger = get_logger().bind(module="analysis_provider")

SYSTEM_PROMPT = (
    "You are an AI journalist for a regional defense and technology news desk.\n"
    "Given a news headline and its summary, write an in-depth analytical report.\n"
    "Return ONLY valid JSON with the keys:\n"
    '  "title": sharp analytical headline,\n'
    '  "summary": 2-3 sentence summary,\n'
    '  "content": markdown report with sections (background, core analysis, why it matters, outlook),\n'
    '  "implications": list of 3 short strategic implications,\n'
    '  "suggestedVisuals": list of {"type": one of ["chart","image","infographic"], "description", "prompt"},\n'
    '  "reliability": integer 0-100, your confidence in the factual grounding.\n'
    "Write in the language of the input. Never invent figures that are not in the input."
)


class AnalysisClient(Protocol):
    async def analyze(self, news_id: str, seed_text: str) -> ProviderAnalysis: ...


class OpenAIAnalysisClient:
    """Adapter: seed text in, validated ProviderAnalysis out, ProviderError otherwise."""

    def __init__(self, service: OpenAIService) -> None:
        self._service = service

    @property
    def model(self) -> str:
        return self._service.model

    async def analyze(self, news_id: str, seed_text: str) -> ProviderAnalysis:
        parsed, _meta = await self._service.generate_json(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=seed_text,
            response_model=ProviderAnalysis,
            action_type="news.analyze",
            news_id=news_id,
        )
        if not isinstance(parsed, ProviderAnalysis):
            raise ProviderError("unexpected response model")
        return parsed


@dataclass(frozen=True)
class Configured:
    client: AnalysisClient


@dataclass(frozen=True)
class Unconfigured:
    reason: str


Provider = Union[Configured, Unconfigured]


def get_analysis_provider() -> Provider:
    """
    Resolve the analysis provider from settings.

    Returns:
        Configured(OpenAIAnalysisClient) when enabled and a key is present
        Unconfigured(reason) otherwise; misconfiguration never raises.
    """
    if not settings.ANALYSIS_PROVIDER_ENABLED:
        return Unconfigured(reason="disabled")
    api_key = settings.OPENAI_API_KEY
    if not api_key:
        logger.warning("analysis_provider_missing_api_key")
        return Unconfigured(reason="missing_api_key")

    service = OpenAIService(
        api_key=api_key,
        model=settings.OPENAI_MODEL,
        timeout_s=max(1.0, settings.ANALYSIS_TIMEOUT_S * 4),
    )
    return Configured(client=OpenAIAnalysisClient(service))
