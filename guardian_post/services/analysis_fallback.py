"""
Deterministic synthetic analysis.

Used when the provider is unconfigured, fails, or misses the latency budget.
Output depends only on the seed text (plus the `analyzed_at` stamp), carries a
fixed title prefix and a fixed reliability in the lower-confidence band so it
can always be told apart from a provider analysis.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from guardian_post.models.analysis import AnalysisResult, VisualKind, VisualSuggestion

FALLBACK_TITLE_PREFIX = "[Auto Analysis] "
FALLBACK_RELIABILITY = 85
FALLBACK_RELIABILITY_BAND = (80, 95)

WORKING_TITLE_MAX = 60
WORKING_SUMMARY_MAX = 200

FALLBACK_IMPLICATIONS = (
    "Automated summary: verify key facts against the original article before publishing.",
    "Track follow-up coverage to confirm how the story develops.",
    "Assess the regional and industry impact once an in-depth analysis is available.",
)


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def split_seed(seed_text: str) -> Tuple[str, str]:
    """First non-empty line is the working title, the rest the working summary."""
    lines = [line.strip() for line in (seed_text or "").splitlines() if line.strip()]
    if not lines:
        return "Untitled", "Untitled"
    title = _clip(lines[0], WORKING_TITLE_MAX)
    rest = " ".join(lines[1:])
    summary = _clip(rest, WORKING_SUMMARY_MAX) if rest else title
    return title, summary


def _content(title: str, summary: str) -> str:
    return "\n".join([
        "## Background",
        "",
        f"{title}: {summary}",
        "",
        "## Core Analysis",
        "",
        "This report was generated automatically from the article headline and summary. "
        "The key facts are limited to what the original coverage states.",
        "",
        "## Why It Matters",
        "",
        "The development touches on regional industry, technology and security policy, "
        "and may shape follow-up decisions by the institutions involved.",
        "",
        "## Outlook",
        "",
        "A full analysis will be produced once the analysis service is available; "
        "until then treat this report as a preliminary briefing.",
    ])


def _visuals(title: str) -> List[VisualSuggestion]:
    return [
        VisualSuggestion(
            kind=VisualKind.CHART,
            description=f"Key figures related to: {title}",
            prompt=f"Clean line chart summarising the key figures behind '{title}', professional style, blue and grey colors",
        ),
        VisualSuggestion(
            kind=VisualKind.IMAGE,
            description=f"Illustrative photo for: {title}",
            prompt=f"Editorial news photograph illustrating '{title}', photorealistic, neutral lighting",
        ),
    ]


def generate_fallback_analysis(seed_text: str, *, analyzed_at: Optional[datetime] = None) -> AnalysisResult:
    title, summary = split_seed(seed_text)
    return AnalysisResult(
        title=f"{FALLBACK_TITLE_PREFIX}{title}",
        summary=summary,
        content=_content(title, summary),
        implications=list(FALLBACK_IMPLICATIONS),
        suggested_visuals=_visuals(title),
        reliability=FALLBACK_RELIABILITY,
        analyzed_at=analyzed_at or datetime.now(timezone.utc),
    )


def is_fallback_analysis(result: AnalysisResult) -> bool:
    return result.title.startswith(FALLBACK_TITLE_PREFIX)
