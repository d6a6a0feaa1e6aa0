# guardian_post/models/analysis.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =========================
# Enums
# =========================

class VisualKind(str, Enum):
    CHART = "chart"
    IMAGE = "image"
    INFOGRAPHIC = "infographic"


# =========================
# Models
# =========================

class VisualSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    # providers answer with "type" (the front-end contract), we store "kind"
    kind: VisualKind = Field(validation_alias=AliasChoices("kind", "type"))
    description: str
    prompt: str


class AnalysisResult(BaseModel):
    """
    One enrichment outcome for a news record. Immutable once created; a
    re-analysis produces a new value under the same news id.
    On disk and on the provider wire the keys are camelCase
    (suggestedVisuals, analyzedAt); both spellings are accepted on input.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    title: str
    summary: str
    content: str
    implications: List[str] = Field(default_factory=list)
    suggested_visuals: List[VisualSuggestion] = Field(default_factory=list)
    reliability: int = 0
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("reliability", mode="before")
    @classmethod
    def _clip_reliability(cls, v: Any) -> int:
        if v is None:
            return 0
        try:
            value = int(round(float(v)))
        except (TypeError, ValueError):
            raise ValueError("reliability must be a number")
        return max(0, min(100, value))

    @field_validator("implications", mode="before")
    @classmethod
    def _coerce_implications(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProviderAnalysis(BaseModel):
    """
    Shape the text-generation provider must return. `analyzed_at` is stamped
    by the orchestrator, never trusted from the provider.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)

    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    content: str = Field(min_length=1)
    implications: List[str] = Field(default_factory=list)
    suggested_visuals: List[VisualSuggestion] = Field(default_factory=list)
    reliability: int = Field(ge=0, le=100)

    def to_result(self, analyzed_at: Optional[datetime] = None) -> AnalysisResult:
        return AnalysisResult(
            title=self.title,
            summary=self.summary,
            content=self.content,
            implications=list(self.implications),
            suggested_visuals=list(self.suggested_visuals),
            reliability=self.reliability,
            analyzed_at=analyzed_at or datetime.now(timezone.utc),
        )


# =========================
# Validation helpers
# =========================

class AnalysisValidationError(ValueError):
    pass


def validate_analysis(data: Dict[str, Any]) -> AnalysisResult:
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AnalysisValidationError(str(e))


def validate_provider_analysis(data: Dict[str, Any]) -> ProviderAnalysis:
    try:
        return ProviderAnalysis.model_validate(data)
    except ValidationError as e:
        raise AnalysisValidationError(str(e))
