"""
Typed configuration for the chapter analysis engine.

Weights and thresholds live in one immutable ``AnalysisConfig`` passed to the
engine; nothing in the analyzer reads module-level tuning state. Every field
accepts its camelCase alias so payloads shaped like ``{"readingLevel": ...}``
validate directly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

PrincipleSet = Literal["learning-science", "evidence-weighted"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)


class PrincipleWeights(_CamelModel):
    """Static weight per principle, used in the overall weighted average."""

    deep_processing: float = Field(default=0.95, ge=0.0, le=1.0)
    retrieval_practice: float = Field(default=0.90, ge=0.0, le=1.0)
    schema_building: float = Field(default=0.90, ge=0.0, le=1.0)
    dual_coding: float = Field(default=0.85, ge=0.0, le=1.0)
    generative_learning: float = Field(default=0.85, ge=0.0, le=1.0)
    spaced_repetition: float = Field(default=0.80, ge=0.0, le=1.0)
    interleaving: float = Field(default=0.75, ge=0.0, le=1.0)
    worked_examples: float = Field(default=0.70, ge=0.0, le=1.0)
    metacognition: float = Field(default=0.65, ge=0.0, le=1.0, description="Self-explanation / metacognition.")
    elaboration: float = Field(default=0.60, ge=0.0, le=1.0)
    cognitive_load: float = Field(default=0.80, ge=0.0, le=1.0)
    emotion_and_relevance: float = Field(default=0.70, ge=0.0, le=1.0)

    def get(self, principle: str) -> float:
        """Look up a weight by camelCase principle id (``"deepProcessing"``) or field name."""
        for name, info in type(self).model_fields.items():
            if principle in (name, info.alias, to_camel(name)):
                return getattr(self, name)
        raise KeyError(f"Unknown principle {principle!r}")


class ExtractionSettings(_CamelModel):
    """Knobs for importance classification and relationship discovery."""

    core_per_thousand: float = Field(default=4.0, gt=0.0, description="Mentions per 1,000 words for core concepts.")
    core_min_mentions: int = Field(default=3, ge=1)
    supporting_per_thousand: float = Field(default=1.6, gt=0.0)
    supporting_min_mentions: int = Field(default=2, ge=1)
    cooccurrence_window: int = Field(default=150, ge=20, le=2000, description="Characters between co-occurring mentions.")
    max_concepts: Optional[int] = Field(default=None, ge=1, description="Cap on concepts; scales with length when unset.")

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "ExtractionSettings":
        if self.supporting_per_thousand > self.core_per_thousand:
            raise ValueError("supporting_per_thousand must not exceed core_per_thousand")
        if self.supporting_min_mentions > self.core_min_mentions:
            raise ValueError("supporting_min_mentions must not exceed core_min_mentions")
        return self


class AnalysisConfig(_CamelModel):
    """Top-level configuration consumed by the analysis engine."""

    domain: str = Field(default="general", description="Domain key selecting extra pattern detectors and a concept library.")
    reading_level: Optional[str] = None
    enable_visualization: bool = True
    concept_extraction_threshold: float = Field(default=0.45, gt=0.0, le=1.0)
    detailed_report: bool = False
    principle_set: PrincipleSet = "learning-science"
    weights: PrincipleWeights = Field(default_factory=PrincipleWeights)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    max_workers: int = Field(default=1, ge=1, le=32, description="1 runs every stage sequentially.")
    custom_concepts: Tuple[str, ...] = Field(
        default=(), description="Extra concept names always seeded as candidates (category \"Custom\")."
    )

    @field_validator("domain", mode="before")
    @classmethod
    def normalize_domain(cls, value: Any) -> Any:
        if value is None:
            return "general"
        if isinstance(value, str):
            return value.strip().lower() or "general"
        return value

    @field_validator("custom_concepts", mode="before")
    @classmethod
    def split_custom_concepts(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def load_analysis_config(path: Path) -> AnalysisConfig:
    """Parse an analysis YAML (optionally nested under ``analysis:``) into a typed model."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    if isinstance(data.get("analysis"), dict) and len(data) == 1:
        data = data["analysis"]
    try:
        return AnalysisConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid analysis config in {path}: {exc}") from exc


def _alias(key: str) -> str:
    return to_camel(key) if "_" in key else key


def merge_config_overrides(base: AnalysisConfig, overrides: Dict[str, Any]) -> AnalysisConfig:
    """
    Return a new AnalysisConfig by applying overrides on top of the base config.

    ``None`` values are ignored so CLI flags that were not passed leave the
    base untouched.
    """
    payload = base.model_dump(by_alias=True)
    payload.update({_alias(key): value for key, value in overrides.items() if value is not None})
    try:
        return AnalysisConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid overrides for AnalysisConfig: {exc}") from exc


__all__ = [
    "AnalysisConfig",
    "ExtractionSettings",
    "PrincipleSet",
    "PrincipleWeights",
    "load_analysis_config",
    "merge_config_overrides",
    "read_yaml_file",
]
