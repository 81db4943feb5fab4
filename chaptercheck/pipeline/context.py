"""Shared context objects for an analysis run."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from apps.analyzer.engine import AnalysisEngine
from chaptercheck.core.config import AnalysisConfig
from chaptercheck.core.provenance import ProvenanceLogger


class AnalysisContext(BaseModel):
    """Resolved configuration plus run-scoped collaborators."""

    config: AnalysisConfig
    repo_root: Path
    config_path: Optional[Path] = None
    env: Dict[str, str] = Field(default_factory=dict)
    provenance: Optional[ProvenanceLogger] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("repo_root", mode="before")
    @classmethod
    def _expand(cls, value: Path | str) -> Path:
        return Path(value).expanduser().resolve()

    def build_engine(self) -> AnalysisEngine:
        """Return an ``AnalysisEngine`` bound to this context."""
        return AnalysisEngine(self.config, provenance=self.provenance)


__all__ = ["AnalysisContext"]
