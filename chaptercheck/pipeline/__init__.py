"""Pipeline bootstrap utilities for ChapterCheck."""

from __future__ import annotations

from .bootstrap import bootstrap_analysis
from .context import AnalysisContext

__all__ = ["AnalysisContext", "bootstrap_analysis"]
