"""
Configuration, validation and provenance utilities for ChapterCheck.

These modules carry no analysis logic so the engine under ``apps/analyzer``
and the CLI can both depend on them.
"""

from .config import AnalysisConfig, ExtractionSettings, PrincipleWeights, load_analysis_config, merge_config_overrides
from .provenance import ProvenanceEvent, ProvenanceLogger
from .validation import ChapterInputError, ValidationResult, validate_chapter_input

__all__ = [
    "AnalysisConfig",
    "ChapterInputError",
    "ExtractionSettings",
    "PrincipleWeights",
    "ProvenanceEvent",
    "ProvenanceLogger",
    "ValidationResult",
    "load_analysis_config",
    "merge_config_overrides",
    "validate_chapter_input",
]
