"""Chapter analysis engine: concept extraction, pattern detection, principle scoring."""

from __future__ import annotations

from . import domains  # noqa: F401  (registers domain detector sets and concept libraries)
from .concepts import ConceptExtractor, extract_concepts
from .engine import AnalysisEngine, analyze
from .ingest import chapter_from_payload, chapter_from_text, sections_from_markdown
from .library import ConceptLibrary, LibraryConcept, concept_library_for, register_concept_library
from .models import Chapter, ChapterAnalysis, ConceptGraph, PatternMatch, Principle, PrincipleEvaluation, Section
from .patterns import detect_patterns, register_domain

__all__ = [
    "AnalysisEngine",
    "Chapter",
    "ChapterAnalysis",
    "ConceptExtractor",
    "ConceptGraph",
    "ConceptLibrary",
    "LibraryConcept",
    "PatternMatch",
    "Principle",
    "PrincipleEvaluation",
    "Section",
    "analyze",
    "chapter_from_payload",
    "chapter_from_text",
    "concept_library_for",
    "detect_patterns",
    "extract_concepts",
    "register_concept_library",
    "register_domain",
    "sections_from_markdown",
]
