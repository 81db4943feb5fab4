"""Immutable value types shared by the chapter analysis engine."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class FrozenModel(BaseModel):
    """Base class for analysis values: immutable once constructed."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)


# ---------------------------------------------------------------------------
# Chapter input
# ---------------------------------------------------------------------------


class Section(FrozenModel):
    """A headed span of the chapter text."""

    id: str
    title: str = ""
    level: int = Field(default=1, ge=1, le=6)
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    text: str = ""

    @model_validator(mode="after")
    def _check_span(self) -> "Section":
        if self.end < self.start:
            raise ValueError(f"section {self.id!r} ends ({self.end}) before it starts ({self.start})")
        return self


class ChapterMetadata(FrozenModel):
    domain: str = "general"
    reading_level: Optional[str] = None


class Chapter(FrozenModel):
    """Chapter text plus ordered sections. Build via ``apps.analyzer.ingest``."""

    id: str
    title: str = ""
    content: str
    sections: Tuple[Section, ...] = ()
    metadata: ChapterMetadata = Field(default_factory=ChapterMetadata)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def word_count(self) -> int:
        return len(self.content.split())

    def section_text(self, section: Section) -> str:
        """Text of ``section`` sliced from ``content``; ``Section.text`` is optional."""
        return self.content[section.start : section.end]


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


class PatternType(str, Enum):
    """Universal pedagogical pattern families."""

    WORKED_EXAMPLE = "workedExample"
    PRACTICE_PROBLEM = "practiceProblem"
    DEFINITION_EXAMPLE = "definitionExample"
    FORMULA = "formula"
    PROCEDURE = "procedure"
    COMPARISON = "comparison"


class PatternMatch(FrozenModel):
    """One detected pedagogical structure.

    ``type`` is free-form so domain detector sets can register their own
    kinds; ``family`` is the universal family the match counts as.
    """

    type: str
    family: PatternType
    confidence: float = Field(..., ge=0.0, le=1.0)
    start: int = Field(..., ge=0)
    end: int
    context: str = ""
    title: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_span(self) -> "PatternMatch":
        if self.end <= self.start:
            raise ValueError(f"pattern end ({self.end}) must be greater than start ({self.start})")
        return self


# ---------------------------------------------------------------------------
# Concepts
# ---------------------------------------------------------------------------


class Importance(str, Enum):
    CORE = "core"
    SUPPORTING = "supporting"
    DETAIL = "detail"


class MentionDepth(str, Enum):
    SHALLOW = "shallow"
    MODERATE = "moderate"
    DEEP = "deep"


class Mention(FrozenModel):
    position: int = Field(..., ge=0)
    context: str = ""
    depth: MentionDepth = MentionDepth.SHALLOW
    section_index: int = 0


class Concept(FrozenModel):
    id: str
    name: str
    definition: Optional[str] = None
    importance: Importance = Importance.DETAIL
    mentions: Tuple[Mention, ...] = ()
    prerequisites: Tuple[str, ...] = ()
    related: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _no_self_prerequisite(self) -> "Concept":
        if self.id in self.prerequisites:
            raise ValueError(f"concept {self.id!r} lists itself as a prerequisite")
        return self

    @property
    def first_position(self) -> int:
        return self.mentions[0].position if self.mentions else 0

    @property
    def sections_spanned(self) -> int:
        return len({mention.section_index for mention in self.mentions})


class RelationshipType(str, Enum):
    PREREQUISITE = "prerequisite"
    RELATED = "related"
    EXAMPLE = "example"
    CONTRASTS = "contrasts"


class ConceptRelationship(FrozenModel):
    source: str
    target: str
    type: RelationshipType
    strength: float = Field(..., ge=0.0, le=1.0)


class ConceptHierarchy(FrozenModel):
    core: Tuple[str, ...] = ()
    supporting: Tuple[str, ...] = ()
    detail: Tuple[str, ...] = ()


class GraphStats(FrozenModel):
    density: float = 0.0
    hierarchy_balance: float = 0.0
    orphan_ids: Tuple[str, ...] = ()
    dropped_cycle_edges: int = 0


class ConceptGraph(FrozenModel):
    """Concepts, their typed relationships, and aggregate stats."""

    concepts: Tuple[Concept, ...] = ()
    relationships: Tuple[ConceptRelationship, ...] = ()
    hierarchy: ConceptHierarchy = Field(default_factory=ConceptHierarchy)
    introduction_order: Tuple[str, ...] = ()
    sequence: Tuple[str, ...] = ()
    stats: GraphStats = Field(default_factory=GraphStats)

    @model_validator(mode="after")
    def _check_references(self) -> "ConceptGraph":
        ids = [concept.id for concept in self.concepts]
        known = set(ids)
        if len(known) != len(ids):
            raise ValueError("concept ids must be unique within a graph")
        seen: set[tuple[str, str, str]] = set()
        for rel in self.relationships:
            if rel.source not in known or rel.target not in known:
                raise ValueError(f"relationship {rel.source}->{rel.target} references an unknown concept")
            key = (rel.source, rel.target, rel.type.value)
            if key in seen:
                raise ValueError(f"duplicate {rel.type.value} relationship {rel.source}->{rel.target}")
            seen.add(key)
        return self

    def get(self, concept_id: str) -> Optional[Concept]:
        for concept in self.concepts:
            if concept.id == concept_id:
                return concept
        return None

    def by_importance(self, importance: Importance) -> Tuple[Concept, ...]:
        return tuple(concept for concept in self.concepts if concept.importance is importance)

    def relationships_of_type(self, rel_type: RelationshipType) -> Tuple[ConceptRelationship, ...]:
        return tuple(rel for rel in self.relationships if rel.type is rel_type)


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


class Principle(str, Enum):
    """Closed set of learning-science principles the engine can evaluate."""

    DEEP_PROCESSING = "deepProcessing"
    SPACED_REPETITION = "spacedRepetition"
    RETRIEVAL_PRACTICE = "retrievalPractice"
    INTERLEAVING = "interleaving"
    DUAL_CODING = "dualCoding"
    GENERATIVE_LEARNING = "generativeLearning"
    METACOGNITION = "metacognition"
    SCHEMA_BUILDING = "schemaBuilding"
    COGNITIVE_LOAD = "cognitiveLoad"
    EMOTION_AND_RELEVANCE = "emotionAndRelevance"
    WORKED_EXAMPLES = "workedExamples"
    ELABORATION = "elaboration"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Principle.DEEP_PROCESSING: "Deep Processing",
    Principle.SPACED_REPETITION: "Spaced Repetition",
    Principle.RETRIEVAL_PRACTICE: "Retrieval Practice",
    Principle.INTERLEAVING: "Interleaving",
    Principle.DUAL_CODING: "Dual Coding",
    Principle.GENERATIVE_LEARNING: "Generative Learning",
    Principle.METACOGNITION: "Metacognition & Self-Explanation",
    Principle.SCHEMA_BUILDING: "Schema Building",
    Principle.COGNITIVE_LOAD: "Cognitive Load",
    Principle.EMOTION_AND_RELEVANCE: "Emotion & Relevance",
    Principle.WORKED_EXAMPLES: "Worked Examples",
    Principle.ELABORATION: "Elaboration",
}


class Severity(str, Enum):
    POSITIVE = "positive"
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Finding(FrozenModel):
    message: str
    severity: Optional[Severity] = None


class Suggestion(FrozenModel):
    title: str
    text: str
    section_id: Optional[str] = None


class Evidence(FrozenModel):
    metric: str
    value: float


class PrincipleEvaluation(FrozenModel):
    principle: Principle
    score: int = Field(..., ge=0, le=100)
    weight: float = Field(..., ge=0.0, le=1.0)
    findings: Tuple[Finding, ...] = ()
    suggestions: Tuple[Suggestion, ...] = ()
    evidence: Tuple[Evidence, ...] = ()

    def evidence_value(self, metric: str) -> Optional[float]:
        for item in self.evidence:
            if item.metric == metric:
                return item.value
        return None


# ---------------------------------------------------------------------------
# Analysis result
# ---------------------------------------------------------------------------


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Recommendation(FrozenModel):
    id: str
    principle: Principle
    priority: Priority
    title: str
    description: str
    action_items: Tuple[str, ...] = ()
    related_concepts: Tuple[str, ...] = ()
    expected_outcome: str = ""


class ConceptSummary(FrozenModel):
    total_concepts: int = 0
    core_concepts: int = 0
    density: float = 0.0
    hierarchy_balance: float = 0.0
    orphan_concepts: Tuple[str, ...] = ()


class Pacing(str, Enum):
    FAST = "fast"
    MODERATE = "moderate"
    SLOW = "slow"


class SectionStats(FrozenModel):
    section_id: str
    title: str = ""
    word_count: int = 0
    sentence_count: int = 0
    average_sentence_length: float = 0.0


class StructureSummary(FrozenModel):
    section_count: int = 0
    average_section_length: float = 0.0
    pacing: Pacing = Pacing.FAST
    has_introduction: bool = False
    has_progression: bool = False
    has_summary: bool = False
    sections: Tuple[SectionStats, ...] = ()


class RadarPoint(FrozenModel):
    principle: Principle
    label: str
    score: int
    weight: float


class ConceptFrequencyPoint(FrozenModel):
    concept_id: str
    name: str
    mentions: int
    importance: Importance


class LoadPoint(FrozenModel):
    section_id: str
    title: str = ""
    position: int
    load: float = Field(..., ge=0.0, le=1.0)
    novel_concepts: int = 0
    concept_density: float = 0.0
    sentence_complexity: float = 0.0


class VisualizationData(FrozenModel):
    principle_scores: Tuple[RadarPoint, ...] = ()
    concept_frequency: Tuple[ConceptFrequencyPoint, ...] = ()
    cognitive_load_curve: Tuple[LoadPoint, ...] = ()


class ChapterAnalysis(FrozenModel):
    """The engine's only output; always fully populated."""

    chapter_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    overall_score: int = Field(..., ge=0, le=100)
    evaluations: Tuple[PrincipleEvaluation, ...]
    concepts: ConceptSummary
    structure: StructureSummary
    recommendations: Tuple[Recommendation, ...] = ()
    visualization: Optional[VisualizationData] = None
    pattern_counts: Dict[str, int] = Field(default_factory=dict)
    concept_graph: Optional[ConceptGraph] = None
    patterns: Optional[Tuple[PatternMatch, ...]] = None

    def evaluation(self, principle: Principle) -> Optional[PrincipleEvaluation]:
        for item in self.evaluations:
            if item.principle is principle:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return self.model_dump(mode="json")


__all__ = [
    "Chapter",
    "ChapterAnalysis",
    "ChapterMetadata",
    "Concept",
    "ConceptFrequencyPoint",
    "ConceptGraph",
    "ConceptHierarchy",
    "ConceptRelationship",
    "ConceptSummary",
    "Evidence",
    "Finding",
    "GraphStats",
    "Importance",
    "LoadPoint",
    "Mention",
    "MentionDepth",
    "Pacing",
    "PatternMatch",
    "PatternType",
    "Principle",
    "PrincipleEvaluation",
    "Priority",
    "RadarPoint",
    "Recommendation",
    "RelationshipType",
    "Section",
    "SectionStats",
    "Severity",
    "StructureSummary",
    "Suggestion",
    "VisualizationData",
]
