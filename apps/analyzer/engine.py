"""Analysis engine: runs extraction, detection and evaluation, then aggregates.

``AnalysisEngine.analyze`` is the single entry point. Extraction and pattern
detection are independent and may run concurrently; the evaluators only start
once both are done and may themselves run concurrently. Every stage consumes
immutable values and returns new ones, so no locking is needed.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from statistics import mean
from typing import Dict, List, Optional, Sequence, Tuple

from chaptercheck.core.config import AnalysisConfig
from chaptercheck.core.provenance import ProvenanceLogger
from chaptercheck.core.validation import validate_chapter_input

from .concepts import ConceptExtractor
from .evaluators import EVALUATORS, principles_for
from .library import ConceptLibrary, concept_library_for
from .models import (
    Chapter,
    ChapterAnalysis,
    ConceptFrequencyPoint,
    ConceptGraph,
    ConceptSummary,
    Evidence,
    Finding,
    Importance,
    LoadPoint,
    Pacing,
    PatternMatch,
    Principle,
    PrincipleEvaluation,
    Priority,
    RadarPoint,
    Recommendation,
    RelationshipType,
    SectionStats,
    Severity,
    StructureSummary,
    VisualizationData,
)
from .patterns import count_by_family, detect_patterns
from .scoring import clamp, quality_band
from .text import compile_cues, sentences, words

LOGGER = logging.getLogger("chaptercheck.engine")

NEUTRAL_SCORE = 50
MAX_FREQUENCY_POINTS = 25

INTRO_TITLE_RE = re.compile(r"\b(?:introduction|overview|getting started|objectives|preview|what you will learn)\b", re.IGNORECASE)
SUMMARY_TITLE_RE = re.compile(r"\b(?:summary|conclusion|review|key takeaways|recap|wrap[- ]up)\b", re.IGNORECASE)
INTRO_CUES = compile_cues(["in this chapter", "you will learn", "we will explore", "this chapter introduces", "learning objectives"])
SUMMARY_CUES = compile_cues(["in summary", "to summarize", "in conclusion", "key takeaways", "to sum up", "we have seen"])
PROGRESSION_CUES = compile_cues(["building on", "now that", "in the previous section", "so far", "we now turn", "next we"])

GENERIC_ACTIONS: Dict[Principle, str] = {
    Principle.DEEP_PROCESSING: "Add why/how questions and explanations that connect new ideas to prior knowledge.",
    Principle.SPACED_REPETITION: "Revisit core concepts in later sections instead of covering them once.",
    Principle.RETRIEVAL_PRACTICE: "Add questions or practice problems that make readers recall key ideas.",
    Principle.INTERLEAVING: "Mix practice across related concepts rather than grouping by topic.",
    Principle.DUAL_CODING: "Pair verbal explanations with diagrams, charts or other visuals.",
    Principle.GENERATIVE_LEARNING: "Ask readers to predict, summarize or explain in their own words.",
    Principle.METACOGNITION: "Add prompts that ask readers to check and explain their own understanding.",
    Principle.SCHEMA_BUILDING: "Make the structure of core, supporting and detail concepts explicit.",
    Principle.COGNITIVE_LOAD: "Shorten sections and sentences and pace the introduction of new terms.",
    Principle.EMOTION_AND_RELEVANCE: "Show why the material matters with stories and real-world stakes.",
    Principle.WORKED_EXAMPLES: "Add fully worked examples followed by similar practice problems.",
    Principle.ELABORATION: "Expand on key ideas with explanations, restatements and connections.",
}

EXPECTED_OUTCOMES: Dict[Principle, str] = {
    Principle.DEEP_PROCESSING: "Readers build causal understanding rather than memorizing isolated facts.",
    Principle.SPACED_REPETITION: "Core concepts are retained longer through distributed exposure.",
    Principle.RETRIEVAL_PRACTICE: "Recall practice strengthens long-term retention of key ideas.",
    Principle.INTERLEAVING: "Readers learn to tell concepts apart and choose the right one.",
    Principle.DUAL_CODING: "Verbal and visual representations reinforce each other.",
    Principle.GENERATIVE_LEARNING: "Producing explanations deepens understanding and exposes gaps.",
    Principle.METACOGNITION: "Readers notice what they do not yet understand and act on it.",
    Principle.SCHEMA_BUILDING: "Readers organize ideas into a connected mental model.",
    Principle.COGNITIVE_LOAD: "Working memory is freed for understanding instead of parsing.",
    Principle.EMOTION_AND_RELEVANCE: "Motivation and attention improve when the stakes are clear.",
    Principle.WORKED_EXAMPLES: "Novices acquire problem-solving schemas with less trial and error.",
    Principle.ELABORATION: "Richer connections make ideas easier to retrieve later.",
}


def _pacing(average_words: float) -> Pacing:
    if average_words < 300:
        return Pacing.FAST
    if average_words <= 800:
        return Pacing.MODERATE
    return Pacing.SLOW


def section_stats(chapter: Chapter) -> Tuple[SectionStats, ...]:
    stats = []
    for section in chapter.sections:
        text = chapter.section_text(section)
        sentence_lengths = [len(words(sentence)) for sentence in sentences(text)]
        stats.append(
            SectionStats(
                section_id=section.id,
                title=section.title,
                word_count=len(words(text)),
                sentence_count=len(sentence_lengths),
                average_sentence_length=round(mean(sentence_lengths), 2) if sentence_lengths else 0.0,
            )
        )
    return tuple(stats)


def analyze_structure(chapter: Chapter, graph: ConceptGraph) -> StructureSummary:
    """Section counts, pacing band and scaffolding flags."""
    stats = section_stats(chapter)
    average = mean(item.word_count for item in stats) if stats else 0.0
    text = chapter.content
    sections = chapter.sections

    has_intro = bool(sections and INTRO_TITLE_RE.search(sections[0].title)) or bool(INTRO_CUES.search(text[:500]))
    has_summary = bool(sections and SUMMARY_TITLE_RE.search(sections[-1].title)) or bool(SUMMARY_CUES.search(text[-600:]))

    prerequisites = graph.relationships_of_type(RelationshipType.PREREQUISITE)
    if len(sections) < 2:
        has_progression = False
    elif prerequisites:
        first_seen = {c.id: c.first_position for c in graph.concepts}
        forward = sum(1 for rel in prerequisites if first_seen[rel.source] <= first_seen[rel.target])
        has_progression = forward / len(prerequisites) >= 0.5
    else:
        has_progression = bool(PROGRESSION_CUES.search(text))

    return StructureSummary(
        section_count=len(sections),
        average_section_length=round(average, 2),
        pacing=_pacing(average),
        has_introduction=has_intro,
        has_progression=has_progression,
        has_summary=has_summary,
        sections=stats,
    )


def overall_score(evaluations: Sequence[PrincipleEvaluation]) -> int:
    """``round(sum(score * weight) / sum(weight))``; zero when every weight is zero."""
    total_weight = sum(item.weight for item in evaluations)
    if total_weight <= 0:
        return 0
    return int(round(sum(item.score * item.weight for item in evaluations) / total_weight))


def priority_for(score: int) -> Optional[Priority]:
    if score < 50:
        return Priority.HIGH
    if score < 80:
        return Priority.MEDIUM
    if score < 90:
        return Priority.LOW
    return None


def build_recommendations(evaluations: Sequence[PrincipleEvaluation], graph: ConceptGraph) -> Tuple[Recommendation, ...]:
    """One recommendation per principle scoring under 90, lowest scores first."""
    order = {item.principle: index for index, item in enumerate(evaluations)}
    core = sorted(graph.by_importance(Importance.CORE), key=lambda c: (-len(c.mentions), c.first_position))
    related = tuple(concept.id for concept in core[:3])
    recommendations: List[Recommendation] = []
    for evaluation in sorted(evaluations, key=lambda item: (item.score, order[item.principle])):
        priority = priority_for(evaluation.score)
        if priority is None:
            continue
        principle = evaluation.principle
        detail = next((f.message for f in evaluation.findings[1:] if f.severity in (Severity.WARNING, Severity.CRITICAL)), None)
        description = f"{principle.display_name} scores {evaluation.score}/100 ({quality_band(evaluation.score)})."
        if detail:
            description = f"{description} {detail}."
        actions = tuple(s.text for s in evaluation.suggestions) or (GENERIC_ACTIONS[principle],)
        title = evaluation.suggestions[0].title if evaluation.suggestions else f"Strengthen {principle.display_name.lower()}"
        recommendations.append(
            Recommendation(
                id=f"rec-{principle.value}",
                principle=principle,
                priority=priority,
                title=title,
                description=description,
                action_items=actions,
                related_concepts=related,
                expected_outcome=EXPECTED_OUTCOMES[principle],
            )
        )
    return tuple(recommendations)


def build_visualization(
    evaluations: Sequence[PrincipleEvaluation],
    graph: ConceptGraph,
    structure: StructureSummary,
) -> VisualizationData:
    """Reshape computed results for chart consumers; performs no new analysis."""
    radar = tuple(
        RadarPoint(principle=e.principle, label=e.principle.display_name, score=e.score, weight=e.weight)
        for e in evaluations
    )
    ranked = sorted(graph.concepts, key=lambda c: (-len(c.mentions), c.first_position, c.id))[:MAX_FREQUENCY_POINTS]
    frequency = tuple(
        ConceptFrequencyPoint(concept_id=c.id, name=c.name, mentions=len(c.mentions), importance=c.importance)
        for c in ranked
    )

    novel: Dict[int, int] = {}
    mentions_in: Dict[int, int] = {}
    for concept in graph.concepts:
        if concept.mentions:
            first = concept.mentions[0].section_index
            novel[first] = novel.get(first, 0) + 1
        for mention in concept.mentions:
            mentions_in[mention.section_index] = mentions_in.get(mention.section_index, 0) + 1

    curve = []
    for index, stats in enumerate(structure.sections):
        density = 100.0 * mentions_in.get(index, 0) / stats.word_count if stats.word_count else 0.0
        complexity = clamp(stats.average_sentence_length / 35.0)
        new_concepts = novel.get(index, 0)
        load = clamp(0.4 * min(1.0, new_concepts / 5.0) + 0.3 * min(1.0, density / 10.0) + 0.3 * complexity)
        curve.append(
            LoadPoint(
                section_id=stats.section_id,
                title=stats.title,
                position=index,
                load=round(load, 4),
                novel_concepts=new_concepts,
                concept_density=round(density, 4),
                sentence_complexity=round(complexity, 4),
            )
        )
    return VisualizationData(principle_scores=radar, concept_frequency=frequency, cognitive_load_curve=tuple(curve))


def degraded_evaluation(principle: Principle, weight: float, error: Exception) -> PrincipleEvaluation:
    return PrincipleEvaluation(
        principle=principle,
        score=NEUTRAL_SCORE,
        weight=weight,
        findings=(
            Finding(
                message=f"{principle.display_name} could not be evaluated ({type(error).__name__}: {error}); neutral score used",
                severity=Severity.CRITICAL,
            ),
        ),
        evidence=(Evidence(metric="degraded", value=1.0),),
    )


class AnalysisEngine:
    """Orchestrates one chapter analysis under an immutable configuration."""

    def __init__(self, config: Optional[AnalysisConfig] = None, *, provenance: Optional[ProvenanceLogger] = None):
        self.config = config or AnalysisConfig()
        self.provenance = provenance
        self._extractors: Dict[str, ConceptExtractor] = {}
        self.principles = principles_for(self.config.principle_set)

    def analyze(self, chapter: Chapter) -> ChapterAnalysis:
        validate_chapter_input(chapter.content, chapter.sections)
        config = self.config
        domain = self.domain_for(chapter)

        if config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=min(2, config.max_workers)) as pool:
                graph_future = pool.submit(self._extract, chapter, domain)
                patterns_future = pool.submit(detect_patterns, chapter.content, domain)
                graph, patterns = graph_future.result(), patterns_future.result()
        else:
            graph = self._extract(chapter, domain)
            patterns = detect_patterns(chapter.content, domain)
        pattern_counts = count_by_family(patterns)

        self._record(
            "extract",
            f"Extracted {len(graph.concepts)} concepts",
            chapter,
            concepts=len(graph.concepts),
            relationships=len(graph.relationships),
            dropped_cycle_edges=graph.stats.dropped_cycle_edges,
        )
        self._record("detect", f"Detected {len(patterns)} patterns", chapter, domain=domain, counts=pattern_counts)

        evaluations = self._evaluate_all(chapter, graph, patterns)
        degraded = [e.principle.value for e in evaluations if e.evidence_value("degraded")]
        self._record(
            "evaluate",
            f"Evaluated {len(evaluations)} principles",
            chapter,
            scores={e.principle.value: e.score for e in evaluations},
            degraded=degraded,
        )

        structure = analyze_structure(chapter, graph)
        score = overall_score(evaluations)
        recommendations = build_recommendations(evaluations, graph)
        visualization = build_visualization(evaluations, graph, structure) if config.enable_visualization else None

        analysis = ChapterAnalysis(
            chapter_id=chapter.id,
            overall_score=score,
            evaluations=tuple(evaluations),
            concepts=ConceptSummary(
                total_concepts=len(graph.concepts),
                core_concepts=len(graph.hierarchy.core),
                density=graph.stats.density,
                hierarchy_balance=graph.stats.hierarchy_balance,
                orphan_concepts=graph.stats.orphan_ids,
            ),
            structure=structure,
            recommendations=recommendations,
            visualization=visualization,
            pattern_counts=pattern_counts,
            concept_graph=graph if config.detailed_report else None,
            patterns=tuple(patterns) if config.detailed_report else None,
        )
        self._record(
            "aggregate",
            f"Overall score {score}",
            chapter,
            overall_score=score,
            recommendations=len(recommendations),
        )
        LOGGER.info("Analyzed chapter %s: overall %d, %d concepts, %d patterns", chapter.id, score, len(graph.concepts), len(patterns))
        return analysis

    def domain_for(self, chapter: Chapter) -> str:
        """The configured domain, or the chapter's own when the config says "general"."""
        if self.config.domain != "general":
            return self.config.domain
        return (chapter.metadata.domain or "general").strip().lower() or "general"

    def library_for(self, domain: str) -> Optional[ConceptLibrary]:
        library = concept_library_for(domain)
        if self.config.custom_concepts:
            library = (library or ConceptLibrary(domain=domain)).extended(self.config.custom_concepts)
        return library

    def extractor_for(self, domain: str) -> ConceptExtractor:
        extractor = self._extractors.get(domain)
        if extractor is None:
            config = self.config
            extractor = ConceptExtractor(config.concept_extraction_threshold, config.extraction, self.library_for(domain))
            self._extractors[domain] = extractor
        return extractor

    # ----- stages -----

    def _extract(self, chapter: Chapter, domain: str) -> ConceptGraph:
        try:
            return self.extractor_for(domain).extract(chapter.content, chapter.sections)
        except Exception as exc:  # noqa: BLE001 - evaluators still run on an empty graph
            LOGGER.warning("Concept extraction failed for %s: %s", chapter.id, exc)
            return ConceptGraph()

    def _evaluate_one(
        self, principle: Principle, chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]
    ) -> PrincipleEvaluation:
        weight = self.config.weights.get(principle.value)
        try:
            result = EVALUATORS[principle](chapter, graph, patterns)
        except Exception as exc:  # noqa: BLE001 - one principle must not sink the others
            LOGGER.warning("Evaluator %s failed: %s", principle.value, exc)
            return degraded_evaluation(principle, weight, exc)
        return result.model_copy(update={"weight": weight})

    def _evaluate_all(
        self, chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]
    ) -> List[PrincipleEvaluation]:
        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                return list(pool.map(lambda p: self._evaluate_one(p, chapter, graph, patterns), self.principles))
        return [self._evaluate_one(principle, chapter, graph, patterns) for principle in self.principles]

    def _record(self, stage: str, message: str, chapter: Chapter, **payload) -> None:
        if self.provenance is None:
            return
        self.provenance.record(stage, message, chapter_id=chapter.id, **payload)


def analyze(
    chapter: Chapter,
    config: Optional[AnalysisConfig] = None,
    *,
    provenance: Optional[ProvenanceLogger] = None,
) -> ChapterAnalysis:
    """Analyze ``chapter`` with ``config`` (defaults when omitted)."""
    return AnalysisEngine(config, provenance=provenance).analyze(chapter)


__all__ = [
    "AnalysisEngine",
    "NEUTRAL_SCORE",
    "analyze",
    "analyze_structure",
    "build_recommendations",
    "build_visualization",
    "degraded_evaluation",
    "overall_score",
    "priority_for",
    "section_stats",
]
