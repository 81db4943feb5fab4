from __future__ import annotations

import unittest

import networkx as nx
import pytest

from apps.analyzer.concepts import (
    Candidate,
    ConceptExtractor,
    _Edge,
    break_prerequisite_cycles,
    extract_concepts,
    hierarchy_balance,
    prerequisite_digraph,
    resolve_overlaps,
    section_rarity,
)
from apps.analyzer.domains import CHEMISTRY_LIBRARY
from apps.analyzer.ingest import chapter_from_text
from apps.analyzer.library import ConceptLibrary
from apps.analyzer.models import ConceptGraph, Importance, RelationshipType
from chaptercheck.core.config import ExtractionSettings

WATER_TEXT = (
    "Water is a compound. Water forms when hydrogen and oxygen react: "
    "2H₂ + O₂ → 2H₂O. Example: ice is solid water."
)

CHAPTER_MD = """# Cellular Respiration

Cellular respiration is a process that converts glucose into usable energy. Recall that glucose is a sugar
made during photosynthesis, and the energy it stores is released in stages.

# Glycolysis

Glycolysis is the first stage of cellular respiration. It splits glucose into two molecules of pyruvate
because the cell needs smaller fragments. For example, muscle cells rely on glycolysis during a sprint.

# The Krebs Cycle

The Krebs cycle builds on glycolysis. Pyruvate enters the mitochondria, whereas glycolysis stays in the
cytoplasm. The Krebs cycle releases carbon dioxide and passes energy to carrier molecules.
"""


def _has_prerequisite_cycle(graph: ConceptGraph) -> bool:
    digraph = nx.DiGraph([(rel.source, rel.target) for rel in graph.relationships_of_type(RelationshipType.PREREQUISITE)])
    return not nx.is_directed_acyclic_graph(digraph)


class ConceptExtractorTests(unittest.TestCase):
    def test_water_is_core_concept(self) -> None:
        graph = extract_concepts(WATER_TEXT)
        water = graph.get("concept-water")
        self.assertIsNotNone(water)
        self.assertEqual(water.name, "water")
        self.assertIs(water.importance, Importance.CORE)
        self.assertEqual(len(water.mentions), 3)
        self.assertEqual(water.definition, "compound")
        self.assertIn("concept-water", graph.hierarchy.core)

    def test_plural_and_case_variants_merge(self) -> None:
        text = "Enzymes speed up reactions. An enzyme lowers activation energy. Enzymes work on substrates."
        graph = extract_concepts(text)
        enzyme_ids = [c.id for c in graph.concepts if c.id.startswith("concept-enzyme")]
        self.assertEqual(enzyme_ids, ["concept-enzyme"])
        self.assertEqual(len(graph.get("concept-enzyme").mentions), 3)

    def test_empty_and_blank_text_give_empty_graph(self) -> None:
        for text in ("", "   \n\n  "):
            graph = ConceptExtractor().extract(text)
            self.assertEqual(graph.concepts, ())
            self.assertEqual(graph.relationships, ())
            self.assertEqual(graph.stats.density, 0.0)

    def test_lowering_threshold_never_loses_concepts(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        counts = [
            len(ConceptExtractor(threshold).extract(chapter.content, chapter.sections).concepts)
            for threshold in (0.95, 0.8, 0.6, 0.45, 0.3, 0.15, 0.05)
        ]
        self.assertEqual(counts, sorted(counts))
        self.assertGreater(counts[-1], counts[0])

    def test_headings_make_core_concepts(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        graph = ConceptExtractor().extract(chapter.content, chapter.sections)
        glycolysis = graph.get("concept-glycolysis")
        self.assertIsNotNone(glycolysis)
        self.assertIs(glycolysis.importance, Importance.CORE)
        self.assertIn("heading", glycolysis.metadata["sources"])
        self.assertEqual({m.section_index for m in glycolysis.mentions}, {1, 2})

    def test_relationships_resolve_and_are_typed(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        graph = ConceptExtractor().extract(chapter.content, chapter.sections)
        ids = {c.id for c in graph.concepts}
        self.assertTrue(graph.relationships)
        for rel in graph.relationships:
            self.assertIn(rel.source, ids)
            self.assertIn(rel.target, ids)
            self.assertNotEqual(rel.source, rel.target)
            self.assertTrue(0.0 <= rel.strength <= 1.0)
        self.assertTrue(graph.relationships_of_type(RelationshipType.PREREQUISITE))
        self.assertFalse(_has_prerequisite_cycle(graph))

    def test_prerequisite_cycles_are_broken(self) -> None:
        text = "Algebra builds on arithmetic. Arithmetic builds on algebra. Calculus requires algebra."
        graph = extract_concepts(text, threshold=0.1)
        self.assertIsNotNone(graph.get("concept-algebra"))
        self.assertIsNotNone(graph.get("concept-arithmetic"))
        self.assertGreaterEqual(graph.stats.dropped_cycle_edges, 1)
        self.assertFalse(_has_prerequisite_cycle(graph))
        for concept in graph.concepts:
            self.assertNotIn(concept.id, concept.prerequisites)

    def test_sequence_and_introduction_order(self) -> None:
        graph = extract_concepts(WATER_TEXT)
        self.assertEqual(len(graph.sequence), sum(len(c.mentions) for c in graph.concepts))
        self.assertEqual(sorted(graph.introduction_order), sorted(c.id for c in graph.concepts))
        positions = [graph.get(cid).first_position for cid in graph.introduction_order]
        self.assertEqual(positions, sorted(positions))

    def test_extraction_is_deterministic(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        first = ConceptExtractor().extract(chapter.content, chapter.sections)
        second = ConceptExtractor().extract(chapter.content, chapter.sections)
        self.assertEqual(first, second)

    def test_max_concepts_caps_selection(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        settings = ExtractionSettings(max_concepts=3)
        graph = ConceptExtractor(0.05, settings).extract(chapter.content, chapter.sections)
        self.assertEqual(len(graph.concepts), 3)

    def test_threshold_bounds(self) -> None:
        for bad in (0.0, -0.2, 1.5):
            with self.assertRaises(ValueError):
                ConceptExtractor(bad)
        ConceptExtractor(1.0)


def test_hierarchy_balance_ideal_and_empty() -> None:
    assert hierarchy_balance(2, 3, 5) == 1.0
    assert hierarchy_balance(0, 0, 0) == 0.0
    assert hierarchy_balance(10, 0, 0) < hierarchy_balance(3, 3, 4)


REPEATED_TOPIC = " ".join(["Cellular respiration releases energy in cells."] * 40)

STOICHIOMETRY_TEXT = (
    "The limiting reagent is the reactant that runs out first. Finding the limiting reactant sets the "
    "theoretical yield. Compare the limiting reagent with the excess reactant in each problem."
)


class OverlapResolutionTests(unittest.TestCase):
    def test_longest_phrase_absorbs_nested_terms(self) -> None:
        graph = extract_concepts(REPEATED_TOPIC)
        ids = {c.id for c in graph.concepts}
        self.assertIn("concept-cellular-respiration", ids)
        for nested in ("concept-cellular", "concept-respiration", "concept-respiration-release", "concept-release"):
            self.assertNotIn(nested, ids)
        self.assertEqual(len(graph.get("concept-cellular-respiration").mentions), 40)
        self.assertEqual(len(graph.concepts), 3)

    def test_mentions_never_overlap(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        graph = ConceptExtractor(0.05).extract(chapter.content, chapter.sections)
        positions = sorted(m.position for c in graph.concepts for m in c.mentions)
        self.assertEqual(len(positions), len(set(positions)))
        self.assertEqual(len(graph.sequence), len(positions))
        names = {c.name.lower() for c in graph.concepts}
        self.assertIn("krebs cycle", names)
        self.assertNotIn("krebs", names)

    def test_verb_fragments_are_not_concepts(self) -> None:
        chapter = chapter_from_text(CHAPTER_MD, markdown=True)
        graph = ConceptExtractor(0.05).extract(chapter.content, chapter.sections)
        ids = {c.id for c in graph.concepts}
        for verb in ("concept-split", "concept-enter", "concept-stay", "concept-released", "concept-need"):
            self.assertNotIn(verb, ids)

    def test_resolve_overlaps_keeps_uncovered_spans(self) -> None:
        candidates = {
            "cellular respiration": Candidate(key="cellular respiration", spans=[(0, 20)]),
            "respiration": Candidate(key="respiration", spans=[(9, 20), (30, 41)]),
            "cellular": Candidate(key="cellular", spans=[(0, 8)]),
        }
        self.assertEqual(resolve_overlaps(candidates), 1)
        self.assertEqual(sorted(candidates), ["cellular respiration", "respiration"])
        self.assertEqual(candidates["respiration"].spans, [(30, 41)])


class ConceptLibraryTests(unittest.TestCase):
    def test_aliases_merge_under_canonical_name(self) -> None:
        graph = extract_concepts(STOICHIOMETRY_TEXT, library=CHEMISTRY_LIBRARY)
        limiting = graph.get("concept-limiting-reactant")
        self.assertIsNotNone(limiting)
        self.assertEqual(limiting.name, "limiting reactant")
        self.assertEqual(len(limiting.mentions), 3)
        self.assertEqual(limiting.metadata["category"], "Stoichiometry")
        self.assertEqual(limiting.metadata["subcategory"], "Calculations")
        self.assertIn("library", limiting.metadata["sources"])
        self.assertIsNone(graph.get("concept-limiting-reagent"))

    def test_rare_library_terms_survive_threshold(self) -> None:
        graph = extract_concepts(STOICHIOMETRY_TEXT, library=CHEMISTRY_LIBRARY)
        yield_concept = graph.get("concept-theoretical-yield")
        self.assertIsNotNone(yield_concept)
        self.assertEqual(len(yield_concept.mentions), 1)

    def test_custom_concepts_extend_a_library(self) -> None:
        library = ConceptLibrary(domain="biology").extended(["carbon fixation", "Carbon Fixation", " "])
        self.assertEqual([c.name for c in library.concepts], ["carbon fixation"])
        graph = extract_concepts("Carbon fixation happens in the stroma of the leaf.", library=library)
        concept = graph.get("concept-carbon-fixation")
        self.assertIsNotNone(concept)
        self.assertEqual(concept.metadata["category"], "Custom")
        self.assertNotIn("subcategory", concept.metadata)

    def test_no_library_means_no_category(self) -> None:
        graph = extract_concepts(STOICHIOMETRY_TEXT)
        self.assertTrue(all("category" not in c.metadata for c in graph.concepts))


def test_section_rarity_uses_section_document_frequency() -> None:
    candidates = {
        "everywhere": Candidate(key="everywhere", spans=[(2, 5), (12, 15)]),
        "local": Candidate(key="local", spans=[(6, 9)]),
        "unseen": Candidate(key="unseen"),
    }
    rarity = section_rarity(candidates, [0, 10], 2)
    assert rarity["everywhere"] == pytest.approx(0.0)
    assert rarity["local"] == pytest.approx(1.0)
    assert "unseen" not in rarity
    assert section_rarity(candidates, [0], 1) == {"everywhere": 1.0, "local": 1.0}


def test_weakest_edge_of_a_cycle_is_dropped() -> None:
    strong = _Edge("concept-a", "concept-b", RelationshipType.PREREQUISITE, hits=2, order=0)
    weak = _Edge("concept-b", "concept-a", RelationshipType.PREREQUISITE, order=1)
    related = _Edge("concept-a", "concept-c", RelationshipType.RELATED, order=2)
    remaining, dropped = break_prerequisite_cycles([strong, weak, related])
    assert dropped == 1
    assert remaining == [strong, related]
    assert nx.is_directed_acyclic_graph(prerequisite_digraph(remaining))
    assert list(prerequisite_digraph(remaining).edges) == [("concept-a", "concept-b")]
