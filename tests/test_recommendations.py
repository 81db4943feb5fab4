from __future__ import annotations

import unittest

from apps.analyzer.engine import EXPECTED_OUTCOMES, GENERIC_ACTIONS, build_recommendations, priority_for
from apps.analyzer.models import (
    Concept,
    ConceptGraph,
    ConceptHierarchy,
    Finding,
    Importance,
    Mention,
    Principle,
    PrincipleEvaluation,
    Priority,
    Severity,
    Suggestion,
)


def _evaluation(principle: Principle, score: int, suggestions=()) -> PrincipleEvaluation:
    return PrincipleEvaluation(
        principle=principle,
        score=score,
        weight=0.5,
        findings=(
            Finding(message=f"{principle.display_name}: summary"),
            Finding(message="Something is missing", severity=Severity.WARNING),
        ),
        suggestions=tuple(suggestions),
    )


class PriorityTests(unittest.TestCase):
    def test_priority_bands(self) -> None:
        self.assertIs(priority_for(0), Priority.HIGH)
        self.assertIs(priority_for(49), Priority.HIGH)
        self.assertIs(priority_for(50), Priority.MEDIUM)
        self.assertIs(priority_for(79), Priority.MEDIUM)
        self.assertIs(priority_for(80), Priority.LOW)
        self.assertIs(priority_for(89), Priority.LOW)
        self.assertIsNone(priority_for(90))
        self.assertIsNone(priority_for(100))


class BuildRecommendationTests(unittest.TestCase):
    def test_lowest_scores_first_and_high_scores_skipped(self) -> None:
        evaluations = [
            _evaluation(Principle.DEEP_PROCESSING, 85),
            _evaluation(Principle.RETRIEVAL_PRACTICE, 20, [Suggestion(title="Add retrieval questions", text="Ask three questions.")]),
            _evaluation(Principle.DUAL_CODING, 95),
            _evaluation(Principle.INTERLEAVING, 60),
        ]
        recommendations = build_recommendations(evaluations, ConceptGraph())
        self.assertEqual(
            [r.principle for r in recommendations],
            [Principle.RETRIEVAL_PRACTICE, Principle.INTERLEAVING, Principle.DEEP_PROCESSING],
        )
        self.assertEqual([r.priority for r in recommendations], [Priority.HIGH, Priority.MEDIUM, Priority.LOW])

        first = recommendations[0]
        self.assertEqual(first.id, "rec-retrievalPractice")
        self.assertEqual(first.title, "Add retrieval questions")
        self.assertEqual(first.action_items, ("Ask three questions.",))
        self.assertIn("20/100", first.description)
        self.assertIn("Something is missing", first.description)
        self.assertEqual(first.expected_outcome, EXPECTED_OUTCOMES[Principle.RETRIEVAL_PRACTICE])

    def test_generic_action_when_no_suggestions(self) -> None:
        recommendations = build_recommendations([_evaluation(Principle.SCHEMA_BUILDING, 45)], ConceptGraph())
        self.assertEqual(recommendations[0].action_items, (GENERIC_ACTIONS[Principle.SCHEMA_BUILDING],))
        self.assertEqual(recommendations[0].title, "Strengthen schema building")

    def test_ties_keep_evaluation_order(self) -> None:
        evaluations = [_evaluation(Principle.METACOGNITION, 30), _evaluation(Principle.ELABORATION, 30)]
        recommendations = build_recommendations(evaluations, ConceptGraph())
        self.assertEqual([r.principle for r in recommendations], [Principle.METACOGNITION, Principle.ELABORATION])

    def test_related_concepts_are_top_core_concepts(self) -> None:
        def concept(cid: str, importance: Importance, positions) -> Concept:
            return Concept(
                id=cid,
                name=cid,
                importance=importance,
                mentions=tuple(Mention(position=p) for p in positions),
            )

        graph = ConceptGraph(
            concepts=(
                concept("a", Importance.CORE, (0, 10)),
                concept("b", Importance.CORE, (5, 15, 25)),
                concept("c", Importance.SUPPORTING, (1, 2, 3, 4)),
                concept("d", Importance.CORE, (30,)),
                concept("e", Importance.CORE, (40,)),
            ),
            hierarchy=ConceptHierarchy(core=("a", "b", "d", "e"), supporting=("c",)),
        )
        recommendations = build_recommendations([_evaluation(Principle.INTERLEAVING, 10)], graph)
        self.assertEqual(recommendations[0].related_concepts, ("b", "a", "d"))
