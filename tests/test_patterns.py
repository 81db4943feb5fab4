from __future__ import annotations

import unittest

import pytest

from apps.analyzer import patterns
from apps.analyzer.models import PatternMatch, PatternType
from apps.analyzer.patterns import (
    MAX_LOOKAHEAD,
    count_by_family,
    deduplicate,
    detect_comparisons,
    detect_formulas,
    detect_patterns,
    detect_procedures,
)

WATER_TEXT = (
    "Water is a compound. Water forms when hydrogen and oxygen react: "
    "2H₂ + O₂ → 2H₂O. Example: ice is solid water."
)


def _match(type_: str, family: PatternType, confidence: float, start: int, end: int) -> PatternMatch:
    return PatternMatch(type=type_, family=family, confidence=confidence, start=start, end=end, context="x")


class UniversalDetectorTests(unittest.TestCase):
    def test_worked_example_needs_answer_cue(self) -> None:
        text = (
            "Example 1: A car travels 100 km in 2 hours. What is its speed?\n"
            "Solution: speed = distance / time, which gives 50 km per hour."
        )
        found = detect_patterns(text)
        worked = [m for m in found if m.family is PatternType.WORKED_EXAMPLE]
        self.assertEqual(len(worked), 1)
        self.assertTrue(worked[0].metadata["hasAnswer"])
        self.assertEqual(worked[0].start, 0)

    def test_example_without_answer_is_definition_example(self) -> None:
        found = detect_patterns(WATER_TEXT)
        examples = [m for m in found if m.family is PatternType.DEFINITION_EXAMPLE]
        self.assertEqual(len(examples), 1)
        self.assertTrue(examples[0].metadata["nearDefinition"])
        self.assertEqual(examples[0].confidence, 0.75)

    def test_practice_problem_heading_and_imperative_collapse(self) -> None:
        text = "Practice Problem 2: Calculate the pressure of the gas at 300 K."
        found = detect_patterns(text)
        practice = [m for m in found if m.family is PatternType.PRACTICE_PROBLEM]
        self.assertEqual(len(practice), 1)
        self.assertEqual(practice[0].confidence, 0.85)
        self.assertFalse(practice[0].metadata["hasAnswer"])

    def test_reaction_formula_span(self) -> None:
        formulas = [m for m in detect_patterns(WATER_TEXT) if m.family is PatternType.FORMULA]
        self.assertEqual(len(formulas), 1)
        match = formulas[0]
        self.assertEqual(WATER_TEXT[match.start : match.end], "2H₂ + O₂ → 2H₂O")
        self.assertEqual(match.metadata["kind"], "reaction")
        self.assertTrue(match.metadata["balancedDelimiters"])

    def test_unbalanced_expression_is_flagged_not_dropped(self) -> None:
        found = detect_formulas("The value $f(x = 2$ is undefined here.")
        latex = [m for m in found if m.metadata["kind"] == "latex"]
        self.assertEqual(len(latex), 1)
        self.assertFalse(latex[0].metadata["balancedDelimiters"])

    def test_numbered_steps_form_one_procedure(self) -> None:
        text = "To titrate:\n1. Rinse the burette.\n2. Fill it with titrant.\n3. Record the volume.\n"
        found = detect_procedures(text)
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].metadata["steps"], 3)
        self.assertEqual(found[0].metadata["layout"], "list")
        self.assertTrue(text[found[0].start :].startswith("1. Rinse"))

    def test_single_numbered_line_is_not_a_procedure(self) -> None:
        self.assertEqual(detect_procedures("Notes:\n1. Only one item here.\n"), [])

    def test_comparison_reported_at_sentence_granularity(self) -> None:
        text = "Cells divide often. Mitosis produces two cells, whereas meiosis produces four."
        found = detect_comparisons(text)
        self.assertEqual(len(found), 1)
        self.assertEqual(text[found[0].start : found[0].end], "Mitosis produces two cells, whereas meiosis produces four.")
        self.assertEqual(found[0].metadata["cue"], "whereas")

    def test_plain_prose_yields_no_matches(self) -> None:
        self.assertEqual(detect_patterns("Plain prose without any cues at all."), [])
        self.assertEqual(detect_patterns(""), [])

    def test_long_spans_are_clipped(self) -> None:
        text = "For example " + "word " * 5000
        found = detect_patterns(text)
        self.assertTrue(found)
        for match in found:
            self.assertLessEqual(match.end - match.start, MAX_LOOKAHEAD)
            self.assertLessEqual(len(match.context), 300)


class DeduplicationTests(unittest.TestCase):
    def test_keeps_most_confident_of_same_family(self) -> None:
        low = _match("formula", PatternType.FORMULA, 0.7, 10, 30)
        high = _match("formula", PatternType.FORMULA, 0.8, 15, 32)
        self.assertEqual(deduplicate([low, high]), [high])

    def test_different_families_are_kept(self) -> None:
        formula = _match("formula", PatternType.FORMULA, 0.7, 10, 30)
        comparison = _match("comparison", PatternType.COMPARISON, 0.6, 10, 30)
        self.assertEqual(len(deduplicate([formula, comparison])), 2)

    def test_distant_matches_are_kept(self) -> None:
        first = _match("formula", PatternType.FORMULA, 0.7, 0, 10)
        second = _match("formula", PatternType.FORMULA, 0.7, 100, 110)
        self.assertEqual(deduplicate([second, first]), [first, second])

    def test_tie_prefers_domain_specific_type(self) -> None:
        universal = _match("formula", PatternType.FORMULA, 0.8, 5, 20)
        specific = _match("chemicalEquation", PatternType.FORMULA, 0.8, 5, 20)
        self.assertEqual(deduplicate([universal, specific])[0].type, "chemicalEquation")


def test_failing_detector_contributes_nothing(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(text: str):
        raise RuntimeError("detector exploded")

    monkeypatch.setitem(patterns.UNIVERSAL_DETECTORS, "formulas", boom)
    found = detect_patterns(WATER_TEXT)
    assert all(m.family is not PatternType.FORMULA for m in found)
    assert any(m.family is PatternType.DEFINITION_EXAMPLE for m in found)


def test_unknown_domain_uses_universal_set_only() -> None:
    assert detect_patterns(WATER_TEXT, "astrology") == detect_patterns(WATER_TEXT)
    assert detect_patterns(WATER_TEXT, None) == detect_patterns(WATER_TEXT, "general")


def test_count_by_family_reports_every_family() -> None:
    counts = count_by_family(detect_patterns(WATER_TEXT))
    assert set(counts) == {family.value for family in PatternType}
    assert counts["formula"] == 1
    assert counts["definitionExample"] == 1
    assert counts["practiceProblem"] == 0


def test_detection_is_repeatable() -> None:
    assert detect_patterns(WATER_TEXT) == detect_patterns(WATER_TEXT)
