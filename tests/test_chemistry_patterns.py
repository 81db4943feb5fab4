from __future__ import annotations

from collections import Counter

import pytest

from apps.analyzer.domains.chemistry import (
    FormulaParseError,
    check_balance,
    detect_chemical_equations,
    detect_lab_procedures,
    detect_lewis_structures,
    detect_nomenclature,
    detect_reaction_mechanisms,
    detect_stoichiometry,
    equation_difficulty,
    parse_formula,
    parse_species,
)
from apps.analyzer.models import PatternType
from apps.analyzer.patterns import detect_patterns, registered_domains

COMBUSTION = "The combustion of methane is CH4 + 2O2 → CO2 + 2H2O."
LAB_TEXT = "Laboratory procedure:\n1. Put on safety goggles.\n2. Heat the sample gently.\n"


def test_parse_formula_handles_groups() -> None:
    assert parse_formula("Ca(OH)2") == Counter({"Ca": 1, "O": 2, "H": 2})
    assert parse_formula("Al2(SO4)3") == Counter({"Al": 2, "S": 3, "O": 12})


def test_parse_species_applies_coefficient_state_and_subscripts() -> None:
    assert parse_species("2H₂O(l)") == Counter({"H": 4, "O": 2})


def test_parse_formula_rejects_garbage() -> None:
    with pytest.raises(FormulaParseError):
        parse_formula("q")
    with pytest.raises(FormulaParseError):
        parse_formula("Ca(OH")


def test_check_balance() -> None:
    assert check_balance("2H₂ + O₂ → 2H₂O") == {"isBalanced": True}
    assert check_balance("H2 + O2 -> H2O") == {"isBalanced": False}
    unparsable = check_balance("Xy + 2q -> Z")
    assert unparsable["isBalanced"] is False
    assert "parseError" in unparsable


def test_equation_difficulty_bands() -> None:
    assert equation_difficulty("H2 -> H2") == "easy"
    assert equation_difficulty("2H2 + O2 -> 2H2O") == "medium"
    assert equation_difficulty("Ca(OH)2 + CO2 -> CaCO3 + H2O") == "hard"


def test_chemical_equation_detector_flags_balance() -> None:
    found = detect_chemical_equations(COMBUSTION)
    assert len(found) == 1
    match = found[0]
    assert match.type == "chemicalEquation"
    assert match.family is PatternType.FORMULA
    assert match.metadata["isBalanced"] is True
    assert match.metadata["expression"] == "CH4 + 2O2 → CO2 + 2H2O"


def test_domain_equation_replaces_universal_formula() -> None:
    found = [m for m in detect_patterns(COMBUSTION, "chemistry") if m.family is PatternType.FORMULA]
    assert [m.type for m in found] == ["chemicalEquation"]
    universal = [m for m in detect_patterns(COMBUSTION) if m.family is PatternType.FORMULA]
    assert [m.type for m in universal] == ["formula"]


def test_chemistry_alias_and_case_insensitive_key() -> None:
    assert "chemistry" in registered_domains()
    assert "chem" in registered_domains()
    assert detect_patterns(COMBUSTION, "chem") == detect_patterns(COMBUSTION, "Chemistry")


def test_stoichiometry_worked_versus_practice() -> None:
    practice = detect_stoichiometry("How many moles of water form from 4 g of hydrogen gas?")
    assert len(practice) == 1
    assert practice[0].family is PatternType.PRACTICE_PROBLEM
    worked = detect_stoichiometry("How many moles of water form from 4 g of hydrogen gas? Solution: 2 moles.")
    assert worked[0].family is PatternType.WORKED_EXAMPLE
    assert worked[0].metadata["hasAnswer"] is True


def test_lab_procedure_needs_two_numbered_steps() -> None:
    found = detect_lab_procedures(LAB_TEXT)
    assert len(found) == 1
    assert found[0].metadata["steps"] == 2
    assert found[0].confidence == 0.9
    assert detect_lab_procedures("Laboratory procedure:\n1. Put on safety goggles.\n") == []


def test_lab_procedure_wins_over_generic_procedure() -> None:
    types = [m.type for m in detect_patterns(LAB_TEXT, "chemistry") if m.family is PatternType.PROCEDURE]
    assert types == ["labProcedure"]


def test_reaction_mechanism_needs_two_steps() -> None:
    text = "The reaction mechanism is short. Step 1: the bond breaks. Step 2: the ions recombine."
    found = detect_reaction_mechanisms(text)
    assert found
    assert found[0].type == "reactionMechanism"
    assert found[0].metadata["steps"] == 2
    assert detect_reaction_mechanisms("The reaction mechanism is a single step 1 process.") == []


def test_lewis_and_nomenclature_are_practice() -> None:
    lewis = detect_lewis_structures("Draw the Lewis structure for ammonia.")
    naming = detect_nomenclature("Name the following compound: NaCl.")
    assert [m.type for m in lewis] == ["lewisStructure"]
    assert [m.type for m in naming] == ["nomenclature"]
    assert all(m.family is PatternType.PRACTICE_PROBLEM for m in lewis + naming)
