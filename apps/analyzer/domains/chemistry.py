"""Chemistry detector set: equations, stoichiometry, Lewis structures, labs, naming, mechanisms."""

from __future__ import annotations

import re
from collections import Counter
from typing import Dict, List, Tuple

from ..models import PatternMatch, PatternType
from ..patterns import (
    ANSWER_CUE_RE,
    ARROW,
    INLINE_STEP_RE,
    NUMBERED_LINE_RE,
    REACTION_RE,
    Detector,
    bounded_window,
    make_match,
    paragraph_end,
)

SUBSCRIPTS = str.maketrans("₀₁₂₃₄₅₆₇₈₉", "0123456789")
ARROW_SPLIT_RE = re.compile(rf"\s*{ARROW}\s*")
STATE_RE = re.compile(r"\((?:s|l|g|aq)\)$")
COEFFICIENT_RE = re.compile(r"^(\d*)\s*(.*)$")

STOICHIOMETRY_RE = re.compile(
    r"calculate\s+(?:the\s+)?(?:mass|moles?|volume|grams?|liters?)"
    r"|how\s+many\s+(?:moles?|grams?|liters?|molecules?)"
    r"|determine\s+(?:the\s+)?(?:limiting\s+reactant|excess\s+reagent)"
    r"|percent\s+yield|theoretical\s+yield|molar\s+mass",
    re.IGNORECASE,
)
LEWIS_RE = re.compile(
    r"draw\s+(?:the\s+)?lewis\s+structure|lewis\s+(?:dot\s+)?diagram|electron\s+dot\s+structure"
    r"|show\s+(?:the\s+)?bonding",
    re.IGNORECASE,
)
LAB_RE = re.compile(
    r"laboratory\s+procedure|experimental\s+(?:procedure|method)|safety\s+(?:precautions?|warning|guidelines?)"
    r"|materials?\s+(?:needed|required)\s*:|\bapparatus\b",
    re.IGNORECASE,
)
NOMENCLATURE_RE = re.compile(
    r"name\s+the\s+following\s+compound|give\s+the\s+(?:IUPAC\s+)?name|write\s+the\s+formula\s+for"
    r"|nomenclature\s+practice",
    re.IGNORECASE,
)
MECHANISM_RE = re.compile(
    r"reaction\s+mechanism|mechanism\s+(?:of|for)\s+(?:the\s+)?reaction|step-by-step\s+reaction"
    r"|elementary\s+steps?|rate-determining\s+step",
    re.IGNORECASE,
)


class FormulaParseError(ValueError):
    """Raised when a species cannot be read as a chemical formula."""


def _read_number(formula: str, index: int) -> Tuple[int, int]:
    start = index
    while index < len(formula) and formula[index].isdigit():
        index += 1
    return (int(formula[start:index]) if index > start else 1), index


def parse_formula(formula: str) -> Counter:
    """Count atoms per element in a formula such as ``Ca(OH)2``."""
    stack: List[Counter] = [Counter()]
    index = 0
    while index < len(formula):
        char = formula[index]
        if char in "([":
            stack.append(Counter())
            index += 1
        elif char in ")]":
            if len(stack) == 1:
                raise FormulaParseError(f"unbalanced ')' in {formula!r}")
            group = stack.pop()
            multiplier, index = _read_number(formula, index + 1)
            for element, count in group.items():
                stack[-1][element] += count * multiplier
        elif char.isupper():
            symbol = char
            index += 1
            if index < len(formula) and formula[index].islower():
                symbol += formula[index]
                index += 1
            count, index = _read_number(formula, index)
            stack[-1][symbol] += count
        else:
            raise FormulaParseError(f"unexpected {char!r} in {formula!r}")
    if len(stack) != 1:
        raise FormulaParseError(f"unclosed '(' in {formula!r}")
    if not stack[0]:
        raise FormulaParseError(f"no elements in {formula!r}")
    return stack[0]


def parse_species(species: str) -> Counter:
    """Atom counts for one side term, including its leading coefficient."""
    cleaned = STATE_RE.sub("", species.strip().translate(SUBSCRIPTS))
    match = COEFFICIENT_RE.match(cleaned)
    coefficient = int(match.group(1)) if match and match.group(1) else 1
    formula = match.group(2) if match else cleaned
    atoms = parse_formula(formula.strip())
    return Counter({element: count * coefficient for element, count in atoms.items()})


def side_atoms(side: str) -> Counter:
    total: Counter = Counter()
    for term in side.split("+"):
        if term.strip():
            total.update(parse_species(term))
    return total


def check_balance(equation: str) -> Dict[str, object]:
    """Compare element counts across the arrow.

    Returns ``{"isBalanced": bool}`` or, when a species cannot be parsed,
    ``{"isBalanced": False, "parseError": message}``.
    """
    sides = ARROW_SPLIT_RE.split(equation.strip(), maxsplit=1)
    if len(sides) != 2:
        return {"isBalanced": False, "parseError": "missing reaction arrow"}
    try:
        left, right = side_atoms(sides[0]), side_atoms(sides[1])
    except FormulaParseError as exc:
        return {"isBalanced": False, "parseError": str(exc)}
    return {"isBalanced": left == right}


def equation_difficulty(equation: str) -> str:
    plus_count = equation.count("+")
    if "(" in equation or plus_count >= 4:
        return "hard"
    if re.search(r"\d+[A-Z]", equation) or plus_count >= 2:
        return "medium"
    return "easy"


def detect_chemical_equations(text: str) -> List[PatternMatch]:
    matches: List[PatternMatch] = []
    for found in REACTION_RE.finditer(text):
        equation = found.group(0).strip()
        metadata: Dict[str, object] = {"expression": equation, "difficulty": equation_difficulty(equation)}
        metadata.update(check_balance(equation))
        match = make_match(
            text,
            type="chemicalEquation",
            family=PatternType.FORMULA,
            confidence=0.9,
            start=found.start(),
            end=found.end(),
            title="Chemical Equation",
            metadata=metadata,
        )
        if match is not None:
            matches.append(match)
    return matches


def detect_stoichiometry(text: str) -> List[PatternMatch]:
    matches: List[PatternMatch] = []
    for cue in STOICHIOMETRY_RE.finditer(text):
        start, window_end = bounded_window(text, cue.start(), 800)
        answer = ANSWER_CUE_RE.search(text, cue.end(), window_end)
        family = PatternType.WORKED_EXAMPLE if answer else PatternType.PRACTICE_PROBLEM
        match = make_match(
            text,
            type="stoichiometry",
            family=family,
            confidence=0.85,
            start=start,
            end=paragraph_end(text, answer.end() if answer else cue.end(), window_end),
            title="Stoichiometry Problem",
            metadata={"hasAnswer": bool(answer), "difficulty": "medium"},
        )
        if match is not None:
            matches.append(match)
    return matches


def detect_lewis_structures(text: str) -> List[PatternMatch]:
    matches: List[PatternMatch] = []
    for cue in LEWIS_RE.finditer(text):
        start, window_end = bounded_window(text, cue.start(), 500)
        match = make_match(
            text,
            type="lewisStructure",
            family=PatternType.PRACTICE_PROBLEM,
            confidence=0.8,
            start=start,
            end=paragraph_end(text, cue.end(), window_end),
            title="Lewis Structure",
            metadata={"difficulty": "medium", "visual": True},
        )
        if match is not None:
            matches.append(match)
    return matches


def detect_lab_procedures(text: str) -> List[PatternMatch]:
    matches: List[PatternMatch] = []
    for cue in LAB_RE.finditer(text):
        start, window_end = bounded_window(text, cue.start(), 1500)
        steps = list(NUMBERED_LINE_RE.finditer(text, cue.end(), window_end))
        if len(steps) < 2:
            continue
        last_line_end = text.find("\n", steps[-1].start())
        end = window_end if last_line_end == -1 else min(last_line_end, window_end)
        match = make_match(
            text,
            type="labProcedure",
            family=PatternType.PROCEDURE,
            confidence=0.9,
            start=start,
            end=end,
            title="Laboratory Procedure",
            metadata={"steps": len(steps), "safety": "safety" in cue.group(0).lower()},
        )
        if match is not None:
            matches.append(match)
    return matches


def detect_nomenclature(text: str) -> List[PatternMatch]:
    matches: List[PatternMatch] = []
    for cue in NOMENCLATURE_RE.finditer(text):
        start, window_end = bounded_window(text, cue.start(), 400)
        match = make_match(
            text,
            type="nomenclature",
            family=PatternType.PRACTICE_PROBLEM,
            confidence=0.85,
            start=start,
            end=paragraph_end(text, cue.end(), window_end),
            title="Nomenclature Practice",
            metadata={"difficulty": "easy"},
        )
        if match is not None:
            matches.append(match)
    return matches


def detect_reaction_mechanisms(text: str) -> List[PatternMatch]:
    matches: List[PatternMatch] = []
    for cue in MECHANISM_RE.finditer(text):
        start, window_end = bounded_window(text, cue.start(), 1000)
        steps = list(INLINE_STEP_RE.finditer(text, cue.end(), window_end))
        if len(steps) < 2:
            continue
        match = make_match(
            text,
            type="reactionMechanism",
            family=PatternType.PROCEDURE,
            confidence=0.9,
            start=start,
            end=paragraph_end(text, steps[-1].end(), window_end),
            title="Reaction Mechanism",
            metadata={"steps": len(steps), "difficulty": "hard"},
        )
        if match is not None:
            matches.append(match)
    return matches


CHEMISTRY_DETECTORS: Dict[str, Detector] = {
    "equations": detect_chemical_equations,
    "stoichiometry": detect_stoichiometry,
    "lewis": detect_lewis_structures,
    "lab": detect_lab_procedures,
    "nomenclature": detect_nomenclature,
    "mechanisms": detect_reaction_mechanisms,
}


__all__ = [
    "CHEMISTRY_DETECTORS",
    "FormulaParseError",
    "check_balance",
    "detect_chemical_equations",
    "detect_lab_procedures",
    "detect_lewis_structures",
    "detect_nomenclature",
    "detect_reaction_mechanisms",
    "detect_stoichiometry",
    "equation_difficulty",
    "parse_formula",
    "parse_species",
]
