"""Pedagogical pattern detectors.

Every detector is a pure function ``detect(text) -> list[PatternMatch]``.
The universal set runs for every chapter; domain sets (see
``apps.analyzer.domains``) are registered by key and unioned in.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import PatternMatch, PatternType
from .text import PARAGRAPH_SPLIT_RE, clip, compile_cues, sentence_spans

LOGGER = logging.getLogger("chaptercheck.patterns")

Detector = Callable[[str], List[PatternMatch]]

MAX_LOOKAHEAD = 800
MAX_PROCEDURE_LOOKAHEAD = 1500
CONTEXT_LIMIT = 300
DEDUPE_DISTANCE = 20

EXAMPLE_CUE_RE = re.compile(
    r"\b(?:for example|for instance|to illustrate|e\.g\.)"
    r"|\b(?:worked\s+)?example(?:\s+\d+(?:\.\d+)*)?\s*[:.\-]",
    re.IGNORECASE,
)
ANSWER_CUE_RE = re.compile(
    r"\b(?:solution|answer|we (?:get|find|obtain)|the result is|plugging in|substituting)\b",
    re.IGNORECASE,
)
DEFINITION_CUE_RE = re.compile(
    r"\b(?:is|are) (?:a|an|the)\b|\brefers? to\b|\bis defined as\b|\bmeans\b",
    re.IGNORECASE,
)
PROBLEM_HEAD_RE = re.compile(
    r"^[ \t]*(?:#+\s*)?(?:practice\s+problem|problem|exercise|practice|question|try it(?:\s+yourself)?"
    r"|check your understanding)(?:\s+\d+(?:\.\d+)*)?\s*[:.)]",
    re.IGNORECASE | re.MULTILINE,
)
PROBLEM_IMPERATIVE_RE = re.compile(
    r"\b(?:calculate|compute|solve|determine|predict|estimate)\s+(?:the|how|what|whether|which|for)\b",
    re.IGNORECASE,
)

SPECIES = r"\d*(?:[A-Z][a-z]?|\()[A-Za-z0-9₀-₉()]*(?:\((?:s|l|g|aq)\))?"
SIDE = rf"{SPECIES}(?:\s*\+\s*{SPECIES})*"
ARROW = r"(?:→|⟶|⇌|⇄|<=>|<->|->|=>)"
REACTION_RE = re.compile(rf"(?<![\w]){SIDE}\s*{ARROW}\s*{SIDE}")
MATH_EQUATION_RE = re.compile(
    r"\b[A-Za-z][A-Za-z0-9_]{0,5}\s*=\s*(?:[\w.()^]+\s*[-+*/×·÷^]\s*)+[\w.()^]+"
)
LATEX_RE = re.compile(r"\$\$?[^$\n]{2,200}\$\$?")

NUMBERED_LINE_RE = re.compile(r"^[ \t]*(?:\d+[.)]|step\s+\d+\s*[:.)]?)\s+\S", re.IGNORECASE | re.MULTILINE)
INLINE_STEP_RE = re.compile(r"\bstep\s+(\d+)\b", re.IGNORECASE)

COMPARISON_RE = compile_cues(
    [
        "compared to",
        "compared with",
        "in contrast",
        "by contrast",
        "unlike",
        "whereas",
        "on the other hand",
        "differs from",
        "versus",
        "as opposed to",
    ]
)


# ---------------------------------------------------------------------------
# Span helpers
# ---------------------------------------------------------------------------


def bounded_window(text: str, start: int, lookahead: int = MAX_LOOKAHEAD) -> Tuple[int, int]:
    """Return ``(start, end)`` for at most ``lookahead`` characters from ``start``."""
    return start, min(len(text), start + lookahead)


def paragraph_end(text: str, start: int, limit: int) -> int:
    """End of the paragraph containing ``start``, never past ``limit``."""
    brk = PARAGRAPH_SPLIT_RE.search(text, start, limit)
    return brk.start() if brk else limit


def next_trigger(pattern: re.Pattern[str], text: str, after: int, limit: int) -> int:
    """Offset of the next ``pattern`` hit in ``[after, limit)``, else ``limit``."""
    match = pattern.search(text, after, limit)
    return match.start() if match else limit


def delimiters_balanced(expression: str) -> bool:
    pairs = {")": "(", "]": "[", "}": "{"}
    stack: List[str] = []
    for char in expression:
        if char in "([{":
            stack.append(char)
        elif char in pairs:
            if not stack or stack.pop() != pairs[char]:
                return False
    return not stack


def make_match(
    text: str,
    *,
    type: str,
    family: PatternType,
    confidence: float,
    start: int,
    end: int,
    title: Optional[str] = None,
    metadata: Optional[Dict[str, object]] = None,
) -> Optional[PatternMatch]:
    """Build a PatternMatch with a clipped context, or ``None`` for an empty span."""
    end = min(end, len(text))
    while end > start and text[end - 1].isspace():
        end -= 1
    if end <= start:
        return None
    return PatternMatch(
        type=type,
        family=family,
        confidence=confidence,
        start=start,
        end=end,
        context=clip(text[start:end], CONTEXT_LIMIT),
        title=title,
        metadata=dict(metadata or {}),
    )


def _title_from(text: str, start: int, end: int) -> str:
    line = text[start:end].splitlines()[0] if text[start:end] else ""
    return clip(line, 80)


# ---------------------------------------------------------------------------
# Universal detectors
# ---------------------------------------------------------------------------


def detect_examples(text: str) -> List[PatternMatch]:
    """Example cues: worked when a solution follows, illustrative otherwise."""
    matches: List[PatternMatch] = []
    for cue in EXAMPLE_CUE_RE.finditer(text):
        start, window_end = bounded_window(text, cue.start())
        window_end = next_trigger(EXAMPLE_CUE_RE, text, cue.end(), window_end)
        answer = ANSWER_CUE_RE.search(text, cue.end(), window_end)
        if answer:
            end = paragraph_end(text, answer.end(), window_end)
            match = make_match(
                text,
                type=PatternType.WORKED_EXAMPLE.value,
                family=PatternType.WORKED_EXAMPLE,
                confidence=0.8,
                start=start,
                end=end,
                title=_title_from(text, start, end),
                metadata={"hasAnswer": True},
            )
        else:
            end = paragraph_end(text, cue.end(), window_end)
            lookback = text[max(0, start - 300) : start]
            has_definition = bool(DEFINITION_CUE_RE.search(lookback))
            match = make_match(
                text,
                type=PatternType.DEFINITION_EXAMPLE.value,
                family=PatternType.DEFINITION_EXAMPLE,
                confidence=0.75 if has_definition else 0.55,
                start=start,
                end=end,
                metadata={"nearDefinition": has_definition},
            )
        if match is not None:
            matches.append(match)
    return matches


def detect_problems(text: str) -> List[PatternMatch]:
    """Problem headings and imperative prompts, split by presence of an answer."""
    matches: List[PatternMatch] = []
    hits = [(m, 0.85) for m in PROBLEM_HEAD_RE.finditer(text)]
    hits.extend((m, 0.6) for m in PROBLEM_IMPERATIVE_RE.finditer(text))
    for cue, confidence in hits:
        start = cue.start() + (len(cue.group(0)) - len(cue.group(0).lstrip()))
        _, window_end = bounded_window(text, start)
        window_end = next_trigger(PROBLEM_HEAD_RE, text, cue.end(), window_end)
        answer = ANSWER_CUE_RE.search(text, cue.end(), window_end)
        end = paragraph_end(text, (answer.end() if answer else cue.end()), window_end)
        family = PatternType.WORKED_EXAMPLE if answer else PatternType.PRACTICE_PROBLEM
        match = make_match(
            text,
            type=family.value,
            family=family,
            confidence=confidence if not answer else min(confidence, 0.8),
            start=start,
            end=end,
            title=_title_from(text, start, end),
            metadata={"hasAnswer": bool(answer)},
        )
        if match is not None:
            matches.append(match)
    return matches


def detect_formulas(text: str) -> List[PatternMatch]:
    """Reaction-arrow notation, algebraic equations, and inline LaTeX."""
    matches: List[PatternMatch] = []
    for found, kind, confidence in (
        *((m, "reaction", 0.8) for m in REACTION_RE.finditer(text)),
        *((m, "equation", 0.7) for m in MATH_EQUATION_RE.finditer(text)),
        *((m, "latex", 0.75) for m in LATEX_RE.finditer(text)),
    ):
        expression = found.group(0).strip()
        match = make_match(
            text,
            type=PatternType.FORMULA.value,
            family=PatternType.FORMULA,
            confidence=confidence,
            start=found.start(),
            end=found.end(),
            metadata={
                "kind": kind,
                "expression": expression,
                "balancedDelimiters": delimiters_balanced(expression),
            },
        )
        if match is not None:
            matches.append(match)
    return matches


def _numbered_runs(text: str) -> Iterable[Tuple[int, int, int]]:
    """Yield ``(start, end, steps)`` for runs of consecutive numbered lines."""
    run_start: Optional[int] = None
    run_end = 0
    steps = 0
    for hit in NUMBERED_LINE_RE.finditer(text):
        line_end = text.find("\n", hit.start())
        line_end = len(text) if line_end == -1 else line_end
        gap = text[run_end:hit.start()] if run_start is not None else ""
        if run_start is not None and gap.count("\n") <= 2 and hit.start() - run_start <= MAX_PROCEDURE_LOOKAHEAD:
            run_end = line_end
            steps += 1
            continue
        if run_start is not None and steps >= 2:
            yield run_start, run_end, steps
        run_start = hit.start() + (len(hit.group(0)) - len(hit.group(0).lstrip()))
        run_end = line_end
        steps = 1
    if run_start is not None and steps >= 2:
        yield run_start, run_end, steps


def detect_procedures(text: str) -> List[PatternMatch]:
    """Runs of at least two numbered or "step N" lines, or inline step sequences."""
    matches: List[PatternMatch] = []
    for start, end, steps in _numbered_runs(text):
        match = make_match(
            text,
            type=PatternType.PROCEDURE.value,
            family=PatternType.PROCEDURE,
            confidence=0.8,
            start=start,
            end=min(end, start + MAX_PROCEDURE_LOOKAHEAD),
            title=_title_from(text, start, end),
            metadata={"steps": steps, "layout": "list"},
        )
        if match is not None:
            matches.append(match)

    inline = list(INLINE_STEP_RE.finditer(text))
    index = 0
    while index < len(inline):
        first = inline[index]
        group = [first]
        for hit in inline[index + 1 :]:
            if hit.start() - first.start() > MAX_PROCEDURE_LOOKAHEAD:
                break
            group.append(hit)
        if len(group) >= 2:
            end = paragraph_end(text, group[-1].end(), min(len(text), first.start() + MAX_PROCEDURE_LOOKAHEAD))
            match = make_match(
                text,
                type=PatternType.PROCEDURE.value,
                family=PatternType.PROCEDURE,
                confidence=0.7,
                start=first.start(),
                end=end,
                metadata={"steps": len(group), "layout": "inline"},
            )
            if match is not None:
                matches.append(match)
        index += len(group)
    return matches


def detect_comparisons(text: str) -> List[PatternMatch]:
    """Explicit comparison language, reported at sentence granularity."""
    matches: List[PatternMatch] = []
    spans = sentence_spans(text)
    for cue in COMPARISON_RE.finditer(text):
        start, end = cue.start(), cue.end()
        for s_start, s_end in spans:
            if s_start <= cue.start() < s_end:
                start, end = s_start, min(s_end, s_start + MAX_LOOKAHEAD)
                break
        match = make_match(
            text,
            type=PatternType.COMPARISON.value,
            family=PatternType.COMPARISON,
            confidence=0.6,
            start=start,
            end=end,
            metadata={"cue": cue.group(0).lower()},
        )
        if match is not None:
            matches.append(match)
    return matches


UNIVERSAL_DETECTORS: Dict[str, Detector] = {
    "examples": detect_examples,
    "problems": detect_problems,
    "formulas": detect_formulas,
    "procedures": detect_procedures,
    "comparisons": detect_comparisons,
}

_DOMAIN_DETECTORS: Dict[str, Dict[str, Detector]] = {}


# ---------------------------------------------------------------------------
# Registry + composition
# ---------------------------------------------------------------------------


def register_domain(domain: str, detectors: Dict[str, Detector], *, aliases: Sequence[str] = ()) -> None:
    """Register a domain detector set under ``domain`` (case-insensitive)."""
    for key in (domain, *aliases):
        _DOMAIN_DETECTORS[key.strip().lower()] = dict(detectors)


def registered_domains() -> List[str]:
    return sorted(_DOMAIN_DETECTORS)


def detectors_for(domain: Optional[str]) -> Dict[str, Detector]:
    """Universal detectors plus the domain set; unknown domains add nothing."""
    combined = dict(UNIVERSAL_DETECTORS)
    key = (domain or "").strip().lower()
    extra = _DOMAIN_DETECTORS.get(key)
    if extra is None:
        if key and key != "general":
            LOGGER.debug("No detector set registered for domain %r; using universal patterns only", domain)
        return combined
    for name, detector in extra.items():
        combined[f"{key}.{name}"] = detector
    return combined


def _conflicts(kept: PatternMatch, candidate: PatternMatch) -> bool:
    if kept.family is not candidate.family:
        return False
    if abs(kept.start - candidate.start) <= DEDUPE_DISTANCE:
        return True
    return kept.start <= candidate.start and candidate.end <= kept.end


def _preferred(a: PatternMatch, b: PatternMatch) -> PatternMatch:
    if a.confidence != b.confidence:
        return a if a.confidence > b.confidence else b
    # Prefer the domain-specific type on ties.
    a_specific = a.type != a.family.value
    b_specific = b.type != b.family.value
    if a_specific != b_specific:
        return a if a_specific else b
    return a if (a.end - a.start) >= (b.end - b.start) else b


def deduplicate(matches: Iterable[PatternMatch]) -> List[PatternMatch]:
    """Collapse overlapping matches of one family, keeping the most confident."""
    ordered = sorted(matches, key=lambda m: (m.start, -m.confidence, m.type))
    kept: List[PatternMatch] = []
    for candidate in ordered:
        for index, existing in enumerate(kept):
            if _conflicts(existing, candidate) or _conflicts(candidate, existing):
                kept[index] = _preferred(existing, candidate)
                break
        else:
            kept.append(candidate)
    return sorted(kept, key=lambda m: (m.start, m.end, m.type))


def detect_patterns(text: str, domain: Optional[str] = None) -> List[PatternMatch]:
    """Run every detector for ``domain`` and return deduplicated matches.

    A detector that raises is logged and contributes no matches.
    """
    found: List[PatternMatch] = []
    for name, detector in detectors_for(domain).items():
        try:
            found.extend(detector(text))
        except Exception as exc:  # noqa: BLE001 - one detector must not sink the rest
            LOGGER.warning("Pattern detector %s failed: %s", name, exc)
    return deduplicate(found)


def count_by_family(matches: Iterable[PatternMatch]) -> Dict[str, int]:
    counts = {family.value: 0 for family in PatternType}
    for match in matches:
        counts[match.family.value] += 1
    return counts


__all__ = [
    "Detector",
    "MAX_LOOKAHEAD",
    "UNIVERSAL_DETECTORS",
    "bounded_window",
    "count_by_family",
    "deduplicate",
    "delimiters_balanced",
    "detect_comparisons",
    "detect_examples",
    "detect_formulas",
    "detect_patterns",
    "detect_problems",
    "detect_procedures",
    "detectors_for",
    "make_match",
    "paragraph_end",
    "register_domain",
    "registered_domains",
]
