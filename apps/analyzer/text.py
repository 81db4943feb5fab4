"""Lexical helpers shared by the detectors, the extractor, and the evaluators.

Nothing here attempts real linguistic parsing; sentence and word boundaries
are regex approximations that behave predictably on ordinary prose.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List, Sequence, Tuple

WORD_RE = re.compile(r"[A-Za-z][A-Za-z'\-]*")
SENTENCE_RE = re.compile(r"[^.!?\n]+(?:[.!?]+|$)", re.MULTILINE)
PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
QUESTION_RE = re.compile(r"[^.!?\n]{3,}\?")

STOPWORDS = frozenset(
    """
    a about above after again against all also although am an and any are as at be
    because been before being below between both but by can cannot could did do does
    doing down during each either else even every few for from further had has have
    having he her here hers herself him himself his how however i if in into is it its
    itself just least less let like many may me might more most much must my myself
    neither no nor not now of off often on once one only onto or other others otherwise
    our ours ourselves out over own per perhaps rather same shall she should since so
    some such than that the their theirs them themselves then there therefore these they
    this those though through thus to too toward towards under until up upon us very via
    was we well were what whatever when whenever where whereas wherever whether which
    while who whom whose why will with within without would yet you your yours yourself
    yourselves
    """.split()
)

# Frequent words that are never worth surfacing as concepts.
GENERIC_WORDS = frozenset(
    """
    example examples instance instances chapter section figure table page step steps
    problem problems answer answers solution solutions question questions exercise
    exercises practice summary introduction conclusion review thing things way ways
    kind kinds type types part parts lot lots number numbers case cases fact facts
    point points form forms time times first second third next last another several
    various different similar important common general specific simple basic called
    known used using uses make makes made making take takes taken give gives given
    show shows shown find finds found note notes consider look looks seen become becomes
    always never sometimes usually also still already again often within without across
    around along among amount called include includes including following follows
    describe describes described explain explains explained understand understanding
    learn learning learned students student reader readers will would could should
    these those there where which while what when whose whom each into than then them
    they this that with from have been being does doing done other others another
    about above below after before between both many much more most some such very
    just only even same able without mean means meaning refers refer defined define
    happens happen occurs occur called consists consist known result results
    """.split()
)

DETERMINERS = ("the ", "a ", "an ", "this ", "that ", "these ", "those ")

# Base forms of verbs that show up in expository prose. Used to keep
# "releases energy" or "build glucose" from becoming concepts.
COMMON_VERBS = frozenset(
    """
    absorb act add affect allow apply arrive attach begin bind boil break bring build
    call carry cause combine come compare contain convert create depend describe
    determine develop dissolve divide emit enable enter explain feel follow generate
    get give go grow happen help hold involve keep lead leave make move need occur pass
    prevent produce provide put raise react reduce release rely remain remove represent
    require say see seem separate show split stay stop take tend think trigger
    """.split()
)


def _verb_forms(lower: str) -> set:
    forms = {lower}
    if lower.endswith("ies") and len(lower) > 4:
        forms.add(lower[:-3] + "y")
    for suffix in ("es", "s", "ed", "ing"):
        if lower.endswith(suffix) and len(lower) - len(suffix) >= 3:
            stem = lower[: -len(suffix)]
            forms.update((stem, stem + "e"))
            if stem[-1] == stem[-2]:
                forms.add(stem[:-1])
    return forms


def is_verb_like(token: str) -> bool:
    """True when ``token`` is an inflection of a common verb."""
    return not COMMON_VERBS.isdisjoint(_verb_forms(token.lower()))


def words(text: str) -> List[str]:
    """Return the alphabetic word tokens of ``text``."""
    return WORD_RE.findall(text)


def word_count(text: str) -> int:
    return len(WORD_RE.findall(text))


def sentence_spans(text: str) -> List[Tuple[int, int]]:
    """Return ``(start, end)`` offsets of each non-blank sentence."""
    spans: List[Tuple[int, int]] = []
    for match in SENTENCE_RE.finditer(text):
        chunk = match.group(0)
        if not chunk.strip():
            continue
        leading = len(chunk) - len(chunk.lstrip())
        spans.append((match.start() + leading, match.end()))
    return spans


def sentences(text: str) -> List[str]:
    return [text[start:end].strip() for start, end in sentence_spans(text)]


def paragraphs(text: str) -> List[Tuple[int, str]]:
    """Split on blank lines, returning ``(offset, paragraph)`` pairs."""
    result: List[Tuple[int, str]] = []
    cursor = 0
    for match in PARAGRAPH_SPLIT_RE.finditer(text):
        chunk = text[cursor : match.start()]
        if chunk.strip():
            result.append((cursor, chunk))
        cursor = match.end()
    tail = text[cursor:]
    if tail.strip():
        result.append((cursor, tail))
    return result


def count_questions(text: str) -> int:
    return len(QUESTION_RE.findall(text))


def count_cues(text: str, patterns: Iterable[re.Pattern[str]]) -> int:
    """Sum the matches of several compiled patterns."""
    return sum(len(pattern.findall(text)) for pattern in patterns)


def compile_cues(phrases: Sequence[str]) -> re.Pattern[str]:
    """Build one case-insensitive, word-bounded alternation from phrases."""
    body = "|".join(r"\s+".join(re.escape(part) for part in phrase.split()) for phrase in phrases)
    return re.compile(rf"\b(?:{body})\b", re.IGNORECASE)


def per_thousand(count: float, total_words: int) -> float:
    if total_words <= 0:
        return 0.0
    return count * 1000.0 / total_words


def snippet(text: str, start: int, end: int, radius: int = 100) -> str:
    """Return the text around ``[start, end)`` padded by ``radius`` characters."""
    lo = max(0, start - radius)
    hi = min(len(text), end + radius)
    return " ".join(text[lo:hi].split())


def clip(text: str, limit: int = 300) -> str:
    collapsed = " ".join(text.split())
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 3].rstrip() + "..."


_INVARIANT_PLURALS = frozenset({"species", "series", "means", "news", "gas", "lens", "bias", "atlas", "canvas"})


def singularize(word: str) -> str:
    """Crude English singular form used to merge plural concept names."""
    lower = word.lower()
    if len(lower) <= 3 or lower in _INVARIANT_PLURALS or lower.endswith("ics"):
        return lower
    if lower.endswith("ies") and len(lower) > 4:
        return lower[:-3] + "y"
    if lower.endswith(("sses", "xes", "zes", "ches", "shes")):
        return lower[:-2]
    if lower.endswith("s") and not lower.endswith(("ss", "us", "is")):
        return lower[:-1]
    return lower


def normalize_phrase(phrase: str) -> str:
    """Case- and plural-insensitive key for a (possibly multiword) phrase."""
    tokens = phrase.split()
    if not tokens:
        return ""
    lowered = [token.lower() for token in tokens]
    lowered[-1] = singularize(lowered[-1])
    return " ".join(lowered)


def strip_determiner(phrase: str) -> str:
    lowered = phrase.lower()
    for det in DETERMINERS:
        if lowered.startswith(det):
            return phrase[len(det) :]
    return phrase


_SUBSCRIPT_DIGITS = str.maketrans("₀₁₂₃₄₅₆₇₈₉", "0123456789")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.translate(_SUBSCRIPT_DIGITS).lower()).strip("-")
    return slug or "item"


def iter_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(offset, line)`` pairs without trailing newlines."""
    offset = 0
    for line in text.splitlines(keepends=True):
        yield offset, line.rstrip("\r\n")
        offset += len(line)


def is_content_word(token: str) -> bool:
    lower = token.lower()
    return len(lower) >= 4 and lower not in STOPWORDS and lower not in GENERIC_WORDS


__all__ = [
    "COMMON_VERBS",
    "DETERMINERS",
    "GENERIC_WORDS",
    "STOPWORDS",
    "clip",
    "compile_cues",
    "count_cues",
    "count_questions",
    "is_content_word",
    "is_verb_like",
    "iter_lines",
    "normalize_phrase",
    "paragraphs",
    "per_thousand",
    "sentence_spans",
    "sentences",
    "singularize",
    "slugify",
    "snippet",
    "strip_determiner",
    "word_count",
    "words",
]
