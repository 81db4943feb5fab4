"""Concept extraction and concept-graph construction.

The extractor works in six passes over the chapter text:

1. collect candidate phrases (headings, definitional sentences, capitalized
   spans, content words, repeated noun bigrams, formula/acronym tokens and
   any domain concept library entries), then let the longest phrase claim
   each stretch of text so nested candidates never double-count a mention;
2. score each candidate by saturating frequency weighted by the inverse
   section frequency from a ``TfidfVectorizer``, plus structural bonuses,
   and keep those above the configured threshold;
3. turn each surviving candidate into a Concept with one Mention per
   occurrence (offset, context, depth of treatment, section index);
4. classify importance from heading presence and mentions per 1,000 words;
5. derive typed relationships from sentence cues and local co-occurrence;
6. break prerequisite cycles on a ``networkx`` digraph and compute
   hierarchy, ordering and stats.

Everything is deterministic for a given text, section list and settings.
"""

from __future__ import annotations

import bisect
import logging
import math
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx
from sklearn.feature_extraction.text import TfidfVectorizer

from chaptercheck.core.config import ExtractionSettings

from .library import ConceptLibrary, LibraryConcept, find_library_concepts
from .models import (
    Concept,
    ConceptGraph,
    ConceptHierarchy,
    ConceptRelationship,
    GraphStats,
    Importance,
    Mention,
    MentionDepth,
    RelationshipType,
    Section,
)
from .text import (
    GENERIC_WORDS,
    STOPWORDS,
    WORD_RE,
    clip,
    compile_cues,
    is_content_word,
    is_verb_like,
    normalize_phrase,
    per_thousand,
    sentence_spans,
    singularize,
    slugify,
    snippet,
    strip_determiner,
    words,
)

LOGGER = logging.getLogger("chaptercheck.concepts")

MAX_PHRASE_WORDS = 4
IDEAL_DISTRIBUTION = (0.2, 0.3, 0.5)

DEFINITION_RES = (
    re.compile(
        r"(?:^|(?<=[.!?:]\s)|(?<=\n))([A-Za-z][\w\-]*(?:\s+[\w\-]+){0,3}?)\s+(?:is|are)\s+(?:a|an|the)\s+([^.;\n]{3,160})",
        re.MULTILINE,
    ),
    re.compile(
        r"(?:^|(?<=[.!?:]\s)|(?<=\n))([A-Za-z][\w\-]*(?:\s+[\w\-]+){0,3}?)\s+(?:refers? to|(?:is|are) defined as|means)\s+([^.;\n]{3,160})",
        re.MULTILINE,
    ),
)
CAPITALIZED_SPAN_RE = re.compile(r"\b[A-Z][a-z]+(?:\s+(?:of\s+)?[A-Z][a-z]+){1,3}\b")
FORMULA_TOKEN_RE = re.compile(r"(?<![A-Za-z])(?:[A-Z][a-z]?[0-9₀-₉]*){2,6}(?![\w])")
HEADING_PREFIX_RE = re.compile(r"^\s*(?:#+\s*)?(?:(?:chapter|section|part|unit)\s+\d+[:.\-]?\s*)?(?:\d+(?:\.\d+)*[.)]?\s+)?", re.IGNORECASE)

PREREQUISITE_CUES = compile_cues(
    ["builds on", "build on", "requires", "require", "depends on", "depend on", "based on", "relies on",
     "rely on", "prerequisite", "derived from", "follows from", "first need", "before learning"]
)
EXAMPLE_FORWARD_CUES = compile_cues(["for example", "for instance", "such as", "e.g", "including"])
EXAMPLE_BACKWARD_CUES = compile_cues(["is an example of", "are examples of", "is a type of", "is a kind of",
                                      "are types of", "is an instance of", "is a form of"])
CONTRAST_CUES = compile_cues(["unlike", "whereas", "in contrast", "by contrast", "compared to", "compared with",
                              "versus", "differs from", "on the other hand", "as opposed to"])
EXPLANATION_CUES = compile_cues(["because", "therefore", "which means", "this is why", "in other words",
                                 "so that", "as a result", "due to", "consequently", "that is"])
ILLUSTRATION_CUES = compile_cues(["for example", "for instance", "such as", "e.g", "imagine", "consider"])

BASE_STRENGTH = {
    RelationshipType.PREREQUISITE: 0.7,
    RelationshipType.EXAMPLE: 0.65,
    RelationshipType.CONTRASTS: 0.6,
    RelationshipType.RELATED: 0.3,
}


@dataclass
class Token:
    start: int
    end: int
    surface: str
    lower: str


@dataclass
class Candidate:
    key: str
    sources: Set[str] = field(default_factory=set)
    surfaces: Counter = field(default_factory=Counter)
    spans: List[Tuple[int, int]] = field(default_factory=list)
    definition: Optional[str] = None
    score: float = 0.0
    library: Optional[LibraryConcept] = None

    @property
    def count(self) -> int:
        return len(self.spans)

    @property
    def word_length(self) -> int:
        return len(self.key.lstrip("#").split())


@dataclass
class _Edge:
    source: str
    target: str
    type: RelationshipType
    hits: int = 1
    order: int = 0

    @property
    def strength(self) -> float:
        return min(1.0, BASE_STRENGTH[self.type] + 0.1 * (self.hits - 1))


def tokenize(text: str) -> List[Token]:
    return [Token(m.start(), m.end(), m.group(0), m.group(0).lower()) for m in WORD_RE.finditer(text)]


def _adjacent(text: str, left: Token, right: Token) -> bool:
    gap = text[left.end : right.start]
    return gap.strip() in ("", "-") and "\n\n" not in gap


def _ngram_key(tokens: Sequence[Token]) -> str:
    return " ".join([token.lower for token in tokens[:-1]] + [singularize(tokens[-1].lower)])


def build_ngram_index(text: str, tokens: Sequence[Token]) -> Dict[str, List[Tuple[int, int]]]:
    """Map every 1..4-gram key (last word singularized) to its spans."""
    index: Dict[str, List[Tuple[int, int]]] = defaultdict(list)
    for i, token in enumerate(tokens):
        index[_ngram_key([token])].append((token.start, token.end))
        for n in range(2, MAX_PHRASE_WORDS + 1):
            j = i + n - 1
            if j >= len(tokens) or not _adjacent(text, tokens[j - 1], tokens[j]):
                break
            window = tokens[i : j + 1]
            index[_ngram_key(window)].append((window[0].start, window[-1].end))
    return index


def _phrase_key(phrase: str) -> Optional[str]:
    tokens = words(strip_determiner(phrase.strip()))
    if not tokens or len(tokens) > MAX_PHRASE_WORDS:
        return None
    lowered = [token.lower() for token in tokens]
    if lowered[0] in STOPWORDS or lowered[-1] in STOPWORDS:
        return None
    # "states of matter" is a phrase, "recall that glucose" is not.
    if any(token in STOPWORDS and token != "of" for token in lowered[1:-1]):
        return None
    if all(token.lower() in STOPWORDS or token.lower() in GENERIC_WORDS for token in tokens):
        return None
    if len(tokens) == 1 and not is_content_word(tokens[0]) and not tokens[0].isupper():
        return None
    return normalize_phrase(" ".join(tokens))


def _heading_phrase(title: str) -> str:
    return HEADING_PREFIX_RE.sub("", title).strip(" :.-")


def _section_index(starts: Sequence[int], position: int) -> int:
    if not starts:
        return 0
    return max(0, bisect.bisect_right(starts, position) - 1)


def mention_depth(text: str, start: int, end: int) -> MentionDepth:
    """Estimate depth of treatment from explanatory and illustrative cues nearby."""
    window = text[max(0, start - 150) : min(len(text), end + 150)]
    explanations = len(EXPLANATION_CUES.findall(window))
    illustrations = len(ILLUSTRATION_CUES.findall(window))
    defined = any(pattern.search(window) for pattern in DEFINITION_RES)
    signal = explanations + illustrations + (1 if defined else 0)
    if signal >= 2:
        return MentionDepth.DEEP
    if signal == 1 or len(window.split()) > 50:
        return MentionDepth.MODERATE
    return MentionDepth.SHALLOW


def hierarchy_balance(core: int, supporting: int, detail: int) -> float:
    """1.0 when the split matches 20/30/50, falling toward 0.2 at the extremes."""
    total = core + supporting + detail
    if total == 0:
        return 0.0
    ratios = (core / total, supporting / total, detail / total)
    deviation = sum(abs(ratio - ideal) for ratio, ideal in zip(ratios, IDEAL_DISTRIBUTION))
    return round(max(0.0, 1.0 - 0.5 * deviation), 4)


def prerequisite_digraph(edges: Iterable[_Edge]) -> nx.DiGraph:
    """Directed graph of prerequisite edges; each arc carries its ``_Edge``."""
    graph = nx.DiGraph()
    for edge in edges:
        if edge.type is RelationshipType.PREREQUISITE:
            graph.add_edge(edge.source, edge.target, edge=edge)
    return graph


def break_prerequisite_cycles(edges: List[_Edge]) -> Tuple[List[_Edge], int]:
    """Drop the weakest edge of each cycle (later-created edge on ties)."""
    remaining = list(edges)
    graph = prerequisite_digraph(remaining)
    dropped = 0
    while not nx.is_directed_acyclic_graph(graph):
        try:
            cycle = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            break
        weakest = min((graph.edges[u, v]["edge"] for u, v in cycle), key=lambda edge: (edge.strength, -edge.order))
        graph.remove_edge(weakest.source, weakest.target)
        remaining.remove(weakest)
        dropped += 1
        LOGGER.debug("Dropped prerequisite edge %s -> %s to break a cycle", weakest.source, weakest.target)
    return remaining, dropped


def _as_tokens(document: Sequence[str]) -> Sequence[str]:
    return document


def section_rarity(candidates: Dict[str, "Candidate"], starts: Sequence[int], section_total: int) -> Dict[str, float]:
    """Inverse section frequency of each candidate scaled to ``[0, 1]``.

    Each section is one document whose tokens are the candidate keys
    mentioned in it; ``TfidfVectorizer`` (smoothed idf) weighs them. A key
    seen in a single section scores 1.0, one seen in every section 0.0.
    """
    keys = sorted(key for key, candidate in candidates.items() if candidate.spans)
    if section_total <= 1 or not keys:
        return {key: 1.0 for key in keys}
    documents: List[List[str]] = [[] for _ in range(section_total)]
    for key in keys:
        for start, _end in candidates[key].spans:
            documents[min(_section_index(starts, start), section_total - 1)].append(key)
    vectorizer = TfidfVectorizer(analyzer=_as_tokens, vocabulary=keys, norm=None, smooth_idf=True)
    vectorizer.fit(documents)
    ceiling = math.log((1 + section_total) / 2)
    return {key: min(1.0, max(0.0, (idf - 1.0) / ceiling)) for key, idf in zip(keys, vectorizer.idf_)}


def resolve_overlaps(candidates: Dict[str, "Candidate"]) -> int:
    """Let the longest phrase claim each stretch of text.

    Candidates are visited longest first (library entries, then frequency,
    break ties); a span overlapping one already claimed is removed. Returns
    the number of candidates left without spans, which are deleted.
    """
    claimed: List[Tuple[int, int]] = []
    order = sorted(
        candidates.values(),
        key=lambda c: (-c.word_length, c.library is None, -c.count, c.spans[0][0] if c.spans else math.inf, c.key),
    )
    emptied = []
    for candidate in order:
        if not candidate.spans:
            continue
        kept = []
        for start, end in candidate.spans:
            i = bisect.bisect_left(claimed, (end, -1)) - 1
            if i >= 0 and claimed[i][1] > start:
                continue
            kept.append((start, end))
            bisect.insort(claimed, (start, end))
        if not kept:
            emptied.append(candidate.key)
        candidate.spans = kept
    for key in emptied:
        del candidates[key]
    return len(emptied)


class ConceptExtractor:
    """Builds a ConceptGraph from chapter text and section boundaries.

    ``library`` seeds domain concepts (and their aliases) as candidates so
    curated terms surface even when rare; they carry their topic category
    into ``Concept.metadata``.
    """

    def __init__(
        self,
        threshold: float = 0.45,
        settings: Optional[ExtractionSettings] = None,
        library: Optional[ConceptLibrary] = None,
    ):
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"concept extraction threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold
        self.settings = settings or ExtractionSettings()
        self.library = library

    # ----- public API -----

    def extract(self, text: str, sections: Sequence[Section] = ()) -> ConceptGraph:
        if not text.strip():
            return ConceptGraph()
        tokens = tokenize(text)
        total_words = len(tokens)
        starts = [section.start for section in sections]
        index = build_ngram_index(text, tokens)

        candidates = self._collect_candidates(text, tokens, sections, index)
        emptied = resolve_overlaps(candidates)
        for candidate in candidates.values():
            candidate.surfaces = Counter(text[start:end] for start, end in candidate.spans)
        self._score(candidates, starts, max(1, len(sections)))
        kept = self._select(candidates, total_words)
        if not kept:
            LOGGER.debug("No concept candidates above threshold %.2f", self.threshold)
            return ConceptGraph()

        ids = self._assign_ids(kept)
        mentions = {ids[c.key]: self._mentions(text, c, starts) for c in kept}
        importance = {ids[c.key]: self._importance(c, total_words) for c in kept}

        edges = self._relationships(text, kept, ids, mentions)
        edges, dropped = break_prerequisite_cycles(edges)
        graph = self._assemble(kept, ids, mentions, importance, edges, total_words, dropped)
        LOGGER.debug(
            "Extracted %d concepts, %d relationships (%d cycle edges dropped, %d nested candidates absorbed)",
            len(graph.concepts),
            len(graph.relationships),
            dropped,
            emptied,
        )
        return graph

    # ----- pass 1: candidates -----

    def _collect_candidates(
        self,
        text: str,
        tokens: Sequence[Token],
        sections: Sequence[Section],
        index: Dict[str, List[Tuple[int, int]]],
    ) -> Dict[str, Candidate]:
        candidates: Dict[str, Candidate] = {}

        def add(phrase: str, source: str, definition: Optional[str] = None) -> None:
            key = _phrase_key(phrase)
            if not key:
                return
            candidate = candidates.setdefault(key, Candidate(key=key, spans=list(index.get(key, ()))))
            candidate.sources.add(source)
            if definition and not candidate.definition:
                candidate.definition = clip(definition, 200)

        for section in sections:
            heading = _heading_phrase(section.title)
            if heading:
                add(heading, "heading")

        for pattern in DEFINITION_RES:
            for match in pattern.finditer(text):
                add(match.group(1), "definition", match.group(2).strip())

        for match in CAPITALIZED_SPAN_RE.finditer(text):
            add(match.group(0), "capitalized")

        if self.library is not None:
            for position, spans in find_library_concepts(text, self.library).items():
                entry = self.library.concepts[position]
                key = entry.key
                candidate = candidates.setdefault(key, Candidate(key=key))
                candidate.sources.add("library")
                candidate.library = entry
                candidate.spans = sorted(set(candidate.spans) | set(spans) | set(index.get(key, ())))

        unigram_counts: Counter = Counter()
        for token in tokens:
            if is_content_word(token.surface) and not token.surface.isupper() and not is_verb_like(token.surface):
                unigram_counts[singularize(token.lower)] += 1
        for key in unigram_counts:
            candidates.setdefault(key, Candidate(key=key, spans=list(index.get(key, ())))).sources.add("term")

        for left, right in zip(tokens, tokens[1:]):
            if not (is_content_word(left.surface) and is_content_word(right.surface)):
                continue
            if is_verb_like(left.surface) or is_verb_like(right.surface) or not _adjacent(text, left, right):
                continue
            key = _ngram_key([left, right])
            if key in candidates or len(index.get(key, ())) < 2:
                continue
            candidates[key] = Candidate(key=key, sources={"bigram"}, spans=list(index[key]))

        formula_spans: Dict[str, List[Tuple[int, int]]] = defaultdict(list)
        for match in FORMULA_TOKEN_RE.finditer(text):
            formula_spans[match.group(0)].append((match.start(), match.end()))
        for surface, spans in formula_spans.items():
            if normalize_phrase(surface) in candidates:
                continue
            key = "#" + surface
            candidates[key] = Candidate(key=key, sources={"formula"}, spans=spans)

        for candidate in candidates.values():
            candidate.spans.sort()
        return candidates

    # ----- pass 2: scoring -----

    def _score(self, candidates: Dict[str, Candidate], starts: Sequence[int], section_total: int) -> None:
        rarity = section_rarity(candidates, starts, section_total)
        for candidate in candidates.values():
            count = max(candidate.count, 1 if "heading" in candidate.sources else 0)
            if count == 0:
                candidate.score = 0.0
                continue
            score = (1.0 - math.exp(-count / 4.0)) * (0.6 + 0.4 * rarity.get(candidate.key, 1.0))
            if "heading" in candidate.sources:
                score += 0.35
            if "definition" in candidate.sources:
                score += 0.3
            if "library" in candidate.sources:
                score += 0.25
            if "capitalized" in candidate.sources and candidate.word_length > 1:
                score += 0.1
            if candidate.word_length > 1:
                score += 0.1
            candidate.score = min(1.0, score)

    def _select(self, candidates: Dict[str, Candidate], total_words: int) -> List[Candidate]:
        limit = self.settings.max_concepts or max(20, round(math.sqrt(total_words) * 1.5))
        passing = [c for c in candidates.values() if c.score >= self.threshold]
        passing.sort(key=lambda c: (-c.score, c.spans[0][0] if c.spans else 0, c.key))
        kept = passing[:limit]
        kept.sort(key=lambda c: (c.spans[0][0] if c.spans else math.inf, c.key))
        return kept

    # ----- pass 3/4: concepts -----

    @staticmethod
    def _display_name(candidate: Candidate) -> str:
        if candidate.library is not None:
            return candidate.library.name
        lowercase = [(count, surface) for surface, count in candidate.surfaces.items() if surface == surface.lower()]
        if lowercase:
            return " ".join(max(lowercase, key=lambda item: (item[0], item[1]))[1].split())
        if candidate.surfaces:
            best = max(candidate.surfaces.items(), key=lambda item: (item[1], item[0]))[0]
            return " ".join(best.split())
        return candidate.key.lstrip("#")

    def _assign_ids(self, kept: Iterable[Candidate]) -> Dict[str, str]:
        ids: Dict[str, str] = {}
        used: Set[str] = set()
        for candidate in kept:
            base = "concept-" + slugify(candidate.key.lstrip("#"))
            concept_id = base
            suffix = 2
            while concept_id in used:
                concept_id = f"{base}-{suffix}"
                suffix += 1
            used.add(concept_id)
            ids[candidate.key] = concept_id
        return ids

    def _mentions(self, text: str, candidate: Candidate, starts: Sequence[int]) -> Tuple[Mention, ...]:
        return tuple(
            Mention(
                position=start,
                context=snippet(text, start, end, 100),
                depth=mention_depth(text, start, end),
                section_index=_section_index(starts, start),
            )
            for start, end in candidate.spans
        )

    def _importance(self, candidate: Candidate, total_words: int) -> Importance:
        settings = self.settings
        if "heading" in candidate.sources:
            return Importance.CORE
        rate = per_thousand(candidate.count, total_words)
        if candidate.count >= settings.core_min_mentions and rate >= settings.core_per_thousand:
            return Importance.CORE
        if candidate.count >= settings.supporting_min_mentions and rate >= settings.supporting_per_thousand:
            return Importance.SUPPORTING
        return Importance.DETAIL

    @staticmethod
    def _library_metadata(candidate: Candidate) -> Dict[str, str]:
        entry = candidate.library
        if entry is None:
            return {}
        metadata = {"category": entry.category}
        if entry.subcategory:
            metadata["subcategory"] = entry.subcategory
        return metadata

    # ----- pass 5: relationships -----

    def _relationships(
        self,
        text: str,
        kept: Sequence[Candidate],
        ids: Dict[str, str],
        mentions: Dict[str, Tuple[Mention, ...]],
    ) -> List[_Edge]:
        spans_by_id: List[Tuple[int, int, str]] = sorted(
            (start, end, ids[c.key]) for c in kept for start, end in c.spans
        )
        first_seen = {cid: (items[0].position if items else len(text)) for cid, items in mentions.items()}
        keys_by_id = {ids[c.key]: c.key.lstrip("#") for c in kept}
        edges: Dict[Tuple[str, str, RelationshipType], _Edge] = {}

        def nested(a: str, b: str) -> bool:
            ka, kb = keys_by_id[a], keys_by_id[b]
            return f" {ka} " in f" {kb} " or f" {kb} " in f" {ka} "

        def add(source: str, target: str, rel_type: RelationshipType) -> None:
            if source == target or nested(source, target):
                return
            if rel_type is RelationshipType.RELATED and first_seen[target] < first_seen[source]:
                source, target = target, source
            key = (source, target, rel_type)
            if key in edges:
                edges[key].hits += 1
            else:
                edges[key] = _Edge(source, target, rel_type, order=len(edges))

        for s_start, s_end in sentence_spans(text):
            lo = bisect.bisect_left(spans_by_id, (s_start, -1, ""))
            present: Dict[str, int] = {}
            while lo < len(spans_by_id) and spans_by_id[lo][0] < s_end:
                present.setdefault(spans_by_id[lo][2], spans_by_id[lo][0])
                lo += 1
            if len(present) < 2:
                continue
            sentence = text[s_start:s_end]
            ordered = sorted(present.items(), key=lambda item: (item[1], item[0]))
            self._typed_edges(sentence, s_start, ordered, first_seen, add)

        window = self.settings.cooccurrence_window
        for i, (start, end, cid) in enumerate(spans_by_id):
            for j in range(i + 1, len(spans_by_id)):
                other_start, _other_end, other = spans_by_id[j]
                if other_start - end > window:
                    break
                if other != cid and other_start >= end:
                    add(cid, other, RelationshipType.RELATED)

        typed_pairs = {
            frozenset((edge.source, edge.target)) for edge in edges.values() if edge.type is not RelationshipType.RELATED
        }
        return [
            edge
            for edge in sorted(edges.values(), key=lambda e: e.order)
            if edge.type is not RelationshipType.RELATED or frozenset((edge.source, edge.target)) not in typed_pairs
        ]

    @staticmethod
    def _typed_edges(sentence, offset, ordered, first_seen, add) -> None:
        """Classify concept pairs inside one sentence by its connective cues."""
        positions = {cid: pos - offset for cid, pos in ordered}
        ids = [cid for cid, _ in ordered]

        def split_at(match: re.Match) -> Tuple[List[str], List[str]]:
            before = [cid for cid in ids if positions[cid] < match.start()]
            after = [cid for cid in ids if positions[cid] >= match.end()]
            return before, after

        cue = PREREQUISITE_CUES.search(sentence)
        if cue:
            dependents, prerequisites = split_at(cue)
            if dependents and prerequisites:
                for dependent in dependents:
                    for prerequisite in prerequisites:
                        add(prerequisite, dependent, RelationshipType.PREREQUISITE)
                return
            by_intro = sorted(ids, key=lambda cid: first_seen[cid])
            for later in by_intro[1:]:
                add(by_intro[0], later, RelationshipType.PREREQUISITE)
            return

        cue = EXAMPLE_BACKWARD_CUES.search(sentence)
        if cue:
            instances, generals = split_at(cue)
            for general in generals[:1]:
                for instance in instances:
                    add(general, instance, RelationshipType.EXAMPLE)
            return

        cue = EXAMPLE_FORWARD_CUES.search(sentence)
        if cue:
            generals, instances = split_at(cue)
            for general in generals[-1:]:
                for instance in instances:
                    add(general, instance, RelationshipType.EXAMPLE)
            return

        cue = CONTRAST_CUES.search(sentence)
        if cue:
            for i, left in enumerate(ids):
                for right in ids[i + 1 :]:
                    add(left, right, RelationshipType.CONTRASTS)
            return

        for pattern in DEFINITION_RES:
            match = pattern.search(sentence)
            if not match:
                continue
            defined = [cid for cid in ids if positions[cid] < match.end(1)]
            if not defined:
                continue
            subject = defined[0]
            for cid in ids:
                if cid != subject and first_seen[cid] < first_seen[subject]:
                    add(cid, subject, RelationshipType.PREREQUISITE)
            return

    # ----- pass 6: assembly -----

    def _assemble(
        self,
        kept: Sequence[Candidate],
        ids: Dict[str, str],
        mentions: Dict[str, Tuple[Mention, ...]],
        importance: Dict[str, Importance],
        edges: Sequence[_Edge],
        total_words: int,
        dropped: int,
    ) -> ConceptGraph:
        prerequisites: Dict[str, List[str]] = defaultdict(list)
        related: Dict[str, List[str]] = defaultdict(list)
        connected: Set[str] = set()
        for edge in edges:
            connected.update((edge.source, edge.target))
            if edge.type is RelationshipType.PREREQUISITE:
                prerequisites[edge.target].append(edge.source)
            else:
                related[edge.source].append(edge.target)
                related[edge.target].append(edge.source)

        concepts = []
        for candidate in kept:
            cid = ids[candidate.key]
            concepts.append(
                Concept(
                    id=cid,
                    name=self._display_name(candidate),
                    definition=candidate.definition,
                    importance=importance[cid],
                    mentions=mentions[cid],
                    prerequisites=tuple(dict.fromkeys(prerequisites.get(cid, ()))),
                    related=tuple(dict.fromkeys(related.get(cid, ()))),
                    metadata={
                        "score": round(candidate.score, 4),
                        "frequency": candidate.count,
                        "sources": sorted(candidate.sources),
                        **self._library_metadata(candidate),
                    },
                )
            )

        introduction = [c.id for c in sorted(concepts, key=lambda c: (0, c.first_position) if c.mentions else (1, 0))]
        # Mentions never overlap after resolve_overlaps, so each stretch of text counts once.
        sequence = [cid for _pos, cid in sorted((m.position, c.id) for c in concepts for m in c.mentions)]
        by_level = {level: [c.id for c in concepts if c.importance is level] for level in Importance}

        relationships = tuple(
            ConceptRelationship(source=e.source, target=e.target, type=e.type, strength=round(e.strength, 4))
            for e in edges
        )
        stats = GraphStats(
            density=round(per_thousand(len(concepts), total_words), 4),
            hierarchy_balance=hierarchy_balance(
                len(by_level[Importance.CORE]), len(by_level[Importance.SUPPORTING]), len(by_level[Importance.DETAIL])
            ),
            orphan_ids=tuple(c.id for c in concepts if c.id not in connected),
            dropped_cycle_edges=dropped,
        )
        return ConceptGraph(
            concepts=tuple(concepts),
            relationships=relationships,
            hierarchy=ConceptHierarchy(
                core=tuple(by_level[Importance.CORE]),
                supporting=tuple(by_level[Importance.SUPPORTING]),
                detail=tuple(by_level[Importance.DETAIL]),
            ),
            introduction_order=tuple(introduction),
            sequence=tuple(sequence),
            stats=stats,
        )


def extract_concepts(
    text: str,
    sections: Sequence[Section] = (),
    threshold: float = 0.45,
    settings: Optional[ExtractionSettings] = None,
    library: Optional[ConceptLibrary] = None,
) -> ConceptGraph:
    """Functional shortcut for ``ConceptExtractor(threshold, settings, library).extract``."""
    return ConceptExtractor(threshold, settings, library).extract(text, sections)


__all__ = [
    "ConceptExtractor",
    "build_ngram_index",
    "break_prerequisite_cycles",
    "extract_concepts",
    "hierarchy_balance",
    "mention_depth",
    "prerequisite_digraph",
    "resolve_overlaps",
    "section_rarity",
    "tokenize",
]
