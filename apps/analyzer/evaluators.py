"""Principle evaluators.

Each evaluator is a pure function ``evaluate(chapter, graph, patterns)`` that
maps a handful of lexical and structural metrics onto a 0-100 score through
fixed breakpoints. Evaluators are selected by the ``Principle`` enum through
``EVALUATORS``; nothing here keeps state between calls.
"""

from __future__ import annotations

import bisect
import re
from collections import Counter
from statistics import mean
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from chaptercheck.core.config import PrincipleWeights

from .models import (
    Chapter,
    ConceptGraph,
    Evidence,
    Finding,
    Importance,
    MentionDepth,
    PatternMatch,
    PatternType,
    Principle,
    PrincipleEvaluation,
    RelationshipType,
    Severity,
    Suggestion,
)
from .scoring import quality_band, score_from_breakpoints, to_score, weighted_average
from .text import compile_cues, count_questions, paragraphs, per_thousand, sentence_spans, sentences, words

Evaluator = Callable[[Chapter, ConceptGraph, Sequence[PatternMatch]], PrincipleEvaluation]

DEFAULT_WEIGHTS = PrincipleWeights()

WHY_HOW_QUESTION_RE = re.compile(r"\b(?:why|how|what causes|what would happen if)\b[^?.!\n]*\?", re.IGNORECASE)
EXPLANATION_CUES = compile_cues(
    ["because", "therefore", "as a result", "this means", "which means", "consequently", "due to", "leads to",
     "so that", "this is why"]
)
CONNECTION_CUES = compile_cues(
    ["recall that", "you may know", "you know that", "as you learned", "previously", "earlier we", "remember that",
     "like we saw", "as we saw", "builds on"]
)
ANALOGY_RE = re.compile(r"\bthink of\b[^.\n]{1,60}\bas\b|\bis like an?\b|\banalogous to\b|\bjust as\b|\bsimilar to how\b",
                        re.IGNORECASE)
SUMMARY_PROMPTS = compile_cues(
    ["summarize", "in your own words", "recap", "without looking back", "key takeaways", "review questions",
     "test yourself", "quiz yourself", "from memory"]
)
APPLICATION_PROMPTS = compile_cues(
    ["apply this", "how would you use", "real-world", "real world", "scenario", "case study", "practice this"]
)
VISUAL_REFERENCES = re.compile(
    r"\b(?:diagram|chart|graph|image|figure|fig\.|illustration|visuali[sz]e|sketch|table|map|plot)s?\b|!\[[^\]]*\]\(",
    re.IGNORECASE,
)
GENERATIVE_PROMPTS = compile_cues(
    ["predict", "generate", "create", "write", "construct", "solve", "design", "explain why", "explain how",
     "in your own words", "try it", "draw", "sketch"]
)
METACOGNITIVE_PROMPTS = compile_cues(
    ["do you understand", "confused", "misconception", "self-test", "check your understanding", "reflect",
     "ask yourself", "explain to yourself", "how confident", "what did you learn", "monitor your", "think about how"]
)
JUSTIFY_PROMPTS = compile_cues(["explain why", "explain how", "justify", "give a reason", "why does"])
EMOTION_CUES = compile_cues(
    ["story", "imagine", "surprising", "surprisingly", "curious", "wonder", "picture yourself", "mystery", "exciting",
     "fascinating", "remarkable"]
)
RELEVANCE_CUES = compile_cues(
    ["matters", "important because", "applies to", "real-world", "real world", "everyday", "in your life", "career",
     "practical", "relevant", "you will use"]
)
ELABORATION_CUES = compile_cues(
    ["in other words", "for instance", "that is", "this means", "to put it another way", "more specifically",
     "in particular", "consider", "imagine", "for example"]
)

OPPORTUNITY_CUES: Dict[str, Tuple[re.Pattern[str], int, int]] = {
    "spatial": (
        compile_cues(["above", "below", "beneath", "adjacent", "parallel", "perpendicular", "horizontal", "vertical",
                      "diagonal", "left", "right", "top", "bottom", "center", "middle", "side", "corner", "structure",
                      "shape", "arrangement", "configuration", "layout", "position", "connected", "attached",
                      "linked", "joined", "bonded", "between"]),
        3,
        100,
    ),
    "process": (
        compile_cues(["first", "second", "third", "next", "then", "finally", "subsequently", "afterward", "step",
                      "stage", "phase", "process", "procedure", "sequence", "cycle", "begins", "starts", "initiates",
                      "leads to", "results in", "produces", "forms"]),
        3,
        100,
    ),
    "quantitative": (
        re.compile(r"\b\d+(?:\.\d+)?\s*(?:percent|%|times|fold|ratio|proportion)|\b(?:increase|decrease|higher|lower"
                   r"|greater|fewer|compare|comparison|versus|contrast|difference|data|values|measurements"
                   r"|statistics)\b", re.IGNORECASE),
        3,
        80,
    ),
    "system": (
        compile_cues(["system", "component", "element", "module", "contains", "comprises", "consists of",
                      "includes", "function", "role", "purpose", "operates"]),
        4,
        120,
    ),
}

VISUAL_FAMILIES = (PatternType.FORMULA, PatternType.PROCEDURE, PatternType.COMPARISON)
EXAMPLE_FAMILIES = (PatternType.WORKED_EXAMPLE, PatternType.DEFINITION_EXAMPLE)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _family_count(patterns: Sequence[PatternMatch], *families: PatternType) -> int:
    return sum(1 for match in patterns if match.family in families)


def _key_concepts(graph: ConceptGraph):
    key = [c for c in graph.concepts if c.importance in (Importance.CORE, Importance.SUPPORTING)]
    return key or list(graph.concepts)


def _depth_ratio(graph: ConceptGraph) -> float:
    mentions = [m for c in graph.concepts for m in c.mentions]
    if not mentions:
        return 0.0
    weights = {MentionDepth.SHALLOW: 0.0, MentionDepth.MODERATE: 0.5, MentionDepth.DEEP: 1.0}
    return sum(weights[m.depth] for m in mentions) / len(mentions)


def _section_without(chapter: Chapter, pattern: re.Pattern[str]) -> Optional[str]:
    """Id of the longest section with no ``pattern`` hit, used to target suggestions."""
    candidates = [
        (len(words(text)), -s.start, s.id)
        for s, text in ((s, chapter.section_text(s)) for s in chapter.sections)
        if text.strip() and not pattern.search(text)
    ]
    if not candidates:
        return None
    return max(candidates)[2]


def _section_at(chapter: Chapter, offset: int) -> Optional[str]:
    containing = [s for s in chapter.sections if s.start <= offset]
    return containing[-1].id if containing else None


def _evaluation(
    principle: Principle,
    raw_score: float,
    evidence: Dict[str, float],
    findings: List[Finding],
    suggestions: List[Suggestion],
) -> PrincipleEvaluation:
    score = to_score(raw_score)
    band = quality_band(score)
    severity = Severity.POSITIVE if score >= 60 else Severity.INFO if score >= 40 else Severity.WARNING
    summary = Finding(message=f"{principle.display_name}: {band} ({score}/100)", severity=severity)
    return PrincipleEvaluation(
        principle=principle,
        score=score,
        weight=DEFAULT_WEIGHTS.get(principle.value),
        findings=(summary, *findings),
        suggestions=tuple(suggestions if score < 80 else suggestions[:1] if score < 90 else ()),
        evidence=tuple(Evidence(metric=name, value=round(float(value), 4)) for name, value in evidence.items()),
    )


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------


def evaluate_deep_processing(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text, total = chapter.content, chapter.word_count
    why_how = len(WHY_HOW_QUESTION_RE.findall(text))
    explanations = len(EXPLANATION_CUES.findall(text))
    connections = len(CONNECTION_CUES.findall(text))
    analogies = len(ANALOGY_RE.findall(text))
    depth = _depth_ratio(graph)

    score = weighted_average(
        [
            (score_from_breakpoints(per_thousand(why_how, total), [(0, 0), (0.5, 50), (2, 100)]), 0.30),
            (score_from_breakpoints(per_thousand(explanations, total), [(0, 0), (3, 50), (8, 100)]), 0.25),
            (score_from_breakpoints(connections, [(0, 0), (1, 60), (3, 100)]), 0.15),
            (score_from_breakpoints(analogies, [(0, 0), (1, 70), (2, 100)]), 0.15),
            (depth * 100, 0.15),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if why_how:
        findings.append(Finding(message=f"{why_how} why/how question(s) invite causal reasoning", severity=Severity.POSITIVE))
    else:
        findings.append(Finding(message="No why/how questions prompt learners to reason about causes", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Ask why and how", text="Add why/how questions after key explanations so readers reason about causes, not just facts."))
    if analogies == 0:
        suggestions.append(Suggestion(title="Add an analogy", text="Relate one core concept to something familiar with an explicit analogy."))
    if connections == 0:
        suggestions.append(Suggestion(title="Connect to prior knowledge", text="Open sections with a reminder of what readers already know (\"Recall that...\")."))
    return _evaluation(
        Principle.DEEP_PROCESSING,
        score,
        {"whyHowQuestions": why_how, "explanationCues": explanations, "priorKnowledgeLinks": connections,
         "analogies": analogies, "depthRatio": depth},
        findings,
        suggestions,
    )


def evaluate_spaced_repetition(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    section_total = max(1, len(chapter.sections))
    length = max(1, len(chapter.content))
    concepts = _key_concepts(graph)
    spreads: List[float] = []
    revisited = 0
    for concept in concepts:
        count = len(concept.mentions)
        if count < 2:
            spreads.append(0.0)
            continue
        if section_total > 1:
            spanned = concept.sections_spanned
            spreads.append((spanned - 1) / (min(section_total, count) - 1))
            revisited += 1 if spanned >= 2 else 0
        else:
            positions = [m.position for m in concept.mentions]
            spread = (positions[-1] - positions[0]) / length
            spreads.append(min(1.0, spread * 2))
            revisited += 1 if spread >= 0.2 else 0
    spread = mean(spreads) if spreads else 0.0
    revisit_rate = revisited / len(concepts) if concepts else 0.0
    avg_mentions = mean(len(c.mentions) for c in concepts) if concepts else 0.0

    score = weighted_average(
        [
            (spread * 100, 0.55),
            (revisit_rate * 100, 0.25),
            (score_from_breakpoints(avg_mentions, [(1, 0), (3, 60), (6, 100)]), 0.20),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if not concepts:
        findings.append(Finding(message="No concepts were extracted, so repetition cannot be measured", severity=Severity.WARNING))
    elif spread < 0.4:
        findings.append(Finding(message="Key concepts are concentrated rather than revisited across sections", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Revisit core concepts", text="Bring core concepts back in later sections, ideally in a new context or problem."))
    else:
        findings.append(Finding(message=f"{revisited} key concept(s) are revisited after their introduction", severity=Severity.POSITIVE))
    if concepts and avg_mentions < 3:
        suggestions.append(Suggestion(title="Add cumulative review", text="Close the chapter with a review that recalls concepts from earlier sections."))
    return _evaluation(
        Principle.SPACED_REPETITION,
        score,
        {"distributionSpread": spread, "revisitRate": revisit_rate, "averageMentions": avg_mentions,
         "keyConcepts": len(concepts)},
        findings,
        suggestions,
    )


def evaluate_retrieval_practice(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text, total = chapter.content, chapter.word_count
    practice = _family_count(patterns, PatternType.PRACTICE_PROBLEM)
    questions = count_questions(text)
    summaries = len(SUMMARY_PROMPTS.findall(text))
    applications = len(APPLICATION_PROMPTS.findall(text))
    rate = per_thousand(practice + questions, total)

    score = weighted_average(
        [
            (score_from_breakpoints(rate, [(0, 0), (1, 45), (3, 80), (6, 100)]), 0.60),
            (score_from_breakpoints(summaries, [(0, 0), (1, 70), (2, 100)]), 0.25),
            (score_from_breakpoints(applications, [(0, 0), (1, 70), (2, 100)]), 0.15),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if practice + questions == 0:
        findings.append(Finding(message="No questions or practice problems ask learners to retrieve what they read", severity=Severity.CRITICAL))
        suggestions.append(
            Suggestion(
                title="Add retrieval questions",
                text="Insert 2-3 questions at the end of each major section that require recalling key ideas without looking back.",
                section_id=_section_without(chapter, re.compile(r"\?")),
            )
        )
    else:
        findings.append(Finding(message=f"{practice} practice problem(s) and {questions} question(s) ({rate:.1f} per 1,000 words)"))
    if summaries == 0:
        suggestions.append(Suggestion(title="Prompt a recap", text="Ask readers to summarize the section in their own words before moving on."))
    if applications == 0:
        suggestions.append(Suggestion(title="Add an application prompt", text="Pose a real-world scenario that requires applying the chapter's ideas."))
    return _evaluation(
        Principle.RETRIEVAL_PRACTICE,
        score,
        {"practiceProblems": practice, "questions": questions, "retrievalPer1000": rate,
         "summaryPrompts": summaries, "applicationPrompts": applications},
        findings,
        suggestions,
    )


def topic_sequence(text: str, graph: ConceptGraph, concept_ids: set) -> List[str]:
    """The dominant concept of each sentence that mentions one, in reading order.

    Dominance goes to the concept mentioned most in the sentence, then the
    one mentioned most in the chapter, then the one introduced first.
    """
    starts = [start for start, _end in sentence_spans(text)]
    totals = {c.id: len(c.mentions) for c in graph.concepts}
    introduced = {cid: rank for rank, cid in enumerate(graph.introduction_order)}
    per_sentence: Dict[int, Counter] = {}
    for concept in graph.concepts:
        if concept.id not in concept_ids:
            continue
        for mention in concept.mentions:
            index = max(0, bisect.bisect_right(starts, mention.position) - 1)
            per_sentence.setdefault(index, Counter())[concept.id] += 1
    return [
        min(counts, key=lambda cid: (-counts[cid], -totals[cid], introduced.get(cid, len(introduced)), cid))
        for _index, counts in sorted(per_sentence.items())
    ]


def evaluate_interleaving(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    key_ids = {c.id for c in _key_concepts(graph)}
    sequence = topic_sequence(chapter.content, graph, key_ids)
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if len(sequence) < 2 or len(set(sequence)) < 2:
        findings.append(Finding(message="Too few distinct sentence topics to assess mixing of concepts", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Mix related topics", text="Alternate practice between related concepts instead of presenting each in isolation."))
        return _evaluation(Principle.INTERLEAVING, 0, {"switchRate": 0.0, "blockingRatio": 1.0, "mixedSections": 0.0}, findings, suggestions)

    switches = sum(1 for left, right in zip(sequence, sequence[1:]) if left != right)
    switch_rate = switches / (len(sequence) - 1)
    runs: List[int] = []
    current = 1
    for left, right in zip(sequence, sequence[1:]):
        if left == right:
            current += 1
        else:
            runs.append(current)
            current = 1
    runs.append(current)
    blocked = sum(run for run in runs if run >= 3)
    blocking_ratio = blocked / len(sequence)

    concept_sections: Dict[int, set] = {}
    for concept in graph.concepts:
        if concept.id in key_ids:
            for mention in concept.mentions:
                concept_sections.setdefault(mention.section_index, set()).add(concept.id)
    mixed = sum(1 for ids in concept_sections.values() if len(ids) >= 2) / max(1, len(concept_sections))

    score = weighted_average(
        [
            (score_from_breakpoints(switch_rate, [(0, 0), (0.3, 50), (0.6, 85), (0.8, 100)]), 0.5),
            ((1 - blocking_ratio) * 100, 0.2),
            (mixed * 100, 0.3),
        ]
    )
    if blocking_ratio > 0.4:
        findings.append(Finding(message=f"{blocking_ratio:.0%} of concept-bearing sentences sit in single-topic blocks", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Break up topic blocks", text="Interleave examples of different concepts so readers must choose the right approach."))
    else:
        findings.append(Finding(message=f"Topics alternate at {switch_rate:.0%} of consecutive sentences", severity=Severity.POSITIVE))
    if mixed < 0.5:
        suggestions.append(Suggestion(title="Compare within sections", text="Add comparison problems that draw on two or more concepts in the same section."))
    return _evaluation(
        Principle.INTERLEAVING,
        score,
        {"switchRate": switch_rate, "blockingRatio": blocking_ratio, "mixedSections": mixed},
        findings,
        suggestions,
    )


def visual_opportunities(text: str) -> List[Tuple[int, str]]:
    """Paragraphs whose spatial, process, quantitative or system language suggests a visual."""
    found: List[Tuple[int, str]] = []
    for offset, paragraph in paragraphs(text):
        stripped = paragraph.strip()
        if len(stripped) <= 50:
            continue
        for kind, (pattern, minimum, min_length) in OPPORTUNITY_CUES.items():
            if len(stripped) > min_length and len(pattern.findall(stripped)) >= minimum:
                found.append((offset, kind))
                break
    return found


def evaluate_dual_coding(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text = chapter.content
    references = len(VISUAL_REFERENCES.findall(text))
    notation = _family_count(patterns, *VISUAL_FAMILIES)
    examples = _family_count(patterns, *EXAMPLE_FAMILIES)
    opportunities = visual_opportunities(text)
    anchors = references + notation
    if opportunities:
        coverage = min(1.0, anchors / len(opportunities))
    else:
        coverage = 1.0 if anchors else 0.0

    score = weighted_average(
        [
            (score_from_breakpoints(references, [(0, 0), (1, 40), (3, 70), (6, 100)]), 0.45),
            (score_from_breakpoints(notation, [(0, 0), (1, 50), (3, 100)]), 0.25),
            (coverage * 100, 0.30),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if notation:
        findings.append(Finding(message=f"{notation} formula, procedure or comparison pattern(s) give a symbolic anchor", severity=Severity.POSITIVE))
    if examples:
        findings.append(Finding(message=f"{examples} concrete example(s) could be paired with a diagram or image", severity=Severity.INFO))
    if references == 0:
        findings.append(Finding(message="No figures, diagrams or other visuals are referenced", severity=Severity.WARNING))
    if opportunities:
        kinds = sorted({kind for _, kind in opportunities})
        findings.append(Finding(message=f"{len(opportunities)} passage(s) describe {', '.join(kinds)} information that suits a visual"))
        suggestions.append(
            Suggestion(
                title="Add a diagram",
                text="Illustrate the passage that describes a structure or process with a labelled diagram.",
                section_id=_section_at(chapter, opportunities[0][0]),
            )
        )
    if references == 0:
        suggestions.append(Suggestion(title="Reference visuals in text", text="Point readers to each figure explicitly (\"see Figure 2\") where it supports the prose."))
    return _evaluation(
        Principle.DUAL_CODING,
        score,
        {"visualReferences": references, "notationPatterns": notation, "concreteExamples": examples,
         "visualOpportunities": len(opportunities), "coverage": coverage},
        findings,
        suggestions,
    )


def evaluate_generative_learning(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text, total = chapter.content, chapter.word_count
    prompts = len(GENERATIVE_PROMPTS.findall(text))
    examples = _family_count(patterns, *EXAMPLE_FAMILIES)
    practice = _family_count(patterns, PatternType.PRACTICE_PROBLEM)

    score = weighted_average(
        [
            (score_from_breakpoints(per_thousand(prompts, total), [(0, 0), (1, 50), (4, 100)]), 0.45),
            (score_from_breakpoints(examples, [(0, 0), (1, 55), (3, 85), (5, 100)]), 0.35),
            (score_from_breakpoints(practice, [(0, 0), (1, 60), (3, 100)]), 0.20),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if examples:
        findings.append(Finding(message=f"{examples} concrete example(s) give learners material to elaborate on", severity=Severity.POSITIVE))
    else:
        findings.append(Finding(message="No concrete examples detected", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Add concrete examples", text="Follow each abstract definition with a concrete, familiar example."))
    if prompts == 0:
        suggestions.append(Suggestion(title="Ask learners to produce", text="Ask readers to predict, sketch or write an explanation before revealing it."))
    return _evaluation(
        Principle.GENERATIVE_LEARNING,
        score,
        {"generativePrompts": prompts, "examples": examples, "practiceProblems": practice},
        findings,
        suggestions,
    )


def evaluate_metacognition(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text, total = chapter.content, chapter.word_count
    prompts = len(METACOGNITIVE_PROMPTS.findall(text))
    justifications = len(JUSTIFY_PROMPTS.findall(text))
    score = weighted_average(
        [
            (score_from_breakpoints(per_thousand(prompts, total), [(0, 0), (0.5, 50), (2, 100)]), 0.7),
            (score_from_breakpoints(justifications, [(0, 0), (1, 60), (3, 100)]), 0.3),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if prompts:
        findings.append(Finding(message=f"{prompts} self-monitoring prompt(s) found", severity=Severity.POSITIVE))
    else:
        findings.append(Finding(message="Readers are never asked to check their own understanding", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Add self-check prompts", text="End sections with \"Check your understanding\" prompts that ask readers to rate or explain their grasp."))
    if justifications == 0:
        suggestions.append(Suggestion(title="Prompt self-explanation", text="Ask readers to explain why each step of a worked example is valid."))
    return _evaluation(
        Principle.METACOGNITION,
        score,
        {"metacognitivePrompts": prompts, "selfExplanationPrompts": justifications},
        findings,
        suggestions,
    )


def evaluate_schema_building(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    total = len(graph.concepts)
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if total == 0:
        findings.append(Finding(message="No concepts were extracted, so no knowledge structure is visible", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Name the key ideas", text="State and define the chapter's key concepts explicitly, ideally in headings."))
        return _evaluation(Principle.SCHEMA_BUILDING, 0, {"hierarchyBalance": 0.0, "connectivity": 0.0, "prerequisiteLinks": 0}, findings, suggestions)

    balance = graph.stats.hierarchy_balance
    connectivity = 1.0 - len(graph.stats.orphan_ids) / total
    prerequisite_links = len(graph.relationships_of_type(RelationshipType.PREREQUISITE))
    prerequisite_ratio = min(1.0, 2.0 * prerequisite_links / max(1, total - 1))
    score = 100 * weighted_average([(balance, 0.4), (connectivity, 0.35), (prerequisite_ratio, 0.25)])

    if balance < 0.6:
        findings.append(Finding(message=f"Concept hierarchy is unbalanced (balance {balance:.2f})", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Clarify the hierarchy", text="Group supporting details under a small number of clearly signposted core concepts."))
    if graph.stats.orphan_ids:
        findings.append(Finding(message=f"{len(graph.stats.orphan_ids)} concept(s) are never connected to another concept"))
        suggestions.append(Suggestion(title="Link isolated concepts", text="Explain how isolated concepts relate to the chapter's core ideas."))
    if prerequisite_links == 0:
        suggestions.append(Suggestion(title="Make dependencies explicit", text="Say which ideas build on which (\"X builds on Y\") so readers can assemble a structure."))
    return _evaluation(
        Principle.SCHEMA_BUILDING,
        score,
        {"hierarchyBalance": balance, "connectivity": connectivity, "prerequisiteLinks": prerequisite_links},
        findings,
        suggestions,
    )


def evaluate_cognitive_load(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    total = chapter.word_count
    if total == 0:
        findings.append(Finding(message="No text to assess", severity=Severity.WARNING))
        return _evaluation(Principle.COGNITIVE_LOAD, 0, {"averageSectionWords": 0.0, "averageSentenceWords": 0.0, "conceptDensity": 0.0}, findings, suggestions)

    sized = [(s, len(words(chapter.section_text(s)))) for s in chapter.sections]
    sections = [item for item in sized if item[1]] or sized
    section_words = [count for _s, count in sections] or [total]
    avg_section = mean(section_words)
    sentence_lengths = [len(words(sentence)) for sentence in sentences(chapter.content)]
    avg_sentence = mean(sentence_lengths) if sentence_lengths else 0.0
    density = graph.stats.density

    score = weighted_average(
        [
            (score_from_breakpoints(avg_section, [(0, 100), (600, 100), (1000, 70), (1600, 40), (2500, 10)]), 0.40),
            (score_from_breakpoints(avg_sentence, [(0, 100), (20, 90), (25, 70), (35, 35), (50, 0)]), 0.35),
            (score_from_breakpoints(density, [(0, 100), (15, 100), (30, 70), (50, 30), (80, 0)]), 0.25),
        ]
    )
    if avg_section > 1000:
        longest = max(sections, key=lambda item: (item[1], -item[0].start))[0] if sections else None
        findings.append(Finding(message=f"Sections average {avg_section:.0f} words, which is long for one sitting", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Split long sections", text="Break long sections into chunks of 300-800 words with their own headings.", section_id=longest.id if longest else None))
    if avg_sentence > 25:
        findings.append(Finding(message=f"Sentences average {avg_sentence:.1f} words", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Shorten sentences", text="Split sentences that carry more than one idea."))
    if density > 30:
        findings.append(Finding(message=f"{density:.1f} concepts per 1,000 words introduce many ideas at once"))
        suggestions.append(Suggestion(title="Pace new concepts", text="Introduce fewer new terms per section and reuse the ones already defined."))
    return _evaluation(
        Principle.COGNITIVE_LOAD,
        score,
        {"averageSectionWords": avg_section, "averageSentenceWords": avg_sentence, "conceptDensity": density},
        findings,
        suggestions,
    )


def evaluate_emotion_and_relevance(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text, total = chapter.content, chapter.word_count
    emotional = len(EMOTION_CUES.findall(text))
    relevance = len(RELEVANCE_CUES.findall(text))
    score = weighted_average(
        [
            (score_from_breakpoints(per_thousand(emotional, total), [(0, 0), (1, 50), (3, 100)]), 0.5),
            (score_from_breakpoints(per_thousand(relevance, total), [(0, 0), (1, 50), (3, 100)]), 0.5),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if relevance == 0:
        findings.append(Finding(message="The text never says why the material matters to the reader", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Show why it matters", text="Open with a real-world situation where the chapter's ideas make a difference."))
    if emotional == 0:
        suggestions.append(Suggestion(title="Add a story or puzzle", text="Use a short story, surprising fact or open question to spark curiosity."))
    if emotional and relevance:
        findings.append(Finding(message="Narrative and relevance cues are both present", severity=Severity.POSITIVE))
    return _evaluation(
        Principle.EMOTION_AND_RELEVANCE,
        score,
        {"emotionalCues": emotional, "relevanceCues": relevance},
        findings,
        suggestions,
    )


def evaluate_worked_examples(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    total = chapter.word_count
    worked = [m for m in patterns if m.family is PatternType.WORKED_EXAMPLE]
    practice = [m for m in patterns if m.family is PatternType.PRACTICE_PROBLEM]
    procedures = _family_count(patterns, PatternType.PROCEDURE)
    paired = sum(1 for example in worked if any(p.start > example.start for p in practice))
    pairing = paired / len(worked) if worked else 0.0

    score = weighted_average(
        [
            (score_from_breakpoints(per_thousand(len(worked), total), [(0, 0), (0.5, 50), (1.5, 85), (3, 100)]), 0.6),
            (pairing * 100, 0.25),
            (score_from_breakpoints(procedures, [(0, 0), (1, 70), (2, 100)]), 0.15),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if worked:
        findings.append(Finding(message=f"{len(worked)} worked example(s) show a full solution", severity=Severity.POSITIVE))
    else:
        findings.append(Finding(message="No worked examples with a shown solution", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Add worked examples", text="Walk through at least one problem per major concept, showing each step and its justification."))
    if worked and pairing < 0.5:
        suggestions.append(Suggestion(title="Pair examples with practice", text="Follow each worked example with a similar problem for readers to solve."))
    return _evaluation(
        Principle.WORKED_EXAMPLES,
        score,
        {"workedExamples": len(worked), "pairedWithPractice": pairing, "procedures": procedures},
        findings,
        suggestions,
    )


def evaluate_elaboration(chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    text, total = chapter.content, chapter.word_count
    cues = len(ELABORATION_CUES.findall(text)) + len(EXPLANATION_CUES.findall(text)) + len(CONNECTION_CUES.findall(text))
    depth = _depth_ratio(graph)
    score = weighted_average(
        [
            (score_from_breakpoints(per_thousand(cues, total), [(0, 0), (2, 50), (6, 100)]), 0.6),
            (depth * 100, 0.4),
        ]
    )
    findings: List[Finding] = []
    suggestions: List[Suggestion] = []
    if depth < 0.3 and graph.concepts:
        findings.append(Finding(message="Most concept mentions are brief, with little explanation around them", severity=Severity.WARNING))
        suggestions.append(Suggestion(title="Elaborate on core concepts", text="Expand on core concepts with explanations, consequences and connections to other ideas."))
    if cues == 0:
        suggestions.append(Suggestion(title="Restate and extend", text="Use \"in other words\" and \"this means\" to restate ideas from a second angle."))
    return _evaluation(
        Principle.ELABORATION,
        score,
        {"elaborationCues": cues, "depthRatio": depth},
        findings,
        suggestions,
    )


EVALUATORS: Dict[Principle, Evaluator] = {
    Principle.DEEP_PROCESSING: evaluate_deep_processing,
    Principle.SPACED_REPETITION: evaluate_spaced_repetition,
    Principle.RETRIEVAL_PRACTICE: evaluate_retrieval_practice,
    Principle.INTERLEAVING: evaluate_interleaving,
    Principle.DUAL_CODING: evaluate_dual_coding,
    Principle.GENERATIVE_LEARNING: evaluate_generative_learning,
    Principle.METACOGNITION: evaluate_metacognition,
    Principle.SCHEMA_BUILDING: evaluate_schema_building,
    Principle.COGNITIVE_LOAD: evaluate_cognitive_load,
    Principle.EMOTION_AND_RELEVANCE: evaluate_emotion_and_relevance,
    Principle.WORKED_EXAMPLES: evaluate_worked_examples,
    Principle.ELABORATION: evaluate_elaboration,
}

PRINCIPLE_SETS: Dict[str, Tuple[Principle, ...]] = {
    "learning-science": (
        Principle.DEEP_PROCESSING,
        Principle.SPACED_REPETITION,
        Principle.RETRIEVAL_PRACTICE,
        Principle.INTERLEAVING,
        Principle.DUAL_CODING,
        Principle.GENERATIVE_LEARNING,
        Principle.METACOGNITION,
        Principle.SCHEMA_BUILDING,
        Principle.COGNITIVE_LOAD,
        Principle.EMOTION_AND_RELEVANCE,
    ),
    "evidence-weighted": (
        Principle.DEEP_PROCESSING,
        Principle.RETRIEVAL_PRACTICE,
        Principle.SCHEMA_BUILDING,
        Principle.DUAL_CODING,
        Principle.GENERATIVE_LEARNING,
        Principle.SPACED_REPETITION,
        Principle.INTERLEAVING,
        Principle.WORKED_EXAMPLES,
        Principle.METACOGNITION,
        Principle.ELABORATION,
    ),
}


def principles_for(principle_set: str) -> Tuple[Principle, ...]:
    try:
        return PRINCIPLE_SETS[principle_set]
    except KeyError:
        raise ValueError(f"Unknown principle set {principle_set!r}; expected one of {sorted(PRINCIPLE_SETS)}") from None


def evaluate(principle: Principle, chapter: Chapter, graph: ConceptGraph, patterns: Sequence[PatternMatch]) -> PrincipleEvaluation:
    """Dispatch to the evaluator registered for ``principle``."""
    return EVALUATORS[principle](chapter, graph, patterns)


__all__ = [
    "EVALUATORS",
    "Evaluator",
    "PRINCIPLE_SETS",
    "evaluate",
    "evaluate_cognitive_load",
    "evaluate_deep_processing",
    "evaluate_dual_coding",
    "evaluate_elaboration",
    "evaluate_emotion_and_relevance",
    "evaluate_generative_learning",
    "evaluate_interleaving",
    "evaluate_metacognition",
    "evaluate_retrieval_practice",
    "evaluate_schema_building",
    "evaluate_spaced_repetition",
    "evaluate_worked_examples",
    "principles_for",
    "topic_sequence",
    "visual_opportunities",
]
