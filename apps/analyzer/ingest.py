"""Helpers that turn plain text, markdown or request payloads into a Chapter.

These sit in front of the engine: the engine never splits sections itself,
so callers without explicit boundaries go through ``chapter_from_text``.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from chaptercheck.core.config import AnalysisConfig
from chaptercheck.core.validation import ChapterInputError, validate_chapter_input

from .models import Chapter, ChapterMetadata, Section
from .text import iter_lines, slugify

ATX_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")


def _chapter_id(content: str) -> str:
    return "chapter-" + hashlib.sha1(content.encode("utf-8")).hexdigest()[:12]


def _whole_text_section(content: str, title: str) -> Tuple[Section, ...]:
    return (Section(id="section-1", title=title, level=1, start=0, end=len(content), text=content),)


def sections_from_markdown(markdown: str, fallback_title: str = "") -> Tuple[Section, ...]:
    """Split on ATX headings into contiguous sections covering the whole text.

    Each section starts at its heading line and ends where the next heading
    begins. Text before the first heading becomes a preamble section titled
    ``fallback_title``. Headings inside fenced code blocks are ignored.
    """
    boundaries: List[Tuple[int, str, int]] = []
    in_fence = False
    for offset, line in iter_lines(markdown):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = ATX_HEADING_RE.match(line)
        if match:
            boundaries.append((offset, match.group(2).strip(), len(match.group(1))))

    if not boundaries:
        return _whole_text_section(markdown, fallback_title)

    spans: List[Tuple[int, str, int]] = []
    if markdown[: boundaries[0][0]].strip():
        spans.append((0, fallback_title, 1))
    spans.extend(boundaries)

    sections: List[Section] = []
    used: Dict[str, int] = {}
    for index, (start, title, level) in enumerate(spans):
        if index == 0:
            start = 0
        end = spans[index + 1][0] if index + 1 < len(spans) else len(markdown)
        base = slugify(title) if title else f"section-{index + 1}"
        used[base] = used.get(base, 0) + 1
        section_id = base if used[base] == 1 else f"{base}-{used[base]}"
        sections.append(Section(id=section_id, title=title, level=level, start=start, end=end, text=markdown[start:end]))
    return tuple(sections)


def chapter_from_text(
    content: Any,
    *,
    chapter_id: Optional[str] = None,
    title: str = "",
    sections: Optional[Sequence[Section]] = None,
    markdown: bool = False,
    domain: str = "general",
    reading_level: Optional[str] = None,
) -> Chapter:
    """Build a Chapter, supplying sections when the caller has none.

    Without ``sections`` the text is split on markdown headings when
    ``markdown`` is set, otherwise one section spans the whole text.
    """
    if not isinstance(content, str):
        raise ChapterInputError(f"chapter content must be text, received {type(content).__name__}")
    if sections is None:
        sections = sections_from_markdown(content, title) if markdown else _whole_text_section(content, title)
    validate_chapter_input(content, sections)
    return Chapter(
        id=chapter_id or _chapter_id(content),
        title=title,
        content=content,
        sections=tuple(sections),
        metadata=ChapterMetadata(domain=domain, reading_level=reading_level),
    )


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


def _payload_sections(content: str, raw_sections: Sequence[Mapping[str, Any]]) -> Tuple[Section, ...]:
    sections: List[Section] = []
    cursor = 0
    for index, raw in enumerate(raw_sections):
        if not isinstance(raw, Mapping):
            raise ChapterInputError(f"section {index} must be an object")
        start = _first(raw, "start", "startOffset", "start_offset")
        end = _first(raw, "end", "endOffset", "end_offset")
        text = raw.get("text") or raw.get("content")
        if start is None or end is None:
            if not text:
                raise ChapterInputError(f"section {index} needs offsets or text")
            found = content.find(text, cursor)
            if found == -1:
                raise ChapterInputError(f"section {index} text does not occur in the chapter after offset {cursor}")
            start, end = found, found + len(text)
        try:
            sections.append(
                Section(
                    id=str(raw.get("id") or f"section-{index + 1}"),
                    title=str(raw.get("title") or ""),
                    level=int(raw.get("level") or 1),
                    start=int(start),
                    end=int(end),
                    text=text if text is not None else content[int(start) : int(end)],
                )
            )
        except ValidationError as exc:
            raise ChapterInputError(f"section {index} is invalid: {exc}") from exc
        cursor = int(end)
    return tuple(sections)


def chapter_from_payload(payload: Mapping[str, Any]) -> Tuple[Chapter, AnalysisConfig]:
    """Parse a request of the form ``{"chapter": {...}, "config": {...}}``.

    A bare chapter object (no ``chapter`` key) is accepted with default config.
    """
    chapter_data = payload.get("chapter", payload)
    config_data = payload.get("config") or {}
    if not isinstance(chapter_data, Mapping):
        raise ChapterInputError("chapter must be an object")
    try:
        config = AnalysisConfig.model_validate(config_data)
    except ValidationError as exc:
        raise ValueError(f"Invalid analysis config in payload: {exc}") from exc

    content = chapter_data.get("content")
    if not isinstance(content, str):
        raise ChapterInputError(f"chapter content must be text, received {type(content).__name__}")
    raw_sections = chapter_data.get("sections") or []
    sections = _payload_sections(content, raw_sections) if raw_sections else None
    title = str(chapter_data.get("title") or "")
    chapter = chapter_from_text(
        content,
        chapter_id=str(chapter_data["id"]) if chapter_data.get("id") else None,
        title=title,
        sections=sections,
        domain=config.domain,
        reading_level=config.reading_level,
    )
    return chapter, config


__all__ = ["chapter_from_payload", "chapter_from_text", "sections_from_markdown"]
