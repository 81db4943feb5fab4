"""Input validation for chapter text and section boundaries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Protocol, Sequence

LOGGER = logging.getLogger("chaptercheck.validation")


class ChapterInputError(ValueError):
    """Raised when chapter content or section offsets cannot be analyzed."""


class SectionLike(Protocol):
    id: str
    start: int
    end: int
    text: str


@dataclass
class ValidationResult:
    """Result of a validation check."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    data: Any = None

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def raise_if_invalid(self) -> None:
        """Raise ChapterInputError if validation failed."""
        if not self.valid:
            raise ChapterInputError(f"Invalid chapter input: {'; '.join(self.errors)}")


def check_chapter_input(content: Any, sections: Sequence[SectionLike]) -> ValidationResult:
    """Collect every problem with ``content`` and ``sections`` without raising.

    Empty text is degenerate but valid; it only produces a warning.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(content, str):
        errors.append(f"content must be text, received {type(content).__name__}")
        return ValidationResult(valid=False, errors=errors, warnings=warnings)

    if not content.strip():
        warnings.append("content is empty; analysis will report zero-signal scores")
    elif not sections:
        errors.append("at least one section is required for non-empty content")

    previous_end = 0
    for index, section in enumerate(sections):
        label = f"section {index} ({section.id})"
        if section.start < 0 or section.end > len(content):
            errors.append(f"{label} offsets [{section.start}, {section.end}) fall outside the text (length {len(content)})")
            continue
        if section.end < section.start:
            errors.append(f"{label} ends before it starts")
            continue
        if section.start < previous_end:
            errors.append(f"{label} overlaps the previous section")
        if section.text and content[section.start : section.end] != section.text:
            errors.append(f"{label} text does not match its offsets")
        previous_end = max(previous_end, section.end)

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings, data=content)


def validate_chapter_input(content: Any, sections: Sequence[SectionLike]) -> ValidationResult:
    """Validate and raise ``ChapterInputError`` on the first unusable input."""
    result = check_chapter_input(content, sections)
    for warning in result.warnings:
        LOGGER.info("Chapter input: %s", warning)
    result.raise_if_invalid()
    return result


__all__ = ["ChapterInputError", "ValidationResult", "check_chapter_input", "validate_chapter_input"]
