"""Domain concept libraries: curated concept names the extractor always seeds.

A library lists canonical concept names with aliases and a topic category.
Libraries are registered per domain key, like the detector sets in
``patterns``, and loaded from YAML files shipped beside the domain code.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import Field, ValidationError

from chaptercheck.core.config import read_yaml_file

from .models import FrozenModel
from .text import normalize_phrase

LOGGER = logging.getLogger("chaptercheck.library")

CUSTOM_CATEGORY = "Custom"


class LibraryConcept(FrozenModel):
    name: str = Field(..., min_length=1)
    aliases: Tuple[str, ...] = ()
    category: str = CUSTOM_CATEGORY
    subcategory: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_phrase(self.name)

    @property
    def surfaces(self) -> Tuple[str, ...]:
        return (self.name,) + self.aliases


class ConceptLibrary(FrozenModel):
    """Concepts of one domain, matched case-insensitively with plural tolerance."""

    domain: str
    version: str = "1.0.0"
    concepts: Tuple[LibraryConcept, ...] = ()

    def extended(self, names: Iterable[str], category: str = CUSTOM_CATEGORY) -> "ConceptLibrary":
        """Return a copy with extra concept names appended (existing keys win)."""
        known = {concept.key for concept in self.concepts}
        extra = []
        for name in names:
            cleaned = " ".join(name.split())
            if cleaned and normalize_phrase(cleaned) not in known:
                known.add(normalize_phrase(cleaned))
                extra.append(LibraryConcept(name=cleaned, category=category))
        if not extra:
            return self
        return self.model_copy(update={"concepts": self.concepts + tuple(extra)})


def _surface_pattern(surface: str) -> str:
    parts = normalize_phrase(surface).split()
    last = parts[-1]
    if last.endswith("y") and len(last) > 3:
        tail = re.escape(last[:-1]) + "(?:y|ies)"
    else:
        tail = re.escape(last) + "(?:es|s)?"
    return r"\s+".join([re.escape(part) for part in parts[:-1]] + [tail])


@lru_cache(maxsize=32)
def _matcher(library: ConceptLibrary) -> Optional[re.Pattern[str]]:
    alternatives: List[Tuple[int, str]] = []
    for index, concept in enumerate(library.concepts):
        for surface in concept.surfaces:
            if surface.strip():
                alternatives.append((index, surface))
    if not alternatives:
        return None
    # Longest surfaces first so "limiting reactant" wins over "limiting".
    alternatives.sort(key=lambda item: (-len(item[1]), item[1]))
    body = "|".join(f"(?P<c{index}_{n}>{_surface_pattern(surface)})" for n, (index, surface) in enumerate(alternatives))
    return re.compile(rf"(?<![\w'\-])(?:{body})(?![\w'\-])", re.IGNORECASE)


def find_library_concepts(text: str, library: ConceptLibrary) -> Dict[int, List[Tuple[int, int]]]:
    """Map each library concept index to the spans where it (or an alias) occurs."""
    pattern = _matcher(library)
    found: Dict[int, List[Tuple[int, int]]] = {}
    if pattern is None:
        return found
    for match in pattern.finditer(text):
        index = int(match.lastgroup[1:].split("_", 1)[0])
        found.setdefault(index, []).append((match.start(), match.end()))
    return found


def load_concept_library(path: Path) -> ConceptLibrary:
    """Parse a concept library YAML file (``domain``, ``version``, ``concepts``)."""
    data = read_yaml_file(path)
    try:
        return ConceptLibrary.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid concept library in {path}: {exc}") from exc


_LIBRARIES: Dict[str, ConceptLibrary] = {}


def register_concept_library(domain: str, library: ConceptLibrary, *, aliases: Sequence[str] = ()) -> None:
    for key in (domain, *aliases):
        _LIBRARIES[key.lower()] = library


def registered_libraries() -> List[str]:
    return sorted(_LIBRARIES)


def concept_library_for(domain: Optional[str]) -> Optional[ConceptLibrary]:
    if not domain:
        return None
    library = _LIBRARIES.get(domain.lower())
    if library is None and domain.lower() != "general":
        LOGGER.debug("No concept library registered for domain %r", domain)
    return library


__all__ = [
    "CUSTOM_CATEGORY",
    "ConceptLibrary",
    "LibraryConcept",
    "concept_library_for",
    "find_library_concepts",
    "load_concept_library",
    "register_concept_library",
    "registered_libraries",
]
