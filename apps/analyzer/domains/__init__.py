"""Domain detector sets and concept libraries, registered on import."""

from __future__ import annotations

from pathlib import Path

from ..library import load_concept_library, register_concept_library
from ..patterns import register_domain
from .chemistry import CHEMISTRY_DETECTORS

DATA_DIR = Path(__file__).resolve().parent / "data"

CHEMISTRY_LIBRARY = load_concept_library(DATA_DIR / "chemistry_concepts.yaml")

register_domain("chemistry", CHEMISTRY_DETECTORS, aliases=("chem",))
register_concept_library("chemistry", CHEMISTRY_LIBRARY, aliases=("chem",))

__all__ = ["CHEMISTRY_DETECTORS", "CHEMISTRY_LIBRARY", "DATA_DIR"]
