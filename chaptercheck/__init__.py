"""
Core package for ChapterCheck helpers.

The analysis engine itself lives in ``apps.analyzer``; this package holds the
configuration, validation, provenance and CLI plumbing around it.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("chaptercheck")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
