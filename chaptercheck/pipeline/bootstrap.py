"""Bootstrap helpers: resolve configuration and provenance for a run."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from chaptercheck.core.config import AnalysisConfig, load_analysis_config, merge_config_overrides
from chaptercheck.core.provenance import ProvenanceLogger

from .context import AnalysisContext

DEFAULT_CONFIG_PATH = Path("config/analysis.yaml")
CONFIG_ENV_VAR = "CHAPTERCHECK_CONFIG"
LOGGER = logging.getLogger(__name__)


def _capture_env(keys: tuple[str, ...]) -> Dict[str, str]:
    """Return a filtered snapshot of environment variables for provenance."""
    snapshot: Dict[str, str] = {}
    for key in keys:
        value = os.getenv(key)
        if value is not None:
            snapshot[key] = value
    return snapshot


def resolve_config_path(config_path: Optional[Path], repo_root: Path) -> Optional[Path]:
    """Explicit path, then ``$CHAPTERCHECK_CONFIG``, then ``config/analysis.yaml`` if present."""
    if config_path is not None:
        return config_path.expanduser().resolve()
    env_override = os.getenv(CONFIG_ENV_VAR)
    if env_override:
        path = Path(env_override).expanduser()
        return (path if path.is_absolute() else repo_root / path).resolve()
    default = repo_root / DEFAULT_CONFIG_PATH
    return default.resolve() if default.exists() else None


def bootstrap_analysis(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    overrides: Optional[Dict[str, Any]] = None,
    provenance_path: Path | None = None,
    env_keys: tuple[str, ...] = (CONFIG_ENV_VAR,),
) -> AnalysisContext:
    """
    Load ``.env`` and configuration, apply overrides, and build the run context.

    Parameters
    ----------
    config_path:
        Analysis YAML. Falls back to ``$CHAPTERCHECK_CONFIG`` and then to
        ``config/analysis.yaml`` under ``repo_root``; defaults apply when none exist.
    repo_root:
        Root used to find ``.env`` and relative config paths. Defaults to ``Path.cwd()``.
    overrides:
        Field overrides (snake_case or camelCase) applied on top of the file.
    provenance_path:
        When given, stage events are appended to this JSONL file.
    """
    repo_root = (repo_root or Path.cwd()).resolve()
    load_dotenv(repo_root / ".env")

    resolved = resolve_config_path(config_path, repo_root)
    if resolved is not None:
        if not resolved.exists():
            raise FileNotFoundError(f"Analysis config not found at {resolved}")
        config = load_analysis_config(resolved)
    else:
        LOGGER.debug("No analysis config found; using defaults")
        config = AnalysisConfig()

    if overrides:
        config = merge_config_overrides(config, overrides)

    provenance = ProvenanceLogger(provenance_path.expanduser().resolve()) if provenance_path else None
    ctx = AnalysisContext(
        config=config,
        repo_root=repo_root,
        config_path=resolved,
        env=_capture_env(env_keys),
        provenance=provenance,
    )
    if provenance is not None:
        provenance.record(
            "bootstrap",
            "Analysis configuration loaded",
            agent="chaptercheck.pipeline",
            config_path=str(resolved) if resolved else None,
            domain=config.domain,
            principle_set=config.principle_set,
            threshold=config.concept_extraction_threshold,
        )
    return ctx


__all__ = ["CONFIG_ENV_VAR", "DEFAULT_CONFIG_PATH", "bootstrap_analysis", "resolve_config_path"]
