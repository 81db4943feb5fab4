from __future__ import annotations

import json
from pathlib import Path

import pytest

from chaptercheck.core.provenance import ProvenanceEvent, ProvenanceLogger
from chaptercheck.pipeline import bootstrap_analysis
from chaptercheck.pipeline.bootstrap import CONFIG_ENV_VAR


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


def test_logger_appends_jsonl(tmp_path: Path) -> None:
    logger = ProvenanceLogger(tmp_path / "nested" / "events.jsonl")
    logger.log(ProvenanceEvent(stage="extract", message="first"))
    returned = logger.log({"stage": "detect", "message": "second", "payload": {"count": 2}})
    assert isinstance(returned, ProvenanceEvent)

    lines = (tmp_path / "nested" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[1])["payload"] == {"count": 2}

    events = logger.read()
    assert [event.stage for event in events] == ["extract", "detect"]
    assert events[0].agent == "chaptercheck.engine"


def test_extend_and_read_missing(tmp_path: Path) -> None:
    logger = ProvenanceLogger(tmp_path / "events.jsonl")
    assert logger.read() == []
    logger.extend([{"stage": "a", "message": "one"}, {"stage": "b", "message": "two"}])
    assert len(logger.read()) == 2


def test_record_builds_payload_and_read_filters(tmp_path: Path) -> None:
    logger = ProvenanceLogger(str(tmp_path / "events.jsonl"))
    logger.record("detect", "Detected 3 patterns", chapter_id="c1", counts={"practice": 3})
    logger.record("aggregate", "Overall score 70", agent="tests", overall_score=70)
    detect = logger.read(stage="detect")
    assert len(detect) == 1
    assert detect[0].payload == {"chapter_id": "c1", "counts": {"practice": 3}}
    assert logger.read(stage="aggregate")[0].agent == "tests"
    assert logger.read(stage="missing") == []


def test_bootstrap_defaults_without_config(tmp_path: Path) -> None:
    ctx = bootstrap_analysis(repo_root=tmp_path)
    assert ctx.config_path is None
    assert ctx.config.concept_extraction_threshold == 0.45
    assert ctx.repo_root == tmp_path.resolve()
    assert ctx.provenance is None


def test_bootstrap_reads_default_config_and_overrides(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "analysis.yaml").write_text("analysis:\n  domain: chemistry\n  detailedReport: true\n", encoding="utf-8")

    ctx = bootstrap_analysis(repo_root=tmp_path, overrides={"concept_extraction_threshold": 0.25, "domain": None})
    assert ctx.config_path == (config_dir / "analysis.yaml").resolve()
    assert ctx.config.domain == "chemistry"
    assert ctx.config.detailed_report is True
    assert ctx.config.concept_extraction_threshold == 0.25


def test_bootstrap_honours_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    custom = tmp_path / "custom.yaml"
    custom.write_text("domain: chem\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, "custom.yaml")
    ctx = bootstrap_analysis(repo_root=tmp_path)
    assert ctx.config_path == custom.resolve()
    assert ctx.config.domain == "chem"
    assert ctx.env[CONFIG_ENV_VAR] == "custom.yaml"


def test_bootstrap_missing_explicit_config(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        bootstrap_analysis(tmp_path / "missing.yaml", repo_root=tmp_path)


def test_bootstrap_logs_provenance_and_builds_engine(tmp_path: Path) -> None:
    ctx = bootstrap_analysis(repo_root=tmp_path, provenance_path=tmp_path / "prov.jsonl")
    events = ctx.provenance.read()
    assert [event.stage for event in events] == ["bootstrap"]
    assert events[0].agent == "chaptercheck.pipeline"
    assert events[0].payload["principle_set"] == "learning-science"

    engine = ctx.build_engine()
    assert engine.config is ctx.config
    assert engine.provenance is ctx.provenance
