from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from chaptercheck.cli import analyze as analyze_cli
from chaptercheck.pipeline.bootstrap import CONFIG_ENV_VAR

runner = CliRunner()

CHAPTER = """# Photosynthesis

Photosynthesis is a process that plants use to build glucose. For example, leaves capture light.

# Review

Why do plants need light? Explain the role of chlorophyll.
"""


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


def _chapter_file(tmp_path: Path, body: str = CHAPTER) -> Path:
    path = tmp_path / "photosynthesis.md"
    path.write_text(body, encoding="utf-8")
    return path


def test_analyze_writes_json_file(tmp_path: Path) -> None:
    chapter = _chapter_file(tmp_path)
    output = tmp_path / "out" / "analysis.json"
    result = runner.invoke(
        analyze_cli.app,
        ["analyze", str(chapter), "--repo-root", str(tmp_path), "--quiet", "--output", str(output), "--detailed"],
    )
    assert result.exit_code == 0, result.output
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["chapter_id"] == "photosynthesis"
    assert 0 <= data["overall_score"] <= 100
    assert len(data["evaluations"]) == 10
    assert data["structure"]["section_count"] == 2
    assert data["concept_graph"] is not None


def test_analyze_prints_summary(tmp_path: Path) -> None:
    chapter = _chapter_file(tmp_path)
    result = runner.invoke(
        analyze_cli.app,
        ["analyze", str(chapter), "--repo-root", str(tmp_path), "--output", str(tmp_path / "analysis.json")],
    )
    assert result.exit_code == 0, result.output
    assert "Overall score" in result.stdout
    assert (tmp_path / "analysis.json").exists()


def test_analyze_missing_config_exits_2(tmp_path: Path) -> None:
    chapter = _chapter_file(tmp_path)
    result = runner.invoke(
        analyze_cli.app,
        ["analyze", str(chapter), "--repo-root", str(tmp_path), "--config", str(tmp_path / "missing.yaml")],
    )
    assert result.exit_code == 2


def test_analyze_rejects_out_of_range_threshold(tmp_path: Path) -> None:
    chapter = _chapter_file(tmp_path)
    result = runner.invoke(
        analyze_cli.app,
        ["analyze", str(chapter), "--repo-root", str(tmp_path), "--threshold", "1.5"],
    )
    assert result.exit_code == 2


def test_analyze_missing_path_exits_2(tmp_path: Path) -> None:
    result = runner.invoke(analyze_cli.app, ["analyze", str(tmp_path / "nope.md")])
    assert result.exit_code == 2


def test_patterns_lists_matches(tmp_path: Path) -> None:
    chapter = _chapter_file(tmp_path, "Cells divide often. Mitosis produces two cells, whereas meiosis produces four.")
    result = runner.invoke(analyze_cli.app, ["patterns", str(chapter)])
    assert result.exit_code == 0, result.output
    assert "1 pattern(s)" in result.stdout


def test_patterns_reports_empty_text(tmp_path: Path) -> None:
    chapter = _chapter_file(tmp_path, "")
    result = runner.invoke(analyze_cli.app, ["patterns", str(chapter)])
    assert result.exit_code == 0
    assert "No pedagogical patterns detected." in result.stdout


def test_version_command() -> None:
    result = runner.invoke(analyze_cli.app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip()
