"""Command line entry point: analyze a chapter file or list its patterns."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from apps.analyzer.ingest import chapter_from_text
from apps.analyzer.models import ChapterAnalysis, Priority
from apps.analyzer.patterns import detect_patterns
from apps.analyzer.scoring import quality_band
from chaptercheck import get_version
from chaptercheck.core.validation import ChapterInputError
from chaptercheck.pipeline import bootstrap_analysis

app = typer.Typer(help="Score educational chapters against learning-science principles.")
console = Console()

PRIORITY_STYLES = {Priority.HIGH: "bold red", Priority.MEDIUM: "yellow", Priority.LOW: "green"}


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        typer.echo(f"[chaptercheck] {path} is not UTF-8 text: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def render_summary(analysis: ChapterAnalysis, *, limit: int = 3) -> None:
    table = Table(title=f"Chapter analysis: {analysis.chapter_id}", show_header=True)
    table.add_column("Principle")
    table.add_column("Score", justify="right")
    table.add_column("Band")
    table.add_column("Weight", justify="right")
    for evaluation in analysis.evaluations:
        table.add_row(
            evaluation.principle.display_name,
            str(evaluation.score),
            quality_band(evaluation.score),
            f"{evaluation.weight:.2f}",
        )
    console.print(table)
    console.print(f"Overall score: [bold]{analysis.overall_score}[/bold] ({quality_band(analysis.overall_score)})")
    console.print(
        f"Concepts: {analysis.concepts.total_concepts} ({analysis.concepts.core_concepts} core), "
        f"sections: {analysis.structure.section_count}, pacing: {analysis.structure.pacing.value}"
    )
    for recommendation in analysis.recommendations[:limit]:
        style = PRIORITY_STYLES.get(recommendation.priority, "")
        console.print(f"[{style}]{recommendation.priority.value}[/{style}] {recommendation.title}")


@app.command()
def analyze(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Text or markdown chapter."),
    config: Path | None = typer.Option(None, "--config", help="Analysis YAML (default: $CHAPTERCHECK_CONFIG or config/analysis.yaml)."),
    domain: str | None = typer.Option(None, "--domain", help="Domain key for extra pattern detectors, e.g. 'chemistry'."),
    threshold: float | None = typer.Option(None, "--threshold", help="Concept extraction threshold in (0, 1]."),
    detailed: bool = typer.Option(False, "--detailed", help="Attach the concept graph and pattern list."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the JSON result here instead of stdout."),
    provenance: Path | None = typer.Option(None, "--provenance", help="Append stage events to this JSONL file."),
    repo_root: Path | None = typer.Option(None, "--repo-root", help="Directory holding .env and config/ (default: cwd)."),
    quiet: bool = typer.Option(False, "--quiet", help="Skip the summary table."),
) -> None:
    """Analyze PATH and emit the full analysis as JSON."""
    overrides = {
        "domain": domain,
        "concept_extraction_threshold": threshold,
        "detailed_report": True if detailed else None,
    }
    try:
        ctx = bootstrap_analysis(config, repo_root=repo_root, overrides=overrides, provenance_path=provenance)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"[chaptercheck] configuration error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    text = _read_text(path)
    try:
        chapter = chapter_from_text(
            text,
            chapter_id=path.stem,
            title=path.stem,
            markdown=True,
            domain=ctx.config.domain,
            reading_level=ctx.config.reading_level,
        )
        analysis = ctx.build_engine().analyze(chapter)
    except ChapterInputError as exc:
        typer.echo(f"[chaptercheck] input error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except Exception as exc:  # pragma: no cover - surfaced to the caller as exit 1
        typer.echo(f"[chaptercheck] error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    payload = json.dumps(analysis.to_dict(), indent=2)
    if not quiet:
        render_summary(analysis)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(payload + "\n", encoding="utf-8")
        if not quiet:
            console.print(f"[green]Wrote analysis to {output}[/green]")
    else:
        typer.echo(payload)


@app.command()
def patterns(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    domain: str | None = typer.Option(None, "--domain", help="Domain key for extra pattern detectors."),
) -> None:
    """List the pedagogical patterns detected in PATH."""
    text = _read_text(path)
    matches = detect_patterns(text, domain)
    if not matches:
        console.print("No pedagogical patterns detected.")
        return
    table = Table(title=f"Patterns in {path.name}", show_header=True)
    table.add_column("Type")
    table.add_column("Family")
    table.add_column("Conf.", justify="right")
    table.add_column("Span", justify="right")
    table.add_column("Context")
    for match in matches:
        table.add_row(
            match.type,
            match.family.value,
            f"{match.confidence:.2f}",
            f"{match.start}-{match.end}",
            match.context[:60],
        )
    console.print(table)
    console.print(f"{len(matches)} pattern(s)")


@app.command()
def version() -> None:
    """Print the installed ChapterCheck version."""
    typer.echo(get_version())


if __name__ == "__main__":
    app()
