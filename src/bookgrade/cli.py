from __future__ import annotations

from pathlib import Path

import typer

app = typer.Typer(name="bookgrade", help="Grade book chapters against a quality checklist")
schema_app = typer.Typer(name="schema", help="Generate schema tooling")
app.add_typer(schema_app, name="schema")

EXIT_PASS = 0
EXIT_BELOW_THRESHOLD = 1
EXIT_CONFIG_ERROR = 2


def _load_config_or_exit(config: str):
    import yaml
    from pydantic import ValidationError

    from bookgrade.config import load_config

    config_path = Path(config)
    if not config_path.exists():
        typer.echo(f"Error: config file not found: {config}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)
    try:
        return load_config(config_path)
    except (ValidationError, ValueError, TypeError, yaml.YAMLError) as e:
        typer.echo(f"Error: invalid config {config}: {e}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)


@app.command()
def score(
    config: str = typer.Argument(help="Path to book YAML config"),
    chapter: str = typer.Option("all", "--chapter", "-c", help="Chapter id, or 'all'"),
    min_score: float | None = typer.Option(
        None, "--min-score", min=0, max=100, help="Passing score (overrides config)"
    ),
    output_dir: str = typer.Option("runs", help="Output directory for run results"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output to terminal"
    ),
    parallel: int = typer.Option(
        1, "--parallel", "-p", min=1, max=64, help="Number of chapters scored at once"
    ),
    no_cache: bool = typer.Option(
        False, "--no-cache", help="Ignore cached reports and re-collect evidence"
    ),
):
    """Score chapters and print their reports.

    Exit code 0 when every scored chapter meets the passing threshold, 1 when
    any falls below it, 2 for a malformed catalog, config or missing evidence.
    """
    from bookgrade.errors import MalformedRuleError
    from bookgrade.runner import Runner

    book = _load_config_or_exit(config)

    try:
        runner = Runner(
            config=book,
            output_dir=Path(output_dir),
            chapter_filter=chapter,
            min_score=min_score,
            verbose=verbose,
            parallel=parallel,
            use_cache=not no_cache,
        )
        outcome = runner.execute()
    except MalformedRuleError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    typer.echo((outcome.run_dir / "report.md").read_text(encoding="utf-8"))
    typer.echo(f"Run complete: {outcome.run_dir}")
    if not verbose:
        typer.echo(f"Debug log: {outcome.run_dir / 'debug.log'}")

    if not outcome.all_passed:
        failing = ", ".join(r.chapter.id for r in outcome.results if not r.passed)
        typer.echo(f"Below threshold: {failing}", err=True)
        raise typer.Exit(EXIT_BELOW_THRESHOLD)


@app.command()
def report(
    run_dir: str = typer.Argument(help="Path to run output directory"),
):
    """Regenerate report.md from a previous run and show its CI status."""
    from bookgrade.reporting.junit import failing_chapters
    from bookgrade.reporting.markdown import generate_report

    run_path = Path(run_dir)
    if not run_path.exists() or not (run_path / "reports.json").exists():
        typer.echo(f"Error: not a valid run directory: {run_dir}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    report_path = generate_report(run_path)
    typer.echo(f"Report generated: {report_path}")

    junit_path = run_path / "junit.xml"
    if junit_path.exists():
        failing = failing_chapters(junit_path)
        if failing:
            typer.echo(f"Below threshold: {', '.join(failing)}")
            raise typer.Exit(EXIT_BELOW_THRESHOLD)


@app.command("check-catalog")
def check_catalog(
    catalog: str | None = typer.Argument(
        None, help="Path to a catalog YAML (defaults to the bundled checklist)"
    ),
):
    """Validate a rule catalog without scoring anything."""
    from bookgrade.catalog import default_catalog, load_catalog
    from bookgrade.errors import MalformedRuleError

    try:
        rules = load_catalog(Path(catalog)) if catalog else default_catalog()
    except FileNotFoundError:
        typer.echo(f"Error: catalog file not found: {catalog}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)
    except MalformedRuleError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    typer.echo(
        f"Catalog {rules.version}: {len(rules)} rules in "
        f"{len(rules.categories)} categories, {rules.max_points:g} points"
    )
    for rule in rules:
        typer.echo(f"  {rule.category:<16} {rule.name:<22} {rule.max_points:g} pts  [{rule.signal}]")


@app.command()
def status(
    config: str = typer.Argument(help="Path to book YAML config"),
):
    """Show each chapter's lifecycle status and latest grade."""
    from bookgrade.cache import StateStore

    book = _load_config_or_exit(config)
    state = StateStore(book.state_file)

    for chapter_cfg in sorted(book.chapters, key=lambda c: c.number):
        chapter = state.resolve(chapter_cfg.to_chapter())
        latest = state.latest_report(chapter.id)
        grade = f"{latest.grade.value} ({latest.percentage:g}%)" if latest else "not scored"
        typer.echo(f"{chapter.id:<8} {chapter.status.value:<11} {grade:<14} {chapter.title}")


@app.command()
def publish(
    config: str = typer.Argument(help="Path to book YAML config"),
    chapter: str = typer.Argument(help="Chapter id to sign off"),
):
    """Sign off a Complete chapter as Published."""
    from bookgrade import lifecycle
    from bookgrade.cache import StateStore
    from bookgrade.errors import InvalidTransitionError

    book = _load_config_or_exit(config)
    try:
        chapter_cfg = book.get_chapter(chapter)
    except KeyError:
        typer.echo(f"Error: unknown chapter: {chapter}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    state = StateStore(book.state_file)
    current = state.resolve(chapter_cfg.to_chapter())
    try:
        published = lifecycle.publish(current)
    except InvalidTransitionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_BELOW_THRESHOLD)

    state.record(published)
    state.save()
    typer.echo(f"{chapter}: {current.status.value} -> {published.status.value}")


@app.command()
def start(
    config: str = typer.Argument(help="Path to book YAML config"),
    chapter: str = typer.Argument(help="Chapter id to start"),
):
    """Move a Planned chapter to InProgress."""
    from bookgrade import lifecycle
    from bookgrade.cache import StateStore
    from bookgrade.errors import InvalidTransitionError

    book = _load_config_or_exit(config)
    try:
        chapter_cfg = book.get_chapter(chapter)
    except KeyError:
        typer.echo(f"Error: unknown chapter: {chapter}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    state = StateStore(book.state_file)
    current = state.resolve(chapter_cfg.to_chapter())
    try:
        started = lifecycle.start(current)
    except InvalidTransitionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_BELOW_THRESHOLD)

    state.record(started)
    state.save()
    typer.echo(f"{chapter}: {current.status.value} -> {started.status.value}")


@app.command()
def init(
    dir: str = typer.Option(
        "bookgrade", "--dir", help="Directory to initialize the book project in"
    ),
):
    """Initialize a book project with example config, evidence and catalog."""
    import shutil

    from bookgrade.catalog import DEFAULT_CATALOG_PATH

    project_dir = Path(dir)
    project_dir.mkdir(parents=True, exist_ok=True)

    book = project_dir / "book.yaml"
    if book.exists():
        typer.echo(f"book.yaml already exists in {dir}, skipping.")
        return

    book.write_text("""\
title: Example Book
catalog: ./checklist.yaml
evidence_dir: ./evidence
min_score: 90

chapters:
  - id: ch01
    number: 1
    title: Introduction
    status: InProgress
""")

    evidence = project_dir / "evidence"
    evidence.mkdir(parents=True, exist_ok=True)
    (evidence / "ch01.yaml").write_text("""\
warnings: 0
unit_tests: 5
coverage: 96.0
mutation_score: 82.0
readme_sections: 4
unsafe_blocks: 0
external_api_calls: 0
""")

    shutil.copy2(DEFAULT_CATALOG_PATH, project_dir / "checklist.yaml")

    typer.echo(f"Initialized book project in {dir}:")
    typer.echo("  book.yaml        - chapters and passing threshold")
    typer.echo("  checklist.yaml   - rule catalog (edit to tighten the standard)")
    typer.echo("  evidence/        - per-chapter evidence captured by your tooling")


@schema_app.command("generate")
def schema_generate(
    dir: str = typer.Option(
        "bookgrade", "--dir", help="Project directory for default schema/doc outputs"
    ),
    out: str | None = typer.Option(
        None, help="Output directory for JSON Schemas (defaults to <dir>/schemas)"
    ),
    doc: str | None = typer.Option(
        None, help="Output path for schema docs (defaults to <dir>/docs/schema.md)"
    ),
):
    """Generate JSON Schemas and docs for the book and catalog YAML formats."""
    from bookgrade.schema import write_json_schemas, write_schema_doc

    project_dir = Path(dir)
    out_dir = Path(out) if out is not None else project_dir / "schemas"
    doc_path = Path(doc) if doc is not None else project_dir / "docs" / "schema.md"
    for path in write_json_schemas(out_dir):
        typer.echo(f"Wrote schema: {path}")
    write_schema_doc(doc_path)
    typer.echo(f"Wrote docs: {doc_path}")
