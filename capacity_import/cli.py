# ruff: noqa: I001
"""CLI for the ``capacity_import`` package.

A Typer console interface over the import pipeline. Environment variables
(settings and ``DATABASE_URL``) are loaded from a local ``.env`` using
``python-dotenv`` before any command runs. Business logic lives in the
ingest, aggregation, validation, role matching and workflow modules; commands
here only read files, call into them and print results.

Reference data (teams, epics, cycles, role types, existing mappings and a
list of job titles) is passed as a JSON file with ``--reference``.
"""

from __future__ import annotations

import asyncio
import csv
import json
import sys
from collections.abc import Callable, Sequence
from datetime import date
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .config import ImportSettings, load_settings
from .errors import CapacityImportError
from .ingest import (
    TypedParseResult,
    parse_epic_csv,
    parse_planning_allocation_csv,
    parse_roster_csv,
    parse_story_csv,
)
from .ingest.utils import read_text
from .logging_setup import configure_logging
from .reference import ReferenceData, reference_from_json

console = Console()

_PARSERS: dict[str, Callable[[str], TypedParseResult]] = {
    "epics": parse_epic_csv,
    "stories": parse_story_csv,
    "planning": parse_planning_allocation_csv,
    "roster": parse_roster_csv,
}


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _settings() -> ImportSettings:
    try:
        return load_settings()
    except CapacityImportError as e:
        raise _fail(f"invalid configuration: {e}") from e


def _load_reference(path: Path | None) -> tuple[ReferenceData, list[str]]:
    """Load reference JSON; returns the reference data and the ``job_titles`` list."""

    if path is None:
        return ReferenceData.build(), []
    try:
        with path.open(encoding="utf-8") as f:
            payload: dict[str, Any] = json.load(f)
        refs = reference_from_json(payload)
    except FileNotFoundError as e:
        raise _fail(f"File not found: {path}") from e
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise _fail(f"invalid reference file '{path}': {e}") from e
    titles = [str(t) for t in payload.get("job_titles") or []]
    return refs, titles


def _read_csv(path: Path, parser: Callable[[str], TypedParseResult]) -> TypedParseResult:
    try:
        return parser(read_text(path))
    except FileNotFoundError as e:
        raise _fail(f"File not found: {path}") from e
    except PermissionError as e:
        raise _fail(f"Permission denied: {path}") from e
    except csv.Error as e:
        raise _fail(f"Failed to parse CSV: {e}") from e


def _print_messages(errors: Sequence[str], warnings: Sequence[str]) -> None:
    for e in errors:
        print(f"error: {e}", file=sys.stderr)
    for w in warnings:
        print(f"warning: {w}", file=sys.stderr)


def _mappings_from_db(database_url: str | None) -> list:
    from db.client import create_schema, session_scope
    from .persistence import load_role_mappings

    create_schema(database_url=database_url)
    with session_scope(database_url=database_url) as session:
        return load_role_mappings(session)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import epic/story exports into capacity allocations and map job titles "
        "to role types. Loads settings and DATABASE_URL from a local .env."
    ),
)


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
REFERENCE_OPTION: OptionInfo = typer.Option(
    None,
    "--reference",
    help="Reference JSON with teams, epics, cycles, role_types, role_type_mappings, job_titles.",
    dir_okay=False,
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


@app.command("parse-table")
def parse_table_cmd(
    csv_path: Annotated[Path, typer.Option("--csv-path", help="CSV file to parse", dir_okay=False)],
    schema: Annotated[
        str, typer.Option("--schema", help="One of: epics, stories, planning, roster")
    ] = "epics",
) -> None:
    """Parse one CSV export and report row counts and messages."""

    parser = _PARSERS.get(schema)
    if parser is None:
        raise _fail(f"unknown schema '{schema}' (expected one of: {', '.join(_PARSERS)})")
    result = _read_csv(csv_path, parser)
    print(f"rows: {len(result.records)}")
    if result.missing_columns:
        print(f"missing columns: {', '.join(result.missing_columns)}")
    _print_messages(result.errors, result.warnings)


@app.command("financial-years")
def financial_years_cmd(
    center_year: Annotated[
        int | None, typer.Option("--center-year", help="Centre of the option window")
    ] = None,
) -> None:
    """List financial-year options for the configured fiscal anchor."""

    from .cycles import generate_financial_year_options

    settings = _settings()
    month, day = settings.anchor
    year = center_year if center_year is not None else date.today().year
    for fy in generate_financial_year_options(month, day, year, settings.financial_year_span):
        print(f"{fy.id}\t{fy.label}\t{fy.start_date.isoformat()}\t{fy.end_date.isoformat()}")


@app.command("aggregate")
def aggregate_cmd(
    epics: Annotated[Path, typer.Option("--epics", help="Epic CSV export", dir_okay=False)],
    stories: Annotated[Path, typer.Option("--stories", help="Story CSV export", dir_okay=False)],
    reference: Path | None = REFERENCE_OPTION,
) -> None:
    """Print per-team, per-sprint epic shares as tab-separated rows."""

    from .aggregation import aggregate_team_sprint_data, calculate_allocation_percentages
    from .validation import validate_power_bi_data

    settings = _settings()
    epic_result = _read_csv(epics, parse_epic_csv)
    story_result = _read_csv(stories, parse_story_csv)
    agg = aggregate_team_sprint_data(epic_result.records, story_result.records)
    allocations = calculate_allocation_percentages(agg.aggregates, settings.run_work_labels)

    errors = [*epic_result.errors, *story_result.errors]
    warnings = [*epic_result.warnings, *story_result.warnings, *agg.warnings]
    if reference is not None:
        refs, _ = _load_reference(reference)
        checked = validate_power_bi_data(
            allocations, refs.teams, refs.epics, settings.run_work_labels
        )
        allocations = checked.valid_allocations
        errors.extend(checked.errors)
        warnings.extend(checked.warnings)

    for a in allocations:
        print(
            f"{a.team_name}\t{a.sprint}\t{a.epic_name}\t{a.epic_type}\t"
            f"{a.percentage}\t{a.story_points:g}"
        )
    _print_messages(errors, warnings)


@app.command("suggest-roles")
def suggest_roles_cmd(
    title: Annotated[str, typer.Option("--title", help="Job title to match")],
    reference: Path | None = REFERENCE_OPTION,
) -> None:
    """Print ranked role type suggestions for a job title."""

    from .role_matching import suggest_mappings

    refs, _ = _load_reference(reference)
    suggestions = suggest_mappings(title, refs.role_types, refs.role_type_mappings)
    if not suggestions:
        print("No suggestions.")
        return
    for s in suggestions:
        print(f"{s.confidence:.2f}\t{s.role_type_name}\t{s.reasoning}")


@app.command("auto-map-roles")
def auto_map_roles_cmd(
    reference: Path | None = REFERENCE_OPTION,
    *,
    threshold: float | None = typer.Option(
        None, help="Minimum confidence to accept (defaults to the configured threshold)."
    ),
    persist: bool = typer.Option(False, help="Upsert created mappings to the database."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Create mappings for unmapped job titles whose best suggestion is confident."""

    from .role_matching import auto_map_unmapped_roles

    settings = _settings()
    refs, titles = _load_reference(reference)
    url = database_url or settings.database_url
    existing = list(refs.role_type_mappings)
    if persist:
        try:
            existing.extend(_mappings_from_db(url))
        except Exception as e:
            raise _fail(f"failed to load role mappings from DB: {e}") from e

    result = auto_map_unmapped_roles(
        titles,
        refs.role_types,
        existing,
        threshold if threshold is not None else settings.auto_map_threshold,
    )
    for m in result.mappings:
        print(f"{m.job_title}\t{m.role_type_id}\t{m.confidence:.2f}")
    print(f"mapped: {result.mapped}, skipped: {result.skipped}")

    if persist and result.mappings:
        try:
            from db.client import session_scope
            from .persistence import save_role_mappings

            with session_scope(database_url=url) as session:
                save_role_mappings(session, result.mappings)
        except Exception as e:
            raise _fail(f"persistence (role mappings) failed: {e}") from e


def _preview_table(allocations) -> Table:
    table = Table(title="Allocation preview")
    table.add_column("Team")
    table.add_column("Sprint")
    table.add_column("Epic")
    table.add_column("Type")
    table.add_column("%", justify="right")
    table.add_column("Points", justify="right")
    for a in allocations:
        table.add_row(
            a.team_name,
            a.sprint,
            a.epic_name,
            a.epic_type or "",
            str(a.percentage),
            f"{a.story_points:g}",
        )
    return table


@app.command("import-allocations")
def import_allocations_cmd(
    epics: Annotated[Path, typer.Option("--epics", help="Epic CSV export", dir_okay=False)],
    stories: Annotated[Path, typer.Option("--stories", help="Story CSV export", dir_okay=False)],
    reference: Path | None = REFERENCE_OPTION,
    *,
    financial_year: str | None = typer.Option(
        None, "--financial-year", help="Financial year id (ISO start date)."
    ),
    quarter: str | None = typer.Option(None, "--quarter", help="Quarter label, e.g. Q2."),
    persist: bool = typer.Option(False, help="Save the emitted records to the database."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Run the import workflow end to end and emit per-iteration records."""

    from .workflows.allocation_import import ImportContext, confirm, import_to_preview, preview

    settings = _settings()
    refs, _ = _load_reference(reference)
    ctx = ImportContext.create(refs, settings)
    session = asyncio.run(
        import_to_preview(ctx, epics, stories, financial_year_id=financial_year, quarter=quarter)
    )
    if session.errors and not session.valid_allocations:
        _print_messages(session.errors, session.warnings)
        raise _fail("import blocked")

    summary = preview(session)
    console.print(_preview_table(summary.allocations))
    console.print(
        f"[cyan]{len(summary.allocations)}[/cyan] allocations "
        f"({summary.run_work} run work, {summary.change_work} change work)"
    )
    _print_messages(session.errors, summary.warnings)

    try:
        result = confirm(session, ctx)
    except CapacityImportError as e:
        raise _fail(str(e)) from e
    unresolved = [f"team not resolved: {name}" for name in result.unresolved_teams]
    _print_messages(unresolved, result.warnings)
    print(f"Emitted {len(result.records)} allocation records")

    if persist:
        try:
            from db.client import create_schema, session_scope
            from .persistence import save_allocation_records

            url = database_url or settings.database_url
            create_schema(database_url=url)
            with session_scope(database_url=url) as db_session:
                save_allocation_records(db_session, result.records)
        except Exception as e:
            raise _fail(f"persistence (allocations) failed: {e}") from e


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    *,
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (defaults to CAPACITY_IMPORT_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
