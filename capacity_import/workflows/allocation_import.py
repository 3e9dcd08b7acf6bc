"""Staged import of epic/story exports into per-iteration allocation records.

The session is a frozen value; every transition takes a session and returns a
new one, so going back, retrying a step, or abandoning the import are plain
value operations. The steps run in a fixed order::

    UPLOAD → VALIDATE → AGGREGATE → RESOLVE_AMBIGUITIES → PREVIEW_CONFIRM

``submit_upload`` is the only coroutine; it awaits the two file reads and then
parses synchronously. ``confirm`` turns the accepted allocations into
``AllocationRecord`` values for the persistence layer; it does not write
anything itself.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import date
from enum import IntEnum
from os import PathLike
from typing import Literal

from ..aggregation import aggregate_team_sprint_data, calculate_allocation_percentages, sprint_totals
from ..config import ImportSettings
from ..cycles import (
    find_financial_year,
    find_quarter_cycles,
    generate_financial_year_options,
    get_current_financial_year,
    get_current_quarter,
    get_quarters_for_financial_year,
    iterations_within,
)
from ..errors import CycleResolutionError, ImportStateError
from ..ingest.adapters.epics_csv import parse_epic_csv
from ..ingest.adapters.stories_csv import parse_story_csv
from ..ingest.csv_table import TypedParseResult
from ..ingest.utils import read_text_async
from ..logging_setup import get_logger, log_step_messages
from ..models import (
    RUN_WORK,
    AllocationRecord,
    AllocationResult,
    EpicRecord,
    FinancialYear,
    StoryRecord,
    TeamSprintAggregate,
)
from ..reference import ReferenceData
from ..validation import validate_power_bi_data

_LOG = get_logger("capacity_import.workflows.allocation_import")

type FilePath = str | PathLike[str]
type Reader = Callable[[FilePath], Awaitable[str]]


class ImportStep(IntEnum):
    UPLOAD = 1
    VALIDATE = 2
    AGGREGATE = 3
    RESOLVE_AMBIGUITIES = 4
    PREVIEW_CONFIRM = 5


@dataclass(frozen=True, slots=True)
class ImportContext:
    """Inputs that stay fixed for the lifetime of a session."""

    refs: ReferenceData
    settings: ImportSettings
    financial_years: tuple[FinancialYear, ...]
    today: date
    reader: Reader = read_text_async

    @classmethod
    def create(
        cls,
        refs: ReferenceData,
        settings: ImportSettings | None = None,
        *,
        today: date | None = None,
        reader: Reader | None = None,
    ) -> ImportContext:
        """Build a context with financial-year options centred on today's year."""

        settings = settings or ImportSettings()
        day = today or date.today()
        month, dom = settings.anchor
        current = get_current_financial_year(refs.cycles, settings.anchor, day)
        center = date.fromisoformat(current).year if _is_iso(current) else day.year
        options = generate_financial_year_options(month, dom, center, settings.financial_year_span)
        return cls(
            refs=refs,
            settings=settings,
            financial_years=tuple(options),
            today=day,
            reader=reader or read_text_async,
        )


def _is_iso(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True, slots=True)
class ImportSession:
    step: ImportStep = ImportStep.UPLOAD
    epic_file: FilePath | None = None
    story_file: FilePath | None = None
    financial_year_id: str = ""
    quarter: str = ""
    epics: tuple[EpicRecord, ...] = ()
    stories: tuple[StoryRecord, ...] = ()
    aggregates: tuple[TeamSprintAggregate, ...] = ()
    valid_allocations: tuple[AllocationResult, ...] = ()
    # Row-level problems found while parsing; re-reported after every aggregate.
    parse_warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ImportPreview:
    allocations: tuple[AllocationResult, ...]
    totals: dict[tuple[str, str], int]
    run_work: int
    change_work: int
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ConfirmResult:
    records: list[AllocationRecord]
    unresolved_teams: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Upload step
# ---------------------------------------------------------------------------


def _require_step(session: ImportSession, step: ImportStep, action: str) -> None:
    if session.step != step:
        raise ImportStateError(
            f"cannot {action} at step {session.step.name}; expected {step.name}"
        )


def available_quarters(ctx: ImportContext, financial_year_id: str) -> list[str]:
    if not financial_year_id:
        return []
    return get_quarters_for_financial_year(
        ctx.refs.cycles, financial_year_id, ctx.financial_years
    )


def new_session(ctx: ImportContext) -> ImportSession:
    """A fresh session with the current financial year and quarter preselected."""

    fy_id = get_current_financial_year(ctx.refs.cycles, ctx.settings.anchor, ctx.today)
    quarter = get_current_quarter(ctx.refs.cycles, ctx.today)
    if quarter not in available_quarters(ctx, fy_id):
        quarter = ""
    return ImportSession(financial_year_id=fy_id, quarter=quarter)


def attach_file(
    session: ImportSession, kind: Literal["epics", "stories"], path: FilePath
) -> ImportSession:
    """Attach an upload; replacing a file discards anything parsed from before."""

    _require_step(session, ImportStep.UPLOAD, "attach a file")
    cleared = replace(
        session,
        epics=(),
        stories=(),
        aggregates=(),
        valid_allocations=(),
        parse_warnings=(),
        errors=(),
        warnings=(),
    )
    if kind == "epics":
        return replace(cleared, epic_file=path)
    if kind == "stories":
        return replace(cleared, story_file=path)
    raise ValueError(f"unknown file kind: {kind!r}")


def select_financial_year(
    session: ImportSession, ctx: ImportContext, financial_year_id: str
) -> ImportSession:
    """Change the target financial year.

    The selected quarter survives when the new year offers it; otherwise the
    current quarter is used when the new year is the current one, else the
    quarter is cleared.
    """

    _require_step(session, ImportStep.UPLOAD, "select a financial year")
    quarters = available_quarters(ctx, financial_year_id)
    quarter = session.quarter if session.quarter in quarters else ""
    if not quarter:
        current_fy = get_current_financial_year(ctx.refs.cycles, ctx.settings.anchor, ctx.today)
        current_q = get_current_quarter(ctx.refs.cycles, ctx.today)
        if financial_year_id == current_fy and current_q in quarters:
            quarter = current_q
    return replace(session, financial_year_id=financial_year_id, quarter=quarter, errors=())


def select_quarter(session: ImportSession, quarter: str) -> ImportSession:
    _require_step(session, ImportStep.UPLOAD, "select a quarter")
    return replace(session, quarter=quarter.strip().upper(), errors=())


def _upload_gate(session: ImportSession, ctx: ImportContext) -> list[str]:
    errors: list[str] = []
    if session.epic_file is None:
        errors.append("Please upload Epic CSV file")
    if session.story_file is None:
        errors.append("Please upload Story CSV file")
    if not session.financial_year_id:
        errors.append("Please select a financial year")
    if not session.quarter:
        errors.append("Please select a quarter")
    if session.financial_year_id and not available_quarters(ctx, session.financial_year_id):
        errors.append("No quarters available for the selected financial year")
    elif session.financial_year_id and session.quarter:
        # Listing tolerates boundary quarters; confirm needs one that overlaps strictly.
        fy = find_financial_year(ctx.financial_years, session.financial_year_id)
        if fy is None or not find_quarter_cycles(ctx.refs.cycles, session.quarter, fy):
            errors.append("No cycles found for the selected financial year and quarter")
    return errors


def _structural_errors(label: str, result: TypedParseResult) -> list[str]:
    """Messages for a parse that cannot proceed, or ``[]`` for a usable one."""

    if result.missing_columns:
        return [f"{label}: {e}" for e in result.errors]
    if not result.records:
        if result.errors:
            return [f"{label}: {e}" for e in result.errors]
        return [f"{label}: no data rows found"]
    return []


async def submit_upload(session: ImportSession, ctx: ImportContext) -> ImportSession:
    """Leave UPLOAD: read and parse both files, or stay with errors.

    Blocked gates and structural failures return a session still at UPLOAD
    with ``errors`` set and no parsed data. A partial parse proceeds to
    VALIDATE and carries the row-level messages as warnings.
    """

    _require_step(session, ImportStep.UPLOAD, "submit the upload")
    gate = _upload_gate(session, ctx)
    if gate:
        return replace(session, errors=tuple(gate))

    try:
        epic_text, story_text = await asyncio.gather(
            ctx.reader(session.epic_file), ctx.reader(session.story_file)
        )
        epic_result = parse_epic_csv(epic_text)
        story_result = parse_story_csv(story_text)
    except Exception as exc:  # noqa: BLE001
        _LOG.warning("upload failed: %s", exc)
        reason = str(exc) or type(exc).__name__
        return replace(session, errors=(f"Failed to process files: {reason}",))

    structural = [
        *_structural_errors("Epic CSV", epic_result),
        *_structural_errors("Story CSV", story_result),
    ]
    if structural:
        return replace(session, errors=tuple(structural))

    parse_warnings = (
        *epic_result.errors,
        *story_result.errors,
        *epic_result.warnings,
        *story_result.warnings,
    )
    _LOG.info(
        "parsed %d epics and %d stories (%d row messages)",
        len(epic_result.records),
        len(story_result.records),
        len(parse_warnings),
    )
    log_step_messages(_LOG, "upload", (), parse_warnings)
    return replace(
        session,
        step=ImportStep.VALIDATE,
        epics=tuple(epic_result.records),
        stories=tuple(story_result.records),
        aggregates=(),
        valid_allocations=(),
        parse_warnings=parse_warnings,
        errors=(),
        warnings=parse_warnings,
    )


# ---------------------------------------------------------------------------
# Later steps
# ---------------------------------------------------------------------------


def _aggregate(session: ImportSession, ctx: ImportContext) -> ImportSession:
    labels = ctx.settings.run_work_labels
    agg = aggregate_team_sprint_data(session.epics, session.stories)
    allocations = calculate_allocation_percentages(agg.aggregates, labels)
    checked = validate_power_bi_data(allocations, ctx.refs.teams, ctx.refs.epics, labels)
    log_step_messages(_LOG, "aggregate", checked.errors, [*agg.warnings, *checked.warnings])
    return replace(
        session,
        step=ImportStep.AGGREGATE,
        aggregates=tuple(agg.aggregates),
        valid_allocations=tuple(checked.valid_allocations),
        errors=tuple(checked.errors),
        warnings=(*session.parse_warnings, *agg.warnings, *checked.warnings),
    )


def advance(session: ImportSession, ctx: ImportContext) -> ImportSession:
    """Move one step forward from VALIDATE onwards.

    VALIDATE → AGGREGATE recomputes aggregates and validation from the parsed
    records, so repeating it after ``go_back`` gives the same result. The two
    following transitions pass through unchanged.
    """

    match session.step:
        case ImportStep.UPLOAD:
            raise ImportStateError("use submit_upload to leave the upload step")
        case ImportStep.VALIDATE:
            return _aggregate(session, ctx)
        case ImportStep.AGGREGATE:
            return replace(session, step=ImportStep.RESOLVE_AMBIGUITIES)
        case ImportStep.RESOLVE_AMBIGUITIES:
            return replace(session, step=ImportStep.PREVIEW_CONFIRM)
        case _:
            raise ImportStateError("already at the final step; call confirm")


def go_back(session: ImportSession) -> ImportSession:
    if session.step == ImportStep.UPLOAD:
        raise ImportStateError("cannot go back from the upload step")
    return replace(session, step=ImportStep(session.step - 1), errors=())


def preview(session: ImportSession) -> ImportPreview:
    allocations = session.valid_allocations
    run_work = sum(1 for a in allocations if a.epic_type == RUN_WORK)
    return ImportPreview(
        allocations=allocations,
        totals=sprint_totals(allocations),
        run_work=run_work,
        change_work=len(allocations) - run_work,
        warnings=session.warnings,
    )


def confirm(session: ImportSession, ctx: ImportContext) -> ConfirmResult:
    """Expand accepted allocations over every iteration of the selected quarter.

    One record is emitted per (iteration, allocation). A quarter cycle with no
    iterations is used directly. ``team_id`` is left empty for a team name
    that no longer resolves; such names are listed in ``unresolved_teams``.
    """

    _require_step(session, ImportStep.PREVIEW_CONFIRM, "confirm")
    if not session.valid_allocations:
        raise ImportStateError("No allocations to import")

    fy = find_financial_year(ctx.financial_years, session.financial_year_id)
    if fy is None:
        raise CycleResolutionError(f"Unknown financial year: {session.financial_year_id}")
    quarter_cycles = find_quarter_cycles(ctx.refs.cycles, session.quarter, fy)
    if not quarter_cycles:
        raise CycleResolutionError("No cycles found for the selected financial year and quarter")

    warnings: list[str] = []
    unresolved: list[str] = []
    records: list[AllocationRecord] = []
    for quarter_cycle in quarter_cycles:
        targets = iterations_within(ctx.refs.cycles, quarter_cycle)
        if not targets:
            warnings.append(
                f"{quarter_cycle.name} has no iterations; allocating to the quarter itself"
            )
            targets = [quarter_cycle]
        for cycle in targets:
            for allocation in session.valid_allocations:
                team = ctx.refs.teams.get(allocation.team_name)
                if team is None and allocation.team_name not in unresolved:
                    unresolved.append(allocation.team_name)
                epic = ctx.refs.epics.get(allocation.epic_name)
                records.append(
                    AllocationRecord(
                        team_id=team.id if team else "",
                        team_name=team.name if team else allocation.team_name,
                        cycle_id=cycle.id,
                        epic_name=allocation.epic_name,
                        epic_id=epic.id if epic else None,
                        percentage=allocation.percentage,
                        allocation_type="run-work" if allocation.epic_type == RUN_WORK else "project",
                        start_date=cycle.start_date,
                        end_date=cycle.end_date,
                        notes=(
                            f"Imported from Power BI - {session.quarter} - "
                            f"Epic: {allocation.epic_name}, Sprint: {allocation.sprint}, "
                            f"Story Points: {allocation.story_points:g}"
                        ),
                    )
                )

    for name in unresolved:
        _LOG.warning("team %r not found at confirm; emitting records with empty team_id", name)
    _LOG.info(
        "confirmed %d allocations into %d records across %d quarter cycle(s)",
        len(session.valid_allocations),
        len(records),
        len(quarter_cycles),
    )
    return ConfirmResult(records=records, unresolved_teams=unresolved, warnings=warnings)


async def import_to_preview(
    ctx: ImportContext,
    epics_path: FilePath,
    stories_path: FilePath,
    *,
    financial_year_id: str | None = None,
    quarter: str | None = None,
) -> ImportSession:
    """Drive a fresh session from upload to PREVIEW_CONFIRM.

    Returns the session at UPLOAD with ``errors`` when the upload is blocked.
    """

    session = new_session(ctx)
    session = attach_file(session, "epics", epics_path)
    session = attach_file(session, "stories", stories_path)
    if financial_year_id:
        session = select_financial_year(session, ctx, financial_year_id)
    if quarter:
        session = select_quarter(session, quarter)
    session = await submit_upload(session, ctx)
    while ImportStep.UPLOAD < session.step < ImportStep.PREVIEW_CONFIRM:
        session = advance(session, ctx)
    return session


__all__ = [
    "ImportStep",
    "ImportContext",
    "ImportSession",
    "ImportPreview",
    "ConfirmResult",
    "available_quarters",
    "new_session",
    "attach_file",
    "select_financial_year",
    "select_quarter",
    "submit_upload",
    "advance",
    "go_back",
    "preview",
    "confirm",
    "import_to_preview",
]
