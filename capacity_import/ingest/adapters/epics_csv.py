"""Adapter for the combined project/epic export.

CSV header (normalized keys):
project_name, project_description, project_status, project_start_date,
project_end_date, project_budget, epic_name, epic_description, epic_effort,
epic_team, epic_target_date, milestone_name, milestone_due_date

Project-level columns are filled down from the first row of each project
block by the table parser. The ``(project_name, epic_name)`` pair identifies
an epic within one file; when it repeats, the later row only fills fields the
earlier row left blank, and the merged epic keeps the first row's position.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import fields, replace

from ...models import EpicRecord
from ...reference import normalize_key
from ..csv_table import TableRow, TypedParseResult, parse_table
from ..schemas import EPIC_SCHEMA


def _opt(value: str) -> str | None:
    return value or None


def _row_to_epic(row: TableRow) -> EpicRecord:
    return EpicRecord(
        epic_name=row.text("epic_name"),
        effort=row.number_or_none("epic_effort") or 0.0,
        team=row.text("epic_team"),
        project_name=row.text("project_name"),
        description=_opt(row.text("epic_description")),
        target_date=_opt(row.text("epic_target_date")),
        milestone_name=_opt(row.text("milestone_name")),
        milestone_due_date=_opt(row.text("milestone_due_date")),
        project_description=_opt(row.text("project_description")),
        project_status=_opt(row.text("project_status")),
        project_start_date=_opt(row.text("project_start_date")),
        project_end_date=_opt(row.text("project_end_date")),
        project_budget=row.number_or_none("project_budget"),
        row_number=row.number,
    )


def _is_blank(value: object) -> bool:
    return value is None or value == "" or value == 0.0


def merge_epic(first: EpicRecord, later: EpicRecord) -> EpicRecord:
    """Fill blank fields of ``first`` from ``later`` (non-blank values win)."""

    updates = {}
    for f in fields(EpicRecord):
        if f.name == "row_number":
            continue
        current = getattr(first, f.name)
        incoming = getattr(later, f.name)
        if _is_blank(current) and not _is_blank(incoming):
            updates[f.name] = incoming
    return replace(first, **updates) if updates else first


def to_epic_records(rows: Iterable[TableRow]) -> Iterator[EpicRecord]:
    """Convert parsed rows into epics, merging repeated (project, epic) pairs."""

    merged: dict[tuple[str, str], EpicRecord] = {}
    for row in rows:
        epic = _row_to_epic(row)
        key = (normalize_key(epic.project_name), normalize_key(epic.epic_name))
        existing = merged.get(key)
        merged[key] = epic if existing is None else merge_epic(existing, epic)
    # dict preserves first-insertion order, which is the first row's position.
    yield from merged.values()


def parse_epic_csv(text: str) -> TypedParseResult[EpicRecord]:
    """Parse the combined project/epic export into ``EpicRecord`` items.

    Raises ``csv.Error`` on empty input; row problems are returned as messages.
    """

    result = parse_table(text, EPIC_SCHEMA)
    return TypedParseResult(
        records=list(to_epic_records(result.rows)),
        errors=list(result.errors),
        warnings=list(result.warnings),
        missing_columns=result.missing_columns,
    )


__all__ = ["merge_epic", "to_epic_records", "parse_epic_csv"]
