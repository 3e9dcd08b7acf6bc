"""Adapter for planning allocation exports.

CSV header (normalized keys):
team_name, quarter, iteration_number, epic_name, project_name, percentage, notes

Required per row: ``team_name`` and ``percentage``. A fractional or
non-positive ``iteration_number`` is dropped to ``None`` with a warning so the
reconciler can treat the row as quarter-wide.
"""

from __future__ import annotations

from collections.abc import Iterable

from ...models import PlanningAllocationRecord
from ..csv_table import TableRow, TypedParseResult, parse_table
from ..schemas import PLANNING_ALLOCATION_SCHEMA


def to_planning_allocation_records(
    rows: Iterable[TableRow],
) -> tuple[list[PlanningAllocationRecord], list[str]]:
    records: list[PlanningAllocationRecord] = []
    warnings: list[str] = []
    for row in rows:
        iteration = row.number_or_none("iteration_number")
        iteration_number: int | None = None
        if iteration is not None:
            if iteration.is_integer() and iteration > 0:
                iteration_number = int(iteration)
            else:
                warnings.append(
                    f"Row {row.number}: iteration_number {iteration:g} is not a positive "
                    "whole number; ignoring"
                )
        records.append(
            PlanningAllocationRecord(
                team_name=row.text("team_name"),
                percentage=row.number_or_none("percentage") or 0.0,
                quarter=row.text("quarter"),
                iteration_number=iteration_number,
                epic_name=row.text("epic_name"),
                project_name=row.text("project_name"),
                notes=row.text("notes") or None,
                row_number=row.number,
            )
        )
    return records, warnings


def parse_planning_allocation_csv(text: str) -> TypedParseResult[PlanningAllocationRecord]:
    result = parse_table(text, PLANNING_ALLOCATION_SCHEMA)
    records, extra_warnings = to_planning_allocation_records(result.rows)
    return TypedParseResult(
        records=records,
        errors=list(result.errors),
        warnings=[*result.warnings, *extra_warnings],
        missing_columns=result.missing_columns,
    )


__all__ = ["to_planning_allocation_records", "parse_planning_allocation_csv"]
