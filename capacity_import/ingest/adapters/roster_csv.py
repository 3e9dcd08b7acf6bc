"""Adapter for HR roster exports (one row per person).

Only ``name`` is required. ``employment_type`` defaults to ``permanent``;
``is_active`` accepts ``true/false``, ``yes/no``, ``y/n`` and ``1/0`` and
defaults to active when blank or unrecognized (unrecognized values warn).
"""

from __future__ import annotations

from collections.abc import Iterable

from ...models import RosterRecord
from ..csv_table import TableRow, TypedParseResult, parse_table
from ..schemas import ROSTER_SCHEMA

_TRUE = {"true", "yes", "y", "1", "active"}
_FALSE = {"false", "no", "n", "0", "inactive"}


def _parse_active(raw: str) -> bool | None:
    v = raw.strip().lower()
    if not v or v in _TRUE:
        return True
    if v in _FALSE:
        return False
    return None


def to_roster_records(rows: Iterable[TableRow]) -> tuple[list[RosterRecord], list[str]]:
    records: list[RosterRecord] = []
    warnings: list[str] = []
    for row in rows:
        active = _parse_active(row.text("is_active"))
        if active is None:
            warnings.append(
                f"Row {row.number}: is_active value '{row.text('is_active')}' not recognized; "
                "treating as active"
            )
            active = True
        employment = row.text("employment_type").lower() or "permanent"
        records.append(
            RosterRecord(
                name=row.text("name"),
                email=row.text("email"),
                role=row.text("role"),
                team_name=row.text("team_name"),
                team_id=row.text("team_id"),
                employment_type=employment,
                annual_salary=row.number_or_none("annual_salary"),
                hourly_rate=row.number_or_none("hourly_rate"),
                daily_rate=row.number_or_none("daily_rate"),
                start_date=row.text("start_date") or None,
                end_date=row.text("end_date") or None,
                is_active=active,
                division_name=row.text("division_name"),
                division_id=row.text("division_id"),
                team_capacity=row.number_or_none("team_capacity"),
                row_number=row.number,
            )
        )
    return records, warnings


def parse_roster_csv(text: str) -> TypedParseResult[RosterRecord]:
    result = parse_table(text, ROSTER_SCHEMA)
    records, extra_warnings = to_roster_records(result.rows)
    return TypedParseResult(
        records=records,
        errors=list(result.errors),
        warnings=[*result.warnings, *extra_warnings],
        missing_columns=result.missing_columns,
    )


__all__ = ["to_roster_records", "parse_roster_csv"]
