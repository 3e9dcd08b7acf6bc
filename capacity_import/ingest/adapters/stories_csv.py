"""Adapter for story-level tracker exports (sprint + story points per story).

Accepted headers (normalized, with aliases):
``team_name`` (``squad``, ``team``, ``epic_team``), ``epic_name``,
``story_name``, ``sprint`` (``sprint_label``, ``iteration``),
``story_points`` (``points``), ``project_name``.

Only ``sprint`` is required per row. Team and project may be blank; the
aggregator resolves them through the parent epic.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ...models import StoryRecord
from ..csv_table import TableRow, TypedParseResult, parse_table
from ..schemas import STORY_SCHEMA


def to_story_records(rows: Iterable[TableRow]) -> Iterator[StoryRecord]:
    for row in rows:
        yield StoryRecord(
            epic_name=row.text("epic_name"),
            sprint=row.text("sprint"),
            story_points=row.number_or_none("story_points") or 0.0,
            team_name=row.text("team_name"),
            story_name=row.text("story_name"),
            project_name=row.text("project_name"),
            row_number=row.number,
        )


def parse_story_csv(text: str) -> TypedParseResult[StoryRecord]:
    result = parse_table(text, STORY_SCHEMA)
    return TypedParseResult(
        records=list(to_story_records(result.rows)),
        errors=list(result.errors),
        warnings=list(result.warnings),
        missing_columns=result.missing_columns,
    )


__all__ = ["to_story_records", "parse_story_csv"]
