"""CSV ingest: schema-driven table parsing and per-export adapters."""

from .adapters.epics_csv import parse_epic_csv
from .adapters.planning_csv import parse_planning_allocation_csv
from .adapters.roster_csv import parse_roster_csv
from .adapters.stories_csv import parse_story_csv
from .csv_table import ParseResult, TableRow, TypedParseResult, parse_table
from .schemas import (
    EPIC_SCHEMA,
    PLANNING_ALLOCATION_SCHEMA,
    ROSTER_SCHEMA,
    SCHEMAS,
    STORY_SCHEMA,
    TableSchema,
)

__all__ = [
    "parse_table",
    "ParseResult",
    "TableRow",
    "TypedParseResult",
    "TableSchema",
    "EPIC_SCHEMA",
    "STORY_SCHEMA",
    "PLANNING_ALLOCATION_SCHEMA",
    "ROSTER_SCHEMA",
    "SCHEMAS",
    "parse_epic_csv",
    "parse_story_csv",
    "parse_planning_allocation_csv",
    "parse_roster_csv",
]
