"""Column contracts for the supported CSV imports.

Each ``TableSchema`` names the (normalized) columns of one export, which of
them are required per row, which are parsed as numbers, header aliases, and
the fill-down columns used by hierarchical exports where project-level values
appear only on the first row of a project block.

Header normalization: trim, lower-case, and replace whitespace runs with
``_`` (so ``"Epic Name"`` becomes ``epic_name``); aliases are looked up after
normalization.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class TableSchema:
    name: str
    columns: tuple[str, ...]
    required: frozenset[str] = frozenset()
    numeric: frozenset[str] = frozenset()
    aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    # Columns inherited from the previous row when ``fill_down_key`` is empty.
    fill_down: tuple[str, ...] = ()
    fill_down_key: str | None = None

    def canonical(self, header: str) -> str:
        """Return the schema column for a normalized header name."""

        return self.aliases.get(header, header)


def _aliases(**pairs: str) -> Mapping[str, str]:
    return MappingProxyType(dict(pairs))


EPIC_SCHEMA = TableSchema(
    name="epics",
    columns=(
        "project_name",
        "project_description",
        "project_status",
        "project_start_date",
        "project_end_date",
        "project_budget",
        "epic_name",
        "epic_description",
        "epic_effort",
        "epic_team",
        "epic_target_date",
        "milestone_name",
        "milestone_due_date",
    ),
    required=frozenset({"epic_name"}),
    numeric=frozenset({"epic_effort", "project_budget"}),
    aliases=_aliases(project="project_name", epic="epic_name", team="epic_team", effort="epic_effort"),
    fill_down=(
        "project_name",
        "project_description",
        "project_status",
        "project_start_date",
        "project_end_date",
        "project_budget",
    ),
    fill_down_key="project_name",
)

STORY_SCHEMA = TableSchema(
    name="stories",
    columns=(
        "team_name",
        "epic_name",
        "story_name",
        "sprint",
        "story_points",
        "project_name",
    ),
    required=frozenset({"sprint"}),
    numeric=frozenset({"story_points"}),
    aliases=_aliases(
        squad="team_name",
        team="team_name",
        epic_team="team_name",
        sprint_label="sprint",
        iteration="sprint",
        points="story_points",
    ),
)

PLANNING_ALLOCATION_SCHEMA = TableSchema(
    name="planning",
    columns=(
        "team_name",
        "quarter",
        "iteration_number",
        "epic_name",
        "project_name",
        "percentage",
        "notes",
    ),
    required=frozenset({"team_name", "percentage"}),
    numeric=frozenset({"percentage", "iteration_number"}),
    aliases=_aliases(team="team_name", iteration="iteration_number"),
)

ROSTER_SCHEMA = TableSchema(
    name="roster",
    columns=(
        "name",
        "email",
        "role",
        "team_name",
        "team_id",
        "employment_type",
        "annual_salary",
        "hourly_rate",
        "daily_rate",
        "start_date",
        "end_date",
        "is_active",
        "division_name",
        "division_id",
        "team_capacity",
    ),
    required=frozenset({"name"}),
    numeric=frozenset({"annual_salary", "hourly_rate", "daily_rate", "team_capacity"}),
    aliases=_aliases(job_title="role", team="team_name"),
)

SCHEMAS: Mapping[str, TableSchema] = MappingProxyType(
    {s.name: s for s in (EPIC_SCHEMA, STORY_SCHEMA, PLANNING_ALLOCATION_SCHEMA, ROSTER_SCHEMA)}
)


__all__ = [
    "TableSchema",
    "EPIC_SCHEMA",
    "STORY_SCHEMA",
    "PLANNING_ALLOCATION_SCHEMA",
    "ROSTER_SCHEMA",
    "SCHEMAS",
]
