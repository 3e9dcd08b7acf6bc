"""Data models and type aliases for ``capacity_import``.

Records flowing through the pipeline are frozen ``dataclass`` value objects
with no back-references: parsed CSV rows (epics, stories, planning
allocations, roster entries), aggregation candidates, and the allocation
records handed to persistence. Reference data borrowed from the host
application (teams, epics, cycles, role types) uses the same style.

Role-type mappings are user-editable and persisted, so they are modelled with
Pydantic to validate ``confidence`` and ``mapping_source`` on construction.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Raw rows
# ---------------------------------------------------------------------------

# One CSV data line keyed by normalized column name. Values are the raw cell
# strings (after fill-down); no semantic typing has happened yet.
type RawRow = Mapping[str, str]

type EpicType = Literal["Run Work", "Change Work"]
RUN_WORK: EpicType = "Run Work"
CHANGE_WORK: EpicType = "Change Work"

type MappingSource = Literal["manual", "ai-suggested", "import-default"]


# ---------------------------------------------------------------------------
# Parsed import records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EpicRecord:
    """An epic row from the combined project/epic export.

    Project-level fields are already filled down from the first row of their
    project block. ``row_number`` is the 1-based CSV line (header is row 1).
    """

    epic_name: str
    effort: float = 0.0
    team: str = ""
    project_name: str = ""
    description: str | None = None
    target_date: str | None = None
    milestone_name: str | None = None
    milestone_due_date: str | None = None
    project_description: str | None = None
    project_status: str | None = None
    project_start_date: str | None = None
    project_end_date: str | None = None
    project_budget: float | None = None
    row_number: int = 0


@dataclass(frozen=True, slots=True)
class StoryRecord:
    """A story row from the tracker export, carrying its sprint and points."""

    epic_name: str
    sprint: str
    story_points: float
    team_name: str = ""
    story_name: str = ""
    project_name: str = ""
    row_number: int = 0


@dataclass(frozen=True, slots=True)
class PlanningAllocationRecord:
    team_name: str
    percentage: float
    quarter: str = ""
    iteration_number: int | None = None
    epic_name: str = ""
    project_name: str = ""
    notes: str | None = None
    row_number: int = 0


@dataclass(frozen=True, slots=True)
class RosterRecord:
    """A person row from an HR roster export."""

    name: str
    email: str = ""
    role: str = ""
    team_name: str = ""
    team_id: str = ""
    employment_type: str = "permanent"
    annual_salary: float | None = None
    hourly_rate: float | None = None
    daily_rate: float | None = None
    start_date: str | None = None
    end_date: str | None = None
    is_active: bool = True
    division_name: str = ""
    division_id: str = ""
    team_capacity: float | None = None
    row_number: int = 0


# ---------------------------------------------------------------------------
# Aggregation and allocation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TeamSprintAggregate:
    """Points and share of one epic within a team's sprint.

    ``percentage`` is the epic's rounded share of ``total_points`` summed over
    the whole (team, sprint) group; it is never clamped to 100.
    """

    team_name: str
    sprint: str
    epic_name: str
    project_name: str
    total_points: float
    percentage: int


@dataclass(frozen=True, slots=True)
class AllocationResult:
    team_name: str
    epic_name: str
    sprint: str
    percentage: int
    story_points: float
    epic_type: EpicType | None = None
    project_name: str = ""


@dataclass(frozen=True, slots=True)
class AllocationRecord:
    """An allocation ready for storage, bound to one concrete cycle.

    ``team_id`` is an empty string when the team name could not be resolved
    at confirm time.
    """

    team_id: str
    team_name: str
    cycle_id: str
    epic_name: str
    percentage: float
    allocation_type: Literal["run-work", "project"]
    start_date: date
    end_date: date
    epic_id: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Calendar and reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FinancialYear:
    """A generated financial-year window; ``id`` is the ISO start date."""

    id: str
    label: str
    start_date: date
    end_date: date


@dataclass(frozen=True, slots=True)
class Cycle:
    id: str
    name: str
    type: str
    start_date: date
    end_date: date
    financial_year_id: str | None = None
    parent_cycle_id: str | None = None

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True, slots=True)
class Team:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class EpicRef:
    id: str
    name: str
    project_id: str | None = None


@dataclass(frozen=True, slots=True)
class RoleType:
    """A canonical role type from the catalog.

    ``aliases`` are alternative labels that count as exact matches for a job
    title (e.g. ``("Engineer", "Developer")`` for "Software Engineer").
    """

    id: str
    name: str
    category: str = "other"
    is_active: bool = True
    aliases: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Role mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RoleTypeSuggestion:
    role_type_id: str
    role_type_name: str
    confidence: float
    reasoning: str
    similar_job_titles: tuple[str, ...] = ()


class RoleTypeMapping(BaseModel):
    """A persisted job title → role type assignment.

    ``confidence`` is advisory metadata; it only gates creation inside the
    explicit auto-map operation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    id: str
    job_title: str
    role_type_id: str
    confidence: float
    mapping_source: MappingSource
    notes: str | None = None

    @field_validator("job_title", "role_type_id")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be non-empty")
        return v

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        fv = float(v)
        if 0.0 <= fv <= 1.0:
            return fv
        raise ValueError("confidence must be within [0,1]")


__all__ = [
    "RawRow",
    "EpicType",
    "RUN_WORK",
    "CHANGE_WORK",
    "MappingSource",
    "EpicRecord",
    "StoryRecord",
    "PlanningAllocationRecord",
    "RosterRecord",
    "TeamSprintAggregate",
    "AllocationResult",
    "AllocationRecord",
    "FinancialYear",
    "Cycle",
    "Team",
    "EpicRef",
    "RoleType",
    "RoleTypeSuggestion",
    "RoleTypeMapping",
]
