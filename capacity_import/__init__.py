"""Public interface for the ``capacity_import`` package.

This module exposes the pipeline entry points and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .aggregation import (
    aggregate_team_sprint_data,
    calculate_allocation_percentages,
    classify_epic,
)
from .config import ImportSettings, load_settings
from .cycles import (
    find_quarter_cycles,
    generate_financial_year_options,
    get_current_financial_year,
    get_current_quarter,
    get_quarters_for_financial_year,
)
from .errors import CapacityImportError, ConfigError, CycleResolutionError, ImportStateError
from .ingest import (
    parse_epic_csv,
    parse_planning_allocation_csv,
    parse_roster_csv,
    parse_story_csv,
    parse_table,
)
from .models import (
    AllocationRecord,
    AllocationResult,
    Cycle,
    EpicRecord,
    EpicRef,
    FinancialYear,
    PlanningAllocationRecord,
    RoleType,
    RoleTypeMapping,
    RoleTypeSuggestion,
    RosterRecord,
    StoryRecord,
    Team,
    TeamSprintAggregate,
)
from .reference import NameIndex, ReferenceData
from .role_matching import auto_map_unmapped_roles, suggest_mappings
from .validation import (
    reconcile_planning_allocations,
    reconcile_roster,
    validate_power_bi_data,
)

__all__ = [
    # API
    "parse_table",
    "parse_epic_csv",
    "parse_story_csv",
    "parse_planning_allocation_csv",
    "parse_roster_csv",
    "generate_financial_year_options",
    "get_current_financial_year",
    "get_current_quarter",
    "get_quarters_for_financial_year",
    "find_quarter_cycles",
    "aggregate_team_sprint_data",
    "calculate_allocation_percentages",
    "classify_epic",
    "validate_power_bi_data",
    "reconcile_planning_allocations",
    "reconcile_roster",
    "suggest_mappings",
    "auto_map_unmapped_roles",
    "ImportSettings",
    "load_settings",
    "NameIndex",
    "ReferenceData",
    # Errors
    "CapacityImportError",
    "ImportStateError",
    "CycleResolutionError",
    "ConfigError",
    # Models / types
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
    "RoleTypeMapping",
    "RoleTypeSuggestion",
]
