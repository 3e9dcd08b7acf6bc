"""Cross-check import candidates against reference data.

Severity policy
---------------
- A team name that does not resolve is an error and the row is dropped. Team
  resolution is the only hard gate for allocations.
- An epic name that does not resolve is a warning and the row is kept; run
  work is intentionally not registered as epic entities.
- Percentages outside ``(0, 100]`` and team/sprint totals far from 100 are
  warnings. Imported percentages are rounded and often partial.

Nothing here raises for row-level problems; every function returns the
accepted subset together with ``errors`` and ``warnings``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import date

from .aggregation import classify_epic
from .config import DEFAULT_RUN_WORK_LABELS
from .cycles import QUARTERLY, extract_quarter_label, iterations_within, ranges_overlap
from .logging_setup import get_logger
from .models import (
    RUN_WORK,
    AllocationRecord,
    AllocationResult,
    Cycle,
    EpicRef,
    FinancialYear,
    PlanningAllocationRecord,
    RosterRecord,
    Team,
)
from .reference import NameIndex, ReferenceData, normalize_key

_LOG = get_logger("capacity_import.validation")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid_allocations: list[AllocationResult]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors and not self.warnings


def percentage_in_range(value: float) -> bool:
    return 0 < value <= 100


def validate_power_bi_data(
    allocations: Iterable[AllocationResult],
    teams: NameIndex[Team],
    epics: NameIndex[EpicRef],
    run_work_labels: Sequence[str] = DEFAULT_RUN_WORK_LABELS,
) -> ValidationResult:
    """Partition aggregated allocations into accepted rows and messages."""

    errors: list[str] = []
    warnings: list[str] = []
    valid: list[AllocationResult] = []
    reported_teams: set[str] = set()
    reported_epics: set[str] = set()

    for allocation in allocations:
        if allocation.epic_type is None:
            allocation = replace(
                allocation, epic_type=classify_epic(allocation.epic_name, run_work_labels)
            )

        if allocation.team_name not in teams:
            key = normalize_key(allocation.team_name)
            errors.append(
                f'Team "{allocation.team_name}" not found in existing teams '
                f"(sprint {allocation.sprint}, epic {allocation.epic_name})"
            )
            if key not in reported_teams:
                reported_teams.add(key)
                _LOG.info("unresolved team %r in allocation import", allocation.team_name)
            continue

        if allocation.epic_name not in epics:
            key = normalize_key(allocation.epic_name)
            if key not in reported_epics:
                reported_epics.add(key)
                kind = "run work" if allocation.epic_type == RUN_WORK else "change work"
                warnings.append(
                    f'Epic "{allocation.epic_name}" not found in existing epics; '
                    f"importing as {kind}"
                )

        if not percentage_in_range(allocation.percentage):
            warnings.append(
                f"{allocation.team_name} sprint {allocation.sprint}: percentage "
                f"{allocation.percentage}% for {allocation.epic_name} is outside (0, 100]"
            )

        valid.append(allocation)

    # Totals per team/sprint; rounding slack is one point per row in the group.
    totals: dict[tuple[str, str], tuple[str, str, int, int]] = {}
    for a in valid:
        k = (normalize_key(a.team_name), normalize_key(a.sprint))
        team, sprint, total, count = totals.get(k, (a.team_name, a.sprint, 0, 0))
        totals[k] = (team, sprint, total + a.percentage, count + 1)
    for team, sprint, total, count in totals.values():
        if total > 100 + count:
            warnings.append(f"{team} Sprint {sprint} allocation exceeds 100%: {total}%")
        elif total < 100 - count:
            warnings.append(f"{team} Sprint {sprint} allocation totals only {total}%")

    return ValidationResult(valid_allocations=valid, errors=errors, warnings=warnings)


# ---------------------------------------------------------------------------
# Planning allocation import
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlanningReconciliation:
    accepted: list[AllocationRecord]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _resolve_quarter_cycle(
    quarter: str,
    cycles: Sequence[Cycle],
    financial_year: FinancialYear | None,
) -> Cycle | None:
    wanted = normalize_key(quarter)
    token = extract_quarter_label(quarter.upper())
    candidates = [c for c in cycles if c.type == QUARTERLY]
    if financial_year is not None:
        candidates = [
            c
            for c in candidates
            if c.financial_year_id == financial_year.id
            or ranges_overlap(
                c.start_date, c.end_date, financial_year.start_date, financial_year.end_date
            )
        ]
    for c in candidates:
        if normalize_key(c.name) == wanted:
            return c
    if token:
        for c in candidates:
            if extract_quarter_label(c.name) == token:
                return c
    return None


def reconcile_planning_allocations(
    records: Iterable[PlanningAllocationRecord],
    refs: ReferenceData,
    financial_year: FinancialYear | None = None,
) -> PlanningReconciliation:
    """Resolve planning rows to concrete cycles and teams.

    A row needs a known team and a quarter that resolves to a quarterly cycle
    (by exact name, or by its ``Q`` token within ``financial_year`` when
    given). ``iteration_number`` selects the nth iteration of that quarter;
    when absent or out of range the row binds to the quarter cycle itself.
    """

    accepted: list[AllocationRecord] = []
    errors: list[str] = []
    warnings: list[str] = []

    for rec in records:
        where = f"Row {rec.row_number}"
        team = refs.teams.get(rec.team_name)
        if team is None:
            errors.append(f'{where}: team "{rec.team_name}" not found in existing teams')
            continue
        if not rec.quarter:
            errors.append(f"{where}: quarter is required to place the allocation")
            continue
        quarter_cycle = _resolve_quarter_cycle(rec.quarter, refs.cycles, financial_year)
        if quarter_cycle is None:
            errors.append(f'{where}: quarter "{rec.quarter}" does not match any quarterly cycle')
            continue

        target = quarter_cycle
        if rec.iteration_number is not None:
            iterations = iterations_within(refs.cycles, quarter_cycle)
            if 1 <= rec.iteration_number <= len(iterations):
                target = iterations[rec.iteration_number - 1]
            else:
                warnings.append(
                    f"{where}: iteration {rec.iteration_number} not found in "
                    f"{quarter_cycle.name}; allocating to the whole quarter"
                )

        epic = refs.epics.get(rec.epic_name) if rec.epic_name else None
        if rec.epic_name and epic is None:
            warnings.append(f'{where}: epic "{rec.epic_name}" not found in existing epics')
        if not percentage_in_range(rec.percentage):
            warnings.append(f"{where}: percentage {rec.percentage:g}% is outside (0, 100]")

        run_work = not rec.epic_name or classify_epic(rec.epic_name) == RUN_WORK
        accepted.append(
            AllocationRecord(
                team_id=team.id,
                team_name=team.name,
                cycle_id=target.id,
                epic_name=rec.epic_name,
                epic_id=epic.id if epic else None,
                percentage=rec.percentage,
                allocation_type="run-work" if run_work else "project",
                start_date=target.start_date,
                end_date=target.end_date,
                notes=rec.notes,
            )
        )

    return PlanningReconciliation(accepted=accepted, errors=errors, warnings=warnings)


# ---------------------------------------------------------------------------
# Roster import
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RosterEntry:
    """A roster person with the team it resolved to (``None`` when unknown)."""

    record: RosterRecord
    team: Team | None


@dataclass(frozen=True, slots=True)
class RosterReconciliation:
    accepted: list[RosterEntry]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def reconcile_roster(records: Iterable[RosterRecord], refs: ReferenceData) -> RosterReconciliation:
    """Resolve each person's team (by id, then name) and reject duplicate e-mails."""

    accepted: list[RosterEntry] = []
    errors: list[str] = []
    warnings: list[str] = []
    seen_emails: dict[str, int] = {}

    for rec in records:
        where = f"Row {rec.row_number}"
        email_key = rec.email.strip().lower()
        if email_key:
            first = seen_emails.get(email_key)
            if first is not None:
                errors.append(f"{where}: email {rec.email} already used on row {first}")
                continue
            seen_emails[email_key] = rec.row_number

        team = refs.teams_by_id.get(rec.team_id) if rec.team_id else None
        if team is None and rec.team_name:
            team = refs.teams.get(rec.team_name)
        if team is None and (rec.team_id or rec.team_name):
            warnings.append(
                f'{where}: team "{rec.team_name or rec.team_id}" not found; '
                f"{rec.name} imported without a team"
            )
        if rec.end_date and rec.start_date and _iso_before(rec.end_date, rec.start_date):
            warnings.append(f"{where}: end_date {rec.end_date} is before start_date {rec.start_date}")
        accepted.append(RosterEntry(record=rec, team=team))

    return RosterReconciliation(accepted=accepted, errors=errors, warnings=warnings)


def _iso_before(a: str, b: str) -> bool:
    try:
        return date.fromisoformat(a) < date.fromisoformat(b)
    except ValueError:
        return False


__all__ = [
    "ValidationResult",
    "percentage_in_range",
    "validate_power_bi_data",
    "PlanningReconciliation",
    "reconcile_planning_allocations",
    "RosterEntry",
    "RosterReconciliation",
    "reconcile_roster",
]
