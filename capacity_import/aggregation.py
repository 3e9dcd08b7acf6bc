"""Fold parsed epics and stories into per-team, per-sprint allocation shares.

Each story contributes its points to the ``(team, sprint)`` group of its team
(taken from the story, or from its parent epic when the story has none). Within
a group, points are summed per epic and each epic's share is
``round_half_up(100 * epic_points / group_points)``. Shares are rounded
independently, so a group's shares sum to 100 within ±N for N epics; no
ceiling is imposed.

Stories without an epic are collected in an ``Unassigned Work`` bucket, which
the default run-work label list classifies as run work.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from .config import DEFAULT_RUN_WORK_LABELS
from .logging_setup import get_logger
from .models import (
    CHANGE_WORK,
    RUN_WORK,
    AllocationResult,
    EpicRecord,
    EpicType,
    StoryRecord,
    TeamSprintAggregate,
)
from .reference import NameIndex, normalize_key

_LOG = get_logger("capacity_import.aggregation")

UNASSIGNED_EPIC = "Unassigned Work"


@dataclass(frozen=True, slots=True)
class AggregationResult:
    aggregates: list[TeamSprintAggregate]
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _EpicBucket:
    epic_name: str
    project_name: str
    points: float = 0.0


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage_of(points: float, total: float) -> int:
    """Integer share of ``points`` in ``total`` using round-half-up."""

    # Decimal(str(x)) keeps the exact decimal text of float inputs.
    return round_half_up(Decimal(str(points)) * 100 / Decimal(str(total)))


def _display(name: str) -> str:
    return " ".join(name.split())


def aggregate_team_sprint_data(
    epics: Iterable[EpicRecord],
    stories: Iterable[StoryRecord],
) -> AggregationResult:
    """Group story points by ``(team, sprint)`` and compute per-epic shares.

    Groups and epics keep first-seen story order so repeated runs on the same
    input produce identical output.
    """

    epic_by_name: NameIndex[EpicRecord] = NameIndex(epics, key=lambda e: e.epic_name)
    warnings: list[str] = []

    # (team_key, sprint_key) -> display names, and per-epic points in order
    groups: dict[tuple[str, str], tuple[str, str]] = {}
    points: dict[tuple[str, str], dict[str, _EpicBucket]] = {}

    for story in stories:
        parent = epic_by_name.get(story.epic_name) if story.epic_name else None
        team = story.team_name or (parent.team if parent else "")
        if not team:
            where = f"row {story.row_number}" if story.row_number else "a story"
            warnings.append(
                f"Skipping {where}: no team on the story and epic "
                f"'{story.epic_name or UNASSIGNED_EPIC}' has no team"
            )
            continue

        epic_name = parent.epic_name if parent else (story.epic_name or UNASSIGNED_EPIC)
        project = story.project_name or (parent.project_name if parent else "")

        gkey = (normalize_key(team), normalize_key(story.sprint))
        groups.setdefault(gkey, (_display(team), _display(story.sprint)))
        per_epic = points.setdefault(gkey, {})
        bucket = per_epic.setdefault(
            normalize_key(epic_name), _EpicBucket(_display(epic_name), project)
        )
        bucket.points += story.story_points
        if not bucket.project_name and project:
            bucket.project_name = project

    aggregates: list[TeamSprintAggregate] = []
    for gkey, (team, sprint) in groups.items():
        per_epic = points[gkey]
        total = sum(b.points for b in per_epic.values())
        if total <= 0:
            warnings.append(f"No effort recorded for team {team} in sprint {sprint}")
            continue
        for bucket in per_epic.values():
            aggregates.append(
                TeamSprintAggregate(
                    team_name=team,
                    sprint=sprint,
                    epic_name=bucket.epic_name,
                    project_name=bucket.project_name,
                    total_points=bucket.points,
                    percentage=percentage_of(bucket.points, total),
                )
            )

    _LOG.debug(
        "aggregated %d team/sprint groups into %d rows (%d warnings)",
        len(groups),
        len(aggregates),
        len(warnings),
    )
    return AggregationResult(aggregates=aggregates, warnings=warnings)


def classify_epic(epic_name: str, run_work_labels: Sequence[str] = DEFAULT_RUN_WORK_LABELS) -> EpicType:
    """Fixed lookup: exact, case-insensitive match against run-work labels."""

    key = normalize_key(epic_name)
    if any(key == normalize_key(label) for label in run_work_labels):
        return RUN_WORK
    return CHANGE_WORK


def calculate_allocation_percentages(
    aggregates: Iterable[TeamSprintAggregate],
    run_work_labels: Sequence[str] = DEFAULT_RUN_WORK_LABELS,
) -> list[AllocationResult]:
    """Project aggregates onto ``AllocationResult`` and classify the epic type."""

    return [
        AllocationResult(
            team_name=a.team_name,
            epic_name=a.epic_name,
            sprint=a.sprint,
            percentage=a.percentage,
            story_points=a.total_points,
            epic_type=classify_epic(a.epic_name, run_work_labels),
            project_name=a.project_name,
        )
        for a in aggregates
    ]


def sprint_totals(allocations: Iterable[AllocationResult]) -> dict[tuple[str, str], int]:
    """Sum of percentages per ``(team, sprint)`` keyed by display names."""

    totals: dict[tuple[str, str], int] = {}
    names: dict[tuple[str, str], tuple[str, str]] = {}
    for a in allocations:
        k = (normalize_key(a.team_name), normalize_key(a.sprint))
        names.setdefault(k, (a.team_name, a.sprint))
        totals[k] = totals.get(k, 0) + a.percentage
    return {names[k]: v for k, v in totals.items()}


__all__ = [
    "UNASSIGNED_EPIC",
    "AggregationResult",
    "round_half_up",
    "percentage_of",
    "aggregate_team_sprint_data",
    "classify_epic",
    "calculate_allocation_percentages",
    "sprint_totals",
]
