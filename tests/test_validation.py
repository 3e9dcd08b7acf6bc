from datetime import date

from capacity_import.cycles import financial_year_for
from capacity_import.models import (
    AllocationResult,
    EpicRef,
    PlanningAllocationRecord,
    RosterRecord,
    Team,
)
from capacity_import.reference import ReferenceData, epic_index, team_index
from capacity_import.validation import (
    reconcile_planning_allocations,
    reconcile_roster,
    validate_power_bi_data,
)
from tests.helpers.reference import iteration, quarter

TEAMS = team_index([Team(id="t1", name="Alpha")])
EPICS = epic_index([EpicRef(id="e1", name="Login"), EpicRef(id="e2", name="Search")])


def _alloc(team, epic, sprint, pct, points=1.0):
    return AllocationResult(
        team_name=team, epic_name=epic, sprint=sprint, percentage=pct, story_points=points
    )


def test_unknown_epic_is_kept_but_unknown_team_is_dropped():
    allocations = [
        _alloc("Alpha", "Login", "S1", 60),
        _alloc("alpha ", "Mystery", "S1", 40),
        _alloc("Ghost", "Login", "S1", 100),
        _alloc("Ghost", "Unknown", "S1", 100),
    ]

    result = validate_power_bi_data(allocations, TEAMS, EPICS)

    assert [(a.team_name, a.epic_name) for a in result.valid_allocations] == [
        ("Alpha", "Login"),
        ("alpha ", "Mystery"),
    ]
    assert all(a.epic_type == "Change Work" for a in result.valid_allocations)
    assert len(result.errors) == 2
    assert all('Team "Ghost" not found' in e for e in result.errors)
    assert result.warnings == [
        'Epic "Mystery" not found in existing epics; importing as change work'
    ]
    assert not result.success


def test_out_of_range_percentages_and_totals_warn():
    allocations = [
        _alloc("Alpha", "Login", "S2", 70),
        _alloc("Alpha", "Search", "S2", 50),
        _alloc("Alpha", "Login", "S3", 0),
    ]

    result = validate_power_bi_data(allocations, TEAMS, EPICS)

    assert len(result.valid_allocations) == 3
    assert result.errors == []
    assert "Alpha Sprint S2 allocation exceeds 100%: 120%" in result.warnings
    assert "Alpha Sprint S3 allocation totals only 0%" in result.warnings
    assert any("outside (0, 100]" in w for w in result.warnings)


def test_rounded_shares_within_slack_do_not_warn():
    allocations = [_alloc("Alpha", "Login", "S1", 33), _alloc("Alpha", "Search", "S1", 33),
                   _alloc("Alpha", "Bug Fixes", "S1", 33)]

    result = validate_power_bi_data(allocations, TEAMS, EPICS)

    # Only the run-work epic is unregistered; no total warning for 99%.
    assert result.warnings == [
        'Epic "Bug Fixes" not found in existing epics; importing as run work'
    ]
    assert result.valid_allocations[2].epic_type == "Run Work"


def _planning_refs() -> ReferenceData:
    return ReferenceData.build(
        teams=[Team(id="t1", name="Alpha")],
        epics=[EpicRef(id="e1", name="Login")],
        cycles=[
            quarter("q1", "Q1 FY24", "2024-04-01", "2024-06-30", fy="2024-04-01"),
            quarter("q1-old", "Q1 FY23", "2023-04-01", "2023-06-30", fy="2023-04-01"),
            iteration("i1", "Iteration 1", "2024-04-01", "2024-04-14", parent="q1"),
            iteration("i2", "Iteration 2", "2024-04-15", "2024-04-28", parent="q1"),
        ],
    )


def test_planning_rows_resolve_to_cycles():
    records = [
        PlanningAllocationRecord("Alpha", 50, quarter="Q1", iteration_number=2, epic_name="Login", row_number=2),
        PlanningAllocationRecord("Alpha", 30, quarter="q1 fy24", epic_name="Bug Fixes", row_number=3),
        PlanningAllocationRecord("Ghost", 10, quarter="Q1", row_number=4),
        PlanningAllocationRecord("Alpha", 10, quarter="Q3", row_number=5),
        PlanningAllocationRecord("Alpha", 10, quarter="Q1", iteration_number=5, row_number=6),
    ]

    result = reconcile_planning_allocations(
        records, _planning_refs(), financial_year_for(2024, 4, 1)
    )

    got = [(r.cycle_id, r.epic_id, r.allocation_type, r.percentage) for r in result.accepted]
    assert got == [
        ("i2", "e1", "project", 50),
        ("q1", None, "run-work", 30),
        ("q1", None, "run-work", 10),
    ]
    assert result.accepted[0].start_date == date(2024, 4, 15)
    assert result.errors == [
        'Row 4: team "Ghost" not found in existing teams',
        'Row 5: quarter "Q3" does not match any quarterly cycle',
    ]
    assert result.warnings == [
        'Row 3: epic "Bug Fixes" not found in existing epics',
        "Row 6: iteration 5 not found in Q1 FY24; allocating to the whole quarter",
    ]


def test_roster_resolves_teams_and_rejects_duplicate_emails():
    refs = ReferenceData.build(teams=[Team(id="t1", name="Alpha")])
    records = [
        RosterRecord(name="Ann", email="ann@example.com", team_id="t1", row_number=2),
        RosterRecord(name="Bob", email="ANN@example.com", team_name="Alpha", row_number=3),
        RosterRecord(name="Cy", email="cy@example.com", team_name="Nowhere", row_number=4),
        RosterRecord(name="Di", team_name="alpha", row_number=5),
    ]

    result = reconcile_roster(records, refs)

    assert [(e.record.name, e.team.id if e.team else None) for e in result.accepted] == [
        ("Ann", "t1"),
        ("Cy", None),
        ("Di", "t1"),
    ]
    assert result.errors == ["Row 3: email ANN@example.com already used on row 2"]
    assert result.warnings == ['Row 4: team "Nowhere" not found; Cy imported without a team']
