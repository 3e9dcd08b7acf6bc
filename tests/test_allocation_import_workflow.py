import asyncio
from dataclasses import replace
from datetime import date

import pytest

from capacity_import.config import ImportSettings
from capacity_import.cycles import generate_financial_year_options
from capacity_import.errors import CycleResolutionError, ImportStateError
from capacity_import.models import AllocationResult
from capacity_import.workflows.allocation_import import (
    ImportContext,
    ImportSession,
    ImportStep,
    advance,
    attach_file,
    confirm,
    go_back,
    import_to_preview,
    new_session,
    preview,
    select_financial_year,
    select_quarter,
    submit_upload,
)
from tests.helpers.reference import (
    SCENARIO_EPICS_CSV,
    SCENARIO_STORIES_CSV,
    dedent,
    make_refs,
    quarter,
)


def _reader(files: dict[str, str]):
    async def read(path):
        if path not in files:
            raise OSError(f"cannot read {path}")
        return files[path]

    return read


def _ctx(files: dict[str, str] | None = None, **refs_kwargs) -> ImportContext:
    files = files if files is not None else {
        "epics.csv": SCENARIO_EPICS_CSV,
        "stories.csv": SCENARIO_STORIES_CSV,
    }
    return ImportContext(
        refs=make_refs(**refs_kwargs),
        settings=ImportSettings(),
        financial_years=tuple(generate_financial_year_options(4, 1, 2024, 1)),
        today=date(2024, 5, 10),
        reader=_reader(files),
    )


def _uploaded(ctx: ImportContext, epics="epics.csv", stories="stories.csv") -> ImportSession:
    session = new_session(ctx)
    session = attach_file(session, "epics", epics)
    session = attach_file(session, "stories", stories)
    return asyncio.run(submit_upload(session, ctx))


def _to_preview(ctx: ImportContext, session: ImportSession) -> ImportSession:
    while session.step < ImportStep.PREVIEW_CONFIRM:
        session = advance(session, ctx)
    return session


def test_new_session_preselects_current_year_and_quarter():
    session = new_session(_ctx())

    assert session.step == ImportStep.UPLOAD
    assert session.financial_year_id == "2024-04-01"
    assert session.quarter == "Q1"


def test_upload_gate_reports_missing_inputs_without_moving():
    ctx = _ctx()
    session = new_session(ctx)

    blocked = asyncio.run(submit_upload(session, ctx))

    assert blocked.step == ImportStep.UPLOAD
    assert blocked.errors == ("Please upload Epic CSV file", "Please upload Story CSV file")

    other_year = select_financial_year(session, ctx, "2025-04-01")
    assert other_year.quarter == ""
    blocked = asyncio.run(submit_upload(other_year, ctx))
    assert "Please select a quarter" in blocked.errors
    assert "No quarters available for the selected financial year" in blocked.errors


def test_boundary_quarter_of_neighbouring_year_is_blocked_at_upload():
    ctx = _ctx(
        cycles=[
            quarter("q1", "Q1 FY24/25", "2024-04-01", "2024-06-30"),
            quarter("q4", "Q4 FY24/25", "2025-01-01", "2025-03-31"),
        ]
    )
    session = select_financial_year(new_session(ctx), ctx, "2025-04-01")
    session = select_quarter(session, "Q4")
    session = attach_file(session, "epics", "epics.csv")
    session = attach_file(session, "stories", "stories.csv")

    blocked = asyncio.run(submit_upload(session, ctx))

    assert blocked.step == ImportStep.UPLOAD
    assert blocked.errors == ("No cycles found for the selected financial year and quarter",)
    assert blocked.epics == ()


def test_select_financial_year_keeps_valid_quarter():
    ctx = _ctx()
    session = select_quarter(new_session(ctx), "q2")

    assert session.quarter == "Q2"
    assert select_financial_year(session, ctx, "2024-04-01").quarter == "Q2"


def test_full_flow_emits_one_record_per_iteration_and_allocation():
    ctx = _ctx()
    session = _uploaded(ctx)
    assert session.step == ImportStep.VALIDATE
    assert len(session.epics) == 2 and len(session.stories) == 2

    session = advance(session, ctx)
    assert session.step == ImportStep.AGGREGATE
    assert [(a.epic_name, a.percentage) for a in session.valid_allocations] == [
        ("Epic A", 25),
        ("Epic B", 75),
    ]
    assert session.errors == ()
    assert any('Epic "Epic B" not found' in w for w in session.warnings)

    session = _to_preview(ctx, session)
    summary = preview(session)
    assert summary.totals == {("T1", "Sprint 1"): 100}
    assert (summary.run_work, summary.change_work) == (0, 2)

    result = confirm(session, ctx)

    assert [(r.cycle_id, r.epic_name, r.percentage) for r in result.records] == [
        ("i1", "Epic A", 25),
        ("i1", "Epic B", 75),
        ("i2", "Epic A", 25),
        ("i2", "Epic B", 75),
    ]
    first = result.records[0]
    assert (first.team_id, first.epic_id, first.allocation_type) == ("team-1", "epic-a", "project")
    assert (first.start_date, first.end_date) == (date(2024, 4, 1), date(2024, 4, 14))
    assert first.notes == "Imported from Power BI - Q1 - Epic: Epic A, Sprint: Sprint 1, Story Points: 5"
    assert result.records[1].epic_id is None
    assert result.unresolved_teams == []
    assert result.warnings == []


def test_quarter_without_iterations_falls_back_to_quarter_cycle():
    ctx = _ctx()
    session = select_quarter(new_session(ctx), "Q2")
    session = attach_file(session, "epics", "epics.csv")
    session = attach_file(session, "stories", "stories.csv")
    session = _to_preview(ctx, asyncio.run(submit_upload(session, ctx)))

    result = confirm(session, ctx)

    assert {r.cycle_id for r in result.records} == {"q2"}
    assert len(result.records) == 2
    assert result.warnings == ["Q2 FY24/25 has no iterations; allocating to the quarter itself"]


def test_structural_failures_stay_in_upload():
    missing_sprint = "Team,Epic Name,Points\nT1,Epic A,3\n"
    ctx = _ctx({"epics.csv": SCENARIO_EPICS_CSV, "stories.csv": missing_sprint, "empty.csv": ""})

    session = _uploaded(ctx)
    assert session.step == ImportStep.UPLOAD
    assert session.errors[0] == "Story CSV: Missing required columns: sprint"
    assert session.epics == ()

    session = _uploaded(ctx, stories="nope.csv")
    assert session.errors == ("Failed to process files: cannot read nope.csv",)

    session = _uploaded(ctx, stories="empty.csv")
    assert session.errors == ("Failed to process files: CSV file is empty",)


def test_partial_failure_proceeds_with_row_errors_as_warnings():
    stories = dedent(
        """
        Team,Epic Name,Sprint,Story Points
        T1,Epic A,Sprint 1,5
        T1,Epic B,,15
        """
    )
    ctx = _ctx({"epics.csv": SCENARIO_EPICS_CSV, "stories.csv": stories})

    session = _uploaded(ctx)

    assert session.step == ImportStep.VALIDATE
    assert session.errors == ()
    assert "Row 3: sprint is required but empty" in session.warnings
    assert len(session.stories) == 1


def test_back_navigation_keeps_data_and_recomputes_identically():
    ctx = _ctx()
    aggregated = advance(_uploaded(ctx), ctx)

    back = go_back(aggregated)
    assert back.step == ImportStep.VALIDATE
    assert back.epics == aggregated.epics
    assert back.quarter == aggregated.quarter

    again = advance(back, ctx)
    assert again.valid_allocations == aggregated.valid_allocations
    assert again.warnings == aggregated.warnings

    with pytest.raises(ImportStateError):
        go_back(go_back(back))


def test_illegal_transitions_raise():
    ctx = _ctx()
    session = new_session(ctx)

    with pytest.raises(ImportStateError):
        advance(session, ctx)
    validated = _uploaded(ctx)
    with pytest.raises(ImportStateError):
        confirm(validated, ctx)
    with pytest.raises(ImportStateError):
        attach_file(validated, "epics", "other.csv")
    with pytest.raises(ImportStateError):
        advance(_to_preview(ctx, validated), ctx)
    with pytest.raises(ImportStateError, match="No allocations"):
        confirm(ImportSession(step=ImportStep.PREVIEW_CONFIRM), ctx)


def test_confirm_requires_matching_quarter_cycle():
    ctx = _ctx()
    alloc = AllocationResult("T1", "Epic A", "Sprint 1", 100, 5.0, epic_type="Change Work")
    session = ImportSession(
        step=ImportStep.PREVIEW_CONFIRM,
        financial_year_id="2024-04-01",
        quarter="Q4",
        valid_allocations=(alloc,),
    )

    with pytest.raises(CycleResolutionError):
        confirm(session, ctx)
    with pytest.raises(CycleResolutionError):
        confirm(replace(session, financial_year_id="1999-04-01"), ctx)


def test_unresolved_team_at_confirm_gets_empty_team_id():
    ctx = _ctx()
    alloc = AllocationResult("Ghost", "Bug Fixes", "Sprint 1", 100, 5.0, epic_type="Run Work")
    session = ImportSession(
        step=ImportStep.PREVIEW_CONFIRM,
        financial_year_id="2024-04-01",
        quarter="Q1",
        valid_allocations=(alloc,),
    )

    result = confirm(session, ctx)

    assert {r.team_id for r in result.records} == {""}
    assert {r.allocation_type for r in result.records} == {"run-work"}
    assert result.unresolved_teams == ["Ghost"]


def test_import_to_preview_drives_all_steps():
    ctx = _ctx()

    session = asyncio.run(
        import_to_preview(ctx, "epics.csv", "stories.csv", financial_year_id="2024-04-01", quarter="Q1")
    )

    assert session.step == ImportStep.PREVIEW_CONFIRM
    assert len(confirm(session, ctx).records) == 4
