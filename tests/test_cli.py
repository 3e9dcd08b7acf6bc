from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from capacity_import.cli import app
from tests.helpers.db import count_rows
from tests.helpers.reference import SCENARIO_EPICS_CSV, SCENARIO_STORIES_CSV

runner = CliRunner()


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def exports(tmp_path: Path) -> tuple[Path, Path]:
    return (
        _write(tmp_path / "epics.csv", SCENARIO_EPICS_CSV),
        _write(tmp_path / "stories.csv", SCENARIO_STORIES_CSV),
    )


@pytest.fixture
def reference_file(tmp_path: Path) -> Path:
    payload = {
        "teams": [{"id": "team-1", "name": "T1"}],
        "epics": [{"id": "epic-a", "name": "Epic A"}],
        "cycles": [
            {
                "id": "q1",
                "name": "Q1 FY24/25",
                "type": "quarterly",
                "start_date": "2024-04-01",
                "end_date": "2024-06-30",
            },
            {
                "id": "i1",
                "name": "Iteration 1",
                "type": "iteration",
                "start_date": "2024-04-01",
                "end_date": "2024-04-14",
                "parent_cycle_id": "q1",
            },
            {
                "id": "i2",
                "name": "Iteration 2",
                "type": "iteration",
                "start_date": "2024-04-15",
                "end_date": "2024-04-28",
                "parent_cycle_id": "q1",
            },
        ],
        "role_types": [
            {"id": "rt-swe", "name": "Software Engineer", "category": "engineering"},
            {"id": "rt-pm", "name": "Product Manager", "category": "product-management"},
        ],
        "job_titles": ["Software Engineer", "Barista", "software engineer"],
    }
    return _write(tmp_path / "reference.json", json.dumps(payload))


def test_financial_years_lists_window():
    result = runner.invoke(app, ["financial-years", "--center-year", "2024"])

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert len(lines) == 7
    assert "2024-04-01\tFY 2024-2025\t2024-04-01\t2025-03-31" in lines


def test_financial_years_honours_dotenv_anchor():
    _write(Path.cwd() / ".env", "CAPACITY_IMPORT_FY_START=01-01\nCAPACITY_IMPORT_FY_SPAN=0\n")

    result = runner.invoke(app, ["financial-years", "--center-year", "2024"])

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "2024-01-01\tFY 2024\t2024-01-01\t2024-12-31"


def test_parse_table_reports_rows(exports: tuple[Path, Path]):
    _, stories = exports

    result = runner.invoke(app, ["parse-table", "--csv-path", str(stories), "--schema", "stories"])

    assert result.exit_code == 0, result.output
    assert "rows: 2" in result.output


def test_parse_table_rejects_unknown_schema(exports: tuple[Path, Path]):
    epics, _ = exports

    result = runner.invoke(app, ["parse-table", "--csv-path", str(epics), "--schema", "bogus"])

    assert result.exit_code == 1
    assert "unknown schema 'bogus'" in result.output


def test_aggregate_prints_shares(exports: tuple[Path, Path]):
    epics, stories = exports

    result = runner.invoke(app, ["aggregate", "--epics", str(epics), "--stories", str(stories)])

    assert result.exit_code == 0, result.output
    assert "T1\tSprint 1\tEpic A\tChange Work\t25\t5" in result.output
    assert "T1\tSprint 1\tEpic B\tChange Work\t75\t15" in result.output


def test_aggregate_missing_file_fails(tmp_path: Path, exports: tuple[Path, Path]):
    _, stories = exports

    result = runner.invoke(
        app, ["aggregate", "--epics", str(tmp_path / "nope.csv"), "--stories", str(stories)]
    )

    assert result.exit_code == 1
    assert "File not found" in result.output


def test_suggest_roles(reference_file: Path):
    result = runner.invoke(
        app, ["suggest-roles", "--title", "Software Engineer", "--reference", str(reference_file)]
    )

    assert result.exit_code == 0, result.output
    first = result.output.splitlines()[0]
    assert first.startswith("1.00\tSoftware Engineer\tExact match with 'Software Engineer'")

    result = runner.invoke(
        app, ["suggest-roles", "--title", "Barista", "--reference", str(reference_file)]
    )
    assert result.exit_code == 0, result.output
    assert "No suggestions." in result.output


def test_suggest_roles_rejects_non_object_reference(tmp_path: Path):
    reference = _write(tmp_path / "reference.json", "[]")

    result = runner.invoke(
        app, ["suggest-roles", "--title", "Engineer", "--reference", str(reference)]
    )

    assert result.exit_code == 1
    assert "invalid reference file" in result.output


def test_auto_map_roles_persists(tmp_path: Path, reference_file: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'plan.db'}"

    result = runner.invoke(
        app,
        ["auto-map-roles", "--reference", str(reference_file), "--persist", "--database-url", url],
    )

    assert result.exit_code == 0, result.output
    assert "mapped: 1, skipped: 1" in result.output
    assert count_rows(url, "pl_role_type_mappings") == 1


def test_import_allocations_emits_and_persists(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    exports: tuple[Path, Path],
    reference_file: Path,
):
    # Keep FY 2024 inside the option window whatever today's date is.
    monkeypatch.setenv("CAPACITY_IMPORT_FY_SPAN", "50")
    epics, stories = exports
    url = f"sqlite+pysqlite:///{tmp_path / 'plan.db'}"

    result = runner.invoke(
        app,
        [
            "import-allocations",
            "--epics",
            str(epics),
            "--stories",
            str(stories),
            "--reference",
            str(reference_file),
            "--financial-year",
            "2024-04-01",
            "--quarter",
            "Q1",
            "--persist",
            "--database-url",
            url,
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Emitted 4 allocation records" in result.output
    assert "Allocation preview" in result.output
    assert count_rows(url, "pl_allocations") == 4


def test_import_allocations_blocked_without_quarter(
    monkeypatch: pytest.MonkeyPatch, exports: tuple[Path, Path], reference_file: Path
):
    monkeypatch.setenv("CAPACITY_IMPORT_FY_SPAN", "50")
    epics, stories = exports

    result = runner.invoke(
        app,
        [
            "import-allocations",
            "--epics",
            str(epics),
            "--stories",
            str(stories),
            "--reference",
            str(reference_file),
            "--financial-year",
            "2030-04-01",
        ],
    )

    assert result.exit_code == 1
    assert "No quarters available for the selected financial year" in result.output
    assert "import blocked" in result.output
