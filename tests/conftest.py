"""Pytest configuration for test isolation.

Settings are read from ``CAPACITY_IMPORT_*`` environment variables and the
CLI loads a ``.env`` from the working directory, so a developer's shell or a
stray ``.env`` file could change parsing and matching behavior under test.
The database client also keeps a process-wide engine bound to the first URL
it sees.

To keep tests hermetic, an autouse fixture clears the relevant variables, runs
each test from its own temporary directory, and disposes the shared engine
afterwards.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from db.client import reset_engine


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Per-test environment and working directory, plus a fresh DB engine."""

    for name in list(os.environ):
        if name.startswith("CAPACITY_IMPORT_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir(parents=True, exist_ok=True)
    monkeypatch.chdir(workdir)
    yield
    reset_engine()
