"""Runtime settings for the import pipeline.

Settings come from environment variables (the CLI loads a local ``.env`` via
``python-dotenv`` first). Only a handful of knobs exist: the fiscal-year
anchor, the financial-year option window, the auto-map acceptance threshold,
the run-work label list, and the database URL used when persisting.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from datetime import date

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_RUN_WORK_LABELS: tuple[str, ...] = (
    "Critical Run",
    "Production Support",
    "Bug Fixes",
    "Business as Usual",
    "Unassigned Work",
)

_ANCHOR_RE = re.compile(r"^(?:\d{4}-)?(\d{1,2})-(\d{1,2})$")


def parse_anchor(value: str) -> tuple[int, int]:
    """Parse a fiscal anchor given as ``MM-DD`` or a full ISO date.

    Only the month and day are kept; the year of an ISO date is ignored.
    """

    m = _ANCHOR_RE.match(value.strip())
    if not m:
        raise ConfigError(f"invalid fiscal year start: {value!r} (expected MM-DD)")
    month, day = int(m.group(1)), int(m.group(2))
    try:
        # Leap year so that 02-29 is accepted as an anchor.
        date(2024, month, day)
    except ValueError as exc:
        raise ConfigError(f"invalid fiscal year start: {value!r}") from exc
    return month, day


class ImportSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    fiscal_year_start: str = "04-01"
    financial_year_span: int = 3
    auto_map_threshold: float = 0.7
    run_work_labels: tuple[str, ...] = DEFAULT_RUN_WORK_LABELS
    database_url: str | None = None

    @field_validator("fiscal_year_start")
    @classmethod
    def _valid_anchor(cls, v: str) -> str:
        month, day = parse_anchor(v)
        return f"{month:02d}-{day:02d}"

    @field_validator("financial_year_span")
    @classmethod
    def _non_negative_span(cls, v: int) -> int:
        if v < 0:
            raise ValueError("financial_year_span must be >= 0")
        return v

    @field_validator("auto_map_threshold")
    @classmethod
    def _threshold_in_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("auto_map_threshold must be within [0,1]")
        return v

    @field_validator("run_work_labels")
    @classmethod
    def _strip_labels(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(s.strip() for s in v if s.strip())

    @property
    def anchor(self) -> tuple[int, int]:
        return parse_anchor(self.fiscal_year_start)


def load_settings(env: Mapping[str, str] | None = None) -> ImportSettings:
    """Build settings from environment variables.

    Recognized variables: ``CAPACITY_IMPORT_FY_START``,
    ``CAPACITY_IMPORT_FY_SPAN``, ``CAPACITY_IMPORT_AUTO_MAP_THRESHOLD``,
    ``CAPACITY_IMPORT_RUN_WORK_LABELS`` (comma-separated) and
    ``DATABASE_URL``. Unset variables keep their defaults.
    """

    source = os.environ if env is None else env
    values: dict[str, object] = {}
    if v := source.get("CAPACITY_IMPORT_FY_START"):
        values["fiscal_year_start"] = v
    try:
        if v := source.get("CAPACITY_IMPORT_FY_SPAN"):
            values["financial_year_span"] = int(v)
        if v := source.get("CAPACITY_IMPORT_AUTO_MAP_THRESHOLD"):
            values["auto_map_threshold"] = float(v)
    except ValueError as exc:
        raise ConfigError(f"invalid numeric setting: {exc}") from exc
    if v := source.get("CAPACITY_IMPORT_RUN_WORK_LABELS"):
        values["run_work_labels"] = tuple(v.split(","))
    if v := source.get("DATABASE_URL"):
        values["database_url"] = v

    try:
        return ImportSettings(**values)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


__all__ = [
    "DEFAULT_RUN_WORK_LABELS",
    "ImportSettings",
    "load_settings",
    "parse_anchor",
]
