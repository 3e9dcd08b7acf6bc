"""Financial-year and quarter resolution against the configured cycle calendar.

Financial years are not stored. They are generated from a single fiscal
anchor (month/day) by sliding a window of ``±span`` years around a centre
year; each option's ``id`` is its ISO start date, which is also what newer
cycles record in ``financial_year_id``.

Older cycle data has no ``financial_year_id``. For those, quarters are matched
to a financial year by date overlap. The overlap test is inclusive on both
ends and widened by ``QUARTER_BOUNDARY_TOLERANCE_DAYS`` so that a quarter
whose range touches the financial-year window (ends the day before it starts,
or starts the day after it ends) is still listed for that year.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable, Sequence
from datetime import date, timedelta

from .logging_setup import get_logger
from .models import Cycle, FinancialYear

_LOG = get_logger("capacity_import.cycles")

QUARTERLY = "quarterly"
ITERATION = "iteration"

QUARTER_BOUNDARY_TOLERANCE_DAYS = 1

_QUARTER_RE = re.compile(r"Q([1-4])")


def _anchor_date(year: int, month: int, day: int) -> date:
    # Feb 29 anchors clamp to the last day of February in non-leap years.
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def financial_year_for(start_year: int, anchor_month: int, anchor_day: int) -> FinancialYear:
    start = _anchor_date(start_year, anchor_month, anchor_day)
    end = _anchor_date(start_year + 1, anchor_month, anchor_day) - timedelta(days=1)
    label = f"FY {start_year}" if end.year == start_year else f"FY {start_year}-{end.year}"
    return FinancialYear(id=start.isoformat(), label=label, start_date=start, end_date=end)


def generate_financial_year_options(
    anchor_month: int,
    anchor_day: int,
    center_year: int,
    span: int = 3,
) -> list[FinancialYear]:
    """Return financial years ``center_year - span`` .. ``center_year + span``."""

    return [
        financial_year_for(year, anchor_month, anchor_day)
        for year in range(center_year - span, center_year + span + 1)
    ]


def ranges_overlap(
    a_start: date,
    a_end: date,
    b_start: date,
    b_end: date,
    *,
    tolerance_days: int = 0,
) -> bool:
    """Inclusive overlap test between ``[a_start, a_end]`` and ``[b_start, b_end]``.

    ``a`` overlaps ``b`` when it starts inside ``b``, ends inside ``b``, or
    spans all of ``b``. ``tolerance_days`` widens ``b`` on both sides.
    """

    lo = b_start - timedelta(days=tolerance_days)
    hi = b_end + timedelta(days=tolerance_days)
    return (lo <= a_start <= hi) or (lo <= a_end <= hi) or (a_start <= lo and a_end >= hi)


def extract_quarter_label(name: str) -> str:
    m = _QUARTER_RE.search(name)
    return m.group(0) if m else ""


def _quarter_number(label: str) -> int:
    return int(label[1:])


def get_current_financial_year(
    cycles: Iterable[Cycle],
    anchor: tuple[int, int],
    today: date | None = None,
) -> str:
    """Return the id of the financial year containing ``today``.

    Prefers the ``financial_year_id`` recorded on a cycle whose range contains
    today; otherwise computes containment against the anchor-derived window.
    """

    day = today or date.today()
    for cycle in cycles:
        if cycle.contains(day) and cycle.financial_year_id:
            return cycle.financial_year_id

    month, dom = anchor
    this_year = _anchor_date(day.year, month, dom)
    start_year = day.year if day >= this_year else day.year - 1
    return financial_year_for(start_year, month, dom).id


def get_current_quarter(cycles: Iterable[Cycle], today: date | None = None) -> str:
    day = today or date.today()
    for cycle in cycles:
        if cycle.type == QUARTERLY and cycle.contains(day):
            label = extract_quarter_label(cycle.name)
            if label:
                return label
    return ""


def find_financial_year(
    financial_years: Sequence[FinancialYear], financial_year_id: str
) -> FinancialYear | None:
    for fy in financial_years:
        if fy.id == financial_year_id:
            return fy
    return None


def quarter_cycles_for_financial_year(
    cycles: Iterable[Cycle],
    financial_year_id: str,
    financial_years: Sequence[FinancialYear],
    *,
    tolerance_days: int = QUARTER_BOUNDARY_TOLERANCE_DAYS,
) -> list[Cycle]:
    """Quarterly cycles belonging to a financial year (tagged first, then by dates)."""

    quarterly = [c for c in cycles if c.type == QUARTERLY]
    tagged = [c for c in quarterly if c.financial_year_id == financial_year_id]
    if tagged:
        return tagged

    fy = find_financial_year(financial_years, financial_year_id)
    if fy is None:
        _LOG.warning("financial year %r not found in generated options", financial_year_id)
        return []

    return [
        c
        for c in quarterly
        if ranges_overlap(
            c.start_date, c.end_date, fy.start_date, fy.end_date, tolerance_days=tolerance_days
        )
    ]


def get_quarters_for_financial_year(
    cycles: Iterable[Cycle],
    financial_year_id: str,
    financial_years: Sequence[FinancialYear],
) -> list[str]:
    """Return the distinct ``Q1``..``Q4`` labels available for a financial year."""

    labels = {
        label
        for c in quarter_cycles_for_financial_year(cycles, financial_year_id, financial_years)
        if (label := extract_quarter_label(c.name))
    }
    quarters = sorted(labels, key=_quarter_number)
    _LOG.debug("quarters for FY %s: %s", financial_year_id, quarters)
    return quarters


def find_quarter_cycles(
    cycles: Iterable[Cycle],
    quarter: str,
    financial_year: FinancialYear,
) -> list[Cycle]:
    """Quarterly cycles named with ``quarter`` that overlap the financial year.

    Unlike quarter listing, this uses the strict inclusive overlap so that a
    neighbouring year's quarter of the same name is never a target.
    """

    return [
        c
        for c in cycles
        if c.type == QUARTERLY
        and extract_quarter_label(c.name) == quarter
        and ranges_overlap(
            c.start_date, c.end_date, financial_year.start_date, financial_year.end_date
        )
    ]


def iterations_within(cycles: Iterable[Cycle], quarter_cycle: Cycle) -> list[Cycle]:
    """Iteration cycles inside ``quarter_cycle``, ordered by start date.

    An iteration belongs to the quarter when it names it as parent or when its
    whole date range lies inside the quarter's range.
    """

    found = [
        c
        for c in cycles
        if c.type == ITERATION
        and (
            c.parent_cycle_id == quarter_cycle.id
            or (
                c.parent_cycle_id is None
                and quarter_cycle.start_date <= c.start_date
                and c.end_date <= quarter_cycle.end_date
            )
        )
    ]
    return sorted(found, key=lambda c: (c.start_date, c.name))


__all__ = [
    "QUARTERLY",
    "ITERATION",
    "QUARTER_BOUNDARY_TOLERANCE_DAYS",
    "financial_year_for",
    "generate_financial_year_options",
    "ranges_overlap",
    "extract_quarter_label",
    "get_current_financial_year",
    "get_current_quarter",
    "find_financial_year",
    "quarter_cycles_for_financial_year",
    "get_quarters_for_financial_year",
    "find_quarter_cycles",
    "iterations_within",
]
