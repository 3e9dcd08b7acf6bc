"""Schema-driven CSV table parsing with a continue-past-row-errors policy.

Parsing follows RFC 4180 rules via the stdlib :mod:`csv` module (quoted
fields with embedded commas and newlines, doubled quotes). The first record is
the header; each later record is mapped positionally onto the normalized
header names declared by a :class:`~capacity_import.ingest.schemas.TableSchema`.

Severity contract
-----------------
- Empty input or a missing header raises ``csv.Error`` (structural).
- A row whose required column is empty after fill-down is dropped and a
  ``Row {n}: {column} is required but empty`` message is recorded in
  ``errors``; parsing continues.
- A numeric cell that cannot be read as a number becomes ``0`` and a warning
  is recorded; the row is kept.

Row numbers count the header as row 1 and refer to CSV records, not physical
lines, so a quoted cell spanning several lines does not shift later numbers.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Any

from ..logging_setup import get_logger
from .schemas import TableSchema

_LOG = get_logger("capacity_import.ingest.csv_table")

_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class TableRow:
    """One accepted data row. Numeric columns hold ``float`` or ``None``."""

    number: int
    values: Mapping[str, Any]

    def text(self, column: str) -> str:
        value = self.values.get(column)
        return value if isinstance(value, str) else ""

    def number_or_none(self, column: str) -> float | None:
        value = self.values.get(column)
        return value if isinstance(value, float) else None


@dataclass(frozen=True, slots=True)
class ParseResult:
    rows: list[TableRow]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_columns: tuple[str, ...] = ()

    @property
    def is_structural_failure(self) -> bool:
        """True when nothing usable was parsed and errors explain why."""

        return not self.rows and bool(self.errors)


@dataclass(frozen=True, slots=True)
class TypedParseResult[R]:
    """Typed records produced by an adapter plus the parser's messages."""

    records: list[R]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_columns: tuple[str, ...] = ()

    @property
    def is_structural_failure(self) -> bool:
        return not self.records and bool(self.errors)


def normalize_header(name: str | None) -> str:
    if name is None:
        return ""
    return _WS_RE.sub("_", name.strip().lstrip("\ufeff").strip()).lower()


def parse_number(raw: str) -> float | None:
    """Parse a locale-agnostic number; ``None`` when ``raw`` is not numeric.

    Accepts thousands separators, a leading sign, surrounding whitespace and a
    trailing percent sign (``"1,234.5"``, ``" +7 "``, ``"12%"``).
    """

    s = raw.strip().replace(",", "").replace(" ", "")
    if s.endswith("%"):
        s = s[:-1]
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    if not d.is_finite():
        return None
    return float(d)


def _read_records(text: str) -> tuple[list[str], list[list[str]]]:
    with StringIO(text) as f:
        reader = csv.reader(f)
        header: list[str] | None = None
        records: list[list[str]] = []
        for record in reader:
            if header is None:
                if not any(cell.strip() for cell in record):
                    # Leading blank lines before the header are tolerated.
                    continue
                header = record
                continue
            records.append(record)
    if header is None:
        raise csv.Error("CSV file is empty")
    return header, records


def parse_table(text: str, schema: TableSchema) -> ParseResult:
    """Parse ``text`` against ``schema``.

    Returns the accepted rows plus row-level ``errors`` and ``warnings``.
    Raises ``csv.Error`` when the input has no header or no data rows.
    """

    if not text.strip():
        raise csv.Error("CSV file is empty")

    raw_header, records = _read_records(text)
    header = [schema.canonical(normalize_header(h)) for h in raw_header]
    if not records:
        raise csv.Error("CSV must contain headers and at least one data row")

    # First occurrence wins when a header repeats.
    positions: dict[str, int] = {}
    for idx, col in enumerate(header):
        if col in schema.columns:
            positions.setdefault(col, idx)

    present = set(header)
    missing = tuple(c for c in schema.columns if c in schema.required and c not in present)

    errors: list[str] = []
    warnings: list[str] = []
    if missing:
        errors.append("Missing required columns: " + ", ".join(missing))

    rows: list[TableRow] = []
    block: dict[str, str] = {}
    for pos, record in enumerate(records):
        number = pos + 2
        if not any(cell.strip() for cell in record):
            continue

        cells: dict[str, str] = {col: "" for col in schema.columns}
        for col, idx in positions.items():
            if idx < len(record):
                cells[col] = record[idx].strip()

        # Fill-down runs before validation, in original row order.
        if schema.fill_down_key is not None:
            if cells[schema.fill_down_key]:
                block = {col: cells[col] for col in schema.fill_down}
            else:
                for col in schema.fill_down:
                    if not cells[col]:
                        cells[col] = block.get(col, "")

        row_errors = [
            f"Row {number}: {col} is required but empty"
            for col in schema.columns
            if col in schema.required and not cells[col]
        ]
        if row_errors:
            errors.extend(row_errors)
            continue

        values: dict[str, Any] = dict(cells)
        for col in (c for c in schema.columns if c in schema.numeric):
            raw = cells[col]
            if not raw:
                values[col] = None
                continue
            parsed = parse_number(raw)
            if parsed is None:
                warnings.append(f"Row {number}: {col} value '{raw}' is not a number; using 0")
                parsed = 0.0
            values[col] = parsed

        rows.append(TableRow(number=number, values=values))

    _LOG.debug(
        "parsed %s table: %d rows, %d errors, %d warnings",
        schema.name,
        len(rows),
        len(errors),
        len(warnings),
    )
    return ParseResult(rows=rows, errors=errors, warnings=warnings, missing_columns=missing)


__all__ = [
    "TableRow",
    "ParseResult",
    "TypedParseResult",
    "normalize_header",
    "parse_number",
    "parse_table",
]
