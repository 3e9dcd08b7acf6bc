"""Ingest utilities shared by CLI commands and workflows.

Reading an uploaded file is the only I/O suspension point of an import
session; ``read_text_async`` runs the blocking read in a worker thread so the
orchestrator can ``await`` it. Everything downstream is synchronous.
"""

from __future__ import annotations

import asyncio
from os import PathLike
from pathlib import Path

from .csv_table import TypedParseResult


def read_text(path: str | PathLike[str]) -> str:
    """Read a CSV export as text, tolerating a UTF-8 byte order mark."""

    p = Path(path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        return f.read()


async def read_text_async(path: str | PathLike[str]) -> str:
    return await asyncio.to_thread(read_text, path)


def load_csv(path: str | PathLike[str], parser) -> TypedParseResult:
    """Read ``path`` and run one of the adapter ``parse_*_csv`` functions on it."""

    return parser(read_text(path))


__all__ = ["read_text", "read_text_async", "load_csv"]
