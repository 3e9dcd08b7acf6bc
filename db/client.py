"""Engine and session helpers for the planning database.

One engine is shared per process and bound to the first URL it is asked for
(an explicit ``database_url`` or the ``DATABASE_URL`` environment variable).
Asking for a different URL afterwards is an error until ``reset_engine`` is
called.

Usage
-----
from db.client import create_schema, session_scope

create_schema(database_url=url)
with session_scope(database_url=url) as s:
    save_allocation_records(s, records)
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


@dataclass(slots=True)
class _Bound:
    url: str
    engine: Engine
    sessions: sessionmaker[Session]


_bound: _Bound | None = None


def _resolve_url(override: str | None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; pass database_url or set the variable")
    return url


def _bind(database_url: str | None) -> _Bound:
    global _bound
    url = _resolve_url(database_url)
    if _bound is None:
        engine = create_engine(url, pool_pre_ping=True)
        _bound = _Bound(
            url=url,
            engine=engine,
            sessions=sessionmaker(bind=engine, expire_on_commit=False, class_=Session),
        )
    elif _bound.url != url:
        raise RuntimeError(
            f"database client is bound to another URL; call reset_engine() before using {url!r}"
        )
    return _bound


def get_engine(*, database_url: str | None = None) -> Engine:
    return _bind(database_url).engine


def reset_engine() -> None:
    """Dispose the shared engine so the next call may bind a new URL."""

    global _bound
    if _bound is not None:
        _bound.engine.dispose()
    _bound = None


def get_session(*, database_url: str | None = None) -> Session:
    return _bind(database_url).sessions()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on success, roll back on any exception, always close."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_schema(*, database_url: str | None = None) -> None:
    """Create the planning tables that do not exist yet."""

    from .models import Base

    Base.metadata.create_all(bind=get_engine(database_url=database_url))


def missing_tables(*, database_url: str | None = None) -> list[str]:
    """Planning tables declared by the ORM but absent from the database."""

    from .models import Base

    present = set(inspect(get_engine(database_url=database_url)).get_table_names())
    return sorted(t.name for t in Base.metadata.sorted_tables if t.name not in present)


__all__ = [
    "get_engine",
    "reset_engine",
    "get_session",
    "session_scope",
    "create_schema",
    "missing_tables",
]
