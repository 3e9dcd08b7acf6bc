"""Persistence integration for capacity_import.

Functions here write confirmed allocation records and role-type mappings to
the planning database owned by the ``db`` package. They take an open
SQLAlchemy session and never commit; wrap calls in ``db.client.session_scope``.

Scope:
- Insert allocation records into ``pl_allocations``.
- Upsert role-type mappings into ``pl_role_type_mappings`` keyed by job title.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.planning import PlAllocation, PlRoleTypeMapping

from .logging_setup import get_logger
from .models import AllocationRecord, RoleTypeMapping
from .reference import normalize_key

_LOG = get_logger("capacity_import.persistence")


def _to_decimal_2(value: float) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def save_allocation_records(session: Session, records: Iterable[AllocationRecord]) -> int:
    """Insert allocation records and return how many were added."""

    rows = [
        PlAllocation(
            team_id=r.team_id,
            team_name=r.team_name,
            cycle_id=r.cycle_id,
            epic_id=r.epic_id,
            epic_name=r.epic_name,
            percentage=_to_decimal_2(r.percentage),
            allocation_type=r.allocation_type,
            start_date=r.start_date,
            end_date=r.end_date,
            notes=r.notes,
        )
        for r in records
    ]
    session.add_all(rows)
    session.flush()
    missing_team = sum(1 for r in rows if not r.team_id)
    if missing_team:
        _LOG.warning("%d allocation row(s) saved without a team_id", missing_team)
    _LOG.info("saved %d allocation row(s)", len(rows))
    return len(rows)


def save_role_mappings(session: Session, mappings: Iterable[RoleTypeMapping]) -> int:
    """Upsert mappings by case-insensitive job title; returns rows written.

    An existing row for the same title keeps its primary key and takes the new
    role type, confidence, source and notes.
    """

    written = 0
    for m in mappings:
        key = normalize_key(m.job_title)
        existing = session.scalars(
            select(PlRoleTypeMapping).where(PlRoleTypeMapping.job_title_key == key)
        ).one_or_none()
        if existing is None:
            session.add(
                PlRoleTypeMapping(
                    id=m.id,
                    job_title=m.job_title,
                    job_title_key=key,
                    role_type_id=m.role_type_id,
                    confidence=m.confidence,
                    mapping_source=m.mapping_source,
                    notes=m.notes,
                )
            )
        else:
            existing.job_title = m.job_title
            existing.role_type_id = m.role_type_id
            existing.confidence = m.confidence
            existing.mapping_source = m.mapping_source
            existing.notes = m.notes
        # Flush per row so a repeated title within one batch hits the update path.
        session.flush()
        written += 1
    return written


def load_role_mappings(session: Session) -> list[RoleTypeMapping]:
    rows = session.scalars(select(PlRoleTypeMapping).order_by(PlRoleTypeMapping.job_title_key))
    return [
        RoleTypeMapping(
            id=row.id,
            job_title=row.job_title,
            role_type_id=row.role_type_id,
            confidence=float(row.confidence),
            mapping_source=row.mapping_source,
            notes=row.notes,
        )
        for row in rows
    ]


__all__ = [
    "save_allocation_records",
    "save_role_mappings",
    "load_role_mappings",
]
