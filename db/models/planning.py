from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: pl_allocations
# ---------------------------


class PlAllocation(Base):
    __tablename__ = "pl_allocations"
    __table_args__ = (
        CheckConstraint(
            "allocation_type IN ('run-work', 'project')", name="ck_pl_allocations_type"
        ),
        CheckConstraint("end_date >= start_date", name="ck_pl_allocations_dates"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Empty string when the team name did not resolve at import time.
    team_id: Mapped[str] = mapped_column(String, nullable=False)
    team_name: Mapped[str] = mapped_column(String, nullable=False)
    cycle_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    epic_id: Mapped[str | None] = mapped_column(String, nullable=True)
    epic_name: Mapped[str] = mapped_column(String, nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    allocation_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: pl_role_type_mappings
# ---------------------------


class PlRoleTypeMapping(Base):
    __tablename__ = "pl_role_type_mappings"
    __table_args__ = (
        CheckConstraint(
            "mapping_source IN ('manual', 'ai-suggested', 'import-default')",
            name="ck_pl_role_type_mappings_source",
        ),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1", name="ck_pl_role_type_mappings_confidence"
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    job_title: Mapped[str] = mapped_column(String, nullable=False)
    # Lower-cased, single-spaced job title; one mapping per title.
    job_title_key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    role_type_id: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    mapping_source: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
