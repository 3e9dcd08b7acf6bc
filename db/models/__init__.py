"""Shared SQLAlchemy models registry for the planning database.

Currently includes the allocation and role-mapping tables written by
``capacity_import``.
"""

from .planning import Base, PlAllocation, PlRoleTypeMapping

__all__ = [
    "Base",
    "PlAllocation",
    "PlRoleTypeMapping",
]
