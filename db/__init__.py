"""db: planning database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.planning`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.planning import Base, PlAllocation, PlRoleTypeMapping

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "PlAllocation",
    "PlRoleTypeMapping",
]
