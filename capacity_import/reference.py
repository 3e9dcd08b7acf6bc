"""Read-only lookups over reference collections borrowed from the host app.

Name matching across the pipeline is exact after normalization: trimmed,
internal whitespace collapsed, and case-folded. ``NameIndex`` makes that rule
explicit so the aggregator, validator and orchestrator all resolve "team by
name" and "epic by name" the same way.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .models import Cycle, EpicRef, RoleType, RoleTypeMapping, Team


def normalize_key(name: str | None) -> str:
    """Return the lookup key for ``name`` (trimmed, single-spaced, case-folded)."""

    if name is None:
        return ""
    return " ".join(name.split()).casefold()


class NameIndex[T]:
    """Immutable name → item index; the first item wins on duplicate names."""

    __slots__ = ("_by_key", "_items")

    def __init__(self, items: Iterable[T], *, key: Callable[[T], str]) -> None:
        by_key: dict[str, T] = {}
        kept: list[T] = []
        for item in items:
            kept.append(item)
            k = normalize_key(key(item))
            if k and k not in by_key:
                by_key[k] = item
        self._by_key: Mapping[str, T] = MappingProxyType(by_key)
        self._items: tuple[T, ...] = tuple(kept)

    def get(self, name: str | None) -> T | None:
        return self._by_key.get(normalize_key(name))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_key(name) in self._by_key

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


def team_index(teams: Iterable[Team]) -> NameIndex[Team]:
    return NameIndex(teams, key=lambda t: t.name)


def epic_index(epics: Iterable[EpicRef]) -> NameIndex[EpicRef]:
    return NameIndex(epics, key=lambda e: e.name)


@dataclass(frozen=True, slots=True)
class ReferenceData:
    """Reference collections for one import session (borrowed, read-only)."""

    teams: NameIndex[Team]
    epics: NameIndex[EpicRef]
    cycles: tuple[Cycle, ...] = ()
    role_types: tuple[RoleType, ...] = ()
    role_type_mappings: tuple[RoleTypeMapping, ...] = ()
    teams_by_id: Mapping[str, Team] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        teams: Iterable[Team] = (),
        epics: Iterable[EpicRef] = (),
        cycles: Iterable[Cycle] = (),
        role_types: Iterable[RoleType] = (),
        role_type_mappings: Iterable[RoleTypeMapping] = (),
    ) -> ReferenceData:
        team_list = list(teams)
        return cls(
            teams=team_index(team_list),
            epics=epic_index(epics),
            cycles=tuple(cycles),
            role_types=tuple(role_types),
            role_type_mappings=tuple(role_type_mappings),
            teams_by_id=MappingProxyType({t.id: t for t in team_list}),
        )


# ---------------------------------------------------------------------------
# JSON loading (CLI reference files)
# ---------------------------------------------------------------------------


def _as_list(payload: Mapping[str, Any], key: str) -> Sequence[Mapping[str, Any]]:
    value = payload.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"reference data: '{key}' must be a list")
    return value


def _aliases(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(a) for a in value)


def reference_from_json(payload: Mapping[str, Any]) -> ReferenceData:
    """Build ``ReferenceData`` from a decoded reference JSON document.

    Expected keys (all optional): ``teams``, ``epics``, ``cycles``,
    ``role_types``, ``role_type_mappings``. Field names follow the snake_case
    attribute names of the corresponding models; cycle dates are ISO strings.
    """

    from datetime import date

    if not isinstance(payload, Mapping):
        raise ValueError("reference data must be a JSON object")

    teams = [Team(id=str(t["id"]), name=str(t["name"])) for t in _as_list(payload, "teams")]
    epics = [
        EpicRef(id=str(e["id"]), name=str(e["name"]), project_id=e.get("project_id"))
        for e in _as_list(payload, "epics")
    ]
    cycles = [
        Cycle(
            id=str(c["id"]),
            name=str(c["name"]),
            type=str(c.get("type", "")),
            start_date=date.fromisoformat(str(c["start_date"])),
            end_date=date.fromisoformat(str(c["end_date"])),
            financial_year_id=c.get("financial_year_id"),
            parent_cycle_id=c.get("parent_cycle_id"),
        )
        for c in _as_list(payload, "cycles")
    ]
    role_types = [
        RoleType(
            id=str(r["id"]),
            name=str(r["name"]),
            category=str(r.get("category", "other")),
            is_active=bool(r.get("is_active", True)),
            aliases=_aliases(r.get("aliases")),
        )
        for r in _as_list(payload, "role_types")
    ]
    mappings = [RoleTypeMapping.model_validate(m) for m in _as_list(payload, "role_type_mappings")]
    return ReferenceData.build(
        teams=teams,
        epics=epics,
        cycles=cycles,
        role_types=role_types,
        role_type_mappings=mappings,
    )


__all__ = [
    "normalize_key",
    "NameIndex",
    "team_index",
    "epic_index",
    "ReferenceData",
    "reference_from_json",
]
