"""Fuzzy job title → role type matching.

Each signal is an independent function returning a score in ``[0, 1]``:

- exact alias: the title equals the role type name or one of its aliases;
- token overlap: weighted share of shared words between title and label;
- category keywords: the title mentions words typical of the role's category;
- similar mappings: an existing mapping for this role type has a title that
  contains (or is contained by) the new one.

``MatchPolicy`` blends them: the confidence is the strongest signal, nudged
up slightly when category and overlap agree. Suggestions below the policy
floor are dropped.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from .logging_setup import get_logger
from .models import RoleType, RoleTypeMapping, RoleTypeSuggestion
from .reference import normalize_key

_LOG = get_logger("capacity_import.role_matching")

_TOKEN_RE = re.compile(r"[a-z0-9]+")

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "engineering": (
        "engineer",
        "developer",
        "programmer",
        "software",
        "backend",
        "frontend",
        "fullstack",
        "full stack",
    ),
    "quality-assurance": ("qa", "quality", "test", "tester", "automation", "sdet"),
    "product-management": ("product", "pm", "manager", "owner", "po"),
    "design": ("design", "designer", "ux", "ui", "visual", "graphic"),
    "data-science": ("data", "scientist", "analyst", "analytics", "ml", "ai", "machine learning"),
    "devops": ("devops", "ops", "infrastructure", "deployment", "cloud", "sre", "platform"),
    "security": ("security", "cyber", "infosec", "compliance", "audit"),
    "management": ("manager", "lead", "director", "vp", "cto", "ceo", "head"),
    "other": (),
}

SENIORITY_KEYWORDS: tuple[str, ...] = ("senior", "lead", "principal", "staff", "head", "chief")

# Categories where a seniority word in the title reinforces the match.
SENIORITY_CATEGORIES: frozenset[str] = frozenset(
    {
        "engineering",
        "quality-assurance",
        "product-management",
        "design",
        "data-science",
        "devops",
        "security",
    }
)


@dataclass(frozen=True, slots=True)
class MatchPolicy:
    exact_score: float = 1.0
    role_token_weight: float = 0.7
    title_token_weight: float = 0.3
    category_score: float = 0.45
    seniority_bonus: float = 0.15
    category_cap: float = 0.6
    similar_mapping_score: float = 0.75
    category_nudge: float = 0.05
    min_confidence: float = 0.3


DEFAULT_POLICY = MatchPolicy()


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.casefold())


def _labels(role_type: RoleType) -> list[str]:
    return [role_type.name, *role_type.aliases]


def _contains_keyword(tokens: Sequence[str], keyword: str) -> bool:
    if " " in keyword:
        return f" {keyword} " in f" {' '.join(tokens)} "
    return keyword in tokens


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def score_exact_alias(
    job_title: str, role_type: RoleType, policy: MatchPolicy = DEFAULT_POLICY
) -> tuple[float, str | None]:
    """Score and the matched label when the title equals the name or an alias."""

    key = normalize_key(job_title)
    for label in _labels(role_type):
        if key and normalize_key(label) == key:
            return policy.exact_score, label
    return 0.0, None


def score_token_overlap(
    job_title: str, role_type: RoleType, policy: MatchPolicy = DEFAULT_POLICY
) -> tuple[float, str | None]:
    """Best weighted overlap across the role name and its aliases.

    For a label with tokens ``L`` and a title with tokens ``T`` the score is
    ``w_role * |L ∩ T| / |L| + w_title * |T ∩ L| / |T|``.
    """

    title_tokens = set(tokenize(job_title))
    if not title_tokens:
        return 0.0, None
    best, best_label = 0.0, None
    for label in _labels(role_type):
        label_tokens = set(tokenize(label))
        if not label_tokens:
            continue
        shared = title_tokens & label_tokens
        if not shared:
            continue
        score = policy.role_token_weight * len(shared) / len(label_tokens)
        score += policy.title_token_weight * len(shared) / len(title_tokens)
        if score > best:
            best, best_label = score, label
    return min(best, 1.0), best_label


def score_category_keywords(
    job_title: str, category: str, policy: MatchPolicy = DEFAULT_POLICY
) -> float:
    tokens = tokenize(job_title)
    keywords = CATEGORY_KEYWORDS.get(category, ())
    if not any(_contains_keyword(tokens, kw) for kw in keywords):
        return 0.0
    score = policy.category_score
    if category in SENIORITY_CATEGORIES and any(kw in tokens for kw in SENIORITY_KEYWORDS):
        score += policy.seniority_bonus
    return min(score, policy.category_cap)


def similar_mappings(job_title: str, mappings: Iterable[RoleTypeMapping]) -> list[RoleTypeMapping]:
    """Mappings whose job title contains, or is contained by, ``job_title``."""

    key = normalize_key(job_title)
    if not key:
        return []
    out = []
    for m in mappings:
        other = normalize_key(m.job_title)
        if other and (other in key or key in other):
            out.append(m)
    return out


def score_similar_mappings(
    role_type: RoleType,
    similar: Sequence[RoleTypeMapping],
    policy: MatchPolicy = DEFAULT_POLICY,
) -> tuple[float, tuple[str, ...]]:
    titles = tuple(m.job_title for m in similar if m.role_type_id == role_type.id)
    return (policy.similar_mapping_score if titles else 0.0), titles


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def _score_role_type(
    job_title: str,
    role_type: RoleType,
    similar: Sequence[RoleTypeMapping],
    policy: MatchPolicy,
) -> RoleTypeSuggestion | None:
    reasons: list[str] = []

    exact, exact_label = score_exact_alias(job_title, role_type, policy)
    if exact:
        reasons.append(f"Exact match with '{exact_label}'")
    overlap, overlap_label = score_token_overlap(job_title, role_type, policy)
    if overlap and not exact:
        reasons.append(f"Matched via token overlap with '{overlap_label}'")
    category = score_category_keywords(job_title, role_type.category, policy)
    if category:
        reasons.append(f"Category keyword match ({role_type.category})")
    similar_score, similar_titles = score_similar_mappings(role_type, similar, policy)
    if similar_score:
        reasons.append("Similar job titles already mapped to this role type")

    confidence = max(exact, overlap, category, similar_score)
    if category and overlap:
        confidence += policy.category_nudge
    confidence = round(min(confidence, 1.0), 4)

    if confidence < policy.min_confidence:
        return None
    return RoleTypeSuggestion(
        role_type_id=role_type.id,
        role_type_name=role_type.name,
        confidence=confidence,
        reasoning="; ".join(reasons),
        similar_job_titles=similar_titles,
    )


def suggest_mappings(
    job_title: str,
    catalog: Iterable[RoleType],
    existing_mappings: Iterable[RoleTypeMapping] = (),
    policy: MatchPolicy = DEFAULT_POLICY,
    limit: int = 3,
) -> list[RoleTypeSuggestion]:
    """Ranked role type suggestions for ``job_title`` (best first).

    Inactive role types are never suggested. Ties on confidence are broken by
    role type name so the ranking is stable.
    """

    if not job_title.strip():
        return []
    similar = similar_mappings(job_title, existing_mappings)
    suggestions = [
        s
        for rt in catalog
        if rt.is_active and (s := _score_role_type(job_title, rt, similar, policy)) is not None
    ]
    suggestions.sort(key=lambda s: (-s.confidence, s.role_type_name.casefold()))
    return suggestions[:limit]


# ---------------------------------------------------------------------------
# Mapping maintenance
# ---------------------------------------------------------------------------


type SuggestFn = Callable[
    [str, Sequence[RoleType], Sequence[RoleTypeMapping]], list[RoleTypeSuggestion]
]


def _default_suggest(
    job_title: str, catalog: Sequence[RoleType], mappings: Sequence[RoleTypeMapping]
) -> list[RoleTypeSuggestion]:
    return suggest_mappings(job_title, catalog, mappings)


@dataclass(frozen=True, slots=True)
class AutoMapResult:
    mapped: int
    skipped: int
    mappings: list[RoleTypeMapping] = field(default_factory=list)


def _distinct_titles(job_titles: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for title in job_titles:
        key = normalize_key(title)
        if key and key not in seen:
            seen.add(key)
            out.append(" ".join(title.split()))
    return out


def auto_map_unmapped_roles(
    job_titles: Iterable[str],
    catalog: Sequence[RoleType],
    existing_mappings: Sequence[RoleTypeMapping],
    threshold: float = 0.7,
    suggest: SuggestFn = _default_suggest,
) -> AutoMapResult:
    """Create ``ai-suggested`` mappings for unmapped titles above ``threshold``.

    Titles are deduplicated case-insensitively and those that already have a
    mapping are ignored; every remaining title is counted as either mapped or
    skipped.
    """

    mapped_keys = {normalize_key(m.job_title) for m in existing_mappings}
    pending = [t for t in _distinct_titles(job_titles) if normalize_key(t) not in mapped_keys]

    created: list[RoleTypeMapping] = []
    skipped = 0
    for title in pending:
        suggestions = suggest(title, catalog, existing_mappings)
        top = suggestions[0] if suggestions else None
        if top is None or top.confidence < threshold:
            skipped += 1
            _LOG.debug("no confident role type for %r", title)
            continue
        created.append(
            RoleTypeMapping(
                id=str(uuid.uuid4()),
                job_title=title,
                role_type_id=top.role_type_id,
                confidence=top.confidence,
                mapping_source="ai-suggested",
                notes=top.reasoning or None,
            )
        )

    _LOG.info("auto-mapped %d of %d job titles", len(created), len(pending))
    return AutoMapResult(mapped=len(created), skipped=skipped, mappings=created)


def unmapped_job_titles(
    job_titles: Iterable[str], mappings: Iterable[RoleTypeMapping]
) -> list[tuple[str, int]]:
    """Titles with no mapping and how often each occurs, most frequent first."""

    mapped_keys = {normalize_key(m.job_title) for m in mappings}
    counts: dict[str, list] = {}
    for title in job_titles:
        key = normalize_key(title)
        if not key or key in mapped_keys:
            continue
        entry = counts.setdefault(key, [" ".join(title.split()), 0])
        entry[1] += 1
    # sorted() is stable, so ties keep first-seen order.
    return sorted(((t, n) for t, n in counts.values()), key=lambda p: -p[1])


def create_default_mapping(job_title: str, role_type_id: str = "other") -> RoleTypeMapping:
    return RoleTypeMapping(
        id=str(uuid.uuid4()),
        job_title=job_title,
        role_type_id=role_type_id,
        confidence=0.5,
        mapping_source="import-default",
        notes="Auto-created mapping for unmapped job title",
    )


@dataclass(frozen=True, slots=True)
class MappingCoverage:
    total: int
    mapped: int

    @property
    def ratio(self) -> float:
        return 1.0 if self.total == 0 else self.mapped / self.total


def mapping_coverage(
    job_titles: Iterable[str], mappings: Iterable[RoleTypeMapping]
) -> MappingCoverage:
    """Share of distinct job titles that already have a mapping."""

    mapped_keys = {normalize_key(m.job_title) for m in mappings}
    titles = _distinct_titles(job_titles)
    mapped = sum(1 for t in titles if normalize_key(t) in mapped_keys)
    return MappingCoverage(total=len(titles), mapped=mapped)


def find_role_type_by_name(name: str, catalog: Iterable[RoleType]) -> RoleType | None:
    key = normalize_key(name)
    for rt in catalog:
        if normalize_key(rt.name) == key:
            return rt
    return None


__all__ = [
    "CATEGORY_KEYWORDS",
    "SENIORITY_KEYWORDS",
    "MatchPolicy",
    "DEFAULT_POLICY",
    "tokenize",
    "score_exact_alias",
    "score_token_overlap",
    "score_category_keywords",
    "similar_mappings",
    "score_similar_mappings",
    "suggest_mappings",
    "AutoMapResult",
    "auto_map_unmapped_roles",
    "unmapped_job_titles",
    "create_default_mapping",
    "MappingCoverage",
    "mapping_coverage",
    "find_role_type_by_name",
]
