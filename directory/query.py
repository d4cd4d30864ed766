"""
Faceted query engine over institutions and courses.

Turns loosely-typed request parameters (strings from a query string, or
None) into a SearchParams value, builds a predicate tree from it, and runs
count + page reads against an EntityRepository.

Ordering is fixed: rating desc, live review count desc, id asc.

Public API:
    SearchParams.from_raw(kind, raw)
    build_predicate(params)          → Predicate
    QueryEngine(repository).search(kind, raw) → SearchResult
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from directory.config import DEFAULT_LIMIT, DEFAULT_PAGE
from directory.models import (
    COURSE,
    INSTITUTION,
    INSTITUTION_SUMMARY_FIELDS,
    NAME_FIELD,
    REVIEW,
    Entity,
    check_kind,
    summary,
)
from directory.predicate import EQ, GTE, ICONTAINS, LTE, Condition, Predicate, all_of, any_of
from directory.repository import RANKING, EntityRepository, RepositoryError

log = logging.getLogger(__name__)

PLURAL = {INSTITUTION: "institutions", COURSE: "courses"}

# Largest offset/limit a backend is asked for (SQLite INTEGER range).
# A page starting past it is necessarily out of range.
MAX_ROW_INDEX = 2**63 - 1

# Wire parameter -> (SearchParams attribute, kinds it applies to)
TEXT_PARAMS = {
    "search":        ("search",         (INSTITUTION, COURSE)),
    "level":         ("level",          (COURSE,)),
    "format":        ("format",         (COURSE,)),
    "institutionId": ("institution_id", (COURSE,)),
    "type":          ("type",           (INSTITUTION,)),
    "city":          ("city",           (INSTITUTION,)),
    "state":         ("state",          (INSTITUTION,)),
    "country":       ("country",        (INSTITUTION,)),
}
NUMBER_PARAMS = {
    "minRating":  ("min_rating",  (INSTITUTION, COURSE)),
    "maxTuition": ("max_tuition", (COURSE,)),
}

EXACT_FIELDS     = ("level", "format", "type", "institution_id")
SUBSTRING_FIELDS = ("city", "state", "country")


# ---------------------------------------------------------------------------
# Parameter normalisation
# ---------------------------------------------------------------------------

def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> float | None:
    text = _text(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _positive_int(value: Any, default: int) -> int:
    number = _number(value)
    if number is None or number < 1:
        return default
    return int(number)


@dataclass(frozen=True)
class SearchParams:
    kind: str
    search: str | None = None
    level: str | None = None
    format: str | None = None
    type: str | None = None
    institution_id: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    min_rating: float | None = None
    max_tuition: float | None = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_raw(cls, kind: str, raw: Mapping[str, Any] | None) -> "SearchParams":
        """
        Normalise raw request parameters.

        Blank or missing values mean "no constraint". Unparsable numbers are
        dropped; page and limit always fall back to positive defaults.
        Parameters that do not apply to kind are ignored.
        """
        check_kind(kind)
        raw = raw or {}
        values: dict[str, Any] = {}
        for name, (attr, kinds) in TEXT_PARAMS.items():
            if kind in kinds:
                values[attr] = _text(raw.get(name))
        for name, (attr, kinds) in NUMBER_PARAMS.items():
            if kind in kinds:
                values[attr] = _number(raw.get(name))

        limit = _positive_int(raw.get("limit"), DEFAULT_LIMIT)
        page = _positive_int(raw.get("page"), DEFAULT_PAGE)
        return cls(kind=kind, page=page, limit=limit, **values)


def build_predicate(params: SearchParams) -> Predicate:
    terms: list[Predicate] = []

    if params.search:
        terms.append(any_of(
            Condition(NAME_FIELD[params.kind], ICONTAINS, params.search),
            Condition("description", ICONTAINS, params.search),
        ))

    for name in EXACT_FIELDS:
        value = getattr(params, name)
        if value:
            terms.append(Condition(name, EQ, value))

    for name in SUBSTRING_FIELDS:
        value = getattr(params, name)
        if value:
            terms.append(Condition(name, ICONTAINS, value))

    # minRating <= 0 adds no constraint.
    if params.min_rating is not None and params.min_rating > 0:
        terms.append(Condition("rating", GTE, params.min_rating))

    if params.max_tuition is not None:
        terms.append(Condition("tuition_fee", LTE, params.max_tuition))

    return all_of(*terms)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SearchResult:
    success: bool
    data: list[Entity] = field(default_factory=list)
    pagination: Pagination | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class QueryEngine:
    def __init__(self, repository: EntityRepository):
        self.repository = repository

    def search(self, kind: str, raw: Mapping[str, Any] | None = None) -> SearchResult:
        params = SearchParams.from_raw(kind, raw)
        predicate = build_predicate(params)
        log.debug("search %s: %r", kind, predicate)

        try:
            # Independent reads; see sqlite_repository for the snapshot caveat.
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="search") as pool:
                total_future = pool.submit(self.repository.count, kind, predicate)
                rows_future  = None
                if params.offset <= MAX_ROW_INDEX:
                    rows_future = pool.submit(
                        self.repository.find, kind, predicate, RANKING,
                        params.offset, min(params.limit, MAX_ROW_INDEX),
                    )
                total = total_future.result()
                rows  = rows_future.result() if rows_future else []
            data = self._annotate(kind, rows)
        except RepositoryError:
            log.exception("Error fetching %s", PLURAL[kind])
            return SearchResult(success=False, error=f"Failed to fetch {PLURAL[kind]}")

        pagination = Pagination.of(params.page, params.limit, total)
        log.info(
            "%s  page=%d/%d  limit=%d  total=%d  hits=%d",
            PLURAL[kind], params.page, pagination.pages, params.limit, total, len(data),
        )
        return SearchResult(success=True, data=data, pagination=pagination)

    def _annotate(self, kind: str, rows: list[Entity]) -> list[Entity]:
        """Replace cached counters with live ones and attach owner summaries."""
        owners: dict[str, Entity | None] = {}
        for row in rows:
            row["review_count"] = self.repository.child_count(kind, row["id"], REVIEW)
            if kind == INSTITUTION:
                row["course_count"] = self.repository.child_count(kind, row["id"], COURSE)
                continue
            owner_id = row.get("institution_id")
            if owner_id not in owners:
                owner = self.repository.get(INSTITUTION, owner_id) if owner_id else None
                owners[owner_id] = summary(owner, INSTITUTION_SUMMARY_FIELDS) if owner else None
            row["institution"] = dict(owners[owner_id]) if owners[owner_id] else None
        return rows
