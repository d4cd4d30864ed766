"""
Read-only entity repository interface and an in-memory implementation.

Public API:
    SortKey, RANKING, NEWEST_FIRST
    RepositoryError
    EntityRepository            (protocol every backend implements)
    InMemoryRepository(institutions, courses, reviews, users)

Sorting contract shared by every backend:
    - the field "review_count" always means the live number of child reviews,
      never the value cached on the row;
    - "id" ascending is appended as the final tie-break so pages are stable
      and disjoint across calls with identical input.
"""

import copy
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from directory.models import COURSE, INSTITUTION, REVIEW, Entity, check_child_kind, check_kind
from directory.predicate import Predicate, matches


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


RANKING      = (SortKey("rating", descending=True), SortKey("review_count", descending=True))
NEWEST_FIRST = (SortKey("created_at", descending=True),)

LIVE_REVIEW_COUNT = "review_count"


class RepositoryError(Exception):
    """The backing store could not answer a read."""


class EntityRepository(Protocol):
    def count(self, kind: str, predicate: Predicate) -> int: ...

    def find(
        self,
        kind: str,
        predicate: Predicate,
        sort: Sequence[SortKey],
        offset: int,
        limit: int,
    ) -> list[Entity]: ...

    def get(self, kind: str, entity_id: str) -> Entity | None: ...

    def child_count(self, kind: str, entity_id: str, child_kind: str) -> int: ...

    def find_children(
        self,
        kind: str,
        entity_id: str,
        child_kind: str,
        sort: Sequence[SortKey],
        limit: int,
    ) -> list[Entity]: ...


def _sort_value(value: Any) -> tuple[bool, Any]:
    # NULLs sort lowest, matching SQLite.
    return (value is not None, value if value is not None else 0)


def sort_rows(rows: list[Entity], sort: Sequence[SortKey], value_of=None) -> list[Entity]:
    """Stable multi-key sort; value_of(row, field) overrides plain lookup."""
    lookup = value_of or (lambda row, field: row.get(field))
    ordered = sorted(rows, key=lambda r: _sort_value(r.get("id")))
    for key in reversed(sort):
        ordered.sort(key=lambda r: _sort_value(lookup(r, key.field)), reverse=key.descending)
    return ordered


class InMemoryRepository:
    """
    Repository over lists of dicts.

    Reviews carry either institution_id or course_id plus a user_id; users are
    {id, name}. Rows handed out are deep copies.
    """

    def __init__(
        self,
        institutions: Iterable[Entity] = (),
        courses: Iterable[Entity] = (),
        reviews: Iterable[Entity] = (),
        users: Iterable[Entity] = (),
    ):
        self._rows = {
            INSTITUTION: [dict(r) for r in institutions],
            COURSE:      [dict(r) for r in courses],
        }
        self._reviews = [dict(r) for r in reviews]
        self._users   = {u["id"]: dict(u) for u in users}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _children(self, kind: str, entity_id: str, child_kind: str) -> list[Entity]:
        check_child_kind(kind, child_kind)
        if child_kind == COURSE:
            return [c for c in self._rows[COURSE] if c.get("institution_id") == entity_id]
        owner = f"{kind}_id"
        return [r for r in self._reviews if r.get(owner) == entity_id]

    def _value(self, kind: str):
        def value_of(row: Entity, field: str) -> Any:
            if field == LIVE_REVIEW_COUNT and kind != REVIEW:
                return len(self._children(kind, row["id"], REVIEW))
            return row.get(field)
        return value_of

    def _matching(self, kind: str, predicate: Predicate) -> list[Entity]:
        return [r for r in self._rows[check_kind(kind)] if matches(predicate, r)]

    def _with_user(self, review: Entity) -> Entity:
        out = copy.deepcopy(review)
        user = self._users.get(review.get("user_id"))
        out["user"] = {"id": review.get("user_id"), "name": user.get("name") if user else None}
        return out

    # ------------------------------------------------------------------
    # EntityRepository
    # ------------------------------------------------------------------

    def count(self, kind: str, predicate: Predicate) -> int:
        return len(self._matching(kind, predicate))

    def find(self, kind, predicate, sort, offset, limit):
        rows = sort_rows(self._matching(kind, predicate), sort, self._value(kind))
        return [copy.deepcopy(r) for r in rows[offset:offset + limit]]

    def get(self, kind: str, entity_id: str) -> Entity | None:
        for row in self._rows[check_kind(kind)]:
            if row.get("id") == entity_id:
                return copy.deepcopy(row)
        return None

    def child_count(self, kind: str, entity_id: str, child_kind: str) -> int:
        return len(self._children(kind, entity_id, child_kind))

    def find_children(self, kind, entity_id, child_kind, sort, limit):
        rows = self._children(kind, entity_id, child_kind)
        if child_kind == REVIEW:
            return [self._with_user(r) for r in sort_rows(rows, sort)[:limit]]
        rows = sort_rows(rows, sort, self._value(child_kind))
        return [copy.deepcopy(r) for r in rows[:limit]]
