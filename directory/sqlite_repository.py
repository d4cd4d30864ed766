"""
SQLite-backed entity repository.

Each call opens its own short-lived connection, so the repository can be
shared between threads. Live review counts are computed with correlated
subqueries; the cached review_count column is never read back.

Known limitation: count() and find() run on separate connections, so a
writer committing between the two reads can make total and page disagree.
Writes only happen through etl/pipeline.py, which is not run while serving.
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Sequence

from directory.models import COURSE, INSTITUTION, REVIEW, Entity, check_child_kind, check_kind
from directory.predicate import Predicate, to_sql
from directory.repository import RepositoryError, SortKey

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS institutions (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    description    TEXT,
    type           TEXT,
    address        TEXT,
    city           TEXT,
    state          TEXT,
    country        TEXT,
    website        TEXT,
    phone          TEXT,
    email          TEXT,
    founded_year   INTEGER,
    accreditation  TEXT,
    image_url      TEXT,
    rating         REAL NOT NULL DEFAULT 0,
    review_count   INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS courses (
    id             TEXT PRIMARY KEY,
    institution_id TEXT NOT NULL REFERENCES institutions(id),
    title          TEXT NOT NULL,
    description    TEXT,
    level          TEXT,
    duration       TEXT,
    format         TEXT,
    tuition_fee    REAL,
    currency       TEXT,
    requirements   TEXT,
    image_url      TEXT,
    rating         REAL NOT NULL DEFAULT 0,
    review_count   INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS users (
    id             TEXT PRIMARY KEY,
    name           TEXT
);

CREATE TABLE IF NOT EXISTS reviews (
    id             TEXT PRIMARY KEY,
    rating         INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    comment        TEXT,
    created_at     TEXT NOT NULL,
    user_id        TEXT REFERENCES users(id),
    institution_id TEXT REFERENCES institutions(id),
    course_id      TEXT REFERENCES courses(id),
    CHECK ((institution_id IS NULL) <> (course_id IS NULL))
);

CREATE INDEX IF NOT EXISTS idx_courses_institution ON courses(institution_id);
CREATE INDEX IF NOT EXISTS idx_reviews_institution ON reviews(institution_id);
CREATE INDEX IF NOT EXISTS idx_reviews_course      ON reviews(course_id);
"""

TABLES = {INSTITUTION: "institutions", COURSE: "courses", REVIEW: "reviews"}

TABLE_FIELDS = {
    INSTITUTION: (
        "id", "name", "description", "type", "address", "city", "state", "country",
        "website", "phone", "email", "founded_year", "accreditation", "image_url",
        "rating",
    ),
    COURSE: (
        "id", "institution_id", "title", "description", "level", "duration", "format",
        "tuition_fee", "currency", "requirements", "image_url", "rating",
    ),
    REVIEW: ("id", "rating", "comment", "created_at", "user_id", "institution_id", "course_id"),
}


def _columns(kind: str) -> dict[str, str]:
    """Predicate/sort field -> SQL expression for one table."""
    table = TABLES[kind]
    cols = {f: f"{table}.{f}" for f in TABLE_FIELDS[kind]}
    if kind != REVIEW:
        cols["review_count"] = (
            f"(SELECT COUNT(*) FROM reviews WHERE reviews.{kind}_id = {table}.id)"
        )
    return cols


COLUMNS = {kind: _columns(kind) for kind in TABLES}

# SQLite's LOWER() only folds ASCII; this one matches str.lower().
LOWER_FUNCTION = "py_lower"


def _lower(value: Any) -> str | None:
    return None if value is None else str(value).lower()


def _order_by(kind: str, sort: Sequence[SortKey]) -> str:
    cols = COLUMNS[kind]
    parts = []
    for key in sort:
        if key.field not in cols:
            raise ValueError(f"Cannot sort {kind} by {key.field!r}")
        parts.append(f"{cols[key.field]} {'DESC' if key.descending else 'ASC'}")
    parts.append(f"{TABLES[kind]}.id ASC")
    return ", ".join(parts)


def init_db(db_path: str | Path) -> None:
    """Create tables and indexes if they do not exist yet."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with closing(sqlite3.connect(db_path)) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


class SQLiteRepository:
    def __init__(self, db_path: str | Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        if not self.db_path.exists():
            raise RepositoryError(f"Database not found: {self.db_path}")
        try:
            with closing(sqlite3.connect(self.db_path, timeout=self.timeout)) as conn:
                conn.row_factory = sqlite3.Row
                conn.create_function(LOWER_FUNCTION, 1, _lower, deterministic=True)
                return conn.execute(sql, list(params)).fetchall()
        except (sqlite3.Error, OverflowError) as exc:
            log.debug("query failed: %s  params=%r", sql, params)
            raise RepositoryError(str(exc)) from exc

    def _scalar(self, sql: str, params: Sequence[Any] = ()) -> int:
        rows = self._fetch(sql, params)
        return int(rows[0][0]) if rows else 0

    # ------------------------------------------------------------------
    # EntityRepository
    # ------------------------------------------------------------------

    def count(self, kind: str, predicate: Predicate) -> int:
        table = TABLES[check_kind(kind)]
        where, params = to_sql(predicate, COLUMNS[kind], lower=LOWER_FUNCTION)
        return self._scalar(f"SELECT COUNT(*) FROM {table} WHERE {where}", params)

    def find(self, kind, predicate, sort, offset, limit):
        table = TABLES[check_kind(kind)]
        where, params = to_sql(predicate, COLUMNS[kind], lower=LOWER_FUNCTION)
        sql = (
            f"SELECT {table}.* FROM {table} WHERE {where} "
            f"ORDER BY {_order_by(kind, sort)} LIMIT ? OFFSET ?"
        )
        return [dict(r) for r in self._fetch(sql, [*params, limit, offset])]

    def get(self, kind: str, entity_id: str) -> Entity | None:
        table = TABLES[check_kind(kind)]
        rows = self._fetch(f"SELECT * FROM {table} WHERE id = ?", [entity_id])
        return dict(rows[0]) if rows else None

    def child_count(self, kind: str, entity_id: str, child_kind: str) -> int:
        check_child_kind(kind, child_kind)
        return self._scalar(
            f"SELECT COUNT(*) FROM {TABLES[child_kind]} WHERE {kind}_id = ?", [entity_id]
        )

    def find_children(self, kind, entity_id, child_kind, sort, limit):
        check_child_kind(kind, child_kind)
        if child_kind == COURSE:
            sql = (
                f"SELECT courses.* FROM courses WHERE courses.institution_id = ? "
                f"ORDER BY {_order_by(COURSE, sort)} LIMIT ?"
            )
            return [dict(r) for r in self._fetch(sql, [entity_id, limit])]

        sql = (
            f"SELECT reviews.*, users.name AS user_name FROM reviews "
            f"LEFT JOIN users ON users.id = reviews.user_id "
            f"WHERE reviews.{kind}_id = ? ORDER BY {_order_by(REVIEW, sort)} LIMIT ?"
        )
        out = []
        for row in self._fetch(sql, [entity_id, limit]):
            review = dict(row)
            review["user"] = {"id": review.get("user_id"), "name": review.pop("user_name")}
            out.append(review)
        return out
