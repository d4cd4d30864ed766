"""
ETL pipeline: loads directory JSON exports and writes data/directory.db.

Inputs (each a JSON array; keys may be camelCase or snake_case):
    data/institutions.json
    data/courses.json
    data/users.json
    data/reviews.json

Load rules:
  - rows without an id are dropped
  - courses must point at a loaded institution
  - reviews need a rating 1-5 and exactly one of institutionId / courseId,
    pointing at a loaded row
  - the cached review_count columns are recomputed from the loaded reviews
    on every run; the query layer never reads them anyway

Rows that break a rule are skipped and logged, not fatal.
"""

import json
import logging
import re
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any

from directory.config import DATA_DIR, DB_PATH
from directory.models import COURSE, INSTITUTION, REVIEW
from directory.sqlite_repository import TABLE_FIELDS, init_db

log = logging.getLogger(__name__)

Row = dict[str, Any]

INPUT_FILES = ("institutions", "courses", "users", "reviews")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load(path: Path) -> list[Row]:
    """Load a JSON array from disk; return [] if the file doesn't exist."""
    if not path.exists():
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a JSON array")
    return [snake_keys(r) for r in data if isinstance(r, dict)]


def snake_keys(row: Row) -> Row:
    """'tuitionFee' → 'tuition_fee', top-level keys only."""
    return {re.sub(r"(?<!^)(?=[A-Z])", "_", k).lower(): v for k, v in row.items()}


def normalize_id(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _review_rating(value: Any) -> int | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer() or not 1 <= number <= 5:
        return None
    return int(number)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def clean(
    institutions: list[Row],
    courses: list[Row],
    users: list[Row],
    reviews: list[Row],
) -> dict[str, list[Row]]:
    """Apply the load rules and return rows keyed by table name."""
    inst_ids: dict[str, Row] = {}
    for row in institutions:
        iid = normalize_id(row.get("id"))
        if iid and row.get("name"):
            inst_ids[iid] = {**row, "id": iid}
        else:
            log.warning("Skipping institution without id/name: %r", row.get("id"))

    course_ids: dict[str, Row] = {}
    for row in courses:
        cid = normalize_id(row.get("id"))
        owner = normalize_id(row.get("institution_id"))
        if not cid or not row.get("title"):
            log.warning("Skipping course without id/title: %r", row.get("id"))
        elif owner not in inst_ids:
            log.warning("Skipping course %s: unknown institution %r", cid, owner)
        else:
            course_ids[cid] = {**row, "id": cid, "institution_id": owner}

    user_rows = {}
    for row in users:
        uid = normalize_id(row.get("id"))
        if uid:
            user_rows[uid] = {"id": uid, "name": row.get("name")}

    review_rows: dict[str, Row] = {}
    for row in reviews:
        rid = normalize_id(row.get("id"))
        inst = normalize_id(row.get("institution_id")) or None
        course = normalize_id(row.get("course_id")) or None
        rating = _review_rating(row.get("rating"))
        if not rid or rating is None or not row.get("created_at"):
            log.warning("Skipping malformed review %r", row.get("id"))
            continue
        if (inst is None) == (course is None):
            log.warning("Skipping review %s: needs exactly one of institution/course", rid)
            continue
        if (inst and inst not in inst_ids) or (course and course not in course_ids):
            log.warning("Skipping review %s: unknown target", rid)
            continue
        review_rows[rid] = {
            **row, "id": rid, "rating": rating, "institution_id": inst, "course_id": course,
        }

    return {
        "institutions": list(inst_ids.values()),
        "courses":      list(course_ids.values()),
        "users":        list(user_rows.values()),
        "reviews":      list(review_rows.values()),
    }


# ---------------------------------------------------------------------------
# Database write
# ---------------------------------------------------------------------------

_TABLE_COLUMNS = {
    "institutions": TABLE_FIELDS[INSTITUTION],
    "courses":      TABLE_FIELDS[COURSE],
    "users":        ("id", "name"),
    "reviews":      TABLE_FIELDS[REVIEW],
}

_REFRESH_COUNTS = """
UPDATE institutions SET review_count =
    (SELECT COUNT(*) FROM reviews WHERE reviews.institution_id = institutions.id);
UPDATE courses SET review_count =
    (SELECT COUNT(*) FROM reviews WHERE reviews.course_id = courses.id);
"""


def write_database(tables: dict[str, list[Row]], db_path: Path) -> dict[str, int]:
    init_db(db_path)
    counts: dict[str, int] = {}
    with closing(sqlite3.connect(db_path)) as conn:
        for table in ("institutions", "courses", "users", "reviews"):
            cols = _TABLE_COLUMNS[table]
            sql = (
                f"INSERT OR REPLACE INTO {table} ({', '.join(cols)}) "
                f"VALUES ({', '.join('?' for _ in cols)})"
            )
            rows = tables.get(table, [])
            conn.executemany(sql, [[r.get(c) for c in cols] for r in rows])
            counts[table] = len(rows)
        conn.executescript(_REFRESH_COUNTS)
        conn.commit()
    return counts


# ---------------------------------------------------------------------------
# Entry point (importable, not a CLI)
# ---------------------------------------------------------------------------

def run(data_dir: Path = DATA_DIR, db_path: Path = DB_PATH) -> dict[str, int]:
    """Load the JSON exports, clean them, write the database, return row counts."""
    raw = {name: load(data_dir / f"{name}.json") for name in INPUT_FILES}
    tables = clean(raw["institutions"], raw["courses"], raw["users"], raw["reviews"])
    counts = write_database(tables, db_path)
    log.info("Loaded %s into %s", counts, db_path)
    return counts
