import pytest

from directory.repository import InMemoryRepository, RepositoryError
from directory.sqlite_repository import SQLiteRepository
from etl.pipeline import clean, write_database


def _review(rid, rating, created_at, user_id="u-1", institution_id=None, course_id=None):
    return {
        "id": rid,
        "rating": rating,
        "comment": f"Review {rid}",
        "created_at": created_at,
        "user_id": user_id,
        "institution_id": institution_id,
        "course_id": course_id,
    }


@pytest.fixture
def institutions():
    # review_count values are deliberately stale; live counts come from reviews.
    return [
        {
            "id": "i-1", "name": "Northfield University", "type": "UNIVERSITY",
            "description": "Research university with strong data programs.",
            "city": "Boston", "state": "Massachusetts", "country": "USA",
            "rating": 4.5, "review_count": 99,
        },
        {
            "id": "i-2", "name": "Lakeside Community College", "type": "COMMUNITY_COLLEGE",
            "description": "Affordable two-year programs.",
            "city": "Portland", "state": "Oregon", "country": "USA",
            "rating": 4.0, "review_count": 0,
        },
        {
            "id": "i-3", "name": "Harbor Institute of Technology", "type": "INSTITUTE",
            "description": "Applied engineering and nursing.",
            "city": "Seattle", "state": "Washington", "country": "USA",
            "rating": 4.0, "review_count": 50,
        },
        {
            "id": "i-4", "name": "Maple College", "type": "COLLEGE",
            "description": "Small liberal arts college.",
            "city": "Toronto", "state": "Ontario", "country": "Canada",
            "rating": 3.0, "review_count": 0,
        },
    ]


@pytest.fixture
def courses():
    return [
        {
            "id": "c-1", "institution_id": "i-1", "title": "Data Science",
            "description": "Statistics, Python and machine learning.",
            "level": "GRADUATE", "format": "ONLINE", "duration": "2 years",
            "tuition_fee": 12000.0, "currency": "USD", "rating": 4.8, "review_count": 0,
        },
        {
            "id": "c-2", "institution_id": "i-1", "title": "Intro to Programming",
            "description": "First steps in Python.",
            "level": "UNDERGRADUATE", "format": "IN_PERSON", "duration": "1 semester",
            "tuition_fee": 8000.0, "currency": "USD", "rating": 4.0, "review_count": 40,
        },
        {
            "id": "c-3", "institution_id": "i-2", "title": "Nursing Certificate",
            "description": "Clinical practice fundamentals.",
            "level": "CERTIFICATE", "format": "HYBRID", "duration": "9 months",
            "tuition_fee": None, "currency": "USD", "rating": 4.0, "review_count": 0,
        },
        {
            "id": "c-4", "institution_id": "i-3", "title": "Machine Learning",
            "description": "Neural networks and data pipelines.",
            "level": "GRADUATE", "format": "ONLINE", "duration": "1 year",
            "tuition_fee": 15000.0, "currency": "USD", "rating": 3.0, "review_count": 0,
        },
    ]


@pytest.fixture
def users():
    return [{"id": "u-1", "name": "Ada"}, {"id": "u-2", "name": "Ben"}]


@pytest.fixture
def reviews():
    rows = [
        _review(f"ri-1-{n}", 5, f"2025-01-0{n}T10:00:00Z", institution_id="i-1")
        for n in range(1, 8)
    ]
    rows += [
        _review("ri-2-1", 4, "2025-02-01T10:00:00Z", institution_id="i-2"),
        _review("ri-2-2", 4, "2025-02-02T10:00:00Z", user_id="u-2", institution_id="i-2"),
        _review("ri-3-1", 4, "2025-02-03T10:00:00Z", institution_id="i-3"),
        _review("rc-1-1", 5, "2025-03-01T10:00:00Z", course_id="c-1"),
        _review("rc-2-1", 4, "2025-03-02T10:00:00Z", course_id="c-2"),
        _review("rc-3-1", 4, "2025-03-03T10:00:00Z", course_id="c-3"),
        _review("rc-3-2", 3, "2025-03-04T10:00:00Z", user_id="u-2", course_id="c-3"),
    ]
    return rows


@pytest.fixture
def repository(institutions, courses, reviews, users):
    return InMemoryRepository(institutions, courses, reviews, users)


@pytest.fixture
def sqlite_repository(tmp_path, institutions, courses, reviews, users):
    db_path = tmp_path / "directory.db"
    write_database(clean(institutions, courses, users, reviews), db_path)
    return SQLiteRepository(db_path)


class FailingRepository:
    """Every read fails the way an unreachable backend would."""

    def _fail(self, *args, **kwargs):
        raise RepositoryError("backend unavailable")

    count = find = get = child_count = find_children = _fail


@pytest.fixture
def failing_repository():
    return FailingRepository()
