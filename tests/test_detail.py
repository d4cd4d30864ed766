import pytest

from directory.detail import ERROR, NOT_FOUND, OK, DetailAggregator
from directory.repository import InMemoryRepository


@pytest.fixture
def details(repository):
    return DetailAggregator(repository)


class TestInstitutionDetail:
    """Institution with top courses and latest reviews."""

    def test_missing_is_not_found(self, details):
        result = details.get_institution("missing-id")
        assert result.status == NOT_FOUND
        assert result.found is False
        assert result.data is None
        assert result.error == "Institution not found"

    def test_empty_children_is_found(self, details):
        result = details.get_institution("i-4")
        assert result.status == OK
        assert result.data["courses"] == []
        assert result.data["reviews"] == []
        assert result.data["course_count"] == 0
        assert result.data["review_count"] == 0

    def test_live_counts(self, details):
        data = details.get_institution("i-1").data
        assert data["course_count"] == 2
        assert data["review_count"] == 7

    def test_courses_ranked_with_live_counts(self, details):
        courses = details.get_institution("i-1").data["courses"]
        assert [c["id"] for c in courses] == ["c-1", "c-2"]
        # c-2 carries a stale cached counter of 40.
        assert [c["review_count"] for c in courses] == [1, 1]

    def test_latest_five_reviews_newest_first(self, details):
        reviews = details.get_institution("i-1").data["reviews"]
        assert [r["id"] for r in reviews] == ["ri-1-7", "ri-1-6", "ri-1-5", "ri-1-4", "ri-1-3"]
        assert reviews[0]["user"] == {"id": "u-1", "name": "Ada"}

    def test_course_cap_is_hard(self):
        institutions = [{"id": "big", "name": "Big U", "rating": 4.0}]
        courses = [
            {"id": f"c{n:02d}", "institution_id": "big", "title": f"C{n}", "rating": n / 10}
            for n in range(30)
        ]
        data = DetailAggregator(InMemoryRepository(institutions, courses)).get_institution("big").data
        assert len(data["courses"]) == 10
        assert data["course_count"] == 30
        assert data["courses"][0]["id"] == "c29"

    def test_error_result(self, failing_repository):
        result = DetailAggregator(failing_repository).get_institution("i-1")
        assert result.status == ERROR
        assert result.error == "Failed to fetch institution"


class TestCourseDetail:
    """Course with owning institution summary and latest reviews."""

    def test_missing_is_not_found(self, details):
        result = details.get_course("nope")
        assert result.status == NOT_FOUND
        assert result.error == "Course not found"

    def test_course_with_owner(self, details):
        data = details.get_course("c-3").data
        assert data["review_count"] == 2
        assert data["institution"] == {
            "id": "i-2", "name": "Lakeside Community College", "type": "COMMUNITY_COLLEGE",
            "city": "Portland", "state": "Oregon", "country": "USA",
            "rating": 4.0, "review_count": 2,
        }

    def test_course_reviews_include_user(self, details):
        reviews = details.get_course("c-3").data["reviews"]
        assert [r["id"] for r in reviews] == ["rc-3-2", "rc-3-1"]
        assert reviews[0]["user"] == {"id": "u-2", "name": "Ben"}

    def test_course_without_reviews(self, details):
        data = details.get_course("c-4").data
        assert data["review_count"] == 0
        assert data["reviews"] == []

    def test_error_result(self, failing_repository):
        result = DetailAggregator(failing_repository).get_course("c-1")
        assert result.status == ERROR
        assert result.error == "Failed to fetch course"
