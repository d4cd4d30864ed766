"""
Detail views for a single institution or course.

An institution detail carries its top courses (same ranking as search) and
its latest reviews; a course detail carries its owning institution's summary
and its latest reviews. All counters are live.

Outcomes are values, not exceptions:

    DetailResult(status="ok", data={...})
    DetailResult(status="not_found", error="Course not found")
    DetailResult(status="error", error="Failed to fetch course")
"""

import logging
from dataclasses import dataclass
from typing import Callable

from directory.config import DETAIL_COURSE_LIMIT, DETAIL_REVIEW_LIMIT
from directory.models import (
    COURSE,
    INSTITUTION,
    INSTITUTION_DETAIL_SUMMARY_FIELDS,
    REVIEW,
    Entity,
    summary,
)
from directory.repository import NEWEST_FIRST, RANKING, EntityRepository, RepositoryError

log = logging.getLogger(__name__)

OK        = "ok"
NOT_FOUND = "not_found"
ERROR     = "error"


@dataclass
class DetailResult:
    status: str
    data: Entity | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status == OK


class DetailAggregator:
    def __init__(
        self,
        repository: EntityRepository,
        course_limit: int = DETAIL_COURSE_LIMIT,
        review_limit: int = DETAIL_REVIEW_LIMIT,
    ):
        self.repository   = repository
        self.course_limit = course_limit
        self.review_limit = review_limit

    def get_institution(self, entity_id: str) -> DetailResult:
        return self._load(INSTITUTION, entity_id, self._institution)

    def get_course(self, entity_id: str) -> DetailResult:
        return self._load(COURSE, entity_id, self._course)

    # ------------------------------------------------------------------

    def _load(self, kind: str, entity_id: str, build: Callable[[Entity], Entity]) -> DetailResult:
        try:
            entity = self.repository.get(kind, entity_id)
            if entity is None:
                log.info("%s %r not found", kind, entity_id)
                return DetailResult(NOT_FOUND, error=f"{kind.title()} not found")
            return DetailResult(OK, data=build(entity))
        except RepositoryError:
            log.exception("Error fetching %s %r", kind, entity_id)
            return DetailResult(ERROR, error=f"Failed to fetch {kind}")

    def _latest_reviews(self, kind: str, entity_id: str) -> list[Entity]:
        reviews = self.repository.find_children(
            kind, entity_id, REVIEW, NEWEST_FIRST, self.review_limit
        )
        return reviews[:self.review_limit]

    def _institution(self, institution: Entity) -> Entity:
        repo = self.repository
        iid  = institution["id"]

        courses = repo.find_children(INSTITUTION, iid, COURSE, RANKING, self.course_limit)
        courses = courses[:self.course_limit]
        for course in courses:
            course["review_count"] = repo.child_count(COURSE, course["id"], REVIEW)

        institution["course_count"] = repo.child_count(INSTITUTION, iid, COURSE)
        institution["review_count"] = repo.child_count(INSTITUTION, iid, REVIEW)
        institution["courses"] = courses
        institution["reviews"] = self._latest_reviews(INSTITUTION, iid)
        return institution

    def _course(self, course: Entity) -> Entity:
        repo = self.repository
        owner_id = course.get("institution_id")
        owner = repo.get(INSTITUTION, owner_id) if owner_id else None
        if owner is not None:
            owner = summary(owner, INSTITUTION_DETAIL_SUMMARY_FIELDS)
            owner["review_count"] = repo.child_count(INSTITUTION, owner_id, REVIEW)

        course["review_count"] = repo.child_count(COURSE, course["id"], REVIEW)
        course["institution"] = owner
        course["reviews"] = self._latest_reviews(COURSE, course["id"])
        return course
