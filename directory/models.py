"""
Entity kinds, enumerations and small helpers shared across the directory.

Entities travel through the code as plain dicts with snake_case keys, e.g.

    {"id": "c-1", "title": "Data Science", "level": "GRADUATE",
     "rating": 4.5, "review_count": 12, "institution_id": "i-1", ...}

The HTTP layer converts keys to camelCase on the way out (see camelize()).
"""

from typing import Any

Entity = dict[str, Any]

INSTITUTION = "institution"
COURSE      = "course"
REVIEW      = "review"

KINDS       = (INSTITUTION, COURSE)
CHILD_KINDS = {
    INSTITUTION: (COURSE, REVIEW),
    COURSE:      (REVIEW,),
}

INSTITUTION_TYPES = ("UNIVERSITY", "COLLEGE", "COMMUNITY_COLLEGE", "INSTITUTE")
COURSE_LEVELS     = ("UNDERGRADUATE", "GRADUATE", "DOCTORAL", "CERTIFICATE")
COURSE_FORMATS    = ("ONLINE", "IN_PERSON", "HYBRID")

# Field holding the display name of each kind.
NAME_FIELD = {INSTITUTION: "name", COURSE: "title"}

# Institution fields copied onto course views.
INSTITUTION_SUMMARY_FIELDS = ("id", "name", "city", "state", "country")
INSTITUTION_DETAIL_SUMMARY_FIELDS = (
    "id", "name", "type", "city", "state", "country", "rating", "review_count",
)


class UnknownKindError(ValueError):
    pass


def check_kind(kind: str) -> str:
    if kind not in KINDS:
        raise UnknownKindError(f"Unknown entity kind: {kind!r}")
    return kind


def check_child_kind(kind: str, child_kind: str) -> None:
    check_kind(kind)
    if child_kind not in CHILD_KINDS[kind]:
        raise UnknownKindError(f"{kind} has no {child_kind!r} children")


def display_name(kind: str, entity: Entity) -> str:
    return str(entity.get(NAME_FIELD[check_kind(kind)]) or "")


def summary(entity: Entity, fields: tuple[str, ...]) -> Entity:
    return {f: entity.get(f) for f in fields}


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def camelize(value: Any) -> Any:
    """Recursively rename snake_case dict keys to camelCase."""
    if isinstance(value, dict):
        return {_camel(str(k)): camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value
