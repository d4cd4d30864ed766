"""
A small closed predicate algebra for filtering entities.

A predicate is one of:

    Condition(field, op, value)   op in {eq, icontains, gte, lte}
    And(terms)                    every term matches (empty And matches all)
    Or(terms)                     at least one term matches (empty Or matches none)

Repositories never see raw request parameters, only these trees. Two
backends are provided here:

    matches(predicate, row)       evaluate against a dict in Python
    to_sql(predicate, columns)    compile to a parameterised SQL fragment
"""

from dataclasses import dataclass
from typing import Any, Union

EQ        = "eq"
ICONTAINS = "icontains"
GTE       = "gte"
LTE       = "lte"

OPERATORS = (EQ, ICONTAINS, GTE, LTE)


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op!r}")
        if self.value is None:
            raise ValueError(f"Condition on {self.field!r} needs a value")


@dataclass(frozen=True)
class And:
    terms: tuple["Predicate", ...] = ()


@dataclass(frozen=True)
class Or:
    terms: tuple["Predicate", ...] = ()


Predicate = Union[Condition, And, Or]

MATCH_ALL = And()


def all_of(*terms: Predicate) -> And:
    return And(tuple(terms))


def any_of(*terms: Predicate) -> Or:
    return Or(tuple(terms))


# ---------------------------------------------------------------------------
# In-memory evaluation
# ---------------------------------------------------------------------------

def _check(cond: Condition, actual: Any) -> bool:
    if cond.op == EQ:
        return actual == cond.value
    # A missing value never satisfies a range or substring test.
    if actual is None:
        return False
    if cond.op == ICONTAINS:
        return str(cond.value).lower() in str(actual).lower()
    if cond.op == GTE:
        return actual >= cond.value
    return actual <= cond.value


def matches(predicate: Predicate, row: dict[str, Any]) -> bool:
    if isinstance(predicate, Condition):
        return _check(predicate, row.get(predicate.field))
    if isinstance(predicate, And):
        return all(matches(t, row) for t in predicate.terms)
    if isinstance(predicate, Or):
        return any(matches(t, row) for t in predicate.terms)
    raise TypeError(f"Not a predicate: {predicate!r}")


# ---------------------------------------------------------------------------
# SQL compilation
# ---------------------------------------------------------------------------

def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def to_sql(
    predicate: Predicate,
    columns: dict[str, str],
    lower: str = "LOWER",
) -> tuple[str, list[Any]]:
    """
    Compile a predicate into a WHERE fragment plus its positional parameters.

    columns maps predicate field names to SQL column expressions; a field
    missing from the map raises KeyError so no caller-supplied name is ever
    interpolated into the query text. lower names the SQL function applied
    to the column for icontains; the pattern side uses str.lower().
    """
    if isinstance(predicate, Condition):
        col = columns[predicate.field]
        if predicate.op == EQ:
            return f"{col} = ?", [predicate.value]
        if predicate.op == ICONTAINS:
            pattern = "%" + _escape_like(str(predicate.value).lower()) + "%"
            return f"{lower}({col}) LIKE ? ESCAPE '\\'", [pattern]
        if predicate.op == GTE:
            return f"{col} >= ?", [predicate.value]
        return f"{col} <= ?", [predicate.value]

    if isinstance(predicate, (And, Or)):
        if not predicate.terms:
            return ("1 = 1" if isinstance(predicate, And) else "1 = 0"), []
        joiner = " AND " if isinstance(predicate, And) else " OR "
        parts: list[str] = []
        params: list[Any] = []
        for term in predicate.terms:
            sql, term_params = to_sql(term, columns, lower)
            parts.append(f"({sql})")
            params.extend(term_params)
        return joiner.join(parts), params

    raise TypeError(f"Not a predicate: {predicate!r}")
