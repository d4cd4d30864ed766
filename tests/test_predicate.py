import pytest

from directory.predicate import (
    EQ,
    GTE,
    ICONTAINS,
    LTE,
    MATCH_ALL,
    And,
    Condition,
    Or,
    all_of,
    any_of,
    matches,
    to_sql,
)

ROW = {"name": "Northfield University", "rating": 4.5, "tuition_fee": None, "type": "UNIVERSITY"}


class TestConditionValidation:
    """Conditions reject what the algebra cannot express."""

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            Condition("rating", "between", 3)

    def test_none_value(self):
        with pytest.raises(ValueError):
            Condition("rating", GTE, None)


class TestMatches:
    """In-memory evaluation."""

    def test_eq_is_exact(self):
        assert matches(Condition("type", EQ, "UNIVERSITY"), ROW)
        assert not matches(Condition("type", EQ, "university"), ROW)

    def test_icontains_ignores_case(self):
        assert matches(Condition("name", ICONTAINS, "northFIELD"), ROW)
        assert not matches(Condition("name", ICONTAINS, "college"), ROW)

    def test_bounds_are_inclusive(self):
        assert matches(Condition("rating", GTE, 4.5), ROW)
        assert matches(Condition("rating", LTE, 4.5), ROW)
        assert not matches(Condition("rating", GTE, 4.6), ROW)

    def test_missing_value_fails_range_and_substring(self):
        assert not matches(Condition("tuition_fee", LTE, 100000), ROW)
        assert not matches(Condition("city", ICONTAINS, "bos"), ROW)

    def test_empty_and_matches_everything(self):
        assert matches(MATCH_ALL, ROW)
        assert matches(And(), {})

    def test_empty_or_matches_nothing(self):
        assert not matches(Or(), ROW)

    def test_nested_tree(self):
        predicate = all_of(
            any_of(Condition("name", ICONTAINS, "xyz"), Condition("name", ICONTAINS, "north")),
            Condition("rating", GTE, 4),
        )
        assert matches(predicate, ROW)
        assert not matches(all_of(predicate, Condition("type", EQ, "COLLEGE")), ROW)

    def test_rejects_non_predicate(self):
        with pytest.raises(TypeError):
            matches({"rating": 4}, ROW)


class TestToSql:
    """SQL compilation produces placeholders, never inlined values."""

    COLUMNS = {"name": "t.name", "rating": "t.rating", "type": "t.type"}

    def test_condition_operators(self):
        assert to_sql(Condition("type", EQ, "COLLEGE"), self.COLUMNS) == ("t.type = ?", ["COLLEGE"])
        assert to_sql(Condition("rating", GTE, 4), self.COLUMNS) == ("t.rating >= ?", [4])
        assert to_sql(Condition("rating", LTE, 4), self.COLUMNS) == ("t.rating <= ?", [4])

    def test_icontains_escapes_wildcards(self):
        sql, params = to_sql(Condition("name", ICONTAINS, "100%_Real"), self.COLUMNS)
        assert sql == "LOWER(t.name) LIKE ? ESCAPE '\\'"
        assert params == ["%100\\%\\_real%"]

    def test_and_or_grouping(self):
        predicate = all_of(
            any_of(Condition("name", ICONTAINS, "a"), Condition("type", EQ, "B")),
            Condition("rating", GTE, 1),
        )
        sql, params = to_sql(predicate, self.COLUMNS)
        assert sql == "((LOWER(t.name) LIKE ? ESCAPE '\\') OR (t.type = ?)) AND (t.rating >= ?)"
        assert params == ["%a%", "B", 1]

    def test_empty_nodes(self):
        assert to_sql(And(), self.COLUMNS) == ("1 = 1", [])
        assert to_sql(Or(), self.COLUMNS) == ("1 = 0", [])

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            to_sql(Condition("password", EQ, "x"), self.COLUMNS)
