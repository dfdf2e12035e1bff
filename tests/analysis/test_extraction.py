"""Tests for WHERE-clause condition extraction."""

from __future__ import annotations

import pytest

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.analysis.extraction import (
    ConditionExtractor,
    flatten_and,
    normalize_markers,
    number_bare_markers,
    parse_statement,
    render_statement,
    restore_markers,
    where_of,
)
from queryplane.analysis.models import CardinalityLevel, QueryParameter, RepositoryQuery
from queryplane.schema.models import IndexMetadata


def native(text: str, table: str = "users") -> RepositoryQuery:
    return RepositoryQuery(
        repository_class="com.acme.UserRepository",
        method_name="q",
        text=text,
        statement=parse_statement(text),
        primary_table=table,
        is_native=True,
    )


@pytest.fixture
def extractor(users_metadata: IndexMetadata) -> ConditionExtractor:
    return ConditionExtractor(CardinalityClassifier(users_metadata))


class TestMarkers:
    """Positional marker normalisation."""

    def test_round_trip(self) -> None:
        """``?1`` survives normalise/restore; quoted text is untouched."""
        text = "SELECT * FROM t WHERE a = ?1 AND b = '?2' AND c = ?10"
        normalized = normalize_markers(text)
        assert ":qp_pos_1" in normalized
        assert "'?2'" in normalized
        assert ":qp_pos_10" in normalized
        assert restore_markers(normalized) == text

    def test_render_restores_markers(self) -> None:
        """Rendering a parsed statement gives back JPQL markers."""
        statement = parse_statement("SELECT * FROM t WHERE a = ?1")
        assert "?1" in render_statement(statement)

    def test_bare_markers_numbered_in_order(self) -> None:
        """Unnamed markers get their JDBC ordinal; literals and ``?1`` are kept."""
        text, count = number_bare_markers("SELECT * FROM t WHERE a = ? AND b = '?' AND c IN (?, ?)")
        assert text == "SELECT * FROM t WHERE a = ?1 AND b = '?' AND c IN (?2, ?3)"
        assert count == 3
        assert number_bare_markers("SELECT * FROM t WHERE a = ?1") == ("SELECT * FROM t WHERE a = ?1", 0)

    @pytest.mark.parametrize("text", [None, "", "   ", "SELECT * FROM t WHERE (((a = 1"])
    def test_unparsable_is_none(self, text: str | None) -> None:
        """Empty or broken text yields no statement."""
        assert parse_statement(text) is None


class TestFlattenAnd:
    def test_parenthesised_groups_stay_whole(self) -> None:
        """Only top-level AND operands are split."""
        statement = parse_statement("SELECT * FROM t WHERE a = 1 AND (b = 2 OR c = 3) AND d = 4")
        operands = flatten_and(where_of(statement).this)
        assert len(operands) == 3

    def test_deep_chain(self) -> None:
        """Long chains flatten without recursion limits."""
        where = " AND ".join(f"c{i} = {i}" for i in range(1000))
        statement = parse_statement(f"SELECT * FROM t WHERE {where}")
        assert len(flatten_and(where_of(statement).this)) == 1000


class TestExtract:
    """Extraction of conditions in source order."""

    def test_positions_and_cardinality(self, extractor: ConditionExtractor) -> None:
        """Conditions carry zero-based positions and classified cardinality."""
        query = native("SELECT * FROM users WHERE is_active = ?1 AND user_id = ?2")
        conditions = [p.condition for p in extractor.extract(query)]
        assert [(c.column, c.position, c.cardinality) for c in conditions] == [
            ("is_active", 0, CardinalityLevel.LOW),
            ("user_id", 1, CardinalityLevel.HIGH),
        ]
        assert [c.parameter for c in conditions] == ["1", "2"]

    @pytest.mark.parametrize(
        ("predicate", "operator"),
        [
            ("name = :n", "="),
            ("name <> :n", "!="),
            ("name > :n", ">"),
            ("name <= :n", "<="),
            ("name LIKE :n", "LIKE"),
            ("name NOT LIKE :n", "NOT LIKE"),
            ("name IN (:n)", "IN"),
            ("name NOT IN (:n)", "NOT IN"),
            ("name BETWEEN :n AND :m", "BETWEEN"),
            ("name IS NULL", "IS NULL"),
            ("name IS NOT NULL", "IS NOT NULL"),
        ],
    )
    def test_operators(self, extractor: ConditionExtractor, predicate: str, operator: str) -> None:
        """Each supported predicate form maps to its operator."""
        query = native(f"SELECT * FROM users WHERE {predicate} AND user_id = 1")
        first = extractor.extract(query)[0].condition
        assert first.column == "name"
        assert first.operator == operator

    def test_named_and_bare_parameters(self, extractor: ConditionExtractor) -> None:
        """Named markers keep their name; bare ``?`` markers are numbered in order."""
        named = native("SELECT * FROM users WHERE name = :name AND email = :email")
        assert [p.condition.parameter for p in extractor.extract(named)] == ["name", "email"]

        bare = native("SELECT * FROM users WHERE name = ? AND email = ?")
        assert [p.condition.parameter for p in extractor.extract(bare)] == ["1", "2"]

    def test_literal_has_no_parameter(self, extractor: ConditionExtractor) -> None:
        """Literal comparisons have no bound parameter."""
        query = native("SELECT * FROM users WHERE status = 'A' AND name = :n")
        assert extractor.extract(query)[0].condition.parameter is None

    def test_or_groups_and_functions_are_skipped(self, extractor: ConditionExtractor) -> None:
        """Only simple column predicates count; conjunct indexes keep their place."""
        query = native(
            "SELECT * FROM users WHERE (a = 1 OR b = 2) AND LOWER(name) = :n AND email = :e"
        )
        predicates = extractor.extract(query)
        assert [(p.condition.column, p.condition.position, p.conjunct) for p in predicates] == [
            ("email", 0, 2)
        ]

    def test_alias_qualified_columns(self, extractor: ConditionExtractor) -> None:
        """Aliases resolve to their table."""
        query = native("SELECT * FROM users u JOIN orders o ON o.user_id = u.user_id WHERE o.total > 5 AND u.email = :e")
        conditions = [p.condition for p in extractor.extract(query)]
        assert [(c.table, c.column) for c in conditions] == [("orders", "total"), ("users", "email")]
        assert conditions[1].cardinality is CardinalityLevel.HIGH

    def test_jpql_entity_names_map_to_table(self, extractor: ConditionExtractor) -> None:
        """JPQL aliases and camelCase properties map to table and column names."""
        text = "SELECT c FROM Customer c WHERE c.isActive = true AND c.userId = :id"
        query = RepositoryQuery(
            repository_class="R",
            method_name="q",
            text=text,
            statement=parse_statement(text),
            primary_table="users",
            aliases={"Customer": "users", "customer": "users"},
        )
        conditions = [p.condition for p in extractor.extract(query)]
        assert [(c.table, c.column, c.cardinality) for c in conditions] == [
            ("users", "is_active", CardinalityLevel.LOW),
            ("users", "user_id", CardinalityLevel.HIGH),
        ]

    def test_no_where_clause(self, extractor: ConditionExtractor) -> None:
        """Queries without WHERE have no conditions."""
        assert extractor.extract(native("SELECT * FROM users")) == []

    def test_derived_query(self, extractor: ConditionExtractor) -> None:
        """Derived queries take their conditions from the method name."""
        query = RepositoryQuery(
            repository_class="R",
            method_name="findByIsActiveAndEmail",
            primary_table="users",
            parameters=(
                QueryParameter("isActive", "boolean", 0, "is_active"),
                QueryParameter("email", "String", 1, "email"),
            ),
            is_derived=True,
        )
        conditions = [p.condition for p in extractor.extract(query)]
        assert [(c.column, c.cardinality, c.parameter) for c in conditions] == [
            ("is_active", CardinalityLevel.LOW, "isActive"),
            ("email", CardinalityLevel.HIGH, "email"),
        ]
