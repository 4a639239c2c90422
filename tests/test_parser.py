"""
Tests for the SELECT statement parser.

Test philosophy:
- Test the happy path (tables, aliases, predicates, joins, sort keys)
- Test predicate classification, since it drives every recommendation
- Test error cases (unsupported statements, nesting, unresolved names)
- Equivalent spellings (comma join vs JOIN ... ON, (+) vs LEFT JOIN)
  must produce the same structure
"""

from __future__ import annotations

import pytest

from queryartifacts.exceptions import ParseError, ParseErrorKind
from queryartifacts.parser import (
    ColumnRef,
    ExclusionReason,
    Join,
    JoinType,
    OperandKind,
    Operator,
    ParsedQuery,
    ParserConfig,
    PredicateClass,
    StatementParser,
    SubqueryLocation,
    parse_sql,
)
from queryartifacts.parser.parser import _Cond, _FromItem, _Leaf, _RawSelect, _ScopeBuilder


def _predicate(query: ParsedQuery, column: str):
    matches = [p for p in query.predicates if p.column.column == column]
    assert matches, f"no predicate on {column}"
    return matches[0]


def _parse_error(sql: str, config: ParserConfig | None = None) -> ParseError:
    with pytest.raises(ParseError) as exc_info:
        parse_sql(sql, config)
    return exc_info.value


# =============================================================================
# Tables and aliases
# =============================================================================


class TestTables:
    """FROM clause binding."""

    def test_alias_defaults_to_table_name(self) -> None:
        query = parse_sql("SELECT * FROM emp")
        table = query.tables[0]
        assert (table.name, table.alias, table.owner) == ("EMP", "EMP", None)
        assert query.star_aliases == ("EMP",)

    def test_owner_and_alias(self) -> None:
        query = parse_sql("SELECT e.name FROM hr.employees e")
        table = query.tables[0]
        assert table.owner == "HR"
        assert table.alias == "E"
        assert table.qualified_name == "HR.EMPLOYEES"

    def test_as_alias_and_quoted_name(self) -> None:
        query = parse_sql('SELECT x.id FROM "MixedCase" AS x')
        assert query.tables[0].name == "MixedCase"
        assert query.tables[0].alias == "X"

    def test_qualify_binds_only_unqualified_tables(self) -> None:
        query = parse_sql("SELECT * FROM emp e, sales.orders o").qualify("HR")
        assert [t.qualified_name for t in query.tables] == ["HR.EMP", "SALES.ORDERS"]

    def test_duplicate_alias_rejected(self) -> None:
        error = _parse_error("SELECT * FROM emp e, dept e")
        assert error.kind == ParseErrorKind.MALFORMED_SYNTAX

    def test_catalog_tables_include_subqueries_once(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e WHERE e.dept_id IN "
            "(SELECT e2.dept_id FROM emp e2 WHERE e2.salary > 1000)"
        )
        assert [t.name for t in query.catalog_tables()] == ["EMP"]

    def test_inline_view_is_derived(self) -> None:
        query = parse_sql(
            "SELECT v.x FROM (SELECT t.x FROM t WHERE t.y = 1) v WHERE v.x = 2"
        )
        assert query.tables[0].derived
        assert query.subqueries[0].location == SubqueryLocation.FROM
        assert query.subqueries[0].alias == "V"
        assert [t.name for t in query.catalog_tables()] == ["T"]


# =============================================================================
# Predicate classification
# =============================================================================


class TestPredicateClassification:
    """EQUALITY / RANGE / EXCLUDED, with reasons."""

    @pytest.mark.parametrize(
        "condition, expected",
        [
            ("e.dept_id = :1", PredicateClass.EQUALITY),
            ("e.dept_id IN (10, 20, 30)", PredicateClass.EQUALITY),
            ("e.last_name LIKE 'SMITH'", PredicateClass.EQUALITY),
            ("e.hire_date > :2", PredicateClass.RANGE),
            ("e.salary <= 5000", PredicateClass.RANGE),
            ("e.hire_date BETWEEN DATE '2020-01-01' AND DATE '2020-12-31'", PredicateClass.RANGE),
            ("e.last_name LIKE 'SMI%'", PredicateClass.RANGE),
            ("e.last_name LIKE :pattern", PredicateClass.RANGE),
        ],
    )
    def test_index_usable(self, condition: str, expected: PredicateClass) -> None:
        query = parse_sql(f"SELECT * FROM emp e WHERE {condition}")
        assert len(query.predicates) == 1
        predicate = query.predicates[0]
        assert predicate.predicate_class == expected
        assert predicate.is_index_candidate

    @pytest.mark.parametrize(
        "condition, reason",
        [
            ("e.last_name LIKE '%son'", ExclusionReason.NON_PREFIX_LIKE),
            ("e.dept_id <> 10", ExclusionReason.NOT_EQUAL),
            ("e.dept_id != 10", ExclusionReason.NOT_EQUAL),
            ("e.dept_id NOT IN (1, 2)", ExclusionReason.NEGATED),
            ("e.last_name NOT LIKE 'A%'", ExclusionReason.NEGATED),
            ("e.manager_id IS NULL", ExclusionReason.NULL_CHECK),
            ("e.manager_id IS NOT NULL", ExclusionReason.NEGATED),
            ("UPPER(e.last_name) = 'SMITH'", ExclusionReason.EXPRESSION),
            ("e.salary * 12 > 100000", ExclusionReason.EXPRESSION),
            ("TRUNC(e.hire_date) = :d", ExclusionReason.EXPRESSION),
        ],
    )
    def test_excluded(self, condition: str, reason: ExclusionReason) -> None:
        query = parse_sql(f"SELECT * FROM emp e WHERE {condition}")
        predicate = query.predicates[0]
        assert predicate.predicate_class == PredicateClass.EXCLUDED
        assert predicate.exclusion_reason == reason
        assert not predicate.is_index_candidate

    def test_literal_on_left_is_flipped(self) -> None:
        query = parse_sql("SELECT * FROM emp e WHERE 100 < e.salary")
        predicate = _predicate(query, "SALARY")
        assert predicate.operator == Operator.GT
        assert predicate.operand.kind == OperandKind.LITERAL
        assert predicate.operand.value == 100

    def test_in_list_operand(self) -> None:
        query = parse_sql("SELECT * FROM emp e WHERE e.dept_id IN (10, 20, 30)")
        operand = query.predicates[0].operand
        assert operand.kind == OperandKind.LIST
        assert operand.value_count == 3
        assert operand.is_literal

    def test_bind_operand_is_not_literal(self) -> None:
        query = parse_sql("SELECT * FROM emp e WHERE e.hire_date > :start")
        operand = query.predicates[0].operand
        assert operand.kind == OperandKind.BIND
        assert operand.has_bind
        assert not operand.is_literal

    def test_or_marks_every_branch(self) -> None:
        query = parse_sql("SELECT * FROM t WHERE a = 1 OR b = 2")
        assert {p.column.column for p in query.predicates} == {"A", "B"}
        assert all(p.or_group for p in query.predicates)
        assert not any(p.is_index_candidate for p in query.predicates)

    def test_and_beside_or_stays_candidate(self) -> None:
        query = parse_sql("SELECT * FROM t WHERE c = 3 AND (a = 1 OR b = 2)")
        assert _predicate(query, "C").is_index_candidate
        assert _predicate(query, "A").or_group

    def test_not_negates(self) -> None:
        query = parse_sql("SELECT * FROM t WHERE NOT (a = 1)")
        predicate = _predicate(query, "A")
        assert predicate.exclusion_reason == ExclusionReason.NEGATED

    def test_bind_between_columns(self) -> None:
        query = parse_sql(
            "SELECT * FROM rates r WHERE :d BETWEEN r.start_dt AND r.end_dt"
        )
        assert _predicate(query, "START_DT").operator == Operator.LE
        assert _predicate(query, "END_DT").operator == Operator.GE
        assert _predicate(query, "START_DT").predicate_class == PredicateClass.RANGE


# =============================================================================
# Joins
# =============================================================================


class TestJoins:
    """Join extraction across syntaxes."""

    def test_comma_join_equals_ansi_join(self) -> None:
        comma = parse_sql(
            "SELECT * FROM emp e, dept d "
            "WHERE e.dept_id = d.dept_id AND d.location_id = 1700"
        )
        ansi = parse_sql(
            "SELECT * FROM emp e JOIN dept d ON e.dept_id = d.dept_id "
            "WHERE d.location_id = 1700"
        )
        assert comma.joins == ansi.joins
        assert comma.joins == (
            Join(ColumnRef("E", "DEPT_ID"), ColumnRef("D", "DEPT_ID"), JoinType.INNER),
        )

        def shape(query: ParsedQuery) -> set[tuple[str, str, PredicateClass]]:
            return {
                (p.column.table, p.column.column, p.predicate_class)
                for p in query.predicates
            }

        assert shape(comma) == shape(ansi)

    def test_comma_join_written_backwards(self) -> None:
        comma = parse_sql("SELECT * FROM emp e, dept d WHERE d.dept_id = e.dept_id")
        ansi = parse_sql("SELECT * FROM emp e JOIN dept d ON d.dept_id = e.dept_id")
        assert comma.joins == ansi.joins == (
            Join(ColumnRef("E", "DEPT_ID"), ColumnRef("D", "DEPT_ID"), JoinType.INNER),
        )

    def test_join_predicates_carry_partner(self) -> None:
        query = parse_sql("SELECT * FROM emp e, dept d WHERE e.dept_id = d.dept_id")
        partners = {p.column.table: p.join_partner for p in query.predicates}
        assert partners == {"E": ColumnRef("D", "DEPT_ID"), "D": ColumnRef("E", "DEPT_ID")}

    def test_oracle_outer_join_marker(self) -> None:
        oracle = parse_sql("SELECT * FROM emp e, dept d WHERE e.dept_id = d.dept_id(+)")
        ansi = parse_sql("SELECT * FROM emp e LEFT JOIN dept d ON e.dept_id = d.dept_id")
        assert oracle.joins == ansi.joins
        assert oracle.joins[0].join_type == JoinType.LEFT
        assert oracle.outer_join_targets() == {"D"}

    def test_marker_on_left_side(self) -> None:
        query = parse_sql("SELECT * FROM emp e, dept d WHERE e.dept_id(+) = d.dept_id")
        assert query.joins[0] == Join(
            ColumnRef("D", "DEPT_ID"), ColumnRef("E", "DEPT_ID"), JoinType.LEFT
        )

    def test_right_join_target(self) -> None:
        query = parse_sql("SELECT * FROM emp e RIGHT JOIN dept d ON d.dept_id = e.dept_id")
        assert query.joins[0].join_type == JoinType.RIGHT
        assert query.outer_join_targets() == {"E"}

    def test_using_clause(self) -> None:
        query = parse_sql("SELECT * FROM emp e JOIN dept d USING (dept_id)")
        assert query.joins == (
            Join(ColumnRef("E", "DEPT_ID"), ColumnRef("D", "DEPT_ID"), JoinType.INNER),
        )

    def test_join_under_or_is_not_a_join(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e, dept d WHERE e.dept_id = d.dept_id OR e.x = 1"
        )
        assert query.joins == ()


# =============================================================================
# Projection, grouping and ordering
# =============================================================================


class TestSortKeys:
    """GROUP BY / ORDER BY extraction."""

    def test_order_by_columns(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e ORDER BY e.hire_date DESC, e.last_name"
        )
        keys = [(k.column.column, k.descending) for k in query.order_by_columns]
        assert keys == [("HIRE_DATE", True), ("LAST_NAME", False)]

    def test_order_by_position_and_alias(self) -> None:
        query = parse_sql(
            "SELECT e.last_name, e.first_name AS fn FROM emp e ORDER BY 2 DESC, fn"
        )
        keys = [(k.column.column, k.descending) for k in query.order_by_columns]
        assert keys == [("FIRST_NAME", True), ("FIRST_NAME", False)]

    def test_order_by_position_out_of_range(self) -> None:
        error = _parse_error("SELECT e.last_name FROM emp e ORDER BY 3")
        assert error.kind == ParseErrorKind.MALFORMED_SYNTAX

    def test_group_by_and_select_columns(self) -> None:
        query = parse_sql(
            "SELECT e.dept_id, COUNT(*) FROM emp e GROUP BY e.dept_id HAVING COUNT(*) > 1"
        )
        assert query.group_by_columns == (ColumnRef("E", "DEPT_ID"),)
        assert query.select_columns == (ColumnRef("E", "DEPT_ID"),)
        assert not query.select_star

    def test_referenced_columns_drive_coverage(self) -> None:
        query = parse_sql(
            "SELECT e.last_name FROM emp e WHERE e.dept_id = 1 ORDER BY e.hire_date"
        )
        assert query.columns_for("E") == {"LAST_NAME", "DEPT_ID", "HIRE_DATE"}

    def test_pseudo_columns_ignored(self) -> None:
        query = parse_sql("SELECT * FROM emp e WHERE ROWNUM <= 10 AND e.dept_id = 1")
        assert [p.column.column for p in query.predicates] == ["DEPT_ID"]

    def test_fetch_first_and_for_update(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e WHERE e.dept_id = 1 ORDER BY e.hire_date "
            "FETCH FIRST 10 ROWS ONLY"
        )
        assert len(query.order_by_columns) == 1
        parse_sql("SELECT * FROM emp e WHERE e.id = :1 FOR UPDATE NOWAIT")


# =============================================================================
# Subqueries and name resolution
# =============================================================================


class TestSubqueries:
    """Nesting, correlation and unresolved names."""

    def test_in_subquery(self) -> None:
        query = parse_sql(
            "SELECT e.name FROM emp e WHERE e.dept_id IN "
            "(SELECT d.dept_id FROM dept d WHERE d.location_id = 1700)"
        )
        assert _predicate(query, "DEPT_ID").predicate_class == PredicateClass.EQUALITY
        sub = query.subqueries[0]
        assert sub.location == SubqueryLocation.IN
        assert _predicate(sub.query, "LOCATION_ID").is_index_candidate

    def test_correlated_exists(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e WHERE EXISTS "
            "(SELECT 1 FROM dept d WHERE d.dept_id = e.dept_id)"
        )
        sub = query.subqueries[0]
        assert sub.location == SubqueryLocation.EXISTS
        inner = _predicate(sub.query, "DEPT_ID")
        assert inner.column == ColumnRef("D", "DEPT_ID")
        assert inner.predicate_class == PredicateClass.EQUALITY
        assert inner.operand.kind == OperandKind.COLUMN
        # the correlated column counts as referenced by the outer scope
        assert "DEPT_ID" in query.columns_for("E")

    def test_subquery_under_or_flagged(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e WHERE e.x = 1 OR e.dept_id IN (SELECT d.id FROM dept d)"
        )
        assert query.subqueries[0].or_group

    def test_nesting_too_deep(self) -> None:
        sql = (
            "SELECT * FROM a WHERE a.x IN (SELECT b.y FROM b WHERE b.z IN "
            "(SELECT c.w FROM c))"
        )
        error = _parse_error(sql)
        assert error.kind == ParseErrorKind.NESTING_TOO_DEEP
        assert error.position is not None

        query = StatementParser(ParserConfig(max_subquery_depth=2)).parse(sql)
        assert query.subqueries[0].query.subqueries[0].query.tables[0].name == "C"

    def test_unresolved_qualifier(self) -> None:
        error = _parse_error("SELECT * FROM emp e WHERE x.dept_id = 1")
        assert error.kind == ParseErrorKind.UNRESOLVED_COLUMN_REFERENCE
        assert "X" in error.message

    def test_unresolved_star_qualifier(self) -> None:
        error = _parse_error("SELECT z.* FROM emp e")
        assert error.kind == ParseErrorKind.UNRESOLVED_COLUMN_REFERENCE

    def test_unqualified_column_with_several_tables_warns(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e, dept d WHERE e.dept_id = d.dept_id AND location_id = 1"
        )
        assert _predicate(query, "LOCATION_ID").column.table == "E"
        assert any("LOCATION_ID" in w for w in query.warnings)

    def test_table_name_usable_as_qualifier(self) -> None:
        query = parse_sql("SELECT emp.name FROM emp WHERE emp.dept_id = 1")
        assert query.predicates[0].column == ColumnRef("EMP", "DEPT_ID")


# =============================================================================
# Rejected statements
# =============================================================================


class TestRejectedStatements:
    """Anything that is not exactly one SELECT."""

    def test_update_is_unsupported(self) -> None:
        error = _parse_error("UPDATE emp SET salary = salary * 1.1")
        assert error.kind == ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE
        assert error.statement_type == "UPDATE"

    @pytest.mark.parametrize(
        "sql",
        [
            "DELETE FROM emp WHERE id = 1",
            "INSERT INTO emp (id) VALUES (1)",
            "BEGIN NULL; END;",
            "WITH x AS (SELECT 1 FROM dual) SELECT * FROM x",
            "SELECT a FROM t UNION SELECT a FROM u",
            "SELECT a FROM t MINUS SELECT a FROM u",
        ],
    )
    def test_unsupported(self, sql: str) -> None:
        assert _parse_error(sql).kind == ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE

    def test_multiple_statements(self) -> None:
        error = _parse_error("SELECT 1 FROM dual; SELECT 2 FROM dual")
        assert error.kind == ParseErrorKind.MALFORMED_SYNTAX

    @pytest.mark.parametrize("sql", ["", "   ", "-- only a comment\n"])
    def test_empty(self, sql: str) -> None:
        assert _parse_error(sql).kind == ParseErrorKind.MALFORMED_SYNTAX

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM",
            "SELECT * FROM emp WHERE",
            "SELECT * FROM emp e WHERE e.a = (1",
            "SELECT * FROM emp e JOIN dept d",
            "SELECT * FROM emp e extra junk here",
        ],
    )
    def test_malformed(self, sql: str) -> None:
        error = _parse_error(sql)
        assert error.kind == ParseErrorKind.MALFORMED_SYNTAX

    def test_trailing_semicolon_accepted(self) -> None:
        query = parse_sql("SELECT * FROM emp WHERE dept_id = 1;")
        assert query.tables[0].name == "EMP"

    def test_length_limit(self) -> None:
        error = _parse_error("SELECT * FROM emp", ParserConfig(max_sql_length=10))
        assert error.kind == ParseErrorKind.MALFORMED_SYNTAX

    def test_from_item_without_source(self) -> None:
        """Clause trees with holes are rejected, also under python -O."""
        raw = _RawSelect(start=0, end=8, from_items=[_FromItem(alias="X", position=5)])
        with pytest.raises(ParseError) as exc_info:
            _ScopeBuilder(raw, "SELECT 1").build()
        assert exc_info.value.kind == ParseErrorKind.MALFORMED_SYNTAX
        assert exc_info.value.position == 5

    def test_comparison_without_left_side(self) -> None:
        raw = _RawSelect(
            start=0,
            end=17,
            from_items=[_FromItem(alias="EMP", position=14, name="EMP")],
            where=_Cond("LEAF", leaf=_Leaf(left=None, operator=Operator.EQ)),
        )
        with pytest.raises(ParseError) as exc_info:
            _ScopeBuilder(raw, "SELECT * FROM emp").build()
        assert exc_info.value.kind == ParseErrorKind.MALFORMED_SYNTAX


# =============================================================================
# Serialization
# =============================================================================


class TestSerialization:
    """ParsedQuery.to_dict for the response envelope."""

    def test_to_dict_shape(self) -> None:
        query = parse_sql(
            "SELECT * FROM emp e WHERE e.dept_id = :1 AND e.hire_date > :2 "
            "ORDER BY e.last_name"
        ).qualify("HR")
        data = query.to_dict()
        assert data["tables"][0]["qualifiedName"] == "HR.EMP"
        assert [p["class"] for p in data["predicates"]] == ["equality", "range"]
        assert data["orderByColumns"] == [
            {"table": "E", "column": "LAST_NAME", "descending": False}
        ]
        assert data["selectStar"] is True
