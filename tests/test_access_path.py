"""
Tests for join access order and optimizer hints.
"""

from __future__ import annotations

from queryartifacts.analyzer import AccessPath, plan_access_path
from queryartifacts.analyzer.access_path import (
    INDEXABLE_FILTER_POINTS,
    JOIN_CONNECTION_POINTS,
    OUTER_JOIN_PENALTY,
)

JOIN_SQL = (
    "SELECT * FROM emp e JOIN dept d ON e.dept_id = d.dept_id "
    "WHERE d.location_id = 1700"
)


class TestAccessOrder:
    """Driving table choice and breadth-first order."""

    def test_filtered_table_drives(self, parse) -> None:
        path = plan_access_path(parse(JOIN_SQL))
        assert path.order == ("D", "E")
        assert dict(path.scores) == {
            "D": INDEXABLE_FILTER_POINTS + JOIN_CONNECTION_POINTS,
            "E": JOIN_CONNECTION_POINTS,
        }

    def test_outer_join_target_never_drives(self, parse) -> None:
        path = plan_access_path(
            parse(
                "SELECT * FROM emp e LEFT JOIN dept d ON e.dept_id = d.dept_id "
                "WHERE d.location_id = 1700"
            )
        )
        assert path.order == ("E", "D")
        assert dict(path.scores)["D"] == (
            OUTER_JOIN_PENALTY + INDEXABLE_FILTER_POINTS + JOIN_CONNECTION_POINTS
        )

    def test_statistics_add_selectivity_points(self, parse, make_stats) -> None:
        query = parse(
            "SELECT * FROM emp e, dept d WHERE e.dept_id = d.dept_id "
            "AND e.status = 'A' AND d.location_id = 1700"
        )
        without = plan_access_path(query)
        assert without.order == ("E", "D")

        stats = [make_stats("LOCATION_ID", 500, table="DEPT")]
        with_stats = plan_access_path(query, stats)
        assert with_stats.order == ("D", "E")
        assert dict(with_stats.scores)["D"] == 75

    def test_breadth_first_over_chain(self, parse) -> None:
        path = plan_access_path(
            parse(
                "SELECT * FROM emp e, dept d, loc l "
                "WHERE e.dept_id = d.dept_id AND d.loc_id = l.loc_id AND l.city = 'X'"
            )
        )
        assert path.order == ("L", "D", "E")

    def test_disconnected_tables_all_listed(self, parse) -> None:
        path = plan_access_path(parse("SELECT * FROM emp e, dept d WHERE e.x = 1"))
        assert path.order == ("E", "D")

    def test_ties_keep_from_order(self, parse) -> None:
        path = plan_access_path(parse("SELECT * FROM emp e, dept d"))
        assert path.order == ("E", "D")


class TestHints:
    """LEADING / USE_NL hint text."""

    def test_hint_text(self, parse) -> None:
        path = plan_access_path(parse(JOIN_SQL))
        assert path.hints == "/*+ LEADING(D E) USE_NL(E) */"

    def test_single_table_has_no_hint(self, parse) -> None:
        path = plan_access_path(parse("SELECT * FROM emp WHERE dept_id = 1"))
        assert path.order == ("EMP",)
        assert path.hints is None

    def test_to_dict(self) -> None:
        path = AccessPath(order=("D", "E"), scores=(("D", 25), ("E", 5)))
        assert path.to_dict() == {
            "order": ["D", "E"],
            "scores": {"D": 25, "E": 5},
            "hints": "/*+ LEADING(D E) USE_NL(E) */",
        }
