"""
Tests for selectivity estimates, benefit scores and generated DDL.
"""

from __future__ import annotations

import pytest

from queryartifacts.analyzer.ddl import (
    create_index_ddl,
    drop_redundant_ddl,
    extend_index_ddl,
    index_name_for,
    qualified,
    quote_identifier,
)
from queryartifacts.analyzer.models import Confidence
from queryartifacts.analyzer.scoring import (
    BOUNDED_RANGE_SELECTIVITY,
    UNBOUNDED_RANGE_SELECTIVITY,
    UNKNOWN_LEAF_BLOCKS_SCORE,
    benefit_score,
    confidence_for,
    drop_score,
    estimate_selectivity,
    selectivity_points,
)
from queryartifacts.catalog import IndexColumn, SortOrder
from queryartifacts.config import Config


def _only_predicate(parse, condition: str):
    return parse(f"SELECT * FROM emp e WHERE {condition}").predicates[0]


# =============================================================================
# Selectivity
# =============================================================================


class TestSelectivity:
    """estimate_selectivity for candidate predicates."""

    def test_equality_uses_ndv(self, parse, make_stats) -> None:
        predicate = _only_predicate(parse, "e.dept_id = :1")
        assert estimate_selectivity(predicate, make_stats("DEPT_ID", 50)) == pytest.approx(0.02)

    def test_equality_without_statistics_is_unknown(self, parse, make_stats) -> None:
        predicate = _only_predicate(parse, "e.dept_id = :1")
        assert estimate_selectivity(predicate, None) is None
        assert estimate_selectivity(predicate, make_stats("DEPT_ID", None)) is None

    def test_in_list_multiplies(self, parse, make_stats) -> None:
        predicate = _only_predicate(parse, "e.dept_id IN (1, 2, 3)")
        assert estimate_selectivity(predicate, make_stats("DEPT_ID", 100)) == pytest.approx(0.03)

    def test_in_list_capped_at_one(self, parse, make_stats) -> None:
        predicate = _only_predicate(parse, "e.flag IN ('Y', 'N', 'U')")
        assert estimate_selectivity(predicate, make_stats("FLAG", 2)) == 1.0

    def test_null_fraction_lowers_selectivity(self, parse, make_stats) -> None:
        predicate = _only_predicate(parse, "e.manager_id = :1")
        stats = make_stats("MANAGER_ID", 100, null_fraction=0.5)
        assert estimate_selectivity(predicate, stats) == pytest.approx(0.005)

    @pytest.mark.parametrize(
        "condition, expected",
        [
            ("e.hire_date BETWEEN DATE '2020-01-01' AND DATE '2020-02-01'",
             BOUNDED_RANGE_SELECTIVITY),
            ("e.last_name LIKE 'SMI%'", BOUNDED_RANGE_SELECTIVITY),
            ("e.last_name LIKE 'SM%'", UNBOUNDED_RANGE_SELECTIVITY),
            ("e.salary > 1000", UNBOUNDED_RANGE_SELECTIVITY),
        ],
    )
    def test_literal_ranges(self, parse, condition: str, expected: float) -> None:
        predicate = _only_predicate(parse, condition)
        assert estimate_selectivity(predicate, None) == expected

    @pytest.mark.parametrize(
        "condition",
        ["e.hire_date > :start", "e.hire_date BETWEEN :a AND :b", "e.last_name LIKE :p"],
    )
    def test_bind_ranges_are_unknown(self, parse, condition: str) -> None:
        assert estimate_selectivity(_only_predicate(parse, condition), None) is None

    def test_excluded_predicate_has_no_estimate(self, parse, make_stats) -> None:
        predicate = _only_predicate(parse, "e.dept_id <> 1")
        assert estimate_selectivity(predicate, make_stats("DEPT_ID", 10)) is None


# =============================================================================
# Scores
# =============================================================================


class TestBenefitScore:
    """Score shape and clamping."""

    @pytest.mark.parametrize(
        "selectivity, expected",
        [(None, 0.0), (1.0, 0.0), (1e-3, 30.0), (1e-6, 60.0), (1e-12, 60.0)],
    )
    def test_selectivity_points(self, selectivity, expected: float) -> None:
        assert selectivity_points(selectivity, 60.0) == pytest.approx(expected)

    def test_neutral_selectivity_is_mid_range(self, config: Config) -> None:
        score = benefit_score(config.neutral_selectivity, False, False, config)
        assert score == 30.0

    def test_monotonic_in_selectivity(self, config: Config) -> None:
        scores = [
            benefit_score(s, False, False, config) for s in (0.5, 0.1, 0.01, 1e-4, 1e-6)
        ]
        assert scores == sorted(scores)

    def test_bonuses_only_add(self, config: Config) -> None:
        base = benefit_score(0.01, False, False, config)
        assert benefit_score(0.01, True, False, config) == base + config.sort_avoidance_bonus
        assert benefit_score(0.01, False, True, config) == base + config.covering_bonus

    def test_clamped_to_100(self) -> None:
        config = Config(sort_avoidance_bonus=50, covering_bonus=50)
        assert benefit_score(1e-6, True, True, config) == 100.0

    def test_one_decimal(self, config: Config) -> None:
        score = benefit_score(0.003, False, False, config)
        assert score == round(score, 1)

    @pytest.mark.parametrize(
        "leaf_blocks, expected",
        [(None, UNKNOWN_LEAF_BLOCKS_SCORE), (0, 10.0), (999, 40.0), (10**9, 40.0)],
    )
    def test_drop_score(self, make_index, leaf_blocks, expected: float) -> None:
        index = make_index("IDX_A", "DEPT_ID", leaf_blocks=leaf_blocks)
        assert drop_score(index) == expected

    @pytest.mark.parametrize(
        "flags, expected",
        [
            ([True, True], Confidence.HIGH),
            ([True, False], Confidence.MEDIUM),
            ([False, False], Confidence.LOW),
            ([], Confidence.LOW),
        ],
    )
    def test_confidence(self, flags, expected: Confidence) -> None:
        assert confidence_for(flags) == expected


# =============================================================================
# DDL
# =============================================================================


class TestDdl:
    """Generated index names and DDL text."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("EMP", "EMP"),
            ("EMP$HIST", "EMP$HIST"),
            ("MixedCase", '"MixedCase"'),
            ("HAS SPACE", '"HAS SPACE"'),
            ("1ST", '"1ST"'),
        ],
    )
    def test_quote_identifier(self, name: str, expected: str) -> None:
        assert quote_identifier(name) == expected

    def test_qualified(self) -> None:
        assert qualified("HR", "EMP") == "HR.EMP"
        assert qualified(None, "EMP") == "EMP"

    def test_short_index_name(self) -> None:
        assert index_name_for("EMP", ["DEPT_ID", "HIRE_DATE"]) == "IX_EMP_DEPT_ID_HIRE_DATE"

    def test_long_index_name_is_hashed_and_stable(self) -> None:
        columns = ["DEPARTMENT_ID", "HIRE_DATE", "LAST_NAME"]
        first = index_name_for("EMPLOYEES", columns)
        assert len(first) <= 30
        assert first.startswith("IX_EMPLOYEES_")
        assert first == index_name_for("EMPLOYEES", columns)
        assert first != index_name_for("EMPLOYEES", columns[:2] + ["FIRST_NAME"])

    def test_long_table_name_truncated(self) -> None:
        name = index_name_for("A_VERY_LONG_TABLE_NAME_FOR_TEST", ["COL"])
        assert len(name) <= 30

    def test_create_ddl(self) -> None:
        columns = [
            IndexColumn(name="DEPT_ID"),
            IndexColumn(name="HIRE_DATE", order=SortOrder.DESC),
        ]
        assert create_index_ddl("HR", "EMP", "IX_EMP_DEPT_ID", columns) == (
            "CREATE INDEX HR.IX_EMP_DEPT_ID ON HR.EMP (DEPT_ID, HIRE_DATE DESC);"
        )

    def test_create_ddl_quotes_mixed_case(self) -> None:
        ddl = create_index_ddl("HR", "Emp", "IX_EMP_NAME", [IndexColumn(name="Name")])
        assert ddl == 'CREATE INDEX HR.IX_EMP_NAME ON HR."Emp" ("Name");'

    def test_extend_ddl_keeps_name(self, make_index) -> None:
        index = make_index("IDX_EMP_DEPT", "DEPT_ID")
        ddl = extend_index_ddl(
            index, [IndexColumn(name="DEPT_ID"), IndexColumn(name="HIRE_DATE")]
        )
        assert ddl.splitlines() == [
            "DROP INDEX HR.IDX_EMP_DEPT;",
            "CREATE INDEX HR.IDX_EMP_DEPT ON HR.EMP (DEPT_ID, HIRE_DATE);",
        ]

    def test_drop_ddl_is_commented(self, make_index) -> None:
        lines = drop_redundant_ddl(make_index("IDX_A", "DEPT_ID")).splitlines()
        assert lines[0] == "ALTER INDEX HR.IDX_A INVISIBLE;"
        assert all(line.startswith("--") for line in lines[1:])
