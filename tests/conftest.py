"""
Shared fixtures for the queryartifacts test suite.

Everything here builds in-memory catalog rows; no test needs a database.
"""

from __future__ import annotations

import os
from typing import Callable

import pytest

from queryartifacts.catalog import (
    ColumnStatistics,
    IndexColumn,
    IndexMetadata,
    IndexType,
    SortOrder,
    StaticCatalogProvider,
)
from queryartifacts.config import ENV_PREFIX, Config, reset_config
from queryartifacts.parser import ParsedQuery, StatementParser


@pytest.fixture(autouse=True)
def clean_config(monkeypatch: pytest.MonkeyPatch):
    """Isolate every test from QUERYARTIFACTS_* variables and the config cache."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def parse() -> Callable[..., ParsedQuery]:
    """Parse SQL, optionally binding unqualified tables to an owner."""
    parser = StatementParser()

    def _parse(sql: str, owner: str | None = "HR") -> ParsedQuery:
        return parser.parse(sql).qualify(owner)

    return _parse


@pytest.fixture
def make_index() -> Callable[..., IndexMetadata]:
    """
    Build an IndexMetadata.

    Columns ending in " DESC" become descending key columns.
    """

    def _make(
        name: str,
        *columns: str,
        table: str = "EMP",
        owner: str = "HR",
        unique: bool = False,
        index_type: IndexType = IndexType.BTREE,
        leaf_blocks: int | None = None,
        **extra,
    ) -> IndexMetadata:
        key_columns = []
        for column in columns:
            if column.endswith(" DESC"):
                key_columns.append(IndexColumn(name=column[:-5], order=SortOrder.DESC))
            else:
                key_columns.append(IndexColumn(name=column))
        return IndexMetadata(
            index_name=name,
            owner=owner,
            table=table,
            columns=tuple(key_columns),
            unique=unique,
            index_type=index_type,
            leaf_blocks=leaf_blocks,
            **extra,
        )

    return _make


@pytest.fixture
def make_stats() -> Callable[..., ColumnStatistics]:
    def _make(
        column: str,
        distinct: int | None,
        table: str = "EMP",
        owner: str = "HR",
        null_fraction: float | None = None,
    ) -> ColumnStatistics:
        return ColumnStatistics(
            owner=owner,
            table=table,
            column=column,
            distinct_cardinality=distinct,
            null_fraction=null_fraction,
            num_rows=100_000,
        )

    return _make


@pytest.fixture
def hr_provider(make_index, make_stats) -> StaticCatalogProvider:
    """HR schema snapshot: EMP with a single-column index, DEPT without indexes."""
    return StaticCatalogProvider(
        indexes=[make_index("IDX_EMP_DEPT", "DEPT_ID", leaf_blocks=120)],
        statistics=[
            make_stats("DEPT_ID", 10),
            make_stats("LOCATION_ID", 25, table="DEPT"),
        ],
        tables=["HR.EMP", "HR.DEPT"],
        denied=["HR.SALARY_HISTORY"],
        default_schema="HR",
        connection_id="test",
    )
