"""
Oracle data dictionary provider (python-oracledb, async).

Reads ALL_TABLES, ALL_INDEXES, ALL_IND_COLUMNS and ALL_TAB_COL_STATISTICS
for exactly the requested tables. Views and synonyms are accepted but have
no indexes or column statistics of their own. Read-only; every statement
is a SELECT with bind variables.

Usage:
    provider = await OracleCatalogProvider.create(
        user="scott", password="...", dsn="dbhost/ORCLPDB1",
    )
    try:
        indexes = await provider.fetch_indexes(query.catalog_tables())
    finally:
        await provider.close()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Sequence

import oracledb

from queryartifacts.catalog.models import (
    ColumnStatistics,
    IndexColumn,
    IndexMetadata,
    IndexStatus,
    IndexType,
    SortOrder,
)
from queryartifacts.exceptions import MetadataError, MetadataErrorKind
from queryartifacts.parser.models import TableRef

logger = logging.getLogger(__name__)

# ORA- codes by failure category
ACCESS_DENIED_CODES = frozenset({1031, 1017, 1045, 28000})
TABLE_NOT_FOUND_CODES = frozenset({942, 4043})

_TABLES_SQL = """
    SELECT owner, table_name
    FROM all_tables
    WHERE {where}
"""

_VIEWS_AND_SYNONYMS_SQL = """
    SELECT owner, view_name AS table_name
    FROM all_views
    WHERE {views}
    UNION ALL
    SELECT owner, synonym_name AS table_name
    FROM all_synonyms
    WHERE {synonyms}
"""

_DBA_TABLES_SQL = """
    SELECT owner, table_name
    FROM dba_tables
    WHERE {where}
"""

_INDEXES_SQL = """
    SELECT owner, index_name, table_owner, table_name, index_type,
           uniqueness, status, leaf_blocks, distinct_keys, clustering_factor
    FROM all_indexes
    WHERE {where}
    ORDER BY table_owner, table_name, index_name
"""

_INDEX_COLUMNS_SQL = """
    SELECT ic.index_owner, ic.index_name, ic.table_owner, ic.table_name,
           ic.column_name, ic.column_position, ic.descend
    FROM all_ind_columns ic
    WHERE {where}
    ORDER BY ic.index_owner, ic.index_name, ic.column_position
"""

_COLUMN_STATS_SQL = """
    SELECT c.owner, c.table_name, c.column_name, c.num_distinct,
           c.num_nulls, c.avg_col_len, t.num_rows
    FROM all_tab_col_statistics c
    JOIN all_tables t ON t.owner = c.owner AND t.table_name = c.table_name
    WHERE {where}
    ORDER BY c.owner, c.table_name, c.column_name
"""

_CURRENT_SCHEMA_SQL = "SELECT SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA') AS schema_name FROM dual"


def build_clause(
    tables: Sequence[TableRef],
    alias: str | None = None,
    owner_column: str = "owner",
    name_column: str = "table_name",
    include_public: bool = False,
) -> tuple[str, dict[str, str]]:
    """
    OR-ed (owner, table_name) filter with bind variables.

    ALL_INDEXES and ALL_IND_COLUMNS filter on TABLE_OWNER rather than OWNER,
    hence ``owner_column``. ``include_public`` also matches PUBLIC synonyms.
    """
    prefix = f"{alias}." if alias else ""
    parts: list[str] = []
    binds: dict[str, str] = {}
    for i, table in enumerate(tables, 1):
        owner_test = f"{prefix}{owner_column} = :o{i}"
        if include_public:
            owner_test = f"{prefix}{owner_column} IN (:o{i}, 'PUBLIC')"
        parts.append(f"({owner_test} AND {prefix}{name_column} = :t{i})")
        binds[f"o{i}"] = table.owner or ""
        binds[f"t{i}"] = table.name
    return " OR ".join(parts), binds


def parse_index_rows(
    index_rows: list[dict[str, Any]],
    column_rows: list[dict[str, Any]],
) -> list[IndexMetadata]:
    """Combine ALL_INDEXES and ALL_IND_COLUMNS rows into IndexMetadata."""
    columns: dict[tuple[str, str], list[IndexColumn]] = defaultdict(list)
    for row in column_rows:
        order = SortOrder.DESC if row.get("descend") == "DESC" else SortOrder.ASC
        columns[(row["index_owner"], row["index_name"])].append(
            IndexColumn(name=row["column_name"], order=order)
        )

    indexes: list[IndexMetadata] = []
    for row in index_rows:
        key_columns = columns.get((row["owner"], row["index_name"]))
        if not key_columns:
            # Domain / LOB indexes have no plain key columns
            logger.debug("Skipping index %s without key columns", row["index_name"])
            continue
        indexes.append(
            IndexMetadata(
                index_name=row["index_name"],
                owner=row["table_owner"],
                table=row["table_name"],
                columns=tuple(key_columns),
                unique=row.get("uniqueness") == "UNIQUE",
                index_type=IndexType.from_oracle(row.get("index_type")),
                leaf_blocks=row.get("leaf_blocks"),
                clustering_factor=row.get("clustering_factor"),
                distinct_keys=row.get("distinct_keys"),
                status=IndexStatus.from_oracle(row.get("status")),
            )
        )
    return indexes


def parse_statistics_rows(rows: list[dict[str, Any]]) -> list[ColumnStatistics]:
    """ALL_TAB_COL_STATISTICS rows (joined with NUM_ROWS) to ColumnStatistics."""
    statistics: list[ColumnStatistics] = []
    for row in rows:
        num_rows = row.get("num_rows")
        num_nulls = row.get("num_nulls")
        null_fraction = None
        if num_rows and num_nulls is not None:
            null_fraction = min(1.0, num_nulls / num_rows)
        statistics.append(
            ColumnStatistics(
                owner=row["owner"],
                table=row["table_name"],
                column=row["column_name"],
                distinct_cardinality=row.get("num_distinct"),
                null_fraction=null_fraction,
                avg_length=row.get("avg_col_len"),
                num_rows=num_rows,
            )
        )
    return statistics


def map_oracle_error(
    error: Exception, tables: Sequence[TableRef] = ()
) -> MetadataError:
    """Translate an oracledb error into a MetadataError."""
    detail = error.args[0] if error.args else None
    code = getattr(detail, "code", 0)
    message = getattr(detail, "message", None) or str(error)

    if code in ACCESS_DENIED_CODES:
        kind = MetadataErrorKind.ACCESS_DENIED
    elif code in TABLE_NOT_FOUND_CODES:
        kind = MetadataErrorKind.TABLE_NOT_FOUND
    else:
        kind = MetadataErrorKind.CONNECTION_UNAVAILABLE

    names = tuple(t.qualified_name for t in tables)
    return MetadataError(kind, message, tables=names)


class OracleCatalogProvider:
    """
    CatalogMetadataProvider reading the Oracle data dictionary.

    Names that ALL_TABLES does not show are tried as views and synonyms
    (which contribute no rows), then looked up in DBA_TABLES to tell
    "exists but not visible to this user" (ACCESS_DENIED) apart from "does
    not exist" (TABLE_NOT_FOUND). Without DBA_TABLES access every invisible
    table is reported as not found.
    """

    def __init__(
        self,
        connection: Any,
        connection_id: str,
        schema: str | None = None,
    ) -> None:
        self._connection = connection
        self._connection_id = connection_id
        self._schema = schema

    @classmethod
    async def create(
        cls,
        user: str,
        password: str,
        dsn: str,
        connection_id: str | None = None,
        call_timeout_ms: int = 10_000,
    ) -> "OracleCatalogProvider":
        """Open an async thin-mode connection."""
        try:
            connection = await oracledb.connect_async(
                user=user, password=password, dsn=dsn
            )
        except oracledb.Error as e:
            raise map_oracle_error(e) from e
        connection.call_timeout = call_timeout_ms
        return cls(connection, connection_id or f"{user}@{dsn}")

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def close(self) -> None:
        await self._connection.close()

    async def _query(
        self,
        sql: str,
        binds: dict[str, Any],
        tables: Sequence[TableRef] = (),
    ) -> list[dict[str, Any]]:
        try:
            with self._connection.cursor() as cursor:
                await cursor.execute(sql, binds)
                names = [d[0].lower() for d in cursor.description]
                rows = await cursor.fetchall()
        except oracledb.Error as e:
            raise map_oracle_error(e, tables) from e
        return [dict(zip(names, row)) for row in rows]

    async def default_schema(self) -> str | None:
        if self._schema is None:
            rows = await self._query(_CURRENT_SCHEMA_SQL, {})
            self._schema = rows[0]["schema_name"] if rows else None
        return self._schema

    async def _check_tables(self, tables: Sequence[TableRef]) -> list[TableRef]:
        """
        The requested tables that are real tables.

        Views and synonyms pass the check but are left out of the result.

        Raises:
            MetadataError: ACCESS_DENIED or TABLE_NOT_FOUND for the rest
        """
        where, binds = build_clause(tables)
        rows = await self._query(_TABLES_SQL.format(where=where), binds, tables)
        present = {(r["owner"], r["table_name"]) for r in rows}
        missing = [t for t in tables if (t.owner, t.name) not in present]
        if not missing:
            return list(tables)

        views, binds = build_clause(missing, name_column="view_name")
        synonyms, _ = build_clause(missing, name_column="synonym_name", include_public=True)
        rows = await self._query(
            _VIEWS_AND_SYNONYMS_SQL.format(views=views, synonyms=synonyms), binds, missing
        )
        objects = {(r["owner"], r["table_name"]) for r in rows}
        remaining: list[TableRef] = []
        for table in missing:
            if (table.owner, table.name) in objects or ("PUBLIC", table.name) in objects:
                logger.info(
                    "%s is a view or synonym; no indexes of its own", table.qualified_name
                )
            else:
                remaining.append(table)
        missing = remaining
        if not missing:
            return [t for t in tables if (t.owner, t.name) in present]

        where, binds = build_clause(missing)
        try:
            rows = await self._query(_DBA_TABLES_SQL.format(where=where), binds, missing)
        except MetadataError as e:
            if e.kind == MetadataErrorKind.CONNECTION_UNAVAILABLE:
                raise
            rows = []
        hidden = {(r["owner"], r["table_name"]) for r in rows}
        denied = [t for t in missing if (t.owner, t.name) in hidden]
        if denied:
            raise MetadataError.for_tables(
                MetadataErrorKind.ACCESS_DENIED, denied, "Insufficient privileges on"
            )
        raise MetadataError.for_tables(
            MetadataErrorKind.TABLE_NOT_FOUND, missing, "Table or view does not exist"
        )

    async def fetch_indexes(self, tables: Sequence[TableRef]) -> list[IndexMetadata]:
        if not tables:
            return []
        tables = await self._check_tables(tables)
        if not tables:
            return []

        where, binds = build_clause(tables, owner_column="table_owner")
        index_rows = await self._query(_INDEXES_SQL.format(where=where), binds, tables)
        where, binds = build_clause(tables, alias="ic", owner_column="table_owner")
        column_rows = await self._query(
            _INDEX_COLUMNS_SQL.format(where=where), binds, tables
        )
        indexes = parse_index_rows(index_rows, column_rows)
        logger.debug("Fetched %d index(es) for %d table(s)", len(indexes), len(tables))
        return indexes

    async def fetch_column_statistics(
        self, tables: Sequence[TableRef]
    ) -> list[ColumnStatistics]:
        if not tables:
            return []
        tables = await self._check_tables(tables)
        if not tables:
            return []

        where, binds = build_clause(tables, alias="c")
        rows = await self._query(_COLUMN_STATS_SQL.format(where=where), binds, tables)
        statistics = parse_statistics_rows(rows)
        logger.debug(
            "Fetched statistics for %d column(s) of %d table(s)",
            len(statistics), len(tables),
        )
        return statistics
