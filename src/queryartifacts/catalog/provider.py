"""
Catalog metadata provider interface and the in-memory snapshot provider.

The analyzer never talks to a database. Everything it knows about existing
indexes and column statistics comes through a CatalogMetadataProvider,
which keeps parsing and analysis testable without a live connection.

Usage:
    from queryartifacts.catalog import StaticCatalogProvider

    provider = StaticCatalogProvider.from_file(Path("catalog.yaml"))
    indexes = await provider.fetch_indexes(query.catalog_tables())

Snapshot format (JSON or YAML):

    connection_id: demo            # optional, defaults to the file name
    default_schema: HR
    tables: [HR.EMP, HR.DEPT]      # optional, inferred from indexes/statistics
    denied: [HR.SALARY_HISTORY]    # tables that exist but cannot be read
    indexes:
      - index_name: IDX_EMP_DEPT
        owner: HR
        table: EMP
        columns: [DEPT_ID]         # or [{name: HIRE_DATE, order: DESC}]
        unique: false
    statistics:
      - {owner: HR, table: EMP, column: DEPT_ID, distinct_cardinality: 27}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, Sequence

import yaml
from pydantic import ValidationError

from queryartifacts.catalog.models import ColumnStatistics, IndexMetadata
from queryartifacts.exceptions import (
    ConfigurationError,
    MetadataError,
    MetadataErrorKind,
)
from queryartifacts.parser.models import TableRef

logger = logging.getLogger(__name__)


class CatalogMetadataProvider(Protocol):
    """
    Protocol for catalog metadata sources.

    Calls are scoped to exactly the requested tables. Failures raise
    MetadataError with ACCESS_DENIED, TABLE_NOT_FOUND or
    CONNECTION_UNAVAILABLE; nothing is retried here.
    """

    @property
    def connection_id(self) -> str:
        """Identity of the underlying connection, used for cache keys."""
        ...

    async def fetch_indexes(self, tables: Sequence[TableRef]) -> list[IndexMetadata]:
        """Indexes defined on the given tables."""
        ...

    async def fetch_column_statistics(
        self, tables: Sequence[TableRef]
    ) -> list[ColumnStatistics]:
        """Column statistics for the given tables."""
        ...

    async def default_schema(self) -> str | None:
        """Schema used for unqualified table names, if the source knows one."""
        ...


def _qualified(owner: str | None, table: str) -> str:
    return f"{owner}.{table}" if owner else table


def _coerce_index(raw: Any) -> Any:
    """Allow plain column names in snapshot index definitions."""
    if isinstance(raw, dict) and isinstance(raw.get("columns"), list):
        raw = dict(raw)
        raw["columns"] = [
            {"name": c} if isinstance(c, str) else c for c in raw["columns"]
        ]
    return raw


class StaticCatalogProvider:
    """
    CatalogMetadataProvider backed by an in-memory snapshot.

    Used by the CLI (catalog snapshot files) and by tests. Behaves like a
    real catalog for error reporting: unknown tables raise TABLE_NOT_FOUND,
    tables listed under ``denied`` raise ACCESS_DENIED.
    """

    def __init__(
        self,
        indexes: Sequence[IndexMetadata] = (),
        statistics: Sequence[ColumnStatistics] = (),
        tables: Sequence[str] | None = None,
        denied: Sequence[str] = (),
        default_schema: str | None = None,
        connection_id: str = "static",
    ) -> None:
        self._indexes = list(indexes)
        self._statistics = list(statistics)
        self._denied = set(denied)
        self._default_schema = default_schema
        self._connection_id = connection_id

        if tables is None:
            known = {i.qualified_table for i in self._indexes}
            known.update(s.qualified_table for s in self._statistics)
        else:
            known = set(tables)
        self._tables = known | self._denied

    @classmethod
    def from_dict(cls, data: dict[str, Any], connection_id: str = "static") -> "StaticCatalogProvider":
        """
        Build a provider from a snapshot mapping.

        Raises:
            ConfigurationError: If the snapshot is malformed
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Catalog snapshot must be a mapping")
        try:
            indexes = [
                IndexMetadata.model_validate(_coerce_index(i))
                for i in data.get("indexes") or []
            ]
            statistics = [
                ColumnStatistics.model_validate(s) for s in data.get("statistics") or []
            ]
        except ValidationError as e:
            first = e.errors()[0]
            raise ConfigurationError(
                f"Invalid catalog snapshot entry: {first.get('msg')} "
                f"at {'.'.join(str(p) for p in first.get('loc', ()))}",
                config_key="catalog",
            ) from e

        tables = data.get("tables")
        return cls(
            indexes=indexes,
            statistics=statistics,
            tables=list(tables) if tables is not None else None,
            denied=list(data.get("denied") or []),
            default_schema=data.get("default_schema"),
            connection_id=str(data.get("connection_id") or connection_id),
        )

    @classmethod
    def from_file(cls, path: Path) -> "StaticCatalogProvider":
        """
        Load a JSON or YAML catalog snapshot.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        if not path.exists():
            raise ConfigurationError(f"Catalog snapshot not found: {path}", config_key="catalog")

        with open(path) as f:
            try:
                if path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise ConfigurationError(
                    f"Could not read catalog snapshot {path}: {e}", config_key="catalog"
                ) from e

        provider = cls.from_dict(data or {}, connection_id=path.stem)
        logger.debug(
            "Loaded catalog snapshot %s: %d index(es), %d column statistic(s)",
            path, len(provider._indexes), len(provider._statistics),
        )
        return provider

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def default_schema(self) -> str | None:
        return self._default_schema

    def _name(self, table: TableRef) -> str:
        return _qualified(table.owner or self._default_schema, table.name)

    def _check(self, tables: Sequence[TableRef]) -> set[str]:
        denied = [t for t in tables if self._name(t) in self._denied]
        if denied:
            raise MetadataError.for_tables(
                MetadataErrorKind.ACCESS_DENIED, denied, "Insufficient privileges on"
            )
        missing = [t for t in tables if self._name(t) not in self._tables]
        if missing:
            raise MetadataError.for_tables(
                MetadataErrorKind.TABLE_NOT_FOUND, missing, "Table or view does not exist"
            )
        return {self._name(t) for t in tables}

    async def fetch_indexes(self, tables: Sequence[TableRef]) -> list[IndexMetadata]:
        names = self._check(tables)
        return [i for i in self._indexes if i.qualified_table in names]

    async def fetch_column_statistics(
        self, tables: Sequence[TableRef]
    ) -> list[ColumnStatistics]:
        names = self._check(tables)
        return [s for s in self._statistics if s.qualified_table in names]
