"""
TTL + LRU cache in front of any CatalogMetadataProvider.

Catalog lookups are the only I/O in an analysis, and the same handful of
tables tends to be analysed over and over. Entries are keyed by
(connection_id, owner, table) so metadata is never shared across
connections or schemas.

Usage:
    provider = CachingCatalogProvider(
        OracleCatalogProvider(...),
        max_size=256,
        ttl_seconds=300,
    )
    indexes = await provider.fetch_indexes(tables)   # fetches
    indexes = await provider.fetch_indexes(tables)   # served from cache
    print(provider.stats())
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

from queryartifacts.catalog.models import ColumnStatistics, IndexMetadata
from queryartifacts.catalog.provider import CatalogMetadataProvider
from queryartifacts.parser.models import TableRef

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, str, str]


@dataclass(frozen=True)
class CachedEntry(Generic[T]):
    """Metadata rows of one table."""

    rows: tuple[T, ...]
    cached_at: float

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return (now - self.cached_at) > ttl_seconds


class TableMetadataCache(Generic[T]):
    """
    In-memory LRU cache of per-table metadata rows with TTL.

    Example:
        cache = TableMetadataCache(max_size=100, ttl_seconds=300)
        cache.set(("conn", "HR", "EMP"), indexes)
        cached = cache.get(("conn", "HR", "EMP"))
    """

    def __init__(
        self,
        max_size: int = 256,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: OrderedDict[CacheKey, CachedEntry[T]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: CacheKey) -> tuple[T, ...] | None:
        """Cached rows if present and not expired."""
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self.ttl_seconds, self._clock()):
            del self._cache[key]
            self._misses += 1
            return None

        # Move to end (LRU)
        self._cache.move_to_end(key)
        self._hits += 1
        return entry.rows

    def set(self, key: CacheKey, rows: Sequence[T]) -> None:
        self._cache.pop(key, None)
        # Evict oldest if at capacity
        while len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
        self._cache[key] = CachedEntry(tuple(rows), self._clock())

    def clear(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    @property
    def hit_rate(self) -> float:
        """Cache hit rate (0.0 to 1.0)."""
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    @property
    def size(self) -> int:
        return len(self._cache)

    def stats(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
            "ttl_seconds": self.ttl_seconds,
        }


class CachingCatalogProvider:
    """
    CatalogMetadataProvider decorator that caches per-table metadata.

    Only tables missing from the cache are requested from the inner
    provider, so one analysis never fetches more than it needs. Errors
    from the inner provider propagate and are never cached.
    """

    def __init__(
        self,
        inner: CatalogMetadataProvider,
        max_size: int = 256,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.inner = inner
        self.indexes: TableMetadataCache[IndexMetadata] = TableMetadataCache(
            max_size, ttl_seconds, clock
        )
        self.statistics: TableMetadataCache[ColumnStatistics] = TableMetadataCache(
            max_size, ttl_seconds, clock
        )

    @property
    def connection_id(self) -> str:
        return self.inner.connection_id

    async def default_schema(self) -> str | None:
        return await self.inner.default_schema()

    def _key(self, table: TableRef) -> CacheKey:
        return (self.connection_id, table.owner or "", table.name)

    async def fetch_indexes(self, tables: Sequence[TableRef]) -> list[IndexMetadata]:
        return await self._fetch(tables, self.indexes, self.inner.fetch_indexes)

    async def fetch_column_statistics(
        self, tables: Sequence[TableRef]
    ) -> list[ColumnStatistics]:
        return await self._fetch(
            tables, self.statistics, self.inner.fetch_column_statistics
        )

    async def _fetch(
        self,
        tables: Sequence[TableRef],
        cache: TableMetadataCache[Any],
        fetch: Callable[[Sequence[TableRef]], Any],
    ) -> list[Any]:
        found: dict[CacheKey, tuple[Any, ...]] = {}
        missing: list[TableRef] = []
        for table in tables:
            key = self._key(table)
            rows = cache.get(key)
            if rows is None:
                missing.append(table)
            else:
                found[key] = rows

        if missing:
            logger.debug(
                "Catalog cache miss for %s", ", ".join(t.qualified_name for t in missing)
            )
            fetched = await fetch(missing)
            grouped: dict[CacheKey, list[Any]] = {self._key(t): [] for t in missing}
            for row in fetched:
                key = (self.connection_id, row.owner, row.table)
                if key not in grouped:
                    # Requested without an owner; the source resolved one
                    key = (self.connection_id, "", row.table)
                grouped.setdefault(key, []).append(row)
            for table in missing:
                key = self._key(table)
                cache.set(key, grouped[key])
                found[key] = tuple(grouped[key])

        result: list[Any] = []
        for table in tables:
            result.extend(found[self._key(table)])
        return result

    def stats(self) -> dict[str, Any]:
        return {
            "indexes": self.indexes.stats(),
            "statistics": self.statistics.stats(),
        }

    def clear(self) -> None:
        self.indexes.clear()
        self.statistics.clear()
