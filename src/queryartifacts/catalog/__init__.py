"""
Catalog metadata: existing indexes and column statistics.

Providers:
- StaticCatalogProvider: JSON/YAML snapshot, no database needed
- OracleCatalogProvider: live Oracle data dictionary (python-oracledb)
- CachingCatalogProvider: TTL + LRU cache in front of either
"""

from queryartifacts.catalog.cache import CachingCatalogProvider, TableMetadataCache
from queryartifacts.catalog.models import (
    ColumnStatistics,
    IndexColumn,
    IndexMetadata,
    IndexStatus,
    IndexType,
    SelectivityGrade,
    SortOrder,
)
from queryartifacts.catalog.oracle import OracleCatalogProvider
from queryartifacts.catalog.provider import CatalogMetadataProvider, StaticCatalogProvider

__all__ = [
    "CatalogMetadataProvider",
    "StaticCatalogProvider",
    "OracleCatalogProvider",
    "CachingCatalogProvider",
    "TableMetadataCache",
    "ColumnStatistics",
    "IndexColumn",
    "IndexMetadata",
    "IndexStatus",
    "IndexType",
    "SelectivityGrade",
    "SortOrder",
]
