"""
Catalog metadata models.

Snapshots of what the data dictionary reports about indexes and column
statistics for the tables a statement touches. Pydantic models, frozen,
so they can be loaded straight from a JSON/YAML catalog snapshot and
shared between analyses.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class IndexType(str, Enum):
    """Index organisations the analyzer distinguishes."""

    BTREE = "BTREE"
    BITMAP = "BITMAP"
    FUNCTION_BASED = "FUNCTION_BASED"

    @classmethod
    def from_oracle(cls, index_type: str | None) -> "IndexType":
        """Map ALL_INDEXES.INDEX_TYPE ('NORMAL', 'FUNCTION-BASED BITMAP', ...)."""
        value = (index_type or "").upper()
        if "FUNCTION" in value:
            return cls.FUNCTION_BASED
        if "BITMAP" in value:
            return cls.BITMAP
        return cls.BTREE


class IndexStatus(str, Enum):
    VALID = "VALID"
    UNUSABLE = "UNUSABLE"
    INVALID = "INVALID"

    @classmethod
    def from_oracle(cls, status: str | None) -> "IndexStatus":
        value = (status or "").upper()
        if value == "UNUSABLE":
            return cls.UNUSABLE
        # Partitioned indexes report N/A at the index level
        if value in ("VALID", "N/A", ""):
            return cls.VALID
        return cls.INVALID


class SelectivityGrade(str, Enum):
    """Coarse selectivity buckets for display."""

    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    VERY_POOR = "VERY_POOR"

    @classmethod
    def for_selectivity(cls, selectivity: float) -> "SelectivityGrade":
        if selectivity <= 0.001:
            return cls.EXCELLENT
        if selectivity <= 0.01:
            return cls.GOOD
        if selectivity <= 0.05:
            return cls.FAIR
        if selectivity <= 0.10:
            return cls.POOR
        return cls.VERY_POOR


class IndexColumn(BaseModel):
    """One key column of an index (or of a recommended index)."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., description="Column name")
    order: SortOrder = Field(SortOrder.ASC, description="Key sort order")

    def render(self) -> str:
        """Column as written in CREATE INDEX."""
        if self.order == SortOrder.DESC:
            return f"{self.name} DESC"
        return self.name


class IndexMetadata(BaseModel):
    """An existing index as reported by the catalog."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    index_name: str = Field(..., description="Index name")
    owner: str = Field(..., description="Schema owning the index's table")
    table: str = Field(..., description="Indexed table name")
    columns: tuple[IndexColumn, ...] = Field(..., description="Key columns in order")
    unique: bool = Field(False, description="UNIQUE index")
    index_type: IndexType = Field(IndexType.BTREE, description="Index organisation")
    leaf_blocks: int | None = Field(None, ge=0, description="Leaf block count")
    clustering_factor: int | None = Field(None, ge=0, description="Clustering factor")
    distinct_keys: int | None = Field(None, ge=0, description="Distinct key count")
    status: IndexStatus = Field(IndexStatus.VALID, description="Index status")

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    @property
    def qualified_table(self) -> str:
        return f"{self.owner}.{self.table}"

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}.{self.index_name}"

    @property
    def usable_for_coverage(self) -> bool:
        """Only valid plain-column indexes can serve the ideal column order."""
        return (
            self.status == IndexStatus.VALID
            and self.index_type != IndexType.FUNCTION_BASED
        )


class ColumnStatistics(BaseModel):
    """
    Optimizer statistics for one column.

    Every field but the identity is optional: missing statistics mean
    "unknown selectivity", never "perfectly selective". Snapshot files may
    use snake_case or camelCase keys.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    owner: str = Field(..., description="Table owner")
    table: str = Field(..., description="Table name")
    column: str = Field(..., description="Column name")
    distinct_cardinality: int | None = Field(None, ge=0, description="NUM_DISTINCT")
    null_fraction: float | None = Field(None, ge=0, le=1, description="NUM_NULLS / NUM_ROWS")
    avg_length: int | None = Field(None, ge=0, description="AVG_COL_LEN in bytes")
    num_rows: int | None = Field(None, ge=0, description="Table NUM_ROWS")

    @property
    def qualified_table(self) -> str:
        return f"{self.owner}.{self.table}"

    @property
    def selectivity(self) -> float | None:
        """
        Fraction of rows one equality lookup returns.

        1/NDV scaled by the non-null fraction; None when unknown.
        """
        if not self.distinct_cardinality:
            return None
        non_null = 1.0 - (self.null_fraction or 0.0)
        return max(non_null, 0.0) / self.distinct_cardinality

    @property
    def grade(self) -> SelectivityGrade | None:
        selectivity = self.selectivity
        if selectivity is None:
            return None
        return SelectivityGrade.for_selectivity(selectivity)
