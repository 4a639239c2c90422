"""
Recommendation models produced by the coverage analyzer.

Recommendations are a pure function of (ParsedQuery, IndexMetadata[],
ColumnStatistics[]): frozen, built once per analysis, never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from queryartifacts.catalog.models import IndexColumn


class RecommendationKind(str, Enum):
    """What to do about an index."""

    CREATE_INDEX = "CREATE_INDEX"
    EXTEND_INDEX = "EXTEND_INDEX"
    DROP_REDUNDANT = "DROP_REDUNDANT"


class ReasonCode(str, Enum):
    """Structured reason behind a recommendation."""

    NO_USABLE_INDEX = "NO_USABLE_INDEX"        # nothing shares the leading column
    INSUFFICIENT_COVERAGE = "INSUFFICIENT_COVERAGE"
    MISSING_TRAILING_COLUMNS = "MISSING_TRAILING_COLUMNS"
    PREFIX_REDUNDANT = "PREFIX_REDUNDANT"
    DUPLICATE_INDEX = "DUPLICATE_INDEX"


class Confidence(str, Enum):
    """How much of the estimate rests on real statistics."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class Rationale:
    code: ReasonCode
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "text": self.text}


@dataclass(frozen=True)
class Recommendation:
    """
    One ranked index recommendation.

    Attributes:
        kind: CREATE_INDEX / EXTEND_INDEX / DROP_REDUNDANT
        table: Qualified table name (OWNER.TABLE)
        columns: Key columns of the resulting index, in order; for
            DROP_REDUNDANT the columns of the index to drop
        benefit_score: 0..100, one decimal
        rationale: Reason code and human-readable explanation
        generated_ddl: Descriptive DDL, never executed
        index_name: Name of the index created, extended or dropped
        target_index: EXTEND_INDEX: the index being extended;
            DROP_REDUNDANT: the index that makes it redundant
        confidence: Share of candidate columns backed by statistics
    """

    kind: RecommendationKind
    table: str
    columns: tuple[IndexColumn, ...]
    benefit_score: float
    rationale: Rationale
    generated_ddl: str
    index_name: str
    target_index: str | None = None
    confidence: Confidence = Confidence.MEDIUM

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def sort_key(self) -> tuple[Any, ...]:
        """Descending score; ties by table, column list, kind, index name."""
        return (
            -self.benefit_score,
            self.table,
            self.column_names,
            self.kind.value,
            self.index_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "table": self.table,
            "columns": [
                {"name": c.name, "order": c.order.value} for c in self.columns
            ],
            "benefitScore": self.benefit_score,
            "rationale": self.rationale.to_dict(),
            "generatedDdl": self.generated_ddl,
            "indexName": self.index_name,
            "targetIndex": self.target_index,
            "confidence": self.confidence.value,
        }


@dataclass(frozen=True)
class ExcludedColumn:
    """A predicate column left out of the ideal index, and why."""

    column: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"column": self.column, "reason": self.reason}


@dataclass(frozen=True)
class TableCoverage:
    """
    Coverage details for one table occurrence.

    ``coverage`` is None when the occurrence has no candidate predicate
    and therefore no ideal index.
    """

    alias: str
    table: str
    ideal_columns: tuple[IndexColumn, ...] = ()
    best_index: str | None = None
    coverage: float | None = None
    excluded_columns: tuple[ExcludedColumn, ...] = ()
    scope_depth: int = 0

    @property
    def ideal_column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.ideal_columns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "alias": self.alias,
            "table": self.table,
            "idealColumns": [c.render() for c in self.ideal_columns],
            "bestIndex": self.best_index,
            "coverage": self.coverage,
            "excludedColumns": [e.to_dict() for e in self.excluded_columns],
            "scopeDepth": self.scope_depth,
        }


@dataclass(frozen=True)
class CoverageReport:
    """Everything the analyzer worked out for one statement."""

    recommendations: tuple[Recommendation, ...] = ()
    tables: tuple[TableCoverage, ...] = ()

    def recommendations_of(self, kind: RecommendationKind) -> list[Recommendation]:
        return [r for r in self.recommendations if r.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "tables": [t.to_dict() for t in self.tables],
        }
