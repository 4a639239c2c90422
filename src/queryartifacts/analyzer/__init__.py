"""Index coverage analysis, recommendations, DDL and access-path hints."""

from queryartifacts.analyzer.access_path import AccessPath, plan_access_path
from queryartifacts.analyzer.coverage import IndexCoverageAnalyzer
from queryartifacts.analyzer.models import (
    Confidence,
    CoverageReport,
    ExcludedColumn,
    Rationale,
    ReasonCode,
    Recommendation,
    RecommendationKind,
    TableCoverage,
)

__all__ = [
    "IndexCoverageAnalyzer",
    "plan_access_path",
    "AccessPath",
    "Confidence",
    "CoverageReport",
    "ExcludedColumn",
    "Rationale",
    "ReasonCode",
    "Recommendation",
    "RecommendationKind",
    "TableCoverage",
]
