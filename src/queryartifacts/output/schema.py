"""
Request / response schema for the analysis API.

The host request handler speaks camelCase JSON; these pydantic models
accept camelCase or snake_case on input and always dump camelCase.

Success envelope:
    {"success": true, "data": {...artifact...},
     "metadata": {"executionTimeMs": 12.3, "analyzedAt": "...", "analysisId": "qa_..."}}

Failure envelope:
    {"success": false, "error": "...", "code": "TABLE_NOT_FOUND",
     "details": {"parsedQuery": {...}, "tables": [...]},
     "metadata": {"executionTimeMs": 3.1, "analyzedAt": "..."}}

The schema is stable across minor versions.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from queryartifacts.catalog.models import ColumnStatistics, IndexColumn, IndexMetadata

# Schema version - increment on breaking changes
SCHEMA_VERSION = "1.0"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class AnalysisOptionsSchema(_CamelModel):
    """Per-request analysis switches."""

    include_statistics: bool = Field(True, description="Fetch column statistics")
    include_hints: bool = Field(False, description="Emit optimizer hints")
    target_schema: str | None = Field(None, description="Schema for unqualified tables")


class AnalysisRequest(_CamelModel):
    """Request consumed from the host API layer."""

    connection_id: str = Field(..., description="Connection the host resolved")
    sql: str = Field(..., description="SQL SELECT statement")
    owner: str | None = Field(None, description="Schema for unqualified tables")
    options: AnalysisOptionsSchema = Field(
        default_factory=AnalysisOptionsSchema, description="Analysis switches"
    )


class RationaleSchema(_CamelModel):
    code: str = Field(..., description="Structured reason code")
    text: str = Field(..., description="Human-readable explanation")


class RecommendationSchema(_CamelModel):
    """A ranked index recommendation."""

    kind: str = Field(..., description="CREATE_INDEX / EXTEND_INDEX / DROP_REDUNDANT")
    table: str = Field(..., description="Qualified table name")
    columns: list[IndexColumn] = Field(..., description="Key columns in order")
    benefit_score: float = Field(..., ge=0, le=100, description="Benefit score 0..100")
    rationale: RationaleSchema = Field(..., description="Why")
    generated_ddl: str = Field(..., description="Descriptive DDL, never executed")
    index_name: str = Field(..., description="Index created, extended or dropped")
    target_index: str | None = Field(None, description="Index extended / kept instead")
    confidence: str = Field(..., description="HIGH / MEDIUM / LOW")


class TableCoverageSchema(_CamelModel):
    alias: str = Field(..., description="Alias in the statement")
    table: str = Field(..., description="Qualified table name")
    ideal_columns: list[str] = Field(default_factory=list, description="Ideal key order")
    best_index: str | None = Field(None, description="Best existing index")
    coverage: float | None = Field(None, description="Best coverage in percent")
    excluded_columns: list[dict[str, str]] = Field(
        default_factory=list, description="Predicate columns left out, with reason"
    )
    scope_depth: int = Field(0, description="0 for the outer query, 1 for subqueries")


class SummarySchema(_CamelModel):
    health_score: int = Field(..., ge=0, le=100, description="0..100, higher is better")
    grade: str = Field(..., description="A..F")
    create_count: int = Field(0, description="CREATE_INDEX recommendations")
    extend_count: int = Field(0, description="EXTEND_INDEX recommendations")
    drop_count: int = Field(0, description="DROP_REDUNDANT recommendations")
    tables_analyzed: int = Field(0, description="Physical table occurrences analyzed")


class AccessPathSchema(_CamelModel):
    order: list[str] = Field(default_factory=list, description="Suggested join order (aliases)")
    scores: dict[str, int] = Field(default_factory=dict, description="Driving-table scores")
    hints: str | None = Field(None, description="LEADING / USE_NL hint text")


class AnalysisArtifactSchema(_CamelModel):
    """Top-level artifact of one analysis."""

    version: str = Field(SCHEMA_VERSION, description="Schema version")
    analysis_id: str = Field(..., description="Unique analysis identifier")
    analyzed_at: str = Field(..., description="ISO-8601 UTC timestamp")
    connection_id: str = Field(..., description="Catalog connection")
    parsed_query: dict[str, Any] = Field(..., description="Structured statement")
    indexes: list[IndexMetadata] = Field(default_factory=list, description="Existing indexes")
    statistics: list[ColumnStatistics] = Field(
        default_factory=list, description="Column statistics used"
    )
    recommendations: list[RecommendationSchema] = Field(default_factory=list)
    coverage: list[TableCoverageSchema] = Field(default_factory=list)
    access_path: AccessPathSchema = Field(default_factory=AccessPathSchema)
    summary: SummarySchema
    hints: str | None = Field(None, description="Optimizer hints, when requested")
    warnings: list[str] = Field(default_factory=list, description="Parse / analysis notes")
    timing_ms: float = Field(..., description="Engine time in milliseconds")


class ResponseMetadata(_CamelModel):
    execution_time_ms: float = Field(..., description="Wall time of the request")
    analyzed_at: str = Field(..., description="ISO-8601 UTC timestamp")
    analysis_id: str | None = Field(None, description="Present on success")


class AnalysisResponse(_CamelModel):
    """
    Response envelope returned to the host layer.

    ``http_status`` is the suggested status code; it is not part of the
    JSON body.
    """

    success: bool
    data: AnalysisArtifactSchema | None = None
    error: str | None = None
    code: str | None = None
    details: dict[str, Any] | None = None
    metadata: ResponseMetadata
    http_status: int = Field(200, exclude=True)

    def to_json_dict(self) -> dict[str, Any]:
        """camelCase body without the keys that do not apply."""
        body = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in body.items() if value is not None}


def get_json_schema() -> dict[str, Any]:
    """JSON Schema of the response envelope, for host API documentation."""
    return AnalysisResponse.model_json_schema(by_alias=True)
