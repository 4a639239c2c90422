"""
AnalysisOrchestrator - single entry point for running an analysis.

Sequences one request: parse -> bind owner -> fetch catalog metadata ->
analyze -> assemble an AnalysisArtifact. The catalog fetch is the only
await; everything else is pure and synchronous.

Design principle: Ports & Adapters
- This is the "application layer" that coordinates domain operations
- It depends only on the parser, the analyzer and the
  CatalogMetadataProvider protocol
- Delivery mechanisms (CLI, host API handler) are thin adapters around it

Usage:
    from queryartifacts.engine import AnalysisOrchestrator, AnalysisOptions

    orchestrator = AnalysisOrchestrator(provider)

    # Library use: raises ParseError / MetadataError
    artifact = await orchestrator.analyze(sql, owner="HR")

    # Host API use: never raises for engine errors
    response = await orchestrator.respond(AnalysisRequest(connectionId="prod", sql=sql))
    return response.http_status, response.to_json_dict()
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from queryartifacts.analyzer import (
    AccessPath,
    CoverageReport,
    IndexCoverageAnalyzer,
    Recommendation,
    RecommendationKind,
    TableCoverage,
    plan_access_path,
)
from queryartifacts.catalog.models import ColumnStatistics, IndexMetadata
from queryartifacts.catalog.provider import CatalogMetadataProvider
from queryartifacts.config import Config, get_config
from queryartifacts.exceptions import (
    AnalysisError,
    MetadataError,
    MetadataErrorKind,
    ParseError,
    ParseErrorKind,
    QueryArtifactsError,
)
from queryartifacts.output.schema import (
    AnalysisArtifactSchema,
    AnalysisRequest,
    AnalysisResponse,
    ResponseMetadata,
)
from queryartifacts.parser import ParsedQuery, ParserConfig, StatementParser

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_analysis_id() -> str:
    """qa_<epoch millis>_<7 random chars>."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"qa_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class AnalysisOptions:
    """
    Per-call switches.

    Attributes:
        include_statistics: Fetch column statistics; without them every
            column scores with the neutral selectivity
        include_hints: Put LEADING / USE_NL hints on the artifact
        target_schema: Owner for unqualified tables when no explicit
            owner is passed
    """

    include_statistics: bool = True
    include_hints: bool = False
    target_schema: str | None = None


class HealthGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"

    @classmethod
    def for_score(cls, score: int) -> "HealthGrade":
        if score >= 90:
            return cls.A
        if score >= 75:
            return cls.B
        if score >= 60:
            return cls.C
        if score >= 40:
            return cls.D
        return cls.F


@dataclass(frozen=True)
class ArtifactSummary:
    """
    Headline numbers for one analysis.

    Health starts at 100; every missing or incomplete index costs 10
    points, 30 when it is on the table the access path drives from.
    """

    health_score: int
    grade: HealthGrade
    create_count: int = 0
    extend_count: int = 0
    drop_count: int = 0
    tables_analyzed: int = 0

    @classmethod
    def build(
        cls,
        query: ParsedQuery,
        report: CoverageReport,
        access_path: AccessPath,
    ) -> "ArtifactSummary":
        driving = None
        if access_path.order:
            table = query.table(access_path.order[0])
            if table is not None:
                driving = table.qualified_name

        critical = missing = 0
        for rec in report.recommendations:
            if rec.kind == RecommendationKind.DROP_REDUNDANT:
                continue
            if rec.table == driving:
                critical += 1
            else:
                missing += 1
        score = max(0, min(100, 100 - 10 * missing - 30 * critical))
        return cls(
            health_score=score,
            grade=HealthGrade.for_score(score),
            create_count=len(report.recommendations_of(RecommendationKind.CREATE_INDEX)),
            extend_count=len(report.recommendations_of(RecommendationKind.EXTEND_INDEX)),
            drop_count=len(report.recommendations_of(RecommendationKind.DROP_REDUNDANT)),
            tables_analyzed=len(report.tables),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthScore": self.health_score,
            "grade": self.grade.value,
            "createCount": self.create_count,
            "extendCount": self.extend_count,
            "dropCount": self.drop_count,
            "tablesAnalyzed": self.tables_analyzed,
        }


@dataclass(frozen=True)
class AnalysisArtifact:
    """Everything one analysis produced. Built once, never mutated."""

    analysis_id: str
    analyzed_at: datetime
    connection_id: str
    parsed_query: ParsedQuery
    indexes: tuple[IndexMetadata, ...]
    statistics: tuple[ColumnStatistics, ...]
    recommendations: tuple[Recommendation, ...]
    coverage: tuple[TableCoverage, ...]
    access_path: AccessPath
    summary: ArtifactSummary
    hints: str | None
    warnings: tuple[str, ...]
    timing_ms: float

    def to_schema(self) -> AnalysisArtifactSchema:
        return AnalysisArtifactSchema(
            analysis_id=self.analysis_id,
            analyzed_at=self.analyzed_at.isoformat(),
            connection_id=self.connection_id,
            parsed_query=self.parsed_query.to_dict(),
            indexes=list(self.indexes),
            statistics=list(self.statistics),
            recommendations=[r.to_dict() for r in self.recommendations],
            coverage=[c.to_dict() for c in self.coverage],
            access_path=self.access_path.to_dict(),
            summary=self.summary.to_dict(),
            hints=self.hints,
            warnings=list(self.warnings),
            timing_ms=self.timing_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_schema().model_dump(mode="json", by_alias=True)


def http_status_for(error: Exception) -> int:
    """Suggested HTTP status for an engine error."""
    if isinstance(error, ParseError):
        return 400
    if isinstance(error, MetadataError):
        return {
            MetadataErrorKind.ACCESS_DENIED: 403,
            MetadataErrorKind.TABLE_NOT_FOUND: 404,
            MetadataErrorKind.CONNECTION_UNAVAILABLE: 503,
        }[error.kind]
    return 500


def _collect_warnings(query: ParsedQuery) -> list[str]:
    warnings = list(query.warnings)
    for subquery in query.subqueries:
        for warning in _collect_warnings(subquery.query):
            if warning not in warnings:
                warnings.append(warning)
    return warnings


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class AnalysisOrchestrator:
    """
    Runs parse -> fetch -> analyze for one statement at a time.

    Holds no per-request state, so one instance can serve concurrent
    requests; the only shared state is whatever cache the provider keeps.
    """

    def __init__(
        self,
        provider: CatalogMetadataProvider,
        config: Config | None = None,
        parser: StatementParser | None = None,
        analyzer: IndexCoverageAnalyzer | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or get_config()
        self.parser = parser or StatementParser(
            ParserConfig(max_subquery_depth=self.config.max_subquery_depth)
        )
        self.analyzer = analyzer or IndexCoverageAnalyzer(self.config)

    async def _resolve_owner(
        self, owner: str | None, options: AnalysisOptions
    ) -> str | None:
        resolved = owner or options.target_schema or self.config.default_schema
        if resolved is None:
            resolved = await self.provider.default_schema()
        return resolved.upper() if resolved and resolved == resolved.lower() else resolved

    async def _fetch(
        self,
        query: ParsedQuery,
        owner: str | None,
        options: AnalysisOptions,
    ) -> tuple[ParsedQuery, list[IndexMetadata], list[ColumnStatistics]]:
        query = query.qualify(await self._resolve_owner(owner, options))
        tables = query.catalog_tables()
        indexes = await self.provider.fetch_indexes(tables)
        statistics: list[ColumnStatistics] = []
        if options.include_statistics:
            statistics = await self.provider.fetch_column_statistics(tables)
        return query, indexes, statistics

    async def analyze(
        self,
        sql: str,
        owner: str | None = None,
        options: AnalysisOptions | None = None,
    ) -> AnalysisArtifact:
        """
        Analyze one SELECT statement.

        Args:
            sql: SQL text
            owner: Schema for unqualified tables (wins over
                options.target_schema and the connection default)
            options: Per-call switches

        Raises:
            ParseError: The statement could not be parsed; nothing was fetched
            MetadataError: Catalog fetch failed; carries the parsed query
        """
        options = options or AnalysisOptions()
        started = time.perf_counter()
        analyzed_at = datetime.now(timezone.utc)

        parsed = self.parser.parse(sql)

        timeout = self.config.metadata_timeout_seconds
        try:
            query, indexes, statistics = await asyncio.wait_for(
                self._fetch(parsed, owner, options), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise MetadataError(
                MetadataErrorKind.CONNECTION_UNAVAILABLE,
                f"Catalog metadata fetch timed out after {timeout:g}s",
                tables=tuple(t.qualified_name for t in parsed.catalog_tables()),
                parsed_query=parsed,
            ) from e
        except MetadataError as e:
            raise e.with_query(parsed) from e

        warnings = _collect_warnings(query)
        try:
            report = self.analyzer.report(query, indexes, statistics)
        except AnalysisError as e:
            logger.warning("Analysis degraded: %s", e.message)
            warnings.append(f"Analysis incomplete, no recommendations: {e.message}")
            report = CoverageReport()
        if not options.include_statistics:
            warnings.append(
                "Column statistics were not requested; selectivity uses the neutral default"
            )

        access_path = plan_access_path(query, statistics)
        artifact = AnalysisArtifact(
            analysis_id=new_analysis_id(),
            analyzed_at=analyzed_at,
            connection_id=self.provider.connection_id,
            parsed_query=query,
            indexes=tuple(indexes),
            statistics=tuple(statistics),
            recommendations=report.recommendations,
            coverage=report.tables,
            access_path=access_path,
            summary=ArtifactSummary.build(query, report, access_path),
            hints=access_path.hints if options.include_hints else None,
            warnings=tuple(warnings),
            timing_ms=_elapsed_ms(started),
        )
        logger.info(
            "Analysis %s: %d table(s), %d recommendation(s) in %.1f ms",
            artifact.analysis_id,
            len(query.catalog_tables()),
            len(artifact.recommendations),
            artifact.timing_ms,
        )
        return artifact

    async def respond(self, request: AnalysisRequest) -> AnalysisResponse:
        """
        Run an analysis and wrap it in the response envelope.

        Engine errors and unexpected exceptions become failure envelopes;
        cancellation still propagates.
        """
        started = time.perf_counter()
        analyzed_at = datetime.now(timezone.utc).isoformat()
        if request.connection_id != self.provider.connection_id:
            logger.debug(
                "Request connection %s served by provider %s",
                request.connection_id, self.provider.connection_id,
            )
        options = AnalysisOptions(
            include_statistics=request.options.include_statistics,
            include_hints=request.options.include_hints,
            target_schema=request.options.target_schema,
        )

        try:
            artifact = await self.analyze(request.sql, request.owner, options)
        except QueryArtifactsError as e:
            return self._failure(e, started, analyzed_at)
        except Exception as e:
            logger.exception("Unexpected error during analysis")
            return AnalysisResponse(
                success=False,
                error=f"Internal error: {type(e).__name__}",
                code="INTERNAL_ERROR",
                metadata=ResponseMetadata(
                    execution_time_ms=_elapsed_ms(started),
                    analyzed_at=analyzed_at,
                ),
                http_status=500,
            )

        return AnalysisResponse(
            success=True,
            data=artifact.to_schema(),
            metadata=ResponseMetadata(
                execution_time_ms=_elapsed_ms(started),
                analyzed_at=artifact.analyzed_at.isoformat(),
                analysis_id=artifact.analysis_id,
            ),
        )

    def _failure(
        self, error: QueryArtifactsError, started: float, analyzed_at: str
    ) -> AnalysisResponse:
        details: dict[str, Any] | None = None
        if isinstance(error, ParseError):
            details = {"kind": error.kind.value, "position": error.position}
            if error.kind == ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE:
                details["statementType"] = error.statement_type
        elif isinstance(error, MetadataError):
            details = {"tables": list(error.tables)}
            if error.parsed_query is not None:
                details["parsedQuery"] = error.parsed_query.to_dict()

        status = http_status_for(error)
        log = logger.error if status >= 500 else logger.info
        log("Analysis failed (%s): %s", error.code, error.message)
        return AnalysisResponse(
            success=False,
            error=error.message,
            code=error.code,
            details=details,
            metadata=ResponseMetadata(
                execution_time_ms=_elapsed_ms(started),
                analyzed_at=analyzed_at,
            ),
            http_status=status,
        )
