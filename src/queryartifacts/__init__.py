"""queryartifacts - index coverage analysis for Oracle SELECT statements."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from queryartifacts.exceptions import (
    AnalysisError,
    AnalysisErrorKind,
    ConfigurationError,
    MetadataError,
    MetadataErrorKind,
    ParseError,
    ParseErrorKind,
    QueryArtifactsError,
)

from queryartifacts.config import Config, get_config, reset_config
from queryartifacts.parser import ParsedQuery, ParserConfig, StatementParser, parse_sql
from queryartifacts.catalog import (
    CachingCatalogProvider,
    CatalogMetadataProvider,
    ColumnStatistics,
    IndexMetadata,
    OracleCatalogProvider,
    StaticCatalogProvider,
)
from queryartifacts.analyzer import (
    IndexCoverageAnalyzer,
    Recommendation,
    RecommendationKind,
    plan_access_path,
)
from queryartifacts.engine import (
    AnalysisArtifact,
    AnalysisOptions,
    AnalysisOrchestrator,
    http_status_for,
)
from queryartifacts.output import AnalysisRequest, AnalysisResponse, OutputFormat, render

__all__ = [
    "__version__",
    # Exceptions
    "QueryArtifactsError",
    "ParseError",
    "ParseErrorKind",
    "MetadataError",
    "MetadataErrorKind",
    "AnalysisError",
    "AnalysisErrorKind",
    "ConfigurationError",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Parsing
    "StatementParser",
    "ParserConfig",
    "ParsedQuery",
    "parse_sql",
    # Catalog
    "CatalogMetadataProvider",
    "StaticCatalogProvider",
    "OracleCatalogProvider",
    "CachingCatalogProvider",
    "IndexMetadata",
    "ColumnStatistics",
    # Analysis
    "IndexCoverageAnalyzer",
    "Recommendation",
    "RecommendationKind",
    "plan_access_path",
    # Orchestration
    "AnalysisOrchestrator",
    "AnalysisOptions",
    "AnalysisArtifact",
    "AnalysisRequest",
    "AnalysisResponse",
    "http_status_for",
    # Output
    "OutputFormat",
    "render",
]
