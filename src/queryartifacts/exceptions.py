"""
Package-level exception hierarchy for queryartifacts.

All exceptions inherit from QueryArtifactsError, enabling:
- Catching all engine errors with a single except clause
- A typed ``kind`` the caller can branch on (no string matching)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    QueryArtifactsError
    ├── ParseError          – SQL text could not be turned into a ParsedQuery
    ├── MetadataError       – Catalog metadata could not be fetched
    ├── AnalysisError       – Internal invariant broken during analysis
    └── ConfigurationError  – Invalid configuration or catalog snapshot
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from queryartifacts.parser.models import ParsedQuery, TableRef


class QueryArtifactsError(Exception):
    """
    Base exception for all queryartifacts errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def code(self) -> str:
        """Stable machine-readable error code."""
        return "INTERNAL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }


# ── Parse Errors ─────────────────────────────────────────────────────────


class ParseErrorKind(str, Enum):
    """Why a statement could not be parsed."""

    UNSUPPORTED_STATEMENT_TYPE = "UNSUPPORTED_STATEMENT_TYPE"
    NESTING_TOO_DEEP = "NESTING_TOO_DEEP"
    UNRESOLVED_COLUMN_REFERENCE = "UNRESOLVED_COLUMN_REFERENCE"
    MALFORMED_SYNTAX = "MALFORMED_SYNTAX"


class ParseError(QueryArtifactsError):
    """
    Failed to parse the SQL statement.

    Always surfaced to the caller verbatim and never retried.

    Attributes:
        kind: The parse failure category.
        position: Character offset in the SQL text, when known.
        statement_type: Detected statement type for unsupported statements.
    """

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        position: int | None = None,
        statement_type: str | None = None,
    ) -> None:
        self.kind = kind
        self.position = position
        self.statement_type = statement_type
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["position"] = self.position
        result["statement_type"] = self.statement_type
        return result


# ── Metadata Errors ──────────────────────────────────────────────────────


class MetadataErrorKind(str, Enum):
    """Why catalog metadata could not be fetched."""

    ACCESS_DENIED = "ACCESS_DENIED"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    CONNECTION_UNAVAILABLE = "CONNECTION_UNAVAILABLE"


class MetadataError(QueryArtifactsError):
    """
    Catalog metadata could not be fetched for the referenced tables.

    The orchestrator attaches the successfully parsed query so the caller
    can still show what was understood. Not retried automatically.

    Attributes:
        kind: The metadata failure category.
        tables: Qualified names of the tables the failure applies to.
        parsed_query: The query that was parsed before the failure.
    """

    def __init__(
        self,
        kind: MetadataErrorKind,
        message: str,
        tables: tuple[str, ...] = (),
        parsed_query: "ParsedQuery | None" = None,
    ) -> None:
        self.kind = kind
        self.tables = tables
        self.parsed_query = parsed_query
        super().__init__(message)

    @classmethod
    def for_tables(
        cls,
        kind: MetadataErrorKind,
        tables: "list[TableRef] | tuple[TableRef, ...]",
        detail: str,
    ) -> "MetadataError":
        names = tuple(t.qualified_name for t in tables)
        return cls(kind, f"{detail}: {', '.join(names)}", tables=names)

    def with_query(self, parsed_query: "ParsedQuery") -> "MetadataError":
        """Return a copy carrying the parsed query."""
        return MetadataError(
            self.kind,
            self.message,
            tables=self.tables,
            parsed_query=parsed_query,
        )

    @property
    def code(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["tables"] = list(self.tables)
        return result


# ── Analysis Errors ──────────────────────────────────────────────────────


class AnalysisErrorKind(str, Enum):
    """Analysis failure categories."""

    INTERNAL_INVARIANT_VIOLATION = "INTERNAL_INVARIANT_VIOLATION"


class AnalysisError(QueryArtifactsError):
    """
    A consistency check failed inside the analyzer.

    Parsing should make these impossible; when one does occur the
    orchestrator degrades to an empty recommendation list with a warning.
    """

    def __init__(
        self,
        message: str,
        kind: AnalysisErrorKind = AnalysisErrorKind.INTERNAL_INVARIANT_VIOLATION,
    ) -> None:
        self.kind = kind
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.kind.value


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(QueryArtifactsError):
    """
    Invalid configuration or catalog snapshot.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    @property
    def code(self) -> str:
        return "CONFIGURATION_ERROR"

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
