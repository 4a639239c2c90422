"""
Parser configuration with resource limits.

These limits keep pathological statements (megabyte-sized generated SQL,
deeply nested subqueries) from exhausting memory or the recursion limit.
The defaults are generous for hand-written queries.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParserConfig(BaseModel):
    """
    Configuration for the statement parser.

    Attributes:
        max_sql_length: Maximum statement length in characters.
        max_tokens: Maximum number of lexical tokens.
        max_subquery_depth: Deepest accepted subquery nesting. 1 allows a
            subquery in FROM or IN (SELECT ...) but not one inside another.

    Example:
        # Stricter limits for a web API
        config = ParserConfig(max_sql_length=20_000)
    """

    model_config = ConfigDict(frozen=True)

    max_sql_length: int = Field(
        default=200_000,
        gt=0,
        description="Maximum statement length in characters",
    )

    max_tokens: int = Field(
        default=20_000,
        gt=0,
        description="Maximum number of tokens",
    )

    max_subquery_depth: int = Field(
        default=1,
        ge=0,
        description="Maximum subquery nesting level",
    )


DEFAULT_CONFIG = ParserConfig()
