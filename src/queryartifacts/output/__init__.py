"""Response schema and renderers."""

from queryartifacts.output.renderers import (
    OutputFormat,
    render,
    render_json,
    render_markdown,
    render_parsed_json,
    render_text,
)
from queryartifacts.output.schema import (
    SCHEMA_VERSION,
    AnalysisArtifactSchema,
    AnalysisOptionsSchema,
    AnalysisRequest,
    AnalysisResponse,
    ResponseMetadata,
    get_json_schema,
)

__all__ = [
    "OutputFormat",
    "render",
    "render_json",
    "render_markdown",
    "render_parsed_json",
    "render_text",
    "SCHEMA_VERSION",
    "AnalysisArtifactSchema",
    "AnalysisOptionsSchema",
    "AnalysisRequest",
    "AnalysisResponse",
    "ResponseMetadata",
    "get_json_schema",
]
