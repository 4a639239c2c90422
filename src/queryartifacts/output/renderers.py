"""
Output renderers for different formats.

Separates presentation logic from analysis logic.
Uses schema.py Pydantic models as the single source of truth
for JSON serialization.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING

from queryartifacts.analyzer.models import RecommendationKind

if TYPE_CHECKING:
    from queryartifacts.analyzer.models import Recommendation
    from queryartifacts.engine import AnalysisArtifact
    from queryartifacts.parser.models import ParsedQuery


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    MARKDOWN = "markdown"


def render(artifact: "AnalysisArtifact", format: OutputFormat = OutputFormat.TEXT) -> str:
    """
    Render an analysis artifact in the specified format.

    Args:
        artifact: Analysis artifact to render
        format: Output format (text, json, markdown)

    Returns:
        Formatted string
    """
    if format == OutputFormat.TEXT:
        return render_text(artifact)
    elif format == OutputFormat.JSON:
        return render_json(artifact)
    elif format == OutputFormat.MARKDOWN:
        return render_markdown(artifact)
    else:
        raise ValueError(f"Unknown output format: {format}")


_KIND_LABELS = {
    RecommendationKind.CREATE_INDEX: "CREATE",
    RecommendationKind.EXTEND_INDEX: "EXTEND",
    RecommendationKind.DROP_REDUNDANT: "DROP",
}


def _columns(rec: "Recommendation") -> str:
    return ", ".join(c.render() for c in rec.columns)


# =============================================================================
# Text renderer
# =============================================================================


def render_text(artifact: "AnalysisArtifact") -> str:
    """Plain terminal text report."""
    summary = artifact.summary
    lines: list[str] = []
    lines.append("=" * 60)
    lines.append("Query Artifact Analysis")
    lines.append("=" * 60)
    lines.append("")
    lines.append(f"Analysis ID: {artifact.analysis_id}")
    lines.append(f"Health: {summary.health_score}/100 (grade {summary.grade.value})")
    lines.append(
        f"Tables: {', '.join(t.qualified_name for t in artifact.parsed_query.catalog_tables())}"
    )
    lines.append("")

    if artifact.coverage:
        lines.append("Coverage:")
        for cov in artifact.coverage:
            if cov.coverage is None:
                lines.append(f"  {cov.alias} ({cov.table}): no index-usable predicate")
                continue
            best = cov.best_index or "none"
            lines.append(
                f"  {cov.alias} ({cov.table}): ideal ({', '.join(cov.ideal_column_names)})"
                f", best {best} at {cov.coverage:.1f}%"
            )
        lines.append("")

    if artifact.recommendations:
        lines.append("-" * 60)
        lines.append("RECOMMENDATIONS")
        lines.append("-" * 60)
        for i, rec in enumerate(artifact.recommendations, 1):
            lines.append("")
            lines.append(
                f"[{i}] {_KIND_LABELS[rec.kind]} {rec.index_name} on {rec.table} "
                f"({_columns(rec)})"
            )
            lines.append(
                f"    Score: {rec.benefit_score:.1f}  Confidence: {rec.confidence.value}"
                f"  Reason: {rec.rationale.code.value}"
            )
            lines.append(f"    {rec.rationale.text}")
            lines.append("")
            for ddl_line in rec.generated_ddl.split("\n"):
                lines.append(f"      {ddl_line}")
    else:
        lines.append("No index changes recommended")

    if artifact.hints:
        lines.append("")
        lines.append(f"Hints: {artifact.hints}")

    if artifact.warnings:
        lines.append("")
        lines.append("Warnings:")
        for warning in artifact.warnings:
            lines.append(f"  - {warning}")

    lines.append("")
    lines.append("=" * 60)
    return "\n".join(lines)


# =============================================================================
# JSON renderer (uses schema models)
# =============================================================================


def render_json(artifact: "AnalysisArtifact", indent: int = 2) -> str:
    """
    Render the artifact through AnalysisArtifactSchema.

    camelCase keys, same shape as the ``data`` member of the API envelope.
    """
    return json.dumps(artifact.to_dict(), indent=indent)


def render_parsed_json(query: "ParsedQuery", indent: int = 2) -> str:
    return json.dumps(query.to_dict(), indent=indent)


# =============================================================================
# Markdown renderer
# =============================================================================


def render_markdown(artifact: "AnalysisArtifact") -> str:
    """
    Render the artifact as Markdown.

    Suitable for issue comments and review notes.
    """
    summary = artifact.summary
    lines: list[str] = []
    lines.append("# Query Artifact Analysis")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Health | {summary.health_score}/100 ({summary.grade.value}) |")
    lines.append(f"| CREATE_INDEX | {summary.create_count} |")
    lines.append(f"| EXTEND_INDEX | {summary.extend_count} |")
    lines.append(f"| DROP_REDUNDANT | {summary.drop_count} |")
    lines.append(f"| Analysis ID | `{artifact.analysis_id}` |")
    lines.append("")

    if artifact.recommendations:
        lines.append("## Recommendations")
        lines.append("")
        for i, rec in enumerate(artifact.recommendations, 1):
            lines.append(f"### {i}. {rec.kind.value} `{rec.index_name}`")
            lines.append("")
            lines.append(f"**Table:** `{rec.table}`  ")
            lines.append(f"**Columns:** `{_columns(rec)}`  ")
            lines.append(
                f"**Score:** {rec.benefit_score:.1f} ({rec.confidence.value} confidence)"
            )
            lines.append("")
            lines.append(rec.rationale.text)
            lines.append("")
            lines.append("```sql")
            lines.append(rec.generated_ddl)
            lines.append("```")
            lines.append("")
    else:
        lines.append("No index changes recommended.")
        lines.append("")

    if artifact.hints:
        lines.append(f"**Hints:** `{artifact.hints}`")
        lines.append("")

    if artifact.warnings:
        lines.append("<details>")
        lines.append("<summary>Warnings</summary>")
        lines.append("")
        for warning in artifact.warnings:
            lines.append(f"- {warning}")
        lines.append("")
        lines.append("</details>")

    return "\n".join(lines)
