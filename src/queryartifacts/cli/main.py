"""
queryartifacts CLI - index coverage analysis for Oracle SELECT statements.

Runs the full analysis against a catalog snapshot (JSON or YAML), so no
database connection is needed.

Usage:
    queryartifacts analyze query.sql --catalog catalog.yaml
    queryartifacts analyze query.sql --catalog catalog.yaml --owner HR --hints
    queryartifacts analyze query.sql --catalog catalog.yaml --json
    queryartifacts parse query.sql
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from queryartifacts import __version__
from queryartifacts.analyzer import RecommendationKind
from queryartifacts.catalog import CachingCatalogProvider, StaticCatalogProvider
from queryartifacts.catalog.provider import CatalogMetadataProvider
from queryartifacts.config import Config, get_config
from queryartifacts.engine import AnalysisArtifact, AnalysisOptions, AnalysisOrchestrator
from queryartifacts.exceptions import (
    ConfigurationError,
    MetadataError,
    ParseError,
    QueryArtifactsError,
)
from queryartifacts.output import OutputFormat, render_json, render_markdown, render_parsed_json
from queryartifacts.parser import ParsedQuery, ParserConfig, StatementParser

app = typer.Typer(
    name="queryartifacts",
    help="Index coverage analysis for Oracle SELECT statements",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"queryartifacts version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log analysis steps to stderr."),
    ] = False,
) -> None:
    """queryartifacts - index recommendations from SQL text and catalog metadata."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[
                RichHandler(console=error_console, show_time=False, show_path=False)
            ],
        )


def _fail(error: QueryArtifactsError) -> typer.Exit:
    error_console.print(f"[red]Error ({error.code}):[/red] {error.message}")
    if isinstance(error, MetadataError) and error.parsed_query is not None:
        tables = ", ".join(t.qualified_name for t in error.parsed_query.catalog_tables())
        error_console.print(f"[dim]Parsed tables: {tables}[/dim]")
    return typer.Exit(code=2 if isinstance(error, ConfigurationError) else 1)


def build_provider(catalog: Path, config: Config) -> CatalogMetadataProvider:
    provider: CatalogMetadataProvider = StaticCatalogProvider.from_file(catalog)
    if config.cache_enabled:
        provider = CachingCatalogProvider(
            provider,
            max_size=config.cache_size,
            ttl_seconds=config.cache_ttl_seconds,
        )
    return provider


def _print_artifact(artifact: AnalysisArtifact) -> None:
    summary = artifact.summary
    style = "green" if summary.grade.value in ("A", "B") else (
        "yellow" if summary.grade.value == "C" else "red"
    )
    console.print(Panel(
        f"Health [{style}]{summary.health_score}/100 ({summary.grade.value})[/{style}]\n"
        f"Tables: {', '.join(t.qualified_name for t in artifact.parsed_query.catalog_tables())}\n"
        f"[dim]{artifact.analysis_id} - {artifact.timing_ms:.1f} ms[/dim]",
        title="queryartifacts",
        border_style=style,
    ))

    if artifact.coverage:
        table = Table(title="Coverage")
        table.add_column("Alias", style="cyan")
        table.add_column("Table")
        table.add_column("Ideal order")
        table.add_column("Best index")
        table.add_column("Coverage", justify="right")
        for cov in artifact.coverage:
            table.add_row(
                cov.alias,
                cov.table,
                ", ".join(c.render() for c in cov.ideal_columns) or "-",
                cov.best_index or "-",
                "-" if cov.coverage is None else f"{cov.coverage:.1f}%",
            )
        console.print(table)

    if not artifact.recommendations:
        console.print("[green]No index changes recommended.[/green]")

    for rec in artifact.recommendations:
        if rec.kind == RecommendationKind.CREATE_INDEX:
            kind_style = "red bold"
        elif rec.kind == RecommendationKind.EXTEND_INDEX:
            kind_style = "yellow"
        else:
            kind_style = "blue"
        console.print(
            f"\n[{kind_style}][{rec.kind.value}][/{kind_style}] {rec.index_name} "
            f"on {rec.table} [dim](score {rec.benefit_score:.1f}, "
            f"{rec.confidence.value} confidence)[/dim]"
        )
        console.print(f"   [dim]{rec.rationale.text}[/dim]")
        for line in rec.generated_ddl.split("\n"):
            if line.startswith("--"):
                console.print(f"   {line}", style="dim", markup=False, highlight=False)
            else:
                console.print(f"   {line}", style="green", markup=False, highlight=False)

    if artifact.hints:
        console.print("\nHints: " + artifact.hints, style="bold", markup=False, highlight=False)
    for warning in artifact.warnings:
        error_console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command()
def analyze(
    sql_file: Annotated[
        Path,
        typer.Argument(
            help="File holding one SELECT statement",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    catalog: Annotated[
        Path,
        typer.Option(
            "--catalog",
            "-c",
            help="Catalog snapshot (JSON or YAML) with indexes and statistics",
        ),
    ],
    owner: Annotated[
        Optional[str],
        typer.Option("--owner", "-o", help="Schema for unqualified tables"),
    ] = None,
    statistics: Annotated[
        bool,
        typer.Option("--stats/--no-stats", help="Use column statistics from the snapshot"),
    ] = True,
    hints: Annotated[
        bool,
        typer.Option("--hints", help="Include LEADING / USE_NL optimizer hints"),
    ] = False,
    output_format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format"),
    ] = OutputFormat.TEXT,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Shortcut for --format json"),
    ] = False,
) -> None:
    """
    Recommend index changes for a SELECT statement.

    Examples:

        $ queryartifacts analyze slow_query.sql --catalog hr.yaml --owner HR

        $ queryartifacts analyze slow_query.sql --catalog hr.yaml --json > report.json
    """
    try:
        config = get_config()
        provider = build_provider(catalog, config)
        orchestrator = AnalysisOrchestrator(provider, config=config)
        options = AnalysisOptions(include_statistics=statistics, include_hints=hints)
        artifact = asyncio.run(
            orchestrator.analyze(sql_file.read_text(), owner=owner, options=options)
        )
    except QueryArtifactsError as e:
        raise _fail(e)

    if json_output:
        output_format = OutputFormat.JSON
    if output_format == OutputFormat.JSON:
        typer.echo(render_json(artifact))
    elif output_format == OutputFormat.MARKDOWN:
        typer.echo(render_markdown(artifact))
    else:
        _print_artifact(artifact)


def _print_parsed(query: ParsedQuery) -> None:
    tables = Table(title="Tables")
    tables.add_column("Alias", style="cyan")
    tables.add_column("Table")
    tables.add_column("Kind")
    for t in query.tables:
        tables.add_row(t.alias, t.qualified_name, "inline view" if t.derived else "table")
    console.print(tables)

    if query.predicates:
        predicates = Table(title="Predicates")
        predicates.add_column("Column", style="cyan")
        predicates.add_column("Operator")
        predicates.add_column("Operand")
        predicates.add_column("Class")
        for p in query.predicates:
            label = p.predicate_class.value
            if p.exclusion_reason is not None:
                label += f" ({p.exclusion_reason.value})"
            if p.or_group:
                label += " [OR]"
            predicates.add_row(
                p.column.qualified_name,
                p.operator.value,
                p.operand.text if p.operand else "",
                label,
            )
        console.print(predicates)

    for join in query.joins:
        console.print(
            f"[bold]{join.join_type.value} JOIN[/bold] "
            f"{join.left.qualified_name} = {join.right.qualified_name}"
        )
    if query.group_by_columns:
        console.print(
            "GROUP BY " + ", ".join(c.qualified_name for c in query.group_by_columns)
        )
    if query.order_by_columns:
        console.print(
            "ORDER BY " + ", ".join(
                k.column.qualified_name + (" DESC" if k.descending else "")
                for k in query.order_by_columns
            )
        )
    for sub in query.subqueries:
        console.print(f"\n[bold]Subquery ({sub.location.value})[/bold]")
        _print_parsed(sub.query)
    for warning in query.warnings:
        error_console.print(f"[yellow]Warning:[/yellow] {warning}")


@app.command()
def parse(
    sql_file: Annotated[
        Path,
        typer.Argument(
            help="File holding one SELECT statement",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output the parsed structure as JSON"),
    ] = False,
) -> None:
    """Show how a statement is understood: tables, predicates, joins, sort keys."""
    try:
        config = get_config()
        parser = StatementParser(ParserConfig(max_subquery_depth=config.max_subquery_depth))
        query = parser.parse(sql_file.read_text())
    except (ParseError, ConfigurationError) as e:
        raise _fail(e)

    if json_output:
        typer.echo(render_parsed_json(query))
    else:
        _print_parsed(query)


if __name__ == "__main__":
    app()
