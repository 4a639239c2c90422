"""
Index coverage analysis.

For every physical table occurrence of a statement (and of each one-level
subquery not hanging under an OR), works out the ideal composite B-tree
index and compares it with what the catalog already has.

Technical approach:
1. Candidate predicates split into equality class and range class
2. Ideal order: equality columns (most selective first), at most one
   range column, then GROUP BY / ORDER BY columns of the table
3. Coverage of an existing index = shared leading prefix / ideal length
4. Below create_threshold: EXTEND_INDEX when the best index is a
   non-unique strict prefix of the ideal order that already holds the
   equality columns (or reaches extend_threshold), CREATE_INDEX otherwise
5. Non-unique indexes that are a strict prefix (or an exact duplicate) of
   another index of the same type: DROP_REDUNDANT
6. Recommendations for the same physical table are consolidated, then
   sorted by score

Usage:
    analyzer = IndexCoverageAnalyzer()
    recommendations = analyzer.analyze(query, indexes, statistics)

    report = analyzer.report(query, indexes, statistics)
    for table in report.tables:
        print(table.alias, table.ideal_column_names, table.coverage)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Iterator, Sequence

from queryartifacts.analyzer.ddl import (
    create_index_ddl,
    drop_redundant_ddl,
    extend_index_ddl,
    index_name_for,
)
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
from queryartifacts.analyzer.scoring import (
    benefit_score,
    confidence_for,
    drop_score,
    estimate_selectivity,
)
from queryartifacts.catalog.models import (
    ColumnStatistics,
    IndexColumn,
    IndexMetadata,
    IndexStatus,
    IndexType,
    SortOrder,
)
from queryartifacts.config import Config, get_config
from queryartifacts.exceptions import AnalysisError
from queryartifacts.parser.models import ParsedQuery, PredicateClass, TableRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Candidate:
    """A candidate column with its best predicate estimate."""

    column: str
    selectivity: float | None
    position: int
    has_statistics: bool


class _CatalogView:
    """
    Lookup of catalog rows by table occurrence.

    Tables without an owner (a query analysed before being bound to a
    schema) match on table name alone.
    """

    def __init__(
        self,
        indexes: Sequence[IndexMetadata],
        statistics: Sequence[ColumnStatistics],
    ) -> None:
        self.indexes = list(indexes)
        self._statistics: dict[tuple[str, str, str], ColumnStatistics] = {}
        for stats in statistics:
            self._statistics.setdefault((stats.owner, stats.table, stats.column), stats)

    def indexes_on(self, table: TableRef) -> list[IndexMetadata]:
        return [
            i for i in self.indexes
            if i.table == table.name and (table.owner is None or i.owner == table.owner)
        ]

    def statistics_for(self, table: TableRef, column: str) -> ColumnStatistics | None:
        if table.owner:
            return self._statistics.get((table.owner, table.name, column))
        for (_, name, col), stats in self._statistics.items():
            if name == table.name and col == column:
                return stats
        return None


def _common_prefix(left: Sequence[str], right: Sequence[str]) -> int:
    length = 0
    for a, b in zip(left, right):
        if a != b:
            break
        length += 1
    return length


def _columns_text(names: Sequence[str]) -> str:
    return "(" + ", ".join(names) + ")"


class IndexCoverageAnalyzer:
    """
    Computes index recommendations for a parsed statement.

    Pure: the result depends only on the query, the index list and the
    statistics passed in, so the same inputs always give the same
    recommendations in the same order.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or get_config()

    def analyze(
        self,
        query: ParsedQuery,
        indexes: Sequence[IndexMetadata] = (),
        statistics: Sequence[ColumnStatistics] = (),
    ) -> list[Recommendation]:
        """Ranked recommendations for ``query``."""
        return list(self.report(query, indexes, statistics).recommendations)

    def report(
        self,
        query: ParsedQuery,
        indexes: Sequence[IndexMetadata] = (),
        statistics: Sequence[ColumnStatistics] = (),
    ) -> CoverageReport:
        """
        Recommendations plus per-table coverage details.

        Raises:
            AnalysisError: If the query breaks a ParsedQuery invariant
        """
        catalog = _CatalogView(indexes, statistics)

        recommendations: list[Recommendation] = []
        coverages: list[TableCoverage] = []
        for scope, depth in self._scopes(query):
            self._check_scope(scope)
            for table in scope.tables:
                if table.derived:
                    continue
                coverage, recommendation = self._analyze_table(
                    scope, table, catalog, depth
                )
                coverages.append(coverage)
                if recommendation is not None:
                    recommendations.append(recommendation)

        recommendations.extend(self._redundant(catalog.indexes))
        ranked = sorted(self._consolidate(recommendations), key=Recommendation.sort_key)

        logger.debug(
            "Coverage analysis: %d table occurrence(s), %d recommendation(s)",
            len(coverages), len(ranked),
        )
        return CoverageReport(tuple(ranked), tuple(coverages))

    # -- scopes

    def _scopes(
        self, query: ParsedQuery, depth: int = 0
    ) -> Iterator[tuple[ParsedQuery, int]]:
        yield query, depth
        for subquery in query.subqueries:
            if subquery.or_group:
                continue
            yield from self._scopes(subquery.query, depth + 1)

    def _check_scope(self, scope: ParsedQuery) -> None:
        aliases = {t.alias for t in scope.tables}
        refs = [p.column for p in scope.predicates]
        refs.extend(p.join_partner for p in scope.predicates if p.join_partner)
        refs.extend(scope.group_by_columns)
        refs.extend(k.column for k in scope.order_by_columns)
        for ref in refs:
            if ref.table not in aliases:
                raise AnalysisError(
                    f"Column {ref.qualified_name} references table alias "
                    f"{ref.table}, which is not in the FROM clause"
                )

    # -- per table

    def _rank(self, candidate: _Candidate) -> tuple[float, int]:
        selectivity = candidate.selectivity
        if selectivity is None:
            selectivity = self.config.neutral_selectivity
        return selectivity, candidate.position

    def _candidates(
        self,
        scope: ParsedQuery,
        table: TableRef,
        catalog: _CatalogView,
    ) -> tuple[list[_Candidate], list[_Candidate], list[ExcludedColumn]]:
        equality: dict[str, _Candidate] = {}
        ranges: dict[str, _Candidate] = {}
        excluded: dict[str, str] = {}

        for position, predicate in enumerate(scope.predicates_for(table.alias)):
            name = predicate.column.column
            if not predicate.is_index_candidate:
                if predicate.or_group:
                    reason = "or_group"
                elif predicate.exclusion_reason is not None:
                    reason = predicate.exclusion_reason.value
                else:
                    reason = predicate.predicate_class.value
                excluded.setdefault(name, reason)
                continue

            stats = catalog.statistics_for(table, name)
            candidate = _Candidate(
                column=name,
                selectivity=estimate_selectivity(predicate, stats),
                position=position,
                has_statistics=stats is not None and stats.selectivity is not None,
            )
            target = equality if predicate.predicate_class == PredicateClass.EQUALITY else ranges
            current = target.get(name)
            if current is None or self._rank(candidate) < self._rank(current):
                target[name] = candidate

        for name in list(ranges):
            if name in equality:
                del ranges[name]
        ordered_equality = sorted(equality.values(), key=self._rank)
        ordered_ranges = sorted(ranges.values(), key=self._rank)
        left_out = [
            ExcludedColumn(name, reason)
            for name, reason in excluded.items()
            if name not in equality and name not in ranges
        ]
        return ordered_equality, ordered_ranges, left_out

    def _sort_columns(self, scope: ParsedQuery, alias: str) -> list[IndexColumn]:
        """GROUP BY then ORDER BY columns of ``alias``, with key directions."""
        order_keys = [k for k in scope.order_by_columns if k.column.table == alias]
        # A uniform direction is served by scanning the index either way
        mixed = len({k.descending for k in order_keys}) > 1

        columns: list[IndexColumn] = []
        seen: set[str] = set()
        for ref in scope.group_by_columns:
            if ref.table == alias and ref.column not in seen:
                seen.add(ref.column)
                columns.append(IndexColumn(name=ref.column))
        for key in order_keys:
            if key.column.column in seen:
                continue
            seen.add(key.column.column)
            order = SortOrder.DESC if mixed and key.descending else SortOrder.ASC
            columns.append(IndexColumn(name=key.column.column, order=order))
        return columns

    def _sort_avoided(
        self,
        scope: ParsedQuery,
        alias: str,
        equality_names: set[str],
        ideal_names: tuple[str, ...],
    ) -> bool:
        """True when the ideal index returns rows already in sort order."""
        keys = list(scope.group_by_columns) + [k.column for k in scope.order_by_columns]
        if not keys or any(k.table != alias for k in keys):
            return False
        wanted: list[str] = []
        for key in keys:
            if key.column not in equality_names and key.column not in wanted:
                wanted.append(key.column)
        start = len(equality_names)
        return list(ideal_names[start:start + len(wanted)]) == wanted

    def _extendable(self, index: IndexMetadata, ideal_names: tuple[str, ...]) -> bool:
        size = len(index.columns)
        return (
            not index.unique
            and index.index_type == IndexType.BTREE
            and size < len(ideal_names)
            and index.column_names == ideal_names[:size]
        )

    def _best_index(
        self,
        indexes: Sequence[IndexMetadata],
        ideal_names: tuple[str, ...],
    ) -> tuple[IndexMetadata | None, int]:
        ranked = sorted(
            (
                (_common_prefix(i.column_names, ideal_names), i)
                for i in indexes
                if i.usable_for_coverage
            ),
            key=lambda pair: (
                -pair[0],
                not self._extendable(pair[1], ideal_names),
                len(pair[1].columns),
                pair[1].index_name,
            ),
        )
        if not ranked or ranked[0][0] == 0:
            return None, 0
        prefix, index = ranked[0]
        return index, prefix

    def _analyze_table(
        self,
        scope: ParsedQuery,
        table: TableRef,
        catalog: _CatalogView,
        depth: int,
    ) -> tuple[TableCoverage, Recommendation | None]:
        equality, ranges, excluded = self._candidates(scope, table, catalog)
        if not equality and not ranges:
            return TableCoverage(
                alias=table.alias,
                table=table.qualified_name,
                excluded_columns=tuple(excluded),
                scope_depth=depth,
            ), None

        chosen = list(equality)
        if ranges:
            chosen.append(ranges[0])
        ideal = [IndexColumn(name=c.column) for c in chosen]
        names = {c.column for c in chosen}
        # Columns filtered only by OR groups or unusable predicates stay out
        names.update(e.column for e in excluded)
        for column in self._sort_columns(scope, table.alias):
            if column.name not in names:
                names.add(column.name)
                ideal.append(column)
        ideal_names = tuple(c.name for c in ideal)

        best, prefix = self._best_index(catalog.indexes_on(table), ideal_names)
        coverage = prefix / len(ideal_names) * 100.0
        table_coverage = TableCoverage(
            alias=table.alias,
            table=table.qualified_name,
            ideal_columns=tuple(ideal),
            best_index=best.index_name if best else None,
            coverage=round(coverage, 1),
            excluded_columns=tuple(excluded),
            scope_depth=depth,
        )
        if coverage >= self.config.create_threshold:
            return table_coverage, None

        selectivity = 1.0
        for candidate in chosen:
            if candidate.selectivity is None:
                selectivity *= self.config.neutral_selectivity
            else:
                selectivity *= candidate.selectivity
        equality_names = {c.column for c in equality}
        covering = (
            table.alias not in scope.star_aliases
            and scope.columns_for(table.alias) <= set(ideal_names)
        )
        score = benefit_score(
            selectivity,
            self._sort_avoided(scope, table.alias, equality_names, ideal_names),
            covering,
            self.config,
        )
        confidence = confidence_for(c.has_statistics for c in chosen)

        if (
            best is not None
            and self._extendable(best, ideal_names)
            and (
                equality_names <= set(best.column_names)
                or coverage >= self.config.extend_threshold
            )
        ):
            added = ideal_names[len(best.columns):]
            recommendation = Recommendation(
                kind=RecommendationKind.EXTEND_INDEX,
                table=table.qualified_name,
                columns=tuple(ideal),
                benefit_score=score,
                rationale=Rationale(
                    ReasonCode.MISSING_TRAILING_COLUMNS,
                    f"{best.index_name} already leads with "
                    f"{_columns_text(best.column_names)}; appending "
                    f"{_columns_text(added)} gives the ideal order "
                    f"{_columns_text(ideal_names)}.",
                ),
                generated_ddl=extend_index_ddl(best, ideal),
                index_name=best.index_name,
                target_index=best.index_name,
                confidence=confidence,
            )
            return table_coverage, recommendation

        index_name = index_name_for(
            table.name, ideal_names, self.config.index_name_max_length
        )
        if best is None:
            rationale = Rationale(
                ReasonCode.NO_USABLE_INDEX,
                f"No usable index on {table.qualified_name} leads with "
                f"{ideal_names[0]}; ideal order is {_columns_text(ideal_names)}.",
            )
        else:
            rationale = Rationale(
                ReasonCode.INSUFFICIENT_COVERAGE,
                f"Best existing index {best.index_name} covers {coverage:.1f}% of "
                f"the ideal order {_columns_text(ideal_names)}.",
            )
        recommendation = Recommendation(
            kind=RecommendationKind.CREATE_INDEX,
            table=table.qualified_name,
            columns=tuple(ideal),
            benefit_score=score,
            rationale=rationale,
            generated_ddl=create_index_ddl(table.owner, table.name, index_name, ideal),
            index_name=index_name,
            confidence=confidence,
        )
        return table_coverage, recommendation

    # -- redundancy

    def _covered_by(
        self, index: IndexMetadata, group: Sequence[IndexMetadata]
    ) -> list[tuple[IndexMetadata, ReasonCode]]:
        """Indexes of ``group`` that serve every lookup ``index`` does."""
        size = len(index.columns)
        matches: list[tuple[IndexMetadata, ReasonCode]] = []
        for other in group:
            if (
                other is index
                or other.index_type != index.index_type
                or other.status != IndexStatus.VALID
            ):
                continue
            if len(other.columns) > size and other.columns[:size] == index.columns:
                matches.append((other, ReasonCode.PREFIX_REDUNDANT))
            elif other.columns == index.columns and (
                other.unique or other.index_name < index.index_name
            ):
                matches.append((other, ReasonCode.DUPLICATE_INDEX))
        return matches

    def _redundant(self, indexes: Sequence[IndexMetadata]) -> list[Recommendation]:
        """DROP_REDUNDANT for prefix and duplicate indexes. UNIQUE ones stay."""
        by_table: dict[str, list[IndexMetadata]] = defaultdict(list)
        for index in indexes:
            by_table[index.qualified_table].append(index)

        recommendations: list[Recommendation] = []
        for table in sorted(by_table):
            group = sorted(by_table[table], key=lambda i: i.index_name)
            served = {
                index.index_name: self._covered_by(index, group)
                for index in group
                if not index.unique
            }
            flagged = {name for name, matches in served.items() if matches}
            for index in group:
                matches = served.get(index.index_name)
                if not matches:
                    continue
                # Point at the widest index that is not itself being dropped
                other, code = min(
                    matches,
                    key=lambda m: (
                        m[0].index_name in flagged,
                        -len(m[0].columns),
                        m[0].index_name,
                    ),
                )
                if code == ReasonCode.DUPLICATE_INDEX:
                    text = (
                        f"{index.index_name} has the same key columns as "
                        f"{other.index_name} {_columns_text(other.column_names)}."
                    )
                else:
                    text = (
                        f"{index.index_name} {_columns_text(index.column_names)} is a "
                        f"leading prefix of {other.index_name} "
                        f"{_columns_text(other.column_names)}, which serves every "
                        "lookup it does."
                    )
                recommendations.append(
                    Recommendation(
                        kind=RecommendationKind.DROP_REDUNDANT,
                        table=table,
                        columns=index.columns,
                        benefit_score=drop_score(index),
                        rationale=Rationale(code, text),
                        generated_ddl=drop_redundant_ddl(index),
                        index_name=index.index_name,
                        target_index=other.index_name,
                        confidence=(
                            Confidence.HIGH if index.leaf_blocks is not None
                            else Confidence.MEDIUM
                        ),
                    )
                )
        return recommendations

    # -- consolidation

    def _consolidate(self, recommendations: list[Recommendation]) -> list[Recommendation]:
        """
        Merge recommendations made for the same physical table.

        Self-joins and subqueries can ask for the same index more than once;
        identical column lists keep the best score, and a CREATE_INDEX that
        is a strict prefix of a longer recommendation is folded into it.
        """
        drops = [r for r in recommendations if r.kind == RecommendationKind.DROP_REDUNDANT]
        builds: dict[tuple[str, tuple[str, ...]], Recommendation] = {}
        for rec in recommendations:
            if rec.kind == RecommendationKind.DROP_REDUNDANT:
                continue
            key = (rec.table, rec.column_names)
            current = builds.get(key)
            if current is None or rec.benefit_score > current.benefit_score:
                builds[key] = rec

        kept: dict[tuple[str, tuple[str, ...]], Recommendation] = {}
        for key, rec in sorted(builds.items(), key=lambda item: -len(item[1].columns)):
            size = len(rec.columns)
            longer = [
                other_key for other_key, other in kept.items()
                if other.table == rec.table
                and len(other.columns) > size
                and other.column_names[:size] == rec.column_names
                and (
                    rec.kind == RecommendationKind.CREATE_INDEX
                    or (
                        other.kind == RecommendationKind.EXTEND_INDEX
                        and other.target_index == rec.target_index
                    )
                )
            ]
            if not longer:
                kept[key] = rec
                continue
            target_key = min(longer, key=lambda k: (len(k[1]), k[1]))
            target = kept[target_key]
            if rec.benefit_score > target.benefit_score:
                kept[target_key] = replace(target, benefit_score=rec.benefit_score)

        extended = {
            r.target_index for r in kept.values()
            if r.kind == RecommendationKind.EXTEND_INDEX
        }
        # An index about to be rebuilt wider is no longer a prefix of anything
        drops = [d for d in drops if d.index_name not in extended]
        return list(kept.values()) + drops
