"""
Join access order and Oracle optimizer hints.

Tables are scored by how selective their filters are and how connected
they are in the join graph; outer-join targets are pushed back since they
cannot drive the join. The order is then walked breadth-first from the
best-scoring table so every table after the first joins to one already
visited.

Example:
    path = plan_access_path(query, statistics)
    path.order   # ('D', 'E')
    path.hints   # '/*+ LEADING(D E) USE_NL(E) */'
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Sequence

from queryartifacts.catalog.models import ColumnStatistics
from queryartifacts.parser.models import ParsedQuery

OUTER_JOIN_PENALTY = -100
INDEXABLE_FILTER_POINTS = 20
JOIN_CONNECTION_POINTS = 5

# (upper bound, points) by equality selectivity
_SELECTIVITY_POINTS = ((0.01, 50), (0.05, 30), (0.10, 10))


@dataclass(frozen=True)
class AccessPath:
    order: tuple[str, ...]
    scores: tuple[tuple[str, int], ...] = ()

    @property
    def hints(self) -> str | None:
        """LEADING / USE_NL hint text; None for single-table statements."""
        if len(self.order) < 2:
            return None
        return (
            f"/*+ LEADING({' '.join(self.order)}) "
            f"USE_NL({' '.join(self.order[1:])}) */"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self.order),
            "scores": {alias: score for alias, score in self.scores},
            "hints": self.hints,
        }


def _table_scores(
    query: ParsedQuery,
    statistics: Sequence[ColumnStatistics],
    graph: dict[str, list[str]],
) -> dict[str, int]:
    stats = {(s.table, s.column): s for s in statistics}
    outer = query.outer_join_targets()

    scores: dict[str, int] = {}
    for table in query.tables:
        score = OUTER_JOIN_PENALTY if table.alias in outer else 0
        seen: set[str] = set()
        for predicate in query.predicates_for(table.alias):
            if not predicate.is_index_candidate or predicate.is_join:
                continue
            column = predicate.column.column
            if column in seen:
                continue
            seen.add(column)
            column_stats = stats.get((table.name, column))
            selectivity = column_stats.selectivity if column_stats else None
            if selectivity is not None:
                for bound, points in _SELECTIVITY_POINTS:
                    if selectivity <= bound:
                        score += points
                        break
            score += INDEXABLE_FILTER_POINTS
        score += len(graph[table.alias]) * JOIN_CONNECTION_POINTS
        scores[table.alias] = score
    return scores


def plan_access_path(
    query: ParsedQuery,
    statistics: Sequence[ColumnStatistics] = (),
) -> AccessPath:
    """Suggested table access order for the top-level scope of ``query``."""
    graph: dict[str, list[str]] = defaultdict(list)
    for join in query.joins:
        left, right = join.left.table, join.right.table
        if right not in graph[left]:
            graph[left].append(right)
        if left not in graph[right]:
            graph[right].append(left)

    scores = _table_scores(query, statistics, graph)
    position = {t.alias: i for i, t in enumerate(query.tables)}
    ranked = sorted(scores, key=lambda alias: (-scores[alias], position[alias]))

    order: list[str] = []
    visited: set[str] = set()
    for start in ranked:
        if start in visited:
            continue
        # Breadth-first over joins; neighbours in FROM order
        queue = deque([start])
        visited.add(start)
        while queue:
            alias = queue.popleft()
            order.append(alias)
            for neighbour in sorted(graph[alias], key=position.__getitem__):
                if neighbour not in visited:
                    visited.add(neighbour)
                    queue.append(neighbour)

    return AccessPath(
        order=tuple(order),
        scores=tuple((alias, scores[alias]) for alias in ranked),
    )
