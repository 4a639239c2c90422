"""
Selectivity estimates and benefit scoring.

The weights come from Config; the shape of the score is fixed:

    selectivity points  weight * clamp(-log10(s) / 6, 0, 1)
    sort avoidance      flat bonus when the index delivers GROUP BY/ORDER BY order
    covering            flat bonus when the index holds every referenced column

so a more selective lead and more avoided work can only raise the score.
With the default neutral selectivity (0.001) an unknown column lands in
the middle of the selectivity range.
"""

from __future__ import annotations

import math
from typing import Iterable

from queryartifacts.analyzer.models import Confidence
from queryartifacts.catalog.models import ColumnStatistics, IndexMetadata
from queryartifacts.config import Config
from queryartifacts.parser.models import Operator, Predicate, PredicateClass, like_prefix

# Literal range heuristics (no histograms are read)
BOUNDED_RANGE_SELECTIVITY = 0.0025
UNBOUNDED_RANGE_SELECTIVITY = 0.05
MIN_LIKE_PREFIX = 3

# Six orders of magnitude span the whole selectivity component
_SELECTIVITY_DECADES = 6.0

UNKNOWN_LEAF_BLOCKS_SCORE = 15.0


def estimate_selectivity(
    predicate: Predicate, stats: ColumnStatistics | None
) -> float | None:
    """
    Fraction of rows a candidate predicate keeps; None when unknown.

    Equality uses 1/NDV from statistics (times the IN-list length). Range
    predicates are estimated only from literals; a bind variable says
    nothing about the range it will cover.
    """
    if predicate.predicate_class == PredicateClass.EQUALITY:
        if stats is None or stats.selectivity is None:
            return None
        selectivity = stats.selectivity
        if predicate.operator == Operator.IN and predicate.operand is not None:
            selectivity *= predicate.operand.value_count
        return min(1.0, selectivity)

    if predicate.predicate_class == PredicateClass.RANGE:
        operand = predicate.operand
        if operand is None or not operand.is_literal:
            return None
        if predicate.operator == Operator.BETWEEN:
            return BOUNDED_RANGE_SELECTIVITY
        if predicate.operator == Operator.LIKE and isinstance(operand.value, str):
            if len(like_prefix(operand.value)) >= MIN_LIKE_PREFIX:
                return BOUNDED_RANGE_SELECTIVITY
        return UNBOUNDED_RANGE_SELECTIVITY

    return None


def selectivity_points(selectivity: float | None, weight: float) -> float:
    if selectivity is None:
        return 0.0
    decades = -math.log10(max(selectivity, 1e-12))
    return weight * min(1.0, max(0.0, decades / _SELECTIVITY_DECADES))


def benefit_score(
    selectivity: float | None,
    sort_avoided: bool,
    covering: bool,
    config: Config,
) -> float:
    """Score for a CREATE/EXTEND recommendation, 0..100, one decimal."""
    score = selectivity_points(selectivity, config.selectivity_weight)
    if sort_avoided:
        score += config.sort_avoidance_bonus
    if covering:
        score += config.covering_bonus
    return round(min(100.0, max(0.0, score)), 1)


def drop_score(index: IndexMetadata) -> float:
    """Score for DROP_REDUNDANT: bigger indexes cost more to maintain."""
    if index.leaf_blocks is None:
        return UNKNOWN_LEAF_BLOCKS_SCORE
    return round(10.0 + min(30.0, math.log10(index.leaf_blocks + 1) * 10.0), 1)


def confidence_for(known: Iterable[bool]) -> Confidence:
    """HIGH when every candidate column has statistics, LOW when none do."""
    flags = list(known)
    if flags and all(flags):
        return Confidence.HIGH
    if any(flags):
        return Confidence.MEDIUM
    return Confidence.LOW
