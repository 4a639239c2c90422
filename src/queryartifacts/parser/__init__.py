"""
SQL statement parsing.

Turns a single Oracle SELECT into a ParsedQuery describing which tables
are read, which columns are filtered, joined, grouped and sorted, and how
each predicate can be served by an index.
"""

from queryartifacts.parser.config import DEFAULT_CONFIG, ParserConfig
from queryartifacts.parser.models import (
    ColumnRef,
    ExclusionReason,
    Join,
    JoinType,
    Operand,
    OperandKind,
    Operator,
    ParsedQuery,
    Predicate,
    PredicateClass,
    PredicateSource,
    SortKey,
    Subquery,
    SubqueryLocation,
    TableRef,
)
from queryartifacts.parser.parser import StatementParser, parse_sql

__all__ = [
    "DEFAULT_CONFIG",
    "ParserConfig",
    "StatementParser",
    "parse_sql",
    "ColumnRef",
    "ExclusionReason",
    "Join",
    "JoinType",
    "Operand",
    "OperandKind",
    "Operator",
    "ParsedQuery",
    "Predicate",
    "PredicateClass",
    "PredicateSource",
    "SortKey",
    "Subquery",
    "SubqueryLocation",
    "TableRef",
]
