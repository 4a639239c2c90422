"""
Data models for parsed SELECT statements.

These models are the contract between the statement parser and the
coverage analyzer. They're designed to be:
- Immutable (frozen=True): a ParsedQuery never changes after parsing
- Tagged: predicate classification is an enum, not a loose string, so the
  analyzer's branching is exhaustive
- Serializable: to_dict() for the JSON response envelope
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class Operator(str, Enum):
    """Comparison operators recognised in predicates."""

    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"
    IN = "IN"
    NOT_IN = "NOT IN"
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    def flipped(self) -> "Operator":
        """Operator to use when the operands are swapped (5 < col -> col > 5)."""
        return _FLIPPED.get(self, self)

    @property
    def is_negated(self) -> bool:
        return self in (
            Operator.NE,
            Operator.NOT_BETWEEN,
            Operator.NOT_IN,
            Operator.NOT_LIKE,
            Operator.IS_NOT_NULL,
        )

    def negated(self) -> "Operator":
        """The NOT form of a keyword operator (IN -> NOT IN)."""
        return _NEGATED[self]


_FLIPPED = {
    Operator.LT: Operator.GT,
    Operator.LE: Operator.GE,
    Operator.GT: Operator.LT,
    Operator.GE: Operator.LE,
}

_NEGATED = {
    Operator.BETWEEN: Operator.NOT_BETWEEN,
    Operator.IN: Operator.NOT_IN,
    Operator.LIKE: Operator.NOT_LIKE,
    Operator.IS_NULL: Operator.IS_NOT_NULL,
}


class PredicateClass(str, Enum):
    """How a predicate can be served by a B-tree index."""

    EQUALITY = "equality"  # =, IN, join equality: wants a leading column
    RANGE = "range"        # <, <=, >, >=, BETWEEN, LIKE 'prefix%'
    EXCLUDED = "excluded"  # not index-usable


class ExclusionReason(str, Enum):
    """Why a predicate is EXCLUDED from candidate columns."""

    NON_PREFIX_LIKE = "non_prefix_like"
    NEGATED = "negated"
    NOT_EQUAL = "not_equal"
    NULL_CHECK = "null_check"
    EXPRESSION = "expression"


class OperandKind(str, Enum):
    """What sits on the value side of a predicate."""

    LITERAL = "literal"
    BIND = "bind"
    COLUMN = "column"
    SUBQUERY = "subquery"
    EXPRESSION = "expression"
    LIST = "list"


class JoinType(str, Enum):
    """Join kinds recorded in ParsedQuery.joins."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


class PredicateSource(str, Enum):
    """Clause a predicate came from."""

    WHERE = "WHERE"
    ON = "ON"


class SubqueryLocation(str, Enum):
    """Where a nested SELECT appeared."""

    FROM = "FROM"
    IN = "IN"
    EXISTS = "EXISTS"
    SCALAR = "SCALAR"


@dataclass(frozen=True)
class TableRef:
    """
    A table occurrence in FROM / JOIN.

    Attributes:
        name: Table name (upper-cased unless quoted)
        alias: Alias used in the statement; the table name when none given
        owner: Schema owner, None until bound to a default schema
        derived: True for inline views (FROM (SELECT ...) alias)
    """

    name: str
    alias: str
    owner: str | None = None
    derived: bool = False

    @property
    def qualified_name(self) -> str:
        """Canonical OWNER.NAME (just NAME while the owner is unknown)."""
        if self.owner:
            return f"{self.owner}.{self.name}"
        return self.name

    def with_owner(self, owner: str | None) -> "TableRef":
        if self.owner or self.derived or not owner:
            return self
        return replace(self, owner=owner)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "owner": self.owner,
            "alias": self.alias,
            "qualifiedName": self.qualified_name,
            "derived": self.derived,
        }


@dataclass(frozen=True)
class ColumnRef:
    """A column resolved to a table occurrence (by alias)."""

    table: str
    column: str

    @property
    def qualified_name(self) -> str:
        return f"{self.table}.{self.column}"

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "column": self.column}


@dataclass(frozen=True)
class SortKey:
    """An ORDER BY item that is a plain column."""

    column: ColumnRef
    descending: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {**self.column.to_dict(), "descending": self.descending}


@dataclass(frozen=True)
class Operand:
    """
    Value side of a predicate.

    Attributes:
        kind: Operand category
        text: Source text of the operand (normalised spacing)
        value: Python value for literals (str, int, float, None for NULL)
        items: Member operands for LIST (IN lists, BETWEEN bounds)
    """

    kind: OperandKind
    text: str
    value: Any = None
    items: tuple["Operand", ...] = ()

    @property
    def is_literal(self) -> bool:
        """True when every value is a literal (never a bind variable)."""
        if self.kind == OperandKind.LIST:
            return bool(self.items) and all(i.is_literal for i in self.items)
        return self.kind == OperandKind.LITERAL

    @property
    def has_bind(self) -> bool:
        if self.kind == OperandKind.LIST:
            return any(i.has_bind for i in self.items)
        return self.kind == OperandKind.BIND

    @property
    def value_count(self) -> int:
        """Number of values in an IN list (1 for scalar operands)."""
        if self.kind == OperandKind.LIST:
            return max(1, len(self.items))
        return 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "text": self.text}
        if self.kind == OperandKind.LIST:
            data["items"] = [i.to_dict() for i in self.items]
        return data


def like_prefix(pattern: str) -> str:
    """Literal prefix of a LIKE pattern (text before the first wildcard)."""
    for i, ch in enumerate(pattern):
        if ch in ("%", "_"):
            return pattern[:i]
    return pattern


def classify(
    operator: Operator,
    operand: Operand | None,
    column_is_expression: bool = False,
) -> tuple[PredicateClass, ExclusionReason | None]:
    """
    Classify a predicate for index design.

    Equality first, then one range column: this mirrors how a composite
    B-tree is walked. LIKE is range-class only with a literal prefix;
    a leading wildcard can never seek.
    """
    if column_is_expression:
        return PredicateClass.EXCLUDED, ExclusionReason.EXPRESSION
    if operator == Operator.NE:
        return PredicateClass.EXCLUDED, ExclusionReason.NOT_EQUAL
    if operator.is_negated:
        return PredicateClass.EXCLUDED, ExclusionReason.NEGATED
    if operator == Operator.IS_NULL:
        return PredicateClass.EXCLUDED, ExclusionReason.NULL_CHECK
    if operator in (Operator.EQ, Operator.IN):
        return PredicateClass.EQUALITY, None
    if operator == Operator.LIKE:
        if operand is None:
            return PredicateClass.EXCLUDED, ExclusionReason.EXPRESSION
        if operand.kind == OperandKind.BIND:
            return PredicateClass.RANGE, None
        if operand.kind != OperandKind.LITERAL or not isinstance(operand.value, str):
            return PredicateClass.EXCLUDED, ExclusionReason.EXPRESSION
        prefix = like_prefix(operand.value)
        if not prefix:
            return PredicateClass.EXCLUDED, ExclusionReason.NON_PREFIX_LIKE
        if prefix == operand.value:
            # No wildcard at all: LIKE 'abc' is an equality lookup
            return PredicateClass.EQUALITY, None
        return PredicateClass.RANGE, None
    return PredicateClass.RANGE, None


@dataclass(frozen=True)
class Predicate:
    """
    A single column condition.

    Attributes:
        column: The indexed-side column
        operator: Comparison operator (normalised so the column is on the left)
        operand: Value side
        predicate_class: EQUALITY / RANGE / EXCLUDED
        exclusion_reason: Why EXCLUDED, if it is
        or_group: True when the predicate sits under an OR (or NOT)
        source: WHERE or ON
        join_partner: The other column for a join equality
    """

    column: ColumnRef
    operator: Operator
    operand: Operand | None
    predicate_class: PredicateClass
    exclusion_reason: ExclusionReason | None = None
    or_group: bool = False
    source: PredicateSource = PredicateSource.WHERE
    join_partner: ColumnRef | None = None

    @property
    def is_index_candidate(self) -> bool:
        """Usable when designing a composite index."""
        return not self.or_group and self.predicate_class != PredicateClass.EXCLUDED

    @property
    def is_join(self) -> bool:
        return self.join_partner is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.column.to_dict(),
            "operator": self.operator.value,
            "operand": self.operand.to_dict() if self.operand else None,
            "class": self.predicate_class.value,
            "exclusionReason": (
                self.exclusion_reason.value if self.exclusion_reason else None
            ),
            "orGroup": self.or_group,
            "source": self.source.value,
            "joinPartner": self.join_partner.to_dict() if self.join_partner else None,
        }


@dataclass(frozen=True)
class Join:
    """A column-level join between two table occurrences."""

    left: ColumnRef
    right: ColumnRef
    join_type: JoinType = JoinType.INNER

    def to_dict(self) -> dict[str, Any]:
        return {
            "leftTable": self.left.table,
            "leftColumn": self.left.column,
            "rightTable": self.right.table,
            "rightColumn": self.right.column,
            "joinType": self.join_type.value,
        }


@dataclass(frozen=True)
class Subquery:
    """A nested SELECT attached to its parent by reference."""

    query: "ParsedQuery"
    location: SubqueryLocation
    alias: str | None = None
    or_group: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location.value,
            "alias": self.alias,
            "orGroup": self.or_group,
            "query": self.query.to_dict(),
        }


@dataclass(frozen=True)
class ParsedQuery:
    """
    Structured representation of a single SELECT.

    Every ColumnRef.table is the alias of an entry in ``tables``.
    """

    sql: str
    tables: tuple[TableRef, ...] = ()
    predicates: tuple[Predicate, ...] = ()
    joins: tuple[Join, ...] = ()
    group_by_columns: tuple[ColumnRef, ...] = ()
    order_by_columns: tuple[SortKey, ...] = ()
    select_columns: tuple[ColumnRef, ...] = ()
    star_aliases: tuple[str, ...] = ()
    subqueries: tuple[Subquery, ...] = ()
    warnings: tuple[str, ...] = ()
    distinct: bool = False
    # Every column of this scope mentioned anywhere, including from
    # correlated subqueries; drives the covering-index check.
    referenced_columns: tuple[ColumnRef, ...] = ()

    @property
    def select_star(self) -> bool:
        return bool(self.star_aliases)

    def table(self, alias: str) -> TableRef | None:
        for t in self.tables:
            if t.alias == alias:
                return t
        return None

    def predicates_for(self, alias: str) -> list[Predicate]:
        return [p for p in self.predicates if p.column.table == alias]

    def columns_for(self, alias: str) -> set[str]:
        """Names of all columns of ``alias`` the statement touches."""
        return {c.column for c in self.referenced_columns if c.table == alias}

    def outer_join_targets(self) -> set[str]:
        """Aliases on the optional side of an outer join."""
        targets: set[str] = set()
        for j in self.joins:
            if j.join_type in (JoinType.LEFT, JoinType.FULL):
                targets.add(j.right.table)
            if j.join_type in (JoinType.RIGHT, JoinType.FULL):
                targets.add(j.left.table)
        return targets

    def catalog_tables(self) -> tuple[TableRef, ...]:
        """
        Physical tables referenced anywhere in the statement.

        Deduplicated by qualified name, in order of first appearance,
        nested subqueries included.
        """
        seen: dict[str, TableRef] = {}
        for t in self.tables:
            if not t.derived and t.qualified_name not in seen:
                seen[t.qualified_name] = t
        for sub in self.subqueries:
            for t in sub.query.catalog_tables():
                if t.qualified_name not in seen:
                    seen[t.qualified_name] = t
        return tuple(seen.values())

    def qualify(self, owner: str | None) -> "ParsedQuery":
        """Bind unqualified tables (here and in subqueries) to ``owner``."""
        if not owner:
            return self
        return replace(
            self,
            tables=tuple(t.with_owner(owner) for t in self.tables),
            subqueries=tuple(
                replace(s, query=s.query.qualify(owner)) for s in self.subqueries
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "predicates": [p.to_dict() for p in self.predicates],
            "joins": [j.to_dict() for j in self.joins],
            "groupByColumns": [c.to_dict() for c in self.group_by_columns],
            "orderByColumns": [s.to_dict() for s in self.order_by_columns],
            "selectColumns": [c.to_dict() for c in self.select_columns],
            "selectStar": self.select_star,
            "distinct": self.distinct,
            "subqueries": [s.to_dict() for s in self.subqueries],
            "warnings": list(self.warnings),
        }
