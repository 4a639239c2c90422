"""
Recursive-descent parser for single Oracle SELECT statements.

Parsing happens in three stages:

1. Pre-flight (sqlparse): strip comments, reject empty input, multiple
   statements, PL/SQL blocks and anything that is not a SELECT.
2. Syntax: a hand-written recursive-descent parser over the token stream
   builds a raw clause tree with column names still unresolved (the select
   list is read before FROM, so aliases are not known yet).
3. Resolution: every column is bound to a table occurrence in scope,
   predicates are classified and joins recorded, producing an immutable
   ParsedQuery.

Usage:
    from queryartifacts.parser import StatementParser

    query = StatementParser().parse(
        "SELECT * FROM emp WHERE dept_id = :1 AND hire_date > :2"
    )
    for predicate in query.predicates:
        print(predicate.column.column, predicate.predicate_class)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterator

import sqlparse

from queryartifacts.exceptions import ParseError, ParseErrorKind
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
    classify,
)
from queryartifacts.parser.tokenizer import Token, TokenType, tokenize

logger = logging.getLogger(__name__)

_PLSQL_BLOCK = re.compile(
    r"^\s*(DECLARE|BEGIN|CREATE\s+(OR\s+REPLACE\s+)?"
    r"(PROCEDURE|FUNCTION|PACKAGE|TRIGGER|TYPE))\b",
    re.IGNORECASE,
)

# Unqualified names that are never table columns
PSEUDO_COLUMNS = frozenset({
    "ROWNUM", "ROWID", "SYSDATE", "SYSTIMESTAMP", "USER", "LEVEL", "UID",
    "CURRENT_DATE", "CURRENT_TIMESTAMP", "LOCALTIMESTAMP", "ORA_ROWSCN",
    "SESSIONTIMEZONE", "DBTIMEZONE", "CONNECT_BY_ISLEAF", "CONNECT_BY_ISCYCLE",
})

_SEQUENCE_PSEUDO_COLUMNS = frozenset({"NEXTVAL", "CURRVAL"})

# Keywords that can neither start an expression nor serve as an alias
_RESERVED = frozenset({
    "SELECT", "FROM", "WHERE", "GROUP", "HAVING", "ORDER", "BY", "UNION",
    "MINUS", "INTERSECT", "EXCEPT", "FETCH", "OFFSET", "FOR", "CONNECT",
    "START", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "CROSS", "NATURAL",
    "OUTER", "ON", "USING", "AND", "OR", "IN", "IS", "LIKE", "LIKEC",
    "LIKE2", "LIKE4", "BETWEEN", "ESCAPE", "AS", "ASC", "DESC", "NULLS",
    "WHEN", "THEN", "ELSE", "END", "DISTINCT", "UNIQUE", "ALL", "ANY",
    "SOME", "WITH", "INTO", "SET", "VALUES", "MODEL", "PIVOT", "UNPIVOT",
    "SAMPLE", "LATERAL", "APPLY", "LIMIT", "OVER", "KEEP", "WITHIN",
})

_SET_OPERATORS = ("UNION", "MINUS", "INTERSECT", "EXCEPT")

_COMPARISON_OPERATORS = {
    "=": Operator.EQ,
    "<>": Operator.NE,
    "<": Operator.LT,
    "<=": Operator.LE,
    ">": Operator.GT,
    ">=": Operator.GE,
}

_ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "||")

_LIKE_KEYWORDS = ("LIKE", "LIKEC", "LIKE2", "LIKE4")

_FLIPPABLE = frozenset({
    Operator.EQ, Operator.NE, Operator.LT, Operator.LE, Operator.GT, Operator.GE,
})

_DATETIME_FIELDS = frozenset({
    "YEAR", "MONTH", "DAY", "HOUR", "MINUTE", "SECOND",
    "TIMEZONE_HOUR", "TIMEZONE_MINUTE", "TIMEZONE_REGION", "TIMEZONE_ABBR",
})


# ── Raw clause tree ──────────────────────────────────────────────────────


@dataclass
class _Name:
    """A column reference as written: optional qualifier parts + column."""

    parts: tuple[str, ...]
    position: int

    @property
    def column(self) -> str:
        return self.parts[-1]

    @property
    def qualifier(self) -> str | None:
        return ".".join(self.parts[:-1]) or None


@dataclass
class _Expr:
    """
    Unresolved expression.

    kind is one of: column, literal, bind, subquery, list, star, pseudo,
    expression. ``names`` lists every column written in this scope inside
    the expression; ``selects`` every nested subquery.
    """

    kind: str
    start: int
    end: int
    name: _Name | None = None
    value: Any = None
    items: list["_Expr"] = field(default_factory=list)
    names: list[_Name] = field(default_factory=list)
    selects: list["_RawSelect"] = field(default_factory=list)
    select: "_RawSelect | None" = None
    outer_marker: bool = False


@dataclass
class _Leaf:
    left: _Expr | None
    operator: Operator | None
    right: _Expr | None = None
    exists: "_RawSelect | None" = None


@dataclass
class _Cond:
    op: str  # AND, OR, NOT or LEAF
    children: list["_Cond"] = field(default_factory=list)
    leaf: _Leaf | None = None


@dataclass
class _FromItem:
    alias: str
    position: int
    name: str | None = None
    owner: str | None = None
    select: "_RawSelect | None" = None
    join_type: JoinType | None = None
    natural: bool = False
    on: _Cond | None = None
    using: list[str] = field(default_factory=list)


@dataclass
class _SelectItem:
    expr: _Expr
    alias: str | None = None


@dataclass
class _RawSelect:
    start: int
    end: int = 0
    distinct: bool = False
    items: list[_SelectItem] = field(default_factory=list)
    from_items: list[_FromItem] = field(default_factory=list)
    where: _Cond | None = None
    hierarchical: list[_Cond] = field(default_factory=list)
    group_by: list[_Expr] = field(default_factory=list)
    having: _Cond | None = None
    order_by: list[tuple[_Expr, bool]] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


def _leaves(cond: _Cond | None) -> Iterator[_Leaf]:
    if cond is None:
        return
    if cond.leaf is not None:
        yield cond.leaf
    for child in cond.children:
        yield from _leaves(child)


def _merge(kind: str, start: int, end: int, parts: list[_Expr]) -> _Expr:
    expr = _Expr(kind, start, end)
    for part in parts:
        expr.names.extend(part.names)
        expr.selects.extend(part.selects)
    return expr


# ── Syntax ───────────────────────────────────────────────────────────────


class _Parser:
    """Recursive descent over the token list, one instance per statement."""

    def __init__(self, sql: str, tokens: list[Token], config: ParserConfig) -> None:
        self.sql = sql
        self.tokens = tokens
        self.config = config
        self.pos = 0
        self._inline_views = 0

    # -- cursor helpers

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    @property
    def last_end(self) -> int:
        return self.tokens[self.pos - 1].end if self.pos else 0

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def accept_keyword(self, *words: str) -> Token | None:
        if self.current.is_keyword(*words):
            return self.advance()
        return None

    def expect_keyword(self, word: str) -> Token:
        token = self.accept_keyword(word)
        if token is None:
            raise self.error(f"Expected {word}")
        return token

    def accept_punct(self, char: str) -> Token | None:
        if self.current.is_punct(char):
            return self.advance()
        return None

    def expect_punct(self, char: str) -> Token:
        token = self.accept_punct(char)
        if token is None:
            raise self.error(f"Expected '{char}'")
        return token

    def expect_ident(self) -> str:
        token = self.current
        if token.type != TokenType.IDENT or (
            not token.quoted and token.value in _RESERVED
        ):
            raise self.error("Expected an identifier")
        self.advance()
        return token.value

    def error(self, message: str, token: Token | None = None) -> ParseError:
        token = token or self.current
        found = "end of statement" if token.type == TokenType.EOF else repr(token.value)
        return ParseError(
            ParseErrorKind.MALFORMED_SYNTAX,
            f"{message}, found {found} at position {token.position}",
            position=token.position,
        )

    def unsupported(self, what: str, token: Token) -> ParseError:
        return ParseError(
            ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE,
            f"{what} is not supported; only single SELECT statements can be analyzed",
            position=token.position,
            statement_type=token.value,
        )

    def skip_parenthesised(self) -> None:
        start = self.expect_punct("(")
        depth = 1
        while depth:
            token = self.advance()
            if token.type == TokenType.EOF:
                raise self.error("Unbalanced parentheses", start)
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1

    # -- statement level

    def parse_statement(self) -> _RawSelect:
        first = self.current
        if first.is_keyword("WITH"):
            raise self.unsupported("Common table expression (WITH)", first)
        if not first.is_keyword("SELECT"):
            raise self.unsupported(f"{first.value or 'Empty'} statement", first)
        select = self.parse_select(depth=0)
        self.accept_punct(";")
        if self.current.type != TokenType.EOF:
            raise self.error("Unexpected trailing input")
        return select

    def parse_subquery(self, depth: int) -> _RawSelect:
        token = self.current
        if token.is_keyword("WITH"):
            raise self.unsupported("Common table expression (WITH)", token)
        if depth + 1 > self.config.max_subquery_depth:
            raise ParseError(
                ParseErrorKind.NESTING_TOO_DEEP,
                f"Subquery nesting exceeds {self.config.max_subquery_depth} "
                f"level(s) at position {token.position}",
                position=token.position,
            )
        return self.parse_select(depth + 1)

    def parse_select(self, depth: int) -> _RawSelect:
        start = self.expect_keyword("SELECT")
        raw = _RawSelect(start=start.position)

        if self.accept_keyword("DISTINCT", "UNIQUE"):
            raw.distinct = True
        else:
            self.accept_keyword("ALL")

        raw.items = self.parse_select_list(depth)
        self.expect_keyword("FROM")
        raw.from_items = self.parse_from(depth)

        if self.accept_keyword("WHERE"):
            raw.where = self.parse_condition(depth)

        while self.current.is_keyword("START", "CONNECT"):
            if self.accept_keyword("START"):
                self.expect_keyword("WITH")
            else:
                self.advance()
                self.expect_keyword("BY")
                self.accept_keyword("NOCYCLE")
            raw.hierarchical.append(self.parse_condition(depth))

        if self.accept_keyword("GROUP"):
            self.expect_keyword("BY")
            raw.group_by.append(self.parse_expr(depth))
            while self.accept_punct(","):
                raw.group_by.append(self.parse_expr(depth))

        if self.accept_keyword("HAVING"):
            raw.having = self.parse_condition(depth)

        if self.accept_keyword("ORDER"):
            self.accept_keyword("SIBLINGS")
            self.expect_keyword("BY")
            raw.order_by.append(self.parse_order_item(depth))
            while self.accept_punct(","):
                raw.order_by.append(self.parse_order_item(depth))

        if self.accept_keyword("OFFSET"):
            self.parse_expr(depth)
            if not self.accept_keyword("ROW", "ROWS"):
                raise self.error("Expected ROW or ROWS")

        if self.accept_keyword("FETCH"):
            if not self.accept_keyword("FIRST", "NEXT"):
                raise self.error("Expected FIRST or NEXT")
            if not self.current.is_keyword("ROW", "ROWS"):
                self.parse_expr(depth)
                self.accept_keyword("PERCENT")
            if not self.accept_keyword("ROW", "ROWS"):
                raise self.error("Expected ROW or ROWS")
            if self.accept_keyword("WITH"):
                self.expect_keyword("TIES")
            else:
                self.expect_keyword("ONLY")

        if self.accept_keyword("FOR"):
            self.expect_keyword("UPDATE")
            if self.accept_keyword("OF"):
                self.parse_expr(depth)
                while self.accept_punct(","):
                    self.parse_expr(depth)
            if self.accept_keyword("WAIT"):
                self.advance()
            elif self.accept_keyword("SKIP"):
                self.expect_keyword("LOCKED")
            else:
                self.accept_keyword("NOWAIT")

        if self.current.is_keyword(*_SET_OPERATORS):
            raise self.unsupported(f"Compound query ({self.current.value})", self.current)

        raw.end = self.last_end
        return raw

    def parse_select_list(self, depth: int) -> list[_SelectItem]:
        items: list[_SelectItem] = []
        while True:
            token = self.current
            if token.is_operator("*"):
                self.advance()
                items.append(_SelectItem(_Expr("star", token.position, token.end)))
            else:
                expr = self.parse_expr(depth)
                alias = None
                if self.accept_keyword("AS"):
                    alias = self.expect_ident()
                elif self.current.type == TokenType.IDENT and (
                    self.current.quoted or self.current.value not in _RESERVED
                ):
                    alias = self.advance().value
                items.append(_SelectItem(expr, alias))
            if not self.accept_punct(","):
                return items

    def parse_order_item(self, depth: int) -> tuple[_Expr, bool]:
        expr = self.parse_expr(depth)
        descending = False
        if self.accept_keyword("DESC"):
            descending = True
        else:
            self.accept_keyword("ASC")
        if self.accept_keyword("NULLS"):
            if not self.accept_keyword("FIRST", "LAST"):
                raise self.error("Expected FIRST or LAST")
        return expr, descending

    # -- FROM clause

    def parse_from(self, depth: int) -> list[_FromItem]:
        items = [self.parse_table_ref(depth)]
        while True:
            if self.accept_punct(","):
                item = self.parse_table_ref(depth)
                item.join_type = JoinType.INNER
                items.append(item)
                continue

            natural = bool(self.accept_keyword("NATURAL"))
            cross = False
            if self.accept_keyword("CROSS"):
                cross = True
                join_type = JoinType.INNER
            elif self.accept_keyword("INNER"):
                join_type = JoinType.INNER
            elif self.current.is_keyword("LEFT", "RIGHT", "FULL"):
                join_type = JoinType(self.advance().value)
                self.accept_keyword("OUTER")
            elif self.current.is_keyword("JOIN"):
                join_type = JoinType.INNER
            elif natural:
                raise self.error("Expected JOIN")
            else:
                return items

            self.expect_keyword("JOIN")
            item = self.parse_table_ref(depth)
            item.join_type = join_type
            item.natural = natural
            if not cross and not natural:
                if self.accept_keyword("ON"):
                    item.on = self.parse_condition(depth)
                elif self.accept_keyword("USING"):
                    self.expect_punct("(")
                    item.using.append(self.expect_ident())
                    while self.accept_punct(","):
                        item.using.append(self.expect_ident())
                    self.expect_punct(")")
                else:
                    raise self.error("Expected ON or USING")
            items.append(item)

    def parse_table_ref(self, depth: int) -> _FromItem:
        token = self.current
        if self.accept_punct("("):
            if not self.current.is_keyword("SELECT", "WITH"):
                raise self.error("Expected SELECT in inline view")
            select = self.parse_subquery(depth)
            self.expect_punct(")")
            self._inline_views += 1
            alias = self.parse_alias() or f"INLINE_VIEW_{self._inline_views}"
            return _FromItem(alias=alias, position=token.position, select=select)

        if token.is_keyword("TABLE") and self.peek().is_punct("("):
            raise self.error("TABLE() collection expressions are not supported")

        name = self.expect_ident()
        owner = None
        if self.accept_punct("."):
            owner, name = name, self.expect_ident()
        if self.accept_punct("@"):
            self.expect_ident()
            while self.accept_punct("."):
                self.expect_ident()
        alias = self.parse_alias() or name
        return _FromItem(alias=alias, position=token.position, name=name, owner=owner)

    def parse_alias(self) -> str | None:
        if self.accept_keyword("AS"):
            return self.expect_ident()
        token = self.current
        if token.type == TokenType.IDENT and (
            token.quoted or token.value not in _RESERVED
        ):
            return self.advance().value
        return None

    # -- conditions

    def parse_condition(self, depth: int) -> _Cond:
        children = [self.parse_and(depth)]
        while self.accept_keyword("OR"):
            children.append(self.parse_and(depth))
        return children[0] if len(children) == 1 else _Cond("OR", children)

    def parse_and(self, depth: int) -> _Cond:
        children = [self.parse_not(depth)]
        while self.accept_keyword("AND"):
            children.append(self.parse_not(depth))
        return children[0] if len(children) == 1 else _Cond("AND", children)

    def parse_not(self, depth: int) -> _Cond:
        if self.accept_keyword("NOT"):
            return _Cond("NOT", [self.parse_not(depth)])
        return self.parse_predicate(depth)

    def parse_predicate(self, depth: int) -> _Cond:
        if self.accept_keyword("EXISTS"):
            self.expect_punct("(")
            select = self.parse_subquery(depth)
            self.expect_punct(")")
            return _Cond("LEAF", leaf=_Leaf(None, None, exists=select))

        start = self.current
        if start.is_punct("(") and not self.peek().is_keyword("SELECT", "WITH"):
            self.advance()
            group = [self.parse_condition(depth)]
            while self.accept_punct(","):
                group.append(self.parse_condition(depth))
            self.expect_punct(")")

            if not self._starts_predicate_tail():
                if len(group) > 1:
                    raise self.error("Expected a comparison after expression list")
                return group[0]

            exprs = [self._bare_expr(c, start) for c in group]
            if len(exprs) == 1:
                inner = exprs[0]
                inner.start, inner.end = start.position, self.last_end
            else:
                inner = _merge("list", start.position, self.last_end, exprs)
                inner.items = exprs
            left = self.parse_expr_tail(inner, depth)
            return self.parse_predicate_tail(left, depth)

        left = self.parse_expr(depth)
        return self.parse_predicate_tail(left, depth)

    def _starts_predicate_tail(self) -> bool:
        token = self.current
        return (
            token.is_operator(*_COMPARISON_OPERATORS, *_ARITHMETIC_OPERATORS)
            or token.is_keyword("NOT", "IN", "BETWEEN", "IS", *_LIKE_KEYWORDS)
        )

    def _bare_expr(self, cond: _Cond, token: Token) -> _Expr:
        leaf = cond.leaf
        if leaf is None or leaf.operator is not None or leaf.left is None:
            raise self.error("Unexpected condition inside expression", token)
        return leaf.left

    def parse_predicate_tail(self, left: _Expr, depth: int) -> _Cond:
        token = self.current

        if token.type == TokenType.OPERATOR and token.value in _COMPARISON_OPERATORS:
            self.advance()
            operator = _COMPARISON_OPERATORS[token.value]
            if self.accept_keyword("ANY", "SOME"):
                right = self.parse_in_operand(depth)
                if operator == Operator.EQ:
                    operator = Operator.IN
            elif self.accept_keyword("ALL"):
                right = self.parse_in_operand(depth)
                if operator == Operator.NE:
                    operator = Operator.NOT_IN
            else:
                right = self.parse_expr(depth)
            return _Cond("LEAF", leaf=_Leaf(left, operator, right))

        negated = bool(self.accept_keyword("NOT"))

        if self.accept_keyword("IN"):
            operator, right = Operator.IN, self.parse_in_operand(depth)
        elif self.accept_keyword("BETWEEN"):
            low = self.parse_expr(depth)
            self.expect_keyword("AND")
            high = self.parse_expr(depth)
            right = _merge("list", low.start, high.end, [low, high])
            right.items = [low, high]
            operator = Operator.BETWEEN
        elif self.accept_keyword(*_LIKE_KEYWORDS):
            operator, right = Operator.LIKE, self.parse_expr(depth)
            if self.accept_keyword("ESCAPE"):
                self.parse_expr(depth)
        elif not negated and self.accept_keyword("IS"):
            is_not = bool(self.accept_keyword("NOT"))
            self.expect_keyword("NULL")
            operator = Operator.IS_NOT_NULL if is_not else Operator.IS_NULL
            return _Cond("LEAF", leaf=_Leaf(left, operator))
        elif negated:
            raise self.error("Expected IN, BETWEEN or LIKE after NOT")
        else:
            return _Cond("LEAF", leaf=_Leaf(left, None))

        if negated:
            operator = operator.negated()
        return _Cond("LEAF", leaf=_Leaf(left, operator, right))

    def parse_in_operand(self, depth: int) -> _Expr:
        start = self.expect_punct("(")
        if self.current.is_keyword("SELECT", "WITH"):
            select = self.parse_subquery(depth)
            self.expect_punct(")")
            return _Expr(
                "subquery", start.position, self.last_end,
                select=select, selects=[select],
            )
        items = [self.parse_expr(depth)]
        while self.accept_punct(","):
            items.append(self.parse_expr(depth))
        self.expect_punct(")")
        expr = _merge("list", start.position, self.last_end, items)
        expr.items = items
        return expr

    # -- expressions

    def parse_expr(self, depth: int) -> _Expr:
        return self.parse_expr_tail(self.parse_unary(depth), depth)

    def parse_expr_tail(self, left: _Expr, depth: int) -> _Expr:
        while self.current.is_operator(*_ARITHMETIC_OPERATORS):
            self.advance()
            right = self.parse_unary(depth)
            left = _merge("expression", left.start, right.end, [left, right])
        return left

    def parse_unary(self, depth: int) -> _Expr:
        token = self.current
        if token.is_operator("+", "-"):
            self.advance()
            operand = self.parse_unary(depth)
            if operand.kind == "literal" and isinstance(operand.value, (int, float)):
                value = -operand.value if token.value == "-" else operand.value
                return _Expr("literal", token.position, operand.end, value=value)
            return _merge("expression", token.position, operand.end, [operand])
        if self.accept_keyword("PRIOR", "CONNECT_BY_ROOT"):
            operand = self.parse_unary(depth)
            return _merge("expression", token.position, operand.end, [operand])
        return self.parse_primary(depth)

    def parse_primary(self, depth: int) -> _Expr:
        token = self.current

        if token.type == TokenType.NUMBER:
            self.advance()
            text = token.value
            value: int | float = (
                float(text) if any(c in text for c in ".eE") else int(text)
            )
            return _Expr("literal", token.position, token.end, value=value)

        if token.type == TokenType.STRING:
            self.advance()
            return _Expr("literal", token.position, token.end, value=token.value)

        if token.type == TokenType.BIND:
            self.advance()
            return _Expr("bind", token.position, token.end, value=token.value)

        if token.is_punct("("):
            self.advance()
            if self.current.is_keyword("SELECT", "WITH"):
                select = self.parse_subquery(depth)
                self.expect_punct(")")
                return _Expr(
                    "subquery", token.position, self.last_end,
                    select=select, selects=[select],
                )
            items = [self.parse_expr(depth)]
            while self.accept_punct(","):
                items.append(self.parse_expr(depth))
            self.expect_punct(")")
            if len(items) == 1:
                inner = items[0]
                inner.start, inner.end = token.position, self.last_end
                return inner
            expr = _merge("list", token.position, self.last_end, items)
            expr.items = items
            return expr

        if token.type != TokenType.IDENT:
            raise self.error("Expected an expression")

        if token.is_keyword("NULL"):
            self.advance()
            return _Expr("literal", token.position, token.end, value=None)

        if token.is_keyword("CASE"):
            return self.parse_case(depth)

        if token.is_keyword("DATE", "TIMESTAMP") and self.peek().type == TokenType.STRING:
            self.advance()
            literal = self.advance()
            return _Expr("literal", token.position, literal.end, value=literal.value)

        if token.is_keyword("INTERVAL") and self.peek().type == TokenType.STRING:
            self.advance()
            literal = self.advance()
            while self.current.is_keyword(*_DATETIME_FIELDS, "TO"):
                self.advance()
                if self.current.is_punct("("):
                    self.skip_parenthesised()
            return _Expr("literal", token.position, self.last_end, value=literal.value)

        if token.is_keyword("EXISTS", "NOT"):
            raise self.error("Condition used where an expression is expected")

        if not token.quoted and token.value in _RESERVED:
            raise self.error("Expected an expression")

        self.advance()
        parts = [token.value]
        while self.current.is_punct("."):
            self.advance()
            if self.current.is_operator("*"):
                star = self.advance()
                return _Expr(
                    "star", token.position, star.end,
                    name=_Name(tuple(parts) + ("*",), token.position),
                )
            parts.append(self.expect_ident())

        if self.current.is_punct("("):
            return self.parse_function(parts, token, depth)

        if (len(parts) == 1 and not token.quoted and parts[0] in PSEUDO_COLUMNS) or (
            len(parts) > 1 and parts[-1] in _SEQUENCE_PSEUDO_COLUMNS
        ):
            return _Expr("pseudo", token.position, self.last_end)

        name = _Name(tuple(parts), token.position)
        expr = _Expr("column", token.position, self.last_end, name=name, names=[name])
        if self.current.type == TokenType.OUTER_JOIN:
            self.advance()
            expr.outer_marker = True
        return expr

    def parse_function(self, parts: list[str], start: Token, depth: int) -> _Expr:
        function = parts[-1]
        args: list[_Expr] = []
        self.expect_punct("(")

        if self.current.is_operator("*"):
            self.advance()
            self.expect_punct(")")
        elif not self.accept_punct(")"):
            while True:
                self.accept_keyword("DISTINCT", "UNIQUE", "ALL")
                if function == "EXTRACT" and self.current.is_keyword(*_DATETIME_FIELDS):
                    self.advance()
                    self.expect_keyword("FROM")
                if function == "TRIM" and self.accept_keyword("LEADING", "TRAILING", "BOTH"):
                    self.accept_keyword("FROM")
                args.append(self.parse_expr(depth))
                if self.accept_keyword("AS"):
                    # CAST(expr AS type[(precision)])
                    self.expect_ident()
                    if self.current.is_punct("("):
                        self.skip_parenthesised()
                elif self.accept_keyword("FROM"):
                    args.append(self.parse_expr(depth))
                elif self.accept_keyword("USING"):
                    self.expect_ident()
                if not self.accept_punct(","):
                    break
            self.expect_punct(")")

        if self.accept_keyword("WITHIN"):
            self.expect_keyword("GROUP")
            self.skip_parenthesised()
        if self.accept_keyword("KEEP"):
            self.skip_parenthesised()
        if self.accept_keyword("OVER"):
            self.skip_parenthesised()

        return _merge("expression", start.position, self.last_end, args)

    def parse_case(self, depth: int) -> _Expr:
        start = self.expect_keyword("CASE")
        parts: list[_Expr] = []
        if not self.current.is_keyword("WHEN"):
            parts.append(self.parse_expr(depth))
        if not self.current.is_keyword("WHEN"):
            raise self.error("Expected WHEN")
        while self.accept_keyword("WHEN"):
            cond = self.parse_condition(depth)
            for leaf in _leaves(cond):
                parts.extend(e for e in (leaf.left, leaf.right) if e is not None)
                if leaf.exists is not None:
                    parts.append(
                        _Expr("subquery", start.position, start.end, selects=[leaf.exists])
                    )
            self.expect_keyword("THEN")
            parts.append(self.parse_expr(depth))
        if self.accept_keyword("ELSE"):
            parts.append(self.parse_expr(depth))
        self.expect_keyword("END")
        return _merge("expression", start.position, self.last_end, parts)


# ── Resolution ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Context:
    source: PredicateSource = PredicateSource.WHERE
    or_group: bool = False
    negated: bool = False
    join_type: JoinType = JoinType.INNER
    joined_alias: str | None = None


class _ScopeBuilder:
    """Binds one SELECT's raw clause tree to its tables."""

    def __init__(
        self,
        raw: _RawSelect,
        sql: str,
        parent: "_ScopeBuilder | None" = None,
    ) -> None:
        self.raw = raw
        self.sql = sql
        self.parent = parent
        self.tables: list[TableRef] = []
        self.predicates: list[Predicate] = []
        self.joins: list[Join] = []
        self.subqueries: list[Subquery] = []
        self.warnings: list[str] = list(raw.notes)
        self.referenced: dict[ColumnRef, None] = {}
        self.select_aliases: dict[str, _Expr] = {}

    def build(self) -> ParsedQuery:
        raw = self.raw
        self._bind_tables()

        for index, item in enumerate(raw.from_items):
            ctx = _Context(
                source=PredicateSource.ON,
                join_type=item.join_type or JoinType.INNER,
                joined_alias=item.alias,
            )
            if item.on is not None:
                self._walk(item.on, ctx)
            elif item.using:
                self._using(raw.from_items[index - 1].alias, item, ctx)
            elif item.natural:
                self._warn(
                    f"NATURAL JOIN to {item.alias} cannot be resolved without "
                    "metadata; its join columns are ignored"
                )

        if raw.where is not None:
            self._walk(raw.where, _Context())

        for cond in raw.hierarchical:
            self._touch(cond)

        select_columns, star_aliases = self._select_list()

        group_by: list[ColumnRef] = []
        for expr in raw.group_by:
            ref = self._touch_expr(expr)
            if ref is not None and ref not in group_by:
                group_by.append(ref)

        self._touch(raw.having)

        order_by = self._order_by()

        return ParsedQuery(
            sql=" ".join(self.sql[raw.start:raw.end].split()),
            tables=tuple(self.tables),
            predicates=tuple(self.predicates),
            joins=tuple(self.joins),
            group_by_columns=tuple(group_by),
            order_by_columns=tuple(order_by),
            select_columns=tuple(select_columns),
            star_aliases=tuple(star_aliases),
            subqueries=tuple(self.subqueries),
            warnings=tuple(self.warnings),
            distinct=raw.distinct,
            referenced_columns=tuple(self.referenced),
        )

    # -- tables and names

    def _bind_tables(self) -> None:
        for item in self.raw.from_items:
            if any(t.alias == item.alias for t in self.tables):
                raise ParseError(
                    ParseErrorKind.MALFORMED_SYNTAX,
                    f"Duplicate table alias {item.alias}",
                    position=item.position,
                )
            if item.select is not None:
                query = _ScopeBuilder(item.select, self.sql).build()
                self.subqueries.append(
                    Subquery(query, SubqueryLocation.FROM, alias=item.alias)
                )
                self.tables.append(TableRef(item.alias, item.alias, derived=True))
            elif item.name is not None:
                self.tables.append(TableRef(item.name, item.alias, owner=item.owner))
            else:
                raise ParseError(
                    ParseErrorKind.MALFORMED_SYNTAX,
                    f"FROM item {item.alias} names neither a table nor a subquery",
                    position=item.position,
                )

    def _match(self, qualifier: str) -> TableRef | None:
        for table in self.tables:
            if table.alias == qualifier:
                return table
        if "." in qualifier:
            owner, name = qualifier.rsplit(".", 1)
            for table in self.tables:
                if table.owner == owner and table.name == name:
                    return table
            return None
        matches = [t for t in self.tables if t.name == qualifier]
        return matches[0] if len(matches) == 1 else None

    def _resolve(self, name: _Name) -> ColumnRef | None:
        """
        Bind a name to a table of this scope.

        Returns None for a correlated reference to an enclosing scope.
        """
        qualifier = name.qualifier
        if qualifier is None:
            table = self.tables[0]
            if len(self.tables) > 1:
                self._warn(
                    f"Unqualified column {name.column} attributed to {table.alias}"
                )
            return self._note(ColumnRef(table.alias, name.column))

        table = self._match(qualifier)
        if table is not None:
            return self._note(ColumnRef(table.alias, name.column))

        scope = self.parent
        while scope is not None:
            outer = scope._match(qualifier)
            if outer is not None:
                scope._note(ColumnRef(outer.alias, name.column))
                return None
            scope = scope.parent

        raise ParseError(
            ParseErrorKind.UNRESOLVED_COLUMN_REFERENCE,
            f"Column {qualifier}.{name.column} refers to unknown table or alias "
            f"{qualifier}",
            position=name.position,
        )

    def _note(self, ref: ColumnRef) -> ColumnRef:
        self.referenced[ref] = None
        return ref

    def _local(self, expr: _Expr | None) -> ColumnRef | None:
        if expr is None or expr.kind != "column" or expr.name is None:
            return None
        return self._resolve(expr.name)

    def _warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    # -- conditions

    def _walk(self, cond: _Cond, ctx: _Context) -> None:
        if cond.op == "AND":
            for child in cond.children:
                self._walk(child, ctx)
        elif cond.op == "OR":
            for child in cond.children:
                self._walk(child, replace(ctx, or_group=True))
        elif cond.op == "NOT":
            for child in cond.children:
                self._walk(child, replace(ctx, or_group=True, negated=not ctx.negated))
        elif cond.leaf is not None:
            self._visit(cond.leaf, ctx.or_group)
            if cond.leaf.operator is not None:
                self._comparison(cond.leaf, ctx)

    def _visit(self, leaf: _Leaf, or_group: bool) -> None:
        """Resolve every name of a condition leaf and attach its subqueries."""
        if leaf.exists is not None:
            self._add_subquery(leaf.exists, SubqueryLocation.EXISTS, or_group)
        for expr in (leaf.left, leaf.right):
            if expr is None:
                continue
            for select in expr.selects:
                location = SubqueryLocation.SCALAR
                if (
                    expr is leaf.right
                    and expr.select is select
                    and leaf.operator in (Operator.IN, Operator.NOT_IN)
                ):
                    location = SubqueryLocation.IN
                self._add_subquery(select, location, or_group)
            for name in expr.names:
                self._resolve(name)

    def _touch(self, cond: _Cond | None) -> None:
        for leaf in _leaves(cond):
            self._visit(leaf, or_group=False)

    def _touch_expr(self, expr: _Expr) -> ColumnRef | None:
        for select in expr.selects:
            self._add_subquery(select, SubqueryLocation.SCALAR, False)
        for name in expr.names:
            self._resolve(name)
        return self._local(expr)

    def _add_subquery(
        self, select: _RawSelect, location: SubqueryLocation, or_group: bool
    ) -> None:
        query = _ScopeBuilder(select, self.sql, parent=self).build()
        self.subqueries.append(Subquery(query, location, or_group=or_group))

    def _comparison(self, leaf: _Leaf, ctx: _Context) -> None:
        operator = leaf.operator
        left, right = leaf.left, leaf.right
        if operator is None or left is None:
            raise ParseError(
                ParseErrorKind.MALFORMED_SYNTAX, "Incomplete comparison in condition"
            )

        if left.kind == "list" and operator in (Operator.IN, Operator.NOT_IN):
            # (a, b) IN (SELECT x, y ...)
            for item in left.items:
                ref = self._local(item)
                if ref is not None:
                    self._add(ref, operator, self._operand(right), ctx)
            return

        lref = self._local(left)
        if lref is None and operator in (Operator.BETWEEN, Operator.NOT_BETWEEN):
            self._bounded_by(left, right, operator, ctx)
            return

        rref = self._local(right)
        if lref is None and rref is not None and operator in _FLIPPABLE:
            left, right = right, left
            lref, rref = rref, None
            operator = operator.flipped()

        if lref is None:
            self._exclude_inside(left, operator, right, ctx)
            if rref is None:
                self._exclude_inside(right, operator, left, ctx)
            return

        if rref is not None:
            if rref.table == lref.table:
                # a.x = a.y compares two columns of the same row
                self._add(lref, operator, self._operand(right), ctx, expression=True)
                if operator in _FLIPPABLE:
                    self._add(
                        rref, operator.flipped(), self._operand(left), ctx,
                        expression=True,
                    )
                return
            if operator == Operator.EQ:
                self._join(left, right, lref, rref, ctx)
                return
            self._add(lref, operator, self._operand(right), ctx)
            if operator in _FLIPPABLE:
                self._add(rref, operator.flipped(), self._operand(left), ctx)
            return

        self._add(lref, operator, self._operand(right), ctx)
        self._exclude_inside(right, operator, left, ctx)

    def _bounded_by(
        self,
        subject: _Expr,
        bounds: _Expr | None,
        operator: Operator,
        ctx: _Context,
    ) -> None:
        """:d BETWEEN t.start_dt AND t.end_dt -> start_dt <= :d, end_dt >= :d."""
        self._exclude_inside(subject, operator, bounds, ctx)
        if bounds is None or len(bounds.items) != 2:
            return
        if operator == Operator.NOT_BETWEEN:
            ctx = replace(ctx, negated=True)
        low, high = bounds.items
        operand = self._operand(subject)
        low_ref, high_ref = self._local(low), self._local(high)
        if low_ref is not None:
            self._add(low_ref, Operator.LE, operand, ctx)
        if high_ref is not None:
            self._add(high_ref, Operator.GE, operand, ctx)

    def _exclude_inside(
        self,
        expr: _Expr | None,
        operator: Operator,
        other: _Expr | None,
        ctx: _Context,
    ) -> None:
        """Record columns wrapped in functions or arithmetic as unusable."""
        if expr is None or expr.kind in ("column", "list"):
            return
        seen: set[ColumnRef] = set()
        for name in expr.names:
            ref = self._resolve(name)
            if ref is None or ref in seen:
                continue
            seen.add(ref)
            self._add(ref, operator, self._operand(other), ctx, expression=True)

    def _join(
        self,
        left: _Expr,
        right: _Expr | None,
        lref: ColumnRef,
        rref: ColumnRef,
        ctx: _Context,
    ) -> None:
        self._add(lref, Operator.EQ, self._operand(right), ctx, partner=rref)
        self._add(rref, Operator.EQ, self._operand(left), ctx, partner=lref)
        if ctx.or_group:
            return

        if ctx.source == PredicateSource.ON:
            # The joined table always ends up on the right
            if lref.table == ctx.joined_alias:
                lref, rref = rref, lref
            self.joins.append(Join(lref, rref, ctx.join_type))
            return

        right_marker = right is not None and right.outer_marker
        if right_marker and not left.outer_marker:
            self.joins.append(Join(lref, rref, JoinType.LEFT))
        elif left.outer_marker and not right_marker:
            self.joins.append(Join(rref, lref, JoinType.LEFT))
        else:
            # Same orientation as ON joins: the later FROM item on the right
            if self._from_position(lref.table) > self._from_position(rref.table):
                lref, rref = rref, lref
            self.joins.append(Join(lref, rref, JoinType.INNER))

    def _from_position(self, alias: str) -> int:
        for position, table in enumerate(self.tables):
            if table.alias == alias:
                return position
        return len(self.tables)

    def _using(self, previous: str, item: _FromItem, ctx: _Context) -> None:
        for column in item.using:
            lref = self._note(ColumnRef(previous, column))
            rref = self._note(ColumnRef(item.alias, column))
            self._add(
                lref, Operator.EQ,
                Operand(OperandKind.COLUMN, rref.qualified_name), ctx, partner=rref,
            )
            self._add(
                rref, Operator.EQ,
                Operand(OperandKind.COLUMN, lref.qualified_name), ctx, partner=lref,
            )
            self.joins.append(Join(lref, rref, ctx.join_type))

    def _add(
        self,
        ref: ColumnRef,
        operator: Operator,
        operand: Operand | None,
        ctx: _Context,
        expression: bool = False,
        partner: ColumnRef | None = None,
    ) -> None:
        predicate_class, reason = classify(operator, operand, expression)
        if ctx.negated and predicate_class != PredicateClass.EXCLUDED:
            predicate_class, reason = PredicateClass.EXCLUDED, ExclusionReason.NEGATED
        self.predicates.append(
            Predicate(
                column=ref,
                operator=operator,
                operand=operand,
                predicate_class=predicate_class,
                exclusion_reason=reason,
                or_group=ctx.or_group,
                source=ctx.source,
                join_partner=partner,
            )
        )

    def _operand(self, expr: _Expr | None) -> Operand | None:
        if expr is None:
            return None
        text = " ".join(self.sql[expr.start:expr.end].split())
        if expr.kind == "list":
            items = tuple(
                op for op in (self._operand(i) for i in expr.items) if op is not None
            )
            return Operand(OperandKind.LIST, text, items=items)
        kind = {
            "literal": OperandKind.LITERAL,
            "bind": OperandKind.BIND,
            "column": OperandKind.COLUMN,
            "subquery": OperandKind.SUBQUERY,
        }.get(expr.kind, OperandKind.EXPRESSION)
        value = expr.value if kind in (OperandKind.LITERAL, OperandKind.BIND) else None
        return Operand(kind, text, value=value)

    # -- projection and ordering

    def _select_list(self) -> tuple[list[ColumnRef], list[str]]:
        columns: list[ColumnRef] = []
        stars: list[str] = []
        for item in self.raw.items:
            expr = item.expr
            if expr.kind == "star":
                if expr.name is None:
                    stars.extend(t.alias for t in self.tables if t.alias not in stars)
                    continue
                qualifier = ".".join(expr.name.parts[:-1])
                table = self._match(qualifier)
                if table is None:
                    raise ParseError(
                        ParseErrorKind.UNRESOLVED_COLUMN_REFERENCE,
                        f"{qualifier}.* refers to unknown table or alias {qualifier}",
                        position=expr.start,
                    )
                if table.alias not in stars:
                    stars.append(table.alias)
                continue

            for select in expr.selects:
                self._add_subquery(select, SubqueryLocation.SCALAR, False)
            for name in expr.names:
                ref = self._resolve(name)
                if ref is not None and ref not in columns:
                    columns.append(ref)
            if item.alias:
                self.select_aliases[item.alias] = expr
        return columns, stars

    def _order_by(self) -> list[SortKey]:
        keys: list[SortKey] = []
        for expr, descending in self.raw.order_by:
            target = expr
            if expr.kind == "literal" and isinstance(expr.value, int):
                if not 1 <= expr.value <= len(self.raw.items):
                    raise ParseError(
                        ParseErrorKind.MALFORMED_SYNTAX,
                        f"ORDER BY position {expr.value} is out of range",
                        position=expr.start,
                    )
                target = self.raw.items[expr.value - 1].expr
                if target.kind == "star":
                    continue
            elif (
                expr.kind == "column"
                and expr.name is not None
                and expr.name.qualifier is None
                and expr.name.column in self.select_aliases
            ):
                target = self.select_aliases[expr.name.column]
            else:
                for select in expr.selects:
                    self._add_subquery(select, SubqueryLocation.SCALAR, False)

            ref = self._local(target) if target.kind == "column" else None
            if target is expr and ref is None:
                for name in expr.names:
                    self._resolve(name)
            if ref is not None:
                keys.append(SortKey(ref, descending))
        return keys


# ── Public API ───────────────────────────────────────────────────────────


class StatementParser:
    """
    Parses one SELECT statement into a ParsedQuery.

    Stateless between calls; one instance can be shared.

    Example:
        parser = StatementParser(ParserConfig(max_subquery_depth=1))
        query = parser.parse(sql)
    """

    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def parse(self, sql: str) -> ParsedQuery:
        """
        Parse SQL text.

        Raises:
            ParseError: with a ParseErrorKind describing the failure
        """
        self._preflight(sql)
        tokens = tokenize(sql, max_tokens=self.config.max_tokens)
        try:
            raw = _Parser(sql, tokens, self.config).parse_statement()
            query = _ScopeBuilder(raw, sql).build()
        except RecursionError as e:
            raise ParseError(
                ParseErrorKind.NESTING_TOO_DEEP,
                "Expression nesting is too deep to parse",
            ) from e

        logger.debug(
            "Parsed SELECT: %d table(s), %d predicate(s), %d subquery(ies)",
            len(query.tables),
            len(query.predicates),
            len(query.subqueries),
        )
        return query

    def _preflight(self, sql: str) -> None:
        if len(sql) > self.config.max_sql_length:
            raise ParseError(
                ParseErrorKind.MALFORMED_SYNTAX,
                f"Statement exceeds the maximum length of "
                f"{self.config.max_sql_length} characters",
            )

        stripped = sqlparse.format(sql, strip_comments=True).strip()
        if _PLSQL_BLOCK.match(stripped):
            raise ParseError(
                ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE,
                "PL/SQL blocks are not supported; only single SELECT statements "
                "can be analyzed",
                statement_type="PL/SQL",
            )

        statements = [
            s for s in sqlparse.split(stripped) if s.strip().rstrip(";").strip()
        ]
        if not statements:
            raise ParseError(ParseErrorKind.MALFORMED_SYNTAX, "Empty SQL statement")
        if len(statements) > 1:
            raise ParseError(
                ParseErrorKind.MALFORMED_SYNTAX,
                f"Expected a single statement, found {len(statements)}",
            )

        statement = sqlparse.parse(statements[0])[0]
        first = statement.token_first(skip_cm=True)
        first_word = first.normalized.upper() if first is not None else ""
        statement_type = statement.get_type()

        if first_word == "WITH":
            raise ParseError(
                ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE,
                "Common table expressions (WITH) are not supported",
                statement_type="WITH",
            )
        if statement_type != "SELECT":
            detected = statement_type if statement_type != "UNKNOWN" else first_word
            raise ParseError(
                ParseErrorKind.UNSUPPORTED_STATEMENT_TYPE,
                f"{detected} statements are not supported; only SELECT can be analyzed",
                statement_type=detected,
            )


def parse_sql(sql: str, config: ParserConfig | None = None) -> ParsedQuery:
    """
    Convenience function to parse a SELECT statement.

    Args:
        sql: The SQL text
        config: Optional parser limits

    Returns:
        ParsedQuery for the statement
    """
    return StatementParser(config).parse(sql)
