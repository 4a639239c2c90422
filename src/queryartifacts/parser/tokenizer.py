"""
Lexer for Oracle-flavoured SELECT statements.

Produces a flat token list for the recursive-descent parser. Comments
(including optimizer hints) are dropped, unquoted identifiers are
upper-cased the way Oracle folds them, and the Oracle outer-join marker
``(+)`` is a single token.

Usage:
    from queryartifacts.parser.tokenizer import tokenize

    tokens = tokenize("SELECT e.name FROM hr.employees e")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from queryartifacts.exceptions import ParseError, ParseErrorKind


class TokenType(str, Enum):
    IDENT = "ident"
    NUMBER = "number"
    STRING = "string"
    BIND = "bind"
    OPERATOR = "operator"
    PUNCT = "punct"
    OUTER_JOIN = "outer_join"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    """
    A lexical token.

    Attributes:
        type: Token category
        value: Normalised value (upper-cased identifier, unescaped string)
        position: Offset of the first character in the source text
        end: Offset just past the last character
        quoted: True for "quoted" identifiers, which are never keywords
    """

    type: TokenType
    value: str
    position: int
    end: int
    quoted: bool = False

    def is_keyword(self, *words: str) -> bool:
        return self.type == TokenType.IDENT and not self.quoted and self.value in words

    def is_punct(self, *chars: str) -> bool:
        return self.type == TokenType.PUNCT and self.value in chars

    def is_operator(self, *ops: str) -> bool:
        return self.type == TokenType.OPERATOR and self.value in ops


_TWO_CHAR_OPERATORS = ("<>", "!=", "^=", "<=", ">=", "||")
_ONE_CHAR_OPERATORS = "=<>+-*/"
_PUNCTUATION = "(),.;@"


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$#"


def _malformed(message: str, position: int) -> ParseError:
    return ParseError(ParseErrorKind.MALFORMED_SYNTAX, message, position=position)


def tokenize(sql: str, max_tokens: int | None = None) -> list[Token]:
    """
    Split SQL text into tokens, terminated by an EOF token.

    Raises:
        ParseError: MALFORMED_SYNTAX for unterminated strings, comments or
            quoted identifiers, unknown characters, or too many tokens.
    """
    tokens: list[Token] = []
    i = 0
    n = len(sql)

    def emit(token: Token) -> None:
        tokens.append(token)
        if max_tokens is not None and len(tokens) > max_tokens:
            raise _malformed(
                f"Statement exceeds the maximum of {max_tokens} tokens",
                token.position,
            )

    while i < n:
        ch = sql[i]

        if ch.isspace():
            i += 1
            continue

        # -- line comment
        if sql.startswith("--", i):
            newline = sql.find("\n", i)
            i = n if newline == -1 else newline + 1
            continue

        # /* block comment */ (also /*+ hints */)
        if sql.startswith("/*", i):
            close = sql.find("*/", i + 2)
            if close == -1:
                raise _malformed("Unterminated comment", i)
            i = close + 2
            continue

        # 'string', with '' as an escaped quote; N'...' national strings
        if ch == "'" or (ch in "nN" and sql.startswith("'", i + 1)):
            start = i
            i = i + 1 if ch == "'" else i + 2
            chars: list[str] = []
            while True:
                if i >= n:
                    raise _malformed("Unterminated string literal", start)
                if sql[i] == "'":
                    if sql.startswith("''", i):
                        chars.append("'")
                        i += 2
                        continue
                    i += 1
                    break
                chars.append(sql[i])
                i += 1
            emit(Token(TokenType.STRING, "".join(chars), start, i))
            continue

        # "Quoted Identifier" keeps its case
        if ch == '"':
            close = sql.find('"', i + 1)
            if close == -1:
                raise _malformed("Unterminated quoted identifier", i)
            if close == i + 1:
                raise _malformed("Empty quoted identifier", i)
            emit(Token(TokenType.IDENT, sql[i + 1:close], i, close + 1, quoted=True))
            i = close + 1
            continue

        if _is_ident_start(ch):
            start = i
            while i < n and _is_ident_char(sql[i]):
                i += 1
            emit(Token(TokenType.IDENT, sql[start:i].upper(), start, i))
            continue

        if ch.isdigit() or (ch == "." and i + 1 < n and sql[i + 1].isdigit()):
            start = i
            while i < n and sql[i].isdigit():
                i += 1
            if i < n and sql[i] == "." and not sql.startswith("..", i):
                i += 1
                while i < n and sql[i].isdigit():
                    i += 1
            if i < n and sql[i] in "eE":
                j = i + 1
                if j < n and sql[j] in "+-":
                    j += 1
                if j < n and sql[j].isdigit():
                    i = j
                    while i < n and sql[i].isdigit():
                        i += 1
            emit(Token(TokenType.NUMBER, sql[start:i], start, i))
            continue

        # :name or :1 bind variables
        if ch == ":":
            start = i
            i += 1
            if i < n and sql[i] == '"':
                close = sql.find('"', i + 1)
                if close == -1:
                    raise _malformed("Unterminated bind variable name", start)
                i = close + 1
            else:
                while i < n and _is_ident_char(sql[i]):
                    i += 1
            if i == start + 1:
                raise _malformed("Bind variable without a name", start)
            emit(Token(TokenType.BIND, sql[start:i], start, i))
            continue

        if ch == "(":
            j = i + 1
            while j < n and sql[j].isspace():
                j += 1
            if j < n and sql[j] == "+":
                k = j + 1
                while k < n and sql[k].isspace():
                    k += 1
                if k < n and sql[k] == ")":
                    emit(Token(TokenType.OUTER_JOIN, "(+)", i, k + 1))
                    i = k + 1
                    continue

        two = sql[i:i + 2]
        if two in _TWO_CHAR_OPERATORS:
            # != and ^= are Oracle spellings of <>
            value = "<>" if two in ("!=", "^=") else two
            emit(Token(TokenType.OPERATOR, value, i, i + 2))
            i += 2
            continue

        if ch in _ONE_CHAR_OPERATORS:
            emit(Token(TokenType.OPERATOR, ch, i, i + 1))
            i += 1
            continue

        if ch in _PUNCTUATION:
            emit(Token(TokenType.PUNCT, ch, i, i + 1))
            i += 1
            continue

        raise _malformed(f"Unexpected character {ch!r}", i)

    tokens.append(Token(TokenType.EOF, "", n, n))
    return tokens
