"""Tokenizer for WHERE and HAVING clauses.

Column references are expected to be resolved to column letters before
lexing (see ``sheetsql.sql.columns.resolve_column_names``); any bare word
that is not a reserved keyword becomes a COLUMN token.

Characters the grammar has no use for (``,``, ``;``, stray symbols) are
skipped rather than rejected.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from sheetsql.errors import ParseError


class TokenType(str, Enum):
    COLUMN = "COLUMN"
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    NULL = "NULL"
    DATE = "DATE"
    OPERATOR = "OPERATOR"
    STRING_OP = "STRING_OP"
    AND = "AND"
    OR = "OR"
    IS = "IS"
    NOT = "NOT"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    position: int


RESERVED_KEYWORDS = frozenset(
    {
        "AND",
        "OR",
        "IS",
        "NOT",
        "NULL",
        "TRUE",
        "FALSE",
        "CONTAINS",
        "STARTS",
        "ENDS",
        "WITH",
        "DATE",
        "NOW",
        "TODAY",
    }
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}


def tokenize(clause: str) -> list[Token]:
    """Convert a clause into a token list terminated by an EOF token."""
    tokens: list[Token] = []
    pos = 0
    length = len(clause)

    while pos < length:
        ch = clause[pos]

        if ch.isspace():
            pos += 1
            continue

        if ch == "(":
            tokens.append(Token(TokenType.LPAREN, "(", pos))
            pos += 1
            continue
        if ch == ")":
            tokens.append(Token(TokenType.RPAREN, ")", pos))
            pos += 1
            continue

        if ch in "\"'":
            value, end = _read_string(clause, pos)
            tokens.append(Token(TokenType.STRING, value, pos))
            pos = end
            continue

        if ch.isdigit() or (ch == "-" and pos + 1 < length and clause[pos + 1].isdigit()):
            value, end = _read_number(clause, pos)
            tokens.append(Token(TokenType.NUMBER, value, pos))
            pos = end
            continue

        if ch in "=<>!":
            two = clause[pos:pos + 2]
            if two in ("<>", "<=", ">=", "!="):
                tokens.append(Token(TokenType.OPERATOR, two, pos))
                pos += 2
                continue
            if ch == "!":
                # lone "!" is not an operator
                pos += 1
                continue
            tokens.append(Token(TokenType.OPERATOR, ch, pos))
            pos += 1
            continue

        if ch.isalpha() or ch == "_":
            word, end = _read_word(clause, pos)
            token, end = _keyword_or_column(clause, word, pos, end)
            tokens.append(token)
            pos = end
            continue

        pos += 1

    tokens.append(Token(TokenType.EOF, None, length))
    return tokens


def _read_word(clause: str, start: int) -> tuple[str, int]:
    end = start
    while end < len(clause) and (clause[end].isalnum() or clause[end] == "_"):
        end += 1
    return clause[start:end], end


def _skip_space(clause: str, pos: int) -> int:
    while pos < len(clause) and clause[pos].isspace():
        pos += 1
    return pos


def _read_number(clause: str, start: int) -> tuple[int | float, int]:
    end = start + 1 if clause[start] == "-" else start
    seen_dot = False
    while end < len(clause):
        ch = clause[end]
        if ch.isdigit():
            end += 1
        elif ch == "." and not seen_dot and end + 1 < len(clause) and clause[end + 1].isdigit():
            seen_dot = True
            end += 1
        else:
            break
    text = clause[start:end]
    return (float(text) if seen_dot else int(text)), end


def _read_string(clause: str, start: int) -> tuple[str, int]:
    """Read a quoted literal; supports backslash escapes and doubled quotes."""
    quote = clause[start]
    pos = start + 1
    chars: list[str] = []
    while pos < len(clause):
        ch = clause[pos]
        if ch == "\\" and pos + 1 < len(clause):
            nxt = clause[pos + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            pos += 2
            continue
        if ch == quote:
            if pos + 1 < len(clause) and clause[pos + 1] == quote:
                chars.append(quote)
                pos += 2
                continue
            return "".join(chars), pos + 1
        chars.append(ch)
        pos += 1
    raise ParseError(clause, start, "terminated string literal")


def _keyword_or_column(clause: str, word: str, start: int, end: int) -> tuple[Token, int]:
    upper = word.upper()
    if upper not in RESERVED_KEYWORDS:
        return Token(TokenType.COLUMN, word, start), end

    if upper in ("AND", "OR", "IS", "NOT"):
        return Token(TokenType(upper), upper, start), end
    if upper == "NULL":
        return Token(TokenType.NULL, None, start), end
    if upper in ("TRUE", "FALSE"):
        return Token(TokenType.BOOLEAN, upper == "TRUE", start), end
    if upper == "CONTAINS":
        return Token(TokenType.STRING_OP, "contains", start), end

    if upper in ("STARTS", "ENDS"):
        next_start = _skip_space(clause, end)
        next_word, next_end = _read_word(clause, next_start)
        if next_word.upper() != "WITH":
            raise ParseError(clause, next_start, f"WITH after {upper}")
        return Token(TokenType.STRING_OP, f"{upper.lower()} with", start), next_end

    if upper == "DATE":
        quote_pos = _skip_space(clause, end)
        if quote_pos >= len(clause) or clause[quote_pos] not in "\"'":
            raise ParseError(clause, quote_pos, "quoted literal after DATE")
        raw, str_end = _read_string(clause, quote_pos)
        return Token(TokenType.DATE, raw.strip(), start), str_end

    if upper in ("NOW", "TODAY"):
        paren_pos = _skip_space(clause, end)
        if clause[paren_pos:paren_pos + 1] == "(":
            close_pos = _skip_space(clause, paren_pos + 1)
            if clause[close_pos:close_pos + 1] != ")":
                raise ParseError(clause, close_pos, f"closing parenthesis for {upper}()")
            end = close_pos + 1
        if upper == "TODAY":
            return Token(TokenType.DATE, date.today().isoformat(), start), end
        return Token(TokenType.DATE, datetime.now().isoformat(), start), end

    raise ParseError(clause, start, f"operand or operator, not reserved word {upper}")
