"""Arithmetic expressions over row values (``SELECT B * C``, ``SET C = C + 1``).

Evaluation fails closed: any non-numeric operand, malformed expression or
arithmetic error yields ``None`` instead of raising, so one bad cell never
aborts an aggregate query.
"""
from __future__ import annotations

import ast
import math
import operator
import re
from dataclasses import dataclass
from typing import Any, Sequence

from sheetsql.errors import ValidationError
from sheetsql.sql.columns import RESERVED_WORDS, ColumnMap

_AGGREGATE_RE = re.compile(r"\b(?:COUNT|SUM|AVG|MIN|MAX)\s*\([^)]*\)", re.IGNORECASE)
_QUOTED_RE = re.compile(r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'|`[^`]*`")
_IDENTIFIER_RE = re.compile(
    r"(?<![\w.])(\"[^\"]+\"|`[^`]+`|:?[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)?)"
)
_SAFE_CHARS_RE = re.compile(r"^[0-9eE+\-*/%().\s]+$")
_PLACEHOLDER_RE = re.compile(r"__c(\d+)__")

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}
_UNARY_OPS = {ast.USub: operator.neg, ast.UAdd: operator.pos}


@dataclass(frozen=True)
class ParsedExpression:
    source: str
    template: str
    columns: tuple[int, ...]


def is_expression(text: str) -> bool:
    """True when ``text`` contains arithmetic outside wildcards and aggregates."""
    stripped = _QUOTED_RE.sub("''", text or "")
    stripped = _AGGREGATE_RE.sub("0", stripped).strip()
    if stripped in ("", "*"):
        return False
    if re.fullmatch(r"-?\d+(?:\.\d+)?", stripped):
        return False
    return bool(re.search(r"[+\-*/%]", stripped))


def parse_expression(text: str, column_map: ColumnMap) -> ParsedExpression:
    """Replace column references with row-index placeholders."""
    columns: list[int] = []

    def _substitute(match: re.Match[str]) -> str:
        reference = match.group(1)
        if reference.upper() in RESERVED_WORDS:
            raise ValidationError("expression", text, "arithmetic over columns and numbers")
        index = column_map.index_of(reference)
        if index is None:
            raise ValidationError("expression", text, f"known column reference (unknown '{reference}')")
        columns.append(index)
        return f"__c{len(columns) - 1}__"

    template = _IDENTIFIER_RE.sub(_substitute, text)
    return ParsedExpression(source=text, template=template, columns=tuple(columns))


def evaluate_expression(expression: ParsedExpression, row: Sequence[Any]) -> float | None:
    """Evaluate a parsed expression against a row; None on any failure."""
    values: list[str] = []
    for index in expression.columns:
        cell = row[index] if 0 <= index < len(row) else None
        number = _numeric(cell)
        if number is None:
            return None
        values.append(repr(number))

    substituted = _PLACEHOLDER_RE.sub(lambda m: f"({values[int(m.group(1))]})", expression.template)
    if not _SAFE_CHARS_RE.match(substituted):
        return None
    try:
        result = _eval_node(ast.parse(substituted.strip(), mode="eval").body)
    except (SyntaxError, ValueError, ZeroDivisionError, OverflowError, TypeError):
        return None
    if result is None or not math.isfinite(result):
        return None
    return float(result)


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"Unsupported expression node: {type(node).__name__}")
