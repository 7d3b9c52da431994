"""GROUP BY, aggregate functions, HAVING and ORDER BY over groups.

Rows are grouped by the JSON encoding of their GROUP BY values. Every
group becomes one result row holding the selected outputs plus any hidden
columns needed by HAVING or ORDER BY (aggregates that are not selected,
GROUP BY columns that are not selected). HAVING is evaluated with the same
parser and evaluator as WHERE: aggregate calls and column names in the
clause are rewritten to ``__rN`` result-column names first.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from sheetsql.engine.ordering import apply_offset_limit, sort_rows
from sheetsql.errors import ValidationError
from sheetsql.sql.clauses import SelectItem, parse_order_by_clause, split_top_level
from sheetsql.sql.columns import ColumnMap, index_to_column, normalize_reference, resolve_column_names
from sheetsql.sql.evaluator import evaluate_where, to_number
from sheetsql.sql.expressions import ParsedExpression, evaluate_expression, is_expression, parse_expression
from sheetsql.sql.lexer import TokenType, tokenize
from sheetsql.sql.parser import parse_where_clause
from sheetsql.table import ResultColumn

logger = logging.getLogger(__name__)

AGGREGATE_FUNCTIONS = ("COUNT", "SUM", "AVG", "MIN", "MAX")

_AGGREGATE_CALL_RE = re.compile(r"\b(COUNT|SUM|AVG|MIN|MAX)\s*\(\s*([^()]*?)\s*\)", re.IGNORECASE)


@dataclass(frozen=True)
class AggregateCall:
    function: str
    argument: str
    key: str
    index: int | None = None
    expression: ParsedExpression | None = None


@dataclass
class _Output:
    column: ResultColumn
    compute: Callable[[list[Sequence[Any]]], Any]
    names: tuple[str, ...] = ()
    key: str | None = None
    source_index: int | None = None


@dataclass
class GroupedResult:
    columns: list[ResultColumn]
    rows: list[list[Any]] = field(default_factory=list)


def contains_aggregate(text: str) -> bool:
    return bool(_AGGREGATE_CALL_RE.search(text or ""))


def parse_aggregate(text: str, column_map: ColumnMap) -> AggregateCall | None:
    """Parse ``SUM(Amount)``-style text; None when ``text`` is not a single aggregate call."""
    match = _AGGREGATE_CALL_RE.fullmatch((text or "").strip())
    if not match:
        return None
    function = match.group(1).upper()
    argument = match.group(2).strip()
    if argument == "*":
        if function != "COUNT":
            raise ValidationError("aggregate", text, f"{function}(column); only COUNT accepts *")
        return AggregateCall(function=function, argument=argument, key=f"{function}(*)")
    if not argument:
        raise ValidationError("aggregate", text, f"{function}(column)")

    index = column_map.index_of(argument)
    if index is not None:
        return AggregateCall(
            function=function,
            argument=argument,
            key=f"{function}({column_map.get(argument)})",
            index=index,
        )
    if is_expression(argument):
        expression = parse_expression(argument, column_map)
        canonical = re.sub(r"\s+", "", argument).lower()
        return AggregateCall(
            function=function,
            argument=argument,
            key=f"{function}({canonical})",
            expression=expression,
        )
    raise ValidationError("aggregate", text, f"{function} over a known column (unknown '{argument}')")


def compute_aggregate(call: AggregateCall, rows: Sequence[Sequence[Any]]) -> Any:
    """COUNT counts every row; SUM/AVG skip non-numeric; MIN/MAX fall back to text order."""
    if call.function == "COUNT":
        return len(rows)

    values = [_argument_value(call, row) for row in rows]
    present = [v for v in values if v is not None and v != ""]
    numbers = [n for n in (to_number(v) for v in present) if n is not None]

    if call.function == "SUM":
        return _clean_number(sum(numbers))
    if call.function == "AVG":
        return _clean_number(sum(numbers) / len(numbers)) if numbers else None
    if numbers:
        return _clean_number(min(numbers) if call.function == "MIN" else max(numbers))
    texts = [str(v) for v in present]
    if not texts:
        return None
    return min(texts) if call.function == "MIN" else max(texts)


def execute_group_by(
    rows: Sequence[Sequence[Any]],
    column_map: ColumnMap,
    items: Sequence[SelectItem],
    group_by: str | None = None,
    having: str | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> GroupedResult:
    """Group pre-filtered rows and compute one output row per group.

    Without GROUP BY, all rows form a single group (so ``SELECT COUNT(*)``
    over an empty table still yields one row).
    """
    group_indices = [column_map.require_index(ref) for ref in split_top_level(group_by or "")]

    outputs = [_select_output(item, column_map, group_indices, position) for position, item in enumerate(items)]
    visible = len(outputs)

    for index in group_indices:
        if not any(out.source_index == index for out in outputs):
            outputs.append(_column_output(column_map, index, column_map.letter_at(index)))

    having_text = _rewrite_aggregates(having, column_map, outputs) if having else None
    order_text = _rewrite_aggregates(order_by, column_map, outputs) if order_by else None

    rename = _rename_map(outputs)
    result_map = ColumnMap(entries={f"__r{i}": index_to_column(i) for i in range(len(outputs))})

    groups: dict[str, list[Sequence[Any]]] = {}
    if not group_indices:
        groups[""] = list(rows)
    for row in rows if group_indices else ():
        key = json.dumps([_cell(row, i) for i in group_indices], default=str)
        groups.setdefault(key, []).append(row)

    result_rows = [[out.compute(members) for out in outputs] for members in groups.values()]

    if having_text:
        having_clause = resolve_column_names(having_text, rename)
        _require_result_columns(having_clause, result_map)
        condition = parse_where_clause(having_clause)
        result_rows = [r for r in result_rows if evaluate_where(condition, r, result_map)]

    if order_text:
        terms = parse_order_by_clause(order_text, rename)
        keys = [(result_map.require_index(term.column), term.descending) for term in terms]
        result_rows = sort_rows(result_rows, keys)

    result_rows = apply_offset_limit(result_rows, offset, limit)
    logger.debug("GROUP BY produced %d groups (%d after HAVING/LIMIT)", len(groups), len(result_rows))
    return GroupedResult(
        columns=[out.column for out in outputs[:visible]],
        rows=[r[:visible] for r in result_rows],
    )


def _select_output(item: SelectItem, column_map: ColumnMap, group_indices: list[int], position: int) -> _Output:
    text = item.expression.strip()
    if text == "*":
        raise ValidationError("SELECT clause", text, "explicit columns when aggregating")

    call = parse_aggregate(text, column_map)
    if call is not None:
        label = item.alias or text
        return _Output(
            column=ResultColumn(id=_aggregate_id(call, column_map), label=label),
            compute=lambda members, c=call: compute_aggregate(c, members),
            names=_names(item.alias, text),
            key=call.key,
        )

    index = column_map.index_of(text)
    if index is not None:
        if index not in group_indices:
            raise ValidationError("SELECT column", text, "an aggregate function or a GROUP BY column")
        output = _column_output(column_map, index, item.alias or text)
        output.names = output.names + _names(item.alias, text)
        return output

    if is_expression(text):
        expression = parse_expression(text, column_map)
        if any(i not in group_indices for i in expression.columns):
            raise ValidationError("SELECT expression", text, "arithmetic over GROUP BY columns")
        return _Output(
            column=ResultColumn(id=text, label=item.alias or text),
            compute=lambda members, e=expression: evaluate_expression(e, members[0]) if members else None,
            names=_names(item.alias, text),
        )

    raise ValidationError("SELECT column", text, f"a column, aggregate or expression (item {position + 1})")


def _column_output(column_map: ColumnMap, index: int, label: str) -> _Output:
    letter = column_map.letter_at(index)
    names = tuple(key for key, value in column_map.entries.items() if value == letter)
    return _Output(
        column=ResultColumn(id=letter, label=label),
        compute=lambda members, i=index: _cell(members[0], i) if members else None,
        names=names,
        source_index=index,
    )


def _rewrite_aggregates(text: str, column_map: ColumnMap, outputs: list[_Output]) -> str:
    """Replace aggregate calls with ``__rN``, adding hidden outputs for unselected ones."""

    def _replace(match: re.Match[str]) -> str:
        call = parse_aggregate(match.group(0), column_map)
        for position, out in enumerate(outputs):
            if out.key == call.key:
                return f"__r{position}"
        outputs.append(
            _Output(
                column=ResultColumn(id=_aggregate_id(call, column_map), label=match.group(0)),
                compute=lambda members, c=call: compute_aggregate(c, members),
                key=call.key,
            )
        )
        return f"__r{len(outputs) - 1}"

    return _AGGREGATE_CALL_RE.sub(_replace, text)


def _require_result_columns(clause: str, result_map: ColumnMap) -> None:
    """HAVING may only reference GROUP BY columns, aliases and aggregates."""
    for token in tokenize(clause):
        if token.type == TokenType.COLUMN and result_map.get(token.value) is None:
            raise ValidationError("HAVING column", token.value, "a GROUP BY column, alias or aggregate")


def _rename_map(outputs: list[_Output]) -> ColumnMap:
    """Reference key to ``__rN``; first output claiming a name wins."""
    entries: dict[str, str] = {}
    for position in range(len(outputs)):
        entries.setdefault(f"__r{position}", f"__r{position}")
    for position, out in enumerate(outputs):
        for name in out.names:
            entries.setdefault(name, f"__r{position}")
    return ColumnMap(entries=entries)


def _names(alias: str | None, text: str) -> tuple[str, ...]:
    names = [normalize_reference(text)]
    if alias:
        names.insert(0, normalize_reference(alias))
    return tuple(names)


def _aggregate_id(call: AggregateCall, column_map: ColumnMap) -> str:
    if call.index is not None:
        return f"{call.function.lower()}-{column_map.letter_at(call.index)}"
    if call.expression is not None:
        return f"{call.function.lower()}-{call.argument}"
    return call.function.lower()


def _argument_value(call: AggregateCall, row: Sequence[Any]) -> Any:
    if call.expression is not None:
        return evaluate_expression(call.expression, row)
    if call.index is None:
        return None
    return _cell(row, call.index)


def _clean_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if 0 <= index < len(row) else None
