"""Statement splitting and clause parsing.

Each clause-boundary rule is its own function: keywords are located at the
top level only (outside quotes and parentheses) with ``find_keyword``, and
the text between consecutive keywords becomes the clause body.

Table references:

- ``:name``            virtual in-memory table (``dataSources[name]``)
- ``Sheet1!A:F``       sheet range (``'My Sheet'!A1:D100`` when quoted)
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from sheetsql.errors import ValidationError
from sheetsql.sql.columns import ColumnMap
from sheetsql.sql.expressions import ParsedExpression, is_expression, parse_expression

OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE")

SELECT_CLAUSE_KEYWORDS = (
    "SELECT", "FROM", "WHERE", "GROUP BY", "HAVING", "PIVOT",
    "ORDER BY", "LIMIT", "OFFSET", "LABEL", "FORMAT", "OPTIONS",
)

# Visualization-only clauses the local engine does not implement.
UNSUPPORTED_LOCAL_CLAUSES = ("PIVOT", "LABEL", "FORMAT", "OPTIONS")

JOIN_TYPES = {"": "JOIN", "INNER": "JOIN", "LEFT": "LEFT JOIN", "RIGHT": "RIGHT JOIN"}

_TABLE_PATTERN = (
    r":[A-Za-z_][\w-]*"
    r"|'(?:[^']|'')+'![A-Za-z$]*\d*(?::[A-Za-z$]*\d*)?"
    r"|[\w.\-]+![A-Za-z$]*\d*(?::[A-Za-z$]*\d*)?"
    r"|[A-Za-z]+\d*:[A-Za-z]+\d*"
)
_ALIAS_PATTERN = (
    r"(?:\s+(?:AS\s+)?(?!(?:JOIN|LEFT|RIGHT|INNER|OUTER|ON|WHERE|SET|GROUP|ORDER|LIMIT)\b)"
    r"(?P<alias>[A-Za-z_]\w*))?"
)
_MAIN_TABLE_RE = re.compile(rf"^\s*(?P<table>{_TABLE_PATTERN}){_ALIAS_PATTERN}", re.IGNORECASE)
_JOIN_RE = re.compile(
    rf"\s*(?:(?P<kind>LEFT|RIGHT|INNER)(?:\s+OUTER)?\s+)?JOIN\s+(?P<table>{_TABLE_PATTERN}){_ALIAS_PATTERN}"
    r"\s+ON\s+(?P<on>.+?)"
    r"(?=\s+(?:(?:LEFT|RIGHT|INNER)(?:\s+OUTER)?\s+)?JOIN\b|\s+(?:WHERE|ORDER|LIMIT|GROUP)\b|\s*$)",
    re.IGNORECASE | re.DOTALL,
)
_QUALIFIED_COLUMN = r"(:?[A-Za-z_][\w-]*)\.([A-Za-z_]\w*|\"[^\"]+\"|`[^`]+`)"
_JOIN_CONDITION_RE = re.compile(rf"^\s*{_QUALIFIED_COLUMN}\s*=\s*{_QUALIFIED_COLUMN}\s*$")
_ASSIGNMENT_RE = re.compile(r"^\s*(\"[^\"]+\"|`[^`]+`|:?[A-Za-z_][\w.]*)\s*=\s*(.+?)\s*$", re.DOTALL)
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_VIRTUAL_REF_RE = re.compile(r"(?<![\w'\"!:]):([A-Za-z_][\w-]*)")


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableReference:
    type: str  # "sheet" | "virtual"
    name: str | None
    source: str
    alias: str | None = None

    @property
    def is_virtual(self) -> bool:
        return self.type == "virtual"

    @property
    def qualifiers(self) -> tuple[str, ...]:
        """Prefixes accepted for ``prefix.column`` references to this table."""
        names = [self.alias, self.name]
        if not self.is_virtual and "!" in self.source:
            names.append(sheet_name_of(self.source))
        return tuple(n for n in names if n)


@dataclass(frozen=True)
class JoinClause:
    type: str  # "JOIN" | "LEFT JOIN" | "RIGHT JOIN"
    table: TableReference
    on: str


@dataclass(frozen=True)
class FromClause:
    table: TableReference
    joins: tuple[JoinClause, ...] = ()


@dataclass(frozen=True)
class JoinCondition:
    left_qualifier: str
    left_column: str
    right_qualifier: str
    right_column: str


@dataclass(frozen=True)
class OrderTerm:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class SelectItem:
    expression: str
    alias: str | None = None


@dataclass(frozen=True)
class SelectStatement:
    select: str
    from_clause: str | None = None
    where: str | None = None
    group_by: str | None = None
    having: str | None = None
    order_by: str | None = None
    limit: str | None = None
    offset: str | None = None
    unsupported: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedUpdateStatement:
    set_clause: str
    where_clause: str
    order_by_clause: str | None = None
    limit: int | None = None
    table: TableReference | None = None


@dataclass(frozen=True)
class ParsedDeleteStatement:
    where_clause: str
    order_by_clause: str | None = None
    limit: int | None = None
    table: TableReference | None = None


@dataclass(frozen=True)
class ParsedInsertStatement:
    rows: tuple[tuple[Any, ...], ...]
    columns: tuple[str, ...] | None = None
    table: TableReference | None = None


@dataclass(frozen=True)
class Assignment:
    column: str
    value: Any = None
    expression: ParsedExpression | None = None


# ---------------------------------------------------------------------------
# Top-level scanning
# ---------------------------------------------------------------------------


def top_level_mask(text: str) -> list[bool]:
    """Per-character flag: True when outside quotes and parentheses."""
    mask: list[bool] = []
    depth = 0
    quote: str | None = None
    escaped = False
    for ch in text:
        if quote:
            mask.append(False)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'`":
            quote = ch
            mask.append(False)
        elif ch == "(":
            mask.append(depth == 0)
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
            mask.append(depth == 0)
        else:
            mask.append(depth == 0)
    return mask


def find_keyword(text: str, keyword: str, start: int = 0, mask: list[bool] | None = None) -> re.Match[str] | None:
    """First top-level match of a (possibly multi-word) keyword at or after ``start``."""
    mask = mask if mask is not None else top_level_mask(text)
    words = r"\s+".join(re.escape(w) for w in keyword.split())
    for match in re.finditer(rf"(?<![\w:.]){words}(?![\w.])", text[start:], re.IGNORECASE):
        position = start + match.start()
        if mask[position]:
            return re.compile(rf"{words}", re.IGNORECASE).match(text, position)
    return None


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """Split on ``separator`` outside quotes and parentheses; drops empty parts."""
    mask = top_level_mask(text)
    parts: list[str] = []
    current: list[str] = []
    for i, ch in enumerate(text):
        if ch == separator and mask[i]:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    parts.append("".join(current).strip())
    return [p for p in parts if p]


def split_clauses(text: str, keywords: tuple[str, ...]) -> dict[str, str]:
    """Cut ``text`` at each top-level keyword; keys are the keywords found."""
    mask = top_level_mask(text)
    found: list[tuple[int, int, str]] = []
    for keyword in keywords:
        match = find_keyword(text, keyword, 0, mask)
        if match:
            found.append((match.start(), match.end(), keyword))
    found.sort()
    clauses: dict[str, str] = {}
    for i, (_, end, keyword) in enumerate(found):
        stop = found[i + 1][0] if i + 1 < len(found) else len(text)
        clauses[keyword] = text[end:stop].strip()
    return clauses


# ---------------------------------------------------------------------------
# Statement classification
# ---------------------------------------------------------------------------


def classify_statement(statement: str) -> str:
    """Return SELECT / INSERT / UPDATE / DELETE for a statement."""
    words = (statement or "").strip().split(None, 1)
    operation = words[0].upper() if words else ""
    if operation not in OPERATIONS:
        raise ValidationError("statement", statement, "valid SQL operation (SELECT/INSERT/UPDATE/DELETE)")
    return operation


def referenced_virtual_tables(statement: str) -> list[str]:
    """Names of ``:table`` references outside string literals, in order of appearance."""
    names: list[str] = []
    for match in _VIRTUAL_REF_RE.finditer(statement):
        if _outside_quotes(statement, match.start()) and match.group(1) not in names:
            names.append(match.group(1))
    return names


def _outside_quotes(text: str, position: int) -> bool:
    quote: str | None = None
    escaped = False
    for ch in text[:position]:
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
        elif ch in "\"'`":
            quote = ch
    return quote is None


# ---------------------------------------------------------------------------
# SELECT
# ---------------------------------------------------------------------------


def parse_select_statement(statement: str) -> SelectStatement:
    clauses = split_clauses(statement.strip(), SELECT_CLAUSE_KEYWORDS)
    if "SELECT" not in clauses:
        raise ValidationError("statement", statement, "SELECT <columns> [FROM ...] [WHERE ...]")
    return SelectStatement(
        select=clauses["SELECT"],
        from_clause=clauses.get("FROM"),
        where=clauses.get("WHERE"),
        group_by=clauses.get("GROUP BY"),
        having=clauses.get("HAVING"),
        order_by=clauses.get("ORDER BY"),
        limit=clauses.get("LIMIT"),
        offset=clauses.get("OFFSET"),
        unsupported=tuple(k for k in UNSUPPORTED_LOCAL_CLAUSES if k in clauses),
    )


def parse_select_list(text: str) -> list[SelectItem]:
    """Split a select list into items with optional ``AS`` aliases."""
    if not text or not text.strip():
        raise ValidationError("SELECT clause", text, "at least one column, aggregate, or *")
    items: list[SelectItem] = []
    for part in split_top_level(text):
        mask = top_level_mask(part)
        match = None
        for candidate in re.finditer(r"\s+AS\s+", part, re.IGNORECASE):
            if mask[candidate.start()]:
                match = candidate
        if match:
            alias = part[match.end():].strip().strip("\"'`")
            items.append(SelectItem(expression=part[:match.start()].strip(), alias=alias or None))
        else:
            items.append(SelectItem(expression=part.strip()))
    return items


# ---------------------------------------------------------------------------
# FROM / JOIN
# ---------------------------------------------------------------------------


def parse_table_reference(text: str, alias: str | None = None) -> TableReference:
    source = text.strip()
    if source.startswith(":"):
        return TableReference(type="virtual", name=source[1:], source=source, alias=alias)
    return TableReference(type="sheet", name=None, source=source, alias=alias)


def parse_from_clause(text: str) -> FromClause:
    """Parse ``<table> [AS alias] ([LEFT|RIGHT] JOIN <table> [AS alias] ON a.x = b.y)*``."""
    match = _MAIN_TABLE_RE.match(text or "")
    if not match:
        raise ValidationError("FROM clause", text, "a :virtual_table or Sheet!range reference")
    table = parse_table_reference(match.group("table"), match.group("alias"))

    joins: list[JoinClause] = []
    pos = match.end()
    while pos < len(text) and text[pos:].strip():
        join_match = _JOIN_RE.match(text, pos)
        if not join_match:
            raise ValidationError("FROM clause", text[pos:].strip(), "[LEFT|RIGHT] JOIN <table> [AS alias] ON alias.column = alias.column")
        kind = (join_match.group("kind") or "").upper()
        on = join_match.group("on").strip()
        parse_join_condition(on)
        joins.append(
            JoinClause(
                type=JOIN_TYPES[kind],
                table=parse_table_reference(join_match.group("table"), join_match.group("alias")),
                on=on,
            )
        )
        pos = join_match.end()

    return FromClause(table=table, joins=tuple(joins))


def parse_join_condition(on: str) -> JoinCondition:
    match = _JOIN_CONDITION_RE.match(on or "")
    if not match:
        raise ValidationError("JOIN condition", on, "alias.column = alias.column")
    return JoinCondition(
        left_qualifier=match.group(1).lstrip(":"),
        left_column=match.group(2).strip("\"`"),
        right_qualifier=match.group(3).lstrip(":"),
        right_column=match.group(4).strip("\"`"),
    )


def sheet_name_of(range_: str) -> str:
    """``'My Sheet'!A1:B`` → ``My Sheet``; ``A1:B`` → ``""``."""
    if "!" not in range_:
        return ""
    name = range_.rsplit("!", 1)[0].strip()
    if len(name) >= 2 and name[0] == name[-1] == "'":
        name = name[1:-1].replace("''", "'")
    return name


# ---------------------------------------------------------------------------
# ORDER BY / LIMIT
# ---------------------------------------------------------------------------


def parse_order_by_clause(text: str, column_map: ColumnMap) -> list[OrderTerm]:
    """Parse ``col [ASC|DESC], ...`` resolving each column to its letter."""
    terms: list[OrderTerm] = []
    for part in split_top_level(text or ""):
        match = re.match(r"^(.*?)(?:\s+(ASC|DESC))?$", part.strip(), re.IGNORECASE | re.DOTALL)
        reference = match.group(1).strip() if match else part.strip()
        direction = (match.group(2) or "ASC").upper() if match else "ASC"
        letter = column_map.get(reference)
        if letter is None:
            raise ValidationError("ORDER BY column", reference, "a column letter, header name, or alias.column")
        terms.append(OrderTerm(column=letter, descending=direction == "DESC"))
    if not terms:
        raise ValidationError("ORDER BY clause", text, "at least one column")
    return terms


def parse_limit_clause(text: str, field: str = "LIMIT") -> int:
    value = (text or "").strip()
    if not re.fullmatch(r"\d+", value):
        raise ValidationError(field, value, "a non-negative integer")
    return int(value)


def _split_where_tail(statement: str, where_end: int, mask: list[bool]) -> tuple[str, str | None, int | None]:
    """Split text after WHERE into (where, order_by, limit); the first keyword bounds the condition."""
    order = find_keyword(statement, "ORDER BY", where_end, mask)
    limit = find_keyword(statement, "LIMIT", where_end, mask)
    bounds = sorted(m.start() for m in (order, limit) if m)
    where_clause = statement[where_end:bounds[0] if bounds else len(statement)].strip()

    order_by = None
    if order:
        stop = limit.start() if limit and limit.start() > order.start() else len(statement)
        order_by = statement[order.end():stop].strip()
    limit_value = None
    if limit:
        stop = order.start() if order and order.start() > limit.start() else len(statement)
        limit_value = parse_limit_clause(statement[limit.end():stop])
    return where_clause, order_by, limit_value


# ---------------------------------------------------------------------------
# UPDATE / DELETE / INSERT
# ---------------------------------------------------------------------------


def parse_update_statement(statement: str) -> ParsedUpdateStatement:
    """Parse ``UPDATE [table] SET ... [FROM table] WHERE ... [ORDER BY ...] [LIMIT n]``."""
    sql = statement.strip()
    mask = top_level_mask(sql)
    head = find_keyword(sql, "UPDATE", 0, mask)
    set_match = find_keyword(sql, "SET", 0, mask)
    if not head or head.start() != 0 or not set_match:
        raise ValidationError("statement", statement, "UPDATE SET column = value WHERE condition syntax")

    where_match = find_keyword(sql, "WHERE", set_match.end(), mask)
    if not where_match:
        raise ValidationError("statement", statement, "UPDATE with WHERE clause (use WHERE true to update all rows)")

    from_match = find_keyword(sql, "FROM", set_match.end(), mask)
    if from_match and from_match.start() > where_match.start():
        from_match = None

    set_end = from_match.start() if from_match else where_match.start()
    set_clause = sql[set_match.end():set_end].strip()
    if not set_clause:
        raise ValidationError("SET clause", set_clause, "column = value [, column = value]")

    table_text = sql[head.end():set_match.start()].strip()
    if from_match:
        table_text = sql[from_match.end():where_match.start()].strip()
    table = _parse_target_table(table_text)

    where_clause, order_by, limit = _split_where_tail(sql, where_match.end(), mask)
    if not where_clause:
        raise ValidationError("WHERE clause", where_clause, "a condition (use WHERE true to update all rows)")

    return ParsedUpdateStatement(
        set_clause=set_clause,
        where_clause=where_clause,
        order_by_clause=order_by,
        limit=limit,
        table=table,
    )


def parse_delete_statement(statement: str) -> ParsedDeleteStatement:
    """Parse ``DELETE [FROM table] WHERE ... [ORDER BY ...] [LIMIT n]``."""
    sql = statement.strip()
    mask = top_level_mask(sql)
    head = find_keyword(sql, "DELETE", 0, mask)
    if not head or head.start() != 0:
        raise ValidationError("statement", statement, "DELETE WHERE condition syntax")

    where_match = find_keyword(sql, "WHERE", head.end(), mask)
    if not where_match:
        raise ValidationError("statement", statement, "DELETE WHERE condition syntax (use WHERE true to delete all rows)")

    table_text = sql[head.end():where_match.start()].strip()
    from_match = re.match(r"^FROM\b", table_text, re.IGNORECASE)
    if from_match:
        table_text = table_text[from_match.end():].strip()
    table = _parse_target_table(table_text)

    where_clause, order_by, limit = _split_where_tail(sql, where_match.end(), mask)
    if not where_clause:
        raise ValidationError("WHERE clause", where_clause, "a condition (use WHERE true to delete all rows)")

    return ParsedDeleteStatement(where_clause=where_clause, order_by_clause=order_by, limit=limit, table=table)


def parse_insert_statement(statement: str) -> ParsedInsertStatement:
    """Parse ``INSERT [INTO [table]] [(col, ...)] VALUES (...) [, (...)]``."""
    sql = statement.strip()
    mask = top_level_mask(sql)
    values_match = find_keyword(sql, "VALUES", 0, mask)
    if not values_match:
        raise ValidationError("statement", statement, "INSERT VALUES (...) syntax")

    head = re.sub(r"^INSERT\s*(?:INTO\b)?", "", sql[:values_match.start()], flags=re.IGNORECASE).strip()
    columns: tuple[str, ...] | None = None
    column_match = re.search(r"\(([^()]*)\)\s*$", head)
    if column_match:
        columns = tuple(c.strip().strip("\"`") for c in split_top_level(column_match.group(1)))
        if not columns:
            raise ValidationError("INSERT columns", column_match.group(0), "(column, ...)")
        head = head[:column_match.start()].strip()
    table = _parse_target_table(head)

    rows: list[tuple[Any, ...]] = []
    tail = sql[values_match.end():]
    tail_mask = top_level_mask(tail)
    start = None
    for i, ch in enumerate(tail):
        if ch == "(" and tail_mask[i]:
            start = i
        elif ch == ")" and tail_mask[i] and start is not None:
            rows.append(tuple(parse_values(tail[start + 1:i])))
            start = None
    if not rows:
        raise ValidationError("statement", statement, "INSERT VALUES (...) syntax")
    if columns is not None:
        for row in rows:
            if len(row) != len(columns):
                raise ValidationError("VALUES", list(row), f"{len(columns)} values to match the column list")

    return ParsedInsertStatement(rows=tuple(rows), columns=columns, table=table)


def _parse_target_table(text: str) -> TableReference | None:
    if not text:
        return None
    match = _MAIN_TABLE_RE.match(text)
    if not match or text[match.end():].strip():
        raise ValidationError("table", text, "a :virtual_table or Sheet!range reference")
    return parse_table_reference(match.group("table"), match.group("alias"))


# ---------------------------------------------------------------------------
# Literal values
# ---------------------------------------------------------------------------


def parse_values(text: str) -> list[Any]:
    """Parse ``"John", 'O''Neil', 30, true, null`` into Python values."""
    return [parse_literal(part) for part in split_top_level(text)]


def parse_literal(text: str) -> Any:
    """Quoted text stays a string; bare numbers, booleans and NULL are typed."""
    value = text.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return _unescape(value[1:-1], value[0])
    if _NUMBER_RE.match(value):
        return float(value) if "." in value else int(value)
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    return value


def _unescape(body: str, quote: str) -> str:
    out: list[str] = []
    i = 0
    escapes = {"n": "\n", "t": "\t", "r": "\r"}
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            out.append(escapes.get(body[i + 1], body[i + 1]))
            i += 2
            continue
        if ch == quote and i + 1 < len(body) and body[i + 1] == quote:
            out.append(quote)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def parse_set_clause(text: str, column_map: ColumnMap) -> list[Assignment]:
    """Parse ``C = 'Premium', Amount = Amount * 2`` into column-letter assignments."""
    assignments: list[Assignment] = []
    for part in split_top_level(text):
        match = _ASSIGNMENT_RE.match(part)
        if not match:
            raise ValidationError("SET clause", part, "column = value format")
        reference, raw_value = match.group(1), match.group(2)
        letter = column_map.get(reference)
        if letter is None:
            raise ValidationError("SET column", reference, "a column letter or header name of the table")
        if is_expression(raw_value) and not _is_literal(raw_value):
            assignments.append(Assignment(column=letter, expression=parse_expression(raw_value, column_map)))
        else:
            assignments.append(Assignment(column=letter, value=parse_literal(raw_value)))
    if not assignments:
        raise ValidationError("SET clause", text, "column = value [, column = value]")
    return assignments


def _is_literal(text: str) -> bool:
    value = text.strip()
    if re.match(r"^\d{4}-\d{2}-\d{2}", value):
        return True
    return bool(_NUMBER_RE.match(value)) or (len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'")
