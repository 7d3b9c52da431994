"""Column letters, header names, and the mapping between them.

Spreadsheet columns can be addressed either by letter (``A``, ``B``, ``AA``)
or by header text (``Name``, ``Amount``). ``build_column_map`` builds the
lookup used by every later stage, and ``resolve_column_names`` rewrites
header references inside clause text to letters so the lexer only ever sees
letters.

Resolution order (first claim wins):

1. Column letters of the table's own columns.
2. Qualified header names (``alias.header`` / ``table.header``).
3. Bare header names.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Sequence

from sheetsql.errors import ValidationError

COLUMN_LETTERS_RE = re.compile(r"^[A-Z]{1,3}$")

# Words never treated as column references during name resolution.
RESERVED_WORDS = frozenset(
    {
        "AND", "OR", "NOT", "IS", "NULL", "TRUE", "FALSE",
        "CONTAINS", "STARTS", "ENDS", "WITH", "LIKE", "MATCHES",
        "DATE", "NOW", "TODAY", "DATETIME", "TIMESTAMP",
        "SELECT", "FROM", "WHERE", "GROUP", "BY", "HAVING", "ORDER",
        "LIMIT", "OFFSET", "ASC", "DESC", "AS", "ON", "JOIN", "LEFT",
        "RIGHT", "INNER", "SET", "VALUES", "INTO", "LABEL", "FORMAT",
        "PIVOT", "COUNT", "SUM", "AVG", "MIN", "MAX",
    }
)

_OPERATOR_PATTERN = (
    r"\s*(?:<>|!=|<=|>=|=|<|>)"
    r"|\s+(?:contains|starts\s+with|ends\s+with|is)\b"
)
_BARE_IDENTIFIER_RE = re.compile(
    r"(?<![\w.:\x00])(:?[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)?)(?=" + _OPERATOR_PATTERN + ")",
    re.IGNORECASE,
)
_OPERATOR_AHEAD_RE = re.compile(f"(?:{_OPERATOR_PATTERN})", re.IGNORECASE)


def column_to_index(letters: str) -> int:
    """``"A"`` → 0, ``"Z"`` → 25, ``"AA"`` → 26."""
    if not letters or not letters.isalpha() or not letters.isascii():
        raise ValidationError("column", letters, "column letters (A, B, ..., AA)")
    result = 0
    for ch in letters.upper():
        result = result * 26 + (ord(ch) - ord("A") + 1)
    return result - 1


def index_to_column(index: int) -> str:
    """0 → ``"A"``, 27 → ``"AB"``."""
    if index < 0:
        raise ValidationError("column index", index, "non-negative integer")
    letters = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def normalize_reference(reference: str) -> str:
    """Normalize a column reference into a lookup key.

    ``:users.ID`` → ``users.id``, ``"First Name"`` → ``first name``.
    """
    ref = reference.strip()
    if "." in ref and not _is_quoted(ref):
        qualifier, _, name = ref.partition(".")
        return f"{_unquote(qualifier).lstrip(':').strip().lower()}.{_unquote(name).strip().lower()}"
    return _unquote(ref).strip().lower()


def _is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'`"


def _unquote(text: str) -> str:
    text = text.strip()
    return text[1:-1] if _is_quoted(text) else text


@dataclass(frozen=True)
class ColumnMap:
    """Immutable lookup from reference key to canonical column letter.

    ``start_index`` is the sheet column index of the first cell of every
    row (non-zero when the range starts after column A).
    """

    entries: Mapping[str, str] = field(default_factory=dict)
    start_index: int = 0

    def get(self, reference: str, default: str | None = None) -> str | None:
        return self.entries.get(normalize_reference(reference), default)

    def __contains__(self, reference: object) -> bool:
        return isinstance(reference, str) and normalize_reference(reference) in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def index_of(self, reference: str) -> int | None:
        """Position of a referenced column inside a row, or None if unknown."""
        letter = self.get(reference)
        if letter is None:
            return None
        return column_to_index(letter) - self.start_index

    def letter_at(self, position: int) -> str:
        return index_to_column(position + self.start_index)

    def require_index(self, reference: str) -> int:
        index = self.index_of(reference)
        if index is None:
            raise ValidationError("column", reference, "a column letter or header name of the table")
        return index


def build_column_map(
    headers: Sequence[str],
    start_index: int = 0,
    qualifiers: Sequence[Sequence[str]] | None = None,
) -> ColumnMap:
    """Build a ColumnMap for a header row.

    Args:
        headers:     Header cells, one per column.
        start_index: Sheet column index of ``headers[0]``.
        qualifiers:  Per-column table aliases/names accepted as prefixes
                     (``alias.header``); used for joined result sets.
    """
    entries: dict[str, str] = {}
    letters = [index_to_column(start_index + i) for i in range(len(headers))]

    for letter in letters:
        entries.setdefault(letter.lower(), letter)

    if qualifiers:
        for i, header in enumerate(headers):
            name = str(header if header is not None else "").strip().lower()
            for qualifier in qualifiers[i] if i < len(qualifiers) else ():
                if not qualifier:
                    continue
                prefix = qualifier.lstrip(":").strip().lower()
                if name:
                    entries.setdefault(f"{prefix}.{name}", letters[i])

    for i, header in enumerate(headers):
        name = str(header if header is not None else "").strip().lower()
        if name:
            entries.setdefault(name, letters[i])

    return ColumnMap(entries=MappingProxyType(entries), start_index=start_index)


def resolve_column_names(clause: str, column_map: ColumnMap) -> str:
    """Rewrite header references that precede an operator into column letters.

    Quoted identifiers (``"First Name" = 'x'``) are resolved first and then
    parked behind placeholders, together with every other string literal,
    so the bare-identifier pass can never rewrite text inside quotes.
    Unknown identifiers are left unchanged.
    """
    if not clause:
        return clause

    parked: list[str] = []

    def _park(text: str) -> str:
        parked.append(text)
        return f"\x00{len(parked) - 1}\x00"

    pieces: list[str] = []
    pos = 0
    length = len(clause)
    while pos < length:
        ch = clause[pos]
        if ch in "\"'`":
            end = _literal_end(clause, pos)
            literal = clause[pos:end]
            rest = clause[end:]
            letter = None
            if ch != "'" and _OPERATOR_AHEAD_RE.match(rest) and not _preceded_by_date(clause, pos):
                letter = column_map.get(literal)
            pieces.append(letter if letter else _park(literal))
            pos = end
            continue
        pieces.append(ch)
        pos += 1

    masked = "".join(pieces)

    def _replace(match: re.Match[str]) -> str:
        identifier = match.group(1)
        if identifier.upper() in RESERVED_WORDS:
            return identifier
        return column_map.get(identifier) or identifier

    resolved = _BARE_IDENTIFIER_RE.sub(_replace, masked)
    return re.sub(r"\x00(\d+)\x00", lambda m: parked[int(m.group(1))], resolved)


def resolve_identifiers(text: str, column_map: ColumnMap) -> str:
    """Rewrite every header reference in ``text`` to its column letter.

    Used for statements forwarded to the Visualization API, where header
    names may appear anywhere (select list, GROUP BY, ORDER BY, LABEL).
    Backticked names are resolved whole; string literals, reserved words
    and function names are left alone.
    """
    text = resolve_column_names(text, column_map)
    parked: list[str] = []

    def _park(match: re.Match[str]) -> str:
        parked.append(match.group(0))
        return f"\x00{len(parked) - 1}\x00"

    masked = re.sub(r"'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.)*\"", _park, text)

    def _replace(match: re.Match[str]) -> str:
        identifier = match.group(0)
        if not identifier.startswith("`") and identifier.upper() in RESERVED_WORDS:
            return identifier
        return column_map.get(identifier) or identifier

    resolved = re.sub(r"`[^`]+`|(?<![\w.\x00])[A-Za-z_]\w*(?![\w.]|\s*\()", _replace, masked)
    return re.sub(r"\x00(\d+)\x00", lambda m: parked[int(m.group(1))], resolved)


def _literal_end(text: str, start: int) -> int:
    quote = text[start]
    pos = start + 1
    while pos < len(text):
        ch = text[pos]
        if ch == "\\":
            pos += 2
            continue
        if ch == quote:
            if pos + 1 < len(text) and text[pos + 1] == quote:
                pos += 2
                continue
            return pos + 1
        pos += 1
    return len(text)


def _preceded_by_date(text: str, pos: int) -> bool:
    return bool(re.search(r"\b(?:DATE|DATETIME|TIMESTAMP)\s*$", text[:pos], re.IGNORECASE))
