"""Row-oriented table values shared by the loader and the engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sheetsql.sql.columns import ColumnMap, build_column_map


@dataclass(frozen=True)
class TableData:
    """Header row plus data rows as fetched from a sheet or a virtual table.

    ``start_index`` is the sheet column index of the first cell in each row and
    ``first_row`` the 1-based sheet row number of ``rows[0]`` (0 for virtual
    tables, whose row numbers are list indices).
    """

    headers: tuple[str, ...]
    rows: list[list[Any]] = field(default_factory=list)
    qualifiers: tuple[tuple[str, ...], ...] = ()
    start_index: int = 0
    first_row: int = 0

    def column_map(self) -> ColumnMap:
        return build_column_map(self.headers, self.start_index, self.qualifiers or None)

    def row_number(self, position: int) -> int:
        """Sheet row number (or list index for virtual tables) of ``rows[position]``."""
        return self.first_row + position if self.first_row else position


@dataclass(frozen=True)
class MatchedRow:
    row_number: int
    row_data: list[Any]


@dataclass(frozen=True)
class ResultColumn:
    """One output column of a local SELECT (``id`` / ``label`` of the cols list)."""

    id: str
    label: str
