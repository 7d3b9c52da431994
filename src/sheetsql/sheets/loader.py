"""Table loading from live sheet ranges or caller-supplied virtual tables."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from sheetsql.errors import ValidationError
from sheetsql.sheets.client import SheetsClient
from sheetsql.sheets.resolver import range_origin, validate_range
from sheetsql.sql.clauses import TableReference
from sheetsql.table import TableData

logger = logging.getLogger(__name__)


def default_table_reference(
    data_sources: Mapping[str, Any] | None = None,
    spreadsheet_id: str | None = None,
    range_: str | None = None,
) -> TableReference:
    """Table used when a statement names none.

    The sheet given by ``range_`` when a spreadsheet is targeted; otherwise
    the only virtual table in ``data_sources``.
    """
    if range_ and spreadsheet_id:
        return TableReference(type="sheet", name=None, source=range_)
    if data_sources and len(data_sources) == 1 and not spreadsheet_id:
        name = next(iter(data_sources))
        return TableReference(type="virtual", name=name, source=f":{name}")
    if range_:
        return TableReference(type="sheet", name=None, source=range_)
    raise ValidationError("range", range_, "a range, or a single dataSources table when no table is named")


def load_table_data(
    table_ref: TableReference,
    data_sources: Mapping[str, Any] | None = None,
    client: SheetsClient | None = None,
    spreadsheet_id: str | None = None,
    range_: str | None = None,
) -> TableData:
    """Fetch headers and rows for one FROM/JOIN operand.

    Virtual tables (``:name``) come from ``data_sources[name]`` (first row =
    headers). Sheet tables are read via ``values.get`` on the reference's own
    range, falling back to ``range_`` for the statement's default table.
    """
    qualifiers = table_ref.qualifiers

    if table_ref.is_virtual:
        if data_sources is None:
            raise ValidationError("dataSources", None, f"dataSources containing virtual table '{table_ref.name}'")
        if table_ref.name not in data_sources:
            raise ValidationError(
                "table",
                table_ref.source,
                f"one of the provided dataSources ({', '.join(sorted(data_sources)) or 'none'})",
            )
        data = data_sources[table_ref.name]
        if not isinstance(data, (list, tuple)) or not data or not all(isinstance(r, (list, tuple)) for r in data):
            raise ValidationError(f"dataSources.{table_ref.name}", data, "a non-empty 2D array (first row = headers)")
        headers = tuple(str(h) if h is not None else "" for h in data[0])
        rows = [list(r) for r in data[1:]]
        logger.debug("Loaded virtual table %s (%d rows)", table_ref.name, len(rows))
        return TableData(
            headers=headers,
            rows=rows,
            qualifiers=tuple(qualifiers for _ in headers),
        )

    source = table_ref.source if "!" in table_ref.source or ":" in table_ref.source else (range_ or "")
    source = validate_range(source)
    if client is None or not spreadsheet_id:
        raise ValidationError(
            "spreadsheetId",
            spreadsheet_id,
            f"spreadsheetId and credentials to read sheet table '{source}'",
        )

    values = client.get_values(spreadsheet_id, source)
    start_row, start_column = range_origin(source)
    headers = tuple(str(h) if h is not None else "" for h in (values[0] if values else []))
    rows = [list(r) for r in values[1:]]
    logger.debug("Loaded sheet range %s (%d rows)", source, len(rows))
    return TableData(
        headers=headers,
        rows=rows,
        qualifiers=tuple(qualifiers for _ in headers),
        start_index=start_column,
        first_row=start_row + 1,
    )
