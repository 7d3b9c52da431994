"""sheetsql - SQL over Google Sheets ranges and in-memory tables.

File guide
----------
settings.py           Configuration (sheetsql_project.yaml + env vars)
errors.py             Error taxonomy (validation, parse, auth, REST)
table.py              TableData / MatchedRow / ResultColumn value objects
sql/lexer.py          WHERE/HAVING tokenizer
sql/parser.py         Recursive-descent boolean-expression parser
sql/evaluator.py      Row-level evaluation and type-aware comparison
sql/columns.py        Column letters, header names and column maps
sql/clauses.py        Statement splitting, FROM/JOIN, SET, VALUES, ORDER BY
sql/expressions.py    Arithmetic expressions over row values
sheets/client.py      Sheets v4 / Visualization / Apps Script / Drive REST adapter
sheets/auth.py        Bearer-token resolution (google-auth)
sheets/resolver.py    Spreadsheet id, A1 range and script resolution
sheets/loader.py      Table loading from sheet ranges or dataSources
engine/join.py        INNER / LEFT / RIGHT nested-loop joins
engine/aggregate.py   GROUP BY, aggregates, HAVING
engine/select.py      Local SELECT pipeline
engine/mutations.py   INSERT / UPDATE / DELETE
tools/sheet_sql.py    Statement facade (``execute_sheet_sql``)
cli.py                Typer CLI

Entry points (app/ - thin wrappers, not part of the library)
-------------------------------------------------------------
app/mcp.py            MCP server exposing the ``sheet_sql`` tool

Public API
----------
- ``execute_sheet_sql`` - run one statement, returns the result dict
- ``load_settings``     - load configuration
"""

from sheetsql.settings import load_settings
from sheetsql.tools.sheet_sql import execute_sheet_sql

__all__ = ["execute_sheet_sql", "load_settings"]
