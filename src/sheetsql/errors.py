"""Error taxonomy for sheetsql.

Codes follow the JSON-RPC server-error range so MCP clients can tell
validation problems apart from authentication and upstream API failures.
"""
from __future__ import annotations

import json
from typing import Any


class SheetSqlError(Exception):
    """Base error carrying a machine-readable code and optional data."""

    code: int = -32603
    error_code: str = "SHEET_SQL_ERROR"

    def __init__(self, message: str, code: int | None = None, data: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.data = data or {}


class ValidationError(SheetSqlError):
    """Malformed statement, clause, range, or missing parameter."""

    code = -32001
    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, value: Any, expected: str):
        display = json.dumps(value, default=str) if isinstance(value, (dict, list)) else str(value)
        super().__init__(
            f'Invalid {field}: expected {expected}, got "{display}"',
            data={"field": field, "value": value, "expected": expected},
        )
        self.field = field
        self.value = value
        self.expected = expected


class ParseError(ValidationError):
    """Lexer/parser failure inside a WHERE or HAVING clause."""

    error_code = "PARSE_ERROR"

    def __init__(self, clause: str, position: int, expected: str):
        super().__init__("clause", clause, f"{expected} at position {position}")
        self.clause = clause
        self.position = position
        self.data.update({"clause": clause, "position": position})


class AuthenticationError(SheetSqlError):
    """No usable bearer token could be obtained."""

    code = -32000
    error_code = "AUTH_REQUIRED"

    def __init__(self, message: str):
        super().__init__(message, data={"requiresAuth": True})


class SheetsApiError(SheetSqlError):
    """Non-2xx response (or unusable payload) from a Google REST endpoint."""

    code = -32002
    error_code = "SHEETS_API_ERROR"

    def __init__(self, operation: str, status: int | None, body: str):
        status_text = f"{status} " if status is not None else ""
        super().__init__(
            f"{operation} failed: {status_text}{body}".rstrip(),
            data={"operation": operation, "status": status, "body": body},
        )
        self.operation = operation
        self.status = status
        self.body = body
