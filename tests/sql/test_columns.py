from __future__ import annotations

import pytest

from sheetsql.errors import ValidationError
from sheetsql.sql.columns import (
    build_column_map,
    column_to_index,
    index_to_column,
    normalize_reference,
    resolve_column_names,
    resolve_identifiers,
)


def test_column_letters():
    assert index_to_column(0) == "A"
    assert index_to_column(25) == "Z"
    assert index_to_column(26) == "AA"
    assert index_to_column(27) == "AB"
    assert index_to_column(701) == "ZZ"
    assert index_to_column(702) == "AAA"
    assert column_to_index("ab") == 27


def test_column_letters_round_trip():
    for index in range(0, 2000):
        assert column_to_index(index_to_column(index)) == index


def test_invalid_column_letters_raise():
    with pytest.raises(ValidationError):
        column_to_index("A1")
    with pytest.raises(ValidationError):
        index_to_column(-1)


def test_normalize_reference():
    assert normalize_reference(":users.ID") == "users.id"
    assert normalize_reference('"First Name"') == "first name"
    assert normalize_reference("`Amount`") == "amount"
    assert normalize_reference('"a.b"') == "a.b"


def test_build_column_map_headers_are_case_insensitive():
    columns = build_column_map(["Name", "Amount"])
    assert columns.get("name") == "A"
    assert columns.get("AMOUNT") == "B"
    assert columns.get("A") == "A"
    assert columns.get("b") == "B"
    assert columns.get("missing") is None


def test_column_letters_win_over_header_names():
    columns = build_column_map(["B", "Other"])
    assert columns.get("B") == "B"
    assert columns.get("other") == "B"
    assert columns.index_of("B") == 1


def test_column_map_with_start_index():
    columns = build_column_map(["X", "Y"], start_index=2)
    assert columns.get("x") == "C"
    assert columns.get("y") == "D"
    assert columns.index_of("x") == 0
    assert columns.index_of("D") == 1
    assert columns.letter_at(1) == "D"
    assert columns.get("A") is None


def test_column_map_qualified_names():
    columns = build_column_map(
        ["id", "name", "id"],
        qualifiers=[("o", "orders"), ("o", "orders"), ("c", "customers")],
    )
    assert columns.get("o.id") == "A"
    assert columns.get(":orders.name") == "B"
    assert columns.get("c.id") == "C"
    assert columns.get("customers.id") == "C"
    # a bare duplicate header resolves to its first column
    assert columns.get("id") == "A"


def test_require_index_raises_for_unknown():
    columns = build_column_map(["Name"])
    with pytest.raises(ValidationError):
        columns.require_index("Nope")


def test_resolve_column_names_rewrites_identifiers_before_operators():
    columns = build_column_map(["Name", "Amount"])
    assert resolve_column_names("Amount > 100 AND Name = 'Amount'", columns) == "B > 100 AND A = 'Amount'"
    assert resolve_column_names("name IS NULL", columns) == "A IS NULL"
    assert resolve_column_names("Name contains 'x'", columns) == "A contains 'x'"


def test_resolve_column_names_quoted_identifier():
    columns = build_column_map(["First Name", "Age"])
    assert resolve_column_names("\"First Name\" = 'Bob'", columns) == "A = 'Bob'"
    assert resolve_column_names("`First Name` starts with 'B'", columns) == "A starts with 'B'"


def test_resolve_column_names_leaves_unknown_and_reserved_words():
    columns = build_column_map(["Name"])
    assert resolve_column_names("Missing > 1", columns) == "Missing > 1"
    assert resolve_column_names("true", columns) == "true"
    assert resolve_column_names("A > DATE '2024-01-01'", columns) == "A > DATE '2024-01-01'"


def test_resolve_identifiers_rewrites_whole_statement():
    columns = build_column_map(["Name", "Amount"])
    sql = "SELECT Name, SUM(Amount) GROUP BY Name ORDER BY `Amount` DESC"
    assert resolve_identifiers(sql, columns) == "SELECT A, SUM(B) GROUP BY A ORDER BY B DESC"


def test_resolve_identifiers_keeps_literals_and_functions():
    columns = build_column_map(["Name", "Total"])
    sql = "SELECT Name, COUNT(Total) WHERE Name = 'Name' LABEL Name 'Who'"
    assert resolve_identifiers(sql, columns) == "SELECT A, COUNT(B) WHERE A = 'Name' LABEL A 'Who'"
