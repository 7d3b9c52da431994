from __future__ import annotations

import pytest

from sheetsql.engine.ordering import apply_offset_limit, sort_rows
from sheetsql.engine.select import execute_local_select, format_table
from sheetsql.errors import ValidationError
from sheetsql.sql.clauses import TableReference
from sheetsql.table import ResultColumn

PEOPLE = [["Name", "Age"], ["Alice", 30], ["Bob", 25]]
SALES = [["id", "amount"], [1, 10], [2, 20], [3, 30]]
USERS = [["id", "name"], [1, "Ann"], [2, "Ben"], [4, "Dan"]]


def _rows(result) -> list[list]:
    return [[cell["v"] for cell in row["c"]] for row in result["data"]["rows"]]


def test_select_star_with_where():
    result = execute_local_select("SELECT * FROM :people WHERE Age > 26", data_sources={"people": PEOPLE})
    assert result == {
        "operation": "SELECT",
        "data": {
            "cols": [
                {"id": "A", "label": "Name", "type": "string"},
                {"id": "B", "label": "Age", "type": "number"},
            ],
            "rows": [{"c": [{"v": "Alice"}, {"v": 30}]}],
        },
    }


def test_select_uses_default_table_without_from():
    result = execute_local_select(
        "SELECT Name WHERE Age < 26",
        data_sources={"people": PEOPLE},
        default_table=TableReference(type="virtual", name="people", source=":people"),
    )
    assert _rows(result) == [["Bob"]]


def test_select_without_table_or_range_raises():
    with pytest.raises(ValidationError):
        execute_local_select("SELECT *", data_sources={"people": PEOPLE})


def test_aliases_and_expressions():
    result = execute_local_select("SELECT Name AS who, Age * 2 FROM :people ORDER BY Age", data_sources={"people": PEOPLE})
    assert _rows(result) == [["Bob", 50.0], ["Alice", 60.0]]
    assert [c["label"] for c in result["data"]["cols"]] == ["who", "Age * 2"]
    assert result["data"]["cols"][1]["id"] == "Age * 2"


def test_order_by_select_alias():
    result = execute_local_select("SELECT Name AS who FROM :people ORDER BY who DESC", data_sources={"people": PEOPLE})
    assert _rows(result) == [["Bob"], ["Alice"]]


def test_limit_and_offset():
    result = execute_local_select(
        "SELECT Name FROM :people ORDER BY Name LIMIT 1 OFFSET 1",
        data_sources={"people": PEOPLE},
    )
    assert _rows(result) == [["Bob"]]


def test_left_join_through_select():
    result = execute_local_select(
        "SELECT s.amount, users.name FROM :sales s LEFT JOIN :users ON s.id = :users.id ORDER BY s.amount",
        data_sources={"sales": SALES, "users": USERS},
    )
    assert _rows(result) == [[10, "Ann"], [20, "Ben"], [30, None]]
    assert [c["label"] for c in result["data"]["cols"]] == ["amount", "name"]


def test_right_join_through_select():
    result = execute_local_select(
        "SELECT * FROM :sales s RIGHT JOIN :users u ON s.id = u.id WHERE u.name <> 'Ben'",
        data_sources={"sales": SALES, "users": USERS},
    )
    assert _rows(result) == [[1, 10, 1, "Ann"], [None, None, 4, "Dan"]]


def test_group_by_with_having():
    people = [["Name", "Team"], ["Ann", "a"], ["Ben", "b"], ["Ann", "b"]]
    result = execute_local_select(
        "SELECT Name, COUNT(*) FROM :people GROUP BY Name HAVING COUNT(*) > 1",
        data_sources={"people": people},
    )
    assert _rows(result) == [["Ann", 2]]


def test_aggregate_without_group_by():
    result = execute_local_select("SELECT COUNT(*), AVG(Age) FROM :people", data_sources={"people": PEOPLE})
    assert _rows(result) == [[2, 27.5]]


@pytest.mark.parametrize(
    "statement",
    [
        "SELECT Name FROM :people LABEL Name 'Who'",
        "SELECT Name FROM :people PIVOT Age",
        "SELECT ROW(), Name FROM :people",
    ],
)
def test_visualization_only_features_are_rejected(statement):
    with pytest.raises(ValidationError):
        execute_local_select(statement, data_sources={"people": PEOPLE})


def test_row_inside_string_literal_is_allowed():
    result = execute_local_select("SELECT Name FROM :people WHERE Name = 'ROW()'", data_sources={"people": PEOPLE})
    assert _rows(result) == []


def test_max_rows_truncates_results():
    result = execute_local_select("SELECT * FROM :people", data_sources={"people": PEOPLE}, max_rows=1)
    assert _rows(result) == [["Alice", 30]]


def test_unknown_select_column_raises():
    with pytest.raises(ValidationError):
        execute_local_select("SELECT Missing FROM :people", data_sources={"people": PEOPLE})


def test_format_table_column_types():
    table = format_table(
        [ResultColumn("A", "flag"), ResultColumn("B", "n"), ResultColumn("C", "mixed")],
        [[True, 1, "x"], [None, 2.5, 3]],
    )
    assert [c["type"] for c in table["cols"]] == ["boolean", "number", "string"]


def test_sort_rows_orders_nulls_numbers_then_text():
    rows = [["b"], [3], [None], ["a"], [""], ["10"], [2]]
    assert sort_rows(rows, [(0, False)]) == [[None], [""], [2], [3], ["10"], ["a"], ["b"]]


def test_sort_rows_is_stable_across_keys():
    rows = [["x", 2], ["y", 1], ["x", 1]]
    assert sort_rows(rows, [(0, False), (1, True)]) == [["x", 2], ["x", 1], ["y", 1]]


def test_apply_offset_limit():
    assert apply_offset_limit([1, 2, 3, 4], offset=1, limit=2) == [2, 3]
    assert apply_offset_limit([1, 2, 3], limit=0) == []
    assert apply_offset_limit([1, 2, 3], offset=5) == []
