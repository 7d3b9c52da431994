from __future__ import annotations

import pytest

from sheetsql.engine.join import perform_join
from sheetsql.errors import ValidationError
from sheetsql.table import TableData

SALES = [["id", "amount"], [1, 10], [2, 20], [3, 30]]
USERS = [["id", "name"], [1, "Ann"], [2, "Ben"], [4, "Dan"]]


def _table(data, *qualifiers, start_index=0):
    return TableData(
        headers=tuple(data[0]),
        rows=[list(r) for r in data[1:]],
        qualifiers=tuple(tuple(qualifiers) for _ in data[0]),
        start_index=start_index,
    )


def test_inner_join_keeps_only_matches():
    joined = perform_join(_table(SALES, "s", "sales"), _table(USERS, "users"), "s.id = :users.id")
    assert joined.headers == ("id", "amount", "id", "name")
    assert joined.rows == [[1, 10, 1, "Ann"], [2, 20, 2, "Ben"]]


def test_left_join_pads_unmatched_left_rows():
    joined = perform_join(_table(SALES, "s", "sales"), _table(USERS, "users"), "s.id = :users.id", "LEFT JOIN")
    assert joined.rows == [
        [1, 10, 1, "Ann"],
        [2, 20, 2, "Ben"],
        [3, 30, None, None],
    ]


def test_right_join_pads_unmatched_right_rows():
    joined = perform_join(_table(SALES, "s", "sales"), _table(USERS, "users"), "s.id = :users.id", "RIGHT JOIN")
    assert joined.rows == [
        [1, 10, 1, "Ann"],
        [2, 20, 2, "Ben"],
        [None, None, 4, "Dan"],
    ]


def test_condition_sides_may_be_swapped():
    joined = perform_join(_table(SALES, "s", "sales"), _table(USERS, "u", "users"), "u.id = s.id", "LEFT JOIN")
    assert [row[3] for row in joined.rows] == ["Ann", "Ben", None]


def test_joined_table_keeps_qualifiers():
    joined = perform_join(_table(SALES, "s", "sales"), _table(USERS, "u", "users"), "s.id = u.id")
    columns = joined.column_map()
    assert columns.get("s.amount") == "B"
    assert columns.get("u.name") == "D"
    assert columns.get("users.id") == "C"
    assert columns.get("id") == "A"


def test_chained_joins():
    regions = _table([["user_id", "region"], [1, "EU"], [2, "US"]], "r")
    first = perform_join(_table(SALES, "s"), _table(USERS, "u"), "s.id = u.id")
    joined = perform_join(first, regions, "u.id = r.user_id", "LEFT JOIN")
    assert joined.rows == [[1, 10, 1, "Ann", 1, "EU"], [2, 20, 2, "Ben", 2, "US"]]


def test_column_letters_in_join_condition():
    joined = perform_join(_table(SALES, "s"), _table(USERS, "u"), "s.A = u.A")
    assert len(joined.rows) == 2


def test_join_keys_ignore_case_whitespace_and_number_format():
    left = _table([["code"], ["ABC "], [1.0], [None]], "l")
    right = _table([["code", "n"], ["abc", 1], ["1", 2], ["", 3]], "r")
    joined = perform_join(left, right, "l.code = r.code")
    assert [row[2] for row in joined.rows] == [1, 2, 3]


def test_duplicate_matches_multiply_rows():
    left = _table([["k"], ["a"]], "l")
    right = _table([["k", "v"], ["a", 1], ["a", 2]], "r")
    assert perform_join(left, right, "l.k = r.k").rows == [["a", "a", 1], ["a", "a", 2]]


def test_unknown_alias_or_column_raises():
    with pytest.raises(ValidationError):
        perform_join(_table(SALES, "s"), _table(USERS, "u"), "x.id = u.id")
    with pytest.raises(ValidationError):
        perform_join(_table(SALES, "s"), _table(USERS, "u"), "s.missing = u.id")
    with pytest.raises(ValidationError):
        perform_join(_table(SALES, "s"), _table(USERS, "u"), "s.id = u.id", "FULL JOIN")


def test_misqualified_column_does_not_bind_to_another_table():
    regions = _table([["user_id", "region"], [1, "EU"]], "r")
    first = perform_join(_table(SALES, "s"), _table(USERS, "u"), "s.id = u.id")
    with pytest.raises(ValidationError) as exc_info:
        perform_join(first, regions, "s.name = r.user_id")
    assert exc_info.value.field == "JOIN column"
