from __future__ import annotations

from datetime import date

import pytest

from sheetsql.errors import ParseError
from sheetsql.sql.lexer import TokenType, tokenize


def _types(clause: str) -> list[TokenType]:
    return [t.type for t in tokenize(clause)]


def test_tokenize_comparison_chain():
    assert _types("A >= 10 AND B <> 'x'") == [
        TokenType.COLUMN,
        TokenType.OPERATOR,
        TokenType.NUMBER,
        TokenType.AND,
        TokenType.COLUMN,
        TokenType.OPERATOR,
        TokenType.STRING,
        TokenType.EOF,
    ]
    tokens = tokenize("A >= 10 AND B <> 'x'")
    assert tokens[1].value == ">="
    assert tokens[2].value == 10
    assert tokens[5].value == "<>"


def test_tokenize_numbers():
    tokens = tokenize("A > -1.5 OR B = 3")
    assert tokens[2].value == -1.5
    assert tokens[6].value == 3
    assert isinstance(tokens[6].value, int)


def test_tokenize_string_escapes():
    assert tokenize("A = 'O''Neil'")[2].value == "O'Neil"
    assert tokenize('A = "say \\"hi\\""')[2].value == 'say "hi"'
    assert tokenize("A = 'tab\\there'")[2].value == "tab\there"


def test_tokenize_unterminated_string_raises():
    with pytest.raises(ParseError):
        tokenize("A = 'open")


def test_tokenize_keywords_are_case_insensitive():
    tokens = tokenize("a is not null or b = true")
    assert [t.type for t in tokens] == [
        TokenType.COLUMN,
        TokenType.IS,
        TokenType.NOT,
        TokenType.NULL,
        TokenType.OR,
        TokenType.COLUMN,
        TokenType.OPERATOR,
        TokenType.BOOLEAN,
        TokenType.EOF,
    ]
    assert tokens[0].value == "a"
    assert tokens[3].value is None
    assert tokens[7].value is True


def test_tokenize_string_operators():
    assert tokenize("A contains 'x'")[1].value == "contains"
    assert tokenize("A STARTS WITH 'x'")[1].value == "starts with"
    assert tokenize("A ends   with 'x'")[1].value == "ends with"
    assert tokenize("A ends with 'x'")[1].type is TokenType.STRING_OP


def test_tokenize_starts_without_with_raises():
    with pytest.raises(ParseError):
        tokenize("A starts 'x'")


def test_tokenize_standalone_with_raises():
    with pytest.raises(ParseError):
        tokenize("A = 1 WITH")


def test_tokenize_date_literal():
    token = tokenize('A > DATE "2024-01-05"')[2]
    assert token.type is TokenType.DATE
    assert token.value == "2024-01-05"


def test_tokenize_date_requires_quoted_literal():
    with pytest.raises(ParseError):
        tokenize("A > DATE 2024")


def test_tokenize_today_and_now():
    today = tokenize("A < TODAY()")[2]
    assert today.type is TokenType.DATE
    assert today.value == date.today().isoformat()
    assert tokenize("A < NOW()")[2].type is TokenType.DATE


def test_tokenize_skips_unused_characters():
    assert _types("A = 1 ;") == [TokenType.COLUMN, TokenType.OPERATOR, TokenType.NUMBER, TokenType.EOF]


def test_tokenize_positions_point_at_source():
    tokens = tokenize("Amount > 5")
    assert tokens[0].position == 0
    assert tokens[1].position == 7
    assert tokens[-1].position == len("Amount > 5")
