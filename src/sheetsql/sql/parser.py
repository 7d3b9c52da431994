"""Recursive-descent parser for WHERE/HAVING clauses.

Grammar (OR binds looser than AND, both left-associative)::

    or_expr  := and_expr ('OR' and_expr)*
    and_expr := term ('AND' term)*
    term     := '(' or_expr ')'
              | COLUMN 'IS' ['NOT'] 'NULL'
              | COLUMN operator value
              | BOOLEAN

There is no error recovery: the first unexpected token aborts the parse.
"""
from __future__ import annotations

from sheetsql.errors import ParseError
from sheetsql.sql.ast import And, Comparison, Constant, Node, NullCheck, Or
from sheetsql.sql.evaluator import parse_date
from sheetsql.sql.lexer import Token, TokenType, tokenize

_VALUE_TYPES = (
    TokenType.STRING,
    TokenType.NUMBER,
    TokenType.BOOLEAN,
    TokenType.NULL,
    TokenType.DATE,
)


class _Parser:
    def __init__(self, clause: str, tokens: list[Token]):
        self.clause = clause
        self.tokens = tokens
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.type is not TokenType.EOF:
            self.index += 1
        return token

    def expect(self, token_type: TokenType, what: str) -> Token:
        if self.current.type is not token_type:
            self.fail(what)
        return self.advance()

    def fail(self, expected: str) -> None:
        token = self.current
        found = "end of clause" if token.type is TokenType.EOF else f"{token.type.value} {token.value!r}"
        raise ParseError(self.clause, token.position, f"{expected} (found {found})")

    def parse(self) -> Node:
        node = self.or_expr()
        if self.current.type is not TokenType.EOF:
            self.fail("end of clause")
        return node

    def or_expr(self) -> Node:
        node = self.and_expr()
        while self.current.type is TokenType.OR:
            self.advance()
            node = Or(node, self.and_expr())
        return node

    def and_expr(self) -> Node:
        node = self.term()
        while self.current.type is TokenType.AND:
            self.advance()
            node = And(node, self.term())
        return node

    def term(self) -> Node:
        token = self.current

        if token.type is TokenType.LPAREN:
            self.advance()
            node = self.or_expr()
            self.expect(TokenType.RPAREN, "closing parenthesis")
            return node

        if token.type is TokenType.BOOLEAN:
            self.advance()
            return Constant(bool(token.value))

        if token.type is not TokenType.COLUMN:
            self.fail("column reference or '('")

        column = self.advance().value

        if self.current.type is TokenType.IS:
            self.advance()
            negated = False
            if self.current.type is TokenType.NOT:
                self.advance()
                negated = True
            self.expect(TokenType.NULL, "NULL after IS")
            return NullCheck(column=column, is_null=not negated)

        if self.current.type not in (TokenType.OPERATOR, TokenType.STRING_OP):
            self.fail(f"operator after column {column}")
        operator = self.advance().value

        value_token = self.current
        if value_token.type not in _VALUE_TYPES:
            self.fail(f"value after {column} {operator}")
        self.advance()

        value = value_token.value
        if value_token.type is TokenType.DATE:
            value = parse_date(value)
            if value is None:
                raise ParseError(self.clause, value_token.position, "valid ISO date literal")
        return Comparison(column=column, operator=operator, value=value)


def parse_where_clause(clause: str) -> Node:
    """Parse a (column-resolved) WHERE or HAVING clause into an AST."""
    if not clause or not clause.strip():
        raise ParseError(clause or "", 0, "non-empty condition")
    return _Parser(clause, tokenize(clause)).parse()
