"""SQL text handling: tokens, AST, clauses and column resolution.

Modules
-------
lexer.py        - WHERE/HAVING tokenizer
ast.py          - AST node variants
parser.py       - recursive-descent parser (OR of ANDs of terms)
evaluator.py    - per-row evaluation
columns.py      - column letters and header-name maps
clauses.py      - statement splitting and clause parsers
expressions.py  - arithmetic expressions (fail closed)
"""
