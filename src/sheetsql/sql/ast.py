"""Boolean-expression nodes produced by the WHERE/HAVING parser.

Nodes are frozen dataclasses combined into the ``Node`` union; the
evaluator dispatches on the concrete type.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Comparison:
    column: str
    operator: str
    value: Any


@dataclass(frozen=True)
class NullCheck:
    column: str
    is_null: bool


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Constant:
    """``WHERE true`` / ``WHERE false``."""
    value: bool


Node = Union[Comparison, NullCheck, And, Or, Constant]
