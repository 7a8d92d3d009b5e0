from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Union

from lark import Token, Tree

from grammar import parse_tree


ADD = "ADD"
SUBTRACT = "SUBTRACT"
MULTIPLY = "MULTIPLY"
DIVIDE = "DIVIDE"
EXPONENT = "EXPONENT"

SYMBOLS = {
    "+": ADD,
    "-": SUBTRACT,
    "*": MULTIPLY,
    "/": DIVIDE,
    "^": EXPONENT,
}


class Node:
    pass


@dataclass
class Identifier(Node):
    name: str


@dataclass
class Operator(Node):
    kind: str


@dataclass
class Parenthetical(Node):
    inner: Node


@dataclass
class Negation(Node):
    inner: Node


@dataclass
class Literal(Node):
    value: int


@dataclass
class Expression(Node):
    # Operands and operators alternate; reduction empties slots in place.
    slots: List[Optional[Node]]


@dataclass
class Main(Node):
    target: Optional[Identifier]
    body: Node


class Parser:
    """Builds the typed node tree for a single line of input."""

    def __init__(self, text: str) -> None:
        self.text = text

    def parse(self) -> Optional[Main]:
        tree = parse_tree(self.text)
        if tree is None:
            return None
        node = self._build(tree)
        if not isinstance(node, Main):
            raise _internal(f"line built into {type(node).__name__}")
        return node

    def _build(self, item: Union[Tree, Token]) -> Node:
        if isinstance(item, Token):
            raise _internal(f"unexpected bare token {item.type}")
        rule = item.data
        children = item.children
        if rule == "line":
            child = children[0]
            if isinstance(child, Tree) and child.data == "assignment":
                target, body = child.children
                return Main(target=self._build(target), body=self._build(body))
            return Main(target=None, body=self._build(child))
        if rule == "target" or rule == "variable":
            return Identifier(name=str(children[0]))
        if rule == "operator":
            symbol = str(children[0])
            if symbol not in SYMBOLS:
                raise _internal(f"unknown operator symbol '{symbol}'")
            return Operator(kind=SYMBOLS[symbol])
        if rule == "parenthetical":
            return Parenthetical(inner=self._build(children[0]))
        if rule == "negation":
            return Negation(inner=self._build(children[0]))
        if rule == "literal":
            return Literal(value=_digits_to_int(str(children[0])))
        if rule == "expression":
            return Expression(slots=[self._build(child) for child in children])
        raise _internal(f"unknown parse rule '{rule}'")


# int() refuses very long digit strings on recent interpreters.
_DIGIT_CHUNK = 4000


def _digits_to_int(digits: str) -> int:
    value = 0
    for start in range(0, len(digits), _DIGIT_CHUNK):
        chunk = digits[start:start + _DIGIT_CHUNK]
        value = value * 10 ** len(chunk) + int(chunk)
    return value


def parse_line(text: str) -> Optional[Main]:
    return Parser(text).parse()


def _internal(detail: str) -> Exception:
    # Imported lazily: interpreter depends on this module.
    from interpreter import InternalAstFailure

    return InternalAstFailure(detail)
