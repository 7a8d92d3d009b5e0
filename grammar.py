from __future__ import annotations
from typing import Optional

from lark import Lark, Tree
from lark.exceptions import UnexpectedInput


class CalcError(Exception):
    """Base class for interpreter errors."""


class CalcParseError(CalcError):
    """Raised when a line does not match the grammar."""

    def __init__(self, line: str, failure: UnexpectedInput) -> None:
        self.line = line
        self.failure = failure
        self.description = _describe(line, failure)
        super().__init__(self.description)


# One logical line: an optional assignment target, then a flat run of values
# and binary operators. Precedence is not encoded here; the reducer owns it.
GRAMMAR = r"""
line: assignment _NL
    | expression _NL
    | _NL

assignment: target "=" expression
target: NAME

expression: _value (operator _value)*

_value: negation
      | parenthetical
      | literal
      | variable

negation: "-" _value
parenthetical: "(" expression ")"
literal: DIGITS
variable: NAME

!operator: "+" | "-" | "*" | "/" | "^"

DIGITS: /[0-9]+/
NAME: /[A-Za-z_][A-Za-z0-9_]*/
COMMENT: /#[^\n]*/
WHITESPACE: /[ \t\f\r]+/
_NL: /\n/

%ignore WHITESPACE
%ignore COMMENT
"""


_PARSER: Optional[Lark] = None


def _get_parser() -> Lark:
    global _PARSER
    if _PARSER is None:
        _PARSER = Lark(GRAMMAR, start="line", parser="lalr")
    return _PARSER


def _describe(line: str, failure: UnexpectedInput) -> str:
    context = failure.get_context(line).rstrip("\n")
    return f"{context}\n{failure}".rstrip()


def parse_tree(text: str) -> Optional[Tree]:
    """Parse one line into a lark tree, or None when the line is empty."""
    source = text if text.endswith("\n") else text + "\n"
    try:
        tree = _get_parser().parse(source)
    except UnexpectedInput as exc:
        raise CalcParseError(text, exc) from None
    if not tree.children:
        return None
    return tree
