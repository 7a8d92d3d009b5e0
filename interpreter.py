from __future__ import annotations
import json
import numpy as np
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

from grammar import CalcError, CalcParseError
from parser import (
    ADD,
    DIVIDE,
    EXPONENT,
    MULTIPLY,
    SUBTRACT,
    Expression,
    Identifier,
    Literal,
    Main,
    Negation,
    Node,
    Operator,
    Parenthetical,
    Parser,
)


# Largest exponent magnitude accepted by '^'.
EXPONENT_LIMIT = int(np.iinfo(np.uint32).max)

LAST_VALUE_NAME = "_"

# Reduction steps kept for traces and error reports.
STATE_LOG_CAPACITY = 1000

# Operator tiers in the order they are folded, tightest binding first.
OPERATOR_STAGES: Tuple[Tuple[str, ...], ...] = (
    (EXPONENT,),
    (MULTIPLY, DIVIDE),
    (ADD, SUBTRACT),
)


class CalcRuntimeError(CalcError):
    """Raised for evaluation faults."""

    def __init__(self, message: str, *, rule: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.rule = rule
        self.step_index: Optional[int] = None


class VarNotFound(CalcRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"'{name}' not in variable table", rule="IDENT")
        self.name = name


class NotValidVar(CalcRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"'{name}' not valid variable name", rule="ASSIGN")
        self.name = name


class ExponentOverflow(CalcRuntimeError):
    def __init__(self, exponent: int) -> None:
        super().__init__(f"exponent {_render_int(exponent)} is out of range", rule=EXPONENT)
        self.exponent = exponent


class DivideByZero(CalcRuntimeError):
    def __init__(self, rule: str = DIVIDE) -> None:
        super().__init__("Division by zero", rule=rule)


class InternalAstFailure(CalcRuntimeError):
    def __init__(self, detail: str = "malformed expression tree") -> None:
        super().__init__(f"internal AST failure: {detail}", rule="internal")
        self.detail = detail


class NestingTooDeep(CalcRuntimeError):
    def __init__(self) -> None:
        super().__init__("expression nested too deeply", rule="NESTING")


def _render_int(value: int, limit: int = 80) -> str:
    # str() on huge ints is slow and may be refused outright.
    if value.bit_length() > 4 * limit:
        return f"<{value.bit_length()}-bit integer>"
    rendered = str(value)
    if len(rendered) > limit:
        rendered = rendered[: limit - 3] + "..."
    return rendered


@dataclass
class Environment:
    values: Dict[str, int] = field(default_factory=dict)
    last: int = 0

    @staticmethod
    def is_valid_name(name: str) -> bool:
        if name == LAST_VALUE_NAME:
            return True
        if not name or not name.isascii():
            return False
        return name[0].isalpha() and name.isalnum()

    def set(self, name: str, value: int) -> None:
        if name == LAST_VALUE_NAME:
            # '_' always reads the last value; writes are discarded.
            return
        if not self.is_valid_name(name):
            raise NotValidVar(name)
        self.values[name] = value

    def get(self, name: str) -> Optional[int]:
        if name == LAST_VALUE_NAME:
            return self.last
        return self.values.get(name)

    def snapshot(self) -> Dict[str, str]:
        rendered = {k: _render_int(v) for k, v in self.values.items()}
        rendered[LAST_VALUE_NAME] = _render_int(self.last)
        return rendered


@dataclass
class StateEntry:
    step_index: int
    rule: str
    statement: Optional[str]
    detail: Dict[str, Any]
    env_snapshot: Optional[Dict[str, str]]


class StateLogger:
    def __init__(self, verbose: bool, *, capacity: int = STATE_LOG_CAPACITY) -> None:
        self.verbose = verbose
        # Only the most recent entries are kept; step indices keep counting.
        self.entries: Deque[StateEntry] = deque(maxlen=capacity)
        self.next_step_index = 0

    def record(
        self,
        *,
        rule: str,
        statement: Optional[str],
        detail: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        entry = StateEntry(
            step_index=self.next_step_index,
            rule=rule,
            statement=statement,
            detail={} if detail is None else detail,
            env_snapshot=env_snapshot if self.verbose else None,
        )
        self.entries.append(entry)
        self.next_step_index += 1
        return entry

    def since(self, step_index: int) -> List[StateEntry]:
        return [entry for entry in self.entries if entry.step_index >= step_index]


class Reducer:
    """Collapses a node tree to a single integer.

    Expressions arrive from the grammar as a flat run of operands and
    operators. Precedence is applied here by folding the slot list in
    stages: grouped and negated operands first, then each operator tier
    in one left-to-right pass. An operator takes the nearest populated
    slot on either side, so a chain like ``a - b - c`` consumes ``a - b``
    first and the second ``-`` then finds that result to its left. The
    result replaces the operator in place; the operand slots are emptied.

    The environment is only read.
    """

    def __init__(
        self,
        env: Environment,
        *,
        logger: Optional[StateLogger] = None,
        statement: Optional[str] = None,
    ) -> None:
        self.env = env
        self.logger = logger
        self.statement = statement

    def reduce(self, node: Optional[Node]) -> int:
        if isinstance(node, Main):
            return self.reduce(node.body)
        if isinstance(node, Identifier):
            return self._lookup(node.name)
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Parenthetical):
            return self.reduce(node.inner)
        if isinstance(node, Negation):
            return -self.reduce(node.inner)
        if isinstance(node, Expression):
            return self._reduce_expression(node.slots)
        if isinstance(node, Operator):
            raise InternalAstFailure(f"operator {node.kind} reached outside an expression")
        raise InternalAstFailure(f"cannot reduce {type(node).__name__}")

    def _reduce_expression(self, slots: List[Optional[Node]]) -> int:
        for i, slot in enumerate(slots):
            if isinstance(slot, (Parenthetical, Negation)):
                value = self.reduce(slot)
                slots[i] = Literal(value)
                self._log("GROUP", index=i, result=value)

        for kinds in OPERATOR_STAGES:
            for i in range(len(slots)):
                slot = slots[i]
                if not isinstance(slot, Operator) or slot.kind not in kinds:
                    continue
                lhs = self.reduce(_take_left(slots, i))
                rhs = self.reduce(_take_right(slots, i))
                value = self._apply(slot.kind, lhs, rhs)
                slots[i] = Literal(value)
                self._log(slot.kind, index=i, lhs=lhs, rhs=rhs, result=value)

        # Only a lone identifier with no operators is still unresolved here.
        for i, slot in enumerate(slots):
            if isinstance(slot, Identifier):
                slots[i] = Literal(self._lookup(slot.name))

        remaining = [slot for slot in slots if slot is not None]
        if len(remaining) != 1:
            raise InternalAstFailure(f"expression reduced to {len(remaining)} values")
        result = remaining[0]
        if not isinstance(result, Literal):
            raise InternalAstFailure(f"expression reduced to {type(result).__name__}")
        return result.value

    def _apply(self, kind: str, lhs: int, rhs: int) -> int:
        if kind == EXPONENT:
            return self._power(lhs, rhs)
        if kind == MULTIPLY:
            return lhs * rhs
        if kind == DIVIDE:
            return _truncating_div(lhs, rhs)
        if kind == ADD:
            return lhs + rhs
        if kind == SUBTRACT:
            return lhs - rhs
        raise InternalAstFailure(f"unknown operator {kind}")

    def _power(self, base: int, exponent: int) -> int:
        if abs(exponent) > EXPONENT_LIMIT:
            raise ExponentOverflow(exponent)
        if exponent < 0:
            # Integer reciprocal: 0 unless the base is 1 or -1.
            return _truncating_div(1, base ** -exponent, rule=EXPONENT)
        return base ** exponent

    def _lookup(self, name: str) -> int:
        value = self.env.get(name)
        if value is None:
            raise VarNotFound(name)
        self._log("IDENT", name=name, result=value)
        return value

    def _log(self, rule: str, **detail: Any) -> None:
        if self.logger is None:
            return
        for key, value in detail.items():
            if isinstance(value, int) and not isinstance(value, bool):
                detail[key] = _render_int(value)
        snapshot = self.env.snapshot() if self.logger.verbose else None
        self.logger.record(rule=rule, statement=self.statement, detail=detail, env_snapshot=snapshot)


def _truncating_div(lhs: int, rhs: int, *, rule: str = DIVIDE) -> int:
    if rhs == 0:
        raise DivideByZero(rule)
    quotient = abs(lhs) // abs(rhs)
    return -quotient if (lhs < 0) != (rhs < 0) else quotient


def _take_left(slots: List[Optional[Node]], i: int) -> Node:
    while i > 0:
        i -= 1
        node = slots[i]
        if node is not None:
            slots[i] = None
            return node
    raise InternalAstFailure("operator has no left operand")


def _take_right(slots: List[Optional[Node]], i: int) -> Node:
    while i < len(slots) - 1:
        i += 1
        node = slots[i]
        if node is not None:
            slots[i] = None
            return node
    raise InternalAstFailure("operator has no right operand")


@dataclass
class LineResult:
    value: int
    assigned_to: Optional[str] = None


class Interpreter:
    """Evaluates lines against one variable environment.

    ``evaluate_line`` stores assignments and records the result as the
    last value; ``evaluate_line_readonly`` computes the same value without
    touching the environment. Either returns None for a blank or
    comment-only line. On any error the environment is left as it was.
    """

    def __init__(self, env: Optional[Environment] = None, *, verbose: bool = False) -> None:
        self.env = env if env is not None else Environment()
        self.verbose = verbose
        self.logger = StateLogger(verbose=verbose)

    def evaluate_line(self, text: str) -> Optional[LineResult]:
        evaluated = self._evaluate(text)
        if evaluated is None:
            return None
        target, value = evaluated
        assigned_to: Optional[str] = None
        if target is not None and target != LAST_VALUE_NAME:
            try:
                self.env.set(target, value)
            except CalcRuntimeError as error:
                self._stamp(error)
                raise
            assigned_to = target
            self.logger.record(
                rule="ASSIGN",
                statement=text,
                detail={"name": target, "result": _render_int(value)},
                env_snapshot=self.env.snapshot() if self.verbose else None,
            )
        self.env.last = value
        return LineResult(value=value, assigned_to=assigned_to)

    def evaluate_line_readonly(self, text: str) -> Optional[int]:
        evaluated = self._evaluate(text)
        if evaluated is None:
            return None
        return evaluated[1]

    def _evaluate(self, text: str) -> Optional[Tuple[Optional[str], int]]:
        # Building and reducing both recurse once per nesting level.
        try:
            main = Parser(text).parse()
            if main is None:
                return None
            reducer = Reducer(self.env, logger=self.logger, statement=text.strip())
            value = reducer.reduce(main.body)
        except RecursionError:
            error = NestingTooDeep()
            self._stamp(error)
            raise error from None
        except CalcRuntimeError as error:
            self._stamp(error)
            raise
        target = main.target.name if main.target is not None else None
        return target, value

    def _stamp(self, error: CalcRuntimeError) -> None:
        if self.logger.entries:
            error.step_index = self.logger.entries[-1].step_index


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter, *, depth: int = 5) -> None:
        self.interpreter = interpreter
        self.depth = depth

    def recent_steps(self, first_step: int = 0) -> List[StateEntry]:
        steps = self.interpreter.logger.since(first_step)
        return steps[-self.depth:] if self.depth else []

    def format_text(self, error: CalcError, verbose: bool, first_step: int = 0) -> str:
        lines: List[str] = []
        if verbose:
            steps = self.recent_steps(first_step)
            if steps:
                lines.append("Reduction steps (most recent last):")
                for entry in steps:
                    lines.append(f"  [{entry.step_index}] {entry.rule} {_format_detail(entry.detail)}".rstrip())
                last = steps[-1]
                if last.env_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in last.env_snapshot.items())
                    lines.append(f"  Env snapshot: {snapshot}")
        if isinstance(error, CalcRuntimeError):
            lines.append(f"{error.__class__.__name__}: {error.message} (rule: {error.rule or 'runtime'})")
        elif isinstance(error, CalcParseError):
            lines.append(f"{error.__class__.__name__}: {error.line!r}")
            lines.append(error.description)
        else:
            lines.append(f"{error.__class__.__name__}: {error}")
        return "\n".join(lines)

    def to_json(self, error: CalcError, first_step: int = 0) -> str:
        steps_json: List[Dict[str, Any]] = []
        for entry in self.recent_steps(first_step):
            item: Dict[str, Any] = {"step_index": entry.step_index, "rule": entry.rule, "detail": entry.detail}
            if entry.statement is not None:
                item["statement"] = entry.statement
            if entry.env_snapshot is not None:
                item["env_snapshot"] = entry.env_snapshot
            steps_json.append(item)
        info: Dict[str, Any] = {"type": error.__class__.__name__}
        if isinstance(error, CalcRuntimeError):
            info["message"] = error.message
            info["rule"] = error.rule
            info["failing_step_index"] = error.step_index
        elif isinstance(error, CalcParseError):
            info["line"] = error.line
            info["message"] = error.description
        else:
            info["message"] = str(error)
        return json.dumps({"error": info, "steps": steps_json}, indent=2)


def _format_detail(detail: Dict[str, Any]) -> str:
    return " ".join(f"{k}={v}" for k, v in detail.items())
