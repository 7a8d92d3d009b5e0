from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from grammar import CalcError
from interpreter import Interpreter


@dataclass
class MathScript:
    """A batch of calculator lines, kept with their 1-based line numbers."""

    lines: List[Tuple[int, str]] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "MathScript":
        if not text.endswith("\n"):
            text += "\n"
        lines: List[Tuple[int, str]] = []
        for number, raw in enumerate(text.splitlines(), start=1):
            stripped = raw.strip()
            if stripped == "" or stripped.startswith("#"):
                continue
            lines.append((number, stripped))
        return cls(lines=lines)

    @classmethod
    def from_file(cls, path: str) -> "MathScript":
        with open(path, "r", encoding="utf-8") as handle:
            return cls.from_text(handle.read())

    def run(
        self,
        interpreter: Optional[Interpreter] = None,
        output_sink: Optional[Callable[[int], None]] = None,
    ) -> Interpreter:
        """Evaluate every line in order, stopping at the first error.

        Values of lines that are not assignments go to ``output_sink``. The
        error raised for a failing line carries its ``line_number``.
        """
        interpreter = interpreter if interpreter is not None else Interpreter()
        sink = output_sink or (lambda value: print(value))
        for number, line in self.lines:
            try:
                result = interpreter.evaluate_line(line)
            except CalcError as error:
                error.line_number = number
                raise
            if result is not None and result.assigned_to is None:
                sink(result.value)
        return interpreter
