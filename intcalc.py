"""intcalc entry point and REPL wiring."""

from __future__ import annotations
import argparse
import os
import sys
from typing import List, Optional

from grammar import CalcError, CalcParseError
from interpreter import Interpreter, NotValidVar, TracebackFormatter, VarNotFound
from scripts import MathScript


VERSION = "0.1.0"
DEBUG_ENV_VAR = "INTCALC_DEBUG"


def _style(text: str, code: str, stream=None) -> str:
    stream = stream or sys.stdout
    if not getattr(stream, "isatty", lambda: False)():
        return text
    return f"\x1b[{code}m{text}\033[0m"


def _bold(text: str, stream=None) -> str:
    return _style(text, "1", stream)


def describe_error(error: CalcError, stream=None) -> str:
    headline = _style("ERROR", "1;31", stream)
    if isinstance(error, VarNotFound):
        return f"{headline} {_bold('variable not found:', stream)} '{error.name}'"
    if isinstance(error, NotValidVar):
        return f"{headline} {_bold('invalid variable name:', stream)} '{error.name}'"
    if isinstance(error, CalcParseError):
        return f"{headline} {_bold('failed to parse expression:', stream)}\n{error.description}"
    return f"{headline} {_bold('unexpected error:', stream)}\n{error}"


def _report(interpreter: Interpreter, error: CalcError, *, first_step: int, traceback_json: bool) -> None:
    if interpreter.verbose:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=True, first_step=first_step), file=sys.stderr)
        if traceback_json:
            print(formatter.to_json(error, first_step=first_step), file=sys.stderr)
    elif traceback_json:
        print(TracebackFormatter(interpreter).to_json(error, first_step=first_step), file=sys.stderr)


def _trace(interpreter: Interpreter, first_step: int) -> None:
    if not interpreter.verbose:
        return
    for entry in interpreter.logger.since(first_step):
        detail = " ".join(f"{k}={v}" for k, v in entry.detail.items())
        print(f"[step {entry.step_index}] {entry.rule} {detail}".rstrip(), file=sys.stderr)


def run_repl(interpreter: Interpreter, *, quiet: bool, traceback_json: bool = False) -> int:
    if not quiet:
        print(f"{_style('intcalc', '38;2;153;221;255')} REPL v{VERSION}\n(press ctrl-D to exit)")
    prompt = "" if quiet else f"intcalc {_bold('>>')} "

    while True:
        try:
            line = input(prompt)
        except EOFError:
            if not quiet:
                print()
            break
        except KeyboardInterrupt:
            print()
            continue

        first_step = interpreter.logger.next_step_index
        try:
            result = interpreter.evaluate_line(line)
        except CalcError as error:
            print(describe_error(error))
            _report(interpreter, error, first_step=first_step, traceback_json=traceback_json)
            continue
        _trace(interpreter, first_step)
        if result is None or result.assigned_to is not None:
            continue
        if quiet:
            print(result.value)
        else:
            print(f"-> {_bold(str(result.value))}")
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Arbitrary-precision integer calculator")
    parser.add_argument("program", nargs="?", help="Script file to run; starts a REPL when omitted")
    parser.add_argument("-e", "--expr", dest="expr", help="Evaluate a single line and print its value")
    parser.add_argument("-q", "--quiet", dest="quiet", action="store_true", help="Print bare values with no banner or prompt")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Trace reduction steps on stderr")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit a JSON error report")
    args = parser.parse_args(argv)

    # Results routinely exceed the default int-to-str digit limit.
    if hasattr(sys, "set_int_max_str_digits"):
        sys.set_int_max_str_digits(0)

    verbose = args.verbose or bool(os.environ.get(DEBUG_ENV_VAR))
    interpreter = Interpreter(verbose=verbose)

    if args.program is not None and args.expr is not None:
        print("a script file and --expr cannot be combined", file=sys.stderr)
        return 2

    if args.program is None and args.expr is None:
        return run_repl(interpreter, quiet=args.quiet, traceback_json=args.traceback_json)

    if args.expr is not None:
        script = MathScript.from_text(args.expr)
        source_name = "<expr>"
    else:
        source_name = args.program
        try:
            script = MathScript.from_file(args.program)
        except OSError as exc:
            print(f"Failed to read {args.program}: {exc}", file=sys.stderr)
            return 1

    first_step = interpreter.logger.next_step_index
    try:
        script.run(interpreter, output_sink=lambda value: print(value))
    except CalcError as error:
        number = getattr(error, "line_number", None)
        if number is not None:
            print(f"{source_name}, line {number}:", file=sys.stderr)
        print(describe_error(error, sys.stderr), file=sys.stderr)
        _report(interpreter, error, first_step=first_step, traceback_json=args.traceback_json)
        return 1
    _trace(interpreter, first_step)
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
