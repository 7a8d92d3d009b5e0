import pytest

from interpreter import Interpreter, VarNotFound
from scripts import MathScript


SCRIPT = """# area of a rectangle
width = 6
height = 7

width * height
_ + 1  # one more
"""


def test_from_text_drops_blank_and_comment_lines():
    script = MathScript.from_text(SCRIPT)
    assert script.lines == [
        (2, "width = 6"),
        (3, "height = 7"),
        (5, "width * height"),
        (6, "_ + 1  # one more"),
    ]


def test_run_emits_non_assignment_values():
    out = []
    interpreter = MathScript.from_text(SCRIPT).run(output_sink=out.append)
    assert out == [42, 43]
    assert interpreter.env.get("width") == 6


def test_run_uses_supplied_interpreter():
    interpreter = Interpreter()
    interpreter.evaluate_line("base = 10")
    out = []
    MathScript.from_text("base ^ 3").run(interpreter, out.append)
    assert out == [1000]


def test_run_stops_at_first_error():
    out = []
    script = MathScript.from_text("1\nmissing + 1\n2\n")
    with pytest.raises(VarNotFound) as info:
        script.run(output_sink=out.append)
    assert info.value.line_number == 2
    assert out == [1]


def test_from_file(tmp_path):
    path = tmp_path / "calc.txt"
    path.write_text("a = 2\na ^ 10", encoding="utf-8")
    out = []
    MathScript.from_file(str(path)).run(output_sink=out.append)
    assert out == [1024]


def test_empty_script():
    assert MathScript.from_text("").lines == []
