import pytest

from interpreter import Environment, NotValidVar


@pytest.mark.parametrize("name", ["a", "a1", "Total", "x2y3", "_"])
def test_valid_names(name):
    assert Environment.is_valid_name(name)


@pytest.mark.parametrize("name", ["", "1bad", "%$", "a_b", "_x", "naïve", "a b", "a-b"])
def test_invalid_names(name):
    assert not Environment.is_valid_name(name)


def test_set_and_get():
    env = Environment()
    env.set("a1", 5)
    assert env.get("a1") == 5
    env.set("a1", 2 ** 100)
    assert env.get("a1") == 2 ** 100


@pytest.mark.parametrize("name", ["1bad", "%$", ""])
def test_set_rejects_invalid_names(name):
    env = Environment()
    with pytest.raises(NotValidVar) as info:
        env.set(name, 1)
    assert info.value.name == name
    assert env.values == {}


def test_underscore_is_the_last_value():
    env = Environment()
    assert env.last == 0
    assert env.get("_") == 0
    env.set("_", 42)
    assert env.get("_") == 0
    assert "_" not in env.values
    env.last = 7
    assert env.get("_") == 7


def test_unknown_and_invalid_names_read_as_absent():
    env = Environment()
    assert env.get("missing") is None
    assert env.get("1bad") is None


def test_environments_are_independent():
    first, second = Environment(), Environment()
    first.set("x", 1)
    first.last = 3
    assert second.get("x") is None
    assert second.last == 0


def test_snapshot_renders_values():
    env = Environment()
    env.set("small", 12)
    env.set("huge", 2 ** 4000)
    env.last = 5
    snapshot = env.snapshot()
    assert snapshot["small"] == "12"
    assert snapshot["huge"] == "<4001-bit integer>"
    assert snapshot["_"] == "5"
