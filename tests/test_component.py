from __future__ import annotations

import pytest

from classpy.core.component import Component


def _tree() -> Component:
    a = Component("a", 0, 2, description="first")
    b = Component("b", 2, 4, children=[Component("c", 2, 4)])
    return Component("root", 0, 6, children=[a, b])


def test_navigation() -> None:
    root = _tree()
    assert root["a"].description == "first"
    assert root[1].name == "b"
    assert root.child("b")["c"].is_leaf
    with pytest.raises(KeyError):
        root.child("missing")


def test_walk_in_read_order() -> None:
    assert [n.name for n in _tree().walk()] == ["root", "a", "b", "c"]


def test_lazy_description_evaluated_once() -> None:
    calls = []

    def describe() -> str:
        calls.append(1)
        return "resolved"

    node = Component("x", 0, 1, description=describe)
    assert calls == []
    assert node.description == "resolved"
    assert node.description == "resolved"
    assert calls == [1]


def test_byte_range_and_truthiness() -> None:
    node = Component("empty", 8, 0)
    assert node.byte_range == (8, 0)
    assert node.end == 8
    assert len(node) == 0
    assert node
    assert str(Component("n", 0, 1, description="d")) == "n: d"
