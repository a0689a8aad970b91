"""
Component Tree
===============

:class:`Component` is the universal decoded unit shared by the class, dex
and luac decoders.  A component has a stable structural ``name``, a
human-readable ``description``, an ordered tuple of ``children`` (empty for
leaves) and the ``byte_range`` it was read from.

Descriptions that depend on a symbol table are supplied as zero-argument
callables and evaluated on first access.  Because every symbol table is
complete before the decoder returns, the result is the same whichever
order descriptions are requested in.  Components are immutable once built,
so a finished tree can be shared with concurrent readers without locking.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Sequence, Union

Description = Union[str, Callable[[], str]]


class Component:
    """A node of the decoded component tree."""

    __slots__ = ("_name", "_offset", "_length", "_children", "_desc", "_value")

    def __init__(
        self,
        name: str,
        offset: int,
        length: int,
        *,
        children: Sequence[Component] = (),
        description: Description = "",
        value: Any = None,
    ) -> None:
        self._name = name
        self._offset = offset
        self._length = length
        self._children: tuple[Component, ...] = tuple(children)
        self._desc: Description = description
        self._value = value

    # ------------------------------------------------------------------ #
    #  Read-only interface
    # ------------------------------------------------------------------ #

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        """Rendered description, computed once and cached."""
        desc = self._desc
        if callable(desc):
            desc = desc()
            self._desc = desc
        return desc

    @property
    def children(self) -> tuple[Component, ...]:
        return self._children

    @property
    def byte_range(self) -> tuple[int, int]:
        """``(offset, length)`` into the source buffer."""
        return self._offset, self._length

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def length(self) -> int:
        return self._length

    @property
    def end(self) -> int:
        return self._offset + self._length

    @property
    def value(self) -> Any:
        """Decoded scalar for leaf fields (``None`` for compound nodes)."""
        return self._value

    @property
    def is_leaf(self) -> bool:
        return not self._children

    # ------------------------------------------------------------------ #
    #  Navigation helpers
    # ------------------------------------------------------------------ #

    def child(self, name: str) -> Component:
        """Return the first direct child called *name*.

        Raises:
            KeyError: No child has that name.
        """
        for kid in self._children:
            if kid._name == name:
                return kid
        raise KeyError(name)

    def __getitem__(self, key: int | str) -> Component:
        if isinstance(key, str):
            return self.child(key)
        return self._children[key]

    def __iter__(self) -> Iterator[Component]:
        return iter(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __bool__(self) -> bool:
        return True

    def walk(self) -> Iterator[Component]:
        """Yield this node and all descendants in read order."""
        stack: list[Component] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def __repr__(self) -> str:
        return (
            f"Component(name={self._name!r}, offset={self._offset}, "
            f"length={self._length}, children={len(self._children)})"
        )

    def __str__(self) -> str:
        desc = self.description
        return f"{self._name}: {desc}" if desc else self._name
