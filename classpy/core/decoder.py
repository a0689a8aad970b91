"""
Decoder Base
=============

:class:`ComponentDecoder` owns the cursor for one decode invocation and
provides the small set of node-building helpers every format decoder uses:
leaf fields of fixed width, compound nodes whose range is the span read
while building their children, and counted tables.
"""

from __future__ import annotations

from typing import Any, Callable

from shared.config import DecoderConfig
from shared.logger import ClasspyLogger

from classpy.core.component import Component, Description
from classpy.core.cursor import BIG_ENDIAN, ByteCursor

Formatter = Callable[[Any], Description]


class ComponentDecoder:
    """Base class for format decoders.

    Subclasses implement :meth:`decode`, which must be called at most once
    per instance: the cursor is single-pass and is never handed out.
    """

    #: Default byte order; see :meth:`_detect_byte_order`.
    byte_order: str = BIG_ENDIAN

    def __init__(
        self,
        data: bytes,
        *,
        config: DecoderConfig | None = None,
        logger: ClasspyLogger | None = None,
    ) -> None:
        self._data: bytes = bytes(data)
        self._config: DecoderConfig = config or DecoderConfig()
        self._cursor: ByteCursor = ByteCursor(
            self._data, byte_order=self._detect_byte_order(self._data)
        )
        self._logger: ClasspyLogger = logger or ClasspyLogger(
            f"decoder.{type(self).__name__}", console_output=False
        )

    def decode(self) -> Component:
        raise NotImplementedError

    @classmethod
    def _detect_byte_order(cls, data: bytes) -> str:
        """Pick the cursor byte order, possibly by peeking at the header."""
        return cls.byte_order

    # ------------------------------------------------------------------ #
    #  Leaf fields
    # ------------------------------------------------------------------ #

    def _field(
        self,
        name: str,
        read: Callable[[], Any],
        fmt: Formatter | None = None,
    ) -> Component:
        """Read one scalar with *read* and wrap it in a leaf component."""
        start = self._cursor.position
        value = read()
        desc: Description = fmt(value) if fmt is not None else str(value)
        return Component(
            name, start, self._cursor.position - start,
            description=desc, value=value,
        )

    def _u1(self, name: str, fmt: Formatter | None = None) -> Component:
        return self._field(name, self._cursor.read_u1, fmt)

    def _u2(self, name: str, fmt: Formatter | None = None) -> Component:
        return self._field(name, self._cursor.read_u2, fmt)

    def _u4(self, name: str, fmt: Formatter | None = None) -> Component:
        return self._field(name, self._cursor.read_u4, fmt)

    def _s1(self, name: str, fmt: Formatter | None = None) -> Component:
        return self._field(name, self._cursor.read_s1, fmt)

    def _s2(self, name: str, fmt: Formatter | None = None) -> Component:
        return self._field(name, self._cursor.read_s2, fmt)

    def _s4(self, name: str, fmt: Formatter | None = None) -> Component:
        return self._field(name, self._cursor.read_s4, fmt)

    def _raw(self, name: str, n: int, fmt: Formatter | None = None) -> Component:
        return self._field(
            name, lambda: self._cursor.read_bytes(n), fmt or hex_preview
        )

    # ------------------------------------------------------------------ #
    #  Compound nodes
    # ------------------------------------------------------------------ #

    def _node(
        self,
        name: str,
        start: int,
        children: list[Component],
        description: Description = "",
    ) -> Component:
        """Close a compound node spanning ``start`` .. current position."""
        return Component(
            name, start, self._cursor.position - start,
            children=children, description=description,
        )

    def _table(
        self,
        name: str,
        count: int,
        read_item: Callable[[int], Component],
        description: Description | None = None,
    ) -> Component:
        """Read *count* items sequentially into a node called *name*."""
        start = self._cursor.position
        items = [read_item(i) for i in range(count)]
        return self._node(
            name, start, items,
            str(count) if description is None else description,
        )


def hex_preview(raw: bytes, limit: int = 16) -> str:
    """Render bytes as space-separated hex, truncated after *limit*."""
    text = raw[:limit].hex(" ")
    if len(raw) > limit:
        text += f" ... ({len(raw)} bytes)"
    return text


def cut(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, appending an ellipsis."""
    if limit > 0 and len(text) > limit:
        return text[:limit] + "..."
    return text
