"""
Byte Cursor
============

Sequential, position-tracked reader over an immutable byte buffer.

A cursor is owned by exactly one decode invocation.  Every read advances
the position by the exact width consumed and fails with
:class:`UnexpectedEndOfBuffer` when fewer bytes remain than requested, so a
corrupt length field can never cause unbounded consumption.

The only ways to move other than forward are :meth:`ByteCursor.detour`,
which saves the position, jumps to an absolute offset and restores the
position on exit, and :meth:`ByteCursor.bounded`, which narrows the readable
window for a length-prefixed sub-region.
"""

from __future__ import annotations

import struct
from contextlib import contextmanager
from typing import Iterator

from classpy.core.errors import DecodeError, UnexpectedEndOfBuffer

BIG_ENDIAN: str = ">"
LITTLE_ENDIAN: str = "<"

# ULEB128 values in dex files never exceed 32 bits (5 encoded bytes)
_ULEB128_MAX_BYTES: int = 5


class ByteCursor:
    """Bounds-checked reader with a fixed byte order.

    Usage::

        cursor = ByteCursor(data, byte_order=BIG_ENDIAN)
        magic = cursor.read_u4()
        with cursor.detour(0x70):
            first_string_off = cursor.read_u4()
    """

    __slots__ = ("_data", "_pos", "_end", "_order", "_structs")

    def __init__(self, data: bytes, *, byte_order: str = BIG_ENDIAN) -> None:
        if byte_order not in (BIG_ENDIAN, LITTLE_ENDIAN):
            raise ValueError(f"Unknown byte order: {byte_order!r}")
        self._data: bytes = bytes(data)
        self._pos: int = 0
        self._end: int = len(self._data)
        self._order: str = byte_order
        self._structs: dict[str, struct.Struct] = {
            code: struct.Struct(byte_order + code)
            for code in ("B", "H", "I", "Q", "b", "h", "i", "q", "f", "d")
        }

    # ------------------------------------------------------------------ #
    #  State
    # ------------------------------------------------------------------ #

    @property
    def position(self) -> int:
        """Absolute offset of the next byte to be read."""
        return self._pos

    @property
    def remaining(self) -> int:
        """Bytes left before the end of the current readable window."""
        return self._end - self._pos

    @property
    def byte_order(self) -> str:
        return self._order

    @property
    def size(self) -> int:
        """Length of the whole underlying buffer."""
        return len(self._data)

    # ------------------------------------------------------------------ #
    #  Primitive reads
    # ------------------------------------------------------------------ #

    def _take(self, width: int) -> int:
        if width < 0:
            raise DecodeError(
                "Negative read length", offset=self._pos, actual=width
            )
        if width > self.remaining:
            raise UnexpectedEndOfBuffer(
                "Unexpected end of buffer",
                offset=self._pos,
                expected=f"{width} bytes",
                actual=f"{self.remaining} bytes",
            )
        start = self._pos
        self._pos += width
        return start

    def _unpack(self, code: str) -> int | float:
        fmt = self._structs[code]
        start = self._take(fmt.size)
        return fmt.unpack_from(self._data, start)[0]

    def read_bytes(self, n: int) -> bytes:
        start = self._take(n)
        return self._data[start:start + n]

    def read_u1(self) -> int:
        return self._data[self._take(1)]

    def read_u2(self) -> int:
        return self._unpack("H")  # type: ignore[return-value]

    def read_u4(self) -> int:
        return self._unpack("I")  # type: ignore[return-value]

    def read_u8(self) -> int:
        return self._unpack("Q")  # type: ignore[return-value]

    def read_s1(self) -> int:
        return self._unpack("b")  # type: ignore[return-value]

    def read_s2(self) -> int:
        return self._unpack("h")  # type: ignore[return-value]

    def read_s4(self) -> int:
        return self._unpack("i")  # type: ignore[return-value]

    def read_s8(self) -> int:
        return self._unpack("q")  # type: ignore[return-value]

    def read_f4(self) -> float:
        return self._unpack("f")  # type: ignore[return-value]

    def read_f8(self) -> float:
        return self._unpack("d")  # type: ignore[return-value]

    def read_uint(self, width: int) -> int:
        """Read an unsigned integer of 1, 2, 4 or 8 bytes."""
        readers = {1: self.read_u1, 2: self.read_u2, 4: self.read_u4, 8: self.read_u8}
        try:
            return readers[width]()
        except KeyError:
            raise DecodeError(
                "Unsupported integer width", offset=self._pos,
                expected="1, 2, 4 or 8", actual=width,
            ) from None

    def read_sint(self, width: int) -> int:
        """Read a two's-complement integer of 1, 2, 4 or 8 bytes."""
        readers = {1: self.read_s1, 2: self.read_s2, 4: self.read_s4, 8: self.read_s8}
        try:
            return readers[width]()
        except KeyError:
            raise DecodeError(
                "Unsupported integer width", offset=self._pos,
                expected="1, 2, 4 or 8", actual=width,
            ) from None

    def read_float(self, width: int) -> float:
        """Read an IEEE-754 float of 4 or 8 bytes."""
        if width == 4:
            return self.read_f4()
        if width == 8:
            return self.read_f8()
        raise DecodeError(
            "Unsupported float width", offset=self._pos,
            expected="4 or 8", actual=width,
        )

    def read_uleb128(self) -> int:
        """Read an unsigned LEB128 value (dex ``uleb128``)."""
        start = self._pos
        result = 0
        for i in range(_ULEB128_MAX_BYTES):
            byte = self.read_u1()
            result |= (byte & 0x7F) << (7 * i)
            if not byte & 0x80:
                return result
        raise DecodeError(
            "ULEB128 value longer than 5 bytes", offset=start
        )

    # ------------------------------------------------------------------ #
    #  Position save / restore
    # ------------------------------------------------------------------ #

    @contextmanager
    def detour(self, offset: int) -> Iterator[ByteCursor]:
        """Read from an absolute *offset*, then restore the position.

        The readable window is reset to the whole buffer for the duration
        of the detour.
        """
        if not 0 <= offset <= len(self._data):
            raise UnexpectedEndOfBuffer(
                "Offset outside buffer",
                offset=self._pos,
                expected=f"0..{len(self._data)}",
                actual=offset,
            )
        saved_pos, saved_end = self._pos, self._end
        self._pos, self._end = offset, len(self._data)
        try:
            yield self
        finally:
            self._pos, self._end = saved_pos, saved_end

    @contextmanager
    def bounded(self, length: int) -> Iterator[ByteCursor]:
        """Restrict reads to the next *length* bytes.

        Reads past the window raise :class:`UnexpectedEndOfBuffer`.  The
        caller decides what to do with bytes left unread in the window.
        """
        if length > self.remaining:
            raise UnexpectedEndOfBuffer(
                "Declared length exceeds buffer",
                offset=self._pos,
                expected=f"{length} bytes",
                actual=f"{self.remaining} bytes",
            )
        saved_end = self._end
        self._end = self._pos + length
        try:
            yield self
        finally:
            self._end = saved_end
