from __future__ import annotations

import pytest

from classpy.core.cursor import BIG_ENDIAN, LITTLE_ENDIAN, ByteCursor
from classpy.core.errors import DecodeError, UnexpectedEndOfBuffer


def test_reads_advance_by_width() -> None:
    cursor = ByteCursor(bytes.fromhex("01 0203 04050607 ff"))
    assert cursor.read_u1() == 1
    assert cursor.read_u2() == 0x0203
    assert cursor.read_u4() == 0x04050607
    assert cursor.position == 7
    assert cursor.read_s1() == -1
    assert cursor.remaining == 0


def test_little_endian() -> None:
    cursor = ByteCursor(bytes.fromhex("3412 78563412"), byte_order=LITTLE_ENDIAN)
    assert cursor.read_u2() == 0x1234
    assert cursor.read_u4() == 0x12345678


def test_read_past_end_raises_with_details() -> None:
    cursor = ByteCursor(b"\x00\x01\x02")
    cursor.read_u2()
    with pytest.raises(UnexpectedEndOfBuffer) as info:
        cursor.read_u4()
    assert info.value.offset == 2
    assert info.value.expected == "4 bytes"
    assert info.value.actual == "1 bytes"
    # position is unchanged by a failed read
    assert cursor.position == 2


def test_empty_buffer() -> None:
    with pytest.raises(UnexpectedEndOfBuffer):
        ByteCursor(b"").read_u1()


def test_detour_restores_position() -> None:
    cursor = ByteCursor(bytes(range(16)))
    cursor.read_u2()
    with cursor.detour(10):
        assert cursor.read_u1() == 10
        assert cursor.position == 11
    assert cursor.position == 2


def test_detour_outside_buffer() -> None:
    cursor = ByteCursor(b"\x00" * 4)
    with pytest.raises(UnexpectedEndOfBuffer):
        with cursor.detour(5):
            pass


def test_bounded_window() -> None:
    cursor = ByteCursor(bytes(8))
    with cursor.bounded(3):
        assert cursor.remaining == 3
        cursor.read_u2()
        with pytest.raises(UnexpectedEndOfBuffer):
            cursor.read_u2()
    assert cursor.remaining == 6


def test_bounded_longer_than_buffer() -> None:
    cursor = ByteCursor(bytes(4))
    with pytest.raises(UnexpectedEndOfBuffer):
        with cursor.bounded(5):
            pass


def test_uleb128() -> None:
    cursor = ByteCursor(bytes([0x00, 0x7F, 0x80, 0x7F, 0xE5, 0x8E, 0x26]))
    assert cursor.read_uleb128() == 0
    assert cursor.read_uleb128() == 127
    assert cursor.read_uleb128() == 16256
    assert cursor.read_uleb128() == 624485


def test_uleb128_too_long() -> None:
    with pytest.raises(DecodeError):
        ByteCursor(b"\x80" * 6).read_uleb128()


def test_signed_and_float_widths() -> None:
    cursor = ByteCursor(
        bytes.fromhex("ffff fffffffe 3ff0000000000000"), byte_order=BIG_ENDIAN
    )
    assert cursor.read_sint(2) == -1
    assert cursor.read_sint(4) == -2
    assert cursor.read_float(8) == 1.0
    with pytest.raises(DecodeError):
        cursor.read_uint(3)


def test_unknown_byte_order() -> None:
    with pytest.raises(ValueError):
        ByteCursor(b"", byte_order="!")
