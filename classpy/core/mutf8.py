"""
Modified UTF-8
===============

Decoder for the "modified UTF-8" encoding used by class-file ``Utf8``
constants and dex ``string_data_item`` payloads.

It differs from standard UTF-8 in two ways:

* U+0000 is written as the two bytes ``C0 80``, never as a raw zero byte.
* Characters outside the Basic Multilingual Plane are written as a UTF-16
  surrogate pair, each half encoded as its own 3-byte sequence, instead of
  one 4-byte sequence.

A strict UTF-8 codec rejects both forms, so the bytes are decoded to
UTF-16 code units here and the surrogate pairs are recombined afterwards.
"""

from __future__ import annotations

from classpy.core.errors import MalformedStructure


def decode_mutf8(raw: bytes, *, offset: int | None = None) -> str:
    """Decode *raw* modified UTF-8 bytes.

    Args:
        raw: Encoded bytes (without any length prefix or terminator).
        offset: Buffer offset of ``raw[0]``, used in error messages.

    Returns:
        The decoded string.  Unpaired surrogates are kept as-is.

    Raises:
        MalformedStructure: Invalid lead byte, missing or invalid
            continuation byte.
    """
    units: list[int] = []
    i = 0
    n = len(raw)
    while i < n:
        b = raw[i]
        if b < 0x80:
            units.append(b)
            i += 1
        elif b & 0xE0 == 0xC0:
            b2 = _continuation(raw, i, 1, offset)
            units.append(((b & 0x1F) << 6) | (b2 & 0x3F))
            i += 2
        elif b & 0xF0 == 0xE0:
            b2 = _continuation(raw, i, 1, offset)
            b3 = _continuation(raw, i, 2, offset)
            units.append(((b & 0x0F) << 12) | ((b2 & 0x3F) << 6) | (b3 & 0x3F))
            i += 3
        else:
            raise MalformedStructure(
                "Invalid modified UTF-8 lead byte",
                offset=None if offset is None else offset + i,
                actual=f"0x{b:02x}",
            )
    text = "".join(map(chr, units))
    # Recombine surrogate pairs into supplementary characters.
    return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")


def _continuation(raw: bytes, lead: int, k: int, offset: int | None) -> int:
    pos = lead + k
    if pos >= len(raw) or raw[pos] & 0xC0 != 0x80:
        raise MalformedStructure(
            "Invalid modified UTF-8 continuation byte",
            offset=None if offset is None else offset + pos,
            actual="end of data" if pos >= len(raw) else f"0x{raw[pos]:02x}",
        )
    return raw[pos]
