from __future__ import annotations

import pytest

from classpy.core.errors import MalformedStructure
from classpy.core.mutf8 import decode_mutf8


def test_ascii() -> None:
    assert decode_mutf8(b"java/lang/Object") == "java/lang/Object"


def test_encoded_nul() -> None:
    assert decode_mutf8(b"a\xc0\x80b") == "a\x00b"


def test_two_and_three_byte_sequences() -> None:
    assert decode_mutf8("é€".encode("utf-8")) == "é€"


def test_surrogate_pair_is_recombined() -> None:
    assert decode_mutf8(b"\xed\xa0\xbd\xed\xb8\x80") == "\U0001F600"


def test_invalid_lead_byte() -> None:
    with pytest.raises(MalformedStructure) as info:
        decode_mutf8(b"ab\xff", offset=100)
    assert info.value.offset == 102


def test_missing_continuation() -> None:
    with pytest.raises(MalformedStructure):
        decode_mutf8(b"\xc3")
    with pytest.raises(MalformedStructure):
        decode_mutf8(b"\xe2\x82A")
