from __future__ import annotations

import struct

import pytest

from classpy.core.errors import (
    InvalidConstantReference,
    MalformedStructure,
    TruncatedCode,
    UnsupportedOpcode,
)
from classpy.parsers.bytecode import OPCODES, OperandShape
from classpy.parsers.classfile import decode_class

from builders import ClassBuilder, class_with_code


def _code(data: bytes):
    return decode_class(data)["methods"]["run"]["attributes"]["Code"]["code"]


def _tableswitch(lead: bytes) -> bytes:
    pad = (4 - (len(lead) + 1) % 4) % 4
    return (
        lead + b"\xaa" + bytes(pad)
        + struct.pack(">iii", 20, 0, 1)
        + struct.pack(">ii", 12, 16)
    )


@pytest.mark.parametrize("lead, padding", [
    (b"", 3),
    (b"\x00", 2),
    (b"\x00\x00", 1),
    (b"\x00\x00\x00", 0),
])
def test_tableswitch_padding(lead: bytes, padding: int) -> None:
    code = _tableswitch(lead) + b"\xb1"
    insns = _code(class_with_code(code))
    switch = insns[len(lead)]
    assert switch.name == "tableswitch"
    names = [c.name for c in switch]
    if padding:
        assert switch["padding"].length == padding
    else:
        assert "padding" not in names
    assert switch.length == 1 + padding + 12 + 8
    assert sum(i.length for i in insns) == len(code)
    pc = len(lead)
    assert switch["jump_offsets"][0].description == f"{pc + 12} (+12)"
    assert switch.description.startswith(f"{pc}: tableswitch {pc + 20} (+20), 0, 1")


def test_lookupswitch() -> None:
    code = b"\xab" + bytes(3) + struct.pack(">ii", 20, 2) + struct.pack(">iiii", -1, 8, 5, 12) + b"\xb1"
    insns = _code(class_with_code(code))
    pairs = insns[0]["match_offset_pairs"]
    assert [p.description for p in pairs] == ["-1: 8 (+8)", "5: 12 (+12)"]


def test_lookupswitch_negative_npairs() -> None:
    code = b"\xab" + bytes(3) + struct.pack(">ii", 0, -1)
    with pytest.raises(MalformedStructure):
        decode_class(class_with_code(code))


def test_tableswitch_high_below_low() -> None:
    code = b"\xaa" + bytes(3) + struct.pack(">iii", 0, 5, 4)
    with pytest.raises(MalformedStructure):
        decode_class(class_with_code(code))


def test_branch_targets() -> None:
    code = b"\x00" + b"\xa7" + struct.pack(">h", -1) + b"\xb1"
    goto = _code(class_with_code(code))[1]
    assert goto.description == "1: goto 0 (-1)"


def test_wide_iinc_and_load() -> None:
    code = b"\xc4\x84" + struct.pack(">Hh", 300, -2) + b"\xc4\x15" + struct.pack(">H", 256) + b"\xb1"
    insns = _code(class_with_code(code))
    assert [i.length for i in insns] == [6, 4, 1]
    assert insns[0]["const"].value == -2
    assert insns[1]["index"].value == 256


def test_wide_rejects_other_opcodes() -> None:
    with pytest.raises(UnsupportedOpcode):
        decode_class(class_with_code(b"\xc4\x00\x00\x00"))


def test_unknown_opcode() -> None:
    with pytest.raises(UnsupportedOpcode) as info:
        decode_class(class_with_code(b"\x00\xe0"))
    assert info.value.actual == "0xe0"


def test_instruction_past_code_length() -> None:
    # sipush needs two operand bytes, only one is inside the code
    with pytest.raises(TruncatedCode):
        decode_class(class_with_code(b"\x11\x00"))


def test_ldc_and_field_access() -> None:
    cb = ClassBuilder()
    text = cb.string("hi")
    out = cb.fieldref("java/lang/System", "out", "Ljava/io/PrintStream;")
    code = b"\xb2" + struct.pack(">H", out) + b"\x12" + bytes([text]) + b"\x57\x57\xb1"
    insns = _code(class_with_code(code, cb))
    assert insns[0].description.endswith(
        "-> java/lang/System.out:Ljava/io/PrintStream;"
    )
    assert insns[1].description == f"3: ldc #{text} -> hi"


def test_pool_operand_kind_is_checked() -> None:
    cb = ClassBuilder()
    text = cb.string("not a method")
    code = b"\xb8" + struct.pack(">H", text) + b"\xb1"
    with pytest.raises(InvalidConstantReference):
        decode_class(class_with_code(code, cb))


def test_newarray_and_invokeinterface() -> None:
    cb = ClassBuilder()
    cls = cb.class_("java/lang/Runnable")
    nat = cb.name_and_type("run", "()V")
    iref = cb.raw_entry(struct.pack(">BHH", 11, cls, nat))
    code = b"\x04\xbc\x0a" + b"\xb9" + struct.pack(">HBB", iref, 1, 0) + b"\xb1"
    insns = _code(class_with_code(code, cb))
    assert insns[1]["atype"].description == "int"
    assert [c.name for c in insns[2]] == ["opcode", "index", "count", "zero"]
    assert insns[2].length == 5


def test_opcode_table_covers_standard_range() -> None:
    for op in range(0x00, 0xCB):
        assert op in OPCODES
    assert OPCODES[0xAA] == ("tableswitch", OperandShape.TABLESWITCH)
    assert OPCODES[0xFF][0] == "impdep2"
