from __future__ import annotations

import pytest

from shared.config import DecoderConfig

from classpy.core.errors import (
    InvalidConstantReference,
    InvalidSignature,
    MalformedStructure,
    NestingTooDeep,
    UnexpectedEndOfBuffer,
    UnsupportedConstantTag,
    UnsupportedOpcode,
)
from classpy.parsers.lua_opcodes import LUA_OPCODES, MAXARG_SBX, decode_fields, decode_rk
from classpy.parsers.luac import decode_luac

from builders import (
    OP_ADD,
    OP_CLOSURE,
    OP_JMP,
    OP_LOADK,
    OP_MOVE,
    OP_RETURN,
    LuaWriter,
    hello_lua,
    iabc,
    iabx,
    iasbx,
    lua_chunk,
)

RETURN_0_1 = iabc(OP_RETURN, 0, 1, 0)


def _main(data: bytes):
    return decode_luac(data)["main"]


def _insns(data: bytes):
    # first child of "code" is sizecode
    return list(_main(data)["code"])[1:]


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def test_sbx_bias() -> None:
    assert decode_fields(iabx(OP_JMP, 0, MAXARG_SBX)).sbx == 0
    assert decode_fields(iabx(OP_JMP, 0, 0)).sbx == -0x1FFFF
    assert decode_fields(iasbx(OP_JMP, 0, -3)).sbx == -3


def test_abc_fields() -> None:
    fields = decode_fields(iabc(OP_ADD, 7, 0x105, 0x1FF))
    assert (fields.opcode, fields.a, fields.b, fields.c) == (OP_ADD, 7, 0x105, 0x1FF)


def test_rk_decoding() -> None:
    assert decode_rk(0x105) == (True, 5)
    assert decode_rk(0x05) == (False, 5)


def test_opcode_table() -> None:
    assert len(LUA_OPCODES) == 47
    assert LUA_OPCODES[OP_RETURN].name == "RETURN"
    assert LUA_OPCODES[-1].name == "EXTRAARG"


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------

def test_hello_chunk() -> None:
    data = hello_lua()
    root = decode_luac(data)
    assert root.name == "luac_file"
    assert root.byte_range == (0, len(data))
    assert root["header"].length == 33
    main = root["main"]
    assert main.description == "main <@test.lua:0>"
    insns = _insns(data)
    assert [i.name for i in insns] == ["GETTABUP", "LOADK", "CALL", "RETURN"]
    assert insns[0].description == "[0] GETTABUP 0 0 -1"
    assert insns[0]["UpValue[B]"].description == "UpValue[0] => _ENV"
    assert insns[0]["RK(C)"].description == 'Kst(0) => "print"'
    assert insns[1]["Kst(Bx)"].description == 'Kst(1) => "hello"'


def test_big_endian_chunk() -> None:
    insns = _insns(hello_lua(big_endian=True))
    assert insns[1]["Kst(Bx)"].description == 'Kst(1) => "hello"'


def test_code_range_and_operand_views() -> None:
    data = hello_lua()
    code = _main(data)["code"]
    assert code.length == 4 + 4 * 4
    for pc, insn in enumerate(list(code)[1:]):
        assert insn.length == 4
        assert insn.offset == code.offset + 4 + 4 * pc
        raw = insn[0]
        assert raw.name == "instruction"
        assert raw.byte_range == insn.byte_range
        assert insn[1].name == "semantics"
        for view in list(insn)[1:]:
            assert view.offset == insn.offset
            assert view.length == 0


def test_rk_constant_operand() -> None:
    data = lua_chunk(
        [iabc(OP_ADD, 0, 0x105, 1), RETURN_0_1],
        constants=[0, 1, 2, 3, 4, "five"],
    )
    add = _insns(data)[0]
    assert add["RK(B)"].description == 'Kst(5) => "five"'
    assert add["RK(C)"].description == "R(1) => R(1)"
    assert add.description == "[0] ADD 0 -6 1"
    assert add["semantics"].description == "R(A) := RK(B) + RK(C)"


@pytest.mark.parametrize("a, b, regs", [
    (2, 4, ["R(2)", "R(3)", "R(4)"]),
    (0, 1, []),
    (0, 0, []),
])
def test_return_registers(a: int, b: int, regs: list[str]) -> None:
    ret = _insns(lua_chunk([iabc(OP_RETURN, a, b, 0)]))[0]
    names = [c.name for c in ret]
    assert names == ["instruction", "semantics", "A", "B", *regs]


def test_jump_target() -> None:
    insns = _insns(lua_chunk([iasbx(OP_JMP, 0, 1), RETURN_0_1, RETURN_0_1]))
    assert insns[0]["sBx"].description == "+1 => pc 2"
    zero = _insns(lua_chunk([iabx(OP_JMP, 0, MAXARG_SBX), RETURN_0_1]))[0]
    assert zero["sBx"].description == "+0 => pc 1"


def test_local_variable_names() -> None:
    data = lua_chunk(
        [iabc(OP_MOVE, 1, 0, 0), RETURN_0_1],
        locvars=[("x", 0, 2)],
        maxstack=2,
    )
    move = _insns(data)[0]
    assert move["R(B)"].description == "R(0) => x"
    assert move["R(A)"].description == "R(1) => R(1)"


def test_constant_types() -> None:
    data = lua_chunk([RETURN_0_1], constants=[None, True, 2.0, -7, "s"])
    consts = _main(data)["constants"]
    assert [c.description for c in consts] == ["nil", "true", "2.0", "-7", '"s"']


def test_nested_prototypes() -> None:
    writer = LuaWriter()
    inner = writer.proto([RETURN_0_1], source=None, line_defined=3)
    main = writer.proto([iabx(OP_CLOSURE, 0, 0), RETURN_0_1], protos=[inner])
    data = writer.chunk(main)
    root = decode_luac(data)
    child = root["main"]["protos"][0]
    assert child.name == "protos[0]"
    assert child.description == "function <@test.lua:3>"
    closure = _insns(data)[0]
    assert closure["KPROTO[Bx]"].description == "KPROTO[0] => function <@test.lua:3>"


def test_nesting_limit() -> None:
    writer = LuaWriter()
    proto = writer.proto([RETURN_0_1])
    for _ in range(3):
        proto = writer.proto([RETURN_0_1], protos=[proto])
    data = writer.chunk(proto)
    decode_luac(data, config=DecoderConfig(max_nesting_depth=3))
    with pytest.raises(NestingTooDeep):
        decode_luac(data, config=DecoderConfig(max_nesting_depth=2))


def test_constant_index_out_of_range() -> None:
    with pytest.raises(InvalidConstantReference):
        decode_luac(lua_chunk([iabx(OP_LOADK, 0, 3), RETURN_0_1], constants=[1]))


def test_upvalue_index_out_of_range() -> None:
    with pytest.raises(InvalidConstantReference):
        decode_luac(lua_chunk([iabc(5, 0, 1, 0), RETURN_0_1], upvalues=[(1, 0)]))


def test_unknown_opcode() -> None:
    with pytest.raises(UnsupportedOpcode):
        decode_luac(lua_chunk([50]))


def test_unknown_constant_type() -> None:
    writer = LuaWriter()
    main = bytearray(writer.proto([RETURN_0_1], constants=[None]))
    # source, two line ints, three flag bytes, sizecode, one word, sizek
    pos = len(writer.string("@test.lua")) + 4 + 4 + 3 + 4 + 4 + 4
    assert main[pos] == 0x00
    main[pos] = 0x07
    with pytest.raises(UnsupportedConstantTag):
        decode_luac(writer.chunk(bytes(main)))


def test_bad_signature_and_version() -> None:
    data = bytearray(hello_lua())
    data[4] = 0x51
    with pytest.raises(InvalidSignature):
        decode_luac(bytes(data))
    with pytest.raises(InvalidSignature):
        decode_luac(b"\x7fELF" + bytes(40))


def test_header_checks() -> None:
    data = bytearray(hello_lua())
    data[14] = 8  # instruction size
    with pytest.raises(MalformedStructure):
        decode_luac(bytes(data))


def test_truncated_chunk() -> None:
    data = hello_lua()
    for n in (0, 10, 33, len(data) - 1):
        with pytest.raises(UnexpectedEndOfBuffer):
            decode_luac(data[:n])
