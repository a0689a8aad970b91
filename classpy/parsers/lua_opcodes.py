"""
Lua 5.3 Instruction Set
========================

Opcode metadata and field extraction for Lua 5.3 virtual-machine
instructions.  Every instruction is one 32-bit word::

    31       23       14        6     0
    +--------+--------+---------+-----+
    | B (9)  | C (9)  |  A (8)  | op  |   iABC
    |     Bx (18)     |  A (8)  | op  |   iABx
    |    sBx (18)     |  A (8)  | op  |   iAsBx
    |          Ax (26)          | op  |   iAx
    +--------+--------+---------+-----+

``sBx`` is stored with a bias of ``MAXARG_sBx`` (``2^17 - 1``).  ``RK``
operands use the ninth bit to select the constant table: values above
``0xFF`` denote constant ``v & 0xFF``, the rest denote a register.

References:
    - Ierusalimschy, R. et al. Lua 5.3 source, ``lopcodes.h`` and
      ``lopcodes.c``.
    - Man, K.-H. (2006). A No-Frills Introduction to Lua 5.1 VM
      Instructions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import NamedTuple


# ---------------------------------------------------------------------------
# Field layout
# ---------------------------------------------------------------------------

SIZE_OP: int = 6
SIZE_A: int = 8
SIZE_B: int = 9
SIZE_C: int = 9
SIZE_BX: int = SIZE_B + SIZE_C
SIZE_AX: int = SIZE_A + SIZE_BX

POS_A: int = SIZE_OP
POS_C: int = POS_A + SIZE_A
POS_B: int = POS_C + SIZE_C
POS_BX: int = POS_C
POS_AX: int = POS_A

MAXARG_BX: int = (1 << SIZE_BX) - 1
MAXARG_SBX: int = MAXARG_BX >> 1  # 0x1FFFF

# RK constant marker (bit 8 of a 9-bit B/C operand)
BITRK: int = 1 << (SIZE_B - 1)


class OpMode(enum.Enum):
    IABC = "iABC"
    IABX = "iABx"
    IASBX = "iAsBx"
    IAX = "iAx"


class Operand(enum.Enum):
    """Meaning of an instruction field."""
    UNUSED = "N"
    REG = "R"
    RK = "RK"
    KST = "Kst"
    UPVAL = "UpValue"
    PROTO = "KPROTO"
    JUMP = "sBx"
    INT = "U"


class LuaFields(NamedTuple):
    """Every field view of one instruction word."""
    opcode: int
    a: int
    b: int
    c: int
    bx: int
    sbx: int
    ax: int


def decode_fields(word: int) -> LuaFields:
    """Split a 32-bit instruction word into all of its field views.

    Args:
        word: Unsigned 32-bit instruction.

    Returns:
        The opcode and the A, B, C, Bx, sBx and Ax interpretations.
    """
    bx = (word >> POS_BX) & MAXARG_BX
    return LuaFields(
        opcode=word & ((1 << SIZE_OP) - 1),
        a=(word >> POS_A) & ((1 << SIZE_A) - 1),
        b=(word >> POS_B) & ((1 << SIZE_B) - 1),
        c=(word >> POS_C) & ((1 << SIZE_C) - 1),
        bx=bx,
        sbx=bx - MAXARG_SBX,
        ax=(word >> POS_AX) & ((1 << SIZE_AX) - 1),
    )


def decode_rk(value: int) -> tuple[bool, int]:
    """Decode an RK operand.

    Returns:
        ``(True, constant_index)`` when the constant bit is set, otherwise
        ``(False, register)``.
    """
    if value & BITRK:
        return True, value & 0xFF
    return False, value


# ---------------------------------------------------------------------------
# Opcode table
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LuaOpcode:
    """Static description of one opcode.

    ``b`` is the role of B, Bx or sBx depending on ``mode``; ``a`` is the
    role of Ax for :attr:`OpMode.IAX`.
    """
    name: str
    mode: OpMode
    a: Operand
    b: Operand
    c: Operand
    pseudo: str


_N, _R, _RK, _K, _U, _P, _J, _I = (
    Operand.UNUSED, Operand.REG, Operand.RK, Operand.KST,
    Operand.UPVAL, Operand.PROTO, Operand.JUMP, Operand.INT,
)
_ABC, _ABX, _ASBX, _AX = OpMode.IABC, OpMode.IABX, OpMode.IASBX, OpMode.IAX


def _binop(name: str, symbol: str) -> LuaOpcode:
    return LuaOpcode(name, _ABC, _R, _RK, _RK, f"R(A) := RK(B) {symbol} RK(C)")


LUA_OPCODES: tuple[LuaOpcode, ...] = (
    LuaOpcode("MOVE", _ABC, _R, _R, _N, "R(A) := R(B)"),
    LuaOpcode("LOADK", _ABX, _R, _K, _N, "R(A) := Kst(Bx)"),
    LuaOpcode("LOADKX", _ABX, _R, _N, _N, "R(A) := Kst(extra arg)"),
    LuaOpcode("LOADBOOL", _ABC, _R, _I, _I, "R(A) := (Bool)B; if (C) pc++"),
    LuaOpcode("LOADNIL", _ABC, _R, _I, _N, "R(A), R(A+1), ..., R(A+B) := nil"),
    LuaOpcode("GETUPVAL", _ABC, _R, _U, _N, "R(A) := UpValue[B]"),
    LuaOpcode("GETTABUP", _ABC, _R, _U, _RK, "R(A) := UpValue[B][RK(C)]"),
    LuaOpcode("GETTABLE", _ABC, _R, _R, _RK, "R(A) := R(B)[RK(C)]"),
    LuaOpcode("SETTABUP", _ABC, _U, _RK, _RK, "UpValue[A][RK(B)] := RK(C)"),
    LuaOpcode("SETUPVAL", _ABC, _R, _U, _N, "UpValue[B] := R(A)"),
    LuaOpcode("SETTABLE", _ABC, _R, _RK, _RK, "R(A)[RK(B)] := RK(C)"),
    LuaOpcode("NEWTABLE", _ABC, _R, _I, _I, "R(A) := {} (size = B,C)"),
    LuaOpcode("SELF", _ABC, _R, _R, _RK, "R(A+1) := R(B); R(A) := R(B)[RK(C)]"),
    _binop("ADD", "+"),
    _binop("SUB", "-"),
    _binop("MUL", "*"),
    _binop("MOD", "%"),
    _binop("POW", "^"),
    _binop("DIV", "/"),
    _binop("IDIV", "//"),
    _binop("BAND", "&"),
    _binop("BOR", "|"),
    _binop("BXOR", "~"),
    _binop("SHL", "<<"),
    _binop("SHR", ">>"),
    LuaOpcode("UNM", _ABC, _R, _R, _N, "R(A) := -R(B)"),
    LuaOpcode("BNOT", _ABC, _R, _R, _N, "R(A) := ~R(B)"),
    LuaOpcode("NOT", _ABC, _R, _R, _N, "R(A) := not R(B)"),
    LuaOpcode("LEN", _ABC, _R, _R, _N, "R(A) := length of R(B)"),
    LuaOpcode("CONCAT", _ABC, _R, _R, _R, "R(A) := R(B).. ... ..R(C)"),
    LuaOpcode("JMP", _ASBX, _I, _J, _N, "pc+=sBx; if (A) close all upvalues >= R(A - 1)"),
    LuaOpcode("EQ", _ABC, _I, _RK, _RK, "if ((RK(B) == RK(C)) ~= A) then pc++"),
    LuaOpcode("LT", _ABC, _I, _RK, _RK, "if ((RK(B) <  RK(C)) ~= A) then pc++"),
    LuaOpcode("LE", _ABC, _I, _RK, _RK, "if ((RK(B) <= RK(C)) ~= A) then pc++"),
    LuaOpcode("TEST", _ABC, _R, _N, _I, "if not (R(A) <=> C) then pc++"),
    LuaOpcode("TESTSET", _ABC, _R, _R, _I, "if (R(B) <=> C) then R(A) := R(B) else pc++"),
    LuaOpcode("CALL", _ABC, _R, _I, _I, "R(A), ... ,R(A+C-2) := R(A)(R(A+1), ... ,R(A+B-1))"),
    LuaOpcode("TAILCALL", _ABC, _R, _I, _I, "return R(A)(R(A+1), ... ,R(A+B-1))"),
    LuaOpcode("RETURN", _ABC, _R, _I, _N, "return R(A), ... ,R(A+B-2)"),
    LuaOpcode("FORLOOP", _ASBX, _R, _J, _N, "R(A)+=R(A+2); if R(A) <?= R(A+1) then { pc+=sBx; R(A+3)=R(A) }"),
    LuaOpcode("FORPREP", _ASBX, _R, _J, _N, "R(A)-=R(A+2); pc+=sBx"),
    LuaOpcode("TFORCALL", _ABC, _R, _N, _I, "R(A+3), ... ,R(A+2+C) := R(A)(R(A+1), R(A+2))"),
    LuaOpcode("TFORLOOP", _ASBX, _R, _J, _N, "if R(A+1) ~= nil then { R(A)=R(A+1); pc += sBx }"),
    LuaOpcode("SETLIST", _ABC, _R, _I, _I, "R(A)[(C-1)*FPF+i] := R(A+i), 1 <= i <= B"),
    LuaOpcode("CLOSURE", _ABX, _R, _P, _N, "R(A) := closure(KPROTO[Bx])"),
    LuaOpcode("VARARG", _ABC, _R, _I, _N, "R(A), R(A+1), ..., R(A+B-2) = vararg"),
    LuaOpcode("EXTRAARG", _AX, _I, _N, _N, "extra (larger) argument for previous opcode"),
)

#: Numeric value of ``OP_RETURN``.
OP_RETURN: int = next(i for i, op in enumerate(LUA_OPCODES) if op.name == "RETURN")
