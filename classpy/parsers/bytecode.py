"""
JVM Bytecode Decoder
=====================

Opcode table and operand-shape dispatch for the ``code`` array of a class
file ``Code`` attribute.

Every opcode maps to one fixed :class:`OperandShape`; each shape has one
reader method.  Decoding is strictly sequential inside a window of exactly
``code_length`` bytes: an instruction that runs past the window raises
:class:`TruncatedCode`, and the loop stops only when the window is
exhausted, so instruction ranges always add up to the declared length.

References:
    - Lindholm, T. et al. (2014). The Java Virtual Machine Specification,
      Java SE 8 Edition. Chapter 6, The Java Virtual Machine Instruction Set.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Callable

from classpy.core.component import Component
from classpy.core.errors import (
    MalformedStructure,
    TruncatedCode,
    UnexpectedEndOfBuffer,
    UnsupportedOpcode,
)
from classpy.parsers.constant_pool import LOADABLE_TAGS, ConstantTag

if TYPE_CHECKING:
    from classpy.core.cursor import ByteCursor
    from classpy.parsers.constant_pool import ConstantPool


class OperandShape(enum.Enum):
    """Fixed operand layouts following the opcode byte."""
    NONE = "none"
    LOCAL = "u1 local index"
    BYTE = "s1 immediate"
    SHORT = "s2 immediate"
    CONST_U1 = "u1 pool index"
    CONST_U2 = "u2 pool index"
    IINC = "u1 index, s1 const"
    BRANCH2 = "s2 branch offset"
    BRANCH4 = "s4 branch offset"
    INVOKEINTERFACE = "u2 index, u1 count, u1 zero"
    INVOKEDYNAMIC = "u2 index, u2 zero"
    MULTIANEWARRAY = "u2 index, u1 dimensions"
    NEWARRAY = "u1 atype"
    TABLESWITCH = "tableswitch"
    LOOKUPSWITCH = "lookupswitch"
    WIDE = "wide"


def _build_opcode_table() -> dict[int, tuple[str, OperandShape]]:
    N = OperandShape.NONE
    table: dict[int, tuple[str, OperandShape]] = {}

    simple = (
        "nop aconst_null iconst_m1 iconst_0 iconst_1 iconst_2 iconst_3 "
        "iconst_4 iconst_5 lconst_0 lconst_1 fconst_0 fconst_1 fconst_2 "
        "dconst_0 dconst_1"
    ).split()
    for op, name in enumerate(simple):
        table[op] = (name, N)

    table[0x10] = ("bipush", OperandShape.BYTE)
    table[0x11] = ("sipush", OperandShape.SHORT)
    table[0x12] = ("ldc", OperandShape.CONST_U1)
    table[0x13] = ("ldc_w", OperandShape.CONST_U2)
    table[0x14] = ("ldc2_w", OperandShape.CONST_U2)

    prefixes = "ilfda"
    for i, p in enumerate(prefixes):
        table[0x15 + i] = (f"{p}load", OperandShape.LOCAL)
        table[0x36 + i] = (f"{p}store", OperandShape.LOCAL)
        for n in range(4):
            table[0x1A + i * 4 + n] = (f"{p}load_{n}", N)
            table[0x3B + i * 4 + n] = (f"{p}store_{n}", N)

    for i, p in enumerate("ilfdabcs"):
        table[0x2E + i] = (f"{p}aload", N)
        table[0x4F + i] = (f"{p}astore", N)

    stack_ops = "pop pop2 dup dup_x1 dup_x2 dup2 dup2_x1 dup2_x2 swap".split()
    for i, name in enumerate(stack_ops):
        table[0x57 + i] = (name, N)

    op = 0x60
    for arith in ("add", "sub", "mul", "div", "rem", "neg"):
        for p in "ilfd":
            table[op] = (f"{p}{arith}", N)
            op += 1
    for shift in ("shl", "shr", "ushr", "and", "or", "xor"):
        for p in "il":
            table[op] = (f"{p}{shift}", N)
            op += 1

    table[0x84] = ("iinc", OperandShape.IINC)

    conversions = "i2l i2f i2d l2i l2f l2d f2i f2l f2d d2i d2l d2f i2b i2c i2s".split()
    for i, name in enumerate(conversions):
        table[0x85 + i] = (name, N)
    for i, name in enumerate("lcmp fcmpl fcmpg dcmpl dcmpg".split()):
        table[0x94 + i] = (name, N)

    branches = (
        "ifeq ifne iflt ifge ifgt ifle if_icmpeq if_icmpne if_icmplt "
        "if_icmpge if_icmpgt if_icmple if_acmpeq if_acmpne goto jsr"
    ).split()
    for i, name in enumerate(branches):
        table[0x99 + i] = (name, OperandShape.BRANCH2)

    table[0xA9] = ("ret", OperandShape.LOCAL)
    table[0xAA] = ("tableswitch", OperandShape.TABLESWITCH)
    table[0xAB] = ("lookupswitch", OperandShape.LOOKUPSWITCH)
    for i, name in enumerate("ireturn lreturn freturn dreturn areturn return".split()):
        table[0xAC + i] = (name, N)

    members = (
        "getstatic putstatic getfield putfield "
        "invokevirtual invokespecial invokestatic"
    ).split()
    for i, name in enumerate(members):
        table[0xB2 + i] = (name, OperandShape.CONST_U2)
    table[0xB9] = ("invokeinterface", OperandShape.INVOKEINTERFACE)
    table[0xBA] = ("invokedynamic", OperandShape.INVOKEDYNAMIC)
    table[0xBB] = ("new", OperandShape.CONST_U2)
    table[0xBC] = ("newarray", OperandShape.NEWARRAY)
    table[0xBD] = ("anewarray", OperandShape.CONST_U2)
    table[0xBE] = ("arraylength", N)
    table[0xBF] = ("athrow", N)
    table[0xC0] = ("checkcast", OperandShape.CONST_U2)
    table[0xC1] = ("instanceof", OperandShape.CONST_U2)
    table[0xC2] = ("monitorenter", N)
    table[0xC3] = ("monitorexit", N)
    table[0xC4] = ("wide", OperandShape.WIDE)
    table[0xC5] = ("multianewarray", OperandShape.MULTIANEWARRAY)
    table[0xC6] = ("ifnull", OperandShape.BRANCH2)
    table[0xC7] = ("ifnonnull", OperandShape.BRANCH2)
    table[0xC8] = ("goto_w", OperandShape.BRANCH4)
    table[0xC9] = ("jsr_w", OperandShape.BRANCH4)
    table[0xCA] = ("breakpoint", N)
    table[0xFE] = ("impdep1", N)
    table[0xFF] = ("impdep2", N)
    return table


#: opcode -> (mnemonic, operand shape)
OPCODES: dict[int, tuple[str, OperandShape]] = _build_opcode_table()

_FIELD_OPS = frozenset({"getstatic", "putstatic", "getfield", "putfield"})
_CLASS_OPS = frozenset({"new", "anewarray", "checkcast", "instanceof", "multianewarray"})

# Opcodes that ``wide`` may modify (16-bit local index).
_WIDENABLE = frozenset({0x15, 0x16, 0x17, 0x18, 0x19, 0x36, 0x37, 0x38, 0x39, 0x3A, 0xA9})
_IINC = 0x84

NEWARRAY_TYPES: dict[int, str] = {
    4: "boolean",
    5: "char",
    6: "float",
    7: "double",
    8: "byte",
    9: "short",
    10: "int",
    11: "long",
}


def pool_kinds(mnemonic: str) -> tuple[ConstantTag, ...]:
    """Constant-pool tags an instruction's index operand may refer to."""
    if mnemonic in ("ldc", "ldc_w"):
        return tuple(t for t in LOADABLE_TAGS if t not in (ConstantTag.LONG, ConstantTag.DOUBLE))
    if mnemonic == "ldc2_w":
        return (ConstantTag.LONG, ConstantTag.DOUBLE)
    if mnemonic in _FIELD_OPS:
        return (ConstantTag.FIELDREF,)
    if mnemonic == "invokevirtual":
        return (ConstantTag.METHODREF,)
    if mnemonic in ("invokespecial", "invokestatic"):
        return (ConstantTag.METHODREF, ConstantTag.INTERFACE_METHODREF)
    if mnemonic == "invokeinterface":
        return (ConstantTag.INTERFACE_METHODREF,)
    if mnemonic == "invokedynamic":
        return (ConstantTag.INVOKE_DYNAMIC,)
    if mnemonic in _CLASS_OPS:
        return (ConstantTag.CLASS,)
    return ()


# ---------------------------------------------------------------------------
# Instruction decoding
# ---------------------------------------------------------------------------

class BytecodeMixin:
    """Instruction decoding for :class:`~classpy.parsers.classfile.ClassFileDecoder`.

    Relies on the host providing ``_cursor``, ``_pool`` and the node
    helpers of :class:`~classpy.core.decoder.ComponentDecoder`.
    """

    _cursor: ByteCursor
    _pool: ConstantPool

    def _read_code(self, code_length: int) -> Component:
        """Decode ``code_length`` bytes of bytecode into instruction nodes."""
        start = self._cursor.position
        instructions: list[Component] = []
        try:
            with self._cursor.bounded(code_length):
                while self._cursor.remaining:
                    instructions.append(self._read_instruction(start))
        except UnexpectedEndOfBuffer as exc:
            raise TruncatedCode(
                "Instructions do not fit the declared code length",
                offset=exc.offset,
                expected=f"{code_length} bytes of code",
                actual=exc.actual,
            ) from exc
        return self._node(  # type: ignore[attr-defined]
            "code", start, instructions, f"{len(instructions)} instructions"
        )

    def _read_instruction(self, code_start: int) -> Component:
        start = self._cursor.position
        pc = start - code_start
        opcode = self._u1("opcode", lambda v: f"0x{v:02x}")  # type: ignore[attr-defined]
        try:
            mnemonic, shape = OPCODES[opcode.value]
        except KeyError:
            raise UnsupportedOpcode(
                "Unknown JVM opcode", offset=start, actual=f"0x{opcode.value:02x}"
            ) from None

        operands = _SHAPE_READERS[shape](self, mnemonic, pc)
        shown = [op for op in operands if op.name != "padding"]

        def describe() -> str:
            text = f"{pc}: {mnemonic}"
            if shown:
                text += " " + ", ".join(op.description for op in shown)
            return text

        return self._node(mnemonic, start, [opcode, *operands], describe)  # type: ignore[attr-defined]

    # ------------------------------------------------------------------ #
    #  Operand readers (one per shape)
    # ------------------------------------------------------------------ #

    def _cp_operand(self, name: str, width: int, kinds: tuple[ConstantTag, ...]) -> Component:
        field_offset = self._cursor.position
        node = self._u1(name, self._pool_desc) if width == 1 else self._u2(name, self._pool_desc)  # type: ignore[attr-defined]
        self._pool.get(node.value, *kinds, offset=field_offset)
        return node

    def _pool_desc(self, index: int) -> Callable[[], str]:
        return lambda: self._pool.describe_ref(index)

    def _branch(self, name: str, pc: int, wide: bool) -> Component:
        fmt = lambda off: f"{pc + off} ({off:+d})"  # noqa: E731
        return self._s4(name, fmt) if wide else self._s2(name, fmt)  # type: ignore[attr-defined]

    def _ops_none(self, mnemonic: str, pc: int) -> list[Component]:
        return []

    def _ops_local(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._u1("index")]  # type: ignore[attr-defined]

    def _ops_byte(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._s1("byte")]  # type: ignore[attr-defined]

    def _ops_short(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._s2("short")]  # type: ignore[attr-defined]

    def _ops_const_u1(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._cp_operand("index", 1, pool_kinds(mnemonic))]

    def _ops_const_u2(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._cp_operand("index", 2, pool_kinds(mnemonic))]

    def _ops_iinc(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._u1("index"), self._s1("const")]  # type: ignore[attr-defined]

    def _ops_branch2(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._branch("branch", pc, wide=False)]

    def _ops_branch4(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._branch("branch", pc, wide=True)]

    def _ops_invokeinterface(self, mnemonic: str, pc: int) -> list[Component]:
        return [
            self._cp_operand("index", 2, pool_kinds(mnemonic)),
            self._u1("count"),  # type: ignore[attr-defined]
            self._u1("zero"),  # type: ignore[attr-defined]
        ]

    def _ops_invokedynamic(self, mnemonic: str, pc: int) -> list[Component]:
        return [
            self._cp_operand("index", 2, pool_kinds(mnemonic)),
            self._u2("zero"),  # type: ignore[attr-defined]
        ]

    def _ops_multianewarray(self, mnemonic: str, pc: int) -> list[Component]:
        return [
            self._cp_operand("index", 2, pool_kinds(mnemonic)),
            self._u1("dimensions"),  # type: ignore[attr-defined]
        ]

    def _ops_newarray(self, mnemonic: str, pc: int) -> list[Component]:
        return [self._u1("atype", lambda v: NEWARRAY_TYPES.get(v, f"unknown({v})"))]  # type: ignore[attr-defined]

    def _switch_padding(self, pc: int) -> list[Component]:
        # Operands start at the next pc that is a multiple of four.
        pad = (4 - (pc + 1) % 4) % 4
        return [self._raw("padding", pad)] if pad else []  # type: ignore[attr-defined]

    def _ops_tableswitch(self, mnemonic: str, pc: int) -> list[Component]:
        operands = self._switch_padding(pc)
        operands.append(self._branch("default", pc, wide=True))
        low = self._s4("low")  # type: ignore[attr-defined]
        high = self._s4("high")  # type: ignore[attr-defined]
        if high.value < low.value:
            raise MalformedStructure(
                "tableswitch high is below low",
                offset=high.offset, expected=f">= {low.value}", actual=high.value,
            )
        count = high.value - low.value + 1
        offsets = self._table(  # type: ignore[attr-defined]
            "jump_offsets", count,
            lambda i: self._branch(str(low.value + i), pc, wide=True),
            f"{count} targets",
        )
        return [*operands, low, high, offsets]

    def _ops_lookupswitch(self, mnemonic: str, pc: int) -> list[Component]:
        operands = self._switch_padding(pc)
        operands.append(self._branch("default", pc, wide=True))
        npairs = self._s4("npairs")  # type: ignore[attr-defined]
        if npairs.value < 0:
            raise MalformedStructure(
                "lookupswitch npairs is negative",
                offset=npairs.offset, expected=">= 0", actual=npairs.value,
            )

        def read_pair(i: int) -> Component:
            start = self._cursor.position
            match = self._s4("match")  # type: ignore[attr-defined]
            target = self._branch("offset", pc, wide=True)
            return self._node(  # type: ignore[attr-defined]
                f"pair[{i}]", start, [match, target],
                f"{match.value}: {target.description}",
            )

        pairs = self._table("match_offset_pairs", npairs.value, read_pair)  # type: ignore[attr-defined]
        return [*operands, npairs, pairs]

    def _ops_wide(self, mnemonic: str, pc: int) -> list[Component]:
        start = self._cursor.position
        modified = self._u1(  # type: ignore[attr-defined]
            "opcode", lambda v: OPCODES.get(v, (f"0x{v:02x}", None))[0]
        )
        if modified.value == _IINC:
            return [modified, self._u2("index"), self._s2("const")]  # type: ignore[attr-defined]
        if modified.value not in _WIDENABLE:
            raise UnsupportedOpcode(
                "Opcode cannot follow wide",
                offset=start, actual=f"0x{modified.value:02x}",
            )
        return [modified, self._u2("index")]  # type: ignore[attr-defined]


_SHAPE_READERS: dict[OperandShape, Callable[..., list[Component]]] = {
    OperandShape.NONE: BytecodeMixin._ops_none,
    OperandShape.LOCAL: BytecodeMixin._ops_local,
    OperandShape.BYTE: BytecodeMixin._ops_byte,
    OperandShape.SHORT: BytecodeMixin._ops_short,
    OperandShape.CONST_U1: BytecodeMixin._ops_const_u1,
    OperandShape.CONST_U2: BytecodeMixin._ops_const_u2,
    OperandShape.IINC: BytecodeMixin._ops_iinc,
    OperandShape.BRANCH2: BytecodeMixin._ops_branch2,
    OperandShape.BRANCH4: BytecodeMixin._ops_branch4,
    OperandShape.INVOKEINTERFACE: BytecodeMixin._ops_invokeinterface,
    OperandShape.INVOKEDYNAMIC: BytecodeMixin._ops_invokedynamic,
    OperandShape.MULTIANEWARRAY: BytecodeMixin._ops_multianewarray,
    OperandShape.NEWARRAY: BytecodeMixin._ops_newarray,
    OperandShape.TABLESWITCH: BytecodeMixin._ops_tableswitch,
    OperandShape.LOOKUPSWITCH: BytecodeMixin._ops_lookupswitch,
    OperandShape.WIDE: BytecodeMixin._ops_wide,
}
