"""
Lua 5.3 Chunk Decoder
======================

Decodes a precompiled Lua 5.3 chunk (``luac`` output) into a component
tree: the chunk header, then the main function prototype and, recursively,
every nested prototype.

A prototype is read completely (code words, constants, upvalues, nested
prototypes, debug info) before its instruction nodes are built, so operand
descriptions can name the constant, upvalue or local variable an operand
refers to.  Operand nodes are zero-length views anchored at the
instruction's offset; the raw 32-bit word is the instruction's only
byte-carrying child.

The byte order of the chunk is taken from ``LUAC_INT`` (``0x5678``) in the
header, as ``lundump.c`` does when it checks the header.

References:
    - Ierusalimschy, R. et al. Lua 5.3 source, ``ldump.c`` / ``lundump.c``.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any, Callable

from shared.config import DecoderConfig
from shared.logger import ClasspyLogger

from classpy.core.component import Component
from classpy.core.cursor import BIG_ENDIAN, LITTLE_ENDIAN
from classpy.core.decoder import ComponentDecoder, cut
from classpy.core.errors import (
    InvalidConstantReference,
    InvalidSignature,
    MalformedStructure,
    NestingTooDeep,
    UnsupportedConstantTag,
    UnsupportedOpcode,
)
from classpy.core.symbols import SymbolTable
from classpy.parsers.lua_opcodes import (
    LUA_OPCODES,
    OP_RETURN,
    LuaFields,
    LuaOpcode,
    Operand,
    OpMode,
    decode_fields,
    decode_rk,
)


# ---------------------------------------------------------------------------
# Chunk header constants
# ---------------------------------------------------------------------------

LUA_SIGNATURE: bytes = b"\x1bLua"
LUAC_VERSION: int = 0x53
LUAC_FORMAT: int = 0
LUAC_DATA: bytes = b"\x19\x93\r\n\x1a\n"
LUAC_INT: int = 0x5678
LUAC_NUM: float = 370.5

# Offsets inside the header used to sniff the byte order
_LUA_INTEGER_SIZE_OFFSET: int = 15
_LUAC_INT_OFFSET: int = 17

# Instruction words are always 32 bits in this decoder
INSTRUCTION_SIZE: int = 4


class LuaType(enum.IntEnum):
    """Constant type tags (variant bits in the high nibble)."""
    NIL = 0x00
    BOOLEAN = 0x01
    NUMFLT = 0x03
    NUMINT = 0x13
    SHRSTR = 0x04
    LNGSTR = 0x14


@dataclass(frozen=True, slots=True)
class LuaConstant:
    tag: LuaType
    value: Any

    def render(self, limit: int = 0) -> str:
        if self.tag is LuaType.NIL:
            return "nil"
        if self.tag is LuaType.BOOLEAN:
            return "true" if self.value else "false"
        if self.tag in (LuaType.SHRSTR, LuaType.LNGSTR):
            return f'"{cut(self.value, limit)}"'
        if self.tag is LuaType.NUMFLT and math.isfinite(self.value) and self.value.is_integer():
            return f"{self.value:.1f}"
        return repr(self.value)


@dataclass(frozen=True, slots=True)
class LocalVar:
    name: str
    start_pc: int
    end_pc: int


class _FunctionScope:
    """Symbols of one prototype, complete before any instruction is built."""

    def __init__(self, description_limit: int) -> None:
        self.limit = description_limit
        self.constants: SymbolTable[LuaConstant] = SymbolTable(
            "constants", kind_of=lambda k: k.tag
        )
        self.upvalue_count = 0
        self.upvalue_names: list[str] = []
        self.local_vars: list[LocalVar] = []
        self.protos: list[Component] = []

    def register(self, reg: int, pc: int) -> str:
        """Name of register *reg* at *pc*: the reg-th local active there."""
        active = [lv for lv in self.local_vars if lv.start_pc <= pc < lv.end_pc]
        if reg < len(active):
            return active[reg].name
        return f"R({reg})"

    def constant(self, index: int, offset: int) -> str:
        return self.constants.get(index, offset=offset).render(self.limit)

    def upvalue(self, index: int, offset: int) -> str:
        if not 0 <= index < self.upvalue_count:
            raise InvalidConstantReference(
                "upvalue index out of range", offset=offset,
                expected=f"0..{self.upvalue_count - 1}", actual=index,
            )
        if index < len(self.upvalue_names):
            return self.upvalue_names[index]
        return f"UpValue[{index}]"

    def proto(self, index: int, offset: int) -> str:
        if not 0 <= index < len(self.protos):
            raise InvalidConstantReference(
                "prototype index out of range", offset=offset,
                expected=f"0..{len(self.protos) - 1}", actual=index,
            )
        return self.protos[index].description


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

class LuacDecoder(ComponentDecoder):
    """Decoder for one Lua 5.3 binary chunk."""

    byte_order = LITTLE_ENDIAN

    def __init__(
        self,
        data: bytes,
        *,
        config: DecoderConfig | None = None,
        logger: ClasspyLogger | None = None,
    ) -> None:
        super().__init__(data, config=config, logger=logger)
        self._int_size = 4
        self._size_t_size = 8
        self._integer_size = 8
        self._number_size = 8

    @classmethod
    def _detect_byte_order(cls, data: bytes) -> str:
        size = data[_LUA_INTEGER_SIZE_OFFSET] if len(data) > _LUA_INTEGER_SIZE_OFFSET else 0
        raw = data[_LUAC_INT_OFFSET:_LUAC_INT_OFFSET + size]
        if size and len(raw) == size and int.from_bytes(raw, "big") == LUAC_INT:
            return BIG_ENDIAN
        return LITTLE_ENDIAN

    # ------------------------------------------------------------------ #
    #  Public API
    # ------------------------------------------------------------------ #

    def decode(self) -> Component:
        """Decode the header and the main prototype.

        Raises:
            InvalidSignature: Not a Lua 5.3 chunk.
            NestingTooDeep: Prototypes nest deeper than the configured limit.
        """
        header = self._read_header()
        upvalues = self._u1("sizeupvalues")
        main = self._read_proto("main", None, 0)
        return self._node(
            "luac_file", 0, [header, upvalues, main], "Lua 5.3 chunk"
        )

    # ------------------------------------------------------------------ #
    #  Header
    # ------------------------------------------------------------------ #

    def _read_header(self) -> Component:
        signature = self._raw("signature", 4, lambda raw: repr(raw)[2:-1])
        if signature.value != LUA_SIGNATURE:
            raise InvalidSignature(
                "Not a Lua chunk", offset=0,
                expected=repr(LUA_SIGNATURE), actual=repr(signature.value),
            )
        version = self._u1("version", lambda v: f"0x{v:02x}")
        if version.value != LUAC_VERSION:
            raise InvalidSignature(
                "Unsupported Lua version", offset=version.offset,
                expected=f"0x{LUAC_VERSION:02x}", actual=f"0x{version.value:02x}",
            )
        children = [signature, version, self._u1("format")]
        luac_data = self._raw("luac_data", 6)
        if luac_data.value != LUAC_DATA:
            raise InvalidSignature(
                "Corrupted chunk", offset=luac_data.offset,
                expected=LUAC_DATA.hex(" "), actual=luac_data.value.hex(" "),
            )
        children.append(luac_data)

        sizes = [
            self._u1(name) for name in (
                "cint_size", "csize_t_size", "instruction_size",
                "lua_integer_size", "lua_number_size",
            )
        ]
        children += sizes
        self._int_size, self._size_t_size, insn_size, self._integer_size, self._number_size = (
            node.value for node in sizes
        )
        if insn_size != INSTRUCTION_SIZE:
            raise MalformedStructure(
                "Unsupported instruction size", offset=sizes[2].offset,
                expected=INSTRUCTION_SIZE, actual=insn_size,
            )

        luac_int = self._field(
            "luac_int", lambda: self._cursor.read_sint(self._integer_size), hex
        )
        if luac_int.value != LUAC_INT:
            raise MalformedStructure(
                "Integer format mismatch", offset=luac_int.offset,
                expected=hex(LUAC_INT), actual=hex(luac_int.value),
            )
        luac_num = self._field(
            "luac_num", lambda: self._cursor.read_float(self._number_size)
        )
        if luac_num.value != LUAC_NUM:
            raise MalformedStructure(
                "Float format mismatch", offset=luac_num.offset,
                expected=LUAC_NUM, actual=luac_num.value,
            )
        children += [luac_int, luac_num]
        return self._node("header", 0, children, "Lua 5.3")

    # ------------------------------------------------------------------ #
    #  Scalars
    # ------------------------------------------------------------------ #

    def _int(self, name: str) -> Component:
        return self._field(name, lambda: self._cursor.read_sint(self._int_size))

    def _string(self, name: str) -> Component:
        """Read a dumped string: a size byte (0xFF escapes to a size_t)
        counting the missing terminator, so 0 means no string."""
        def read() -> str | None:
            size = self._cursor.read_u1()
            if size == 0xFF:
                size = self._cursor.read_uint(self._size_t_size)
            if size == 0:
                return None
            return self._cursor.read_bytes(size - 1).decode("utf-8", "backslashreplace")

        limit = self._config.description_limit
        return self._field(
            name, read, lambda s: "(none)" if s is None else cut(s, limit)
        )

    def _counted(
        self, count_name: str, table_name: str, read_item: Callable[[int], Component]
    ) -> list[Component]:
        count = self._int(count_name)
        if count.value < 0:
            raise MalformedStructure(
                f"Negative {count_name}", offset=count.offset,
                expected=">= 0", actual=count.value,
            )
        return [count, self._table(table_name, count.value, read_item)]

    # ------------------------------------------------------------------ #
    #  Prototypes
    # ------------------------------------------------------------------ #

    def _read_proto(self, name: str, parent_source: str | None, depth: int) -> Component:
        if depth > self._config.max_nesting_depth:
            raise NestingTooDeep(
                "Function prototypes nest too deeply",
                offset=self._cursor.position,
                expected=f"<= {self._config.max_nesting_depth}", actual=depth,
            )
        start = self._cursor.position
        scope = _FunctionScope(self._config.description_limit)

        source = self._string("source")
        source_name = source.value if source.value is not None else parent_source
        line_defined = self._int("line_defined")
        fields = [
            source,
            line_defined,
            self._int("last_line_defined"),
            self._u1("numparams"),
            self._u1("is_vararg"),
            self._u1("maxstacksize"),
        ]

        sizecode = self._int("sizecode")
        if sizecode.value < 0:
            raise MalformedStructure(
                "Negative sizecode", offset=sizecode.offset,
                expected=">= 0", actual=sizecode.value,
            )
        code_start = sizecode.offset
        words = [
            (self._cursor.position, self._cursor.read_u4())
            for _ in range(sizecode.value)
        ]
        code_end = self._cursor.position

        constants = self._counted(
            "sizek", "constants", lambda i: self._read_constant(i, scope)
        )
        upvalues = self._counted("sizeupvalues", "upvalues", self._read_upvalue)
        scope.upvalue_count = upvalues[0].value
        protos = self._counted(
            "sizep", "protos",
            lambda i: self._read_proto(f"protos[{i}]", source_name, depth + 1),
        )
        scope.protos = list(protos[1].children)
        debug = self._read_debug(scope)

        instructions = [
            self._build_instruction(offset, word, pc, scope)
            for pc, (offset, word) in enumerate(words)
        ]
        code = Component(
            "code", code_start, code_end - code_start,
            children=[sizecode, *instructions],
            description=f"{len(instructions)} instructions",
        )
        if depth:
            self._logger.debug("nested prototype %s at depth %d", name, depth)

        label = f"{source_name or '?'}:{line_defined.value}"
        kind = "main" if depth == 0 else "function"
        return self._node(
            name, start, [*fields, code, *constants, *upvalues, *protos, debug],
            f"{kind} <{label}>",
        )

    def _read_constant(self, i: int, scope: _FunctionScope) -> Component:
        start = self._cursor.position
        tag_byte = self._cursor.read_u1()
        try:
            tag = LuaType(tag_byte)
        except ValueError:
            raise UnsupportedConstantTag(
                f"Unknown type in constants[{i}]", offset=start, actual=tag_byte
            ) from None
        children = [Component("type", start, 1, description=tag.name, value=tag_byte)]

        if tag is LuaType.NIL:
            value = None
        elif tag is LuaType.BOOLEAN:
            node = self._u1("value")
            value = bool(node.value)
            children.append(node)
        elif tag is LuaType.NUMFLT:
            node = self._field("value", lambda: self._cursor.read_float(self._number_size))
            value = node.value
            children.append(node)
        elif tag is LuaType.NUMINT:
            node = self._field("value", lambda: self._cursor.read_sint(self._integer_size))
            value = node.value
            children.append(node)
        else:
            node = self._string("value")
            value = node.value if node.value is not None else ""
            children.append(node)

        constant = LuaConstant(tag, value)
        scope.constants.append(constant)
        return self._node(
            f"constants[{i}]", start, children,
            constant.render(self._config.description_limit),
        )

    def _read_upvalue(self, i: int) -> Component:
        start = self._cursor.position
        instack = self._u1("instack")
        idx = self._u1("idx")
        where = "stack" if instack.value else "upvalue"
        return self._node(
            f"upvalues[{i}]", start, [instack, idx], f"{where} {idx.value}"
        )

    def _read_debug(self, scope: _FunctionScope) -> Component:
        start = self._cursor.position
        children = self._counted(
            "sizelineinfo", "lineinfo", lambda i: self._int(f"lineinfo[{i}]")
        )

        def read_local(i: int) -> Component:
            item_start = self._cursor.position
            varname = self._string("varname")
            start_pc = self._int("startpc")
            end_pc = self._int("endpc")
            scope.local_vars.append(
                LocalVar(varname.value or "", start_pc.value, end_pc.value)
            )
            return self._node(
                f"locvars[{i}]", item_start, [varname, start_pc, end_pc],
                f"{varname.value} pc [{start_pc.value}, {end_pc.value})",
            )

        children += self._counted("sizelocvars", "locvars", read_local)

        def read_upvalue_name(i: int) -> Component:
            node = self._string(f"upvalue_names[{i}]")
            scope.upvalue_names.append(node.value or "")
            return node

        children += self._counted("sizeupvalue_names", "upvalue_names", read_upvalue_name)
        return self._node("debug", start, children)

    # ------------------------------------------------------------------ #
    #  Instructions
    # ------------------------------------------------------------------ #

    def _build_instruction(
        self, offset: int, word: int, pc: int, scope: _FunctionScope
    ) -> Component:
        fields = decode_fields(word)
        if fields.opcode >= len(LUA_OPCODES):
            raise UnsupportedOpcode(
                "Unknown Lua 5.3 opcode", offset=offset,
                expected=f"<= {len(LUA_OPCODES) - 1}", actual=fields.opcode,
            )
        op = LUA_OPCODES[fields.opcode]

        def view(name: str, description: str) -> Component:
            return Component(name, offset, 0, description=description)

        raw = Component(
            "instruction", offset, INSTRUCTION_SIZE,
            description=f"0x{word:08x}", value=word,
        )
        children = [raw, view("semantics", op.pseudo)]
        if fields.opcode == OP_RETURN:
            children += [view("A", str(fields.a)), view("B", str(fields.b))]
            children += [
                view(f"R({reg})", scope.register(reg, pc))
                for reg in range(fields.a, fields.a + fields.b - 1)
            ]
        else:
            children += [
                view(label, self._operand(role, value, pc, offset, scope))
                for label, role, value in _operand_slots(op, fields)
            ]

        args = " ".join(_arg_text(role, value) for _l, role, value in _operand_slots(op, fields))
        return Component(
            op.name, offset, INSTRUCTION_SIZE,
            children=children, description=f"[{pc}] {op.name} {args}".rstrip(),
        )

    def _operand(
        self, role: Operand, value: int, pc: int, offset: int, scope: _FunctionScope
    ) -> str:
        if role is Operand.REG:
            return f"R({value}) => {scope.register(value, pc)}"
        if role is Operand.RK:
            is_constant, index = decode_rk(value)
            if is_constant:
                return f"Kst({index}) => {scope.constant(index, offset)}"
            return f"R({index}) => {scope.register(index, pc)}"
        if role is Operand.KST:
            return f"Kst({value}) => {scope.constant(value, offset)}"
        if role is Operand.UPVAL:
            return f"UpValue[{value}] => {scope.upvalue(value, offset)}"
        if role is Operand.PROTO:
            return f"KPROTO[{value}] => {scope.proto(value, offset)}"
        if role is Operand.JUMP:
            return f"{value:+d} => pc {pc + 1 + value}"
        return str(value)


def _operand_slots(op: LuaOpcode, fields: LuaFields) -> list[tuple[str, Operand, int]]:
    """``(label, role, value)`` for every meaningful field of *op*."""
    if op.mode is OpMode.IAX:
        slots = [("Ax", op.a, fields.ax)]
    elif op.mode is OpMode.IABC:
        slots = [("A", op.a, fields.a), ("B", op.b, fields.b), ("C", op.c, fields.c)]
    elif op.mode is OpMode.IABX:
        slots = [("A", op.a, fields.a), ("Bx", op.b, fields.bx)]
    else:
        slots = [("A", op.a, fields.a), ("sBx", op.b, fields.sbx)]
    return [
        (_role_label(role, field), role, value)
        for field, role, value in slots
        if role is not Operand.UNUSED
    ]


def _role_label(role: Operand, field: str) -> str:
    if role in (Operand.REG, Operand.RK, Operand.KST):
        return f"{role.value}({field})"
    if role in (Operand.UPVAL, Operand.PROTO):
        return f"{role.value}[{field}]"
    return field


def _arg_text(role: Operand, value: int) -> str:
    # luac -l prints RK constants as -1-k
    if role is Operand.RK:
        is_constant, index = decode_rk(value)
        return str(-1 - index) if is_constant else str(index)
    return str(value)


def decode_luac(
    data: bytes,
    *,
    config: DecoderConfig | None = None,
    logger: ClasspyLogger | None = None,
) -> Component:
    """Decode a Lua 5.3 binary chunk into a component tree."""
    return LuacDecoder(data, config=config, logger=logger).decode()
