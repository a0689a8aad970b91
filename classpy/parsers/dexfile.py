"""
Android DEX Format Decoder
===========================

Decodes a Dalvik Executable (DEX) file into a component tree: the 112-byte
header plus the six id tables it points at (string ids, type ids, proto
ids, field ids, method ids, class defs).

Tables are read at their declared offsets through
:meth:`~classpy.core.cursor.ByteCursor.detour`, so the root component spans
the whole buffer while each table node spans only its own records.  The
out-of-line payloads the records point at (string data, parameter and
interface type lists) are collected under ``string_data`` and
``type_lists``.

Every cross-table index is checked once all tables are complete; an index
outside its table raises :class:`InvalidConstantReference`.  ``NO_INDEX``
is accepted where the format allows it (class_def superclass and source
file).

References:
    - Google. (2024). DEX Format. Android Open Source Project.
      https://source.android.com/docs/core/runtime/dex-format
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from shared.config import DecoderConfig
from shared.logger import ClasspyLogger

from classpy.core.component import Component
from classpy.core.cursor import BIG_ENDIAN, LITTLE_ENDIAN
from classpy.core.decoder import ComponentDecoder, cut
from classpy.core.errors import InvalidSignature
from classpy.core.mutf8 import decode_mutf8
from classpy.core.symbols import SymbolTable
from classpy.parsers.flags import DEX_CLASS_FLAGS, access_flags_str


# ---------------------------------------------------------------------------
# DEX Constants
# ---------------------------------------------------------------------------

DEX_MAGIC_PREFIX: bytes = b"dex\n"
HEADER_SIZE: int = 0x70

# Endianness tag as it appears in a big-endian file
REVERSE_ENDIAN_BYTES: bytes = b"\x12\x34\x56\x78"
ENDIAN_TAG_OFFSET: int = 40

# No-index sentinel
NO_INDEX: int = 0xFFFFFFFF

# (size field, offset field, table name) for the six id tables
_ID_TABLES: tuple[tuple[str, str, str], ...] = (
    ("string_ids_size", "string_ids_off", "string_ids"),
    ("type_ids_size", "type_ids_off", "type_ids"),
    ("proto_ids_size", "proto_ids_off", "proto_ids"),
    ("field_ids_size", "field_ids_off", "field_ids"),
    ("method_ids_size", "method_ids_off", "method_ids"),
    ("class_defs_size", "class_defs_off", "class_defs"),
)

_HEADER_U4_FIELDS: tuple[str, ...] = (
    "file_size", "header_size", "endian_tag",
    "link_size", "link_off", "map_off",
    "string_ids_size", "string_ids_off",
    "type_ids_size", "type_ids_off",
    "proto_ids_size", "proto_ids_off",
    "field_ids_size", "field_ids_off",
    "method_ids_size", "method_ids_off",
    "class_defs_size", "class_defs_off",
    "data_size", "data_off",
)

_PRIMITIVES: dict[str, str] = {
    "V": "void", "Z": "boolean", "B": "byte", "S": "short",
    "C": "char", "I": "int", "J": "long", "F": "float", "D": "double",
}


def type_to_readable(type_descriptor: str) -> str:
    """Convert a DEX type descriptor to a human-readable class name.

    Converts ``Lcom/example/MyClass;`` to ``com.example.MyClass`` and
    ``[I`` to ``int[]``.
    """
    if not type_descriptor:
        return ""
    if type_descriptor.startswith("["):
        return f"{type_to_readable(type_descriptor[1:])}[]"
    if type_descriptor.startswith("L") and type_descriptor.endswith(";"):
        return type_descriptor[1:-1].replace("/", ".")
    return _PRIMITIVES.get(type_descriptor, type_descriptor)


# ---------------------------------------------------------------------------
# Id records
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ProtoId:
    shorty_idx: int
    return_type_idx: int
    parameters: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class MemberId:
    """field_id_item (``type_idx`` is the field type) or method_id_item
    (``type_idx`` is the proto index)."""
    class_idx: int
    type_idx: int
    name_idx: int


# ---------------------------------------------------------------------------
# DEX Decoder
# ---------------------------------------------------------------------------

class DexFileDecoder(ComponentDecoder):
    """Decoder for one DEX file (versions 035 and later)."""

    byte_order = LITTLE_ENDIAN

    def __init__(
        self,
        data: bytes,
        *,
        config: DecoderConfig | None = None,
        logger: ClasspyLogger | None = None,
    ) -> None:
        super().__init__(data, config=config, logger=logger)
        self._strings: SymbolTable[str] = SymbolTable("string_ids")
        self._types: SymbolTable[int] = SymbolTable("type_ids")
        self._protos: SymbolTable[ProtoId] = SymbolTable("proto_ids")
        self._fields: SymbolTable[MemberId] = SymbolTable("field_ids")
        self._methods: SymbolTable[MemberId] = SymbolTable("method_ids")
        # (table, index, referencing field offset), checked after all tables
        self._pending: list[tuple[SymbolTable, int, int]] = []
        self._string_data: list[Component] = []
        self._type_lists: dict[int, Component] = {}

    @classmethod
    def _detect_byte_order(cls, data: bytes) -> str:
        tag = data[ENDIAN_TAG_OFFSET:ENDIAN_TAG_OFFSET + 4]
        return BIG_ENDIAN if tag == REVERSE_ENDIAN_BYTES else LITTLE_ENDIAN

    # ------------------------------------------------------------------ #
    #  Public API
    # ------------------------------------------------------------------ #

    def decode(self) -> Component:
        """Decode the header and all six id tables.

        Returns:
            Root component named ``dex_file`` spanning the whole buffer.
        """
        header, sizes = self._read_header()
        readers: dict[str, Callable[[int], Component]] = {
            "string_ids": self._read_string_id,
            "type_ids": self._read_type_id,
            "proto_ids": self._read_proto_id,
            "field_ids": self._read_field_id,
            "method_ids": self._read_method_id,
            "class_defs": self._read_class_def,
        }
        children = [header]
        for size_field, off_field, table in _ID_TABLES:
            children.append(
                self._id_table(table, sizes[size_field], sizes[off_field], readers[table])
            )
        children.append(self._span("string_data", self._string_data))
        children.append(self._span("type_lists", list(self._type_lists.values())))

        for table, index, field_offset in self._pending:
            table.get(index, offset=field_offset)
        self._logger.debug(
            "dex: %d strings, %d types, %d protos, %d fields, %d methods",
            len(self._strings), len(self._types), len(self._protos),
            len(self._fields), len(self._methods),
        )
        order = "big-endian" if self._cursor.byte_order == BIG_ENDIAN else "little-endian"
        return Component(
            "dex_file", 0, self._cursor.size,
            children=children, description=f"DEX {order}",
        )

    # ------------------------------------------------------------------ #
    #  Header
    # ------------------------------------------------------------------ #

    def _read_header(self) -> tuple[Component, dict[str, int]]:
        magic = self._raw("magic", 8, lambda raw: repr(raw)[2:-1])
        raw = magic.value
        if not (
            raw[:4] == DEX_MAGIC_PREFIX and raw[4:5] == b"0"
            and raw[5:7].isdigit() and raw[7] == 0
        ):
            raise InvalidSignature(
                "Not a DEX file", offset=0,
                expected="dex\\n0NN\\0", actual=repr(raw),
            )
        children = [
            magic,
            self._u4("checksum", lambda v: f"0x{v:08x}"),
            self._raw("signature", 20, lambda b: b.hex()),
        ]
        values: dict[str, int] = {}
        for field_name in _HEADER_U4_FIELDS:
            node = self._u4(field_name, _hex_if_offset(field_name))
            values[field_name] = node.value
            children.append(node)
        version = raw[4:7].decode("ascii")
        return self._node("header", 0, children, f"version {version}"), values

    # ------------------------------------------------------------------ #
    #  Tables
    # ------------------------------------------------------------------ #

    def _id_table(
        self,
        name: str,
        size: int,
        offset: int,
        read_item: Callable[[int], Component],
    ) -> Component:
        if size == 0:
            return Component(name, offset, 0, description="0")
        with self._cursor.detour(offset):
            return self._table(name, size, read_item)

    def _span(self, name: str, children: list[Component]) -> Component:
        """Group out-of-line items under a node covering all of them."""
        if not children:
            return Component(name, 0, 0, description="0")
        start = min(c.offset for c in children)
        end = max(c.end for c in children)
        return Component(
            name, start, end - start,
            children=sorted(children, key=lambda c: c.offset),
            description=str(len(children)),
        )

    def _ref(self, table: SymbolTable, name: str, width: int = 4, *, optional: bool = False) -> Component:
        """Read an index into *table*; checked once every table is read."""
        field_offset = self._cursor.position
        node = self._u4(name) if width == 4 else self._u2(name)
        if not (optional and node.value == NO_INDEX):
            self._pending.append((table, node.value, field_offset))
        return node

    # -- string_id_item -----------------------------------------------------

    def _read_string_id(self, i: int) -> Component:
        start = self._cursor.position
        data_off = self._u4("string_data_off", lambda v: f"0x{v:08x}")
        with self._cursor.detour(data_off.value):
            string_data = self._read_string_data(i)
        self._string_data.append(string_data)
        self._strings.append(string_data.value)
        return self._node(
            f"string_ids[{i}]", start, [data_off],
            self._string_desc(i),
        )

    def _read_string_data(self, i: int) -> Component:
        start = self._cursor.position
        utf16_size = self._field("utf16_size", self._cursor.read_uleb128)
        data_start = self._cursor.position
        raw = bytearray()
        while (byte := self._cursor.read_u1()) != 0:
            raw.append(byte)
        text = decode_mutf8(bytes(raw), offset=data_start)
        limit = self._config.description_limit
        data = Component(
            "data", data_start, self._cursor.position - data_start,
            description=cut(text, limit), value=text,
        )
        return Component(
            f"string_data_item[{i}]", start, self._cursor.position - start,
            children=(utf16_size, data), description=cut(text, limit), value=text,
        )

    def _string_desc(self, index: int) -> Callable[[], str]:
        limit = self._config.description_limit
        return lambda: cut(self._strings.get(index), limit)

    # -- type_id_item -------------------------------------------------------

    def _read_type_id(self, i: int) -> Component:
        start = self._cursor.position
        idx = self._ref(self._strings, "descriptor_idx")
        self._types.append(idx.value)
        return self._node(f"type_ids[{i}]", start, [idx], lambda: self._type_name(i))

    def _type_name(self, type_idx: int) -> str:
        return self._strings.get(self._types.get(type_idx))

    # -- proto_id_item ------------------------------------------------------

    def _read_proto_id(self, i: int) -> Component:
        start = self._cursor.position
        shorty = self._ref(self._strings, "shorty_idx")
        return_type = self._ref(self._types, "return_type_idx")
        params_off = self._u4("parameters_off", lambda v: f"0x{v:08x}")
        parameters: tuple[int, ...] = ()
        if params_off.value:
            parameters = self._type_list(params_off.value)
        self._protos.append(ProtoId(shorty.value, return_type.value, parameters))
        return self._node(
            f"proto_ids[{i}]", start, [shorty, return_type, params_off],
            lambda: self._proto_desc(i),
        )

    def _type_list(self, offset: int) -> tuple[int, ...]:
        """Read (once) the type_list at *offset* and return its type indices."""
        if offset not in self._type_lists:
            with self._cursor.detour(offset):
                start = self._cursor.position
                size = self._u4("size")
                items = self._table(
                    "list", size.value,
                    lambda j: self._ref(self._types, f"type_idx[{j}]", width=2),
                )
            node = Component(
                f"type_list@0x{offset:x}", start, items.end - start,
                children=(size, items),
                description=lambda: " ".join(
                    self._type_name(c.value) for c in items.children
                ),
            )
            self._type_lists[offset] = node
        return tuple(c.value for c in self._type_lists[offset].children[1].children)

    def _proto_desc(self, proto_idx: int) -> str:
        proto = self._protos.get(proto_idx)
        params = "".join(self._type_name(t) for t in proto.parameters)
        return f"({params}){self._type_name(proto.return_type_idx)}"

    # -- field_id_item / method_id_item ---------------------------------------

    def _read_field_id(self, i: int) -> Component:
        start = self._cursor.position
        cls = self._ref(self._types, "class_idx", width=2)
        typ = self._ref(self._types, "type_idx", width=2)
        name = self._ref(self._strings, "name_idx")
        self._fields.append(MemberId(cls.value, typ.value, name.value))

        def describe() -> str:
            return (
                f"{self._type_name(cls.value)}->{self._strings.get(name.value)}"
                f":{self._type_name(typ.value)}"
            )

        return self._node(f"field_ids[{i}]", start, [cls, typ, name], describe)

    def _read_method_id(self, i: int) -> Component:
        start = self._cursor.position
        cls = self._ref(self._types, "class_idx", width=2)
        proto = self._ref(self._protos, "proto_idx", width=2)
        name = self._ref(self._strings, "name_idx")
        self._methods.append(MemberId(cls.value, proto.value, name.value))

        def describe() -> str:
            return (
                f"{self._type_name(cls.value)}->{self._strings.get(name.value)}"
                f"{self._proto_desc(proto.value)}"
            )

        return self._node(f"method_ids[{i}]", start, [cls, proto, name], describe)

    # -- class_def_item -----------------------------------------------------

    def _read_class_def(self, i: int) -> Component:
        start = self._cursor.position
        cls = self._ref(self._types, "class_idx")
        flags = self._u4("access_flags", lambda v: access_flags_str(v, DEX_CLASS_FLAGS))
        superclass = self._ref(self._types, "superclass_idx", optional=True)
        interfaces_off = self._u4("interfaces_off", lambda v: f"0x{v:08x}")
        if interfaces_off.value:
            self._type_list(interfaces_off.value)
        source_file = self._ref(self._strings, "source_file_idx", optional=True)
        children = [
            cls, flags, superclass, interfaces_off, source_file,
            self._u4("annotations_off", lambda v: f"0x{v:08x}"),
            self._u4("class_data_off", lambda v: f"0x{v:08x}"),
            self._u4("static_values_off", lambda v: f"0x{v:08x}"),
        ]
        return self._node(
            f"class_defs[{i}]", start, children,
            lambda: f"{type_to_readable(self._type_name(cls.value))} ({flags.description})",
        )


def _hex_if_offset(field_name: str) -> Callable[[int], str] | None:
    if field_name.endswith("_off") or field_name == "endian_tag":
        return lambda v: f"0x{v:08x}"
    return None


def decode_dex(
    data: bytes,
    *,
    config: DecoderConfig | None = None,
    logger: ClasspyLogger | None = None,
) -> Component:
    """Decode a DEX file into a component tree."""
    return DexFileDecoder(data, config=config, logger=logger).decode()
