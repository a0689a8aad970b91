"""
JVM Class File Decoder
=======================

Decodes a ``.class`` file into a :class:`~classpy.core.component.Component`
tree: header, constant pool, access flags, this/super class, interfaces,
fields, methods and attributes.

Constant pool entries are dispatched on their tag byte through
:data:`~classpy.parsers.constant_pool.CONSTANT_LAYOUTS`; an unknown tag is
fatal.  Attributes are dispatched on their resolved name through
:data:`ATTRIBUTE_READERS`; an unknown name is kept as an opaque ``info``
blob of the declared length, since attributes are the format's documented
extension point.

References:
    - Lindholm, T. et al. (2014). The Java Virtual Machine Specification,
      Java SE 8 Edition. Chapter 4, The class File Format.
"""

from __future__ import annotations

from typing import Callable

from shared.config import DecoderConfig
from shared.logger import ClasspyLogger

from classpy.core.component import Component
from classpy.core.decoder import ComponentDecoder, cut
from classpy.core.errors import (
    InvalidSignature,
    MalformedStructure,
    UnsupportedAttributeName,
    UnsupportedConstantTag,
)
from classpy.core.mutf8 import decode_mutf8
from classpy.parsers.bytecode import BytecodeMixin
from classpy.parsers.constant_pool import (
    CONSTANT_LAYOUTS,
    LOADABLE_TAGS,
    REFERENCE_KINDS,
    WIDE_TAGS,
    ConstantEntry,
    ConstantPool,
    ConstantTag,
)
from classpy.parsers.flags import (
    CLASS_FLAGS,
    FIELD_FLAGS,
    INNER_CLASS_FLAGS,
    METHOD_FLAGS,
    PARAMETER_FLAGS,
    FlagTable,
    access_flags_str,
)


# ---------------------------------------------------------------------------
# Class file constants
# ---------------------------------------------------------------------------

CLASS_MAGIC: int = 0xCAFEBABE

_UTF8 = ConstantTag.UTF8
_CLASS = ConstantTag.CLASS
_CONSTANT_VALUE_TAGS = (
    ConstantTag.INTEGER, ConstantTag.FLOAT, ConstantTag.LONG,
    ConstantTag.DOUBLE, ConstantTag.STRING,
)


def java_version(major: int) -> str:
    """Map a class-file major version to its Java release, e.g. ``52 (Java 8)``."""
    if major >= 49:
        return f"{major} (Java {major - 44})"
    if major >= 45:
        return f"{major} (Java 1.{major - 44})"
    return str(major)


class ClassFileDecoder(BytecodeMixin, ComponentDecoder):
    """Decoder for one JVM class file."""

    def __init__(
        self,
        data: bytes,
        *,
        config: DecoderConfig | None = None,
        logger: ClasspyLogger | None = None,
    ) -> None:
        super().__init__(data, config=config, logger=logger)
        self._pool = ConstantPool(description_limit=self._config.description_limit)

    # ------------------------------------------------------------------ #
    #  Public API
    # ------------------------------------------------------------------ #

    def decode(self) -> Component:
        """Decode the whole class file.

        Returns:
            Root component named ``class_file``.

        Raises:
            DecodeError: Any subclass; no partial tree is returned.
        """
        magic = self._u4("magic", lambda v: f"0x{v:08X}")
        if magic.value != CLASS_MAGIC:
            raise InvalidSignature(
                "Not a class file", offset=0,
                expected=f"0x{CLASS_MAGIC:08X}", actual=f"0x{magic.value:08X}",
            )
        children = [
            magic,
            self._u2("minor_version"),
            self._u2("major_version", java_version),
            *self._read_constant_pool(),
            self._u2("access_flags", lambda v: access_flags_str(v, CLASS_FLAGS)),
        ]
        this_class = self._cp_u2("this_class", _CLASS)
        children.append(this_class)
        children.append(self._cp_u2("super_class", _CLASS, optional=True))
        children += self._counted(
            "interfaces_count", "interfaces", 2,
            lambda i: self._cp_u2(f"interfaces[{i}]", _CLASS),
        )
        children += self._counted(
            "fields_count", "fields", 2,
            lambda i: self._read_member(FIELD_FLAGS),
        )
        children += self._counted(
            "methods_count", "methods", 2,
            lambda i: self._read_member(METHOD_FLAGS),
        )
        children += self._read_attributes()

        if self._cursor.remaining:
            self._logger.debug(
                "%d trailing bytes after class file", self._cursor.remaining
            )
        pool = self._pool
        return self._node(
            "class_file", 0, children,
            lambda: pool.class_name(this_class.value),
        )

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _cp_u2(
        self, name: str, *kinds: ConstantTag, optional: bool = False
    ) -> Component:
        """Read a u2 pool index and check it against *kinds* immediately.

        With *optional* set, index 0 is accepted and means "none".
        """
        field_offset = self._cursor.position
        node = self._u2(name, self._pool_desc)
        if not (optional and node.value == 0):
            self._pool.get(node.value, *kinds, offset=field_offset)
        return node

    def _counted(
        self,
        count_name: str,
        table_name: str,
        width: int,
        read_item: Callable[[int], Component],
    ) -> list[Component]:
        count = self._u1(count_name) if width == 1 else self._u2(count_name)
        return [count, self._table(table_name, count.value, read_item)]

    # ------------------------------------------------------------------ #
    #  Constant pool
    # ------------------------------------------------------------------ #

    def _read_constant_pool(self) -> list[Component]:
        count = self._u2("constant_pool_count")
        start = self._cursor.position
        entries: list[Component] = []
        while self._pool.limit < count.value:
            entries.append(self._read_constant(self._pool.limit))
        self._pool.validate()
        self._logger.debug(
            "constant pool: %d slots, %d entries", count.value, len(entries)
        )
        return [count, self._node("constant_pool", start, entries, str(len(entries)))]

    def _read_constant(self, index: int) -> Component:
        start = self._cursor.position
        tag_byte = self._cursor.read_u1()
        try:
            tag = ConstantTag(tag_byte)
        except ValueError:
            raise UnsupportedConstantTag(
                f"Unknown tag in constant_pool[{index}]",
                offset=start, actual=tag_byte,
            ) from None
        fields = [Component("tag", start, 1, description=tag.label, value=tag_byte)]

        refs: list[tuple[int, int]] = []
        value = None
        length = 0
        for field_name, kind in CONSTANT_LAYOUTS[tag]:
            field_offset = self._cursor.position
            if kind == "ref":
                node = self._u2(field_name, self._pool_desc)
                refs.append((node.value, field_offset))
            elif kind == "length":
                node = self._u2(field_name)
                length = node.value
            elif kind == "mutf8":
                node = self._field(
                    field_name,
                    lambda: decode_mutf8(
                        self._cursor.read_bytes(length), offset=field_offset
                    ),
                    lambda s: cut(s, self._config.description_limit),
                )
                value = node.value
            elif kind == "u1":
                node = self._u1(
                    field_name, lambda v: REFERENCE_KINDS.get(v, f"REF_{v}")
                )
                value = node.value
            elif kind == "u2":
                node = self._u2(field_name, lambda v: f"bootstrap_methods[{v}]")
                value = node.value
            else:
                node = self._field(field_name, self._scalar_reader(kind))
                value = node.value
            fields.append(node)

        self._pool.append(ConstantEntry(tag, start, tuple(refs), value))
        if tag in WIDE_TAGS:
            self._pool.append_hole()

        pool = self._pool
        return self._node(
            f"constant_pool[{index}]", start, fields,
            lambda: pool.describe_entry(index),
        )

    def _scalar_reader(self, kind: str) -> Callable[[], int | float]:
        return {
            "s4": self._cursor.read_s4,
            "f4": self._cursor.read_f4,
            "s8": self._cursor.read_s8,
            "f8": self._cursor.read_f8,
        }[kind]

    # ------------------------------------------------------------------ #
    #  Fields and methods
    # ------------------------------------------------------------------ #

    def _read_member(self, flag_table: FlagTable) -> Component:
        start = self._cursor.position
        access = self._u2("access_flags", lambda v: access_flags_str(v, flag_table))
        name = self._cp_u2("name_index", _UTF8)
        descriptor = self._cp_u2("descriptor_index", _UTF8)
        children = [access, name, descriptor, *self._read_attributes()]
        pool = self._pool
        return self._node(
            pool.utf8(name.value), start, children,
            lambda: f"{access.description} {pool.utf8(descriptor.value)}",
        )

    # ------------------------------------------------------------------ #
    #  Attributes
    # ------------------------------------------------------------------ #

    def _read_attributes(self) -> list[Component]:
        return self._counted("attributes_count", "attributes", 2, self._read_attribute)

    def _read_attribute(self, i: int) -> Component:
        start = self._cursor.position
        name_node = self._cp_u2("attribute_name_index", _UTF8)
        length = self._u4("attribute_length")
        name = self._pool.utf8(name_node.value)
        with self._cursor.bounded(length.value):
            try:
                body = self._dispatch_attribute(name)
            except UnsupportedAttributeName:
                self._logger.debug(
                    "Keeping unrecognised attribute %r as raw bytes", name
                )
                body = [self._raw("info", length.value)]
            if self._cursor.remaining:
                raise MalformedStructure(
                    f"{name} attribute length mismatch",
                    offset=self._cursor.position,
                    expected=f"{length.value} bytes",
                    actual=f"{length.value - self._cursor.remaining} bytes",
                )
        return self._node(name, start, [name_node, length, *body], f"{length.value} bytes")

    def _dispatch_attribute(self, name: str) -> list[Component]:
        try:
            reader = ATTRIBUTE_READERS[name]
        except KeyError:
            raise UnsupportedAttributeName(
                "No decoder for attribute", offset=self._cursor.position, actual=name
            ) from None
        return reader(self)

    def _attr_constant_value(self) -> list[Component]:
        return [self._cp_u2("constantvalue_index", *_CONSTANT_VALUE_TAGS)]

    def _attr_code(self) -> list[Component]:
        children = [self._u2("max_stack"), self._u2("max_locals")]
        code_length = self._u4("code_length")
        children += [code_length, self._read_code(code_length.value)]
        children += self._counted(
            "exception_table_length", "exception_table", 2, self._read_exception_entry
        )
        children += self._read_attributes()
        return children

    def _read_exception_entry(self, i: int) -> Component:
        start = self._cursor.position
        start_pc = self._u2("start_pc")
        end_pc = self._u2("end_pc")
        handler_pc = self._u2("handler_pc")
        catch_type = self._cp_u2("catch_type", _CLASS, optional=True)
        pool = self._pool

        def describe() -> str:
            caught = pool.class_name(catch_type.value) if catch_type.value else "any"
            return (
                f"[{start_pc.value}, {end_pc.value}) -> "
                f"{handler_pc.value} {caught}"
            )

        return self._node(
            f"exception_table[{i}]", start,
            [start_pc, end_pc, handler_pc, catch_type], describe,
        )

    def _attr_exceptions(self) -> list[Component]:
        return self._counted(
            "number_of_exceptions", "exception_index_table", 2,
            lambda i: self._cp_u2(f"exception_index_table[{i}]", _CLASS),
        )

    def _attr_inner_classes(self) -> list[Component]:
        def read_class(i: int) -> Component:
            start = self._cursor.position
            inner = self._cp_u2("inner_class_info_index", _CLASS)
            children = [
                inner,
                self._cp_u2("outer_class_info_index", _CLASS, optional=True),
                self._cp_u2("inner_name_index", _UTF8, optional=True),
                self._u2(
                    "inner_class_access_flags",
                    lambda v: access_flags_str(v, INNER_CLASS_FLAGS),
                ),
            ]
            pool = self._pool
            return self._node(
                f"classes[{i}]", start, children,
                lambda: pool.class_name(inner.value),
            )

        return self._counted("number_of_classes", "classes", 2, read_class)

    def _attr_enclosing_method(self) -> list[Component]:
        return [
            self._cp_u2("class_index", _CLASS),
            self._cp_u2("method_index", ConstantTag.NAME_AND_TYPE, optional=True),
        ]

    def _attr_marker(self) -> list[Component]:
        return []

    def _attr_signature(self) -> list[Component]:
        return [self._cp_u2("signature_index", _UTF8)]

    def _attr_source_file(self) -> list[Component]:
        return [self._cp_u2("sourcefile_index", _UTF8)]

    def _attr_source_debug_extension(self) -> list[Component]:
        limit = self._config.description_limit
        return [
            self._field(
                "debug_extension",
                lambda: self._cursor.read_bytes(self._cursor.remaining),
                lambda raw: cut(raw.decode("utf-8", "replace"), limit),
            )
        ]

    def _attr_line_number_table(self) -> list[Component]:
        def read_line(i: int) -> Component:
            start = self._cursor.position
            start_pc = self._u2("start_pc")
            line = self._u2("line_number")
            return self._node(
                f"line_number_table[{i}]", start, [start_pc, line],
                f"line {line.value} @ pc {start_pc.value}",
            )

        return self._counted(
            "line_number_table_length", "line_number_table", 2, read_line
        )

    def _local_variable_reader(self, table: str, type_field: str) -> Callable[[int], Component]:
        def read_local(i: int) -> Component:
            start = self._cursor.position
            start_pc = self._u2("start_pc")
            length = self._u2("length")
            name = self._cp_u2("name_index", _UTF8)
            type_index = self._cp_u2(type_field, _UTF8)
            slot = self._u2("index")
            pool = self._pool
            return self._node(
                f"{table}[{i}]", start, [start_pc, length, name, type_index, slot],
                lambda: (
                    f"{pool.utf8(name.value)}:{pool.utf8(type_index.value)} "
                    f"slot {slot.value} pc [{start_pc.value}, "
                    f"{start_pc.value + length.value})"
                ),
            )

        return read_local

    def _attr_local_variable_table(self) -> list[Component]:
        return self._counted(
            "local_variable_table_length", "local_variable_table", 2,
            self._local_variable_reader("local_variable_table", "descriptor_index"),
        )

    def _attr_local_variable_type_table(self) -> list[Component]:
        return self._counted(
            "local_variable_type_table_length", "local_variable_type_table", 2,
            self._local_variable_reader("local_variable_type_table", "signature_index"),
        )

    def _attr_bootstrap_methods(self) -> list[Component]:
        def read_method(i: int) -> Component:
            start = self._cursor.position
            ref = self._cp_u2("bootstrap_method_ref", ConstantTag.METHOD_HANDLE)
            args = self._counted(
                "num_bootstrap_arguments", "bootstrap_arguments", 2,
                lambda j: self._cp_u2(f"bootstrap_arguments[{j}]", *LOADABLE_TAGS),
            )
            pool = self._pool
            return self._node(
                f"bootstrap_methods[{i}]", start, [ref, *args],
                lambda: pool.describe(ref.value),
            )

        return self._counted(
            "num_bootstrap_methods", "bootstrap_methods", 2, read_method
        )

    def _attr_method_parameters(self) -> list[Component]:
        def read_parameter(i: int) -> Component:
            start = self._cursor.position
            name = self._cp_u2("name_index", _UTF8, optional=True)
            flags = self._u2(
                "access_flags", lambda v: access_flags_str(v, PARAMETER_FLAGS)
            )
            return self._node(
                f"parameters[{i}]", start, [name, flags], name.description
            )

        return self._counted("parameters_count", "parameters", 1, read_parameter)

    def _attr_nest_host(self) -> list[Component]:
        return [self._cp_u2("host_class_index", _CLASS)]

    def _attr_nest_members(self) -> list[Component]:
        return self._counted(
            "number_of_classes", "classes", 2,
            lambda i: self._cp_u2(f"classes[{i}]", _CLASS),
        )


#: Attribute name -> body reader.  Readers run inside a window of exactly
#: ``attribute_length`` bytes.
ATTRIBUTE_READERS: dict[str, Callable[[ClassFileDecoder], list[Component]]] = {
    "ConstantValue": ClassFileDecoder._attr_constant_value,
    "Code": ClassFileDecoder._attr_code,
    "Exceptions": ClassFileDecoder._attr_exceptions,
    "InnerClasses": ClassFileDecoder._attr_inner_classes,
    "EnclosingMethod": ClassFileDecoder._attr_enclosing_method,
    "Synthetic": ClassFileDecoder._attr_marker,
    "Deprecated": ClassFileDecoder._attr_marker,
    "Signature": ClassFileDecoder._attr_signature,
    "SourceFile": ClassFileDecoder._attr_source_file,
    "SourceDebugExtension": ClassFileDecoder._attr_source_debug_extension,
    "LineNumberTable": ClassFileDecoder._attr_line_number_table,
    "LocalVariableTable": ClassFileDecoder._attr_local_variable_table,
    "LocalVariableTypeTable": ClassFileDecoder._attr_local_variable_type_table,
    "BootstrapMethods": ClassFileDecoder._attr_bootstrap_methods,
    "MethodParameters": ClassFileDecoder._attr_method_parameters,
    "NestHost": ClassFileDecoder._attr_nest_host,
    "NestMembers": ClassFileDecoder._attr_nest_members,
}


def decode_class(
    data: bytes,
    *,
    config: DecoderConfig | None = None,
    logger: ClasspyLogger | None = None,
) -> Component:
    """Decode a JVM class file into a component tree."""
    return ClassFileDecoder(data, config=config, logger=logger).decode()
