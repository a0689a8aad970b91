"""
Class File Constant Pool
=========================

Tagged constant-pool entries and the resolver that renders them.

Entries are stored in a 1-indexed :class:`~classpy.core.symbols.SymbolTable`;
``Long`` and ``Double`` entries take two slots, the second being an unusable
hole.  References between entries are kept as raw indices and resolved by
lookup when a description is first requested, so forward references (an
entry pointing at a later index) resolve exactly like backward ones.

References:
    - Lindholm, T. et al. (2014). The Java Virtual Machine Specification,
      Java SE 8 Edition. Section 4.4, The Constant Pool.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from classpy.core.decoder import cut
from classpy.core.errors import InvalidConstantReference
from classpy.core.symbols import SymbolTable


class ConstantTag(enum.IntEnum):
    """Constant pool tag bytes."""
    UTF8 = 1
    INTEGER = 3
    FLOAT = 4
    LONG = 5
    DOUBLE = 6
    CLASS = 7
    STRING = 8
    FIELDREF = 9
    METHODREF = 10
    INTERFACE_METHODREF = 11
    NAME_AND_TYPE = 12
    METHOD_HANDLE = 15
    METHOD_TYPE = 16
    INVOKE_DYNAMIC = 18

    @property
    def label(self) -> str:
        return _TAG_LABELS[self]


_TAG_LABELS: dict[ConstantTag, str] = {
    ConstantTag.UTF8: "Utf8",
    ConstantTag.INTEGER: "Integer",
    ConstantTag.FLOAT: "Float",
    ConstantTag.LONG: "Long",
    ConstantTag.DOUBLE: "Double",
    ConstantTag.CLASS: "Class",
    ConstantTag.STRING: "String",
    ConstantTag.FIELDREF: "Fieldref",
    ConstantTag.METHODREF: "Methodref",
    ConstantTag.INTERFACE_METHODREF: "InterfaceMethodref",
    ConstantTag.NAME_AND_TYPE: "NameAndType",
    ConstantTag.METHOD_HANDLE: "MethodHandle",
    ConstantTag.METHOD_TYPE: "MethodType",
    ConstantTag.INVOKE_DYNAMIC: "InvokeDynamic",
}

# Field layout of each entry after the tag byte.  Kinds:
#   "ref"    u2 index into the pool (checked against _REF_KINDS)
#   "length" u2 byte count of the following "mutf8" field
#   "mutf8"  modified UTF-8 bytes
#   "u1"/"u2"/"s4"/"f4"/"s8"/"f8" plain scalars
CONSTANT_LAYOUTS: dict[ConstantTag, tuple[tuple[str, str], ...]] = {
    ConstantTag.UTF8: (("length", "length"), ("bytes", "mutf8")),
    ConstantTag.INTEGER: (("bytes", "s4"),),
    ConstantTag.FLOAT: (("bytes", "f4"),),
    ConstantTag.LONG: (("bytes", "s8"),),
    ConstantTag.DOUBLE: (("bytes", "f8"),),
    ConstantTag.CLASS: (("name_index", "ref"),),
    ConstantTag.STRING: (("string_index", "ref"),),
    ConstantTag.FIELDREF: (("class_index", "ref"), ("name_and_type_index", "ref")),
    ConstantTag.METHODREF: (("class_index", "ref"), ("name_and_type_index", "ref")),
    ConstantTag.INTERFACE_METHODREF: (("class_index", "ref"), ("name_and_type_index", "ref")),
    ConstantTag.NAME_AND_TYPE: (("name_index", "ref"), ("descriptor_index", "ref")),
    ConstantTag.METHOD_HANDLE: (("reference_kind", "u1"), ("reference_index", "ref")),
    ConstantTag.METHOD_TYPE: (("descriptor_index", "ref"),),
    ConstantTag.INVOKE_DYNAMIC: (("bootstrap_method_attr_index", "u2"), ("name_and_type_index", "ref")),
}

_MEMBER_REFS = (ConstantTag.FIELDREF, ConstantTag.METHODREF, ConstantTag.INTERFACE_METHODREF)

# Acceptable target tags for each "ref" field, in layout order.
_REF_KINDS: dict[ConstantTag, tuple[tuple[ConstantTag, ...], ...]] = {
    ConstantTag.CLASS: ((ConstantTag.UTF8,),),
    ConstantTag.STRING: ((ConstantTag.UTF8,),),
    ConstantTag.FIELDREF: ((ConstantTag.CLASS,), (ConstantTag.NAME_AND_TYPE,)),
    ConstantTag.METHODREF: ((ConstantTag.CLASS,), (ConstantTag.NAME_AND_TYPE,)),
    ConstantTag.INTERFACE_METHODREF: ((ConstantTag.CLASS,), (ConstantTag.NAME_AND_TYPE,)),
    ConstantTag.NAME_AND_TYPE: ((ConstantTag.UTF8,), (ConstantTag.UTF8,)),
    ConstantTag.METHOD_HANDLE: (_MEMBER_REFS,),
    ConstantTag.METHOD_TYPE: ((ConstantTag.UTF8,),),
    ConstantTag.INVOKE_DYNAMIC: ((ConstantTag.NAME_AND_TYPE,),),
}

#: Entries that occupy two pool slots.
WIDE_TAGS: frozenset[ConstantTag] = frozenset({ConstantTag.LONG, ConstantTag.DOUBLE})

#: Tags loadable by ``ldc`` / ``ldc_w`` and usable as bootstrap arguments.
LOADABLE_TAGS: tuple[ConstantTag, ...] = (
    ConstantTag.INTEGER, ConstantTag.FLOAT, ConstantTag.LONG, ConstantTag.DOUBLE,
    ConstantTag.CLASS, ConstantTag.STRING,
    ConstantTag.METHOD_HANDLE, ConstantTag.METHOD_TYPE,
)

REFERENCE_KINDS: dict[int, str] = {
    1: "REF_getField",
    2: "REF_getStatic",
    3: "REF_putField",
    4: "REF_putStatic",
    5: "REF_invokeVirtual",
    6: "REF_invokeStatic",
    7: "REF_invokeSpecial",
    8: "REF_newInvokeSpecial",
    9: "REF_invokeInterface",
}


@dataclass(frozen=True, slots=True)
class ConstantEntry:
    """One decoded pool entry.

    Attributes:
        tag: Entry variant.
        offset: Buffer offset of the tag byte.
        refs: ``(index, field_offset)`` for each "ref" field, in order.
        value: Literal value (Utf8 text, numbers), the MethodHandle
            reference kind, or the InvokeDynamic bootstrap index.
    """
    tag: ConstantTag
    offset: int
    refs: tuple[tuple[int, int], ...] = ()
    value: Any = None


class ConstantPool(SymbolTable[ConstantEntry]):
    """1-indexed constant pool with memoised, recursive descriptions."""

    def __init__(self, *, description_limit: int = 100) -> None:
        super().__init__("constant_pool", base=1, kind_of=lambda e: e.tag)
        self._limit = description_limit
        self._cache: dict[int, str] = {}

    # ------------------------------------------------------------------ #
    #  Validation
    # ------------------------------------------------------------------ #

    def validate(self) -> None:
        """Check every intra-pool reference once the pool is complete.

        Raises:
            InvalidConstantReference: A reference is out of range, hits
                the hole after a Long/Double, or has the wrong tag.
        """
        for _index, entry in self:
            for (ref, field_offset), kinds in zip(entry.refs, _REF_KINDS.get(entry.tag, ())):
                self.get(ref, *kinds, offset=field_offset)

    # ------------------------------------------------------------------ #
    #  Typed accessors
    # ------------------------------------------------------------------ #

    def utf8(self, index: int, *, offset: int | None = None) -> str:
        return self.get(index, ConstantTag.UTF8, offset=offset).value

    def class_name(self, index: int, *, offset: int | None = None) -> str:
        entry = self.get(index, ConstantTag.CLASS, offset=offset)
        return self.utf8(entry.refs[0][0])

    # ------------------------------------------------------------------ #
    #  Descriptions
    # ------------------------------------------------------------------ #

    def describe(self, index: int) -> str:
        """Render entry *index*, resolving the indices it carries.

        Safe to call from several threads: the chain of indices being
        resolved travels with the call, and the memo only ever receives
        the same text for a given index.
        """
        return self._describe(index, frozenset())

    def _describe(self, index: int, chain: frozenset[int]) -> str:
        cached = self._cache.get(index)
        if cached is not None:
            return cached
        if index in chain:
            raise InvalidConstantReference(
                f"constant_pool reference cycle through index {index}"
            )
        text = self._render(self.get(index), chain | {index})
        self._cache[index] = text
        return text

    def _render(self, entry: ConstantEntry, chain: frozenset[int]) -> str:
        tag = entry.tag
        refs = [ref for ref, _off in entry.refs]
        if tag is ConstantTag.UTF8:
            return cut(entry.value, self._limit)
        if tag is ConstantTag.FLOAT:
            return format(entry.value, ".9g")
        if tag in (ConstantTag.INTEGER, ConstantTag.LONG, ConstantTag.DOUBLE):
            return repr(entry.value)
        if tag in (ConstantTag.CLASS, ConstantTag.METHOD_TYPE):
            return self.utf8(refs[0])
        if tag is ConstantTag.STRING:
            return cut(self.utf8(refs[0]), self._limit)
        if tag is ConstantTag.NAME_AND_TYPE:
            return f"{self.utf8(refs[0])}:{self.utf8(refs[1])}"
        if tag in _MEMBER_REFS:
            return f"{self._describe(refs[0], chain)}.{self._describe(refs[1], chain)}"
        if tag is ConstantTag.METHOD_HANDLE:
            kind = REFERENCE_KINDS.get(entry.value, f"REF_{entry.value}")
            return f"{kind} {self._describe(refs[0], chain)}"
        # INVOKE_DYNAMIC
        return f"#{entry.value}:{self._describe(refs[0], chain)}"

    def describe_entry(self, index: int) -> str:
        """Tag label plus rendered value, e.g. ``Class java/lang/Object``."""
        return f"{self.get(index).tag.label} {self.describe(index)}"

    def describe_ref(self, index: int) -> str:
        """Render a reference field value, e.g. ``#7 -> java/lang/Object``."""
        if index == 0:
            return "#0 (none)"
        return f"#{index} -> {self.describe(index)}"
