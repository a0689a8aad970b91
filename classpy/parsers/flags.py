"""
Access Flags
=============

Access-flag bit tables for JVM classes, fields, methods and inner classes,
and for dex class/field/method definitions.  Several bits are overloaded
by context (``0x0040`` is ``volatile`` on a field and ``bridge`` on a
method), which is why each context carries its own table.

References:
    - The Java Virtual Machine Specification, Tables 4.1-B, 4.5-A,
      4.6-A and 4.7.6-A.
    - Google. (2024). DEX Format, access_flags definitions.
      https://source.android.com/docs/core/runtime/dex-format
"""

from __future__ import annotations

ACC_PUBLIC: int = 0x0001
ACC_PRIVATE: int = 0x0002
ACC_PROTECTED: int = 0x0004
ACC_STATIC: int = 0x0008
ACC_FINAL: int = 0x0010
ACC_SUPER: int = 0x0020         # class
ACC_SYNCHRONIZED: int = 0x0020  # method
ACC_VOLATILE: int = 0x0040      # field
ACC_BRIDGE: int = 0x0040        # method
ACC_TRANSIENT: int = 0x0080     # field
ACC_VARARGS: int = 0x0080       # method
ACC_NATIVE: int = 0x0100
ACC_INTERFACE: int = 0x0200
ACC_ABSTRACT: int = 0x0400
ACC_STRICT: int = 0x0800
ACC_SYNTHETIC: int = 0x1000
ACC_ANNOTATION: int = 0x2000
ACC_ENUM: int = 0x4000
ACC_MODULE: int = 0x8000
ACC_MANDATED: int = 0x8000      # parameter

FlagTable = tuple[tuple[int, str], ...]

CLASS_FLAGS: FlagTable = (
    (ACC_PUBLIC, "public"),
    (ACC_FINAL, "final"),
    (ACC_SUPER, "super"),
    (ACC_INTERFACE, "interface"),
    (ACC_ABSTRACT, "abstract"),
    (ACC_SYNTHETIC, "synthetic"),
    (ACC_ANNOTATION, "annotation"),
    (ACC_ENUM, "enum"),
    (ACC_MODULE, "module"),
)

FIELD_FLAGS: FlagTable = (
    (ACC_PUBLIC, "public"),
    (ACC_PRIVATE, "private"),
    (ACC_PROTECTED, "protected"),
    (ACC_STATIC, "static"),
    (ACC_FINAL, "final"),
    (ACC_VOLATILE, "volatile"),
    (ACC_TRANSIENT, "transient"),
    (ACC_SYNTHETIC, "synthetic"),
    (ACC_ENUM, "enum"),
)

METHOD_FLAGS: FlagTable = (
    (ACC_PUBLIC, "public"),
    (ACC_PRIVATE, "private"),
    (ACC_PROTECTED, "protected"),
    (ACC_STATIC, "static"),
    (ACC_FINAL, "final"),
    (ACC_SYNCHRONIZED, "synchronized"),
    (ACC_BRIDGE, "bridge"),
    (ACC_VARARGS, "varargs"),
    (ACC_NATIVE, "native"),
    (ACC_ABSTRACT, "abstract"),
    (ACC_STRICT, "strict"),
    (ACC_SYNTHETIC, "synthetic"),
)

INNER_CLASS_FLAGS: FlagTable = (
    (ACC_PUBLIC, "public"),
    (ACC_PRIVATE, "private"),
    (ACC_PROTECTED, "protected"),
    (ACC_STATIC, "static"),
    (ACC_FINAL, "final"),
    (ACC_INTERFACE, "interface"),
    (ACC_ABSTRACT, "abstract"),
    (ACC_SYNTHETIC, "synthetic"),
    (ACC_ANNOTATION, "annotation"),
    (ACC_ENUM, "enum"),
)

PARAMETER_FLAGS: FlagTable = (
    (ACC_FINAL, "final"),
    (ACC_SYNTHETIC, "synthetic"),
    (ACC_MANDATED, "mandated"),
)

DEX_CLASS_FLAGS: FlagTable = (
    (ACC_PUBLIC, "public"),
    (ACC_PRIVATE, "private"),
    (ACC_PROTECTED, "protected"),
    (ACC_STATIC, "static"),
    (ACC_FINAL, "final"),
    (ACC_INTERFACE, "interface"),
    (ACC_ABSTRACT, "abstract"),
    (ACC_SYNTHETIC, "synthetic"),
    (ACC_ANNOTATION, "annotation"),
    (ACC_ENUM, "enum"),
)


def access_flags_str(flags: int, table: FlagTable) -> str:
    """Render *flags* as hex plus keywords, e.g. ``0x0021 public super``.

    Args:
        flags: Access flags bitmask.
        table: ``(bit, keyword)`` pairs for the flag context.

    Returns:
        The hex value followed by the space-separated set keywords.
    """
    parts = [f"0x{flags:04x}"]
    for flag_val, flag_name in table:
        if flags & flag_val:
            parts.append(flag_name)
    return " ".join(parts)
