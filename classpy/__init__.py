"""
classpy -- Structural Artifact Inspector
=========================================

classpy decodes compiled artifacts into a navigable tree of components.
Every component names a region of the input, carries a one-line
description and owns the components found inside that region, so the
tree can be shown beside a hex view or exported as JSON.

Supported formats:
    - JVM class files (constant pool, members, attributes, bytecode)
    - Android dex files (header and the six id tables)
    - Lua 5.3 compiled chunks (function prototypes and instructions)

References:
    - Lindholm, T. et al. (2023). The Java Virtual Machine Specification, SE 21, Ch. 4 and 6.
    - Google. (2024). Dalvik Executable Format.
    - Ierusalimschy, R. et al. (2015). Lua 5.3 Reference Manual; lundump.c / lopcodes.h.
"""

from classpy.core.component import Component
from classpy.core.engine import InspectorEngine
from classpy.parsers.classfile import decode_class
from classpy.parsers.dexfile import decode_dex
from classpy.parsers.luac import decode_luac

__version__ = "1.0.0"
__all__ = [
    "Component",
    "InspectorEngine",
    "decode_class",
    "decode_dex",
    "decode_luac",
]
