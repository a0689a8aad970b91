"""
Decode Errors
==============

Exception hierarchy raised by the classpy decoders.  Every error is fatal
to the unit being decoded: a malformed artifact never yields a partially
populated tree.  Errors carry the buffer offset at which decoding failed
and, where meaningful, what was expected versus what was found, so that a
presentation layer can report them without re-parsing anything.
"""

from __future__ import annotations

from typing import Any


class DecodeError(Exception):
    """Base class for all decode failures.

    Attributes:
        message: Human-readable explanation.
        offset: Buffer offset where the failure was detected, if known.
        expected: What the decoder required (width, tag set, length...).
        actual: What the input provided instead.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: int | None = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        self.message = message
        self.offset = offset
        self.expected = expected
        self.actual = actual
        super().__init__(str(self))

    def __str__(self) -> str:
        parts = [self.message]
        if self.offset is not None:
            parts.append(f"at offset 0x{self.offset:x}")
        if self.expected is not None or self.actual is not None:
            parts.append(f"(expected {self.expected}, got {self.actual})")
        return " ".join(parts)

    @property
    def kind(self) -> str:
        """Short error-kind label, e.g. ``"TruncatedCode"``."""
        return type(self).__name__


class UnexpectedEndOfBuffer(DecodeError):
    """A read asked for more bytes than remain in the buffer."""


class InvalidSignature(DecodeError):
    """The artifact does not start with the magic of the requested format."""


class UnsupportedConstantTag(DecodeError):
    """A class-file constant pool entry carries an unknown tag byte."""


class UnsupportedAttributeName(DecodeError):
    """No decoder is registered for an attribute name.

    Recovered by the class decoder, which keeps the attribute as an
    opaque blob of its declared length.
    """


class UnsupportedOpcode(DecodeError):
    """An instruction opcode has no entry in the opcode table."""


class InvalidConstantReference(DecodeError):
    """An index points outside its table, at an unusable slot, or at an
    entry of the wrong kind."""


class TruncatedCode(DecodeError):
    """Instructions do not exactly fill the declared code length."""


class MalformedStructure(DecodeError):
    """A structure is internally inconsistent (length mismatch, bad
    switch bounds, invalid modified UTF-8...)."""


class NestingTooDeep(DecodeError):
    """Nested function prototypes exceed the configured depth limit."""
