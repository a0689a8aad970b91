"""
Magic Number Format Identification
===================================

Guesses which decoder applies to a buffer by examining its leading bytes.
Used only by the CLI's ``--format auto``; the decoders themselves are
always told which format to expect and never sniff.

The first match in the signature table wins, so more specific signatures
(a Lua 5.3 chunk) precede more general ones (any Lua chunk).

References:
    - Gary Kessler's File Signatures Table.
      https://www.garykessler.net/library/file_sigs.html
    - ``file(1)`` command magic database. https://github.com/file/file
"""

from __future__ import annotations

from dataclasses import dataclass

from classpy.core.models import ArtifactFormat


@dataclass(frozen=True, slots=True)
class _Signature:
    """A single file-type magic signature entry.

    Attributes:
        magic: Byte pattern to match.
        offset: Byte offset within the file where *magic* is expected.
        description: Human-readable type description.
        format: Decoder that handles the file, if any.
    """
    magic: bytes
    offset: int
    description: str
    format: ArtifactFormat


_SIGNATURES: list[_Signature] = [
    _Signature(b"\xca\xfe\xba\xbe", 0, "Java class file", ArtifactFormat.CLASS),
    _Signature(b"dex\n039\x00", 0, "Android DEX (version 039)", ArtifactFormat.DEX),
    _Signature(b"dex\n038\x00", 0, "Android DEX (version 038)", ArtifactFormat.DEX),
    _Signature(b"dex\n037\x00", 0, "Android DEX (version 037)", ArtifactFormat.DEX),
    _Signature(b"dex\n036\x00", 0, "Android DEX (version 036)", ArtifactFormat.DEX),
    _Signature(b"dex\n035\x00", 0, "Android DEX (version 035)", ArtifactFormat.DEX),
    _Signature(b"dex\n", 0, "Android DEX", ArtifactFormat.DEX),
    _Signature(b"\x1bLua\x53", 0, "Lua 5.3 bytecode", ArtifactFormat.LUAC),
    _Signature(b"\x1bLua", 0, "Lua bytecode", ArtifactFormat.LUAC),
]


class MagicIdentifier:
    """Identify class, dex and luac buffers by their magic bytes.

    Usage::

        identifier = MagicIdentifier()
        identifier.identify(raw_bytes)          # => "Java class file"
        identifier.identify_format(raw_bytes)   # => ArtifactFormat.CLASS
    """

    def __init__(self) -> None:
        self._signatures: list[_Signature] = list(_SIGNATURES)

    def _match(self, data: bytes) -> _Signature | None:
        for sig in self._signatures:
            end = sig.offset + len(sig.magic)
            if end <= len(data) and data[sig.offset:end] == sig.magic:
                return sig
        return None

    def identify(self, data: bytes) -> str:
        """Return a human-readable type description for *data*."""
        if not data:
            return "Empty file"
        sig = self._match(data)
        return sig.description if sig is not None else "Unknown binary"

    def identify_format(self, data: bytes) -> ArtifactFormat:
        """Return the decoder format for *data*, or ``UNKNOWN``."""
        sig = self._match(data)
        return sig.format if sig is not None else ArtifactFormat.UNKNOWN
