from __future__ import annotations

import pytest

from classpy.core.models import ArtifactFormat
from classpy.parsers.magic import MagicIdentifier


@pytest.mark.parametrize("data, description, fmt", [
    (b"\xca\xfe\xba\xbe\x00\x00\x00\x34", "Java class file", ArtifactFormat.CLASS),
    (b"dex\n035\x00", "Android DEX (version 035)", ArtifactFormat.DEX),
    (b"dex\n041\x00", "Android DEX", ArtifactFormat.DEX),
    (b"\x1bLua\x53\x00", "Lua 5.3 bytecode", ArtifactFormat.LUAC),
    (b"\x1bLua\x51\x00", "Lua bytecode", ArtifactFormat.LUAC),
    (b"MZ\x90\x00", "Unknown binary", ArtifactFormat.UNKNOWN),
])
def test_identify(data: bytes, description: str, fmt: ArtifactFormat) -> None:
    ident = MagicIdentifier()
    assert ident.identify(data) == description
    assert ident.identify_format(data) is fmt


def test_empty_and_short_input() -> None:
    ident = MagicIdentifier()
    assert ident.identify(b"") == "Empty file"
    assert ident.identify_format(b"\xca\xfe") is ArtifactFormat.UNKNOWN
