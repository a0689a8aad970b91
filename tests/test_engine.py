from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from shared.config import ClasspyConfig
from shared.logger import ClasspyLogger

from classpy.core.engine import InspectorEngine
from classpy.core.errors import InvalidSignature
from classpy.core.models import ArtifactFormat, DecodeFailure

from builders import hello_class, hello_dex, hello_lua


@pytest.fixture()
def engine() -> InspectorEngine:
    return InspectorEngine(logger=ClasspyLogger("test.engine", console_output=False))


def _write(tmp_path: Path, name: str, data: bytes) -> Path:
    path = tmp_path / name
    path.write_bytes(data)
    return path


def test_decode_by_format(engine: InspectorEngine) -> None:
    assert engine.decode(hello_class(), ArtifactFormat.CLASS).name == "class_file"
    assert engine.decode(hello_dex(), "dex").name == "dex_file"
    assert engine.decode(hello_lua(), "luac").name == "luac_file"


def test_decode_propagates_errors(engine: InspectorEngine) -> None:
    with pytest.raises(InvalidSignature):
        engine.decode(hello_class(), "dex")


def test_decode_unknown_format(engine: InspectorEngine) -> None:
    with pytest.raises(ValueError):
        engine.decode(b"", "unknown")
    with pytest.raises(ValueError):
        engine.decode(b"", "elf")


@pytest.mark.parametrize("data, fmt", [
    (hello_class(), ArtifactFormat.CLASS),
    (hello_dex(), ArtifactFormat.DEX),
    (hello_lua(), ArtifactFormat.LUAC),
    (b"\x7fELF", ArtifactFormat.UNKNOWN),
    (b"", ArtifactFormat.UNKNOWN),
])
def test_detect_format(engine: InspectorEngine, data: bytes, fmt: ArtifactFormat) -> None:
    assert engine.detect_format(data) is fmt


def test_inspect_auto(engine: InspectorEngine, tmp_path: Path) -> None:
    data = hello_class()
    result = engine.inspect(_write(tmp_path, "Hello.class", data))
    assert result.ok
    assert result.info.format is ArtifactFormat.CLASS
    assert result.info.file_type == "Java class file"
    assert result.info.size == len(data)
    assert result.info.sha256 == hashlib.sha256(data).hexdigest()
    assert result.node_count == sum(1 for _ in result.root.walk())
    assert result.elapsed_seconds >= 0


def test_inspect_reports_decode_failure(engine: InspectorEngine, tmp_path: Path) -> None:
    path = _write(tmp_path, "Broken.class", hello_class()[:30])
    result = engine.inspect(path)
    assert not result.ok
    assert result.root is None
    assert result.failure.kind == "UnexpectedEndOfBuffer"
    assert result.failure.offset is not None


def test_inspect_explicit_format_mismatch(engine: InspectorEngine, tmp_path: Path) -> None:
    result = engine.inspect(_write(tmp_path, "x.dex", hello_class()), "dex")
    assert result.failure.kind == "InvalidSignature"
    assert "InvalidSignature" in str(result.failure)


def test_inspect_unknown_format(engine: InspectorEngine, tmp_path: Path) -> None:
    result = engine.inspect(_write(tmp_path, "x.bin", b"\x00" * 16))
    assert result.failure.kind == "UnknownFormat"


def test_inspect_too_large(tmp_path: Path) -> None:
    config = ClasspyConfig()
    config.decoder.max_file_size = 8
    engine = InspectorEngine(config, ClasspyLogger("test.engine", console_output=False))
    result = engine.inspect(_write(tmp_path, "Hello.class", hello_class()))
    assert result.failure.kind == "FileTooLarge"


def test_inspect_missing_file(engine: InspectorEngine, tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        engine.inspect(tmp_path / "missing.class")


def test_failure_serialisation() -> None:
    error = InvalidSignature("Not a class file", offset=0, expected="0xCAFEBABE", actual="0x00000000")
    failure = DecodeFailure.from_error(error)
    assert failure.model_dump() == {
        "kind": "InvalidSignature",
        "message": "Not a class file",
        "offset": 0,
        "expected": "0xCAFEBABE",
        "actual": "0x00000000",
    }
    assert str(failure) == str(error).replace("Not a class file", "InvalidSignature: Not a class file")
