"""
classpy Inspection Engine
==========================

Front door of the decoding core.  :meth:`InspectorEngine.decode` runs the
decoder for an explicitly named format over an in-memory buffer and
returns the component tree, propagating any :class:`DecodeError`.
:meth:`InspectorEngine.inspect` adds the file plumbing around it: it reads
the file, enforces the configured size limit, computes digests, optionally
sniffs the format, times the decode and folds a decode error into the
returned :class:`InspectionResult` instead of raising.

Pipeline:
    1. Read file and compute hashes (MD5, SHA-256)
    2. Resolve the format (explicit, or magic bytes for ``auto``)
    3. Decode into a component tree
    4. Record node count and elapsed time
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable

from shared.config import ClasspyConfig
from shared.logger import ClasspyLogger

from classpy.core.component import Component
from classpy.core.errors import DecodeError
from classpy.core.models import (
    ArtifactFormat,
    ArtifactInfo,
    DecodeFailure,
    InspectionResult,
)
from classpy.parsers.classfile import decode_class
from classpy.parsers.dexfile import decode_dex
from classpy.parsers.luac import decode_luac
from classpy.parsers.magic import MagicIdentifier


Decoder = Callable[..., Component]

_DECODERS: dict[ArtifactFormat, Decoder] = {
    ArtifactFormat.CLASS: decode_class,
    ArtifactFormat.DEX: decode_dex,
    ArtifactFormat.LUAC: decode_luac,
}


class InspectorEngine:
    """Dispatches buffers and files to the format decoders.

    Usage::

        engine = InspectorEngine()
        root = engine.decode(data, ArtifactFormat.CLASS)
        result = engine.inspect("Foo.class")
        if result.ok:
            print(result.root.description)
    """

    def __init__(
        self,
        config: ClasspyConfig | None = None,
        logger: ClasspyLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: classpy configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._config: ClasspyConfig = config or ClasspyConfig()
        self._logger: ClasspyLogger = logger or ClasspyLogger(
            "engine", log_level=self._config.global_settings.log_level
        )
        self._magic: MagicIdentifier = MagicIdentifier()

    # ------------------------------------------------------------------ #
    #  Decoding
    # ------------------------------------------------------------------ #

    def decode(self, data: bytes, fmt: ArtifactFormat | str) -> Component:
        """Decode *data* as *fmt* and return the root component.

        Raises:
            ValueError: *fmt* names no decoder.
            DecodeError: The buffer is malformed; no partial tree exists.
        """
        fmt = ArtifactFormat(fmt)
        try:
            decoder = _DECODERS[fmt]
        except KeyError:
            raise ValueError(f"No decoder for format: {fmt.value}") from None
        with self._logger.operation(f"decode_{fmt.value}"):
            return decoder(data, config=self._config.decoder, logger=self._logger)

    def detect_format(self, data: bytes) -> ArtifactFormat:
        return self._magic.identify_format(data)

    # ------------------------------------------------------------------ #
    #  File inspection
    # ------------------------------------------------------------------ #

    def inspect(
        self, file_path: str | Path, fmt: ArtifactFormat | str = "auto"
    ) -> InspectionResult:
        """Read and decode one file.

        Args:
            file_path: Path to the artifact.
            fmt: A format name, or ``"auto"`` to sniff the magic bytes.

        Returns:
            An :class:`InspectionResult`; ``failure`` is set instead of
            ``root`` when the file is too large, unrecognised or malformed.

        Raises:
            FileNotFoundError: *file_path* does not exist.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")

        result = InspectionResult()
        result.info.path = str(path.resolve())
        result.info.size = path.stat().st_size
        self._logger.info(f"Inspecting {path}")

        max_size = self._config.decoder.max_file_size
        if result.info.size > max_size:
            result.failure = DecodeFailure(
                kind="FileTooLarge",
                message=f"File too large: {result.info.size:,} bytes (max: {max_size:,} bytes)",
            )
            self._logger.warning(result.failure.message)
            return result

        data = path.read_bytes()
        self._fill_info(result.info, data)
        self.decode_into(result, data, fmt)
        return result

    def decode_into(
        self, result: InspectionResult, data: bytes, fmt: ArtifactFormat | str = "auto"
    ) -> InspectionResult:
        """Decode *data* and record the outcome on *result*."""
        resolved = self.detect_format(data) if fmt == "auto" else ArtifactFormat(fmt)
        result.info.format = resolved
        if resolved is ArtifactFormat.UNKNOWN:
            result.failure = DecodeFailure(
                kind="UnknownFormat",
                message=f"Unrecognised file type: {self._magic.identify(data)}",
            )
            self._logger.warning(result.failure.message)
            return result

        with self._logger.timed(f"decode {resolved.value}") as timer:
            try:
                root = self.decode(data, resolved)
            except DecodeError as exc:
                result.failure = DecodeFailure.from_error(exc)
                self._logger.error(f"Decode failed: {exc}")
                root = None
        result.elapsed_seconds = timer.elapsed
        if root is not None:
            result.root = root
            result.node_count = sum(1 for _ in root.walk())
            self._logger.info(
                f"Decoded {result.node_count} components from {len(data):,} bytes"
            )
        return result

    def _fill_info(self, info: ArtifactInfo, data: bytes) -> None:
        info.size = len(data)
        info.file_type = self._magic.identify(data)
        info.md5 = hashlib.md5(data).hexdigest()
        info.sha256 = hashlib.sha256(data).hexdigest()
