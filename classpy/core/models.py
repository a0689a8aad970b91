"""
classpy Data Models
====================

Pydantic models describing an inspection run: what was read, how it was
decoded, how long it took and, when decoding failed, why.  The decoded
:class:`~classpy.core.component.Component` tree itself is carried on the
result but excluded from serialisation; :class:`ComponentView` is its
JSON-friendly snapshot.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from classpy.core.component import Component
from classpy.core.errors import DecodeError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ArtifactFormat(str, enum.Enum):
    """Artifact formats with a decoder."""
    CLASS = "class"
    DEX = "dex"
    LUAC = "luac"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class ArtifactInfo(BaseModel):
    """Metadata about the inspected file.

    Attributes:
        path: Filesystem path (resolved), empty for in-memory buffers.
        size: Size in bytes.
        format: Decoder used.
        file_type: Description from magic-byte identification.
        md5: Hex MD5 digest.
        sha256: Hex SHA-256 digest.
    """
    path: str = ""
    size: int = 0
    format: ArtifactFormat = ArtifactFormat.UNKNOWN
    file_type: str = ""
    md5: str = ""
    sha256: str = ""


class DecodeFailure(BaseModel):
    """Serialisable form of a decode error."""
    kind: str
    message: str
    offset: Optional[int] = None
    expected: Optional[str] = None
    actual: Optional[str] = None

    @classmethod
    def from_error(cls, error: DecodeError) -> DecodeFailure:
        return cls(
            kind=error.kind,
            message=error.message,
            offset=error.offset,
            expected=None if error.expected is None else str(error.expected),
            actual=None if error.actual is None else str(error.actual),
        )

    def __str__(self) -> str:
        text = f"{self.kind}: {self.message}"
        if self.offset is not None:
            text += f" at offset 0x{self.offset:x}"
        if self.expected is not None or self.actual is not None:
            text += f" (expected {self.expected}, got {self.actual})"
        return text


class ComponentView(BaseModel):
    """Snapshot of a component subtree for JSON export."""
    name: str
    description: str
    offset: int
    length: int
    children: list[ComponentView] = Field(default_factory=list)
    truncated: bool = False

    @classmethod
    def from_component(
        cls, node: Component, max_depth: Optional[int] = None
    ) -> ComponentView:
        """Build a view of *node*, cutting the tree below *max_depth*.

        Args:
            node: Subtree root.
            max_depth: Levels of children to include; ``None`` for all.
        """
        if max_depth is not None and max_depth <= 0:
            children: list[ComponentView] = []
            truncated = bool(node.children)
        else:
            next_depth = None if max_depth is None else max_depth - 1
            children = [cls.from_component(c, next_depth) for c in node.children]
            truncated = False
        return cls(
            name=node.name,
            description=node.description,
            offset=node.offset,
            length=node.length,
            children=children,
            truncated=truncated,
        )


class InspectionResult(BaseModel):
    """Outcome of inspecting one artifact."""
    info: ArtifactInfo = Field(default_factory=ArtifactInfo)
    started: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed_seconds: float = 0.0
    node_count: int = 0
    failure: Optional[DecodeFailure] = None
    root: Optional[Any] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.failure is None and self.root is not None
