"""
Symbol Tables
==============

Index-addressable entry tables used to resolve cross references between
decoded structures: the class-file constant pool, the six dex id tables
and the per-prototype Lua constant tables.

A table is filled completely while decoding and only consulted afterwards,
so lookups never observe a partially populated structure.  Out-of-range
indices, holes (the unusable slot after a class-file Long/Double) and
entries of the wrong kind raise :class:`InvalidConstantReference`.
"""

from __future__ import annotations

from typing import Callable, Generic, Iterator, Optional, TypeVar

from classpy.core.errors import InvalidConstantReference

T = TypeVar("T")


class SymbolTable(Generic[T]):
    """An ordered, append-only table addressed by index.

    Args:
        name: Table name used in error messages (``"constant_pool"``...).
        base: Index of the first slot (1 for the constant pool, else 0).
        kind_of: Optional function returning the kind label of an entry,
            used to check expected kinds in :meth:`get`.
    """

    def __init__(
        self,
        name: str,
        *,
        base: int = 0,
        kind_of: Callable[[T], object] | None = None,
    ) -> None:
        self.name = name
        self.base = base
        self._kind_of = kind_of
        self._slots: list[Optional[T]] = []

    def append(self, entry: T) -> int:
        """Add *entry* and return its index."""
        self._slots.append(entry)
        return self.base + len(self._slots) - 1

    def append_hole(self) -> int:
        """Reserve an unusable index (Long/Double second slot)."""
        self._slots.append(None)
        return self.base + len(self._slots) - 1

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[tuple[int, T]]:
        """Iterate ``(index, entry)`` pairs, skipping holes."""
        for pos, entry in enumerate(self._slots):
            if entry is not None:
                yield self.base + pos, entry

    def __contains__(self, index: object) -> bool:
        if not isinstance(index, int):
            return False
        pos = index - self.base
        return 0 <= pos < len(self._slots) and self._slots[pos] is not None

    @property
    def limit(self) -> int:
        """One past the highest valid index."""
        return self.base + len(self._slots)

    def get(self, index: int, *kinds: object, offset: int | None = None) -> T:
        """Return the entry at *index*.

        Args:
            index: Table index.
            *kinds: Acceptable entry kinds.  Empty means any kind.
            offset: Buffer offset of the referencing field, for errors.

        Raises:
            InvalidConstantReference: Index out of range, a hole, or an
                entry whose kind is not in *kinds*.
        """
        pos = index - self.base
        if not 0 <= pos < len(self._slots):
            raise InvalidConstantReference(
                f"{self.name} index out of range",
                offset=offset,
                expected=f"{self.base}..{self.limit - 1}",
                actual=index,
            )
        entry = self._slots[pos]
        if entry is None:
            raise InvalidConstantReference(
                f"{self.name} index {index} is an unusable slot",
                offset=offset,
            )
        if kinds and self._kind_of is not None:
            kind = self._kind_of(entry)
            if kind not in kinds:
                raise InvalidConstantReference(
                    f"{self.name} index {index} has the wrong kind",
                    offset=offset,
                    expected=" | ".join(_kind_label(k) for k in kinds),
                    actual=_kind_label(kind),
                )
        return entry


def _kind_label(kind: object) -> str:
    return getattr(kind, "name", str(kind))
