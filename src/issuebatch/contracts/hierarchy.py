"""Hierarchy preprocessing contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class IdentifierMap:
    """Temporary identifiers found in one record set.

    Attributes:
        uid_to_index: Identifier -> row index (for parent resolution)
        index_to_uid: Row index -> identifier (for tracking and errors)
    """

    uid_to_index: dict[str, int] = field(default_factory=dict)
    index_to_uid: dict[int, str] = field(default_factory=dict)

    @property
    def has_identifiers(self) -> bool:
        return bool(self.uid_to_index)

    def __contains__(self, uid: object) -> bool:
        return uid in self.uid_to_index


@dataclass(frozen=True)
class LevelItem:
    """One record scheduled in a level.

    Attributes:
        index: Row index in the record set that was leveled
        record: Record with the identifier field stripped
        uid: The stripped identifier, if the row had one
    """

    index: int
    record: dict[str, Any]
    uid: str | None = None


@dataclass(frozen=True)
class HierarchyLevel:
    """Records sharing one depth. Depth 0 has no unresolved parent."""

    depth: int
    items: tuple[LevelItem, ...]

    def __len__(self) -> int:
        return len(self.items)

    @property
    def indices(self) -> list[int]:
        return [item.index for item in self.items]


@dataclass(frozen=True)
class PreprocessResult:
    """Output of hierarchy preprocessing.

    Attributes:
        has_hierarchy: True if any row carried an identifier
        levels: Levels in ascending depth order
        identifiers: Identifier maps (empty when has_hierarchy is False)
    """

    has_hierarchy: bool
    levels: tuple[HierarchyLevel, ...]
    identifiers: IdentifierMap = field(default_factory=IdentifierMap)

    @property
    def is_multi_level(self) -> bool:
        return self.has_hierarchy and len(self.levels) > 1
