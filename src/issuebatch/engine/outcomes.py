# src/issuebatch/engine/outcomes.py
"""Per-run outcome accounting and index remapping.

Three index spaces meet in the engine:
- submission-local: position in one bulk call's payload list
- record: position in the record set that was leveled
- original: position in the caller's input (differs from record on retry)

IndexMap tables translate between them explicitly. A missing entry is a
programming error and raises IndexMappingError rather than guessing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from issuebatch.contracts import IndexMappingError, ManifestUpdate, RowError, RunManifest


@dataclass(frozen=True)
class IndexMap:
    """Explicit index translation table."""

    mapping: Mapping[int, int] = field(default_factory=dict)

    @classmethod
    def from_sequence(cls, targets: Iterable[int]) -> IndexMap:
        """Map position i to the i-th target."""
        return cls({position: target for position, target in enumerate(targets)})

    @classmethod
    def identity(cls, size: int) -> IndexMap:
        return cls.from_sequence(range(size))

    def __len__(self) -> int:
        return len(self.mapping)

    def __getitem__(self, index: int) -> int:
        try:
            return self.mapping[index]
        except KeyError:
            raise IndexMappingError(f"Index {index} has no entry in index map of size {len(self.mapping)}") from None


class OutcomeAccumulator:
    """Collects one terminal outcome per row.

    Each row ends up either created (with a key) or failed (with an error),
    never both and never twice. Owned by a single run.
    """

    def __init__(self) -> None:
        self._created: dict[int, str] = {}
        self._errors: dict[int, RowError] = {}

    def _check_unrecorded(self, index: int) -> None:
        if index in self._created or index in self._errors:
            raise ValueError(f"Row {index} already has an outcome")

    def record_success(self, index: int, key: str) -> None:
        self._check_unrecorded(index)
        self._created[index] = key

    def record_failure(self, index: int, error: RowError) -> None:
        self._check_unrecorded(index)
        self._errors[index] = error

    def has_outcome(self, index: int) -> bool:
        return index in self._created or index in self._errors

    @property
    def created(self) -> dict[int, str]:
        return dict(self._created)

    @property
    def errors(self) -> dict[int, RowError]:
        return dict(self._errors)

    def __len__(self) -> int:
        return len(self._created) + len(self._errors)

    def remap(self, index_map: IndexMap) -> OutcomeAccumulator:
        """Copy with every index translated through ``index_map``."""
        remapped = OutcomeAccumulator()
        for index, key in self._created.items():
            remapped.record_success(index_map[index], key)
        for index, error in self._errors.items():
            remapped.record_failure(index_map[index], error)
        return remapped

    def to_manifest(self, *, manifest_id: str, total: int, uid_map: Mapping[str, str]) -> RunManifest:
        return RunManifest.build(
            manifest_id=manifest_id,
            total=total,
            created=self._created,
            errors=self._errors,
            uid_map=uid_map,
        )

    def to_update(self, *, uid_map: Mapping[str, str]) -> ManifestUpdate:
        return ManifestUpdate(
            succeeded=tuple(sorted(self._created)),
            failed=tuple(sorted(self._errors)),
            created=dict(self._created),
            errors=dict(self._errors),
            uid_map=dict(uid_map),
        )
