"""Run manifest contracts.

The manifest is the durable unit of record for one bulk run. It is
persisted by ManifestStore and merged in place by retries.

Invariants (enforced at construction):
- succeeded and failed are disjoint
- every index lies in [0, total)
- every succeeded index has a created key and no error entry
- every failed index has an error entry and no created key
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from issuebatch.contracts.enums import LookupStatus
from issuebatch.contracts.errors import ErrorDetail

# Status codes recorded for failures that never reached the tracker
# as an element-level rejection.
VALIDATION_FAILURE_STATUS = 400
DEPENDENCY_FAILURE_STATUS = 424
TRANSPORT_FAILURE_STATUS = 500


@dataclass(frozen=True)
class RowError:
    """Structured error for one row: status code plus field-level messages."""

    status: int
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> ErrorDetail:
        return {"status": self.status, "errors": dict(self.errors)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RowError:
        return cls(status=int(data["status"]), errors={str(k): str(v) for k, v in data["errors"].items()})


def _int_keys(data: Mapping[str, Any]) -> dict[int, Any]:
    # JSON object keys are always strings
    return {int(k): v for k, v in data.items()}


@dataclass(frozen=True)
class ManifestUpdate:
    """Outcome of a retry, already remapped to original row indices."""

    succeeded: tuple[int, ...] = ()
    failed: tuple[int, ...] = ()
    created: dict[int, str] = field(default_factory=dict)
    errors: dict[int, RowError] = field(default_factory=dict)
    uid_map: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RunManifest:
    """Durable record of one bulk run.

    Attributes:
        manifest_id: Opaque run identifier (format ``bulk-<uuid4>``)
        created_at: Creation time, preserved across retries
        total: Number of rows in the original input
        succeeded: Sorted row indices that were created
        failed: Sorted row indices that were not created
        created: Row index -> created item key
        errors: Row index -> structured error
        uid_map: Temporary identifier -> created item key
    """

    manifest_id: str
    created_at: datetime
    total: int
    succeeded: tuple[int, ...]
    failed: tuple[int, ...]
    created: dict[int, str]
    errors: dict[int, RowError]
    uid_map: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        succeeded = set(self.succeeded)
        failed = set(self.failed)
        overlap = succeeded & failed
        if overlap:
            raise ValueError(f"Manifest {self.manifest_id}: rows {sorted(overlap)} are both succeeded and failed")
        out_of_range = sorted(i for i in succeeded | failed if not 0 <= i < self.total)
        if out_of_range:
            raise ValueError(f"Manifest {self.manifest_id}: rows {out_of_range} outside [0, {self.total})")
        if set(self.created) != succeeded:
            raise ValueError(f"Manifest {self.manifest_id}: created keys {sorted(self.created)} do not match succeeded rows {sorted(succeeded)}")
        if set(self.errors) != failed:
            raise ValueError(f"Manifest {self.manifest_id}: error entries {sorted(self.errors)} do not match failed rows {sorted(failed)}")

    @classmethod
    def build(
        cls,
        *,
        manifest_id: str,
        total: int,
        created: Mapping[int, str],
        errors: Mapping[int, RowError],
        uid_map: Mapping[str, str] | None = None,
        created_at: datetime | None = None,
    ) -> RunManifest:
        """Build a manifest from accumulated per-row outcomes.

        succeeded/failed are derived from the created/errors maps so the
        invariants hold by construction.
        """
        return cls(
            manifest_id=manifest_id,
            created_at=created_at or datetime.now(UTC),
            total=total,
            succeeded=tuple(sorted(created)),
            failed=tuple(sorted(errors)),
            created=dict(created),
            errors=dict(errors),
            uid_map=dict(uid_map or {}),
        )

    def merge(self, update: ManifestUpdate) -> RunManifest:
        """Fold a retry outcome into this manifest.

        - succeeded: union of old and new
        - failed: exactly update.failed, minus anything succeeded
        - created: old entries plus new entries
        - errors: kept only for rows still failing, new entries win
        - uid_map: old entries plus new entries
        Identifier and timestamp are preserved.
        """
        succeeded = set(self.succeeded) | set(update.succeeded)
        failed = set(update.failed) - succeeded

        errors: dict[int, RowError] = {index: error for index, error in self.errors.items() if index in failed}
        for index, error in update.errors.items():
            if index in failed:
                errors[index] = error

        created = {**self.created, **update.created}

        return RunManifest(
            manifest_id=self.manifest_id,
            created_at=self.created_at,
            total=self.total,
            succeeded=tuple(sorted(succeeded)),
            failed=tuple(sorted(failed)),
            created={index: created[index] for index in sorted(succeeded)},
            errors=errors,
            uid_map={**self.uid_map, **update.uid_map},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        return {
            "id": self.manifest_id,
            "timestamp": self.created_at.isoformat(),
            "total": self.total,
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "created": {str(k): v for k, v in self.created.items()},
            "errors": {str(k): v.to_dict() for k, v in self.errors.items()},
            "uidMap": dict(self.uid_map),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RunManifest:
        """Deserialize from JSON storage.

        Raises:
            KeyError: If a required key is missing
            ValueError: If the stored data violates manifest invariants
        """
        return cls(
            manifest_id=data["id"],
            created_at=datetime.fromisoformat(data["timestamp"]),
            total=int(data["total"]),
            succeeded=tuple(sorted(int(i) for i in data["succeeded"])),
            failed=tuple(sorted(int(i) for i in data["failed"])),
            created={k: str(v) for k, v in _int_keys(data["created"]).items()},
            errors={k: RowError.from_dict(v) for k, v in _int_keys(data["errors"]).items()},
            uid_map={str(k): str(v) for k, v in data.get("uidMap", {}).items()},
        )


@dataclass(frozen=True)
class ManifestLookup:
    """Result of ManifestStore.get()."""

    status: LookupStatus
    manifest: RunManifest | None = None

    def __post_init__(self) -> None:
        if (self.status == LookupStatus.FOUND) != (self.manifest is not None):
            raise ValueError(f"ManifestLookup status {self.status} inconsistent with manifest presence")

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

