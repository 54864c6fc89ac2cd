"""Caller-facing run summary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from issuebatch.contracts.enums import StoreOutcome
from issuebatch.contracts.manifest import RowError, RunManifest


@dataclass(frozen=True)
class RowResult:
    """Outcome of one original row."""

    index: int
    success: bool
    key: str | None = None
    error: RowError | None = None

    def __post_init__(self) -> None:
        if self.success and (self.key is None or self.error is not None):
            raise ValueError(f"Row {self.index}: success requires a key and no error")
        if not self.success and (self.error is None or self.key is not None):
            raise ValueError(f"Row {self.index}: failure requires an error and no key")

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"index": self.index, "success": True, "key": self.key}
        assert self.error is not None  # guaranteed by __post_init__
        return {"index": self.index, "success": False, "error": self.error.to_dict()}


@dataclass(frozen=True)
class RunSummary:
    """Summary returned by a fresh run or a retry.

    results is sorted by index and covers every original row exactly once.
    store_outcome is SKIPPED when the manifest could not be written, in
    which case the run cannot be retried.
    """

    total: int
    succeeded: int
    failed: int
    manifest: RunManifest
    results: tuple[RowResult, ...]
    store_outcome: StoreOutcome = StoreOutcome.PERSISTED

    @classmethod
    def from_manifest(cls, manifest: RunManifest, store_outcome: StoreOutcome = StoreOutcome.PERSISTED) -> RunSummary:
        """Derive the summary from a manifest's current state."""
        results: list[RowResult] = []
        for index in range(manifest.total):
            if index in manifest.created:
                results.append(RowResult(index=index, success=True, key=manifest.created[index]))
            elif index in manifest.errors:
                results.append(RowResult(index=index, success=False, error=manifest.errors[index]))
        return cls(
            total=manifest.total,
            succeeded=len(manifest.succeeded),
            failed=len(manifest.failed),
            manifest=manifest,
            results=tuple(results),
            store_outcome=store_outcome,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "manifest": self.manifest.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "manifestStore": self.store_outcome.value,
        }
