"""Bulk call result contracts.

Indices in these types are local to one bulk submission (position in the
submitted payload list). Remapping to original row indices is the
orchestrator's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from issuebatch.contracts.errors import TrackerError


@dataclass(frozen=True)
class CreatedItem:
    """One item the tracker created."""

    index: int
    key: str
    item_id: str | None = None
    self_url: str | None = None


@dataclass(frozen=True)
class FailedItem:
    """One item the tracker rejected inside an otherwise accepted call."""

    index: int
    status: int
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BulkCallResult:
    """Normalized response of one multi-item create call."""

    created: tuple[CreatedItem, ...] = ()
    failed: tuple[FailedItem, ...] = ()

    @classmethod
    def empty(cls) -> BulkCallResult:
        return cls()


@dataclass(frozen=True)
class PartialSuccess:
    """The tracker answered with a created/failed breakdown.

    Covers all three answer shapes: everything created, some created,
    nothing created (400 with the breakdown embedded in the error body).
    """

    result: BulkCallResult


@dataclass(frozen=True)
class TransportFailure:
    """The call failed without a structured breakdown (network, timeout, auth)."""

    error: TrackerError


BulkSubmission = PartialSuccess | TransportFailure
