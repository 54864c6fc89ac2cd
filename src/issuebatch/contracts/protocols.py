"""Protocols for the engine's external collaborators.

The engine never imports a concrete builder or transport; it depends on
these structural interfaces so tests and alternate backends can plug in.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from issuebatch.contracts.bulk import BulkSubmission


@runtime_checkable
class ItemBuilder(Protocol):
    """Turns one record into a validated creation payload.

    Implementations must not create anything in the tracker. They may do
    read-only lookups needed for value conversion. Row-local validation
    problems are reported by raising RowValidationError.
    """

    def build(self, record: dict[str, Any]) -> dict[str, Any]:
        """Return a creation payload (e.g. ``{"fields": {...}}``)."""
        ...


@runtime_checkable
class BulkSubmitter(Protocol):
    """Submits one multi-item create request."""

    def submit(self, payloads: Sequence[dict[str, Any]], timeout: float | None = None) -> BulkSubmission:
        """Submit payloads and return a tagged outcome."""
        ...
