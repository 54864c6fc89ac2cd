"""Reference substitution between levels.

Tracks identifier -> created key mappings as levels complete and rewrites
parent references of not-yet-created rows before they are built. Level N+1
is only submitted after level N's successes are recorded here.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from issuebatch.core.hierarchy.references import DEFAULT_PARENT_FIELD, normalize_reference


class SubstitutionTracker:
    """Identifier -> created key mapping for one run.

    Not thread-safe and not shared: each run owns exactly one tracker and
    only the orchestrator's sequential level loop touches it.

    Example:
        tracker = SubstitutionTracker()
        tracker.record_creation("epic-1", "PROJ-1")
        tracker.replace_uids({"Parent": "epic-1"})  # {"Parent": "PROJ-1"}
        tracker.replace_uids({"Parent": "PROJ-9"})  # unchanged (already a key)
    """

    def __init__(self, parent_field: str = DEFAULT_PARENT_FIELD) -> None:
        self._parent_field = parent_field
        self._uid_to_key: dict[str, str] = {}

    def record_creation(self, uid: str, key: str) -> None:
        """Record that the row with identifier ``uid`` was created as ``key``."""
        self._uid_to_key[uid] = key

    def load_existing_mappings(self, mappings: Mapping[str, str]) -> None:
        """Seed from a prior manifest's identifier map (retry continuation)."""
        self._uid_to_key.update(mappings)

    def replace_uids(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of ``record`` with its parent reference substituted.

        The parent field is rewritten to the created key if and only if its
        (normalized) value names a known identifier. Anything else, including
        a parent that is already a real key, is left as-is.
        """
        result = dict(record)
        parent = normalize_reference(result.get(self._parent_field))
        if parent is not None and parent in self._uid_to_key:
            result[self._parent_field] = self._uid_to_key[parent]
        return result

    def has_key(self, uid: str) -> bool:
        return uid in self._uid_to_key

    def get_key(self, uid: str) -> str | None:
        return self._uid_to_key.get(uid)

    def mappings(self) -> dict[str, str]:
        """Snapshot of all identifier -> key mappings."""
        return dict(self._uid_to_key)

    def __len__(self) -> int:
        return len(self._uid_to_key)
