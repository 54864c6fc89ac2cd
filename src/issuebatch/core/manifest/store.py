# src/issuebatch/core/manifest/store.py
"""Run manifest persistence.

Persistence is best-effort: a backend failure never aborts a run. Writes
report StoreOutcome.SKIPPED and reads report LookupStatus.READ_ERROR,
both logged at WARNING, so callers can tell "absent" from "store broken"
while still treating both as "no manifest available".
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from issuebatch.contracts import LookupStatus, ManifestLookup, ManifestUpdate, RunManifest, StoreOutcome
from issuebatch.core.logging import get_logger
from issuebatch.core.manifest.database import ManifestDB
from issuebatch.core.manifest.schema import manifests_table

slog = get_logger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)
MANIFEST_ID_PREFIX = "bulk-"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ManifestStore:
    """Stores and retrieves run manifests with a retention window.

    Last writer wins per manifest id; there is no optimistic concurrency
    control. Concurrent retries of the same manifest are unsupported.

    Example:
        store = ManifestStore(ManifestDB.from_url("sqlite:///./state/manifests.db"))
        manifest_id = store.generate_id()
        store.store(manifest)
        lookup = store.get(manifest_id)
        if lookup.found:
            ...
    """

    def __init__(
        self,
        db: ManifestDB,
        *,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if retention <= timedelta(0):
            raise ValueError(f"retention must be positive, got {retention}")
        self._db = db
        self._retention = retention
        self._clock = clock

    @property
    def retention(self) -> timedelta:
        return self._retention

    @staticmethod
    def generate_id() -> str:
        """New manifest id: ``bulk-`` followed by a random UUID4."""
        return f"{MANIFEST_ID_PREFIX}{uuid.uuid4()}"

    def store(self, manifest: RunManifest) -> StoreOutcome:
        """Insert or replace a manifest, resetting its expiry to now + retention."""
        now = self._clock()
        values = {
            "manifest_json": json.dumps(manifest.to_dict()),
            "created_at": manifest.created_at,
            "expires_at": now + self._retention,
        }
        try:
            with self._db.connection() as conn:
                result = conn.execute(
                    update(manifests_table).where(manifests_table.c.manifest_id == manifest.manifest_id).values(**values)
                )
                if result.rowcount == 0:
                    conn.execute(manifests_table.insert().values(manifest_id=manifest.manifest_id, **values))
        except SQLAlchemyError as e:
            slog.warning(
                "manifest_store_failed",
                manifest_id=manifest.manifest_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return StoreOutcome.SKIPPED

        slog.debug("manifest_stored", manifest_id=manifest.manifest_id, succeeded=len(manifest.succeeded), failed=len(manifest.failed))
        return StoreOutcome.PERSISTED

    def get(self, manifest_id: str) -> ManifestLookup:
        """Fetch a manifest that has not expired.

        Expired rows are reported as NOT_FOUND even before purge removes them.
        """
        now = self._clock()
        query = select(manifests_table.c.manifest_json).where(
            manifests_table.c.manifest_id == manifest_id,
            manifests_table.c.expires_at > now,
        )
        try:
            with self._db.connection() as conn:
                row = conn.execute(query).first()
        except SQLAlchemyError as e:
            slog.warning("manifest_read_failed", manifest_id=manifest_id, error=str(e), error_type=type(e).__name__)
            return ManifestLookup(status=LookupStatus.READ_ERROR)

        if row is None:
            return ManifestLookup(status=LookupStatus.NOT_FOUND)

        try:
            manifest = RunManifest.from_dict(json.loads(row[0]))
        except (KeyError, TypeError, ValueError) as e:
            # Undecodable document: unusable for retry, same as a read failure
            slog.warning("manifest_decode_failed", manifest_id=manifest_id, error=str(e), error_type=type(e).__name__)
            return ManifestLookup(status=LookupStatus.READ_ERROR)

        return ManifestLookup(status=LookupStatus.FOUND, manifest=manifest)

    def update(self, manifest_id: str, changes: ManifestUpdate) -> StoreOutcome:
        """Merge a retry outcome into a stored manifest.

        See RunManifest.merge() for the merge rules. A manifest that is
        absent or unreadable is left alone and SKIPPED is returned.
        """
        lookup = self.get(manifest_id)
        if lookup.manifest is None:
            slog.warning("manifest_update_skipped", manifest_id=manifest_id, reason=lookup.status.value)
            return StoreOutcome.SKIPPED
        return self.store(lookup.manifest.merge(changes))

    def delete(self, manifest_id: str) -> bool:
        """Remove a manifest. Returns True if a row was deleted.

        Raises:
            SQLAlchemyError: Explicit deletes are operator actions and propagate.
        """
        with self._db.connection() as conn:
            result = conn.execute(delete(manifests_table).where(manifests_table.c.manifest_id == manifest_id))
        return bool(result.rowcount)
