# src/issuebatch/core/manifest/purge.py
"""Purge of expired manifests.

Expired manifests are already invisible to ManifestStore.get(); this
removes the rows so the table does not grow without bound.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from time import perf_counter

from sqlalchemy import delete, select

from issuebatch.core.logging import get_logger
from issuebatch.core.manifest.database import ManifestDB
from issuebatch.core.manifest.schema import manifests_table

slog = get_logger(__name__)


@dataclass
class PurgeResult:
    """Result of a purge operation."""

    deleted_count: int
    deleted_ids: list[str]
    duration_seconds: float


class ManifestPurger:
    """Deletes manifests whose retention window has passed."""

    def __init__(self, db: ManifestDB) -> None:
        self._db = db

    def find_expired(self, as_of: datetime | None = None) -> list[str]:
        """Manifest ids expired at ``as_of`` (defaults to now), oldest first."""
        if as_of is None:
            as_of = datetime.now(UTC)

        query = (
            select(manifests_table.c.manifest_id)
            .where(manifests_table.c.expires_at <= as_of)
            .order_by(manifests_table.c.expires_at, manifests_table.c.manifest_id)
        )
        with self._db.connection() as conn:
            return [row[0] for row in conn.execute(query)]

    def purge_expired(self, as_of: datetime | None = None) -> PurgeResult:
        """Delete every manifest expired at ``as_of`` (defaults to now)."""
        start_time = perf_counter()
        if as_of is None:
            as_of = datetime.now(UTC)

        with self._db.connection() as conn:
            expired = [
                row[0]
                for row in conn.execute(select(manifests_table.c.manifest_id).where(manifests_table.c.expires_at <= as_of))
            ]
            if expired:
                conn.execute(delete(manifests_table).where(manifests_table.c.manifest_id.in_(expired)))

        result = PurgeResult(
            deleted_count=len(expired),
            deleted_ids=sorted(expired),
            duration_seconds=perf_counter() - start_time,
        )
        slog.info("manifests_purged", deleted_count=result.deleted_count)
        return result
