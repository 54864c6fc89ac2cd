"""Manifest persistence: database, table schema, store and purge."""

from issuebatch.core.manifest.database import ManifestDB
from issuebatch.core.manifest.purge import ManifestPurger, PurgeResult
from issuebatch.core.manifest.schema import manifests_table, metadata
from issuebatch.core.manifest.store import DEFAULT_RETENTION, MANIFEST_ID_PREFIX, ManifestStore

__all__ = [
    "DEFAULT_RETENTION",
    "MANIFEST_ID_PREFIX",
    "ManifestDB",
    "ManifestPurger",
    "ManifestStore",
    "PurgeResult",
    "manifests_table",
    "metadata",
]
