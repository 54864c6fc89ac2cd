"""SQLAlchemy table definitions for manifest persistence.

Uses SQLAlchemy Core (not ORM). The manifest itself is stored as one JSON
document per run; only the columns needed for lookup and expiry are
broken out.
"""

from sqlalchemy import Column, DateTime, Index, MetaData, String, Table, Text

metadata = MetaData()

manifests_table = Table(
    "manifests",
    metadata,
    Column("manifest_id", String(64), primary_key=True),
    Column("manifest_json", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    # Refreshed on every write, so a retry extends the retention window
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Index("ix_manifests_expires_at", "expires_at"),
)
