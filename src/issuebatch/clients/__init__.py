"""Tracker clients: HTTP transport and the bulk create wrapper."""

from issuebatch.clients.bulk import BulkCallWrapper, normalize_bulk_response
from issuebatch.clients.http import TrackerHTTPClient, error_for_status

__all__ = [
    "BulkCallWrapper",
    "TrackerHTTPClient",
    "error_for_status",
    "normalize_bulk_response",
]
