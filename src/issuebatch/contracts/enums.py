"""Status codes shared across subsystem boundaries."""

from enum import StrEnum


class StoreOutcome(StrEnum):
    """Result of persisting a manifest.

    Persistence is best-effort: a failed write never aborts a run, but
    callers (and tests) can see that resumability was lost.
    """

    PERSISTED = "persisted"
    SKIPPED = "skipped"  # Store error, logged and swallowed


class LookupStatus(StrEnum):
    """Result of reading a manifest.

    NOT_FOUND covers both true absence and expiry; the store makes no
    distinction between them.
    """

    FOUND = "found"
    NOT_FOUND = "not_found"
    READ_ERROR = "read_error"  # Store error, logged and swallowed
