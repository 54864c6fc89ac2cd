"""Exception hierarchy and error payload schemas.

Run-fatal input errors (duplicate identifiers, cycles, retry input mismatch)
are raised immediately. Row-local failures are captured by the engine and
recorded in the manifest, never raised across the per-level fan-out.
"""

from typing import Any, TypedDict


class ErrorDetail(TypedDict):
    """Schema for a per-row error payload.

    Matches the tracker's bulk API element error so results can be
    stored without conversion.
    """

    status: int  # HTTP-style status code
    errors: dict[str, str]  # Field name -> error message


class IssueBatchError(Exception):
    """Base class for all issuebatch errors."""

    pass


# =============================================================================
# Input errors (fatal to the whole run)
# =============================================================================


class InputValidationError(IssueBatchError):
    """Raised when the submitted record set cannot be processed at all."""

    pass


class DuplicateIdentifierError(InputValidationError):
    """Raised when two or more rows share the same temporary identifier.

    Attributes:
        uid: First duplicated identifier (in input order)
        indices: Every row index carrying ``uid``
        all_duplicates: Every duplicated identifier mapped to its row indices
    """

    def __init__(self, uid: str, indices: list[int], all_duplicates: dict[str, list[int]]) -> None:
        self.uid = uid
        self.indices = indices
        self.all_duplicates = all_duplicates
        joined = " and ".join(str(i) for i in indices)
        super().__init__(f'Duplicate UID "{uid}" found at indices {joined}. Each UID must be unique in the input.')


class HierarchyCycleError(InputValidationError):
    """Raised when parent references form a loop.

    Attributes:
        cycle: Ordered identifier chain, closed with the repeated identifier
            (e.g. ["a", "b", "c", "a"])
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Parent references contain a cycle: {' -> '.join(cycle)}")


class RetryInputMismatchError(InputValidationError):
    """Raised when retry input does not cover the manifest's failed rows."""

    pass


# =============================================================================
# Row-local errors
# =============================================================================


class RowValidationError(IssueBatchError):
    """Raised by an item builder when one record cannot become a payload.

    Attributes:
        field_errors: Field name -> message. Defaults to ``{"validation": message}``.
    """

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        self.field_errors = field_errors if field_errors is not None else {"validation": message}
        super().__init__(message)


# =============================================================================
# Transport errors
# =============================================================================


class TrackerError(IssueBatchError):
    """Base class for errors talking to the issue tracker.

    Attributes:
        status: HTTP status code, None for connection-level failures
        url: Request URL
        response_body: Parsed response body when the tracker sent one
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        url: str | None = None,
        response_body: Any = None,
    ) -> None:
        self.status = status
        self.url = url
        self.response_body = response_body
        super().__init__(message)


class TrackerValidationError(TrackerError):
    """HTTP 400. The bulk endpoint uses this status for total failure."""

    pass


class AuthenticationError(TrackerError):
    """HTTP 401/403."""

    pass


class NotFoundError(TrackerError):
    """HTTP 404."""

    pass


class RateLimitError(TrackerError):
    """HTTP 429."""

    pass


class TrackerServerError(TrackerError):
    """HTTP 5xx."""

    pass


class NetworkError(TrackerError):
    """Connection failure or timeout before any response arrived."""

    pass


# =============================================================================
# Retry / manifest errors
# =============================================================================


class ManifestNotFoundError(IssueBatchError):
    """Raised when a retry names a manifest that is absent or expired."""

    def __init__(self, manifest_id: str) -> None:
        self.manifest_id = manifest_id
        super().__init__(f"Manifest {manifest_id} not found or expired")


class IndexMappingError(IssueBatchError):
    """A submission-local index has no entry in its index map.

    This is an engine invariant violation, never a data problem.
    """

    pass
