"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from
issuebatch.core.config.

Import patterns:
    from issuebatch.contracts import RunManifest, RunSummary, HierarchyCycleError
    from issuebatch.core.config import IssueBatchSettings
"""

from issuebatch.contracts.bulk import (
    BulkCallResult,
    BulkSubmission,
    CreatedItem,
    FailedItem,
    PartialSuccess,
    TransportFailure,
)
from issuebatch.contracts.enums import LookupStatus, StoreOutcome
from issuebatch.contracts.errors import (
    AuthenticationError,
    DuplicateIdentifierError,
    ErrorDetail,
    HierarchyCycleError,
    IndexMappingError,
    InputValidationError,
    IssueBatchError,
    ManifestNotFoundError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RetryInputMismatchError,
    RowValidationError,
    TrackerError,
    TrackerServerError,
    TrackerValidationError,
)
from issuebatch.contracts.hierarchy import HierarchyLevel, IdentifierMap, LevelItem, PreprocessResult
from issuebatch.contracts.manifest import (
    DEPENDENCY_FAILURE_STATUS,
    TRANSPORT_FAILURE_STATUS,
    VALIDATION_FAILURE_STATUS,
    ManifestLookup,
    ManifestUpdate,
    RowError,
    RunManifest,
)
from issuebatch.contracts.protocols import BulkSubmitter, ItemBuilder
from issuebatch.contracts.summary import RowResult, RunSummary

__all__ = [
    "DEPENDENCY_FAILURE_STATUS",
    "TRANSPORT_FAILURE_STATUS",
    "VALIDATION_FAILURE_STATUS",
    "AuthenticationError",
    "BulkCallResult",
    "BulkSubmission",
    "BulkSubmitter",
    "CreatedItem",
    "DuplicateIdentifierError",
    "ErrorDetail",
    "FailedItem",
    "HierarchyCycleError",
    "HierarchyLevel",
    "IdentifierMap",
    "IndexMappingError",
    "InputValidationError",
    "IssueBatchError",
    "ItemBuilder",
    "LevelItem",
    "LookupStatus",
    "ManifestLookup",
    "ManifestNotFoundError",
    "ManifestUpdate",
    "NetworkError",
    "NotFoundError",
    "PartialSuccess",
    "PreprocessResult",
    "RateLimitError",
    "RetryInputMismatchError",
    "RowError",
    "RowResult",
    "RowValidationError",
    "RunManifest",
    "RunSummary",
    "StoreOutcome",
    "TrackerError",
    "TrackerServerError",
    "TrackerValidationError",
    "TransportFailure",
]
