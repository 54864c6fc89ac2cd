"""Bulk creation engine: orchestration, level execution and retry."""

from issuebatch.engine.levels import LevelExecutor, LevelReport
from issuebatch.engine.orchestrator import BulkOrchestrator
from issuebatch.engine.outcomes import IndexMap, OutcomeAccumulator
from issuebatch.engine.retry import RetryConfig, RetryManager, is_transient_tracker_error

__all__ = [
    "BulkOrchestrator",
    "IndexMap",
    "LevelExecutor",
    "LevelReport",
    "OutcomeAccumulator",
    "RetryConfig",
    "RetryManager",
    "is_transient_tracker_error",
]
