# src/issuebatch/engine/levels.py
"""LevelExecutor: builds and submits one hierarchy level.

For each level, in order:
1. Orphan check: rows whose in-submission parent has no created key fail
   with 424 and are never built or submitted
2. Reference substitution against the run's SubstitutionTracker
3. Concurrent payload builds (row failures captured, never raised)
4. One bulk call for every row that built successfully
5. Successes folded into the tracker so the next level can reference them

All indices recorded here are record indices (position in the leveled
record set). Translating to original input indices is the orchestrator's
job.
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import structlog

from issuebatch.contracts import (
    DEPENDENCY_FAILURE_STATUS,
    TRANSPORT_FAILURE_STATUS,
    VALIDATION_FAILURE_STATUS,
    BulkCallResult,
    BulkSubmitter,
    HierarchyLevel,
    IdentifierMap,
    ItemBuilder,
    LevelItem,
    PartialSuccess,
    RowError,
    RowValidationError,
    TrackerServerError,
    TransportFailure,
)
from issuebatch.core.hierarchy import DEFAULT_PARENT_FIELD, SubstitutionTracker, normalize_reference
from issuebatch.engine.outcomes import IndexMap, OutcomeAccumulator

slog = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LevelReport:
    """Counts for one executed level."""

    depth: int
    size: int
    orphaned: int
    invalid: int
    submitted: int
    created: int
    failed: int
    transport_error: str | None = None


@dataclass(frozen=True)
class _BuildOutcome:
    item: LevelItem
    payload: dict[str, Any] | None = None
    error: RowError | None = None


def orphan_error(parent_uid: str) -> RowError:
    return RowError(status=DEPENDENCY_FAILURE_STATUS, errors={"Parent": f"parent '{parent_uid}' was not created"})


def _contradiction(result: BulkCallResult, submitted: int) -> str | None:
    """Why a bulk result cannot be applied to its submission, or None."""
    seen: set[int] = set()
    for index in [item.index for item in result.created] + [item.index for item in result.failed]:
        if not 0 <= index < submitted:
            return f"Bulk result names element {index} but only {submitted} were submitted"
        if index in seen:
            return f"Bulk result names element {index} more than once"
        seen.add(index)
    return None


class LevelExecutor:
    """Executes hierarchy levels against a builder and a bulk submitter.

    Stateless between levels: the tracker and accumulator are passed in by
    the orchestrator, which owns them for the duration of one run.
    """

    def __init__(
        self,
        builder: ItemBuilder,
        submitter: BulkSubmitter,
        *,
        parent_field: str = DEFAULT_PARENT_FIELD,
        bulk_timeout: float | None = None,
    ) -> None:
        self._builder = builder
        self._submitter = submitter
        self._parent_field = parent_field
        self._bulk_timeout = bulk_timeout

    def _unresolved_parent(
        self,
        record: Mapping[str, Any],
        identifiers: IdentifierMap,
        tracker: SubstitutionTracker,
    ) -> str | None:
        """Identifier of an in-submission parent that has no created key."""
        parent = normalize_reference(record.get(self._parent_field))
        if parent is None or parent not in identifiers:
            return None
        return None if tracker.has_key(parent) else parent

    def _build_one(self, item: LevelItem, record: dict[str, Any]) -> _BuildOutcome:
        try:
            return _BuildOutcome(item=item, payload=self._builder.build(record))
        except RowValidationError as e:
            return _BuildOutcome(
                item=item,
                error=RowError(status=VALIDATION_FAILURE_STATUS, errors=dict(e.field_errors)),
            )
        except Exception as e:
            # Builder bugs fail the row, not its siblings; the message is kept in the manifest
            slog.warning("row_build_failed", index=item.index, error=str(e), error_type=type(e).__name__)
            return _BuildOutcome(
                item=item,
                error=RowError(status=VALIDATION_FAILURE_STATUS, errors={"validation": str(e) or type(e).__name__}),
            )

    def execute(
        self,
        level: HierarchyLevel,
        *,
        pool: ThreadPoolExecutor,
        tracker: SubstitutionTracker,
        identifiers: IdentifierMap,
        outcomes: OutcomeAccumulator,
    ) -> LevelReport:
        """Build and submit one level, recording every row's outcome.

        Args:
            level: Level to execute (all lower levels already executed)
            pool: Worker pool for payload builds
            tracker: Run's identifier -> key tracker (updated with successes)
            identifiers: Identifiers of the leveled record set
            outcomes: Run's accumulator (one outcome recorded per row)

        Returns:
            LevelReport with per-level counts
        """
        pending: list[tuple[LevelItem, dict[str, Any]]] = []
        orphaned = 0
        for item in level.items:
            missing_parent = self._unresolved_parent(item.record, identifiers, tracker)
            if missing_parent is not None:
                outcomes.record_failure(item.index, orphan_error(missing_parent))
                orphaned += 1
                continue
            pending.append((item, tracker.replace_uids(item.record)))

        futures: list[Future[_BuildOutcome]] = [pool.submit(self._build_one, item, record) for item, record in pending]
        built = sorted((future.result() for future in futures), key=lambda outcome: outcome.item.index)

        invalid = 0
        submitted: list[LevelItem] = []
        payloads: list[dict[str, Any]] = []
        for outcome in built:
            if outcome.error is not None:
                outcomes.record_failure(outcome.item.index, outcome.error)
                invalid += 1
            else:
                assert outcome.payload is not None
                submitted.append(outcome.item)
                payloads.append(outcome.payload)

        report_base = {"depth": level.depth, "size": len(level), "orphaned": orphaned, "invalid": invalid}
        if not payloads:
            return LevelReport(**report_base, submitted=0, created=0, failed=orphaned + invalid)

        slog.info("level_submitted", depth=level.depth, size=len(payloads))
        local = IndexMap.from_sequence(item.index for item in submitted)
        by_index = {item.index: item for item in submitted}

        outcome = self._submitter.submit(payloads, self._bulk_timeout)
        if isinstance(outcome, PartialSuccess):
            problem = _contradiction(outcome.result, len(payloads))
            if problem is not None:
                outcome = TransportFailure(TrackerServerError(problem))

        match outcome:
            case TransportFailure(error=error):
                message = str(error) or type(error).__name__
                for item in submitted:
                    outcomes.record_failure(
                        item.index,
                        RowError(status=TRANSPORT_FAILURE_STATUS, errors={"bulk": message}),
                    )
                slog.warning("level_failed", depth=level.depth, size=len(payloads), error=message)
                return LevelReport(
                    **report_base,
                    submitted=len(payloads),
                    created=0,
                    failed=len(level),
                    transport_error=message,
                )
            case PartialSuccess(result=result):
                for created in result.created:
                    index = local[created.index]
                    outcomes.record_success(index, created.key)
                    uid = by_index[index].uid
                    if uid is not None:
                        tracker.record_creation(uid, created.key)
                for failed in result.failed:
                    outcomes.record_failure(local[failed.index], RowError(status=failed.status, errors=dict(failed.errors)))

        # Rows the tracker neither created nor rejected
        unanswered = [item.index for item in submitted if not outcomes.has_outcome(item.index)]
        for index in unanswered:
            outcomes.record_failure(
                index,
                RowError(status=TRANSPORT_FAILURE_STATUS, errors={"bulk": "no result returned for this item"}),
            )

        created_count = len(result.created)
        slog.info(
            "level_completed",
            depth=level.depth,
            created=created_count,
            failed=len(level) - created_count,
        )
        return LevelReport(
            **report_base,
            submitted=len(payloads),
            created=created_count,
            failed=len(level) - created_count,
        )
