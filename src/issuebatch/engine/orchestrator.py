# src/issuebatch/engine/orchestrator.py
"""BulkOrchestrator: runs fresh bulk creations and manifest-driven retries.

Fresh run:
1. Preprocess (identifiers, cycles, levels) - input errors raise before
   anything is submitted
2. Execute levels in ascending depth, one bulk call per level
3. Build one manifest spanning all levels, store it, return its summary

Retry:
1. Load the manifest (absent or expired -> ManifestNotFoundError)
2. Nothing failed -> return the stored manifest's summary, no calls
3. Seed the substitution tracker from the manifest's identifier map,
   then preprocess and execute only the failed rows
4. Remap outcomes to original indices, merge into the manifest, store

Succeeded rows are never resubmitted, so retrying any number of times
creates each item at most once.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from issuebatch.contracts import (
    BulkSubmitter,
    ItemBuilder,
    ManifestNotFoundError,
    PreprocessResult,
    RetryInputMismatchError,
    RunSummary,
)
from issuebatch.core.hierarchy import (
    DEFAULT_PARENT_FIELD,
    DEFAULT_UID_FIELD,
    SubstitutionTracker,
    preprocess_records,
)
from issuebatch.core.logging import get_logger
from issuebatch.core.manifest import ManifestStore
from issuebatch.engine.levels import LevelExecutor, LevelReport
from issuebatch.engine.outcomes import IndexMap, OutcomeAccumulator

slog = get_logger(__name__)


class BulkOrchestrator:
    """Orchestrates hierarchical bulk creation with retry.

    Each call to run() or retry() owns its own tracker, accumulator and
    worker pool. One orchestrator may serve sequential calls; concurrent
    retries of the same manifest are unsupported (last write wins).

    Example:
        orchestrator = BulkOrchestrator(builder, BulkCallWrapper(client), store)
        summary = orchestrator.run(records)
        if summary.failed:
            summary = orchestrator.retry(fixed_records, summary.manifest.manifest_id)
    """

    def __init__(
        self,
        builder: ItemBuilder,
        submitter: BulkSubmitter,
        store: ManifestStore,
        *,
        uid_field: str = DEFAULT_UID_FIELD,
        parent_field: str = DEFAULT_PARENT_FIELD,
        max_workers: int = 4,
        bulk_timeout: float | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._store = store
        self._uid_field = uid_field
        self._parent_field = parent_field
        self._max_workers = max_workers
        self._level_executor = LevelExecutor(
            builder,
            submitter,
            parent_field=parent_field,
            bulk_timeout=bulk_timeout,
        )

    def _preprocess(self, records: Sequence[Mapping[str, Any]]) -> PreprocessResult:
        return preprocess_records(records, uid_field=self._uid_field, parent_field=self._parent_field)

    def _execute(self, prepared: PreprocessResult, tracker: SubstitutionTracker) -> tuple[OutcomeAccumulator, list[LevelReport]]:
        """Execute every level in ascending depth order."""
        outcomes = OutcomeAccumulator()
        reports: list[LevelReport] = []
        if not prepared.levels:
            return outcomes, reports

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="issuebatch-build") as pool:
            for level in prepared.levels:
                reports.append(
                    self._level_executor.execute(
                        level,
                        pool=pool,
                        tracker=tracker,
                        identifiers=prepared.identifiers,
                        outcomes=outcomes,
                    )
                )
        return outcomes, reports

    def run(self, records: Sequence[Mapping[str, Any]]) -> RunSummary:
        """Create every record, parents before children.

        Raises:
            DuplicateIdentifierError: Two rows share an identifier
            HierarchyCycleError: Parent references loop
        """
        prepared = self._preprocess(records)
        manifest_id = self._store.generate_id()
        slog.info(
            "run_started",
            manifest_id=manifest_id,
            rows=len(records),
            levels=len(prepared.levels),
            mode="hierarchy" if prepared.is_multi_level else "flat",
        )

        tracker = SubstitutionTracker(self._parent_field)
        outcomes, _ = self._execute(prepared, tracker)

        manifest = outcomes.to_manifest(manifest_id=manifest_id, total=len(records), uid_map=tracker.mappings())
        outcome = self._store.store(manifest)
        slog.info(
            "run_completed",
            manifest_id=manifest_id,
            succeeded=len(manifest.succeeded),
            failed=len(manifest.failed),
            manifest_store=outcome.value,
        )
        return RunSummary.from_manifest(manifest, outcome)

    def retry(self, records: Sequence[Mapping[str, Any]], manifest_id: str) -> RunSummary:
        """Resubmit only the rows a previous run failed.

        Args:
            records: The original input (corrected rows allowed), same order
            manifest_id: Manifest of the run being retried

        Returns:
            Summary over the full original row count

        Raises:
            ManifestNotFoundError: Manifest absent, expired or unreadable
            RetryInputMismatchError: Input too short for the failed indices
            DuplicateIdentifierError: Two failed rows share an identifier
            HierarchyCycleError: Parent references among failed rows loop
        """
        lookup = self._store.get(manifest_id)
        if lookup.manifest is None:
            raise ManifestNotFoundError(manifest_id)
        manifest = lookup.manifest

        if not manifest.failed:
            slog.info("retry_skipped", manifest_id=manifest_id, reason="no_failed_rows")
            return RunSummary.from_manifest(manifest)

        if manifest.failed[-1] >= len(records):
            raise RetryInputMismatchError(
                f"Manifest {manifest_id} has failed row {manifest.failed[-1]} "
                f"but the retry input has only {len(records)} rows"
            )

        subset = [records[index] for index in manifest.failed]
        to_original = IndexMap.from_sequence(manifest.failed)

        # Seeded before leveling so children of already-created parents resolve
        tracker = SubstitutionTracker(self._parent_field)
        tracker.load_existing_mappings(manifest.uid_map)

        prepared = self._preprocess(subset)
        slog.info("retry_started", manifest_id=manifest_id, rows=len(subset), levels=len(prepared.levels))

        local_outcomes, _ = self._execute(prepared, tracker)
        update = local_outcomes.remap(to_original).to_update(uid_map=tracker.mappings())

        merged = manifest.merge(update)
        outcome = self._store.store(merged)
        slog.info(
            "retry_completed",
            manifest_id=manifest_id,
            succeeded=len(merged.succeeded),
            failed=len(merged.failed),
            manifest_store=outcome.value,
        )
        return RunSummary.from_manifest(merged, outcome)
