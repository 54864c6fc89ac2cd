"""Tests for BulkOrchestrator fresh runs and manifest-driven retries."""

import itertools
from collections.abc import Callable, Sequence
from typing import Any

import pytest
from sqlalchemy.exc import OperationalError

from issuebatch.contracts import (
    BulkCallResult,
    BulkSubmission,
    DuplicateIdentifierError,
    FailedItem,
    HierarchyCycleError,
    ManifestNotFoundError,
    PartialSuccess,
    RetryInputMismatchError,
    RowError,
    StoreOutcome,
)
from issuebatch.core.manifest import ManifestDB, ManifestStore
from issuebatch.engine import BulkOrchestrator
from issuebatch.engine.levels import orphan_error
from tests.conftest import ScriptedSubmitter, reject_summary

OrchestratorFactory = Callable[..., BulkOrchestrator]

TIMEOUT_ERROR = RowError(status=500, errors={"bulk": "Request timed out after 30.0s"})


def _epic_task_subtask() -> list[dict[str, str]]:
    return [
        {"uid": "e1", "Summary": "Epic"},
        {"uid": "t1", "Summary": "Task", "Parent": "e1"},
        {"uid": "s1", "Summary": "Subtask", "Parent": "t1"},
    ]


class TestFlatRun:
    def test_single_call_for_rows_without_identifiers(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [{"Summary": "one"}, {"Summary": "two"}, {"Summary": "three", "Project": "PROJ"}]

        summary = make_orchestrator(submitter).run(records)

        assert len(submitter.calls) == 1
        assert submitter.submitted_fields[0] == [
            {"summary": "one"},
            {"summary": "two"},
            {"summary": "three", "project": {"key": "PROJ"}},
        ]
        assert summary.total == 3
        assert summary.succeeded == 3
        assert summary.failed == 0
        assert summary.manifest.created == {0: "PROJ-1", 1: "PROJ-2", 2: "PROJ-3"}

    def test_partial_failure_recorded_per_row(self, make_orchestrator: OrchestratorFactory) -> None:
        submitter = ScriptedSubmitter(reject=reject_summary("bad"))

        summary = make_orchestrator(submitter).run([{"Summary": "a"}, {"Summary": "bad"}, {"Summary": "c"}])

        assert summary.manifest.succeeded == (0, 2)
        assert summary.manifest.failed == (1,)
        assert summary.manifest.created == {0: "PROJ-1", 2: "PROJ-2"}
        assert summary.manifest.errors == {1: RowError(status=400, errors={"summary": "Summary is invalid"})}
        assert [result.success for result in summary.results] == [True, False, True]

    def test_empty_input(self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter) -> None:
        summary = make_orchestrator(submitter).run([])

        assert submitter.calls == []
        assert summary.total == 0
        assert summary.results == ()

    def test_bulk_timeout_passed_to_submitter(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        make_orchestrator(submitter, bulk_timeout=12.0).run([{"Summary": "one"}])

        assert submitter.timeouts == [12.0]

    def test_manifest_is_stored(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter, store: ManifestStore
    ) -> None:
        summary = make_orchestrator(submitter).run([{"Summary": "one"}])

        lookup = store.get(summary.manifest.manifest_id)
        assert lookup.found
        assert lookup.manifest == summary.manifest
        assert summary.manifest.manifest_id.startswith("bulk-")


class TestHierarchyRun:
    def test_child_references_created_parent_key(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [{"uid": "e1", "Summary": "Epic"}, {"uid": "t1", "Summary": "Task", "Parent": "e1"}]

        summary = make_orchestrator(submitter).run(records)

        assert submitter.submitted_fields == [
            [{"summary": "Epic"}],
            [{"summary": "Task", "parent": {"key": "PROJ-1"}}],
        ]
        assert summary.manifest.created == {0: "PROJ-1", 1: "PROJ-2"}
        assert summary.manifest.uid_map == {"e1": "PROJ-1", "t1": "PROJ-2"}

    def test_one_call_per_level_in_depth_order(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [
            {"uid": "s1", "Summary": "Subtask", "Parent": "t1"},
            {"uid": "t1", "Summary": "Task", "Parent": "e1"},
            {"uid": "e1", "Summary": "Epic"},
            {"uid": "e2", "Summary": "Other epic"},
        ]

        summary = make_orchestrator(submitter).run(records)

        assert [[fields["summary"] for fields in call] for call in submitter.submitted_fields] == [
            ["Epic", "Other epic"],
            ["Task"],
            ["Subtask"],
        ]
        # Results are keyed by original input position
        assert summary.manifest.created == {2: "PROJ-1", 3: "PROJ-2", 1: "PROJ-3", 0: "PROJ-4"}

    def test_existing_key_parent_passes_through(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [{"uid": "t1", "Summary": "Task", "Parent": "PROJ-99"}]

        make_orchestrator(submitter).run(records)

        assert submitter.submitted_fields == [[{"summary": "Task", "parent": {"key": "PROJ-99"}}]]

    def test_identifier_never_sent(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        make_orchestrator(submitter).run([{"uid": "e1", "Summary": "Epic"}])

        assert "uid" not in submitter.submitted_fields[0][0]

    def test_failed_parent_orphans_children(self, make_orchestrator: OrchestratorFactory) -> None:
        submitter = ScriptedSubmitter(reject=reject_summary("Epic"))

        summary = make_orchestrator(submitter).run(_epic_task_subtask())

        assert len(submitter.calls) == 1
        assert summary.manifest.failed == (0, 1, 2)
        assert summary.manifest.errors[1] == RowError(status=424, errors={"Parent": "parent 'e1' was not created"})
        assert summary.manifest.errors[2] == RowError(status=424, errors={"Parent": "parent 't1' was not created"})

    def test_invalid_row_fails_without_blocking_siblings(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [{"uid": "e1"}, {"uid": "e2", "Summary": "Valid"}, {"Summary": "Child", "Parent": "e1"}]

        summary = make_orchestrator(submitter).run(records)

        assert summary.manifest.errors[0] == RowError(status=400, errors={"Summary": "is required"})
        assert summary.manifest.errors[2].status == 424
        assert summary.manifest.created == {1: "PROJ-1"}
        assert submitter.submitted_fields == [[{"summary": "Valid"}]]

    def test_transport_failure_fails_level_and_orphans_below(self, make_orchestrator: OrchestratorFactory) -> None:
        submitter = ScriptedSubmitter(fail_calls=(1,))

        summary = make_orchestrator(submitter).run(_epic_task_subtask())

        assert len(submitter.calls) == 2
        assert summary.manifest.created == {0: "PROJ-1"}
        assert summary.manifest.errors[1] == TIMEOUT_ERROR
        assert summary.manifest.errors[2] == RowError(status=424, errors={"Parent": "parent 't1' was not created"})
        assert summary.manifest.uid_map == {"e1": "PROJ-1"}

    def test_transport_failure_on_root_level(self, make_orchestrator: OrchestratorFactory) -> None:
        submitter = ScriptedSubmitter(fail_calls=(0,))
        records = [
            {"uid": "e1", "Summary": "Epic"},
            {"uid": "t1", "Summary": "Task", "Parent": "e1"},
            {"uid": "e2", "Summary": "Epic 2"},
            {"uid": "x1", "Summary": "Child of existing", "Parent": "PROJ-50"},
        ]

        summary = make_orchestrator(submitter).run(records)

        assert summary.manifest.errors[0] == TIMEOUT_ERROR
        assert summary.manifest.errors[2] == TIMEOUT_ERROR
        assert summary.manifest.errors[3] == TIMEOUT_ERROR
        assert summary.manifest.errors[1].status == 424
        assert len(submitter.calls) == 1

    def test_cycle_rejected_before_any_call(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [
            {"uid": "a", "Summary": "A", "Parent": "b"},
            {"uid": "b", "Summary": "B", "Parent": "a"},
        ]

        with pytest.raises(HierarchyCycleError):
            make_orchestrator(submitter).run(records)

        assert submitter.calls == []

    def test_self_reference_is_cycle(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        with pytest.raises(HierarchyCycleError):
            make_orchestrator(submitter).run([{"uid": "a", "Summary": "A", "Parent": "a"}])

        assert submitter.calls == []

    def test_duplicate_identifier_rejected_before_any_call(
        self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter
    ) -> None:
        records = [{"uid": "a", "Summary": "A"}, {"uid": "a", "Summary": "B"}]

        with pytest.raises(DuplicateIdentifierError):
            make_orchestrator(submitter).run(records)

        assert submitter.calls == []


class TestRetry:
    def test_retry_resubmits_only_failed_rows(self, make_orchestrator: OrchestratorFactory) -> None:
        first = ScriptedSubmitter(reject=reject_summary("bad"))
        summary = make_orchestrator(first).run([{"Summary": "a"}, {"Summary": "bad"}, {"Summary": "c"}])
        manifest_id = summary.manifest.manifest_id

        second = ScriptedSubmitter(key_prefix="NEW")
        retried = make_orchestrator(second).retry(
            [{"Summary": "a"}, {"Summary": "fixed"}, {"Summary": "c"}], manifest_id
        )

        assert second.submitted_fields == [[{"summary": "fixed"}]]
        assert retried.total == 3
        assert retried.succeeded == 3
        assert retried.failed == 0
        assert retried.manifest.manifest_id == manifest_id
        assert retried.manifest.created_at == summary.manifest.created_at
        assert retried.manifest.created == {0: "PROJ-1", 1: "NEW-1", 2: "PROJ-2"}
        assert retried.manifest.errors == {}

    def test_retry_still_failing_keeps_new_error(
        self, make_orchestrator: OrchestratorFactory, store: ManifestStore
    ) -> None:
        first = ScriptedSubmitter(reject=reject_summary("bad"))
        manifest_id = make_orchestrator(first).run([{"Summary": "a"}, {"Summary": "bad"}]).manifest.manifest_id

        second = ScriptedSubmitter(key_prefix="NEW", fail_calls=(0,))
        retried = make_orchestrator(second).retry([{"Summary": "a"}, {"Summary": "bad"}], manifest_id)

        assert retried.manifest.failed == (1,)
        assert retried.manifest.errors == {1: TIMEOUT_ERROR}
        stored = store.get(manifest_id).manifest
        assert stored is not None
        assert stored.errors == {1: TIMEOUT_ERROR}

    def test_retry_seeds_created_parents(self, make_orchestrator: OrchestratorFactory) -> None:
        first = ScriptedSubmitter(fail_calls=(1,))
        manifest_id = make_orchestrator(first).run(_epic_task_subtask()).manifest.manifest_id

        second = ScriptedSubmitter(key_prefix="NEW")
        retried = make_orchestrator(second).retry(_epic_task_subtask(), manifest_id)

        assert second.submitted_fields == [
            [{"summary": "Task", "parent": {"key": "PROJ-1"}}],
            [{"summary": "Subtask", "parent": {"key": "NEW-1"}}],
        ]
        assert retried.manifest.created == {0: "PROJ-1", 1: "NEW-1", 2: "NEW-2"}
        assert retried.manifest.uid_map == {"e1": "PROJ-1", "t1": "NEW-1", "s1": "NEW-2"}
        assert retried.failed == 0

    def test_retry_with_nothing_failed_makes_no_calls(self, make_orchestrator: OrchestratorFactory) -> None:
        records = [{"Summary": "a"}, {"Summary": "b"}]
        summary = make_orchestrator(ScriptedSubmitter()).run(records)

        second = ScriptedSubmitter()
        retried = make_orchestrator(second).retry(records, summary.manifest.manifest_id)

        assert second.calls == []
        assert retried.manifest == summary.manifest

    def test_repeated_retry_never_recreates(self, make_orchestrator: OrchestratorFactory) -> None:
        records = [{"Summary": "a"}, {"Summary": "b"}]
        manifest_id = make_orchestrator(ScriptedSubmitter(reject=reject_summary("b"))).run(records).manifest.manifest_id

        fixed = [{"Summary": "a"}, {"Summary": "b2"}]
        second = ScriptedSubmitter(key_prefix="NEW")
        make_orchestrator(second).retry(fixed, manifest_id)
        third = ScriptedSubmitter(key_prefix="AGAIN")
        retried = make_orchestrator(third).retry(fixed, manifest_id)

        assert len(second.calls) == 1
        assert third.calls == []
        assert retried.manifest.created == {0: "PROJ-1", 1: "NEW-1"}

    def test_unknown_manifest(self, make_orchestrator: OrchestratorFactory, submitter: ScriptedSubmitter) -> None:
        with pytest.raises(ManifestNotFoundError) as exc_info:
            make_orchestrator(submitter).retry([{"Summary": "a"}], "bulk-missing")

        assert exc_info.value.manifest_id == "bulk-missing"
        assert submitter.calls == []

    def test_input_shorter_than_failed_indices(self, make_orchestrator: OrchestratorFactory) -> None:
        records = [{"Summary": "a"}, {"Summary": "b"}, {"Summary": "bad"}]
        manifest_id = make_orchestrator(ScriptedSubmitter(reject=reject_summary("bad"))).run(records).manifest.manifest_id

        second = ScriptedSubmitter()
        with pytest.raises(RetryInputMismatchError, match="failed row 2"):
            make_orchestrator(second).retry(records[:2], manifest_id)

        assert second.calls == []


class ContradictingSubmitter(ScriptedSubmitter):
    """Scripted answers for the first call, then a failed element named twice."""

    def submit(self, payloads: Sequence[dict[str, Any]], timeout: float | None = None) -> BulkSubmission:
        if not self.calls:
            return super().submit(payloads, timeout)
        self.calls.append(list(payloads))
        failed = FailedItem(index=0, status=400, errors={"summary": "bad"})
        return PartialSuccess(BulkCallResult(failed=(failed, failed)))


def _break_connections(monkeypatch: pytest.MonkeyPatch, db: ManifestDB, *, after: int = 0) -> None:
    """Make every manifest DB connection past the first ``after`` raise."""
    original = db.connection
    opened = itertools.count()

    def connection() -> Any:
        if next(opened) >= after:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return original()

    monkeypatch.setattr(db, "connection", connection)


class TestContradictoryResult:
    def test_level_fails_and_run_completes(
        self, make_orchestrator: OrchestratorFactory, store: ManifestStore
    ) -> None:
        submitter = ContradictingSubmitter()

        summary = make_orchestrator(submitter).run(_epic_task_subtask())

        assert summary.manifest.created == {0: "PROJ-1"}
        assert summary.manifest.errors[1] == RowError(
            status=500, errors={"bulk": "Bulk result names element 0 more than once"}
        )
        assert summary.manifest.errors[2] == orphan_error("t1")
        assert summary.store_outcome is StoreOutcome.PERSISTED
        stored = store.get(summary.manifest.manifest_id).manifest
        assert stored is not None
        assert stored.created == {0: "PROJ-1"}


class TestStoreFailure:
    def test_run_completes_when_manifest_cannot_be_written(
        self,
        make_orchestrator: OrchestratorFactory,
        submitter: ScriptedSubmitter,
        manifest_db: ManifestDB,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _break_connections(monkeypatch, manifest_db)

        summary = make_orchestrator(submitter).run([{"Summary": "a"}, {"Summary": "b"}])

        assert summary.succeeded == 2
        assert summary.manifest.created == {0: "PROJ-1", 1: "PROJ-2"}
        assert summary.store_outcome is StoreOutcome.SKIPPED
        assert summary.to_dict()["manifestStore"] == "skipped"

    def test_retry_of_unreadable_manifest_is_not_found(
        self,
        make_orchestrator: OrchestratorFactory,
        manifest_db: ManifestDB,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        records = [{"Summary": "a"}, {"Summary": "bad"}]
        manifest_id = make_orchestrator(ScriptedSubmitter(reject=reject_summary("bad"))).run(records).manifest.manifest_id
        _break_connections(monkeypatch, manifest_db)

        second = ScriptedSubmitter()
        with pytest.raises(ManifestNotFoundError) as exc_info:
            make_orchestrator(second).retry(records, manifest_id)

        assert exc_info.value.manifest_id == manifest_id
        assert second.calls == []

    def test_retry_completes_when_merged_manifest_cannot_be_written(
        self,
        make_orchestrator: OrchestratorFactory,
        store: ManifestStore,
        manifest_db: ManifestDB,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        records = [{"Summary": "a"}, {"Summary": "bad"}]
        manifest_id = make_orchestrator(ScriptedSubmitter(reject=reject_summary("bad"))).run(records).manifest.manifest_id
        _break_connections(monkeypatch, manifest_db, after=1)

        retried = make_orchestrator(ScriptedSubmitter(key_prefix="NEW")).retry(
            [{"Summary": "a"}, {"Summary": "fixed"}], manifest_id
        )

        assert retried.manifest.created == {0: "PROJ-1", 1: "NEW-1"}
        assert retried.failed == 0
        assert retried.store_outcome is StoreOutcome.SKIPPED
        monkeypatch.undo()
        stale = store.get(manifest_id).manifest
        assert stale is not None
        assert stale.failed == (1,)
