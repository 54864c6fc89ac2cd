"""Property-based tests for hierarchy leveling and bulk execution.

Properties tested:
1. Every row lands in exactly one level
2. A row sits exactly one level below its in-submission parent
3. A run records exactly one outcome per row
4. A row is created only if its in-submission parent was created
"""

from __future__ import annotations

from typing import Any

from hypothesis import given
from hypothesis import strategies as st

from issuebatch.core.hierarchy import preprocess_records
from issuebatch.core.manifest import ManifestDB, ManifestStore
from issuebatch.engine import BulkOrchestrator
from issuebatch.plugins import FieldMapBuilder
from tests.conftest import ScriptedSubmitter, reject_summary
from tests.property.conftest import forests


def _depths(records: list[dict[str, Any]]) -> dict[int, int]:
    prepared = preprocess_records(records)
    return {item.index: level.depth for level in prepared.levels for item in level.items}


def _position_by_uid(records: list[dict[str, Any]]) -> dict[str, int]:
    return {record["uid"]: position for position, record in enumerate(records)}


class TestLevelProperties:
    @given(records=forests())
    def test_every_row_in_exactly_one_level(self, records: list[dict[str, Any]]) -> None:
        prepared = preprocess_records(records)

        indices = [item.index for level in prepared.levels for item in level.items]
        assert sorted(indices) == list(range(len(records)))

    @given(records=forests())
    def test_child_one_level_below_parent(self, records: list[dict[str, Any]]) -> None:
        depths = _depths(records)
        positions = _position_by_uid(records)

        for position, record in enumerate(records):
            parent = record.get("Parent")
            if parent is None:
                assert depths[position] == 0
            else:
                assert depths[position] == depths[positions[parent]] + 1

    @given(records=forests())
    def test_levels_ascending_and_members_in_input_order(self, records: list[dict[str, Any]]) -> None:
        prepared = preprocess_records(records)

        assert [level.depth for level in prepared.levels] == list(range(len(prepared.levels)))
        for level in prepared.levels:
            assert level.indices == sorted(level.indices)


class TestRunProperties:
    @given(records=forests(), data=st.data())
    def test_outcomes_cover_rows_and_respect_parents(self, records: list[dict[str, Any]], data: st.DataObject) -> None:
        rejected = data.draw(st.sets(st.sampled_from([r["Summary"] for r in records])) if records else st.just(set()))
        submitter = ScriptedSubmitter(reject=reject_summary(*rejected))
        db = ManifestDB.in_memory()
        try:
            orchestrator = BulkOrchestrator(FieldMapBuilder({"Summary": "summary"}), submitter, ManifestStore(db), max_workers=2)
            summary = orchestrator.run(records)
        finally:
            db.close()

        manifest = summary.manifest
        assert [result.index for result in summary.results] == list(range(len(records)))
        assert set(manifest.succeeded) | set(manifest.failed) == set(range(len(records)))

        positions = _position_by_uid(records)
        for position, record in enumerate(records):
            parent = record.get("Parent")
            if record["Summary"] in rejected:
                assert position in manifest.failed
            elif parent is not None and positions[parent] in manifest.failed:
                assert manifest.errors[position].status == 424
            else:
                assert manifest.created[position] == manifest.uid_map[record["uid"]]

        assert len(submitter.calls) <= len(preprocess_records(records).levels)
