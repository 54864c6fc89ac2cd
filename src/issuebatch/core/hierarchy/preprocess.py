"""Hierarchy preprocessing pipeline.

Runs the hierarchy checks in the order the engine depends on:
1. Identifier detection (duplicates are fatal)
2. Cycle detection (cycles are fatal, before anything is submitted)
3. Level building (identifier field stripped from every record)

Records without any identifier skip steps 2-3 and come back as a single
level 0.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from issuebatch.contracts import HierarchyLevel, IdentifierMap, LevelItem, PreprocessResult
from issuebatch.core.hierarchy.cycles import detect_cycles
from issuebatch.core.hierarchy.levels import build_levels, strip_uid_field
from issuebatch.core.hierarchy.references import DEFAULT_PARENT_FIELD, DEFAULT_UID_FIELD, detect_identifiers
from issuebatch.core.logging import get_logger

slog = get_logger(__name__)


def preprocess_records(
    records: Sequence[Mapping[str, Any]],
    *,
    uid_field: str = DEFAULT_UID_FIELD,
    parent_field: str = DEFAULT_PARENT_FIELD,
) -> PreprocessResult:
    """Detect identifiers, reject cycles and group records into levels.

    Raises:
        DuplicateIdentifierError: Two rows share an identifier
        HierarchyCycleError: Parent references loop
    """
    if not records:
        return PreprocessResult(has_hierarchy=False, levels=())

    identifiers = detect_identifiers(records, uid_field)

    if not identifiers.has_identifiers:
        flat = HierarchyLevel(
            depth=0,
            items=tuple(
                LevelItem(index=index, record=strip_uid_field(record, uid_field))
                for index, record in enumerate(records)
            ),
        )
        return PreprocessResult(has_hierarchy=False, levels=(flat,), identifiers=IdentifierMap())

    detect_cycles(records, identifiers, parent_field)
    levels = build_levels(records, identifiers, uid_field=uid_field, parent_field=parent_field)

    slog.debug(
        "hierarchy_preprocessed",
        rows=len(records),
        identifiers=len(identifiers.uid_to_index),
        levels=[len(level) for level in levels],
    )
    return PreprocessResult(has_hierarchy=True, levels=tuple(levels), identifiers=identifiers)
