"""Hierarchy preprocessing: identifiers, cycles, levels and substitution."""

from issuebatch.core.hierarchy.cycles import detect_cycles, find_parent_cycle
from issuebatch.core.hierarchy.graph import build_parent_graph, parent_of
from issuebatch.core.hierarchy.levels import build_levels, compute_depths, strip_uid_field
from issuebatch.core.hierarchy.preprocess import preprocess_records
from issuebatch.core.hierarchy.references import (
    DEFAULT_PARENT_FIELD,
    DEFAULT_UID_FIELD,
    detect_identifiers,
    normalize_reference,
    resolve_parent_index,
)
from issuebatch.core.hierarchy.substitution import SubstitutionTracker

__all__ = [
    "DEFAULT_PARENT_FIELD",
    "DEFAULT_UID_FIELD",
    "SubstitutionTracker",
    "build_levels",
    "build_parent_graph",
    "compute_depths",
    "detect_cycles",
    "detect_identifiers",
    "find_parent_cycle",
    "normalize_reference",
    "parent_of",
    "preprocess_records",
    "resolve_parent_index",
]
