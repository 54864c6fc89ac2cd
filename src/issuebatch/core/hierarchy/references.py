# src/issuebatch/core/hierarchy/references.py
"""Temporary identifier detection.

Rows may carry a caller-supplied identifier (``uid`` by default) so that
other rows in the same submission can name them as parent before either
exists in the tracker. Identifiers are normalized to trimmed strings and
compared case-sensitively ("Task-1" != "task-1").
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from issuebatch.contracts import DuplicateIdentifierError, IdentifierMap

DEFAULT_UID_FIELD = "uid"
DEFAULT_PARENT_FIELD = "Parent"


def normalize_reference(value: Any) -> str | None:
    """Normalize an identifier or parent reference value.

    Only str and numeric values are accepted, to avoid unsafe coercion of
    lists/dicts into identifiers. bool is rejected even though it is an int.
    Integral floats normalize like the int they equal (1.0 -> "1"). NaN
    and infinities are unusable.

    Returns:
        Trimmed string, or None if the value is absent, empty or unusable.
    """
    if isinstance(value, bool) or not isinstance(value, str | int | float):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def detect_identifiers(records: Sequence[Mapping[str, Any]], uid_field: str = DEFAULT_UID_FIELD) -> IdentifierMap:
    """Build identifier <-> row index maps for a record set.

    Args:
        records: Input records in submission order
        uid_field: Name of the identifier field

    Returns:
        IdentifierMap (empty when no row carries an identifier)

    Raises:
        DuplicateIdentifierError: If any identifier appears on more than one row.
            Reports the first duplicated identifier with every index sharing it.
    """
    uid_to_index: dict[str, int] = {}
    index_to_uid: dict[int, str] = {}
    duplicates: dict[str, list[int]] = {}

    for index, record in enumerate(records):
        uid = normalize_reference(record.get(uid_field))
        if uid is None:
            continue
        if uid in uid_to_index:
            duplicates.setdefault(uid, [uid_to_index[uid]]).append(index)
            continue
        uid_to_index[uid] = index
        index_to_uid[index] = uid

    if duplicates:
        first = next(iter(duplicates))
        raise DuplicateIdentifierError(first, duplicates[first], duplicates)

    return IdentifierMap(uid_to_index=uid_to_index, index_to_uid=index_to_uid)


def resolve_parent_index(
    record: Mapping[str, Any],
    identifiers: IdentifierMap,
    parent_field: str = DEFAULT_PARENT_FIELD,
) -> int | None:
    """Row index of the record's parent, if the parent is in this record set.

    A parent reference that is absent, unusable, or names something that is
    not a known identifier (e.g. an existing tracker key) resolves to None.
    """
    parent = normalize_reference(record.get(parent_field))
    if parent is None:
        return None
    return identifiers.uid_to_index.get(parent)
