"""FieldMapBuilder: default record -> creation payload builder.

Maps record field names to tracker field ids and renders the parent
reference. Value conversion (user lookup, option resolution, dates) is
out of scope; values pass through as given.

Config (builder section):
    field_map: Dict of record field -> tracker field id
        - Simple: {"Summary": "summary"}
        - Dotted: {"Project": "project.key"} renders {"project": {"key": value}}
    required_fields: Record fields that must be present and non-empty
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from issuebatch.contracts import RowValidationError
from issuebatch.core.hierarchy.references import DEFAULT_PARENT_FIELD, normalize_reference

if TYPE_CHECKING:
    from issuebatch.core.config import BuilderSettings


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _set_nested_field(target: dict[str, Any], path: str, value: Any) -> None:
    """Set ``value`` at a dotted path, creating intermediate dicts."""
    *parents, leaf = path.split(".")
    node = target
    for part in parents:
        child = node.setdefault(part, {})
        if not isinstance(child, dict):
            raise RowValidationError(
                f"Field '{path}' conflicts with non-object field '{part}'",
                {path: f"conflicts with field '{part}'"},
            )
        node = child
    node[leaf] = value


class FieldMapBuilder:
    """Builds ``{"fields": {...}}`` payloads from flat records.

    Validation only: never creates anything in the tracker. Safe to call
    from worker threads (no mutable state after construction).
    """

    def __init__(
        self,
        field_map: Mapping[str, str] | None = None,
        *,
        required_fields: Sequence[str] = (),
        parent_field: str = DEFAULT_PARENT_FIELD,
    ) -> None:
        self._field_map = dict(field_map or {})
        self._required_fields = tuple(required_fields)
        self._parent_field = parent_field

    @classmethod
    def from_settings(cls, settings: BuilderSettings, *, parent_field: str = DEFAULT_PARENT_FIELD) -> FieldMapBuilder:
        return cls(settings.field_map, required_fields=settings.required_fields, parent_field=parent_field)

    def build(self, record: dict[str, Any]) -> dict[str, Any]:
        """Build the creation payload for one record.

        Raises:
            RowValidationError: Missing required fields (one entry per field)
        """
        missing = {name: "is required" for name in self._required_fields if _is_blank(record.get(name))}
        if missing:
            raise RowValidationError(f"Missing required fields: {', '.join(missing)}", missing)

        fields: dict[str, Any] = {}
        for name, value in record.items():
            if name == self._parent_field:
                parent = normalize_reference(value)
                if parent is not None:
                    fields["parent"] = {"key": parent}
                continue
            if value is None:
                continue
            _set_nested_field(fields, self._field_map.get(name, name), value)

        return {"fields": fields}
