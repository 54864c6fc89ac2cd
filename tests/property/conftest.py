"""Shared Hypothesis strategies for property tests."""

from __future__ import annotations

from typing import Any

from hypothesis import strategies as st


@st.composite
def forests(draw: st.DrawFn, max_rows: int = 12) -> list[dict[str, Any]]:
    """Acyclic record sets in shuffled order.

    Row ``u<i>`` may only name a lower-numbered row as parent, so the
    generated references never loop. Shuffling then puts children before
    their parents in the input as often as not.
    """
    size = draw(st.integers(min_value=0, max_value=max_rows))
    parents: list[int | None] = []
    for row in range(size):
        parent = draw(st.none() | st.integers(min_value=0, max_value=row - 1)) if row else None
        parents.append(parent)

    records: list[dict[str, Any]] = []
    for row in draw(st.permutations(range(size))):
        record: dict[str, Any] = {"uid": f"u{row}", "Summary": f"row {row}"}
        if parents[row] is not None:
            record["Parent"] = f"u{parents[row]}"
        records.append(record)
    return records
