# tests/conftest.py
"""Shared test fixtures and helpers.

Test doubles:
- ScriptedSubmitter: In-memory BulkSubmitter that creates items with
  sequential keys, rejects payloads matching a predicate, and can fail
  whole calls with a transport error
- in-memory ManifestStore backed by SQLite (StaticPool)

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from issuebatch.contracts import (
    BulkCallResult,
    BulkSubmission,
    CreatedItem,
    FailedItem,
    NetworkError,
    PartialSuccess,
    TransportFailure,
)
from issuebatch.core.manifest import ManifestDB, ManifestStore
from issuebatch.engine import BulkOrchestrator
from issuebatch.plugins import FieldMapBuilder

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Test doubles
# =============================================================================


class ScriptedSubmitter:
    """BulkSubmitter double.

    Attributes:
        calls: Payload lists of every submit() call, in order
        timeouts: Timeout passed to every call
        created_keys: Every key handed out, in order
    """

    def __init__(
        self,
        *,
        key_prefix: str = "PROJ",
        reject: Callable[[dict[str, Any]], dict[str, str] | None] | None = None,
        fail_calls: Sequence[int] = (),
    ) -> None:
        self._key_prefix = key_prefix
        self._reject = reject
        self._fail_calls = set(fail_calls)
        self._next_key = 1
        self.calls: list[list[dict[str, Any]]] = []
        self.timeouts: list[float | None] = []
        self.created_keys: list[str] = []

    def submit(self, payloads: Sequence[dict[str, Any]], timeout: float | None = None) -> BulkSubmission:
        call_number = len(self.calls)
        self.calls.append(list(payloads))
        self.timeouts.append(timeout)
        if call_number in self._fail_calls:
            return TransportFailure(NetworkError("Request timed out after 30.0s"))

        created: list[CreatedItem] = []
        failed: list[FailedItem] = []
        for index, payload in enumerate(payloads):
            errors = self._reject(payload) if self._reject else None
            if errors:
                failed.append(FailedItem(index=index, status=400, errors=errors))
                continue
            key = f"{self._key_prefix}-{self._next_key}"
            self._next_key += 1
            self.created_keys.append(key)
            created.append(CreatedItem(index=index, key=key))
        return PartialSuccess(BulkCallResult(created=tuple(created), failed=tuple(failed)))

    @property
    def submitted_fields(self) -> list[list[dict[str, Any]]]:
        return [[payload["fields"] for payload in call] for call in self.calls]


def reject_summary(*bad: str) -> Callable[[dict[str, Any]], dict[str, str] | None]:
    """Reject predicate failing payloads whose summary is one of ``bad``."""

    def predicate(payload: dict[str, Any]) -> dict[str, str] | None:
        if payload["fields"].get("summary") in bad:
            return {"summary": "Summary is invalid"}
        return None

    return predicate


class FrozenClock:
    """Settable UTC clock for retention tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def manifest_db() -> Iterator[ManifestDB]:
    db = ManifestDB.in_memory()
    yield db
    db.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(manifest_db: ManifestDB, clock: FrozenClock) -> ManifestStore:
    return ManifestStore(manifest_db, clock=clock)


@pytest.fixture
def builder() -> FieldMapBuilder:
    return FieldMapBuilder({"Summary": "summary", "Project": "project.key"}, required_fields=("Summary",))


@pytest.fixture
def submitter() -> ScriptedSubmitter:
    return ScriptedSubmitter()


@pytest.fixture
def make_orchestrator(
    builder: FieldMapBuilder, store: ManifestStore
) -> Callable[..., BulkOrchestrator]:
    """Factory so each test chooses its submitter script."""

    def factory(submitter: ScriptedSubmitter, **kwargs: Any) -> BulkOrchestrator:
        return BulkOrchestrator(builder, submitter, store, max_workers=kwargs.pop("max_workers", 2), **kwargs)

    return factory
