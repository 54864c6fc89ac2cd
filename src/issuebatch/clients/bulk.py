# src/issuebatch/clients/bulk.py
"""Normalized wrapper around the tracker's multi-item create endpoint.

The endpoint answers in three shapes that all carry the same body:
- 201 with every item created
- 201 with some items created and an ``errors`` list for the rest
- 400 with nothing created and the ``errors`` list in the error body

All three normalize into one BulkCallResult keyed by submission index.

Response body shape:
    {
      "issues": [{"id": "10001", "key": "PROJ-1", "self": "https://..."}],
      "errors": [
        {"status": 400, "failedElementNumber": 1,
         "elementErrors": {"errorMessages": [], "errors": {"summary": "required"}}}
      ]
    }

``issues`` lists created items in submission order but without their
submission index, so created items are matched to the submission indices
not named by any ``failedElementNumber``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from issuebatch.clients.http import TrackerHTTPClient
from issuebatch.contracts import (
    BulkCallResult,
    BulkSubmission,
    CreatedItem,
    FailedItem,
    PartialSuccess,
    TrackerError,
    TrackerServerError,
    TrackerValidationError,
    TransportFailure,
)

logger = structlog.get_logger(__name__)

DEFAULT_BULK_ENDPOINT = "/rest/api/2/issue/bulk"
DEFAULT_BULK_TIMEOUT_SECONDS = 30.0


def _is_bulk_body(body: Any) -> bool:
    """True if a response body has the bulk endpoint's breakdown shape."""
    return isinstance(body, Mapping) and ("issues" in body or "errors" in body) and isinstance(body.get("errors", []), list)


def _element_errors(entry: Mapping[str, Any]) -> dict[str, str]:
    """Field errors of one failed element, with top-level messages folded in."""
    element = entry.get("elementErrors") or {}
    errors = {str(k): str(v) for k, v in (element.get("errors") or {}).items()}
    messages = [str(m) for m in element.get("errorMessages") or []]
    if messages:
        errors.setdefault("general", "; ".join(messages))
    return errors


def normalize_bulk_response(body: Mapping[str, Any], submitted: int, url: str | None = None) -> BulkCallResult:
    """Normalize a bulk endpoint body into created/failed items.

    Args:
        body: Parsed response body
        submitted: Number of payloads in the request
        url: Request URL, for error context

    Returns:
        BulkCallResult with submission-local indices

    Raises:
        TrackerServerError: The body contradicts the request (an index out of
            range or repeated, or more created items than unfailed submissions)
    """
    failed: list[FailedItem] = []
    failed_indices: set[int] = set()
    for entry in body.get("errors") or []:
        index = int(entry["failedElementNumber"])
        if not 0 <= index < submitted:
            raise TrackerServerError(
                f"Bulk response names element {index} but only {submitted} were submitted",
                url=url,
                response_body=dict(body),
            )
        if index in failed_indices:
            raise TrackerServerError(
                f"Bulk response names element {index} more than once",
                url=url,
                response_body=dict(body),
            )
        failed_indices.add(index)
        failed.append(FailedItem(index=index, status=int(entry.get("status", 400)), errors=_element_errors(entry)))

    slots = [index for index in range(submitted) if index not in failed_indices]
    issues = list(body.get("issues") or [])
    if len(issues) > len(slots):
        raise TrackerServerError(
            f"Bulk response lists {len(issues)} created items for {len(slots)} unfailed submissions",
            url=url,
            response_body=dict(body),
        )
    if len(issues) < len(slots):
        logger.warning("bulk_response_incomplete", submitted=submitted, created=len(issues), failed=len(failed))

    created = tuple(
        CreatedItem(
            index=index,
            key=str(issue["key"]),
            item_id=str(issue["id"]) if issue.get("id") is not None else None,
            self_url=issue.get("self"),
        )
        for index, issue in zip(slots, issues, strict=False)
    )
    return BulkCallResult(created=created, failed=tuple(sorted(failed, key=lambda item: item.index)))


class BulkCallWrapper:
    """Submits payloads to the bulk create endpoint.

    Example:
        wrapper = BulkCallWrapper(client, timeout=30.0)
        outcome = wrapper.submit([{"fields": {...}}, {"fields": {...}}])
        match outcome:
            case PartialSuccess(result=result):
                ...
            case TransportFailure(error=error):
                ...
    """

    def __init__(
        self,
        client: TrackerHTTPClient,
        *,
        timeout: float = DEFAULT_BULK_TIMEOUT_SECONDS,
        endpoint: str = DEFAULT_BULK_ENDPOINT,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self._client = client
        self._timeout = timeout
        self._endpoint = endpoint

    def create_bulk(self, payloads: Sequence[dict[str, Any]], timeout: float | None = None) -> BulkCallResult:
        """Create items in one call.

        Args:
            payloads: Creation payloads in submission order
            timeout: Per-call override of the configured timeout

        Returns:
            Normalized result for 201 and structured-400 answers

        Raises:
            TrackerError: Any other failure (network, timeout, auth, server)
        """
        if not payloads:
            return BulkCallResult.empty()

        effective_timeout = self._timeout if timeout is None else timeout
        try:
            body = self._client.post(self._endpoint, {"issueUpdates": list(payloads)}, timeout=effective_timeout)
        except TrackerValidationError as e:
            # 400 is a valid bulk answer when nothing was created
            if _is_bulk_body(e.response_body):
                return self._normalize(e.response_body, len(payloads), e.url)
            raise

        if not _is_bulk_body(body):
            raise TrackerServerError("Bulk response has no issues/errors breakdown", url=self._endpoint, response_body=body)
        return self._normalize(body, len(payloads), self._endpoint)

    @staticmethod
    def _normalize(body: Mapping[str, Any], submitted: int, url: str | None) -> BulkCallResult:
        try:
            return normalize_bulk_response(body, submitted, url)
        except (KeyError, TypeError, ValueError) as e:
            raise TrackerServerError(f"Malformed bulk response: {e}", url=url, response_body=dict(body)) from e

    def submit(self, payloads: Sequence[dict[str, Any]], timeout: float | None = None) -> BulkSubmission:
        """Like create_bulk(), but return transport failures instead of raising."""
        try:
            return PartialSuccess(self.create_bulk(payloads, timeout))
        except TrackerError as e:
            logger.warning(
                "bulk_call_failed",
                submitted=len(payloads),
                error=str(e),
                error_type=type(e).__name__,
                status=e.status,
            )
            return TransportFailure(e)
