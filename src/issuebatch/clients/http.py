# src/issuebatch/clients/http.py
"""HTTP client for the issue tracker's REST API.

Maps HTTP failures onto the TrackerError hierarchy so callers can branch
on error type instead of status codes. Throttling (429) and temporary
unavailability (503) are retried with backoff; nothing else is, since a
timed-out create may already have taken effect on the tracker.
"""

from __future__ import annotations

import json
from json import JSONDecodeError
from typing import Any

import httpx
import structlog

from issuebatch.contracts import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    TrackerError,
    TrackerServerError,
    TrackerValidationError,
)
from issuebatch.engine.retry import RetryConfig, RetryManager

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


def _first_error_message(body: Any) -> str:
    """First message from a tracker error body, or a generic fallback."""
    if isinstance(body, dict):
        messages = body.get("errorMessages")
        if isinstance(messages, list) and messages:
            return str(messages[0])
    return "Unknown error"


def _validation_message(body: Any) -> str:
    """Join top-level and field-level messages of a 400 body."""
    if not isinstance(body, dict):
        return "Validation failed"
    parts = [str(m) for m in body.get("errorMessages") or []]
    field_errors = body.get("errors")
    if isinstance(field_errors, dict):
        parts.extend(f"{field}: {message}" for field, message in field_errors.items())
    return "; ".join(parts) or "Validation failed"


def error_for_status(status: int, body: Any, url: str) -> TrackerError:
    """Build the TrackerError subclass for a non-success HTTP status.

    The parsed body is preserved on the error; for 400 responses from the
    bulk endpoint it carries the per-item breakdown.
    """
    message = _first_error_message(body)
    context: dict[str, Any] = {"status": status, "url": url, "response_body": body}

    if status == 401:
        return AuthenticationError(f"Authentication failed: {message}. Check the tracker token.", **context)
    if status == 403:
        return AuthenticationError(f"Forbidden: {message}. The token may lack required permissions.", **context)
    if status == 404:
        return NotFoundError(f"Resource not found: {message}", **context)
    if status == 400:
        return TrackerValidationError(_validation_message(body), **context)
    if status == 429:
        return RateLimitError(f"Rate limit exceeded: {message}", **context)
    if status >= 500:
        return TrackerServerError(f"Tracker server error ({status}): {message}", **context)
    return TrackerServerError(f"HTTP {status}: {message}", **context)


class TrackerHTTPClient:
    """JSON-over-HTTP client with bearer auth and typed errors.

    httpx.Client is thread-safe; one instance is shared by every call
    of a run.

    Example:
        client = TrackerHTTPClient(
            base_url="https://tracker.example.com",
            token="...",
            retry_manager=RetryManager(RetryConfig(max_attempts=3)),
        )
        body = client.post("/rest/api/2/issue/bulk", {"issueUpdates": [...]}, timeout=30.0)
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_manager: RetryManager | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_manager = retry_manager or RetryManager(RetryConfig.no_retry())
        default_headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if token:
            default_headers["Authorization"] = f"Bearer {token}"
        default_headers.update(headers or {})
        self._client = httpx.Client(timeout=timeout, headers=default_headers, follow_redirects=False)

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        """Close the underlying httpx client and release connections."""
        self._client.close()

    def __enter__(self) -> TrackerHTTPClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _resolve_url(self, path: str) -> str:
        """Join base_url with path, handling slash combinations."""
        return f"{self._base_url}/{path.lstrip('/')}"

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        """Parsed JSON body, None when empty, raw text when not JSON."""
        if not response.content:
            return None
        try:
            return json.loads(response.text)
        except JSONDecodeError:
            return response.text

    def _send(self, method: str, url: str, body: Any, timeout: float) -> Any:
        try:
            response = self._client.request(method, url, json=body, timeout=timeout)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out after {timeout}s", url=url) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network request failed: {e}", url=url) from e

        parsed = self._parse_body(response)
        if response.is_success:
            return {} if parsed is None else parsed
        raise error_for_status(response.status_code, parsed, url)

    def request(self, method: str, path: str, body: Any = None, *, timeout: float | None = None) -> Any:
        """Send a request and return the parsed JSON body.

        Args:
            method: HTTP method
            path: Path relative to base_url
            body: JSON-serializable request body
            timeout: Per-call timeout in seconds (defaults to the client timeout)

        Returns:
            Parsed response body ({} for empty success responses)

        Raises:
            TrackerError: Subclass matching the failure (after retries for 429/503)
        """
        url = self._resolve_url(path)
        effective_timeout = self._timeout if timeout is None else timeout

        def on_retry(attempt: int, error: BaseException) -> None:
            logger.warning(
                "tracker_request_retrying",
                method=method,
                url=url,
                attempt=attempt,
                status=getattr(error, "status", None),
            )

        return self._retry_manager.call(lambda: self._send(method, url, body, effective_timeout), on_retry=on_retry)

    def post(self, path: str, body: Any, *, timeout: float | None = None) -> Any:
        return self.request("POST", path, body, timeout=timeout)
