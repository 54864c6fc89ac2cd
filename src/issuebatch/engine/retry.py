# src/issuebatch/engine/retry.py
"""Transient-error retry for tracker calls, backed by tenacity.

Only throttling and temporary unavailability are retried. A bulk create
that failed part-way is never retried here; that is what manifest-driven
retry of the failed subset is for.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from issuebatch.core.config import RetrySettings

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from issuebatch.contracts import RateLimitError, TrackerServerError

T = TypeVar("T")

# Status codes where the tracker has not acted on the request
RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 503})


def is_transient_tracker_error(error: BaseException) -> bool:
    """True for 429 Too Many Requests and 503 Service Unavailable."""
    if isinstance(error, RateLimitError):
        return True
    return isinstance(error, TrackerServerError) and error.status in RETRYABLE_STATUSES


@dataclass(frozen=True)
class RetryConfig:
    """Backoff for transient errors.

    max_attempts is the TOTAL number of tries, so 1 disables retry.
    """

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    jitter: float = 1.0  # seconds
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            exponential_base=settings.exponential_base,
        )


class RetryManager:
    """Runs a tracker call, retrying transient errors with exponential backoff.

    Once attempts run out the last error propagates unchanged.
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    def call(self, operation: Callable[[], T], *, on_retry: Callable[[int, BaseException], None] | None = None) -> T:
        """Run operation until it succeeds, fails permanently, or attempts run out.

        Args:
            operation: Zero-argument callable making one attempt
            on_retry: Called with (attempt, error) before each further attempt
        """

        def before_sleep(state: RetryCallState) -> None:
            if on_retry is not None and state.outcome is not None:
                error = state.outcome.exception()
                if error is not None:
                    on_retry(state.attempt_number, error)

        retrying = Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential_jitter(
                initial=self._config.base_delay,
                max=self._config.max_delay,
                exp_base=self._config.exponential_base,
                jitter=self._config.jitter,
            ),
            retry=retry_if_exception(is_transient_tracker_error),
            before_sleep=before_sleep,
            reraise=True,
        )
        return retrying(operation)
