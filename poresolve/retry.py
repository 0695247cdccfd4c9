"""
Retry logic with exponential backoff for provider calls.

A RetryPolicy is an explicit object (attempts, backoff schedule, retryable
exception types) wrapped around a call, so the schedule can be tested
without touching the network.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Type

import requests


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


@dataclass
class RetryPolicy:
    """
    Exponential backoff policy.

    Args:
        max_attempts: Total number of attempts, including the first call
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap on any single delay
        exponential_base: Multiplier applied to the delay after each retry
        retry_on: Exception types that trigger a retry
        retry_if: Optional predicate; a caught exception it rejects is re-raised at once
        sleep: Function used to wait between attempts
        on_retry: Optional callback(attempt, exception, delay)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    retry_if: Optional[Callable[[BaseException], bool]] = field(default=None, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    on_retry: Optional[Callable] = field(default=None, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delays(self) -> List[float]:
        """Backoff schedule: one delay per retry."""
        schedule = []
        delay = self.base_delay
        for _ in range(self.max_attempts - 1):
            schedule.append(min(delay, self.max_delay))
            delay *= self.exponential_base
        return schedule

    def call(self, func: Callable, *args, **kwargs):
        """
        Run func under this policy.

        Raises:
            RetryError: every attempt failed with a retryable exception
            Original exception: func raised something this policy does not retry
        """
        schedule = self.delays()
        for attempt in range(self.max_attempts):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                if self.retry_if is not None and not self.retry_if(e):
                    raise
                # Don't sleep after the last attempt
                if attempt < len(schedule):
                    current_delay = schedule[attempt]
                    if self.on_retry:
                        self.on_retry(attempt + 1, e, current_delay)
                    self.sleep(current_delay)
                else:
                    raise RetryError(
                        f"Failed after {self.max_attempts} attempts: {str(e)}"
                    ) from e

        # max_attempts >= 1 so the loop always returns or raises
        raise RetryError("Unexpected retry exhaustion")


# Request timeout, rate limiting and gateway/server failures
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "temporary failure",
    "service unavailable",
    "rate limit",
    "429",
    "500",
    "502",
    "503",
)


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def is_transient_error(exception: BaseException) -> bool:
    """
    Guess whether a failure is worth another attempt.

    Network exceptions always are. HTTP errors go by status code. Anything
    else is judged by its message.
    """
    if isinstance(exception, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return True

    response = getattr(exception, "response", None)
    if isinstance(exception, requests.HTTPError) and response is not None:
        return should_retry_http_status(response.status_code)

    text = str(exception).lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)
