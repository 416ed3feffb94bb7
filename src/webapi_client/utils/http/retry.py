"""Retry policy for Web API requests.

The policy is consulted by the dispatcher after every failed attempt
and decides whether to try again and how long to wait first. It never
performs the wait itself, so the dispatcher can release its queue slot
before sleeping.

Three failure classes are retried:

- transport failures (connection errors, timeouts)
- HTTP responses in the server-error range
- explicit rate limiting (HTTP 429 or an ``ratelimited`` API error)

For rate limiting the server's suggested wait is a floor: a shorter
client-side backoff is replaced by the server value.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """Classes of failed attempts seen by the retry policy."""

    NETWORK = "network"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"


@dataclass(frozen=True)
class FailureInfo:
    """What went wrong with the previous attempt.

    :param kind: The failure class
    :param status_code: HTTP status, when a response was received
    :param retry_after: Server-suggested wait in seconds for rate limiting
    :param error: The transport exception, for network failures
    """

    kind: FailureKind
    status_code: Optional[int] = None
    retry_after: Optional[float] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of consulting the policy."""

    retry: bool
    delay: float = 0.0


NO_RETRY = RetryDecision(retry=False)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy with optional jitter.

    :param max_attempts: Total attempts including the first one
    :param initial_delay: Delay before the second attempt, in seconds
    :param backoff_multiplier: Factor applied per further attempt
    :param max_delay: Upper bound for the computed backoff, in seconds
    :param jitter: Scale computed delays by a random factor in [0.8, 1.2]
    """

    max_attempts: int = 11
    initial_delay: float = 1.0
    backoff_multiplier: float = 1.96821
    max_delay: Optional[float] = None
    jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def backoff(self, attempt: int, randomize: Optional[bool] = None) -> float:
        """Compute the backoff after ``attempt`` failed attempts.

        :param attempt: Number of the attempt that just failed, from 1
        :param randomize: Override the policy's jitter setting
        :return: Delay in seconds
        """
        delay = self.initial_delay * (self.backoff_multiplier ** max(attempt - 1, 0))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter if randomize is None else randomize:
            delay *= random.uniform(0.8, 1.2)
        return delay

    def decide(self, attempt: int, failure: FailureInfo) -> RetryDecision:
        """Decide whether the request should be attempted again.

        :param attempt: Number of the attempt that just failed, from 1
        :param failure: Description of the failure
        :return: The retry decision
        """
        if failure.kind == FailureKind.HTTP_ERROR:
            return NO_RETRY
        if attempt >= self.max_attempts:
            logger.debug(
                f"Retry budget exhausted after {attempt} attempts ({failure.kind.value})"
            )
            return NO_RETRY

        if failure.kind == FailureKind.RATE_LIMITED:
            return RetryDecision(retry=True, delay=self.rate_limit_delay(attempt, failure))
        return RetryDecision(retry=True, delay=self.backoff(attempt))

    def rate_limit_delay(self, attempt: int, failure: FailureInfo) -> float:
        """Wait to apply before retrying a rate-limited attempt.

        Without a server value the un-jittered backoff is used so the
        wait is deterministic.
        """
        if failure.retry_after is None:
            return self.backoff(attempt, randomize=False)
        return max(self.backoff(attempt), failure.retry_after)


# Presets
ten_retries_in_about_thirty_minutes = RetryPolicy(
    max_attempts=11, initial_delay=1.0, backoff_multiplier=1.96821
)
five_retries_in_five_minutes = RetryPolicy(
    max_attempts=6, initial_delay=1.0, backoff_multiplier=3.86
)
rapid_retry_policy = RetryPolicy(
    max_attempts=11, initial_delay=0.0, backoff_multiplier=1.0, jitter=False
)

DEFAULT_RETRY_POLICY = ten_retries_in_about_thirty_minutes


def parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """Parse a Retry-After header.

    Supports both delta-seconds and HTTP-date formats.

    :param headers: Response headers (case-insensitive mapping)
    :return: Seconds to wait, or None when absent or unparseable
    """
    retry_after = (headers.get("retry-after") or "").strip()
    if not retry_after:
        return None

    try:
        delay = float(retry_after)
        if delay >= 0:
            return delay
    except ValueError:
        pass

    try:
        retry_date = parsedate_to_datetime(retry_after)
    except (TypeError, ValueError):
        logger.warning(f"Failed to parse Retry-After header '{retry_after}'")
        return None
    if retry_date is None:
        return None
    delay = (retry_date - datetime.now(retry_date.tzinfo)).total_seconds()
    return max(0.0, delay)
