"""Tests for the retry policy and Retry-After parsing."""

from datetime import datetime, timedelta
from email.utils import formatdate

import httpx
import pytest

from webapi_client.utils.http.retry import (
    FailureInfo,
    FailureKind,
    RetryPolicy,
    five_retries_in_five_minutes,
    parse_retry_after,
    rapid_retry_policy,
    ten_retries_in_about_thirty_minutes,
)


class TestBackoff:
    """Test backoff computation."""

    def test_exponential_without_jitter(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_multiplier=2.0, jitter=False)
        assert policy.backoff(1) == 1.0
        assert policy.backoff(2) == 2.0
        assert policy.backoff(3) == 4.0

    def test_max_delay_cap(self):
        policy = RetryPolicy(
            initial_delay=10.0, backoff_multiplier=10.0, max_delay=15.0, jitter=False
        )
        assert policy.backoff(1) == 10.0
        assert policy.backoff(4) == 15.0

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_multiplier=2.0, jitter=True)
        for _ in range(50):
            assert 1.6 <= policy.backoff(2) <= 2.4

    def test_randomize_override(self):
        policy = RetryPolicy(initial_delay=3.0, backoff_multiplier=2.0, jitter=True)
        assert policy.backoff(1, randomize=False) == 3.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"initial_delay": -1.0},
            {"backoff_multiplier": 0.5},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestDecide:
    """Test retry decisions per failure class."""

    def test_network_failure_retries_with_backoff(self):
        policy = RetryPolicy(max_attempts=3, initial_delay=0.5, jitter=False)
        decision = policy.decide(1, FailureInfo(kind=FailureKind.NETWORK))
        assert decision.retry
        assert decision.delay == 0.5

    def test_server_error_retries(self):
        policy = RetryPolicy(max_attempts=3, jitter=False)
        decision = policy.decide(2, FailureInfo(kind=FailureKind.SERVER_ERROR, status_code=503))
        assert decision.retry

    def test_http_error_never_retries(self):
        policy = RetryPolicy(max_attempts=5)
        decision = policy.decide(1, FailureInfo(kind=FailureKind.HTTP_ERROR, status_code=400))
        assert not decision.retry

    def test_exhausted_attempts(self):
        policy = RetryPolicy(max_attempts=3, jitter=False)
        failure = FailureInfo(kind=FailureKind.NETWORK)
        assert policy.decide(2, failure).retry
        assert not policy.decide(3, failure).retry

    def test_single_attempt_policy_never_retries(self):
        policy = RetryPolicy(max_attempts=1)
        assert not policy.decide(1, FailureInfo(kind=FailureKind.RATE_LIMITED, retry_after=1)).retry

    def test_rate_limit_honors_longer_server_wait(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=1.0, jitter=False)
        failure = FailureInfo(kind=FailureKind.RATE_LIMITED, retry_after=30.0)
        decision = policy.decide(1, failure)
        assert decision.retry
        assert decision.delay == 30.0

    def test_rate_limit_keeps_longer_client_backoff(self):
        policy = RetryPolicy(
            max_attempts=5, initial_delay=10.0, backoff_multiplier=2.0, jitter=False
        )
        failure = FailureInfo(kind=FailureKind.RATE_LIMITED, retry_after=1.0)
        assert policy.decide(2, failure).delay == 20.0

    def test_rate_limit_server_wait_beats_max_delay(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=1.0, max_delay=2.0)
        failure = FailureInfo(kind=FailureKind.RATE_LIMITED, retry_after=60.0)
        assert policy.decide(1, failure).delay == 60.0

    def test_rate_limit_without_server_value_is_deterministic(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=2.0, jitter=True)
        failure = FailureInfo(kind=FailureKind.RATE_LIMITED)
        delays = {policy.decide(1, failure).delay for _ in range(20)}
        assert delays == {2.0}


class TestPresets:
    """Test the named policies."""

    def test_ten_retries(self):
        assert ten_retries_in_about_thirty_minutes.max_attempts == 11
        assert ten_retries_in_about_thirty_minutes.backoff_multiplier == pytest.approx(1.96821)

    def test_five_retries(self):
        assert five_retries_in_five_minutes.max_attempts == 6
        assert five_retries_in_five_minutes.backoff_multiplier == pytest.approx(3.86)

    def test_rapid_policy_has_no_delay(self):
        failure = FailureInfo(kind=FailureKind.NETWORK)
        for attempt in range(1, 11):
            assert rapid_retry_policy.decide(attempt, failure).delay == 0.0


class TestParseRetryAfter:
    """Test Retry-After parsing."""

    def test_delta_seconds(self):
        response = httpx.Response(429, headers={"retry-after": "30"})
        assert parse_retry_after(response.headers) == 30.0

    def test_fractional_seconds(self):
        assert parse_retry_after({"retry-after": "0.5"}) == 0.5

    def test_http_date(self):
        future_time = datetime.now() + timedelta(seconds=45)
        http_date = formatdate(future_time.timestamp(), usegmt=True)
        delay = parse_retry_after({"retry-after": http_date})
        assert 43 <= delay <= 46

    def test_http_date_in_the_past(self):
        past_time = datetime.now() - timedelta(seconds=45)
        http_date = formatdate(past_time.timestamp(), usegmt=True)
        assert parse_retry_after({"retry-after": http_date}) == 0.0

    def test_missing(self):
        assert parse_retry_after(httpx.Response(429).headers) is None

    def test_invalid(self):
        assert parse_retry_after({"retry-after": "invalid"}) is None
