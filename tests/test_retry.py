"""Tests du retry avec backoff et du rate limiter."""

from __future__ import annotations

import pytest

from curator.domain.errors import AuthenticationError, NetworkError, RateLimitError
from curator.services.retry import RateLimiter, RetryConfig, compute_delay, with_retry


class _Flaky:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_succeeds_after_transient_errors() -> None:
    sleeps: list[float] = []
    fn = _Flaky([NetworkError("boom"), NetworkError("boom")])
    assert with_retry(fn, RetryConfig(), sleep=sleeps.append, rng=lambda: 0.0) == "ok"
    assert fn.calls == 3
    assert sleeps == [1.0, 2.0]


def test_at_most_n_plus_one_calls() -> None:
    fn = _Flaky([NetworkError("down")] * 10)
    with pytest.raises(NetworkError):
        with_retry(fn, RetryConfig(max_retries=3), sleep=lambda _: None, rng=lambda: 0.0)
    assert fn.calls == 4


def test_non_retryable_error_is_not_retried() -> None:
    fn = _Flaky([AuthenticationError("denied")])
    with pytest.raises(AuthenticationError):
        with_retry(fn, RetryConfig(max_retries=5), sleep=lambda _: None)
    assert fn.calls == 1


def test_retry_after_hint_raises_delay() -> None:
    sleeps: list[float] = []
    fn = _Flaky([RateLimitError("slow down", retry_after=5)])
    with_retry(fn, RetryConfig(), sleep=sleeps.append, rng=lambda: 0.0)
    assert sleeps == [5.0]


def test_retry_after_is_capped() -> None:
    sleeps: list[float] = []
    fn = _Flaky([RateLimitError("slow down", retry_after=3600)])
    with_retry(fn, RetryConfig(max_delay=30.0), sleep=sleeps.append, rng=lambda: 0.0)
    assert sleeps == [30.0]


def test_delay_grows_and_caps() -> None:
    cfg = RetryConfig(initial_delay=1.0, max_delay=30.0, backoff_multiplier=2.0, jitter=1.0)
    assert compute_delay(0, cfg, rng=lambda: 0.5) == 1.5
    assert compute_delay(3, cfg, rng=lambda: 0.0) == 8.0
    assert compute_delay(10, cfg, rng=lambda: 0.99) == 30.0


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_bucket_defaults_to_twice_the_rate() -> None:
    limiter = RateLimiter(5, clock=_FakeClock())
    assert limiter.bucket_size == 10
    assert limiter.available_tokens() == 10


def test_burst_then_block_until_refill() -> None:
    clock = _FakeClock()
    limiter = RateLimiter(5, 10, clock=clock, sleep=clock.sleep)
    for _ in range(10):
        limiter.acquire()
    assert clock.sleeps == []
    limiter.acquire()
    assert clock.sleeps == [pytest.approx(0.2)]


def test_refill_never_exceeds_capacity() -> None:
    clock = _FakeClock()
    limiter = RateLimiter(5, 10, clock=clock, sleep=clock.sleep)
    limiter.acquire()
    clock.now += 100
    assert limiter.available_tokens() == 10


def test_rate_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0)
