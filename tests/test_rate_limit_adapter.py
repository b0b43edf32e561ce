"""Unit tests for the in-memory fixed-window rate limiter."""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from mobile_gateway.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter


def _limiter(now: float = 1000.0) -> tuple[InMemoryFixedWindowRateLimiter, Mock]:
    clock = Mock(return_value=now)
    return InMemoryFixedWindowRateLimiter(clock=clock), clock


def test_allows_up_to_limit_in_same_window() -> None:
    limiter, _ = _limiter()

    for _ in range(2):
        assert limiter.consume("k", limit=3, window_seconds=60).allowed is True
    result = limiter.consume("k", limit=3, window_seconds=60)
    assert result.allowed is True
    assert result.remaining == 0


def test_blocks_call_after_limit() -> None:
    limiter, _ = _limiter()

    assert limiter.consume("k", limit=2, window_seconds=60).allowed is True
    assert limiter.consume("k", limit=2, window_seconds=60).allowed is True

    blocked = limiter.consume("k", limit=2, window_seconds=60)
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == 60
    assert blocked.reset_at == 1060


def test_rejected_calls_do_not_grow_the_count() -> None:
    limiter, _ = _limiter()

    for _ in range(5):
        limiter.consume("k", limit=2, window_seconds=60)

    record = limiter.get_record("k")
    assert record is not None
    assert record.count == 2
    assert record.window_start == 1000.0


def test_window_starts_with_first_request() -> None:
    limiter, clock = _limiter(1000.0)

    assert limiter.consume("k", limit=1, window_seconds=10).allowed is True
    clock.return_value = 1009.5
    assert limiter.consume("k", limit=1, window_seconds=10).allowed is False

    clock.return_value = 1010.0
    result = limiter.consume("k", limit=1, window_seconds=10)
    assert result.allowed is True

    record = limiter.get_record("k")
    assert record.count == 1
    assert record.window_start == 1010.0


def test_isolated_by_key() -> None:
    limiter, _ = _limiter()

    assert limiter.consume("k1", limit=1, window_seconds=60).allowed is True
    assert limiter.consume("k1", limit=1, window_seconds=60).allowed is False

    assert limiter.consume("k2", limit=1, window_seconds=60).allowed is True


def test_prune_drops_expired_records() -> None:
    limiter, clock = _limiter()
    limiter.consume("old", limit=5, window_seconds=60)
    clock.return_value = 1050.0
    limiter.consume("new", limit=5, window_seconds=60)

    clock.return_value = 1070.0
    assert limiter.prune() == 1
    assert limiter.get_record("old") is None
    assert limiter.get_record("new") is not None


def test_prune_uses_each_records_own_window() -> None:
    limiter, clock = _limiter()
    limiter.consume("short", limit=5, window_seconds=10)
    limiter.consume("long", limit=5, window_seconds=600)

    clock.return_value = 1100.0
    assert limiter.prune() == 1
    assert limiter.get_record("short") is None
    assert limiter.get_record("long") is not None


def test_expired_keys_are_swept_during_traffic() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock, sweep_every=5)
    for i in range(3):
        limiter.consume(f"search:10.0.0.{i}", limit=120, window_seconds=60)

    clock.return_value = 1061.0
    for _ in range(2):
        limiter.consume("search:10.0.0.99", limit=120, window_seconds=60)

    for i in range(3):
        assert limiter.get_record(f"search:10.0.0.{i}") is None
    assert limiter.get_record("search:10.0.0.99").count == 2


def test_record_cap_triggers_early_sweep() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock, sweep_every=1000, max_records=3)
    for i in range(3):
        limiter.consume(f"k{i}", limit=1, window_seconds=10)

    clock.return_value = 1010.0
    limiter.consume("fresh", limit=1, window_seconds=10)

    assert [limiter.get_record(f"k{i}") for i in range(3)] == [None, None, None]
    assert limiter.get_record("fresh") is not None


def test_sweep_keeps_live_counters() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(clock=clock, sweep_every=1)
    limiter.consume("k", limit=1, window_seconds=60)

    clock.return_value = 1030.0
    assert limiter.consume("other", limit=1, window_seconds=60).allowed is True
    assert limiter.consume("k", limit=1, window_seconds=60).allowed is False


def test_concurrent_calls_never_exceed_limit() -> None:
    limiter, _ = _limiter()
    workers = 32
    barrier = threading.Barrier(workers)

    def hit(_: int) -> bool:
        barrier.wait()
        return limiter.consume("payments.verify:1.2.3.4", limit=10, window_seconds=60).allowed

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(hit, range(workers)))

    assert results.count(True) == 10
    assert limiter.get_record("payments.verify:1.2.3.4").count == 10


@pytest.mark.parametrize(
    "key, kwargs",
    [
        ("", {"limit": 1, "window_seconds": 60}),
        ("k", {"limit": 0, "window_seconds": 60}),
        ("k", {"limit": 1, "window_seconds": 0}),
        ("k", {"limit": 1, "window_seconds": 60, "cost": 0}),
    ],
)
def test_invalid_consume_args(key: str, kwargs: dict) -> None:
    limiter, _ = _limiter()

    with pytest.raises(ValueError):
        limiter.consume(key, **kwargs)


@pytest.mark.parametrize("kwargs", [{"sweep_every": 0}, {"max_records": 0}])
def test_invalid_sweep_settings(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryFixedWindowRateLimiter(**kwargs)
