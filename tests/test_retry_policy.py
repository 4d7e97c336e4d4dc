"""Tests for retry and delay policies."""

from __future__ import annotations

import pytest

from pairgate.pairing.retry import RetryPolicy, TimingPolicies


class TestRetryPolicy:
    def test_constant_interval(self) -> None:
        policy = RetryPolicy(max_attempts=5, interval=3.0)

        assert [policy.delay_for(a) for a in range(4)] == [3.0, 3.0, 3.0, 3.0]
        assert policy.total_wait == 12.0

    def test_exponential_backoff_with_cap(self) -> None:
        policy = RetryPolicy(max_attempts=5, interval=1.0, backoff=2.0, max_delay=5.0)

        assert [policy.delay_for(a) for a in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]
        assert policy.total_wait == 12.0

    def test_has_next(self) -> None:
        policy = RetryPolicy(max_attempts=3, interval=1.0)

        assert policy.has_next(0)
        assert policy.has_next(1)
        assert not policy.has_next(2)

    def test_single_attempt_never_waits(self) -> None:
        policy = RetryPolicy(max_attempts=1, interval=10.0)

        assert not policy.has_next(0)
        assert policy.total_wait == 0.0

    def test_jitter_stays_in_bounds(self) -> None:
        policy = RetryPolicy(max_attempts=3, interval=10.0, jitter=0.2)

        for _ in range(50):
            assert 8.0 <= policy.delay_for(0) <= 12.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": -1},
            {"interval": -0.5},
            {"backoff": 0.5},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_values(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)  # type: ignore[arg-type]


class TestTimingPolicies:
    def test_defaults(self) -> None:
        timings = TimingPolicies()

        assert timings.pre_request_delay == 1.5
        assert timings.link_settle_delay == 50.0
        assert timings.credential_poll == RetryPolicy(15, 8.0)
        assert timings.credential_read_error_delay == 2.0
        assert timings.transmit_settle_delay == 5.0
        assert timings.transmit == RetryPolicy(5, 3.0)
        assert timings.close_delay == 3.0
        assert timings.reconnect == RetryPolicy(5, 5.0)

    def test_link_open_timeout(self) -> None:
        assert TimingPolicies().link_open_timeout == 120.0
        assert TimingPolicies(credential_poll=RetryPolicy(3, 2.0)).link_open_timeout == 6.0
