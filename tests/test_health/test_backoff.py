"""Tests for backoff arithmetic and failure bookkeeping."""

from __future__ import annotations

import random

import pytest

from service_guard.health.backoff import BackoffPolicy, BackoffState, backoff_delay


class TestBackoffDelay:
    def test_no_failures_no_delay(self) -> None:
        assert backoff_delay(0) == 0.0

    def test_exponential_growth(self) -> None:
        assert backoff_delay(1) == 2.0
        assert backoff_delay(2) == 4.0
        assert backoff_delay(3) == 8.0

    def test_capped_at_max(self) -> None:
        assert backoff_delay(9) == 300.0
        assert backoff_delay(20, max_delay=60.0) == 60.0

    def test_long_outage_does_not_overflow(self) -> None:
        assert backoff_delay(100_000) == 300.0

    def test_jitter_scales_delay(self) -> None:
        assert backoff_delay(1, jitter=0.5) == pytest.approx(3.0)
        assert backoff_delay(20, jitter=0.1) == pytest.approx(330.0)


class TestBackoffState:
    def test_record_failure_counts_and_stamps(self) -> None:
        state = BackoffState()
        assert state.record_failure(10.0) == 1
        assert state.record_failure(12.0, jitter=0.2) == 2
        assert state.consecutive_failures == 2
        assert state.last_failure == 12.0
        assert state.last_attempt == 12.0
        assert state.jitter == 0.2
        assert state.last_failure_at is not None

    def test_success_resets_counter(self) -> None:
        state = BackoffState()
        state.record_failure(1.0)
        state.record_failure(2.0)
        state.record_success(3.0)
        assert state.consecutive_failures == 0
        assert state.last_attempt == 3.0
        # Last failure is kept for diagnostics
        assert state.last_failure == 2.0

    def test_reset(self) -> None:
        state = BackoffState()
        state.record_failure(1.0, jitter=0.1)
        state.reset()
        assert state.consecutive_failures == 0
        assert state.jitter == 0.0

    def test_cooldown_below_threshold(self) -> None:
        state = BackoffState()
        state.record_failure(100.0)
        state.record_failure(100.0)
        assert state.cooldown_remaining(101.0, max_failures=3, cooldown=300.0) == 0.0
        assert not state.in_cooldown(101.0, 3, 300.0)

    def test_cooldown_window(self) -> None:
        state = BackoffState()
        for _ in range(3):
            state.record_failure(100.0)
        assert state.cooldown_remaining(150.0, 3, 300.0) == 250.0
        assert state.in_cooldown(399.9, 3, 300.0)

    def test_eligible_after_window_without_reset(self) -> None:
        state = BackoffState()
        for _ in range(3):
            state.record_failure(100.0)
        assert not state.in_cooldown(400.0, 3, 300.0)
        assert state.consecutive_failures == 3

    def test_cooldown_ends_at(self) -> None:
        state = BackoffState()
        assert state.cooldown_ends_at(300.0) is None
        state.record_failure(0.0)
        ends = state.cooldown_ends_at(300.0)
        assert (ends - state.last_failure_at).total_seconds() == 300.0


class TestBackoffPolicy:
    def test_no_wait_without_failures(self) -> None:
        policy = BackoffPolicy(jitter=0.0)
        assert policy.wait_remaining(BackoffState(), 0.0) == 0.0

    def test_exponential_wait_from_last_attempt(self) -> None:
        policy = BackoffPolicy(jitter=0.0)
        state = BackoffState()
        state.record_failure(10.0)
        assert policy.wait_remaining(state, 10.0) == 2.0
        assert policy.wait_remaining(state, 11.5) == 0.5
        assert policy.wait_remaining(state, 12.0) == 0.0

    def test_flat_cooldown_at_threshold(self) -> None:
        policy = BackoffPolicy(jitter=0.0, max_failures=3, cooldown=300.0)
        state = BackoffState()
        for t in (0.0, 2.0, 6.0):
            state.record_failure(t)
        assert policy.delay_for(state) == 300.0
        assert policy.wait_remaining(state, 6.0) == 300.0
        assert policy.wait_remaining(state, 106.0) == 200.0
        assert policy.wait_remaining(state, 306.0) == 0.0

    def test_jitter_applied_from_state(self) -> None:
        policy = BackoffPolicy(jitter=0.5)
        state = BackoffState()
        state.record_failure(0.0, jitter=0.25)
        assert policy.delay_for(state) == pytest.approx(2.5)

    def test_draw_jitter_in_range(self) -> None:
        policy = BackoffPolicy(jitter=0.3)
        rng = random.Random(7)
        draws = [policy.draw_jitter(rng) for _ in range(200)]
        assert all(0.0 <= d < 0.3 for d in draws)
        assert BackoffPolicy(jitter=0.0).draw_jitter(rng) == 0.0
