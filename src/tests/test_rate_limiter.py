"""
Test suite for RateLimiter component
Following AAA pattern and descriptive naming
"""

import threading

import pytest

from payroll_sync.rate_limiter import RateLimiter


class FakeClock:
    """Manual clock whose sleeper advances time instead of blocking"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Test suite for the global minimum-interval throttle"""

    def test_first_acquire_does_not_wait(self):
        """
        Test that the first request starts immediately
        """
        # Arrange
        clock = FakeClock()
        limiter = RateLimiter(0.1, clock=clock, sleeper=clock.sleep)

        # Act
        waited = limiter.acquire()

        # Assert
        assert waited == 0.0
        assert clock.sleeps == []
        assert limiter.last_request_time == 1000.0

    def test_consecutive_acquires_start_at_least_interval_apart(self):
        """
        Test that for M calls every consecutive pair of starts is >= the interval
        """
        # Arrange
        clock = FakeClock()
        limiter = RateLimiter(0.1, clock=clock, sleeper=clock.sleep)
        start_times = []

        # Act
        for _ in range(25):
            limiter.acquire()
            start_times.append(clock())

        # Assert
        gaps = [later - earlier for earlier, later in zip(start_times, start_times[1:])]
        assert all(gap >= 0.1 - 1e-9 for gap in gaps)

    def test_acquire_after_idle_period_does_not_wait(self):
        """
        Test that a caller arriving after the interval has elapsed is not delayed
        """
        # Arrange
        clock = FakeClock()
        limiter = RateLimiter(0.1, clock=clock, sleeper=clock.sleep)
        limiter.acquire()
        clock.now += 5.0

        # Act
        waited = limiter.acquire()

        # Assert
        assert waited == 0.0

    def test_acquire_waits_for_remaining_part_of_interval(self):
        """
        Test that a caller arriving early only waits for the remainder
        """
        # Arrange
        clock = FakeClock()
        limiter = RateLimiter(0.1, clock=clock, sleeper=clock.sleep)
        limiter.acquire()
        clock.now += 0.04

        # Act
        waited = limiter.acquire()

        # Assert
        assert waited == pytest.approx(0.06)

    def test_concurrent_reservations_receive_distinct_evenly_spaced_slots(self):
        """
        Test that callers racing for the limiter each get their own slot
        """
        # Arrange
        clock = FakeClock(start=0.0)
        limiter = RateLimiter(0.1, clock=clock, sleeper=clock.sleep)
        slots = []
        slots_lock = threading.Lock()
        barrier = threading.Barrier(10)

        def reserve():
            barrier.wait()
            slot = limiter.reserve()
            with slots_lock:
                slots.append(slot)

        threads = [threading.Thread(target=reserve) for _ in range(10)]

        # Act
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Assert
        assert sorted(slots) == pytest.approx([i * 0.1 for i in range(10)])

    def test_reservations_are_released_in_arrival_order(self):
        """
        Test that earlier callers always receive earlier slots
        """
        # Arrange
        clock = FakeClock()
        limiter = RateLimiter(0.5, clock=clock, sleeper=clock.sleep)

        # Act
        slots = [limiter.reserve() for _ in range(5)]

        # Assert
        assert slots == sorted(slots)
        assert len(set(slots)) == 5

    def test_from_requests_per_second_derives_interval(self):
        """
        Test that 10 requests per second gives a 100ms interval
        """
        # Act
        limiter = RateLimiter.from_requests_per_second(10)

        # Assert
        assert limiter.min_interval == pytest.approx(0.1)

    @pytest.mark.parametrize("requests_per_second", [0, -1])
    def test_from_requests_per_second_with_non_positive_rate_raises_value_error(self, requests_per_second):
        """
        Test that a non-positive quota is rejected
        """
        # Act & Assert
        with pytest.raises(ValueError):
            RateLimiter.from_requests_per_second(requests_per_second)
