"""Tests for the in-memory sliding-window limiter."""

from avatar_relay.rate_limiter import SlidingWindowLimiter


class FakeMonotonic:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_allows_up_to_max_then_blocks():
    clock = FakeMonotonic()
    limiter = SlidingWindowLimiter(max_events=3, window_seconds=1.0, clock=clock)
    assert [limiter.check("a") for _ in range(4)] == [True, True, True, False]
    assert limiter.remaining("a") == 0


def test_window_slides():
    clock = FakeMonotonic()
    limiter = SlidingWindowLimiter(max_events=2, window_seconds=1.0, clock=clock)
    limiter.check("a")
    clock.now += 0.5
    limiter.check("a")
    assert not limiter.check("a")

    clock.now += 0.6
    assert limiter.remaining("a") == 1
    assert limiter.check("a")


def test_keys_are_independent():
    limiter = SlidingWindowLimiter(max_events=1, clock=FakeMonotonic())
    assert limiter.check("a")
    assert limiter.check("b")
    assert not limiter.check("a")


def test_forget_and_reset():
    limiter = SlidingWindowLimiter(max_events=1, clock=FakeMonotonic())
    limiter.check("a")
    limiter.check("b")
    limiter.forget("a")
    assert limiter.remaining("a") == 1
    assert limiter.remaining("b") == 0
    limiter.reset()
    assert limiter.remaining("b") == 1


def test_zero_disables_limiting():
    limiter = SlidingWindowLimiter(max_events=0, clock=FakeMonotonic())
    assert all(limiter.check("a") for _ in range(100))
