"""Tests for the sliding-window channel rate limiter."""

from __future__ import annotations

from healthwatch.notifications.rate_limiter import ChannelRateLimiter, SlidingWindow


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSlidingWindow:
    def test_allows_up_to_limit(self) -> None:
        w = SlidingWindow(limit=3, window_secs=60)
        assert all(w.try_acquire(t) for t in (0.0, 1.0, 2.0))
        assert w.try_acquire(3.0) is False
        assert w.count(3.0) == 3

    def test_slots_free_as_window_slides(self) -> None:
        w = SlidingWindow(limit=2, window_secs=60)
        w.try_acquire(0.0)
        w.try_acquire(30.0)
        assert w.try_acquire(59.0) is False
        assert w.try_acquire(60.0) is True
        assert w.try_acquire(61.0) is False
        assert w.try_acquire(90.0) is True

    def test_never_more_than_limit_in_any_window(self) -> None:
        w = SlidingWindow(limit=5, window_secs=60)
        accepted = [t for t in range(0, 300, 3) if w.try_acquire(float(t))]
        for start in accepted:
            in_window = [t for t in accepted if start <= t < start + 60]
            assert len(in_window) <= 5

    def test_time_until_available(self) -> None:
        w = SlidingWindow(limit=1, window_secs=60)
        assert w.time_until_available(0.0) == 0.0
        w.try_acquire(10.0)
        assert w.time_until_available(40.0) == 30.0


class TestChannelRateLimiter:
    def test_unlimited_when_not_configured(self) -> None:
        rl = ChannelRateLimiter(clock=FakeClock())
        assert all(rl.try_acquire("console", None) for _ in range(100))
        assert rl.sent_in_window("console") == 0

    def test_zero_limit_delivers_nothing(self) -> None:
        rl = ChannelRateLimiter(clock=FakeClock())
        assert not rl.try_acquire("console", 0)

    def test_limit_per_channel(self) -> None:
        clock = FakeClock()
        rl = ChannelRateLimiter(clock=clock)
        assert rl.try_acquire("slack", 2)
        assert rl.try_acquire("slack", 2)
        assert rl.try_acquire("slack", 2) is False
        assert rl.try_acquire("email", 2)
        assert rl.sent_in_window("slack") == 2

    def test_window_expiry(self) -> None:
        clock = FakeClock()
        rl = ChannelRateLimiter(clock=clock)
        rl.try_acquire("sms", 1)
        assert rl.try_acquire("sms", 1) is False
        clock.now = 60.0
        assert rl.try_acquire("sms", 1) is True

    def test_limit_change_resets_window(self) -> None:
        rl = ChannelRateLimiter(clock=FakeClock())
        rl.try_acquire("hook", 1)
        assert rl.try_acquire("hook", 1) is False
        assert rl.try_acquire("hook", 5) is True

    def test_reset(self) -> None:
        rl = ChannelRateLimiter(clock=FakeClock())
        rl.try_acquire("a", 1)
        rl.try_acquire("b", 1)
        rl.reset("a")
        assert rl.try_acquire("a", 1) is True
        assert rl.try_acquire("b", 1) is False
        rl.reset()
        assert rl.try_acquire("b", 1) is True
