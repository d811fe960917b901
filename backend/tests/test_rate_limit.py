from app.services.rate_limit import SlidingWindowLimiter


class FakeClock:
    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now


def test_limit_blocks_until_oldest_hit_expires():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(clock=clock)

    assert [limiter.check(key="login|ip|a", limit=2, window_seconds=60)[0] for _ in range(2)] == [True, True]
    assert limiter.check(key="login|ip|a", limit=2, window_seconds=60) == (False, 60)

    clock.now += 45.5
    assert limiter.check(key="login|ip|a", limit=2, window_seconds=60) == (False, 15)

    clock.now += 15
    assert limiter.check(key="login|ip|a", limit=2, window_seconds=60) == (True, 0)


def test_keys_are_tracked_separately():
    limiter = SlidingWindowLimiter(clock=FakeClock())

    assert limiter.check(key="login|ip|a", limit=1, window_seconds=60)[0] is True
    assert limiter.check(key="login|ip|a", limit=1, window_seconds=60)[0] is False
    assert limiter.check(key="login|ip|b", limit=1, window_seconds=60)[0] is True


def test_expired_keys_are_evicted():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(sweep_interval_seconds=30, clock=clock)

    for index in range(50):
        limiter.check(key=f"register|10.0.0.{index}|", limit=5, window_seconds=60)
    assert len(limiter) == 50

    clock.now += 61
    limiter.check(key="register|10.0.0.200|", limit=5, window_seconds=60)
    assert len(limiter) == 1


def test_sweep_keeps_keys_with_live_hits():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(sweep_interval_seconds=10, clock=clock)

    limiter.check(key="short", limit=5, window_seconds=5)
    limiter.check(key="long", limit=5, window_seconds=600)

    clock.now += 20
    limiter.check(key="other", limit=5, window_seconds=5)
    assert len(limiter) == 2

    limiter.clear()
    assert len(limiter) == 0
