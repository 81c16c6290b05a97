from homebudget.ratelimit import RateLimiter
from tests.helpers.openai_stub import FakeClock


def _limiter(**kw) -> tuple[RateLimiter, FakeClock]:
    clock = FakeClock()
    return RateLimiter(clock=clock, sleep=clock.sleep, **kw), clock


def test_slots_are_spaced_by_min_interval():
    limiter, clock = _limiter(min_interval=2.0)

    with limiter.slot() as ok:
        assert ok
    clock.advance(0.5)
    with limiter.slot() as ok:
        assert ok
    with limiter.slot() as ok:
        assert ok

    assert clock.sleeps == [1.5, 2.0]


def test_no_wait_once_interval_has_passed():
    limiter, clock = _limiter(min_interval=2.0)
    with limiter.slot():
        pass
    clock.advance(5)
    with limiter.slot():
        pass
    assert clock.sleeps == []


def test_trip_starts_cooldown_window():
    limiter, clock = _limiter(cooldown=300.0)
    limiter.trip()

    assert limiter.in_cooldown()
    with limiter.slot() as ok:
        assert ok is False

    clock.advance(299)
    assert not limiter.available()
    clock.advance(2)
    assert limiter.available()


def test_trip_inside_batch_latches_until_batch_ends():
    limiter, clock = _limiter(cooldown=10.0)
    with limiter.batch():
        limiter.trip()
        clock.advance(60)
        # Cooldown has expired, but the latch holds for the rest of the batch.
        assert not limiter.in_cooldown()
        assert limiter.latched
        assert not limiter.available()
    assert not limiter.latched
    assert limiter.available()


def test_reset_clears_state():
    limiter, clock = _limiter(min_interval=2.0, cooldown=300.0)
    with limiter.slot():
        pass
    limiter.trip()
    limiter.reset()

    assert limiter.available()
    with limiter.slot() as ok:
        assert ok
    assert clock.sleeps == []
