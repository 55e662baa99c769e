"""
Unit tests for the rate-limited callback wrapper.
"""

from docport.common.throttle import Throttle


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestThrottle:
    """Test leading and trailing delivery."""

    def test_first_call_is_immediate(self):
        seen = []
        throttle = Throttle(seen.append, 1.0, clock=FakeClock())

        throttle(1)

        assert seen == [1]
        assert throttle.has_pending is False

    def test_calls_inside_interval_keep_latest(self):
        seen = []
        clock = FakeClock()
        throttle = Throttle(seen.append, 1.0, clock=clock)

        throttle(1)
        clock.now = 0.3
        throttle(2)
        clock.now = 0.6
        throttle(3)

        assert seen == [1]
        assert throttle.has_pending is True

        throttle.flush()

        assert seen == [1, 3]
        assert throttle.has_pending is False

    def test_call_after_interval_goes_through(self):
        seen = []
        clock = FakeClock()
        throttle = Throttle(seen.append, 1.0, clock=clock)

        throttle(1)
        clock.now = 0.5
        throttle(2)
        clock.now = 1.5
        throttle(3)
        throttle.flush()

        assert seen == [1, 3]

    def test_flush_without_pending(self):
        seen = []
        throttle = Throttle(seen.append, 1.0, clock=FakeClock())
        throttle.flush()
        assert seen == []

    def test_zero_interval_delivers_everything(self):
        seen = []
        throttle = Throttle(seen.append, 0.0, clock=FakeClock())
        for i in range(5):
            throttle(i)
        assert seen == [0, 1, 2, 3, 4]

    def test_no_callback(self):
        throttle = Throttle(None, 1.0)
        throttle(1)
        throttle.flush()
        assert throttle.has_pending is False
