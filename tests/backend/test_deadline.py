"""Tests for Deadline expiry and cancellation."""

import pytest

from sensorhub.deadline import Deadline
from sensorhub.errors import OperationTimeout


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestDeadline:
    def test_unbounded_never_expires(self):
        d = Deadline.none()
        assert d.remaining() is None
        assert not d.expired()
        d.check("noop")

    def test_remaining_counts_down(self):
        clock = FakeClock()
        d = Deadline(2.0, clock=clock)
        assert d.remaining() == 2.0
        clock.now = 1.5
        assert d.remaining() == pytest.approx(0.5)
        assert not d.expired()

    def test_expiry(self):
        clock = FakeClock()
        d = Deadline(1.0, clock=clock)
        clock.now = 1.0
        assert d.expired()
        assert d.remaining() == 0.0
        with pytest.raises(OperationTimeout, match="exceeded its deadline"):
            d.check("sensor.create")

    def test_cancel(self):
        d = Deadline.none()
        d.cancel()
        assert d.cancelled
        assert d.expired()
        with pytest.raises(OperationTimeout, match="cancelled by caller"):
            d.check("sensor.create")

    def test_timeout_maps_to_504(self):
        assert OperationTimeout.status_code == 504
