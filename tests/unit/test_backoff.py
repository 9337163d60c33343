"""Unit tests for the idle-poll backoff."""

from __future__ import annotations

import pytest

from event_relay.pipeline.backoff import Backoff


class TestBackoff:
    def test_default_sequence_caps_at_five_seconds(self):
        b = Backoff()
        assert [b.next() for _ in range(6)] == [1.0, 2.0, 4.0, 5.0, 5.0, 5.0]

    def test_reset_restarts_sequence(self):
        b = Backoff()
        b.next()
        b.next()
        b.next()
        b.reset()
        assert b.next() == 1.0
        assert b.next() == 2.0

    def test_stays_capped_for_long_idle_periods(self):
        b = Backoff()
        for _ in range(5000):
            delay = b.next()
        assert delay == 5.0

    def test_custom_bounds(self):
        b = Backoff(min_delay=0.5, max_delay=3.0, factor=3.0)
        assert [b.next() for _ in range(3)] == [0.5, 1.5, 3.0]

    def test_invalid_bounds_rejected(self):
        with pytest.raises(ValueError, match="Invalid backoff bounds"):
            Backoff(min_delay=2.0, max_delay=1.0)

    def test_factor_below_one_rejected(self):
        with pytest.raises(ValueError, match="factor"):
            Backoff(factor=0.5)
