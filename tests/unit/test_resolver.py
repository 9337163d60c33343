"""Unit tests for resume-position resolution."""

from __future__ import annotations

from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from conftest import T0
from event_relay.checkpoint.models import Checkpoint
from event_relay.checkpoint.resolver import resolve_begin


def _checkpoint(age: timedelta) -> Checkpoint:
    return Checkpoint(
        source="mgmt.example.com",
        last_event_key=42,
        last_event_type="VmPoweredOnEvent",
        last_event_timestamp=T0 - age,
    )


class TestResolveBegin:
    def test_no_checkpoint_starts_now(self):
        assert resolve_begin(T0, None, timedelta(hours=1)) == T0

    @pytest.mark.parametrize("max_age", [timedelta(0), timedelta(hours=1)])
    def test_empty_checkpoint_starts_now(self, max_age: timedelta):
        cp = Checkpoint(source="mgmt.example.com", last_event_key=0)
        assert cp.is_empty
        assert resolve_begin(T0, cp, max_age) == T0

    def test_zero_timestamp_is_empty_and_starts_now(self):
        cp = Checkpoint.model_validate_json(
            '{"source": "mgmt.example.com", "last_event_key": 0,'
            ' "last_event_timestamp": "0001-01-01T00:00:00Z"}'
        )
        assert cp.is_empty
        with capture_logs() as logs:
            assert resolve_begin(T0, cp, timedelta(hours=1)) == T0
        assert [e["event"] for e in logs] == ["checkpoint.not_found"]

    @pytest.mark.parametrize(
        "age", [timedelta(0), timedelta(minutes=5), timedelta(hours=1)]
    )
    def test_checkpoint_inside_window_resumes_exactly(self, age: timedelta):
        cp = _checkpoint(age)
        assert resolve_begin(T0, cp, timedelta(hours=1)) == cp.last_event_timestamp

    def test_checkpoint_outside_window_is_clamped(self):
        cp = _checkpoint(timedelta(hours=10))
        with capture_logs() as logs:
            begin = resolve_begin(T0, cp, timedelta(hours=1))

        assert begin == T0 - timedelta(hours=1)
        warnings = [
            entry
            for entry in logs
            if entry["event"] == "checkpoint.replay_window_exceeded"
        ]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"

    def test_subsecond_difference_still_clamps(self):
        cp = _checkpoint(timedelta(hours=1, microseconds=1))
        assert resolve_begin(T0, cp, timedelta(hours=1)) == T0 - timedelta(hours=1)

    def test_zero_max_age_starts_now(self):
        cp = _checkpoint(timedelta(seconds=30))
        assert resolve_begin(T0, cp, timedelta(0)) == T0

    def test_resume_does_not_warn(self):
        with capture_logs() as logs:
            resolve_begin(T0, _checkpoint(timedelta(minutes=1)), timedelta(hours=1))
        assert all(entry["log_level"] != "warning" for entry in logs)
