"""Resume-position resolution from a stored checkpoint."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from event_relay.checkpoint.models import Checkpoint

logger = structlog.get_logger()


def resolve_begin(
    now: datetime,
    checkpoint: Checkpoint | None,
    max_age: timedelta,
) -> datetime:
    """Return the time at which to begin reading the remote event stream.

    Without a usable checkpoint the stream starts at *now* (the remote clock).
    A checkpoint older than ``now - max_age`` is clamped to that floor, which
    permanently skips the events in between; this is logged as a warning.
    """
    if checkpoint is None or checkpoint.is_empty:
        logger.info("checkpoint.not_found", begin=now.isoformat())
        return now

    cp_time = checkpoint.last_event_timestamp
    floor = now - max_age
    if floor > cp_time:
        logger.warning(
            "checkpoint.replay_window_exceeded",
            detail="potential data loss: events between checkpoint and begin are skipped",
            max_age_seconds=max_age.total_seconds(),
            checkpoint_timestamp=cp_time.isoformat(),
            begin=floor.isoformat(),
        )
        return floor

    logger.info(
        "checkpoint.resume",
        begin=cp_time.isoformat(),
        event_key=checkpoint.last_event_key,
    )
    return cp_time
