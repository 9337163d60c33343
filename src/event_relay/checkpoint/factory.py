"""Checkpoint store factory mapping StoreType to concrete store classes."""

from __future__ import annotations

from event_relay.checkpoint.store import (
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
)
from event_relay.config.models import StoreConfig, StoreType


def create_checkpoint_store(config: StoreConfig) -> CheckpointStore:
    """Create a checkpoint store from configuration."""
    if config.store_type == StoreType.FILE:
        assert config.path is not None
        return FileCheckpointStore(config.path)
    if config.store_type == StoreType.MEMORY:
        return MemoryCheckpointStore()
    msg = f"Unknown store type: {config.store_type}"
    raise ValueError(msg)
