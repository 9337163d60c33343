"""Checkpoint stores: staged in memory, persisted on flush."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import ValidationError

from event_relay.checkpoint.models import Checkpoint

logger = structlog.get_logger()


class CheckpointStoreError(Exception):
    """Raised when the durable checkpoint store cannot be read or written."""


@runtime_checkable
class CheckpointStore(Protocol):
    """Key/value checkpoint store with a two-tier write path.

    ``stage`` only updates in-memory state; ``flush`` persists everything
    staged so far.
    """

    async def init(self) -> None:
        """Load persisted state."""
        ...

    async def get(self, key: str) -> Checkpoint | None:
        """Return the checkpoint stored under *key*, or None."""
        ...

    def stage(self, key: str, checkpoint: Checkpoint) -> None:
        """Record *checkpoint* in memory without persisting it."""
        ...

    async def flush(self) -> None:
        """Durably persist all staged checkpoints."""
        ...


class MemoryCheckpointStore:
    """In-process store; ``flush`` copies staged state into ``persisted``."""

    def __init__(self) -> None:
        self._staged: dict[str, Checkpoint] = {}
        self.persisted: dict[str, Checkpoint] = {}
        self.flush_count = 0

    async def init(self) -> None:
        self._staged = {**self.persisted, **self._staged}

    async def get(self, key: str) -> Checkpoint | None:
        return self._staged.get(key)

    def stage(self, key: str, checkpoint: Checkpoint) -> None:
        self._staged[key] = checkpoint

    async def flush(self) -> None:
        self.persisted = dict(self._staged)
        self.flush_count += 1


class FileCheckpointStore:
    """Stores all checkpoints in a single JSON document.

    Writes go to a temp file followed by ``os.replace`` so a crash never
    leaves a partially written document behind.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._staged: dict[str, Checkpoint] = {}

    @property
    def path(self) -> Path:
        return self._path

    async def init(self) -> None:
        self._staged = await asyncio.to_thread(self._read)
        logger.info(
            "checkpoint_store.loaded",
            path=str(self._path),
            keys=sorted(self._staged),
        )

    async def get(self, key: str) -> Checkpoint | None:
        return self._staged.get(key)

    def stage(self, key: str, checkpoint: Checkpoint) -> None:
        self._staged[key] = checkpoint

    async def flush(self) -> None:
        document = {
            key: cp.model_dump(mode="json") for key, cp in self._staged.items()
        }
        try:
            await asyncio.to_thread(self._write, document)
        except OSError as exc:
            msg = f"Failed to write checkpoint file {self._path}: {exc}"
            raise CheckpointStoreError(msg) from exc
        logger.debug("checkpoint_store.flushed", path=str(self._path))

    def _read(self) -> dict[str, Checkpoint]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open() as f:
                data: Any = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            msg = f"Failed to read checkpoint file {self._path}: {exc}"
            raise CheckpointStoreError(msg) from exc
        if not isinstance(data, dict):
            msg = f"Checkpoint file {self._path} must contain a JSON object"
            raise CheckpointStoreError(msg)
        try:
            return {key: Checkpoint.model_validate(v) for key, v in data.items()}
        except ValidationError as exc:
            msg = f"Invalid checkpoint in {self._path}:\n{exc}"
            raise CheckpointStoreError(msg) from exc

    def _write(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp, self._path)
