"""Unit tests for the relay CLI."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from conftest import make_event
from event_relay.checkpoint.models import Checkpoint
from event_relay.cli import app

runner = CliRunner()


def _write_config(tmp_path: Path, **extra: str) -> Path:
    store_path = tmp_path / "cp.json"
    lines = [
        "relay_id: cli-relay",
        "source:",
        "  url: https://mgmt.example.com/api",
        "sink:",
        "  url: http://sink.example.com/events",
        "store:",
        "  store_type: file",
        f"  path: {store_path}",
    ]
    lines.extend(f"{k}: {v}" for k, v in extra.items())
    path = tmp_path / "relay.yaml"
    path.write_text("\n".join(lines) + "\n")
    return path


class TestValidate:
    def test_valid_config(self, tmp_path: Path):
        result = runner.invoke(app, ["validate", str(_write_config(tmp_path))])
        assert result.exit_code == 0
        assert "relay_id=cli-relay" in result.output
        assert "mgmt.example.com" in result.output

    def test_missing_file(self, tmp_path: Path):
        result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_config(self, tmp_path: Path):
        path = tmp_path / "relay.yaml"
        path.write_text("source:\n  url: https://h/api\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Invalid config" in result.output

    def test_replay_disabled_warning(self, tmp_path: Path):
        path = _write_config(tmp_path)
        with path.open("a") as f:
            f.write("checkpoint:\n  max_age_seconds: 0\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 0
        assert "replay disabled" in result.output


class TestCheckpointShow:
    def test_no_checkpoint(self, tmp_path: Path):
        result = runner.invoke(app, ["checkpoint", "show", str(_write_config(tmp_path))])
        assert result.exit_code == 0
        assert "No checkpoint stored" in result.output

    def test_shows_persisted_checkpoint(self, tmp_path: Path):
        cp = Checkpoint.from_event("mgmt.example.com", make_event(4242))
        (tmp_path / "cp.json").write_text(
            json.dumps({"checkpoint": cp.model_dump(mode="json")})
        )
        result = runner.invoke(app, ["checkpoint", "show", str(_write_config(tmp_path))])
        assert result.exit_code == 0
        assert "4242" in result.output
        assert "VmPoweredOnEvent" in result.output

    def test_corrupt_store(self, tmp_path: Path):
        (tmp_path / "cp.json").write_text("{not json")
        result = runner.invoke(app, ["checkpoint", "show", str(_write_config(tmp_path))])
        assert result.exit_code == 1
        assert "Cannot read checkpoint" in result.output
