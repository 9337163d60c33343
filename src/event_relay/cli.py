"""Typer CLI for the event relay."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from event_relay.checkpoint.factory import create_checkpoint_store
from event_relay.checkpoint.store import CheckpointStoreError
from event_relay.config.loader import load_relay_config
from event_relay.config.models import RelayConfig
from event_relay.observability.logging import configure_logging
from event_relay.sources.base import SourceError

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="relay", help="Event history relay CLI")
checkpoint_app = typer.Typer(name="checkpoint", help="Checkpoint inspection")
app.add_typer(checkpoint_app)


def _load(config_path: str) -> RelayConfig:
    path = Path(config_path)
    if not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return load_relay_config(path)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid config:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to relay YAML"),
) -> None:
    """Validate a relay configuration file."""
    config = _load(config_path)
    cp = config.checkpoint
    console.print(f"[green]Valid[/green]: relay_id={config.relay_id}")
    console.print(f"  source:   {config.source.url}")
    console.print(f"  sink:     {config.sink.url}")
    console.print(f"  encoding: {config.payload_encoding}")
    console.print(
        f"  checkpoint: replay window {cp.max_age_seconds}s, "
        f"flush every {cp.period_seconds}s"
    )
    console.print(f"  store:    {config.store.store_type} ({config.store.path or '-'})")
    if cp.max_age_seconds == 0:
        console.print("[yellow]  replay disabled: max_age_seconds is 0[/yellow]")


@app.command()
def run(
    config_path: str = typer.Argument(..., help="Path to relay YAML"),
) -> None:
    """Run the relay until interrupted."""
    config = _load(config_path)
    configure_logging(config.log_level, config.json_logs)

    from event_relay.pipeline.runner import Relay

    console.print(f"[yellow]Starting relay:[/yellow] {config.relay_id}")
    relay = Relay(config)
    try:
        relay.start()
    except KeyboardInterrupt:
        relay.stop()
        console.print("[yellow]Interrupted[/yellow]")
    except (SourceError, CheckpointStoreError) as exc:
        logger.error("relay.failed", error=str(exc))
        console.print(f"[red]Relay failed:[/red] {exc}")
        raise typer.Exit(1) from exc


@checkpoint_app.command("show")
def checkpoint_show(
    config_path: str = typer.Argument(..., help="Path to relay YAML"),
) -> None:
    """Print the persisted checkpoint."""
    config = _load(config_path)
    store = create_checkpoint_store(config.store)

    async def _get():  # noqa: ANN202
        await store.init()
        return await store.get(config.store.key)

    try:
        cp = asyncio.run(_get())
    except CheckpointStoreError as exc:
        console.print(f"[red]Cannot read checkpoint:[/red] {exc}")
        raise typer.Exit(1) from exc

    if cp is None:
        console.print("[yellow]No checkpoint stored[/yellow]")
        return

    table = Table(title=f"Checkpoint: {config.store.key}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for field, value in cp.model_dump(mode="json").items():
        table.add_row(field, str(value))
    console.print(table)
