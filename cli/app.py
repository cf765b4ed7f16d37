from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_readings, render_settings
from datastore.readings_table import build_default_table
from logging_config import configure_logging
from services.runner import TransportFactory, run_simulator
from services.shutdown import EXIT_CONFIG_ERROR
from services.telemetry import generate_reading
from settings import (
    ConfigurationError,
    Settings,
    get_settings,
    load_env_file,
    missing_settings,
)
from transport.mock_broker import MockBrokerTransport
from transport.mqtt import MqttTransport


class Broker(str, Enum):
    mqtt = "mqtt"
    mock = "mock"


@dataclass
class CLIState:
    config: CLIConfig


app = typer.Typer(
    help="Simulated edge device that publishes telemetry to an MQTT broker.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Readings API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
) -> None:
    """Entry point for the CLI."""
    ctx.obj = CLIState(config=load_config(base_url=base_url))


def _transport_factory(
    broker: Broker, settings: Settings, outbox: Optional[Path]
) -> TransportFactory:
    if broker is Broker.mock:
        return lambda loop: MockBrokerTransport(loop, outbox_path=outbox)
    return lambda loop: MqttTransport.from_settings(settings, loop)


@app.command("run")
def run_command(
    broker: Broker = typer.Option(
        Broker.mqtt,
        "--broker",
        case_sensitive=False,
        help="Publish to the configured MQTT endpoint or to an in-memory broker.",
    ),
    env_file: Optional[Path] = typer.Option(
        None,
        "--env-file",
        dir_okay=False,
        help="Dotenv file to load before reading settings (defaults to ./.env when present).",
    ),
    interval_ms: Optional[int] = typer.Option(
        None, "--interval-ms", min=1, help="Override PUBLISH_INTERVAL_MS."
    ),
    shutdown_timeout_ms: Optional[int] = typer.Option(
        None, "--shutdown-timeout-ms", min=1, help="Override SHUTDOWN_TIMEOUT_MS."
    ),
    outbox: Optional[Path] = typer.Option(
        None,
        "--outbox",
        dir_okay=False,
        help="With --broker mock, append published messages to this JSON lines file.",
    ),
) -> None:
    """Connect and publish telemetry until interrupted."""
    load_env_file(env_file)
    settings = get_settings()
    if interval_ms is not None:
        settings = replace(settings, publish_interval_ms=interval_ms)
    if shutdown_timeout_ms is not None:
        settings = replace(settings, shutdown_timeout_ms=shutdown_timeout_ms)
    configure_logging(settings.log_level)

    missing = missing_settings(settings)
    if missing:
        typer.secho(
            f"Missing required environment variables: {', '.join(missing)}",
            fg=typer.colors.RED,
            err=True,
        )
        typer.secho(
            "Please ensure they are defined in your .env file or environment.",
            err=True,
        )
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    render_settings(settings)
    table = build_default_table()
    factory = _transport_factory(broker, settings, outbox)
    try:
        intent = asyncio.run(run_simulator(settings, factory, table=table))
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc

    typer.echo(f"Shutdown complete ({intent.reason}).")
    raise typer.Exit(code=intent.exit_code)


@app.command("sample")
def sample_command(
    device_id: Optional[str] = typer.Option(
        None, "--device-id", help="Device id to stamp on the payload (defaults to DEVICE_CLIENT_ID)."
    ),
) -> None:
    """Print one generated telemetry payload."""
    identifier = device_id or get_settings().client_id or "simulated-device"
    reading = generate_reading()
    typer.echo(json.dumps(reading.to_payload(identifier)))


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    device_id: Optional[str] = typer.Option(None, "--device-id", help="Filter by device."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, max=1000),
    latest: bool = typer.Option(
        False, "--latest", help="Show only the newest reading of --device-id."
    ),
) -> None:
    """List readings stored by the simulator via the read API."""
    state = _get_state(ctx)
    if latest and not device_id:
        raise typer.BadParameter("--latest requires --device-id.")
    client = ApiClient(state.config)
    ctx.call_on_close(client.close)
    if latest and device_id:
        render_readings([client.latest_reading(device_id)])
        return
    render_readings(client.list_readings(device_id=device_id, limit=limit))
