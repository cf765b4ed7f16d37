from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable

import typer

from settings import Settings


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_settings(settings: Settings) -> None:
    echo_heading("Configuration Loaded")
    echo_key_values(
        [
            ("endpoint", settings.endpoint),
            ("client_id", settings.client_id),
            ("topic", settings.topic),
            ("cert_path", settings.cert_path),
            ("key_path", settings.key_path),
            ("ca_path", settings.ca_path),
            ("publish_interval_ms", settings.publish_interval_ms),
            ("shutdown_timeout_ms", settings.shutdown_timeout_ms),
        ]
    )


def _format_timestamp(value: Any) -> str:
    if not isinstance(value, int):
        return str(value)
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def render_readings(readings: Iterable[Dict[str, Any]]) -> None:
    rows = list(readings)
    echo_heading("Readings")
    if not rows:
        typer.echo("No readings stored.")
        return
    for row in rows:
        typer.echo(
            f"  - {row.get('device_id')} @ {_format_timestamp(row.get('timestamp'))}: "
            f"temperature={row.get('temperature')} humidity={row.get('humidity')}"
        )
