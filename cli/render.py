from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_STATUS_COLORS = {
    "Normal": typer.colors.GREEN,
    "Warning": typer.colors.YELLOW,
    "Critical": typer.colors.RED,
    "Error": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _fmt(value: Any, digits: int) -> str:
    if value is None:
        return "-"
    return f"{value:.{digits}f}"


def render_devices(devices: List[Dict[str, Any]], mode: str | None = None) -> None:
    heading = "Devices" if mode is None else f"Devices ({mode} mode)"
    echo_heading(heading)
    if not devices:
        typer.echo("No devices registered.")
        return
    for device in devices:
        data = device.get("current_data") or {}
        status = device.get("status", "?")
        connection = device.get("connection_status", "?")
        typer.echo(f"  - {device.get('id')} {device.get('name')} [{device.get('protocol')}] ", nl=False)
        typer.secho(status, fg=_STATUS_COLORS.get(status), nl=False)
        typer.echo(" / ", nl=False)
        typer.secho(connection, fg=_STATUS_COLORS.get(connection), nl=False)
        typer.echo(
            f"  T={_fmt(data.get('temperature'), 1)}C"
            f" P={_fmt(data.get('pressure'), 0)}PSI"
            f" V={_fmt(data.get('vibration'), 2)}G"
        )


def render_history(payload: Dict[str, Any]) -> None:
    echo_heading(f"History for {payload.get('device_id')}")
    stats = payload.get("stats")
    if stats:
        for channel in ("temperature", "pressure", "vibration"):
            values = stats.get(channel) or {}
            typer.echo(
                f"{channel}: min={_fmt(values.get('min'), 2)}"
                f" max={_fmt(values.get('max'), 2)}"
                f" mean={_fmt(values.get('mean'), 2)}"
            )
    else:
        typer.echo("No data available for the selected date range.")

    readings = payload.get("readings") or []
    typer.echo()
    echo_heading("Readings")
    if not readings:
        typer.echo("No log entries for the selected date range.")
        return
    for reading in reversed(readings):
        typer.echo(
            f"  - {reading.get('time')}"
            f" T={_fmt(reading.get('temperature'), 1)}"
            f" P={_fmt(reading.get('pressure'), 0)}"
            f" V={_fmt(reading.get('vibration'), 2)}"
        )


def render_notifications(payload: Dict[str, Any]) -> None:
    echo_heading(f"Notifications (unread: {payload.get('unread_count', 0)})")
    notifications = payload.get("notifications") or []
    if not notifications:
        typer.echo("No notifications.")
        return
    for item in notifications:
        marker = "*" if not item.get("is_read") else " "
        level = item.get("level", "?")
        typer.echo(f" {marker} {item.get('timestamp')} ", nl=False)
        typer.secho(level, fg=_STATUS_COLORS.get(level), nl=False)
        typer.echo(f" {item.get('device_name')}: {item.get('message')}")


def render_analysis(payload: Dict[str, Any]) -> None:
    echo_heading("Predictive Analysis")
    echo_key_values(
        [
            ("risk_level", payload.get("riskLevel")),
            ("prediction", payload.get("prediction")),
        ]
    )
    recommendations = payload.get("recommendations") or []
    if recommendations:
        typer.echo("recommendations:")
        for item in recommendations:
            typer.echo(f"  - {item}")
