from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_analysis, render_devices, render_history, render_notifications

_MODES = ("simulation", "live")


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the factory monitor service.",
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
        help="Monitor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between refreshes for the watch command.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        request_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("devices")
def devices_command(ctx: typer.Context) -> None:
    """List devices with their latest readings and status."""
    state = _get_state(ctx)
    render_devices(state.client.list_devices(), mode=state.client.get_mode())


@app.command("history")
def history_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
    start: Optional[datetime] = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="First UTC day."),
    end: Optional[datetime] = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Last UTC day."),
) -> None:
    """Show a device's reading history and per-channel statistics."""
    state = _get_state(ctx)
    payload = state.client.get_history(
        device_id,
        start=start.date() if start else None,
        end=end.date() if end else None,
    )
    render_history(payload)


@app.command("mode")
def mode_command(
    ctx: typer.Context,
    mode: Optional[str] = typer.Argument(None, help="simulation or live; omit to show the current mode."),
) -> None:
    """Show or switch the data-source mode."""
    state = _get_state(ctx)
    if mode is None:
        typer.echo(f"mode: {state.client.get_mode()}")
        return
    candidate = mode.strip().lower()
    if candidate not in _MODES:
        raise typer.BadParameter(f"Mode must be one of: {', '.join(_MODES)}.", param_hint="MODE")
    typer.secho(f"mode: {state.client.set_mode(candidate)}", fg=typer.colors.GREEN)


@app.command("notifications")
def notifications_command(
    ctx: typer.Context,
    mark_read: bool = typer.Option(
        False,
        "--mark-read/--keep-unread",
        help="Mark every notification as read after listing.",
    ),
) -> None:
    """List alerts raised by the update cycle."""
    state = _get_state(ctx)
    render_notifications(state.client.get_notifications())
    if mark_read:
        marked = state.client.mark_notifications_read()
        typer.echo(f"Marked {marked} notification(s) as read.")


@app.command("analyze")
def analyze_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Request a predictive maintenance analysis for a device."""
    state = _get_state(ctx)
    typer.echo(f"Analyzing {device_id} ...")
    render_analysis(state.client.analyze(device_id))


@app.command("chat")
def chat_command(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="Question for the maintenance assistant."),
) -> None:
    """Ask the AI assistant about the fleet and stream its reply."""
    state = _get_state(ctx)
    for chunk in state.client.stream_chat([{"role": "user", "text": message}]):
        typer.echo(chunk, nl=False)
    typer.echo()


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    count: int = typer.Option(0, "--count", "-n", min=0, help="Refreshes before exiting (0 = until interrupted)."),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override the refresh interval.",
    ),
) -> None:
    """Repeatedly print the device list."""
    state = _get_state(ctx)
    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    iteration = 0
    while True:
        render_devices(state.client.list_devices())
        iteration += 1
        if count and iteration >= count:
            return
        typer.echo()
        time.sleep(interval)
