from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import format_chart_row, render_chart, render_layer, render_summary
from logging_config import configure_logging
from services.dashboard import DashboardService
from services.renderers import SpatialRenderer, TemporalRenderer
from services.sources import HttpReadingSource
from services.summary import summarize
from services.view_model import ViewModel


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Terminal views over the NordicPulse telemetry API.",
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
        help="Dashboard API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
) -> None:
    """Entry point for the CLI."""
    configure_logging()
    config = load_config(base_url=base_url)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("snapshot")
def snapshot_command(ctx: typer.Context) -> None:
    """Show the latest reading of every device and the headline figures."""
    state = _get_state(ctx)
    devices = state.client.latest_devices()
    render_summary(summarize(devices))
    typer.echo()
    render_layer(SpatialRenderer().render(devices))


@app.command("history")
def history_command(ctx: typer.Context) -> None:
    """Show per-minute averages by device type over the trailing window."""
    state = _get_state(ctx)
    history = state.client.history()
    render_chart(TemporalRenderer().render(history))


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        "-d",
        help="Stop after this many seconds (runs until interrupted by default).",
    ),
    devices_interval: Optional[float] = typer.Option(
        None,
        "--devices-interval",
        help="Seconds between device refreshes.",
    ),
    history_interval: Optional[float] = typer.Option(
        None,
        "--history-interval",
        help="Seconds between history refreshes.",
    ),
) -> None:
    """Follow the live dashboard, printing every refresh."""
    state = _get_state(ctx)
    config = state.config
    devices_every = devices_interval if devices_interval is not None else config.devices_interval
    history_every = history_interval if history_interval is not None else config.history_interval
    typer.echo(
        f"Watching {config.base_url} (devices every {devices_every}s, history every {history_every}s)..."
    )
    try:
        asyncio.run(_watch(config, devices_every, history_every, duration))
    except KeyboardInterrupt:
        typer.echo("Stopped.")


async def _watch(
    config: CLIConfig,
    devices_interval: float,
    history_interval: float,
    duration: Optional[float],
) -> None:
    source = HttpReadingSource(config.base_url, timeout=config.timeout)
    dashboard = DashboardService(
        source,
        devices_interval=devices_interval,
        history_interval=history_interval,
    )
    try:
        await dashboard.start()
        for slice_name, message in dashboard.view_model.last_errors.items():
            typer.secho(f"{slice_name} fetch failed: {message}", fg=typer.colors.RED, err=True)
        frame = dashboard.frame
        render_summary(frame.summary)
        typer.echo()
        render_chart(frame.chart)
        previous = frame.view_model

        def on_change(model: ViewModel) -> None:
            nonlocal previous
            current = dashboard.frame
            if model.devices is not previous.devices:
                typer.echo()
                render_summary(current.summary)
            if model.history is not previous.history and current.chart.points:
                typer.echo(format_chart_row(current.chart.points[-1], current.chart))
            previous = model

        def on_error(slice_name: str, error: BaseException) -> None:
            typer.secho(
                f"{slice_name} refresh failed, keeping last data: {error}",
                fg=typer.colors.RED,
                err=True,
            )

        dashboard.view_model.subscribe(on_change)
        dashboard.view_model.subscribe_errors(on_error)
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await dashboard.stop()
        await source.aclose()
