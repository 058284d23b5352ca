from __future__ import annotations

from typing import Any, Iterable

import typer

from services.renderers import ChartFrame, SpatialLayer
from services.summary import Summary

GAP = "-"


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_summary(summary: Summary) -> None:
    echo_heading("Summary")
    echo_key_values(
        [
            ("device_count", summary.device_count),
            ("total_power", f"{summary.total_power:.1f} {'/'.join(summary.units)}".rstrip()),
            ("active_devices", summary.active_devices),
        ]
    )
    if summary.mixed_units:
        typer.secho(
            "warning: total_power adds values reported in different units",
            fg=typer.colors.YELLOW,
        )


def render_layer(layer: SpatialLayer) -> None:
    echo_heading("Devices")
    if not layer.points:
        typer.echo("No devices to plot.")
    for point in layer.points:
        lon, lat = point.position
        typer.echo(
            f"  - {point.device_id} [{point.device_type}] "
            f"lon={lon:.4f} lat={lat:.4f} value={point.value} {point.unit}"
        )
    if layer.skipped:
        typer.secho(
            f"Skipped {len(layer.skipped)} device(s) with malformed location: "
            f"{', '.join(layer.skipped)}",
            fg=typer.colors.YELLOW,
        )


def format_chart_row(point: dict, frame: ChartFrame) -> str:
    cells = [str(point["bucket"])]
    for style in frame.series:
        value = point.get(style.device_type)
        cells.append(f"{style.device_type}={GAP if value is None else f'{value:.2f}'}")
    return "  ".join(cells)


def render_chart(frame: ChartFrame) -> None:
    echo_heading("History")
    if not frame.points:
        typer.echo("No readings in the current window.")
        return
    for point in frame.points:
        typer.echo(format_chart_row(point, frame))
