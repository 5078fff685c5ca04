"""
CLI command for periodic health monitoring.
"""

from __future__ import annotations

import json

import click
from pydantic import ValidationError

from modrecovery.ui.cli.runtime import STATUS_COLORS, fail, get_engine, run

SEVERITY_COLORS = {"critical": "red", "high": "red", "medium": "yellow", "low": "white"}


@click.command()
@click.option("--once", is_flag=True, help="Run a single pass and exit.")
@click.option(
    "--cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after N passes (default: until interrupted).",
)
@click.option("--interval", type=float, default=None, help="Seconds between passes.")
@click.option(
    "--auto-recover/--no-auto-recover",
    default=None,
    help="Recover modules scoring below the threshold (default: from config).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="One JSON report per line.")
@click.pass_context
def monitor(
    ctx: click.Context,
    once: bool,
    cycles: int | None,
    interval: float | None,
    auto_recover: bool | None,
    as_json: bool,
) -> None:
    """Watch workspace health, raise alerts, and optionally auto-recover."""
    health_monitor = get_engine(ctx).monitor

    changes: dict[str, object] = {}
    if interval is not None:
        changes["interval"] = interval
    if auto_recover is not None:
        changes["auto_recovery"] = auto_recover
    if changes:
        try:
            health_monitor.configure(**changes)
        except ValidationError as e:
            fail(f"Invalid monitoring option: {e.errors()[0]['msg']}")

    def show(report) -> None:  # type: ignore[no-untyped-def]
        if as_json:
            click.echo(json.dumps(report.model_dump(mode="json"), default=str))
            return
        health = report.workspace
        click.secho(
            f"[{report.timestamp[:19]}] {health.overall_status} "
            f"{health.health_score}/100, {len(report.alerts)} alert(s)",
            fg=STATUS_COLORS.get(health.overall_status, "white"),
        )
        for alert in report.alerts:
            click.secho(
                f"  🚨 [{alert.severity.upper()}] {alert.module_id}: {alert.message} "
                f"({alert.score}/100)",
                fg=SEVERITY_COLORS[alert.severity],
            )
        for module_id, progress in report.recoveries.items():
            icon = "✅" if progress.status == "success" else "❌"
            click.echo(
                f"  {icon} auto-recovery {module_id}: {progress.status} "
                f"({progress.steps_completed}/{progress.total_steps} steps)"
            )

    if not as_json and not ctx.obj.get("quiet") and not once:
        click.secho(
            f"🔍 Monitoring every {health_monitor.config.interval}s (Ctrl+C to stop)",
            fg="cyan",
        )
    try:
        run(health_monitor.run(cycles=1 if once else cycles, on_report=show))
    except KeyboardInterrupt:
        click.echo("\n⏹  Monitoring stopped")
