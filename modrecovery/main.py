"""
Module Recovery Engine — CLI entrypoint.

Usage:
    recoveryctl --help
    recoveryctl health
    recoveryctl modules list
    recoveryctl recover -m auth -m i18n
    recoveryctl monitor --once
"""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import click

from modrecovery import __version__
from modrecovery.core.observability.logging_config import resolve_level, setup_logging
from modrecovery.ui.cli.runtime import (
    STATUS_COLORS,
    STATUS_ICONS,
    echo_json,
    get_engine,
    header,
    run,
)


@click.group()
@click.version_option(version=__version__, prog_name="recoveryctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to recovery.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Use mock collaborators (no real builds).")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
) -> None:
    """Module Recovery Engine — assess and restore workspace modules."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["mock"] = mock

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        cli_level = "DEBUG"
    elif verbose:
        cli_level = "INFO"
    elif quiet:
        cli_level = "ERROR"
    else:
        cli_level = None

    setup_logging(level=resolve_level(cli_level), quiet_third_party=not debug)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Show workspace health and engine component health."""
    engine = get_engine(ctx)

    async def _collect():  # type: ignore[no-untyped-def]
        workspace = await engine.operations.get_workspace_health()
        system = await engine.operations.engine_health()
        return workspace, system

    workspace, system = run(_collect())

    if as_json:
        echo_json({
            "workspace": workspace.model_dump(mode="json"),
            "engine": system.to_dict(),
        })
        return

    status = workspace.overall_status
    header(
        f"WORKSPACE HEALTH: {workspace.health_score}/100 — {status}",
        color=STATUS_COLORS.get(status, "white"),
    )
    for module_id, score in workspace.module_health_scores.items():
        click.echo(f"  {module_id:<18} {score:>3}/100")

    if workspace.critical_issues:
        click.echo()
        click.secho("  Critical issues:", fg="red", bold=True)
        for issue in workspace.critical_issues:
            click.echo(f"    ✗ {issue}")

    if workspace.recommendations and not ctx.obj.get("quiet"):
        click.echo()
        click.secho("  Recommendations:", bold=True)
        for rec in workspace.recommendations:
            click.echo(f"    → {rec}")

    click.echo()
    click.secho(f"  Engine: {STATUS_ICONS.get(system.status, '❔')} {system.status}", bold=True)
    for component in system.components:
        icon = STATUS_ICONS.get(component.status, "❔")
        click.echo(f"    {icon} {component.name}: {component.message}")
    click.echo()


@cli.command()
@click.option("--session-id", default=None, help="Session id (default: generated).")
@click.option(
    "--module",
    "-m",
    "module_ids",
    multiple=True,
    help="Target module (repeatable; default: all modules).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def recover(
    ctx: click.Context,
    session_id: str | None,
    module_ids: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a recovery session, run all phases, and print progress."""
    engine = get_engine(ctx)
    ops = engine.operations
    session_id = session_id or f"recovery-{datetime.now(UTC).strftime('%Y%m%d-%H%M%S')}"
    targets = list(module_ids) or None

    async def _recover():  # type: ignore[no-untyped-def]
        await ops.initialize_recovery_session(session_id, targets)
        session = await ops.execute_recovery_session(session_id)
        status = await ops.get_phase_status(session_id)
        return session, status

    if not as_json and not ctx.obj.get("quiet"):
        click.secho(f"🚑 Starting recovery session {session_id}...", fg="cyan")

    session, phase_status = run(_recover())

    if as_json:
        echo_json(session)
        if session.status != "completed":
            sys.exit(1)
        return

    click.echo()
    for entry in phase_status.phases:
        if entry.skipped:
            click.secho(f"  ⊘ Phase {entry.phase}: {entry.name} (skipped)", fg="yellow")
        elif entry.completed:
            click.secho(f"  ✓ Phase {entry.phase}: {entry.name} ({entry.duration}ms)", fg="green")
        elif entry.started:
            click.secho(f"  ✗ Phase {entry.phase}: {entry.name}", fg="red")
        else:
            click.secho(f"  · Phase {entry.phase}: {entry.name}", dim=True)

    for warn in session.warnings:
        click.secho(f"    ⚠ {warn}", fg="yellow")
    for err in session.errors:
        click.secho(f"    ✗ {err}", fg="red")

    click.echo()
    if session.status == "completed":
        click.secho(
            f"✅ Session {session_id} completed ({phase_status.overall_progress}%)",
            fg="green",
            bold=True,
        )
    else:
        click.secho(
            f"❌ Session {session_id} {session.status} ({phase_status.overall_progress}%)",
            fg="red",
            bold=True,
        )
        sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Port number.")
@click.option("--monitor", "with_monitor", is_flag=True, help="Start the health monitor too.")
@click.pass_context
def web(ctx: click.Context, host: str, port: int, with_monitor: bool) -> None:
    """Serve the HTTP API."""
    from modrecovery.ui.web.server import create_app, run_server

    engine = get_engine(ctx)
    app = create_app(engine=engine)
    debug = ctx.obj.get("debug", False)

    click.echo()
    click.secho("⚡ Module Recovery Engine — HTTP API", bold=True)
    click.echo(f"   API:       http://{host}:{port}/api")
    click.echo(f"   Workspace: {engine.config.workspace.root}")
    if ctx.obj.get("mock"):
        click.secho("   Mode: mock (no real execution)", fg="yellow")
    if with_monitor:
        app.config["ENGINE_RUNNER"].run(engine.operations.start_monitoring())
        click.echo(f"   Monitor:   every {engine.monitor.config.interval}s")
    if debug:
        click.secho("   Logging: DEBUG (all output)", fg="yellow")
    click.echo()

    run_server(app, host=host, port=port, debug=debug)


# ── Register sub-command groups from modrecovery/ui/cli/ ──────────

from modrecovery.ui.cli.modules import modules  # noqa: E402
from modrecovery.ui.cli.monitor import monitor  # noqa: E402
from modrecovery.ui.cli.phases import phases  # noqa: E402

cli.add_command(modules)
cli.add_command(monitor)
cli.add_command(phases)


if __name__ == "__main__":
    cli()
