"""
CLI commands for the recovery phase catalogue.
"""

from __future__ import annotations

import click

from modrecovery.ui.cli.runtime import echo_json, get_engine, header, run


@click.group()
def phases() -> None:
    """Phases — the five-phase recovery plan."""


@phases.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_phases(ctx: click.Context, as_json: bool) -> None:
    """List all phases in execution order."""
    ops = get_engine(ctx).operations
    result = run(ops.get_phases())

    if as_json:
        echo_json(result)
        return

    header("RECOVERY PHASES")
    total_ms = 0
    for p in result:
        total_ms += p["estimated_duration"]
        deps = ", ".join(str(d) for d in p["dependencies"]) or "none"
        click.secho(f"  {p['phase']}. {p['name']}", bold=True)
        click.echo(f"     ~{p['estimated_duration'] // 1000}s  depends on: {deps}")
    click.echo()
    click.echo(f"  Estimated total: ~{total_ms // 1000}s")
    click.echo()


@phases.command("show")
@click.argument("phase_number")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, phase_number: str, as_json: bool) -> None:
    """Show the definition of one phase."""
    ops = get_engine(ctx).operations
    p = run(ops.get_phase(phase_number))

    if as_json:
        echo_json(p)
        return

    click.secho(f"\n📋 Phase {p['phase']}: {p['name']}", fg="cyan", bold=True)
    click.echo(f"   {p['description']}")
    click.echo(f"   Estimated duration: {p['estimated_duration'] // 1000}s")
    if p.get("critical_modules"):
        click.echo(f"   Critical modules: {', '.join(p['critical_modules'])}")
    for key, label in (("layer_order", "Layer order"), ("build_order", "Build order")):
        if p.get(key):
            click.echo(f"   {label}:")
            for i, tier in enumerate(p[key], 1):
                click.echo(f"     {i}. {', '.join(tier)}")
    if p.get("integration_tests"):
        click.echo(f"   Integration tests: {', '.join(p['integration_tests'])}")
    if p.get("validation_steps"):
        click.echo(f"   Validation steps: {', '.join(p['validation_steps'])}")
    click.echo()


@phases.command("deps")
@click.argument("phase_number")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deps(ctx: click.Context, phase_number: str, as_json: bool) -> None:
    """Show what a phase depends on and what it unblocks."""
    ops = get_engine(ctx).operations
    result = run(ops.get_phase_dependencies(phase_number))

    if as_json:
        echo_json(result)
        return

    def _fmt(numbers: list[int]) -> str:
        return ", ".join(str(n) for n in numbers) or "none"

    click.secho(f"\n🔗 Phase {result['phase']}: {result['name']}", fg="cyan", bold=True)
    click.echo(f"   Depends on:    {_fmt(result['depends_on'])}")
    click.echo(f"   Unblocks:      {_fmt(result['unblocks'])}")
    click.echo(f"   Critical path: {' → '.join(str(n) for n in result['critical_path'])}")
    click.echo()
