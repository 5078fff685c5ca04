"""
CLI commands for module inspection and single-module recovery.

Thin wrappers over ``RecoveryOperations``.
"""

from __future__ import annotations

import sys

import click

from modrecovery.ui.cli.runtime import (
    STATUS_COLORS,
    STATUS_ICONS,
    echo_json,
    get_engine,
    header,
    run,
)


@click.group()
def modules() -> None:
    """Modules — health, dependencies, builds, and single-module recovery."""


@modules.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_modules(ctx: click.Context, as_json: bool) -> None:
    """List every module with its layer and health."""
    ops = get_engine(ctx).operations
    result = run(ops.get_modules())

    if as_json:
        echo_json(result)
        return

    summary = result["summary"]
    header(f"MODULES: {summary['total']}  (average score {summary['average_score']})")
    for m in result["modules"]:
        icon = STATUS_ICONS.get(m["status"], "❔")
        click.echo(f"  {icon} ", nl=False)
        click.secho(f"{m['module_id']:<18}", bold=True, nl=False)
        click.echo(f" layer {m['layer']}  tier {m['tier']}  ", nl=False)
        click.secho(f"{m['score']:>3}/100", fg=STATUS_COLORS.get(m["status"], "white"), nl=False)
        if m["recovery_step"]:
            click.echo(f"  (recovery: {m['recovery_step']})")
        else:
            click.echo()
    click.echo()


@modules.command("show")
@click.argument("module_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, module_id: str, as_json: bool) -> None:
    """Show health details for one module."""
    ops = get_engine(ctx).operations
    result = run(ops.get_module(module_id))

    if as_json:
        echo_json(result)
        return

    health = result["health"]
    icon = STATUS_ICONS.get(result["status"], "❔")
    click.secho(f"\n{icon} {module_id}", fg="cyan", bold=True)
    click.echo(f"   Layer {result['layer']}, tier {result['tier']}")
    click.echo(f"   Status: {result['status']}  score {result['score']}/100")

    build = health["build_health"]
    click.echo(f"   Can build: {'yes' if build['can_build'] else 'no'}")
    deps = health["dependency_health"]
    click.echo(
        f"   Dependencies: {deps['resolved']}/{deps['total']} resolved"
        f" ({deps['missing']} missing, {deps['conflicted']} conflicted)"
    )
    for err in health["errors"]:
        click.secho(f"     ✗ {err}", fg="red")
    for warn in health["warnings"]:
        click.secho(f"     ⚠ {warn}", fg="yellow")
    if result["recovery_state"]:
        state = result["recovery_state"]
        click.echo(f"   Recovery: phase {state['phase']} ({state['step']}, {state['recovery_strategy']})")
    click.echo()


@modules.command("deps")
@click.argument("module_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deps(ctx: click.Context, module_id: str, as_json: bool) -> None:
    """Show the dependency graph of one module."""
    ops = get_engine(ctx).operations
    result = run(ops.get_module_dependencies(module_id))

    if as_json:
        echo_json(result)
        return

    click.secho(f"\n📦 {module_id} dependencies", fg="cyan", bold=True)
    click.echo(f"   Direct: {result['direct']}  Transitive: {result['transitive']}")
    for dep in result["dependencies"]:
        indent = "  " * dep["depth"]
        mark = "✓" if dep["status"] == "resolved" else "✗"
        color = "green" if dep["status"] == "resolved" and not dep["conflicts"] else "red"
        version = f" {dep['version']}" if dep["version"] else ""
        click.secho(f"  {indent}{mark} {dep['name']}{version}", fg=color)
        for conflict in dep["conflicts"]:
            click.secho(f"  {indent}   ⚠ {conflict}", fg="yellow")
    for violation in result["layer_violations"]:
        click.secho(f"   ✗ {violation}", fg="red")
    click.echo()


@modules.command("build-status")
@click.argument("module_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build_status(ctx: click.Context, module_id: str, as_json: bool) -> None:
    """Show whether a module can be built and how its last build went."""
    ops = get_engine(ctx).operations
    result = run(ops.get_module_build_status(module_id))

    if as_json:
        echo_json(result)
        return

    build = result["build_health"]
    click.secho(f"\n🔨 {module_id}", fg="cyan", bold=True)
    click.echo(f"   Can build:            {'yes' if result['can_build'] else 'no'}")
    click.echo(f"   Build script:         {'yes' if build['has_build_script'] else 'no'}")
    click.echo(f"   Compiler config:      {'yes' if build['has_compiler_config'] else 'no'}")
    click.echo(f"   Dependencies resolved: {'yes' if build['dependencies_resolved'] else 'no'}")
    last = build["last_build_success"]
    label = "never built" if last is None else ("succeeded" if last else "failed")
    click.echo(f"   Last build:           {label}")
    click.echo()


@modules.command("build")
@click.argument("module_id")
@click.option("--force", is_flag=True, help="Build even if the module is not buildable.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build(ctx: click.Context, module_id: str, force: bool, as_json: bool) -> None:
    """Build one module."""
    ops = get_engine(ctx).operations
    report = run(ops.build_module(module_id, force=force))

    if as_json:
        echo_json(report)
        return

    if report.skipped:
        click.secho(f"⊘ {module_id}: no build command configured", fg="yellow")
    elif report.build_success:
        click.secho(f"✅ {module_id} built in {report.duration_ms}ms", fg="green")
    else:
        click.secho(f"❌ {module_id} build failed", fg="red")
        for err in report.errors:
            click.echo(f"     {err}")
        sys.exit(1)


@modules.command("recover")
@click.argument("module_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def recover(ctx: click.Context, module_id: str, as_json: bool) -> None:
    """Run the full recovery sequence for one module."""
    ops = get_engine(ctx).operations
    progress = run(ops.recover_module(module_id))

    if as_json:
        echo_json(progress)
        return

    color = {"success": "green", "partial": "yellow", "error": "red"}.get(progress.status, "white")
    click.secho(
        f"🔧 {module_id}: {progress.status} "
        f"({progress.steps_completed}/{progress.total_steps} steps)",
        fg=color,
        bold=True,
    )
    for err in progress.errors:
        click.secho(f"     ✗ {err}", fg="red")
    for warn in progress.warnings:
        click.secho(f"     ⚠ {warn}", fg="yellow")
    if progress.status == "error":
        sys.exit(1)


@modules.command("validate")
@click.argument("module_ids", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def validate(ctx: click.Context, module_ids: tuple[str, ...], as_json: bool) -> None:
    """Validate modules (all modules when none are given)."""
    ops = get_engine(ctx).operations
    summary = run(ops.validate_modules(list(module_ids) or None))

    if as_json:
        echo_json(summary)
        return

    header(
        f"VALIDATION: {summary.valid_modules}/{summary.total_modules} valid"
        f" (average {summary.average_score})",
        color="green" if summary.invalid_modules == 0 else "yellow",
    )
    for result in summary.results:
        mark = "✓" if result.is_valid else "✗"
        click.secho(
            f"  {mark} {result.module_id:<18} {result.score:>3}/100",
            fg="green" if result.is_valid else "red",
        )
    if summary.recommendations:
        click.echo()
        click.secho("  Recommendations:", bold=True)
        for rec in summary.recommendations:
            click.echo(f"    → {rec}")
    click.echo()
