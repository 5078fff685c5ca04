"""
CLI runtime helpers — engine construction and coroutine execution.

Commands never wire the engine themselves: they ask for the
RecoveryOperations of the current invocation and run one coroutine
against it. Engine errors become ``❌ <message>`` and exit status 1.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from modrecovery.core.errors import RecoveryError

T = TypeVar("T")


def fail(message: str) -> NoReturn:
    click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


def get_engine(ctx: click.Context) -> Any:
    """Build (once per invocation) the engine for this CLI context."""
    obj = ctx.find_root().obj
    engine = obj.get("engine")
    if engine is not None:
        return engine

    from modrecovery.core.config.loader import ConfigError, load_config
    from modrecovery.core.engine.facade import build_engine

    config_path: Path | None = obj.get("config_path")
    try:
        config = load_config(config_path)
    except ConfigError as e:
        fail(str(e))

    engine = build_engine(config, mock=obj.get("mock", False))
    obj["engine"] = engine
    return engine


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run one engine coroutine to completion, translating engine errors."""
    try:
        return asyncio.run(coro)
    except RecoveryError as e:
        fail(e.message)


def echo_json(data: Any) -> None:
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    elif hasattr(data, "to_dict"):
        data = data.to_dict()
    click.echo(json.dumps(data, indent=2, default=str))


STATUS_ICONS = {
    "healthy": "💚",
    "degraded": "🟡",
    "critical": "🔴",
    "offline": "⚫",
    "unhealthy": "🔴",
    "unknown": "❔",
}

STATUS_COLORS = {
    "healthy": "green",
    "degraded": "yellow",
    "critical": "red",
    "offline": "red",
    "unhealthy": "red",
}


def header(title: str, color: str = "cyan") -> None:
    click.echo()
    click.secho("═" * 60, fg="cyan")
    click.secho(f"  {title}", fg=color, bold=True)
    click.secho("═" * 60, fg="cyan")
    click.echo()
