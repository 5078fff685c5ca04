"""
Module health models — the per-module point-in-time assessment.

A ModuleHealthCheck is ephemeral: it is recomputed on every request and
never stored.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

ModuleStatus = Literal["healthy", "degraded", "critical", "offline"]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DependencyInfo(BaseModel):
    """One dependency found while walking a module's dependency graph."""

    name: str
    is_direct: bool = True
    status: Literal["resolved", "missing"] = "resolved"
    conflicts: list[str] = Field(default_factory=list)
    depth: int = 1
    version: str = ""
    required_by: str = ""


class BuildHealth(BaseModel):
    can_build: bool = False
    last_build_success: bool | None = None
    dependencies_resolved: bool = False
    has_build_script: bool = False
    has_compiler_config: bool = False


class DependencyHealth(BaseModel):
    status: Literal["resolved", "missing", "conflicted"] = "resolved"
    total: int = 0
    resolved: int = 0
    missing: int = 0
    conflicted: int = 0

    @classmethod
    def from_dependencies(cls, deps: list[DependencyInfo]) -> DependencyHealth:
        missing = sum(1 for d in deps if d.status == "missing")
        conflicted = sum(1 for d in deps if d.conflicts)
        if missing:
            status = "missing"
        elif conflicted:
            status = "conflicted"
        else:
            status = "resolved"
        return cls(
            status=status,
            total=len(deps),
            resolved=len(deps) - missing,
            missing=missing,
            conflicted=conflicted,
        )


class ModuleHealthCheck(BaseModel):
    module_id: str
    status: ModuleStatus = "offline"
    score: int = 0
    timestamp: str = Field(default_factory=_now_iso)
    build_health: BuildHealth = Field(default_factory=BuildHealth)
    dependency_health: DependencyHealth = Field(default_factory=DependencyHealth)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def offline(cls, module_id: str, error: str) -> ModuleHealthCheck:
        """Synthetic result for a module whose inspection failed."""
        return cls(module_id=module_id, status="offline", score=0, errors=[error])
