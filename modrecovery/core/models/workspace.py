"""
Workspace operation results — status, build, validation, reset views.

WorkspaceHealth itself lives with the session models, since every
session carries a snapshot of it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from modrecovery.core.models.recovery import BuildReport, RecoveryState
from modrecovery.core.models.session import WorkspaceHealth
from modrecovery.core.models.validation import ValidationSummary


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ModuleStatusEntry(BaseModel):
    module_id: str
    layer: int
    status: str
    score: int
    can_build: bool
    recovery_phase: int | None = None
    recovery_step: str | None = None
    recovery_strategy: str | None = None
    build_success: bool | None = None
    last_updated: str | None = None


class BuildHealthCounts(BaseModel):
    can_build: int = 0
    last_build_success: int = 0
    dependencies_resolved: int = 0


class WorkspaceStatusReport(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    health: WorkspaceHealth
    modules: list[ModuleStatusEntry] = Field(default_factory=list)
    build_health: BuildHealthCounts = Field(default_factory=BuildHealthCounts)
    modules_in_recovery: int = 0


class WorkspaceBuildResult(BaseModel):
    strategy: Literal["parallel", "sequential"]
    force: bool = False
    tiers: list[list[str]] = Field(default_factory=list)
    results: dict[str, BuildReport] = Field(default_factory=dict)
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return not self.failed


class WorkspaceValidation(BaseModel):
    validation: ValidationSummary
    health: WorkspaceHealth
    recommendations: list[str] = Field(default_factory=list)


class WorkspaceReset(BaseModel):
    reset_modules: list[str] = Field(default_factory=list)
    states: list[RecoveryState] = Field(default_factory=list)
    timestamp: str = Field(default_factory=_now_iso)
