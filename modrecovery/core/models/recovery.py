"""
Recovery state models — the mutable per-module recovery record.

RecoveryState is created by ``initialize_module_recovery`` and overwritten
(not versioned) by every later recover / build / validate action.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from modrecovery.core.models.module import DependencyInfo
from modrecovery.core.models.validation import ValidationResult

RecoveryStrategy = Literal["repair", "rebuild"]

RecoveryStep = Literal[
    "initialized",
    "stabilization",
    "dependency-resolution",
    "build-recovery",
    "validation",
    "completed",
    "failed",
]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class BuildStatus(BaseModel):
    is_building: bool = False
    build_success: bool = False
    build_errors: list[str] = Field(default_factory=list)
    last_build_time: str | None = None


class RecoveryMetrics(BaseModel):
    attempts: int = 0
    steps_succeeded: int = 0
    steps_failed: int = 0
    last_duration_ms: int = 0
    health_before: int | None = None
    health_after: int | None = None


class RecoveryState(BaseModel):
    module_id: str
    phase: int = 0
    step: RecoveryStep = "initialized"
    recovery_strategy: RecoveryStrategy = "repair"
    start_time: str = Field(default_factory=_now_iso)
    last_updated: str = Field(default_factory=_now_iso)
    dependencies: list[DependencyInfo] = Field(default_factory=list)
    build_status: BuildStatus = Field(default_factory=BuildStatus)
    metrics: RecoveryMetrics = Field(default_factory=RecoveryMetrics)
    validation: ValidationResult | None = None

    def touch(self) -> None:
        self.last_updated = _now_iso()


class BuildReport(BaseModel):
    """Result of one module build."""

    module_id: str
    build_success: bool = False
    build_time: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    skipped: bool = False


class RecoveryProgress(BaseModel):
    """Progress of a single-module recovery (``execute_recovery``)."""

    module_id: str
    phase: RecoveryStep = "initialized"
    progress: float = 0.0  # percent
    status: Literal["success", "partial", "error", "in-progress"] = "in-progress"
    start_time: str = Field(default_factory=_now_iso)
    end_time: str | None = None
    current_step: str = ""
    steps_completed: int = 0
    total_steps: int = 4
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
