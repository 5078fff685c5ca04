"""
Session models — RecoverySession and its read projections.

A RecoverySession is the stateful unit of work that executes the five-phase
recovery workflow over a chosen module set.

States:
    pending → running → completed | failed | cancelled
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from modrecovery.core.data.phases import PHASES, TOTAL_PHASES

SessionStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
WorkspaceStatus = Literal["healthy", "degraded", "critical", "offline"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SystemMetrics(BaseModel):
    total_modules: int = 0
    healthy_modules: int = 0
    degraded_modules: int = 0
    critical_modules: int = 0
    offline_modules: int = 0


class WorkspaceHealth(BaseModel):
    overall_status: WorkspaceStatus = "offline"
    health_score: float = 0.0
    module_health_scores: dict[str, int] = Field(default_factory=dict)
    last_assessment: str = Field(default_factory=_now_iso)
    critical_issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    system_metrics: SystemMetrics = Field(default_factory=SystemMetrics)


class PhaseProgress(BaseModel):
    started: bool = False
    completed: bool = False
    duration: int = 0  # ms
    skipped: bool = False


def _initial_progress() -> dict[int, PhaseProgress]:
    return {n: PhaseProgress() for n in PHASES}


class RecoverySession(BaseModel):
    session_id: str
    status: SessionStatus = "pending"
    current_phase: int = 1
    total_phases: int = TOTAL_PHASES
    target_modules: list[str] = Field(default_factory=list)
    start_time: str = Field(default_factory=_now_iso)
    end_time: str | None = None
    phase_progress: dict[int, PhaseProgress] = Field(default_factory=_initial_progress)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    workspace_health: WorkspaceHealth = Field(default_factory=WorkspaceHealth)
    report: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def completed_phases(self) -> list[int]:
        return sorted(n for n, p in self.phase_progress.items() if p.completed)

    @property
    def all_phases_completed(self) -> bool:
        return len(self.completed_phases) == self.total_phases

    def unmet_dependencies(self, phase_number: int) -> list[int]:
        return [
            dep for dep in PHASES[phase_number].dependencies
            if not self.phase_progress[dep].completed
        ]

    def advance_to(self, phase_number: int) -> None:
        """Move current_phase forward; it never regresses."""
        self.current_phase = max(self.current_phase, min(phase_number, self.total_phases))


class PhaseOptions(BaseModel):
    """Caller options for a single phase execution."""

    halt_on_module_failure: bool = False


class PhaseResult(BaseModel):
    session_id: str
    phase: int
    name: str
    status: Literal["completed", "failed", "skipped"]
    duration: int = 0
    start_time: str = Field(default_factory=_now_iso)
    end_time: str = Field(default_factory=_now_iso)
    success: bool = False
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    phase_specific_results: dict[str, Any] | None = None
    next_phase: int | None = None


class SessionProgress(BaseModel):
    session_id: str
    phase: SessionStatus
    progress: float
    status: Literal["success", "error", "cancelled", "in-progress"]
    start_time: str
    estimated_completion: str | None = None
    estimated_remaining_time: int = 0
    current_step: str
    steps_completed: int
    total_steps: int
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PhaseStatusEntry(BaseModel):
    phase: int
    name: str
    started: bool
    completed: bool
    skipped: bool = False
    duration: int
    estimated_duration: int
    status: Literal["pending", "in-progress", "completed"]


class PhaseStatusReport(BaseModel):
    session_id: str
    current_phase: int
    overall_progress: float
    phases: list[PhaseStatusEntry]
    summary: dict[str, Any] = Field(default_factory=dict)
