"""
Monitoring models — alert rules, fired alerts, and monitoring reports.

An AlertRule is a conjunction of the conditions it sets; a rule that sets
none is rejected at load time.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from modrecovery.core.models.module import ModuleHealthCheck, ModuleStatus
from modrecovery.core.models.recovery import RecoveryProgress
from modrecovery.core.models.session import WorkspaceHealth

AlertSeverity = Literal["low", "medium", "high", "critical"]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AlertRule(BaseModel):
    id: str
    severity: AlertSeverity = "medium"
    message: str
    below_score: int | None = Field(default=None, ge=0, le=101)
    statuses: list[ModuleStatus] = Field(default_factory=list)
    build_failed: bool = False
    enabled: bool = True

    @model_validator(mode="after")
    def _has_condition(self) -> AlertRule:
        if self.below_score is None and not self.statuses and not self.build_failed:
            raise ValueError(f"alert rule '{self.id}' sets no condition")
        return self

    def matches(self, check: ModuleHealthCheck) -> bool:
        if not self.enabled:
            return False
        if self.below_score is not None and check.score >= self.below_score:
            return False
        if self.statuses and check.status not in self.statuses:
            return False
        if self.build_failed and check.build_health.last_build_success is not False:
            return False
        return True


def default_alert_rules() -> list[AlertRule]:
    return [
        AlertRule(
            id="critical-health",
            severity="critical",
            message="Module health critically low",
            below_score=30,
        ),
        AlertRule(
            id="module-offline",
            severity="critical",
            message="Module is offline",
            statuses=["offline"],
        ),
        AlertRule(
            id="build-failed",
            severity="high",
            message="Last build failed",
            build_failed=True,
        ),
    ]


class Alert(BaseModel):
    rule_id: str
    severity: AlertSeverity
    module_id: str
    message: str
    score: int
    status: ModuleStatus
    timestamp: str = Field(default_factory=_now_iso)


class MonitoringReport(BaseModel):
    """Outcome of one monitoring pass."""

    timestamp: str = Field(default_factory=_now_iso)
    workspace: WorkspaceHealth
    alerts: list[Alert] = Field(default_factory=list)
    recoveries: dict[str, RecoveryProgress] = Field(default_factory=dict)
    duration_ms: int = 0


class MonitorStatus(BaseModel):
    running: bool
    interval: float
    auto_recovery: bool
    checks_run: int = 0
    last_check: str | None = None
    system_health: int = 0
    module_scores: dict[str, int] = Field(default_factory=dict)
    recent_alerts: list[Alert] = Field(default_factory=list)
