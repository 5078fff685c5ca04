"""
Health monitor — periodic workspace health passes, alerting, auto-recovery.

One pass:
    1. health-check the monitored modules and classify the workspace
    2. evaluate every alert rule against every module check; a rule fires
       at most once per module per cooldown window
    3. when auto-recovery is on, run single-module recovery for every
       module scoring below the recovery threshold, in tier order; a
       module is retried at most once per cooldown window

``start`` runs passes on a background task every ``interval`` seconds
until ``stop``. A pass that raises is logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime

from modrecovery.core.data.layers import group_by_tier, require_module
from modrecovery.core.models.config import MonitoringConfig
from modrecovery.core.models.module import ModuleHealthCheck
from modrecovery.core.models.monitoring import Alert, MonitoringReport, MonitorStatus
from modrecovery.core.models.recovery import RecoveryProgress
from modrecovery.core.observability.metrics import MetricsRegistry
from modrecovery.core.services.module_recovery import ModuleRecoveryService
from modrecovery.core.services.workspace import WorkspaceService, classify_workspace

logger = logging.getLogger(__name__)

RECENT_ALERTS = 50


class HealthMonitor:
    def __init__(
        self,
        workspace: WorkspaceService,
        recovery: ModuleRecoveryService,
        config: MonitoringConfig | None = None,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._workspace = workspace
        self._recovery = recovery
        self._config = config or MonitoringConfig()
        self._metrics = metrics
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._statuses: dict[str, ModuleHealthCheck] = {}
        self._last_fired: dict[str, float] = {}
        self._alerts: deque[Alert] = deque(maxlen=RECENT_ALERTS)
        self._checks_run = 0
        self._last_check: str | None = None

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    def configure(self, **changes: object) -> MonitoringConfig:
        """Replace settings; takes effect from the next pass."""
        self._config = MonitoringConfig.model_validate(
            {**self._config.model_dump(), **changes},
        )
        return self._config

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> bool:
        """Start the background loop. Returns False if it was already running."""
        if self.running:
            logger.warning("Health monitoring already running")
            return False
        self._task = asyncio.create_task(self.run(), name="health-monitor")
        logger.info(
            "Health monitoring started (interval=%ss, auto_recovery=%s)",
            self._config.interval, self._config.auto_recovery,
        )
        return True

    async def stop(self) -> bool:
        """Stop the background loop. Returns False if it was not running."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Health monitoring stopped")
        return True

    async def run(
        self,
        cycles: int | None = None,
        on_report: Callable[[MonitoringReport], None] | None = None,
    ) -> None:
        """Run passes every ``interval`` seconds, forever or for ``cycles`` passes."""
        done = 0
        while cycles is None or done < cycles:
            try:
                report = await self.check_now()
            except Exception:
                logger.exception("Health monitoring pass failed")
                self._count("monitor_errors")
            else:
                if on_report is not None:
                    on_report(report)
            done += 1
            if cycles is not None and done >= cycles:
                break
            await asyncio.sleep(self._config.interval)

    # ── One pass ────────────────────────────────────────────────

    async def check_now(self) -> MonitoringReport:
        started = time.monotonic()
        checks = await self._workspace.check_modules(self._config.modules)
        for check in checks:
            self._statuses[check.module_id] = check

        health = classify_workspace(checks)
        alerts = self.evaluate_alerts(checks)
        recoveries: dict[str, RecoveryProgress] = {}
        if self._config.auto_recovery:
            recoveries = await self._auto_recover(checks)

        self._checks_run += 1
        self._last_check = datetime.now(UTC).isoformat()
        self._count("monitor_checks")
        report = MonitoringReport(
            workspace=health,
            alerts=alerts,
            recoveries=recoveries,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Monitoring pass: %s (%.1f), %d alert(s), %d recovery attempt(s)",
            health.overall_status, health.health_score, len(alerts), len(recoveries),
        )
        return report

    def evaluate_alerts(self, checks: list[ModuleHealthCheck]) -> list[Alert]:
        fired = []
        for check in checks:
            for rule in self._config.rules:
                if not rule.matches(check):
                    continue
                if not self._cooled(f"alert:{rule.id}:{check.module_id}"):
                    continue
                alert = Alert(
                    rule_id=rule.id,
                    severity=rule.severity,
                    module_id=check.module_id,
                    message=rule.message,
                    score=check.score,
                    status=check.status,
                )
                self._raise(alert)
                fired.append(alert)
        return fired

    async def _auto_recover(self, checks: list[ModuleHealthCheck]) -> dict[str, RecoveryProgress]:
        below = [c.module_id for c in checks if c.score < self._config.recovery_threshold]
        results: dict[str, RecoveryProgress] = {}
        for tier in group_by_tier(below):
            for module_id in tier:
                if not self._cooled(f"recover:{module_id}"):
                    logger.debug("Auto-recovery of %s still cooling down", module_id)
                    continue
                logger.warning("Auto-recovering %s", module_id)
                try:
                    progress = await self._recovery.execute_recovery(module_id)
                except Exception:
                    logger.exception("Auto-recovery of %s raised", module_id)
                    self._count("auto_recoveries", status="error")
                    continue
                self._count("auto_recoveries", status=progress.status)
                results[module_id] = progress
        return results

    def _raise(self, alert: Alert) -> None:
        log = logger.error if alert.severity in ("high", "critical") else logger.warning
        log(
            "ALERT [%s] %s: %s (health %d/100, %s)",
            alert.severity.upper(), alert.module_id, alert.message, alert.score, alert.status,
        )
        self._alerts.append(alert)
        self._count("alerts_triggered", rule=alert.rule_id, severity=alert.severity)

    def _cooled(self, key: str) -> bool:
        """True (and the window restarts) unless ``key`` fired within the cooldown."""
        now = self._clock()
        last = self._last_fired.get(key)
        if last is not None and now - last < self._config.cooldown:
            return False
        self._last_fired[key] = now
        return True

    def _count(self, name: str, **labels: str) -> None:
        if self._metrics is not None:
            self._metrics.counter(name, **labels).inc()

    # ── Snapshots ───────────────────────────────────────────────

    def get_module_status(self, module_id: str) -> ModuleHealthCheck | None:
        """Last check seen for a module, None before its first pass."""
        return self._statuses.get(require_module(module_id))

    def get_all_statuses(self) -> list[ModuleHealthCheck]:
        return list(self._statuses.values())

    def system_health(self) -> int:
        """Mean of the last seen module scores, 0 before the first pass."""
        if not self._statuses:
            return 0
        return round(sum(c.score for c in self._statuses.values()) / len(self._statuses))

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            running=self.running,
            interval=self._config.interval,
            auto_recovery=self._config.auto_recovery,
            checks_run=self._checks_run,
            last_check=self._last_check,
            system_health=self.system_health(),
            module_scores={m: c.score for m, c in self._statuses.items()},
            recent_alerts=list(self._alerts),
        )
