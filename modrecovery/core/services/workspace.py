"""
Workspace health aggregator and workspace-wide operations.

Classification is a pure function of the per-module checks, evaluated
top-down, first match wins:

    healthy   mean score >= 90 and >= 80% of modules healthy
    degraded  mean score >= 70 and >= 60% of modules healthy
    critical  mean score >= 30
    offline   otherwise (including an empty selection)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter

from modrecovery.core.data.layers import group_by_tier, module_layer, require_modules
from modrecovery.core.engine.scheduler import run_tiers
from modrecovery.core.errors import FailedPreconditionError
from modrecovery.core.models.action import Receipt
from modrecovery.core.models.module import ModuleHealthCheck
from modrecovery.core.models.recovery import BuildReport
from modrecovery.core.models.session import SystemMetrics, WorkspaceHealth, WorkspaceStatus
from modrecovery.core.models.workspace import (
    BuildHealthCounts,
    ModuleStatusEntry,
    WorkspaceBuildResult,
    WorkspaceReset,
    WorkspaceStatusReport,
    WorkspaceValidation,
)
from modrecovery.core.services.health import HealthChecker
from modrecovery.core.services.module_recovery import ModuleRecoveryService
from modrecovery.core.services.validation import ValidationEngine

logger = logging.getLogger(__name__)


def classify_workspace(checks: list[ModuleHealthCheck]) -> WorkspaceHealth:
    if not checks:
        return WorkspaceHealth(overall_status="offline", health_score=0.0)

    score = sum(c.score for c in checks) / len(checks)
    by_status = Counter(c.status for c in checks)
    healthy_fraction = by_status["healthy"] / len(checks)

    status: WorkspaceStatus
    if score >= 90 and healthy_fraction >= 0.8:
        status = "healthy"
    elif score >= 70 and healthy_fraction >= 0.6:
        status = "degraded"
    elif score >= 30:
        status = "critical"
    else:
        status = "offline"

    return WorkspaceHealth(
        overall_status=status,
        health_score=round(score, 2),
        module_health_scores={c.module_id: c.score for c in checks},
        critical_issues=[f"[{c.module_id}] {e}" for c in checks for e in c.errors],
        recommendations=[f"[{c.module_id}] {w}" for c in checks for w in c.warnings],
        system_metrics=SystemMetrics(
            total_modules=len(checks),
            healthy_modules=by_status["healthy"],
            degraded_modules=by_status["degraded"],
            critical_modules=by_status["critical"],
            offline_modules=by_status["offline"],
        ),
    )


class WorkspaceService:
    def __init__(
        self,
        health: HealthChecker,
        recovery: ModuleRecoveryService,
        validator: ValidationEngine,
    ):
        self._health = health
        self._recovery = recovery
        self._validator = validator

    async def check_modules(self, module_ids: list[str] | None = None) -> list[ModuleHealthCheck]:
        selected = require_modules(module_ids)
        return list(await asyncio.gather(*(self._health.perform_health_check(m) for m in selected)))

    async def get_workspace_health(self, module_ids: list[str] | None = None) -> WorkspaceHealth:
        """Check every selected module in parallel and classify the result.

        Raises:
            InvalidArgumentError: Any id outside the module universe.
        """
        health = classify_workspace(await self.check_modules(module_ids))
        logger.info(
            "Workspace health: %s (%.1f over %d modules)",
            health.overall_status, health.health_score, health.system_metrics.total_modules,
        )
        return health

    async def get_workspace_status(self) -> WorkspaceStatusReport:
        checks = await self.check_modules()
        states = {s.module_id: s for s in await self._recovery.all_states()}

        entries = []
        for check in checks:
            state = states.get(check.module_id)
            entries.append(ModuleStatusEntry(
                module_id=check.module_id,
                layer=module_layer(check.module_id),
                status=check.status,
                score=check.score,
                can_build=check.build_health.can_build,
                recovery_phase=state.phase if state else None,
                recovery_step=state.step if state else None,
                recovery_strategy=state.recovery_strategy if state else None,
                build_success=state.build_status.build_success if state else None,
                last_updated=state.last_updated if state else None,
            ))

        return WorkspaceStatusReport(
            health=classify_workspace(checks),
            modules=entries,
            build_health=BuildHealthCounts(
                can_build=sum(1 for c in checks if c.build_health.can_build),
                last_build_success=sum(1 for c in checks if c.build_health.last_build_success),
                dependencies_resolved=sum(
                    1 for c in checks if c.build_health.dependencies_resolved
                ),
            ),
            modules_in_recovery=sum(
                1 for s in states.values() if s.step not in ("initialized", "completed")
            ),
        )

    async def build_workspace(
        self,
        module_ids: list[str] | None = None,
        parallel: bool = True,
        force: bool = False,
    ) -> WorkspaceBuildResult:
        """Build tier by tier (concurrent within a tier) or one module at a time.

        A module that is not buildable (and ``force`` is false) is recorded
        as a failed build; the rest of the workspace still builds.
        """
        selected = require_modules(module_ids)
        tiers = group_by_tier(selected)
        if not parallel:
            tiers = [[m] for tier in tiers for m in tier]

        reports: dict[str, BuildReport] = {}

        async def build(module_id: str) -> Receipt:
            try:
                report = await self._recovery.build_module(module_id, force=force)
            except FailedPreconditionError as e:
                report = BuildReport(module_id=module_id, build_success=False, errors=[e.message])
            reports[module_id] = report
            if report.build_success:
                return Receipt.success(adapter="engine", action_id=f"build:{module_id}")
            return Receipt.failure(
                adapter="engine", action_id=f"build:{module_id}",
                error="; ".join(report.errors) or "build failed",
            )

        started = time.monotonic()
        schedule = await run_tiers(tiers, build)
        for module_id, receipt in schedule.receipts.items():
            if module_id not in reports:
                reports[module_id] = BuildReport(
                    module_id=module_id, build_success=False, errors=[receipt.error or ""],
                )

        result = WorkspaceBuildResult(
            strategy="parallel" if parallel else "sequential",
            force=force,
            tiers=tiers,
            results=reports,
            succeeded=[m for m in selected if reports[m].build_success],
            failed=[m for m in selected if not reports[m].build_success],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Workspace build: %d succeeded, %d failed", len(result.succeeded), len(result.failed)
        )
        return result

    async def validate_workspace(self, module_ids: list[str] | None = None) -> WorkspaceValidation:
        summary = await self._validator.validate_modules(module_ids)
        health = await self.get_workspace_health(module_ids)

        recommendations = list(summary.recommendations)
        if summary.invalid_modules:
            recommendations.append(
                f"{summary.invalid_modules} module(s) failed validation; "
                "run module recovery on them before a full session"
            )
        if health.overall_status != "healthy":
            recommendations.append(
                f"Workspace health is {health.overall_status} "
                f"({health.health_score}); start a recovery session"
            )
        return WorkspaceValidation(
            validation=summary, health=health, recommendations=recommendations,
        )

    async def reset_workspace(
        self,
        module_ids: list[str] | None = None,
        confirmation: bool = False,
    ) -> WorkspaceReset:
        """Re-initialize recovery state for the selected modules.

        Raises:
            FailedPreconditionError: ``confirmation`` is not true.
        """
        selected = require_modules(module_ids)
        if not confirmation:
            raise FailedPreconditionError(
                "Workspace reset requires explicit confirmation. "
                "Set confirmation=true to proceed."
            )
        states = [await self._recovery.reset_module(m) for m in selected]
        logger.warning("Workspace reset: %s", ", ".join(selected))
        return WorkspaceReset(reset_modules=selected, states=states)
