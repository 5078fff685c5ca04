"""
Health checker — point-in-time health assessment of one module.

Scoring starts at 100 and subtracts for each problem found:

    module directory missing        score 0, offline
    last build failed               -40
    never built                     -20
    tests failing                   -30
    tests not configured            -15
    missing dependencies            -25
    conflicted dependencies         -20
    inspector errors                -2 each (max -20)
    inspector warnings              -1 each (max -10)
    invalid manifest                -10
    no compiler configuration       -10

Status tiers: >=90 healthy, >=70 degraded, >=30 critical, else offline.

A module whose inspection raises is reported offline with score 0; the
exception never reaches the caller, so batch checks always complete.
"""

from __future__ import annotations

import logging

from modrecovery.adapters.base import ModuleInspector
from modrecovery.core.data.layers import require_module
from modrecovery.core.models.inspection import InspectionReport
from modrecovery.core.models.module import (
    BuildHealth,
    DependencyHealth,
    DependencyInfo,
    ModuleHealthCheck,
    ModuleStatus,
)
from modrecovery.core.services.dependencies import DependencyResolver

logger = logging.getLogger(__name__)

# ── Penalties ───────────────────────────────────────────────────

PENALTY_BUILD_FAILED = 40
PENALTY_NEVER_BUILT = 20
PENALTY_TESTS_FAILING = 30
PENALTY_TESTS_NOT_CONFIGURED = 15
PENALTY_MISSING_DEPS = 25
PENALTY_CONFLICTED_DEPS = 20
PENALTY_PER_ERROR, MAX_ERROR_PENALTY = 2, 20
PENALTY_PER_WARNING, MAX_WARNING_PENALTY = 1, 10
PENALTY_INVALID_MANIFEST = 10
PENALTY_NO_COMPILER_CONFIG = 10


def status_for_score(score: int) -> ModuleStatus:
    if score >= 90:
        return "healthy"
    if score >= 70:
        return "degraded"
    if score >= 30:
        return "critical"
    return "offline"


def assess(report: InspectionReport, dependencies: list[DependencyInfo]) -> ModuleHealthCheck:
    """Score an inspection report. Pure: same facts, same result."""
    if not report.exists:
        return ModuleHealthCheck(
            module_id=report.module_id,
            status="offline",
            score=0,
            errors=report.errors or [f"Module directory not found: {report.path}"],
            warnings=list(report.warnings),
        )

    dep_health = DependencyHealth.from_dependencies(dependencies)
    errors = list(report.errors) + list(report.build_errors)
    warnings = list(report.warnings)
    score = 100

    if report.last_build_success is False:
        score -= PENALTY_BUILD_FAILED
        errors.append("Last build failed")
    elif report.last_build_success is None:
        score -= PENALTY_NEVER_BUILT
        warnings.append("Module has never been built")

    if report.test_status == "failing":
        score -= PENALTY_TESTS_FAILING
        errors.append("Tests are failing")
    elif report.test_status == "not_configured":
        score -= PENALTY_TESTS_NOT_CONFIGURED
        warnings.append("No tests configured")

    if dep_health.missing:
        score -= PENALTY_MISSING_DEPS
        missing = [d.name for d in dependencies if d.status == "missing"]
        errors.append(f"Missing dependencies: {', '.join(missing)}")
    if dep_health.conflicted:
        score -= PENALTY_CONFLICTED_DEPS
        conflicted = [d.name for d in dependencies if d.conflicts]
        warnings.append(f"Conflicted dependencies: {', '.join(conflicted)}")

    inspector_errors = len(report.errors) + len(report.build_errors)
    score -= min(inspector_errors * PENALTY_PER_ERROR, MAX_ERROR_PENALTY)
    score -= min(len(report.warnings) * PENALTY_PER_WARNING, MAX_WARNING_PENALTY)

    if not report.manifest_valid:
        score -= PENALTY_INVALID_MANIFEST
        errors.append("package.json is missing or invalid")
    if report.compiler_config is None:
        score -= PENALTY_NO_COMPILER_CONFIG
        warnings.append("No compiler configuration found")

    score = max(0, min(100, score))
    build_health = BuildHealth(
        can_build=report.manifest_valid and report.has_build_script and dep_health.missing == 0,
        last_build_success=report.last_build_success,
        dependencies_resolved=dep_health.missing == 0,
        has_build_script=report.has_build_script,
        has_compiler_config=report.compiler_config is not None,
    )
    return ModuleHealthCheck(
        module_id=report.module_id,
        status=status_for_score(score),
        score=score,
        build_health=build_health,
        dependency_health=dep_health,
        errors=errors,
        warnings=warnings,
    )


class HealthChecker:
    """Runs inspections and scores them."""

    def __init__(self, inspector: ModuleInspector, resolver: DependencyResolver):
        self._inspector = inspector
        self._resolver = resolver

    async def perform_health_check(self, module_id: str) -> ModuleHealthCheck:
        """Assess one module.

        Raises:
            InvalidArgumentError: Unknown module id. Nothing else escapes.
        """
        require_module(module_id)
        try:
            report = await self._inspector.inspect(module_id)
            dependencies = await self._resolver.analyze_report(report)
        except Exception as e:
            logger.warning("Health check for %s failed: %s", module_id, e)
            return ModuleHealthCheck.offline(module_id, f"Health check failed: {e}")

        check = assess(report, dependencies)
        logger.debug("Health %s: %s (%d)", module_id, check.status, check.score)
        return check
