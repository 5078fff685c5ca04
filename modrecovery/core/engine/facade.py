"""
Recovery operations — the engine's external interface.

Every request the CLI and HTTP API can make is one async method here.
Methods validate their arguments, delegate to the orchestrator and
services, and return models or plain dicts ready for JSON.

``build_engine`` wires a complete engine from an EngineConfig:

    config → inspector + adapter registry → resolver / health / validation
           → module recovery → workspace → orchestrator + health monitor
           → RecoveryOperations
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from modrecovery.adapters.base import BUILDER, TEST_RUNNER, Adapter, ModuleInspector
from modrecovery.adapters.mock import MockAdapter, MockInspector
from modrecovery.adapters.registry import AdapterRegistry
from modrecovery.adapters.shell.command import ShellCommandAdapter
from modrecovery.adapters.shell.filesystem import FilesystemInspector
from modrecovery.core.data.layers import MODULE_IDS, get_module_layer_info, require_module
from modrecovery.core.data.phases import PHASES, get_phase_definition, phase_dependencies
from modrecovery.core.engine.executor import ActionDispatcher
from modrecovery.core.engine.leases import SessionLeases
from modrecovery.core.engine.orchestrator import PhaseOrchestrator
from modrecovery.core.engine.registry import SessionRegistry
from modrecovery.core.errors import InvalidArgumentError
from modrecovery.core.models.commands import parse_module_action
from modrecovery.core.models.config import EngineConfig
from modrecovery.core.models.module import DependencyHealth, ModuleHealthCheck
from modrecovery.core.models.monitoring import MonitoringReport, MonitorStatus
from modrecovery.core.models.recovery import BuildReport, RecoveryProgress, RecoveryState
from modrecovery.core.models.session import (
    PhaseOptions,
    PhaseResult,
    PhaseStatusReport,
    RecoverySession,
    SessionProgress,
    WorkspaceHealth,
)
from modrecovery.core.models.validation import ValidationResult, ValidationSummary
from modrecovery.core.models.workspace import (
    WorkspaceBuildResult,
    WorkspaceReset,
    WorkspaceStatusReport,
    WorkspaceValidation,
)
from modrecovery.core.observability.health import SystemHealth, check_system_health
from modrecovery.core.observability.metrics import MetricsRegistry
from modrecovery.core.persistence.audit import AuditWriter
from modrecovery.core.persistence.store import InMemoryStore
from modrecovery.core.reliability.circuit_breaker import CircuitBreakerRegistry
from modrecovery.core.services.dependencies import DependencyResolver, layer_violations
from modrecovery.core.services.health import HealthChecker
from modrecovery.core.services.module_recovery import ModuleRecoveryService
from modrecovery.core.services.monitoring import HealthMonitor
from modrecovery.core.services.validation import ValidationEngine
from modrecovery.core.services.workspace import WorkspaceService

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All wired components. Tests reach in here; callers use ``operations``."""

    config: EngineConfig
    inspector: ModuleInspector
    adapters: AdapterRegistry
    breakers: CircuitBreakerRegistry
    metrics: MetricsRegistry
    resolver: DependencyResolver
    health: HealthChecker
    validator: ValidationEngine
    recovery: ModuleRecoveryService
    workspace: WorkspaceService
    orchestrator: PhaseOrchestrator
    monitor: HealthMonitor
    operations: RecoveryOperations


class RecoveryOperations:
    def __init__(
        self,
        orchestrator: PhaseOrchestrator,
        recovery: ModuleRecoveryService,
        workspace: WorkspaceService,
        health: HealthChecker,
        resolver: DependencyResolver,
        validator: ValidationEngine,
        adapters: AdapterRegistry,
        metrics: MetricsRegistry,
        scope: str = "@workspace",
        monitor: HealthMonitor | None = None,
    ):
        self._orchestrator = orchestrator
        self._recovery = recovery
        self._workspace = workspace
        self._health = health
        self._resolver = resolver
        self._validator = validator
        self._adapters = adapters
        self._metrics = metrics
        self._scope = scope
        self._monitor = monitor or HealthMonitor(workspace, recovery, metrics=metrics)

    # ── Workspace ───────────────────────────────────────────────

    async def get_workspace_health(self, module_ids: list[str] | None = None) -> WorkspaceHealth:
        return await self._workspace.get_workspace_health(module_ids)

    async def get_workspace_status(self) -> WorkspaceStatusReport:
        return await self._workspace.get_workspace_status()

    async def build_workspace(
        self,
        module_ids: list[str] | None = None,
        parallel: bool = True,
        force: bool = False,
    ) -> WorkspaceBuildResult:
        return await self._workspace.build_workspace(module_ids, parallel=parallel, force=force)

    async def validate_workspace(self, module_ids: list[str] | None = None) -> WorkspaceValidation:
        return await self._workspace.validate_workspace(module_ids)

    async def reset_workspace(
        self, module_ids: list[str] | None = None, confirmation: bool = False,
    ) -> WorkspaceReset:
        return await self._workspace.reset_workspace(module_ids, confirmation=confirmation)

    # ── Sessions ────────────────────────────────────────────────

    async def initialize_recovery_session(
        self, session_id: str, target_modules: list[str] | None = None,
    ) -> RecoverySession:
        return await self._orchestrator.initialize_recovery_session(session_id, target_modules)

    async def execute_recovery_session(self, session_id: str) -> RecoverySession:
        return await self._orchestrator.execute_recovery_session(session_id)

    async def get_recovery_session(self, session_id: str) -> RecoverySession:
        return await self._orchestrator.get_recovery_session(session_id)

    async def get_recovery_progress(self, session_id: str) -> SessionProgress:
        return await self._orchestrator.get_recovery_progress(session_id)

    async def cancel_recovery_session(self, session_id: str) -> dict[str, Any]:
        session = await self._orchestrator.cancel_recovery_session(session_id)
        return {
            "session_id": session.session_id,
            "status": session.status,
            "cancelled": session.status == "cancelled",
        }

    async def get_active_sessions(self) -> list[RecoverySession]:
        return await self._orchestrator.get_active_sessions()

    async def get_session_audit(self, session_id: str) -> dict[str, Any]:
        entries = await self._orchestrator.get_session_audit(session_id)
        return {
            "session_id": session_id,
            "entries": [e.model_dump(mode="json") for e in entries],
            "count": len(entries),
        }

    # ── Modules ─────────────────────────────────────────────────

    async def validate_module(self, module_id: str) -> ValidationResult:
        return await self._validator.validate_module(module_id)

    async def validate_modules(self, module_ids: list[str] | None = None) -> ValidationSummary:
        return await self._validator.validate_modules(module_ids)

    async def get_module_health(self, module_id: str) -> ModuleHealthCheck:
        return await self._health.perform_health_check(module_id)

    async def recover_module(self, module_id: str) -> RecoveryProgress:
        return await self._recovery.execute_recovery(module_id)

    async def get_modules(self) -> dict[str, Any]:
        checks = await self._workspace.check_modules()
        states = {s.module_id: s for s in await self._recovery.all_states()}
        modules = [
            _module_view(check, states.get(check.module_id)) for check in checks
        ]
        by_status = {
            status: sum(1 for c in checks if c.status == status)
            for status in ("healthy", "degraded", "critical", "offline")
        }
        return {
            "modules": modules,
            "summary": {
                "total": len(checks),
                **by_status,
                "average_score": round(sum(c.score for c in checks) / len(checks), 2),
                "in_recovery": len(states),
            },
        }

    async def get_module(self, module_id: str) -> dict[str, Any]:
        require_module(module_id)
        check = await self._health.perform_health_check(module_id)
        state = await self._recovery.get_recovery_state(module_id)
        view = _module_view(check, state)
        view["health"] = check.model_dump(mode="json")
        view["recovery_state"] = state.model_dump(mode="json") if state else None
        return view

    async def update_module(self, module_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Apply a module command (initialize, recover, validate, reset, build)."""
        require_module(module_id)
        action = parse_module_action({**payload, "module_id": module_id})
        result = await self._recovery.apply_action(action)
        return result.model_dump(mode="json")

    async def build_module(self, module_id: str, force: bool = False) -> BuildReport:
        return await self._recovery.build_module(module_id, force=force)

    async def get_module_dependencies(self, module_id: str) -> dict[str, Any]:
        require_module(module_id)
        dependencies = await self._resolver.analyze_dependencies(module_id)
        declared = {d.name: "" for d in dependencies if d.is_direct}
        return {
            "module_id": module_id,
            "layer_info": get_module_layer_info(module_id).to_dict(),
            "dependencies": [d.model_dump(mode="json") for d in dependencies],
            "summary": DependencyHealth.from_dependencies(dependencies).model_dump(),
            "direct": sum(1 for d in dependencies if d.is_direct),
            "transitive": sum(1 for d in dependencies if not d.is_direct),
            "layer_violations": layer_violations(module_id, declared, self._scope),
        }

    async def get_module_build_status(self, module_id: str) -> dict[str, Any]:
        require_module(module_id)
        check = await self._health.perform_health_check(module_id)
        state = await self._recovery.get_recovery_state(module_id)
        return {
            "module_id": module_id,
            "build_health": check.build_health.model_dump(),
            "build_status": state.build_status.model_dump() if state else None,
            "can_build": check.build_health.can_build,
            "last_build_time": state.build_status.last_build_time if state else None,
            "errors": check.errors,
        }

    # ── Phases ──────────────────────────────────────────────────

    async def get_phases(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in PHASES.values()]

    async def get_phase(self, phase_number: Any) -> dict[str, Any]:
        return get_phase_definition(phase_number).to_dict()

    async def execute_phase(
        self,
        phase_number: Any,
        session_id: str,
        options: PhaseOptions | dict[str, Any] | None = None,
    ) -> PhaseResult:
        if isinstance(options, dict):
            try:
                options = PhaseOptions.model_validate(options)
            except ValidationError as e:
                raise InvalidArgumentError(f"Invalid phase options: {e}") from e
        elif options is not None and not isinstance(options, PhaseOptions):
            raise InvalidArgumentError("options must be an object")
        return await self._orchestrator.execute_phase(phase_number, session_id, options)

    async def get_phase_status(self, session_id: str) -> PhaseStatusReport:
        return await self._orchestrator.get_phase_status(session_id)

    async def skip_phase(
        self,
        phase_number: Any,
        session_id: str,
        reason: str | None,
        confirmation: bool = False,
    ) -> PhaseResult:
        return await self._orchestrator.skip_phase(phase_number, session_id, reason, confirmation)

    async def get_phase_dependencies(self, phase_number: Any) -> dict[str, Any]:
        return phase_dependencies(phase_number)

    # ── Monitoring ──────────────────────────────────────────────

    async def monitoring_status(self) -> MonitorStatus:
        return self._monitor.status()

    async def run_health_check(self) -> MonitoringReport:
        """One monitoring pass: health, alert rules, and auto-recovery if enabled."""
        return await self._monitor.check_now()

    async def start_monitoring(self) -> dict[str, Any]:
        started = await self._monitor.start()
        return {"changed": started, **self._monitor.status().model_dump(mode="json")}

    async def stop_monitoring(self) -> dict[str, Any]:
        stopped = await self._monitor.stop()
        return {"changed": stopped, **self._monitor.status().model_dump(mode="json")}

    async def get_monitored_module(self, module_id: str) -> ModuleHealthCheck | None:
        return self._monitor.get_module_status(module_id)

    # ── Engine ──────────────────────────────────────────────────

    async def engine_health(self) -> SystemHealth:
        return check_system_health(
            cb_registry=self._adapters.circuit_breakers,
            adapter_status=self._adapters.adapter_status(),
            sessions=await self._orchestrator.get_active_sessions(),
            mock_mode=self._adapters.mock_mode,
        )

    def metrics(self) -> dict[str, Any]:
        return self._metrics.to_dict()


def _module_view(check: ModuleHealthCheck, state: RecoveryState | None) -> dict[str, Any]:
    info = get_module_layer_info(check.module_id)
    return {
        "module_id": check.module_id,
        "layer": info.layer,
        "tier": info.tier,
        "status": check.status,
        "score": check.score,
        "can_build": check.build_health.can_build,
        "errors": len(check.errors),
        "warnings": len(check.warnings),
        "recovery_phase": state.phase if state else None,
        "recovery_step": state.step if state else None,
    }


def build_engine(
    config: EngineConfig | None = None,
    mock: bool = False,
    inspector: ModuleInspector | None = None,
    adapter: Adapter | None = None,
) -> Engine:
    """Wire a complete engine.

    Args:
        config: Engine configuration (defaults if None).
        mock: Use mock collaborators: every module inspects healthy and
            every action succeeds unless ``inspector``/``adapter`` say otherwise.
        inspector: Inspector override.
        adapter: Adapter serving both the builder and test-runner roles.
    """
    config = config or EngineConfig()
    scope = config.workspace.package_scope
    metrics = MetricsRegistry()
    breakers = CircuitBreakerRegistry.from_config(config.circuit_breaker)

    if inspector is None:
        inspector = MockInspector(scope=scope) if mock else FilesystemInspector(config)

    adapters = AdapterRegistry(circuit_breakers=breakers)
    if adapter is not None:
        adapters.set_mock_mode(True, adapter)
    elif mock:
        adapters.set_mock_mode(True, MockAdapter("mock"))
    adapters.register(ShellCommandAdapter(BUILDER))
    adapters.register(ShellCommandAdapter(TEST_RUNNER))

    resolver = DependencyResolver(inspector, scope=scope, max_depth=config.max_dependency_depth)
    health = HealthChecker(inspector, resolver)
    validator = ValidationEngine(inspector, resolver, scope=scope)
    dispatcher = ActionDispatcher(adapters, config, metrics)
    recovery = ModuleRecoveryService(
        InMemoryStore(), health, resolver, validator, dispatcher, metrics,
    )
    workspace = WorkspaceService(health, recovery, validator)

    audit = None
    if config.audit.enabled:
        audit_path = Path(config.audit.path)
        if not audit_path.is_absolute():
            audit_path = Path(config.workspace.root) / audit_path
        audit = AuditWriter(audit_path)

    orchestrator = PhaseOrchestrator(
        SessionRegistry(InMemoryStore()),
        recovery,
        workspace,
        leases=SessionLeases(),
        audit=audit,
        metrics=metrics,
    )
    monitor = HealthMonitor(workspace, recovery, config.monitoring, metrics=metrics)
    operations = RecoveryOperations(
        orchestrator, recovery, workspace, health, resolver, validator,
        adapters, metrics, scope=scope, monitor=monitor,
    )
    logger.debug(
        "Engine built (mock=%s, modules=%d, root=%s)",
        mock, len(MODULE_IDS), config.workspace.root,
    )
    return Engine(
        config=config,
        inspector=inspector,
        adapters=adapters,
        breakers=breakers,
        metrics=metrics,
        resolver=resolver,
        health=health,
        validator=validator,
        recovery=recovery,
        workspace=workspace,
        orchestrator=orchestrator,
        monitor=monitor,
        operations=operations,
    )
