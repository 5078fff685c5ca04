"""
Module recovery — per-module recovery state and the actions that change it.

Each module has at most one RecoveryState in the state store. It is
created by ``initialize_module_recovery`` and overwritten by every later
action; nothing is versioned.

Single-module recovery runs four steps in order:

    stabilize → resolve dependencies → build → validate

A failing step stops the sequence, marks the build unsuccessful with the
step's errors, and returns a partial progress object. Nothing is raised:
retrying is the caller's decision.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from modrecovery.core.data.layers import module_layer, require_module
from modrecovery.core.engine.executor import ActionDispatcher
from modrecovery.core.errors import FailedPreconditionError, InternalError
from modrecovery.core.models.action import Capability, Receipt
from modrecovery.core.models.commands import (
    BuildAction,
    BuildResult,
    InitializeAction,
    InitializeResult,
    RecoverAction,
    RecoverResult,
    ResetAction,
    ResetResult,
    ValidateAction,
    ValidateResult,
)
from modrecovery.core.models.recovery import (
    BuildReport,
    BuildStatus,
    RecoveryProgress,
    RecoveryState,
    RecoveryStrategy,
)
from modrecovery.core.models.validation import ValidationResult
from modrecovery.core.observability.metrics import MetricsRegistry
from modrecovery.core.persistence.store import KeyValueStore
from modrecovery.core.services.dependencies import DependencyResolver
from modrecovery.core.services.health import HealthChecker
from modrecovery.core.services.validation import ValidationEngine

logger = logging.getLogger(__name__)

RECOVERY_STEPS = ("stabilization", "dependency-resolution", "build-recovery", "validation")


def strategy_for(module_id: str) -> RecoveryStrategy:
    """Foundation layers are repaired in place; upper layers are rebuilt."""
    return "repair" if module_layer(module_id) <= 2 else "rebuild"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ModuleRecoveryService:
    def __init__(
        self,
        store: KeyValueStore[RecoveryState],
        health: HealthChecker,
        resolver: DependencyResolver,
        validator: ValidationEngine,
        dispatcher: ActionDispatcher,
        metrics: MetricsRegistry | None = None,
    ):
        self._store = store
        self._health = health
        self._resolver = resolver
        self._validator = validator
        self._dispatcher = dispatcher
        self._metrics = metrics

    @property
    def dispatcher(self) -> ActionDispatcher:
        return self._dispatcher

    # ── State ───────────────────────────────────────────────────

    async def initialize_module_recovery(self, module_id: str) -> RecoveryState:
        """Create (or overwrite) the module's state at phase 0."""
        require_module(module_id)
        state = RecoveryState(
            module_id=module_id,
            phase=0,
            step="initialized",
            recovery_strategy=strategy_for(module_id),
            build_status=BuildStatus(),
        )
        await self._store.set(module_id, state)
        logger.info("Recovery initialized for %s (%s)", module_id, state.recovery_strategy)
        return state

    async def get_recovery_state(self, module_id: str) -> RecoveryState | None:
        require_module(module_id)
        return await self._store.get(module_id)

    async def all_states(self) -> list[RecoveryState]:
        return await self._store.values()

    async def _update(self, module_id: str, fn: Callable[[RecoveryState], None]) -> RecoveryState:
        def apply(state: RecoveryState) -> None:
            fn(state)
            state.touch()

        updated = await self._store.update(module_id, apply)
        if updated is None:
            await self._store.add(
                module_id,
                RecoveryState(module_id=module_id, recovery_strategy=strategy_for(module_id)),
            )
            updated = await self._store.update(module_id, apply)
        if updated is None:
            raise InternalError(f"Recovery state for {module_id} vanished during update")
        return updated

    # ── Steps ───────────────────────────────────────────────────

    async def stabilize(self, module_id: str, phase: int | None = 1) -> Receipt:
        require_module(module_id)
        receipt = await self._dispatcher.run_module_action(module_id, Capability.STABILIZE)
        await self._update(module_id, _step_applier("stabilization", phase, receipt))
        return receipt

    async def resolve_dependencies(self, module_id: str, phase: int | None = 2) -> Receipt:
        """Install, then re-walk the graph; unresolved dependencies fail the step."""
        require_module(module_id)
        receipt = await self._dispatcher.run_module_action(module_id, Capability.INSTALL)
        dependencies = None
        if receipt.settled_ok:
            try:
                dependencies = await self._resolver.analyze_dependencies(module_id)
            except Exception as e:
                receipt = Receipt.failure(
                    adapter=receipt.adapter,
                    action_id=receipt.action_id,
                    error=f"Dependency analysis failed: {e}",
                )
            else:
                missing = [d.name for d in dependencies if d.status == "missing"]
                if missing:
                    receipt = Receipt.failure(
                        adapter=receipt.adapter,
                        action_id=receipt.action_id,
                        error=f"Unresolved dependencies: {', '.join(missing)}",
                        metadata={"missing": missing},
                    )

        apply_step = _step_applier("dependency-resolution", phase, receipt)

        def apply(state: RecoveryState) -> None:
            apply_step(state)
            if dependencies is not None:
                state.dependencies = dependencies

        await self._update(module_id, apply)
        return receipt

    async def run_build(self, module_id: str, phase: int | None = 3) -> BuildReport:
        """Build without a buildability check (phase 3, recovery sequence)."""
        require_module(module_id)

        def start(state: RecoveryState) -> None:
            state.build_status.is_building = True

        await self._update(module_id, start)
        try:
            receipt = await self._dispatcher.run_module_action(module_id, Capability.BUILD)
        except Exception as e:
            receipt = Receipt.failure(
                adapter="engine", action_id=f"module:{module_id}:build", error=str(e)
            )

        report = BuildReport(
            module_id=module_id,
            build_success=receipt.settled_ok,
            duration_ms=receipt.duration_ms,
            errors=[receipt.error] if receipt.failed and receipt.error else [],
            skipped=receipt.status == "skipped",
        )
        apply_step = _step_applier("build-recovery", phase, receipt)

        def finish(state: RecoveryState) -> None:
            apply_step(state)
            state.build_status = BuildStatus(
                is_building=False,
                build_success=report.build_success,
                build_errors=report.errors,
                last_build_time=report.build_time,
            )

        await self._update(module_id, finish)
        return report

    async def build_module(self, module_id: str, force: bool = False) -> BuildReport:
        """Build one module on request.

        Raises:
            FailedPreconditionError: The module is not buildable and
                ``force`` is false.
        """
        require_module(module_id)
        check = await self._health.perform_health_check(module_id)
        if not check.build_health.can_build and not force:
            raise FailedPreconditionError(
                f"Module {module_id} cannot be built in its current state. "
                "Use force=true to override.",
                details={"module_id": module_id, "errors": check.errors},
            )
        return await self.run_build(module_id, phase=None)

    async def validate(self, module_id: str, phase: int | None = 5) -> ValidationResult:
        """Validate and remember the result on the module's state."""
        result = await self._validator.validate_module(module_id)

        def apply(state: RecoveryState) -> None:
            state.validation = result
            state.step = "validation"
            if phase is not None:
                state.phase = phase

        await self._update(module_id, apply)
        return result

    # ── Single-module recovery ──────────────────────────────────

    async def execute_recovery(self, module_id: str) -> RecoveryProgress:
        require_module(module_id)
        if await self._store.get(module_id) is None:
            await self.initialize_module_recovery(module_id)

        before = await self._health.perform_health_check(module_id)
        progress = RecoveryProgress(module_id=module_id, total_steps=len(RECOVERY_STEPS))
        started = time.monotonic()

        steps: list[tuple[str, Callable[[], Any]]] = [
            ("stabilization", lambda: self.stabilize(module_id)),
            ("dependency-resolution", lambda: self.resolve_dependencies(module_id)),
            ("build-recovery", lambda: self.run_build(module_id)),
            ("validation", lambda: self.validate(module_id)),
        ]
        for name, run in steps:
            progress.current_step = name
            progress.phase = name
            try:
                outcome = await run()
                error = _step_error(outcome)
            except Exception as e:
                logger.warning("Recovery step %s failed for %s: %s", name, module_id, e)
                error = str(e)

            if error:
                progress.errors.append(f"{name}: {error}")
                break
            progress.steps_completed += 1

        after = await self._health.perform_health_check(module_id)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        succeeded = progress.steps_completed == len(RECOVERY_STEPS)

        def finish(state: RecoveryState) -> None:
            state.metrics.attempts += 1
            state.metrics.steps_succeeded += progress.steps_completed
            state.metrics.steps_failed += 0 if succeeded else 1
            state.metrics.last_duration_ms = elapsed_ms
            state.metrics.health_before = before.score
            state.metrics.health_after = after.score
            if succeeded:
                state.step = "completed"
            else:
                state.step = "failed"
                state.build_status.build_success = False
                state.build_status.build_errors = list(progress.errors)

        await self._update(module_id, finish)

        progress.progress = round(100 * progress.steps_completed / len(RECOVERY_STEPS), 2)
        progress.end_time = _now_iso()
        if succeeded:
            progress.status = "success"
            progress.phase = "completed"
        else:
            progress.status = "partial" if progress.steps_completed else "error"
            progress.phase = "failed"
        progress.warnings.extend(after.warnings)
        if self._metrics is not None:
            self._metrics.counter("module_recoveries", status=progress.status).inc()
        logger.info(
            "Recovery of %s: %s (%d/%d steps, health %d → %d)",
            module_id, progress.status, progress.steps_completed,
            len(RECOVERY_STEPS), before.score, after.score,
        )
        return progress

    async def reset_module(self, module_id: str) -> RecoveryState:
        """Start over: fresh state, and close the module's circuit breakers."""
        state = await self.initialize_module_recovery(module_id)
        breakers = self._dispatcher.registry.circuit_breakers
        if breakers is not None:
            breakers.reset_module(module_id)
        return state

    # ── Commands ────────────────────────────────────────────────

    async def apply_action(self, action: Any) -> Any:
        """Dispatch one module command to its operation."""
        module_id = require_module(action.module_id)

        if isinstance(action, InitializeAction):
            state = await self.initialize_module_recovery(module_id)
            return InitializeResult(
                module_id=module_id, state=state,
                message=f"Recovery initialized for {module_id}",
            )
        if isinstance(action, RecoverAction):
            progress = await self.execute_recovery(module_id)
            return RecoverResult(
                module_id=module_id,
                success=progress.status == "success",
                progress=progress,
                message=f"Recovery of {module_id}: {progress.status}",
            )
        if isinstance(action, ValidateAction):
            validation = await self.validate(module_id, phase=None)
            return ValidateResult(
                module_id=module_id,
                success=validation.is_valid,
                validation=validation,
                message=f"Validation score {validation.score}",
            )
        if isinstance(action, ResetAction):
            state = await self.reset_module(module_id)
            return ResetResult(module_id=module_id, state=state, message=f"{module_id} reset")
        if isinstance(action, BuildAction):
            report = await self.build_module(module_id, force=action.force)
            return BuildResult(
                module_id=module_id,
                success=report.build_success,
                report=report,
                message="Build succeeded" if report.build_success else "Build failed",
            )
        raise TypeError(f"Unsupported module action: {type(action).__name__}")


def _step_applier(
    step: str, phase: int | None, receipt: Receipt,
) -> Callable[[RecoveryState], None]:
    def apply(state: RecoveryState) -> None:
        state.step = step  # type: ignore[assignment]
        if phase is not None:
            state.phase = phase
        if receipt.failed:
            state.build_status.build_success = False
            state.build_status.build_errors = [receipt.error or f"{step} failed"]

    return apply


def _step_error(outcome: Any) -> str | None:
    if isinstance(outcome, Receipt):
        return (outcome.error or "failed") if outcome.failed else None
    if isinstance(outcome, BuildReport):
        return None if outcome.build_success else "; ".join(outcome.errors) or "build failed"
    if isinstance(outcome, ValidationResult):
        return None if outcome.is_valid else "; ".join(outcome.errors) or "validation failed"
    return None
