"""
Phase orchestrator — the recovery session state machine.

States:
    pending → running → completed | failed | cancelled

A session runs five phases strictly in order:

    1  Emergency Stabilization    critical modules, concurrently
    2  Dependency Resolution      tier by tier, concurrent within a tier
    3  Build Recovery             tier by tier, concurrent within a tier
    4  Integration Testing        test categories, one after another
    5  Validation and Completion  validation steps, one after another

Rules:
    - current_phase never regresses; a phase completes at most once
    - a phase runs only after every phase it depends on has completed
    - a phase that raises is reported failed and stays retryable
    - cancellation is cooperative: checked between phases, and a
      cancelled session is never moved to another status
    - one executor per session at a time (session lease)
    - a single execute_phase call leaves the session status as it found it
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from modrecovery.core.data.layers import group_by_tier, require_modules
from modrecovery.core.data.phases import (
    EXECUTION_ORDER,
    PHASES,
    TOTAL_PHASES,
    parse_phase_number,
    phase_name,
)
from modrecovery.core.engine.leases import SessionLeases
from modrecovery.core.engine.registry import SessionRegistry, require_session_id
from modrecovery.core.engine.scheduler import ScheduleReport, run_concurrently, run_tiers
from modrecovery.core.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    PhaseExecutionError,
)
from modrecovery.core.models.action import Receipt
from modrecovery.core.models.session import (
    PhaseOptions,
    PhaseResult,
    PhaseStatusEntry,
    PhaseStatusReport,
    RecoverySession,
    SessionProgress,
)
from modrecovery.core.observability.metrics import MetricsRegistry
from modrecovery.core.persistence.audit import AuditEntry, AuditWriter
from modrecovery.core.services.module_recovery import ModuleRecoveryService
from modrecovery.core.services.validation import summarize
from modrecovery.core.services.workspace import WorkspaceService

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class PhaseOutcome:
    """What a phase body hands back when it completes."""

    results: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


PhaseBody = Callable[[RecoverySession, PhaseOptions], Awaitable[PhaseOutcome]]


class PhaseOrchestrator:
    def __init__(
        self,
        sessions: SessionRegistry,
        recovery: ModuleRecoveryService,
        workspace: WorkspaceService,
        leases: SessionLeases | None = None,
        audit: AuditWriter | None = None,
        metrics: MetricsRegistry | None = None,
    ):
        self._sessions = sessions
        self._recovery = recovery
        self._workspace = workspace
        self._leases = leases or SessionLeases()
        self._audit = audit
        self._metrics = metrics or MetricsRegistry()
        self._bodies: dict[int, PhaseBody] = {
            1: self._phase_stabilization,
            2: self._phase_dependency_resolution,
            3: self._phase_build_recovery,
            4: self._phase_integration_testing,
            5: self._phase_validation,
        }

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def leases(self) -> SessionLeases:
        return self._leases

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize_recovery_session(
        self,
        session_id: str,
        target_modules: list[str] | None = None,
    ) -> RecoverySession:
        """Create a pending session over ``target_modules`` (default: all).

        Raises:
            InvalidArgumentError: Missing or duplicate session id, unknown
                or empty module selection.
        """
        session_id = require_session_id(session_id)
        selected = require_modules(target_modules)
        if not selected:
            raise InvalidArgumentError("targetModules must not be empty")
        if await self._sessions.exists(session_id):
            raise InvalidArgumentError(
                f"Recovery session {session_id} already exists",
                details={"session_id": session_id},
            )

        health = await self._workspace.get_workspace_health(selected)
        session = RecoverySession(
            session_id=session_id,
            target_modules=selected,
            workspace_health=health,
        )
        for module_id in selected:
            try:
                await self._recovery.initialize_module_recovery(module_id)
            except Exception as e:
                session.errors.append(
                    f"Failed to initialize recovery for module {module_id}: {e}"
                )

        await self._sessions.create(session)
        self._metrics.counter("sessions_created").inc()
        self._write_audit(session_id, "session_created", modules=selected)
        logger.info(
            "Recovery session %s created for %d modules (workspace %s)",
            session_id, len(selected), health.overall_status,
        )
        return session

    async def execute_recovery_session(self, session_id: str) -> RecoverySession:
        """Run every incomplete phase in order and return the final session.

        Completed and cancelled sessions are returned unchanged. A failed
        session is resumed from its first incomplete phase.

        Raises:
            NotFoundError: Unknown session.
            FailedPreconditionError: The session is already executing.
        """
        session = await self._sessions.require(session_id)
        if session.status in ("completed", "cancelled"):
            return session

        with self._leases.hold(session_id):
            session = await self._sessions.update(session_id, _start_running)
            if session.status != "running":
                return session

            self._write_audit(session_id, "session_started", modules=session.target_modules)
            running = self._metrics.gauge("sessions_running")
            running.inc()
            try:
                for number in EXECUTION_ORDER:
                    current = await self._sessions.require(session_id)
                    if current.status == "cancelled":
                        logger.info("Session %s cancelled before phase %d", session_id, number)
                        return current
                    if current.phase_progress[number].completed:
                        continue

                    result = await self._run_phase(number, session_id, PhaseOptions())
                    if not result.success:
                        # _run_phase has already recorded the error on the session
                        return await self._finish(session_id, "failed")
                return await self._finish(session_id, "completed")
            finally:
                running.dec()

    async def execute_phase(
        self,
        phase_number: Any,
        session_id: str,
        options: PhaseOptions | None = None,
    ) -> PhaseResult:
        """Run one phase of a session.

        Raises:
            InvalidArgumentError: Phase number outside 1..5.
            NotFoundError: Unknown session.
            FailedPreconditionError: Session cancelled or executing, phase
                already completed, or a dependency phase incomplete.
        """
        number = parse_phase_number(phase_number)
        session = await self._sessions.require(session_id)
        self._check_runnable(session, number)

        unmet = session.unmet_dependencies(number)
        if unmet:
            raise FailedPreconditionError(
                f"Phase {number} cannot be executed. Incomplete dependencies: "
                + ", ".join(f"Phase {d}" for d in unmet),
                details={"phase": number, "unmet_dependencies": unmet},
            )

        prior_status, prior_end = session.status, session.end_time
        with self._leases.hold(session_id):
            session = await self._sessions.update(session_id, _start_running)
            if session.status == "cancelled":
                raise _cancelled(session_id)

            try:
                result = await self._run_phase(number, session_id, options or PhaseOptions())
                if result.success:
                    current = await self._sessions.require(session_id)
                    if current.all_phases_completed:
                        await self._finish(session_id, "completed")
            finally:
                # a single phase leaves the session in the status it was in
                await self._sessions.update(session_id, _restore_status(prior_status, prior_end))
            return result

    async def skip_phase(
        self,
        phase_number: Any,
        session_id: str,
        reason: str | None,
        confirmation: bool = False,
    ) -> PhaseResult:
        """Mark a phase completed without running it.

        Raises:
            FailedPreconditionError: No confirmation, session cancelled,
                or phase already completed. Nothing is changed.
            InvalidArgumentError: No reason given.
        """
        number = parse_phase_number(phase_number)
        session = await self._sessions.require(session_id)
        if confirmation is not True:
            raise FailedPreconditionError(
                "Phase skipping requires explicit confirmation. "
                "Set confirmation=true to proceed.",
                details={"phase": number},
            )
        if not reason or not reason.strip():
            raise InvalidArgumentError("reason is required to skip a phase")
        self._check_runnable(session, number)
        if self._leases.is_held(session_id):
            raise FailedPreconditionError(
                f"Recovery session {session_id} is already executing",
                details={"session_id": session_id},
            )

        name = phase_name(number)
        warning = f"Phase {number} ({name}) was skipped: {reason}"

        def apply(s: RecoverySession) -> None:
            progress = s.phase_progress[number]
            if progress.completed:
                raise FailedPreconditionError(f"Phase {number} has already been completed")
            progress.started = True
            progress.completed = True
            progress.skipped = True
            progress.duration = 0
            s.warnings.append(warning)
            s.advance_to(number + 1)

        updated = await self._sessions.update(session_id, apply)
        logger.warning("Session %s: %s", session_id, warning)
        self._write_audit(session_id, "phase_skipped", phase=number, reason=reason)
        self._metrics.counter("phases_executed", phase=str(number), status="skipped").inc()

        if updated.all_phases_completed and updated.status in ("pending", "running", "failed"):
            await self._finish(session_id, "completed")

        now = _now().isoformat()
        return PhaseResult(
            session_id=session_id,
            phase=number,
            name=name,
            status="skipped",
            start_time=now,
            end_time=now,
            success=True,
            warnings=[warning],
            next_phase=number + 1 if number < TOTAL_PHASES else None,
        )

    async def cancel_recovery_session(self, session_id: str) -> RecoverySession:
        """Cancel a session. Completed phases are kept; cancelling twice is a no-op.

        Completed sessions are left as they are.
        """
        session = await self._sessions.require(session_id)
        if session.status in ("cancelled", "completed"):
            return session

        def apply(s: RecoverySession) -> None:
            if s.status in ("cancelled", "completed"):
                return
            s.status = "cancelled"
            s.end_time = _now().isoformat()

        updated = await self._sessions.update(session_id, apply)
        if updated.status == "cancelled" and session.status != "cancelled":
            self._write_audit(session_id, "session_cancelled", status="cancelled")
            self._metrics.counter("sessions_finished", status="cancelled").inc()
            logger.info("Recovery session %s cancelled", session_id)
        return updated

    # ── Projections ─────────────────────────────────────────────

    async def get_recovery_session(self, session_id: str) -> RecoverySession:
        return await self._sessions.require(session_id)

    async def get_active_sessions(self) -> list[RecoverySession]:
        """Every known session, terminal ones included."""
        return await self._sessions.all()

    async def get_session_audit(self, session_id: str) -> list[AuditEntry]:
        """Ledger entries for one session, oldest first. Empty when auditing is off."""
        await self._sessions.require(session_id)
        if self._audit is None:
            return []
        return await asyncio.to_thread(self._audit.read_all, session_id)

    async def get_recovery_progress(self, session_id: str) -> SessionProgress:
        session = await self._sessions.require(session_id)
        completed = session.completed_phases
        remaining = sum(
            p.estimated_duration for n, p in PHASES.items() if n not in completed
        )

        status_map = {
            "completed": "success",
            "failed": "error",
            "cancelled": "cancelled",
        }
        if session.status == "completed":
            current_step = "Recovery completed"
        elif session.status == "cancelled":
            current_step = "Recovery cancelled"
        else:
            current_step = f"Phase {session.current_phase}: {phase_name(session.current_phase)}"

        estimated_completion = None
        if session.status == "running":
            estimated_completion = (_now() + timedelta(milliseconds=remaining)).isoformat()

        return SessionProgress(
            session_id=session.session_id,
            phase=session.status,
            progress=round(len(completed) / TOTAL_PHASES * 100, 2),
            status=status_map.get(session.status, "in-progress"),
            start_time=session.start_time,
            estimated_completion=estimated_completion,
            estimated_remaining_time=0 if session.is_terminal else remaining,
            current_step=current_step,
            steps_completed=len(completed),
            total_steps=TOTAL_PHASES,
            errors=list(session.errors),
            warnings=list(session.warnings),
        )

    async def get_phase_status(self, session_id: str) -> PhaseStatusReport:
        session = await self._sessions.require(session_id)
        entries = []
        for number, definition in PHASES.items():
            progress = session.phase_progress[number]
            if progress.completed:
                status = "completed"
            elif progress.started:
                status = "in-progress"
            else:
                status = "pending"
            entries.append(PhaseStatusEntry(
                phase=number,
                name=definition.name,
                started=progress.started,
                completed=progress.completed,
                skipped=progress.skipped,
                duration=progress.duration,
                estimated_duration=definition.estimated_duration,
                status=status,
            ))

        completed = [e for e in entries if e.completed]
        return PhaseStatusReport(
            session_id=session_id,
            current_phase=session.current_phase,
            overall_progress=round(len(completed) / TOTAL_PHASES * 100, 2),
            phases=entries,
            summary={
                "total_phases": TOTAL_PHASES,
                "completed_phases": len(completed),
                "skipped_phases": sum(1 for e in entries if e.skipped),
                "pending_phases": sum(1 for e in entries if e.status == "pending"),
                "total_duration": sum(e.duration for e in entries),
                "estimated_remaining_time": sum(
                    e.estimated_duration for e in entries if not e.completed
                ),
            },
        )

    # ── Phase driver ────────────────────────────────────────────

    def _check_runnable(self, session: RecoverySession, number: int) -> None:
        if session.status == "cancelled":
            raise _cancelled(session.session_id)
        if session.phase_progress[number].completed:
            raise FailedPreconditionError(
                f"Phase {number} has already been completed",
                details={"phase": number},
            )

    async def _run_phase(
        self, number: int, session_id: str, options: PhaseOptions,
    ) -> PhaseResult:
        """Run a phase body and record the outcome. Never raises for body failures."""
        name = phase_name(number)

        def mark_started(s: RecoverySession) -> None:
            s.phase_progress[number].started = True

        session = await self._sessions.update(session_id, mark_started)
        started_at = _now()
        start = time.monotonic()
        logger.info("Session %s: phase %d (%s) started", session_id, number, name)

        try:
            outcome = await self._bodies[number](session, options)
        except Exception as e:
            duration = int((time.monotonic() - start) * 1000)
            if not isinstance(e, PhaseExecutionError):
                logger.exception("Phase %d of session %s raised", number, session_id)
            message = e.message if isinstance(e, PhaseExecutionError) else str(e)

            def record_failure(s: RecoverySession) -> None:
                s.errors.append(f"Phase {number} ({name}) failed: {message}")

            await self._sessions.update(session_id, record_failure)
            self._metrics.counter("phases_executed", phase=str(number), status="failed").inc()
            self._write_audit(
                session_id, "phase_failed", phase=number, duration_ms=duration, errors=[message],
            )
            logger.warning("Session %s: phase %d failed: %s", session_id, number, message)
            return PhaseResult(
                session_id=session_id,
                phase=number,
                name=name,
                status="failed",
                duration=duration,
                start_time=started_at.isoformat(),
                end_time=_now().isoformat(),
                success=False,
                errors=[message],
                phase_specific_results=getattr(e, "details", None) or None,
            )

        duration = int((time.monotonic() - start) * 1000)

        def record_success(s: RecoverySession) -> None:
            progress = s.phase_progress[number]
            if progress.completed:
                raise FailedPreconditionError(f"Phase {number} has already been completed")
            progress.completed = True
            progress.duration = duration
            s.advance_to(number + 1)
            s.errors.extend(outcome.errors)
            s.warnings.extend(outcome.warnings)

        await self._sessions.update(session_id, record_success)
        self._metrics.counter("phases_executed", phase=str(number), status="completed").inc()
        self._metrics.histogram("phase_duration_ms", phase=str(number)).observe(duration)
        self._write_audit(
            session_id, "phase_completed", phase=number, duration_ms=duration,
            errors=outcome.errors,
        )
        logger.info("Session %s: phase %d completed in %dms", session_id, number, duration)
        return PhaseResult(
            session_id=session_id,
            phase=number,
            name=name,
            status="completed",
            duration=duration,
            start_time=started_at.isoformat(),
            end_time=_now().isoformat(),
            success=True,
            errors=outcome.errors,
            warnings=outcome.warnings,
            phase_specific_results=outcome.results,
            next_phase=number + 1 if number < TOTAL_PHASES else None,
        )

    async def _finish(
        self, session_id: str, status: str, error: str | None = None,
    ) -> RecoverySession:
        """Move a session to a terminal status, unless it was cancelled meanwhile."""
        changed = False

        def apply(s: RecoverySession) -> None:
            nonlocal changed
            if s.status == "cancelled":
                return
            s.status = status  # type: ignore[assignment]
            s.end_time = _now().isoformat()
            if error:
                s.errors.append(error)
            changed = True

        session = await self._sessions.update(session_id, apply)
        if changed:
            self._metrics.counter("sessions_finished", status=status).inc()
            self._write_audit(
                session_id, "session_finished", status=status,
                errors=[error] if error else [],
            )
            log = logger.warning if status == "failed" else logger.info
            log("Recovery session %s %s", session_id, status)
        return session

    def _write_audit(self, session_id: str, event: str, **fields: Any) -> None:
        if self._audit is None:
            return
        modules = fields.pop("modules", [])
        self._audit.write(AuditEntry(
            session_id=session_id, event=event, modules_affected=modules, **fields,
        ))

    # ── Phase bodies ────────────────────────────────────────────

    def _module_failures(
        self, number: int, receipts: dict[str, Receipt], options: PhaseOptions,
    ) -> list[str]:
        failures = [f"[{m}] {r.error}" for m, r in receipts.items() if r.failed]
        if failures and options.halt_on_module_failure:
            raise PhaseExecutionError(
                number,
                f"{len(failures)} module action(s) failed: {'; '.join(failures)}",
                details={"failed": [m for m, r in receipts.items() if r.failed]},
            )
        return failures

    async def _phase_stabilization(
        self, session: RecoverySession, options: PhaseOptions,
    ) -> PhaseOutcome:
        critical = [m for m in PHASES[1].critical_modules if m in session.target_modules]
        receipts = await run_concurrently(
            critical, lambda m: self._recovery.stabilize(m, phase=1),
        )
        failures = self._module_failures(1, receipts, options)
        return PhaseOutcome(
            results={
                "critical_modules": critical,
                "stabilized": [m for m, r in receipts.items() if r.settled_ok],
                "failed": [m for m, r in receipts.items() if r.failed],
            },
            errors=failures,
        )

    async def _phase_dependency_resolution(
        self, session: RecoverySession, options: PhaseOptions,
    ) -> PhaseOutcome:
        tiers = group_by_tier(session.target_modules, PHASES[2].layer_order)
        report = await run_tiers(
            tiers, lambda m: self._recovery.resolve_dependencies(m, phase=2),
        )
        return self._tier_outcome(2, report, options)

    async def _phase_build_recovery(
        self, session: RecoverySession, options: PhaseOptions,
    ) -> PhaseOutcome:
        async def build(module_id: str) -> Receipt:
            report = await self._recovery.run_build(module_id, phase=3)
            if report.build_success:
                return Receipt.success(adapter="engine", action_id=f"build:{module_id}")
            return Receipt.failure(
                adapter="engine",
                action_id=f"build:{module_id}",
                error="; ".join(report.errors) or "build failed",
            )

        tiers = group_by_tier(session.target_modules, PHASES[3].build_order)
        report = await run_tiers(tiers, build)
        return self._tier_outcome(3, report, options)

    def _tier_outcome(
        self, number: int, report: ScheduleReport, options: PhaseOptions,
    ) -> PhaseOutcome:
        failures = self._module_failures(number, report.receipts, options)
        return PhaseOutcome(
            results={
                "tiers": report.tiers,
                "succeeded": report.succeeded_modules,
                "failed": report.failed_modules,
            },
            errors=failures,
        )

    async def _phase_integration_testing(
        self, session: RecoverySession, options: PhaseOptions,
    ) -> PhaseOutcome:
        results: dict[str, Any] = {}
        for category in PHASES[4].integration_tests:
            receipt = await self._recovery.dispatcher.run_integration(
                category, session.target_modules,
            )
            results[category] = receipt.status
            if receipt.failed:
                raise PhaseExecutionError(
                    4,
                    f"Integration tests failed: {category}: {receipt.error}",
                    details={"categories": results},
                )
        return PhaseOutcome(results={"categories": results})

    async def _phase_validation(
        self, session: RecoverySession, options: PhaseOptions,
    ) -> PhaseOutcome:
        session_id = session.session_id
        outcome = PhaseOutcome()
        steps = PHASES[5].validation_steps

        # module-validation
        validations = [await self._recovery.validate(m, phase=5) for m in session.target_modules]
        summary = summarize(validations)
        invalid = [v.module_id for v in validations if not v.is_valid]
        if invalid and options.halt_on_module_failure:
            raise PhaseExecutionError(5, f"Validation failed for: {', '.join(invalid)}")
        outcome.warnings.extend(
            f"[{v.module_id}] validation score {v.score}" for v in validations if not v.is_valid
        )

        # workspace-health-update
        health = await self._workspace.get_workspace_health(session.target_modules)

        def store_health(s: RecoverySession) -> None:
            s.workspace_health = health

        await self._sessions.update(session_id, store_health)

        # recovery-report-generation
        current = await self._sessions.require(session_id)
        states = {
            m: await self._recovery.get_recovery_state(m) for m in current.target_modules
        }
        report = {
            "session_id": session_id,
            "generated_at": _now().isoformat(),
            "target_modules": current.target_modules,
            "phases": {
                str(n): {"name": phase_name(n), **p.model_dump()}
                for n, p in current.phase_progress.items()
            },
            "workspace_health": {
                "overall_status": health.overall_status,
                "health_score": health.health_score,
                "before": {
                    "overall_status": session.workspace_health.overall_status,
                    "health_score": session.workspace_health.health_score,
                },
            },
            "validation": {
                "valid_modules": summary.valid_modules,
                "invalid_modules": summary.invalid_modules,
                "average_score": summary.average_score,
            },
            "modules": {
                m: {
                    "phase": s.phase,
                    "step": s.step,
                    "build_success": s.build_status.build_success,
                } if s else None
                for m, s in states.items()
            },
            "errors": list(current.errors),
            "warnings": list(current.warnings) + outcome.warnings,
            "recommendations": summary.recommendations,
        }

        def store_report(s: RecoverySession) -> None:
            s.report = report

        await self._sessions.update(session_id, store_report)

        outcome.results = {
            "steps": list(steps),
            "validation": {
                "valid_modules": summary.valid_modules,
                "invalid_modules": summary.invalid_modules,
                "average_score": summary.average_score,
            },
            "workspace_health": health.overall_status,
        }
        return outcome


def _start_running(session: RecoverySession) -> None:
    if session.status in ("pending", "failed"):
        session.status = "running"
        session.end_time = None


def _restore_status(
    status: str, end_time: str | None,
) -> Callable[[RecoverySession], None]:
    def apply(session: RecoverySession) -> None:
        if session.status == "running":
            session.status = status  # type: ignore[assignment]
            session.end_time = end_time

    return apply


def _cancelled(session_id: str) -> FailedPreconditionError:
    return FailedPreconditionError(
        f"Recovery session {session_id} has been cancelled",
        details={"session_id": session_id},
    )
