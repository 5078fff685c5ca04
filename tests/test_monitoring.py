"""
Tests for the health monitor — passes, alert rules, cooldown, auto-recovery, lifecycle.
"""

from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from modrecovery.adapters.mock import broken_report
from modrecovery.core.errors import InvalidArgumentError
from modrecovery.core.models.config import EngineConfig, MonitoringConfig
from modrecovery.core.models.module import BuildHealth, ModuleHealthCheck
from modrecovery.core.models.monitoring import AlertRule, default_alert_rules
from modrecovery.core.services.monitoring import HealthMonitor

BROKEN_AUTH_RULES = {"critical-health", "module-offline", "build-failed"}


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def make_monitor(engine, clock, **config) -> HealthMonitor:
    return HealthMonitor(
        engine.workspace,
        engine.recovery,
        MonitoringConfig(**config),
        metrics=engine.metrics,
        clock=clock,
    )


def _check(score: int, status: str, last_build_success: bool | None = True) -> ModuleHealthCheck:
    return ModuleHealthCheck(
        module_id="auth",
        score=score,
        status=status,
        build_health=BuildHealth(last_build_success=last_build_success),
    )


# ── Alert rules ──────────────────────────────────────────────────────


class TestAlertRule:
    def test_default_rules(self):
        assert {r.id for r in default_alert_rules()} == BROKEN_AUTH_RULES
        assert MonitoringConfig().rules == default_alert_rules()

    def test_rule_needs_a_condition(self):
        with pytest.raises(ValidationError, match="sets no condition"):
            AlertRule(id="empty", message="never fires")

    def test_conditions_are_combined(self):
        rule = AlertRule(id="x", message="m", below_score=50, statuses=["critical"])
        assert rule.matches(_check(40, "critical"))
        assert not rule.matches(_check(40, "offline"))
        assert not rule.matches(_check(60, "critical"))

    def test_build_failed(self):
        rule = AlertRule(id="b", message="m", build_failed=True)
        assert rule.matches(_check(60, "critical", last_build_success=False))
        assert not rule.matches(_check(60, "critical", last_build_success=None))

    def test_disabled_rule(self):
        rule = AlertRule(id="x", message="m", statuses=["healthy"], enabled=False)
        assert not rule.matches(_check(100, "healthy"))

    def test_config_rejects_unknown_modules(self):
        with pytest.raises(ValidationError, match="unknown modules: billing"):
            EngineConfig.model_validate({"monitoring": {"modules": ["auth", "billing"]}})

    def test_config_from_mapping(self):
        config = EngineConfig.model_validate({
            "monitoring": {
                "interval": 5,
                "auto_recovery": True,
                "rules": [{"id": "low", "message": "Low", "below_score": 80}],
            },
        })
        assert config.monitoring.interval == 5.0
        assert [r.id for r in config.monitoring.rules] == ["low"]


# ── One pass ─────────────────────────────────────────────────────────


class TestMonitoringPass:
    @pytest.mark.asyncio
    async def test_healthy_workspace(self, engine, clock):
        monitor = make_monitor(engine, clock)
        report = await monitor.check_now()
        assert report.workspace.overall_status == "healthy"
        assert report.alerts == []
        assert report.recoveries == {}

        status = monitor.status()
        assert status.checks_run == 1
        assert status.system_health == 100
        assert len(status.module_scores) == 11
        assert status.last_check is not None

    @pytest.mark.asyncio
    async def test_broken_module_alerts(self, engine, inspector, clock):
        inspector.set_report(broken_report("auth"))
        monitor = make_monitor(engine, clock)
        report = await monitor.check_now()
        assert {a.rule_id for a in report.alerts} == BROKEN_AUTH_RULES
        assert {a.module_id for a in report.alerts} == {"auth"}
        assert report.workspace.module_health_scores["auth"] == 20
        assert monitor.get_module_status("auth").status == "offline"
        assert engine.metrics.counter(
            "alerts_triggered", rule="module-offline", severity="critical",
        ).value == 1

    @pytest.mark.asyncio
    async def test_monitored_selection(self, engine, clock):
        monitor = make_monitor(engine, clock, modules=["auth", "i18n"])
        await monitor.check_now()
        assert {c.module_id for c in monitor.get_all_statuses()} == {"auth", "i18n"}

    def test_module_status_before_first_pass(self, engine, clock):
        monitor = make_monitor(engine, clock)
        assert monitor.get_module_status("auth") is None
        assert monitor.system_health() == 0
        with pytest.raises(InvalidArgumentError):
            monitor.get_module_status("billing")


# ── Cooldown ─────────────────────────────────────────────────────────


class TestCooldown:
    @pytest.mark.asyncio
    async def test_alert_repeats_only_after_cooldown(self, engine, inspector, clock):
        inspector.set_report(broken_report("auth"))
        monitor = make_monitor(engine, clock, cooldown=60)

        assert len((await monitor.check_now()).alerts) == 3
        clock.advance(59)
        assert (await monitor.check_now()).alerts == []
        clock.advance(1)
        assert len((await monitor.check_now()).alerts) == 3
        assert len(monitor.status().recent_alerts) == 6

    @pytest.mark.asyncio
    async def test_cooldown_is_per_module(self, engine, inspector, clock):
        inspector.set_report(broken_report("auth"))
        monitor = make_monitor(engine, clock, cooldown=60)
        await monitor.check_now()

        inspector.set_report(broken_report("i18n"))
        report = await monitor.check_now()
        assert {a.module_id for a in report.alerts} == {"i18n"}

    @pytest.mark.asyncio
    async def test_zero_cooldown_fires_every_pass(self, engine, inspector, clock):
        inspector.set_report(broken_report("auth"))
        monitor = make_monitor(engine, clock, cooldown=0)
        await monitor.check_now()
        assert len((await monitor.check_now()).alerts) == 3


# ── Auto-recovery ────────────────────────────────────────────────────


class TestAutoRecovery:
    @pytest.mark.asyncio
    async def test_off_by_default(self, engine, inspector, adapter, clock):
        inspector.set_report(broken_report("auth"))
        report = await make_monitor(engine, clock).check_now()
        assert report.recoveries == {}
        assert adapter.executed_ids == []

    @pytest.mark.asyncio
    async def test_recovers_modules_below_threshold(self, engine, inspector, adapter, clock):
        inspector.set_report(broken_report("auth"))
        monitor = make_monitor(engine, clock, auto_recovery=True, recovery_threshold=30)
        report = await monitor.check_now()

        assert list(report.recoveries) == ["auth"]
        assert "module:auth:stabilize" in adapter.executed_ids
        assert not any(":i18n:" in i for i in adapter.executed_ids)
        state = await engine.recovery.get_recovery_state("auth")
        assert state.metrics.attempts == 1

    @pytest.mark.asyncio
    async def test_recovery_respects_cooldown(self, engine, inspector, clock):
        inspector.set_report(broken_report("auth"))
        monitor = make_monitor(engine, clock, auto_recovery=True, cooldown=60)
        await monitor.check_now()
        assert (await monitor.check_now()).recoveries == {}
        clock.advance(60)
        assert list((await monitor.check_now()).recoveries) == ["auth"]

    @pytest.mark.asyncio
    async def test_recovery_error_does_not_abort_pass(self, engine, inspector, clock, monkeypatch):
        async def boom(module_id: str):
            raise RuntimeError("disk full")

        inspector.set_report(broken_report("auth"))
        monkeypatch.setattr(engine.recovery, "execute_recovery", boom)
        monitor = make_monitor(engine, clock, auto_recovery=True)
        report = await monitor.check_now()
        assert report.recoveries == {}
        assert len(report.alerts) == 3
        assert engine.metrics.counter("auto_recoveries", status="error").value == 1


# ── Lifecycle ────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_run_cycles(self, engine, clock):
        monitor = make_monitor(engine, clock, interval=0.01)
        reports = []
        await monitor.run(cycles=2, on_report=reports.append)
        assert len(reports) == 2
        assert monitor.status().checks_run == 2

    @pytest.mark.asyncio
    async def test_failed_pass_keeps_looping(self, engine, clock, monkeypatch):
        async def broken(module_ids=None):
            raise RuntimeError("inspector crashed")

        monkeypatch.setattr(engine.workspace, "check_modules", broken)
        monitor = make_monitor(engine, clock, interval=0.01)
        reports = []
        await monitor.run(cycles=2, on_report=reports.append)
        assert reports == []
        assert engine.metrics.counter("monitor_errors").value == 2

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine, clock):
        monitor = make_monitor(engine, clock, interval=0.01)
        assert await monitor.start()
        assert monitor.running
        assert not await monitor.start()

        await asyncio.sleep(0.05)
        assert await monitor.stop()
        assert not monitor.running
        assert monitor.status().checks_run >= 1
        assert not await monitor.stop()

    def test_configure(self, engine, clock):
        monitor = make_monitor(engine, clock)
        assert monitor.configure(interval=5, auto_recovery=True).interval == 5.0
        assert monitor.config.auto_recovery
        with pytest.raises(ValidationError):
            monitor.configure(interval=0)
        assert monitor.config.interval == 5.0


# ── Engine wiring ────────────────────────────────────────────────────


class TestOperations:
    @pytest.mark.asyncio
    async def test_run_health_check(self, ops, inspector):
        inspector.set_report(broken_report("auth"))
        report = await ops.run_health_check()
        assert len(report.alerts) == 3
        status = await ops.monitoring_status()
        assert status.checks_run == 1
        assert not status.running
        assert (await ops.get_monitored_module("auth")).score == 20

    @pytest.mark.asyncio
    async def test_start_stop(self, ops):
        started = await ops.start_monitoring()
        assert started["changed"] is True
        assert started["running"] is True
        stopped = await ops.stop_monitoring()
        assert stopped["changed"] is True
        assert stopped["running"] is False
