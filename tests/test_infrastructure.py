"""
Tests for the engine's plumbing — store, session registry, leases, tier
scheduler, circuit breakers, metrics, engine health, config, audit ledger.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from modrecovery.core.config.loader import ConfigError, find_config_file, load_config
from modrecovery.core.engine.leases import SessionLeases
from modrecovery.core.engine.registry import SessionRegistry
from modrecovery.core.engine.scheduler import run_concurrently, run_tiers
from modrecovery.core.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
)
from modrecovery.core.models.action import Receipt
from modrecovery.core.models.session import RecoverySession
from modrecovery.core.observability.health import check_system_health
from modrecovery.core.observability.logging_config import resolve_level, setup_logging
from modrecovery.core.observability.metrics import MetricsRegistry
from modrecovery.core.persistence.audit import AuditEntry, AuditWriter
from modrecovery.core.persistence.store import InMemoryStore
from modrecovery.core.reliability.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)


# ── Store ────────────────────────────────────────────────────────────


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_values_are_copied(self):
        store: InMemoryStore[list[int]] = InMemoryStore()
        value = [1]
        await store.set("k", value)
        value.append(2)
        fetched = await store.get("k")
        fetched.append(3)
        assert await store.get("k") == [1]

    @pytest.mark.asyncio
    async def test_add_only_once(self):
        store: InMemoryStore[int] = InMemoryStore()
        assert await store.add("k", 1)
        assert not await store.add("k", 2)
        assert await store.get("k") == 1

    @pytest.mark.asyncio
    async def test_update_in_place_or_replace(self):
        store: InMemoryStore[list[int]] = InMemoryStore()
        await store.set("k", [1])
        assert await store.update("k", lambda v: v.append(2)) == [1, 2]
        assert await store.update("k", lambda v: [9]) == [9]
        assert await store.update("missing", lambda v: [0]) is None

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self):
        store: InMemoryStore[dict] = InMemoryStore()
        await store.set("k", {"n": 0})

        def bump(v):
            v["n"] += 1

        await asyncio.gather(*(store.update("k", bump) for _ in range(50)))
        assert (await store.get("k"))["n"] == 50

    @pytest.mark.asyncio
    async def test_delete(self):
        store: InMemoryStore[int] = InMemoryStore()
        await store.set("k", 1)
        assert await store.delete("k")
        assert not await store.delete("k")
        assert len(store) == 0


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_create_and_require(self):
        registry = SessionRegistry(InMemoryStore())
        await registry.create(RecoverySession(session_id="s1"))
        assert (await registry.require("s1")).session_id == "s1"

    @pytest.mark.asyncio
    async def test_duplicate(self):
        registry = SessionRegistry(InMemoryStore())
        await registry.create(RecoverySession(session_id="s1"))
        with pytest.raises(InvalidArgumentError):
            await registry.create(RecoverySession(session_id="s1"))

    @pytest.mark.asyncio
    async def test_missing(self):
        registry = SessionRegistry(InMemoryStore())
        with pytest.raises(NotFoundError):
            await registry.require("nope")
        with pytest.raises(NotFoundError):
            await registry.update("nope", lambda s: None)
        with pytest.raises(InvalidArgumentError):
            await registry.get("")

    @pytest.mark.asyncio
    async def test_counts(self):
        registry = SessionRegistry(InMemoryStore())
        await registry.create(RecoverySession(session_id="a"))
        await registry.create(RecoverySession(session_id="b", status="completed"))
        assert await registry.counts() == {"total": 2, "pending": 1, "completed": 1}


class TestSessionLeases:
    def test_hold_is_exclusive(self):
        leases = SessionLeases()
        with leases.hold("s1"):
            assert leases.is_held("s1")
            with pytest.raises(FailedPreconditionError, match="already executing"):
                with leases.hold("s1"):
                    pass
            # Other sessions are independent
            with leases.hold("s2"):
                pass
        assert not leases.is_held("s1")

    def test_released_on_error(self):
        leases = SessionLeases()
        with pytest.raises(RuntimeError):
            with leases.hold("s1"):
                raise RuntimeError("boom")
        assert leases.acquire("s1")


# ── Scheduler ────────────────────────────────────────────────────────


class TestScheduler:
    @pytest.mark.asyncio
    async def test_tiers_run_in_order(self):
        events: list[str] = []

        async def work(module_id: str) -> Receipt:
            events.append(f"start:{module_id}")
            await asyncio.sleep(0.01 if module_id == "processing" else 0)
            events.append(f"end:{module_id}")
            return Receipt.success(adapter="t", action_id=module_id)

        report = await run_tiers([["processing", "analytics"], ["admin"]], work)
        assert events.index("start:admin") > events.index("end:processing")
        assert report.succeeded_modules == ["processing", "analytics", "admin"]
        assert report.all_ok

    @pytest.mark.asyncio
    async def test_siblings_start_together(self):
        started: list[str] = []

        async def work(module_id: str) -> Receipt:
            started.append(module_id)
            await asyncio.sleep(0)
            assert len(started) == 3
            return Receipt.success(adapter="t", action_id=module_id)

        receipts = await run_concurrently(["a", "b", "c"], work)
        assert all(r.ok for r in receipts.values())

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_receipt(self):
        async def work(module_id: str) -> Receipt:
            if module_id == "bad":
                raise ValueError("broken")
            return Receipt.success(adapter="t", action_id=module_id)

        report = await run_tiers([["good", "bad"], ["next"]], work)
        assert report.failed_modules == ["bad"]
        assert report.succeeded_modules == ["good", "next"]
        assert report.errors() == ["[bad] Unexpected error: broken"]


# ── Circuit breakers ─────────────────────────────────────────────────


class TestCircuitBreaker:
    def test_opens_after_threshold(self):
        cb = CircuitBreaker(name="builder:auth", failure_threshold=2)
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert not cb.allow_request()
        assert cb.total_rejections == 1

    def test_success_resets_count(self):
        cb = CircuitBreaker(name="builder:auth", failure_threshold=2)
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_half_open_allows_trial(self):
        cb = CircuitBreaker(name="builder:auth", failure_threshold=1, recovery_timeout=0.0)
        cb.record_failure()
        assert cb.allow_request()
        assert cb.state == CircuitState.HALF_OPEN
        cb.record_success()
        assert cb.state == CircuitState.CLOSED

    def test_failed_trial_reopens(self):
        cb = CircuitBreaker(name="builder:auth", failure_threshold=1, recovery_timeout=0.0)
        cb.record_failure()
        cb.allow_request()
        cb.record_failure()
        assert cb.state == CircuitState.OPEN

    def test_module_id(self):
        assert CircuitBreaker(name="builder:auth").module_id == "auth"
        assert CircuitBreaker(name="builder").module_id is None

    def test_registry_reset_module(self):
        registry = CircuitBreakerRegistry(default_threshold=1)
        for name in ("builder:auth", "test_runner:auth", "builder:i18n"):
            registry.get_or_create(name).record_failure()
        assert registry.reset_module("auth") == 2
        assert registry.breakers["builder:auth"].state == CircuitState.CLOSED
        assert registry.breakers["builder:i18n"].state == CircuitState.OPEN


# ── Metrics and engine health ────────────────────────────────────────


class TestMetrics:
    def test_counters_keyed_by_labels(self):
        metrics = MetricsRegistry()
        metrics.counter("phases_executed", phase="1", status="completed").inc()
        metrics.counter("phases_executed", phase="1", status="completed").inc()
        metrics.counter("phases_executed", phase="2", status="failed").inc()
        values = sorted(c["value"] for c in metrics.to_dict()["counters"])
        assert values == [1, 2]

    def test_histogram(self):
        metrics = MetricsRegistry()
        h = metrics.histogram("phase_duration_ms", phase="3")
        for v in (10, 20, 30):
            h.observe(v)
        data = h.to_dict()
        assert data["count"] == 3
        assert data["mean"] == 20.0
        assert data["min"] == 10
        assert data["max"] == 30

    def test_reset(self):
        metrics = MetricsRegistry()
        metrics.gauge("sessions_running").inc()
        metrics.reset()
        assert metrics.to_dict() == {"counters": [], "gauges": [], "histograms": []}


class TestSystemHealth:
    def test_no_breakers_is_healthy(self):
        health = check_system_health(cb_registry=CircuitBreakerRegistry(), sessions=[])
        assert health.status == "healthy"
        assert [c.name for c in health.components] == ["circuit_breakers", "sessions"]

    def test_some_open_breakers_degrade(self):
        registry = CircuitBreakerRegistry(default_threshold=1)
        registry.get_or_create("builder:auth").record_failure()
        registry.get_or_create("builder:i18n")
        assert check_system_health(cb_registry=registry).status == "degraded"

    def test_unavailable_adapter_is_unhealthy(self):
        status = {"builder": {"available": False, "type": "ShellCommandAdapter"}}
        assert check_system_health(adapter_status=status).status == "unhealthy"

    def test_adapters_ignored_in_mock_mode(self):
        status = {"builder": {"available": False, "type": "ShellCommandAdapter"}}
        health = check_system_health(adapter_status=status, mock_mode=True)
        assert health.components == []

    def test_session_counts(self):
        sessions = [
            RecoverySession(session_id="a", status="running"),
            RecoverySession(session_id="b"),
        ]
        health = check_system_health(sessions=sessions)
        details = health.to_dict()["components"][0]["details"]
        assert details == {"total": 2, "running": 1, "pending": 1}


# ── Configuration ────────────────────────────────────────────────────


class TestConfigLoader:
    def test_load(self, tmp_path):
        (tmp_path / "recovery.yml").write_text(
            "workspace:\n"
            "  root: repo\n"
            "  package_scope: '@acme'\n"
            "commands:\n"
            "  build: make build\n"
            "audit:\n"
            "  enabled: true\n"
        )
        config = load_config(tmp_path / "recovery.yml")
        assert config.workspace.root == str((tmp_path / "repo").resolve())
        assert config.package_name("auth") == "@acme/auth"
        assert config.command_for("auth", "build") == "make build"
        assert config.audit.enabled

    def test_empty_file_is_defaults(self, tmp_path):
        (tmp_path / "recovery.yml").write_text("")
        config = load_config(tmp_path / "recovery.yml")
        assert config.max_dependency_depth == 10

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "recovery.yml").write_text("workspace: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(tmp_path / "recovery.yml")

    def test_not_a_mapping(self, tmp_path):
        (tmp_path / "recovery.yml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(tmp_path / "recovery.yml")

    def test_invalid_values(self, tmp_path):
        (tmp_path / "recovery.yml").write_text("max_dependency_depth: 0\n")
        with pytest.raises(ConfigError, match="Invalid recovery configuration"):
            load_config(tmp_path / "recovery.yml")

    def test_search_walks_up(self, tmp_path):
        (tmp_path / "recovery.yml").write_text("{}")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / "recovery.yml").resolve()

    def test_no_file_uses_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(search=False)
        assert config.workspace.root == str(tmp_path.resolve())


class TestLogging:
    def test_resolve_level(self, monkeypatch):
        monkeypatch.delenv("MRE_LOG_LEVEL", raising=False)
        assert resolve_level() == "WARNING"
        monkeypatch.setenv("MRE_LOG_LEVEL", "INFO")
        assert resolve_level() == "INFO"
        assert resolve_level("DEBUG") == "DEBUG"

    def test_file_handler(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MRE_LOG_FILE", raising=False)
        log_file = tmp_path / "engine.log"
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
            assert root.level == logging.DEBUG
            logging.getLogger("modrecovery.test").debug("written to file")
            for handler in root.handlers:
                handler.flush()
            assert "written to file" in log_file.read_text()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])


# ── Audit ────────────────────────────────────────────────────────────


class TestAuditWriter:
    def test_append_and_filter(self, tmp_path):
        writer = AuditWriter(tmp_path / "state" / "audit.ndjson")
        writer.write(AuditEntry(session_id="a", event="session_created"))
        writer.write(AuditEntry(session_id="b", event="session_created"))
        writer.write(AuditEntry(session_id="a", event="phase_skipped", phase=2, reason="manual"))

        assert len(writer.read_all()) == 3
        entries = writer.read_all("a")
        assert [e.event for e in entries] == ["session_created", "phase_skipped"]
        assert entries[1].reason == "manual"

    def test_corrupt_lines_skipped(self, tmp_path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(session_id="a", event="session_created"))
        with path.open("a") as f:
            f.write("{not json\n\n")
        assert len(writer.read_all()) == 1

    def test_missing_file(self, tmp_path):
        assert AuditWriter(tmp_path / "none.ndjson").read_all() == []
