"""
Tests for the HTTP API — app factory, routes, and error-code mapping.
"""

from __future__ import annotations

import asyncio

import pytest
from flask import Flask
from flask.testing import FlaskClient

from modrecovery.adapters.mock import broken_report
from modrecovery.core.engine.facade import build_engine
from modrecovery.core.models.config import EngineConfig
from modrecovery.ui.web.runner import EngineRunner
from modrecovery.ui.web.server import create_app


@pytest.fixture()
def app(engine) -> Flask:
    app = create_app(engine=engine)
    app.config["TESTING"] = True
    yield app
    app.config["ENGINE_RUNNER"].stop()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()


def _create(client: FlaskClient, session_id: str = "web-1", modules=("auth", "i18n")):
    return client.post(
        "/api/sessions",
        json={"session_id": session_id, "target_modules": list(modules)},
    )


# ── App factory ──────────────────────────────────────────────────────


class TestAppFactory:
    def test_uses_given_engine(self, app, engine):
        assert app.config["ENGINE"] is engine
        assert app.config["MOCK_MODE"] is True

    def test_builds_mock_engine(self):
        app = create_app(mock_mode=True)
        try:
            assert app.config["ENGINE"].adapters.mock_mode
        finally:
            app.config["ENGINE_RUNNER"].stop()


class TestEngineRunner:
    def test_runs_coroutines_on_one_loop(self):
        async def current_loop():
            return asyncio.get_running_loop()

        runner = EngineRunner()
        try:
            first = runner.run(current_loop())
            second = runner.run(current_loop())
            assert first is second
            assert runner.running
        finally:
            runner.stop()
        assert not runner.running

    def test_exceptions_propagate(self):
        async def boom():
            raise ValueError("nope")

        runner = EngineRunner()
        try:
            with pytest.raises(ValueError, match="nope"):
                runner.run(boom())
        finally:
            runner.stop()


# ── Engine ───────────────────────────────────────────────────────────


class TestEngineRoutes:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_metrics(self, client):
        _create(client)
        data = client.get("/api/metrics").get_json()
        assert {c["name"] for c in data["counters"]} >= {"sessions_created"}


# ── Workspace ────────────────────────────────────────────────────────


class TestWorkspaceRoutes:
    def test_health(self, client):
        data = client.get("/api/workspace/health").get_json()
        assert data["overall_status"] == "healthy"
        assert len(data["module_health_scores"]) == 11

    def test_health_selection(self, client):
        resp = client.post("/api/workspace/health", json={"module_ids": ["auth"]})
        assert list(resp.get_json()["module_health_scores"]) == ["auth"]

    def test_health_query_selection(self, client):
        resp = client.get("/api/workspace/health?module=auth&module=admin")
        assert set(resp.get_json()["module_health_scores"]) == {"auth", "admin"}

    def test_health_bad_selection(self, client):
        resp = client.post("/api/workspace/health", json={"module_ids": "auth"})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "invalid-argument"

    def test_status(self, client):
        data = client.get("/api/workspace/status").get_json()
        assert len(data["modules"]) == 11

    def test_build_sequential(self, client):
        resp = client.post(
            "/api/workspace/build",
            json={"module_ids": ["admin", "auth"], "parallel": False},
        )
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["strategy"] == "sequential"
        assert data["tiers"] == [["auth"], ["admin"]]

    def test_validate(self, client):
        data = client.post("/api/workspace/validate", json={}).get_json()
        assert data["validation"]["total_modules"] == 11

    def test_reset_requires_literal_true(self, client):
        resp = client.post("/api/workspace/reset", json={"confirmation": "yes"})
        assert resp.status_code == 409
        resp = client.post("/api/workspace/reset", json={"confirmation": True})
        assert resp.status_code == 200


# ── Sessions ─────────────────────────────────────────────────────────


class TestSessionRoutes:
    def test_create(self, client):
        resp = _create(client)
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["status"] == "pending"
        assert data["target_modules"] == ["auth", "i18n"]

    def test_create_duplicate(self, client):
        _create(client)
        resp = _create(client)
        assert resp.status_code == 400
        assert "already exists" in resp.get_json()["error"]

    def test_create_empty_targets(self, client):
        resp = client.post("/api/sessions", json={"session_id": "x", "target_modules": []})
        assert resp.status_code == 400

    def test_create_without_id(self, client):
        resp = client.post("/api/sessions", json={"target_modules": ["auth"]})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "sessionId is required"

    def test_body_must_be_object(self, client):
        resp = client.post("/api/sessions", json=["auth"])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Request body must be a JSON object"

    def test_execute_and_inspect(self, client):
        _create(client)
        resp = client.post("/api/sessions/web-1/execute")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "completed"

        progress = client.get("/api/sessions/web-1/progress").get_json()
        assert progress["progress"] == 100.0
        assert progress["status"] == "success"

        session = client.get("/api/sessions/web-1").get_json()
        assert session["phase_progress"]["5"]["completed"] is True

    def test_list(self, client):
        _create(client, "a")
        _create(client, "b")
        data = client.get("/api/sessions").get_json()
        assert data["count"] == 2

    def test_cancel(self, client):
        _create(client)
        first = client.post("/api/sessions/web-1/cancel").get_json()
        second = client.post("/api/sessions/web-1/cancel").get_json()
        assert first["cancelled"] is True
        assert second["status"] == "cancelled"

    def test_unknown_session(self, client):
        resp = client.get("/api/sessions/ghost")
        assert resp.status_code == 404
        body = resp.get_json()
        assert body["code"] == "not-found"
        assert body["details"] == {"session_id": "ghost"}

    def test_audit_trail(self, tmp_path, inspector, adapter):
        config = EngineConfig.model_validate({
            "workspace": {"root": str(tmp_path)},
            "audit": {"enabled": True, "path": "audit.ndjson"},
        })
        app = create_app(engine=build_engine(config, inspector=inspector, adapter=adapter))
        try:
            client = app.test_client()
            _create(client)
            client.post("/api/sessions/web-1/cancel")
            data = client.get("/api/sessions/web-1/audit").get_json()
            assert [e["event"] for e in data["entries"]] == [
                "session_created", "session_cancelled",
            ]
            assert client.get("/api/sessions/ghost/audit").status_code == 404
        finally:
            app.config["ENGINE_RUNNER"].stop()


# ── Phases ───────────────────────────────────────────────────────────


class TestPhaseRoutes:
    def test_list(self, client):
        data = client.get("/api/phases").get_json()
        assert data["total"] == 5
        assert [p["phase"] for p in data["phases"]] == [1, 2, 3, 4, 5]

    def test_get(self, client):
        data = client.get("/api/phases/1").get_json()
        assert data["critical_modules"] == ["auth", "i18n"]

    def test_invalid_number(self, client):
        assert client.get("/api/phases/0").status_code == 400
        assert client.get("/api/phases/abc").status_code == 400

    def test_dependencies(self, client):
        data = client.get("/api/phases/5/dependencies").get_json()
        assert data["depends_on"] == [1, 2, 3, 4]
        assert data["unblocks"] == []

    def test_execute_out_of_order(self, client):
        _create(client)
        resp = client.post("/api/phases/3/execute", json={"session_id": "web-1"})
        assert resp.status_code == 409
        assert resp.get_json()["details"]["unmet_dependencies"] == [1, 2]

    def test_execute_in_order(self, client):
        _create(client)
        resp = client.post("/api/phases/1/execute", json={"session_id": "web-1"})
        assert resp.status_code == 200
        assert resp.get_json()["next_phase"] == 2

        status = client.get("/api/phases/status/web-1").get_json()
        assert status["current_phase"] == 2
        assert status["phases"][0]["status"] == "completed"

    def test_execute_bad_options(self, client):
        _create(client)
        resp = client.post(
            "/api/phases/1/execute",
            json={"session_id": "web-1", "options": {"halt_on_module_failure": "x"}},
        )
        assert resp.status_code == 400

    def test_skip(self, client):
        _create(client)
        resp = client.post(
            "/api/phases/1/skip",
            json={"session_id": "web-1", "reason": "stable"},
        )
        assert resp.status_code == 409

        resp = client.post(
            "/api/phases/1/skip",
            json={"session_id": "web-1", "reason": "stable", "confirmation": True},
        )
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "skipped"


# ── Modules ──────────────────────────────────────────────────────────


class TestModuleRoutes:
    def test_list(self, client):
        data = client.get("/api/modules").get_json()
        assert data["summary"]["total"] == 11
        assert data["summary"]["healthy"] == 11

    def test_get(self, client):
        data = client.get("/api/modules/auth").get_json()
        assert data["layer"] == 1
        assert data["recovery_state"] is None

    def test_unknown(self, client):
        resp = client.get("/api/modules/unknown-module")
        assert resp.status_code == 400
        assert resp.get_json()["details"]["module_id"] == "unknown-module"

    def test_health(self, client):
        data = client.get("/api/modules/auth/health").get_json()
        assert data["score"] == 100

    def test_update(self, client):
        resp = client.put("/api/modules/auth", json={"action": "initialize"})
        assert resp.status_code == 200
        assert resp.get_json()["state"]["step"] == "initialized"

    def test_update_invalid_action(self, client):
        resp = client.put("/api/modules/auth", json={"action": "fly"})
        assert resp.status_code == 400

    def test_recover(self, client):
        data = client.post("/api/modules/auth/recover").get_json()
        assert data["status"] == "success"

    def test_validate(self, client):
        data = client.post("/api/modules/auth/validate").get_json()
        assert data["is_valid"] is True

    def test_validate_many(self, client):
        data = client.post("/api/modules/validate", json={"module_ids": ["auth"]}).get_json()
        assert data["total_modules"] == 1

    def test_build_unbuildable(self, client, inspector):
        inspector.set_report(broken_report("auth"))
        resp = client.post("/api/modules/auth/build")
        assert resp.status_code == 409
        resp = client.post("/api/modules/auth/build", json={"force": True})
        assert resp.status_code == 200
        assert resp.get_json()["build_success"] is True

    def test_dependencies(self, client):
        data = client.get("/api/modules/auth/dependencies").get_json()
        assert data["dependencies"][0]["name"] == "@workspace/core"
        assert data["layer_violations"] == []

    def test_build_status(self, client):
        data = client.get("/api/modules/auth/build-status").get_json()
        assert data["can_build"] is True
        assert data["build_status"] is None


# ── Monitoring ───────────────────────────────────────────────────────


class TestMonitoringRoutes:
    def test_status_before_first_pass(self, client):
        data = client.get("/api/monitoring").get_json()
        assert data["running"] is False
        assert data["checks_run"] == 0
        assert data["recent_alerts"] == []

    def test_check_raises_alerts(self, client, inspector):
        inspector.set_report(broken_report("auth"))
        report = client.post("/api/monitoring/check").get_json()
        assert {a["rule_id"] for a in report["alerts"]} == {
            "critical-health", "module-offline", "build-failed",
        }
        status = client.get("/api/monitoring").get_json()
        assert status["module_scores"]["auth"] == 20
        assert len(status["recent_alerts"]) == 3

    def test_module_last_check(self, client):
        assert client.get("/api/monitoring/modules/auth").get_json()["last_check"] is None
        client.post("/api/monitoring/check")
        data = client.get("/api/monitoring/modules/auth").get_json()
        assert data["last_check"]["score"] == 100
        assert client.get("/api/monitoring/modules/billing").status_code == 400

    def test_start_and_stop(self, client):
        started = client.post("/api/monitoring/start").get_json()
        assert started["changed"] is True
        assert started["running"] is True
        assert client.post("/api/monitoring/start").get_json()["changed"] is False

        stopped = client.post("/api/monitoring/stop").get_json()
        assert stopped["changed"] is True
        assert stopped["running"] is False
