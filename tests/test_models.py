"""
Tests for core models — sessions, commands, config, receipts.
"""

import pytest
from pydantic import ValidationError

from modrecovery.core.errors import InvalidArgumentError
from modrecovery.core.models.action import Receipt
from modrecovery.core.models.commands import (
    BuildAction,
    RecoverAction,
    parse_module_action,
)
from modrecovery.core.models.config import EngineConfig
from modrecovery.core.models.session import RecoverySession
from modrecovery.core.models.validation import ValidationResult


class TestRecoverySession:
    def test_defaults(self):
        s = RecoverySession(session_id="s1", target_modules=["auth"])
        assert s.status == "pending"
        assert s.current_phase == 1
        assert s.total_phases == 5
        assert sorted(s.phase_progress) == [1, 2, 3, 4, 5]
        assert not any(p.started or p.completed for p in s.phase_progress.values())
        assert s.end_time is None

    def test_advance_never_regresses(self):
        s = RecoverySession(session_id="s1")
        s.advance_to(3)
        s.advance_to(2)
        assert s.current_phase == 3

    def test_advance_caps_at_total(self):
        s = RecoverySession(session_id="s1")
        s.advance_to(6)
        assert s.current_phase == 5

    def test_unmet_dependencies(self):
        s = RecoverySession(session_id="s1")
        s.phase_progress[1].completed = True
        assert s.unmet_dependencies(3) == [2]
        assert s.unmet_dependencies(2) == []

    def test_terminal(self):
        s = RecoverySession(session_id="s1")
        assert not s.is_terminal
        s.status = "cancelled"
        assert s.is_terminal

    def test_all_phases_completed(self):
        s = RecoverySession(session_id="s1")
        for p in s.phase_progress.values():
            p.completed = True
        assert s.all_phases_completed
        assert s.completed_phases == [1, 2, 3, 4, 5]


class TestModuleActions:
    def test_parse_build(self):
        action = parse_module_action({"action": "build", "module_id": "auth", "force": True})
        assert isinstance(action, BuildAction)
        assert action.force is True

    def test_parse_recover(self):
        action = parse_module_action({"action": "recover", "module_id": "i18n"})
        assert isinstance(action, RecoverAction)

    def test_missing_action(self):
        with pytest.raises(InvalidArgumentError, match="action is required"):
            parse_module_action({"module_id": "auth"})

    def test_unknown_action(self):
        with pytest.raises(InvalidArgumentError) as exc:
            parse_module_action({"action": "explode", "module_id": "auth"})
        assert "Invalid action: explode" in exc.value.message
        assert "initialize" in exc.value.message

    def test_malformed_payload(self):
        with pytest.raises(InvalidArgumentError, match="Invalid build action"):
            parse_module_action({"action": "build", "module_id": "auth", "force": "maybe"})


class TestReceipt:
    def test_skipped_counts_as_settled_ok(self):
        r = Receipt.skip(adapter="builder", action_id="a", reason="nothing to do")
        assert not r.ok
        assert not r.failed
        assert r.settled_ok

    def test_failure(self):
        r = Receipt.failure(adapter="builder", action_id="a", error="boom")
        assert r.failed
        assert r.error == "boom"


class TestValidationResult:
    def test_fingerprint_ignores_timestamp(self):
        a = ValidationResult(module_id="auth", score=90, timestamp="t1")
        b = ValidationResult(module_id="auth", score=90, timestamp="t2")
        assert a.fingerprint() == b.fingerprint()


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.max_dependency_depth == 10
        assert config.module_path("auth") == "packages/auth"
        assert config.package_name("auth") == "@workspace/auth"
        assert config.command_for("auth", "build") == "npm run build"
        assert config.command_for("auth", "stabilize") == ""

    def test_module_override(self):
        config = EngineConfig.model_validate({
            "modules": {
                "auth": {"path": "libs/auth", "commands": {"build": "make"}},
            },
        })
        assert config.module_path("auth") == "libs/auth"
        assert config.command_for("auth", "build") == "make"
        assert config.command_for("i18n", "build") == "npm run build"

    def test_unknown_module_override_rejected(self):
        with pytest.raises(ValidationError, match="unknown modules: billing"):
            EngineConfig.model_validate({"modules": {"billing": {}}})

    def test_depth_must_be_positive(self):
        with pytest.raises(ValidationError):
            EngineConfig(max_dependency_depth=0)
