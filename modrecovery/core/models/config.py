"""
Engine configuration model — the validated contents of recovery.yml.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from modrecovery.core.data.layers import MODULE_IDS
from modrecovery.core.models.monitoring import AlertRule, default_alert_rules


class WorkspaceConfig(BaseModel):
    """Where the monorepo lives and how its packages are named."""

    root: str = "."
    packages_dir: str = "packages"
    package_scope: str = "@workspace"


class ModuleCommands(BaseModel):
    """Shell commands run for a module. An empty command is skipped."""

    stabilize: str = ""
    install: str = "npm install"
    build: str = "npm run build"


class ModuleOverride(BaseModel):
    path: str | None = None
    commands: dict[str, str] = Field(default_factory=dict)


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    recovery_timeout: float = Field(default=30.0, ge=0)


class AuditConfig(BaseModel):
    enabled: bool = False
    path: str = ".state/recovery-audit.ndjson"


class MonitoringConfig(BaseModel):
    """Periodic health monitoring. Auto-recovery is opt-in."""

    interval: float = Field(default=30.0, gt=0)  # seconds
    cooldown: float = Field(default=900.0, ge=0)  # seconds between repeats of one alert
    modules: list[str] | None = None
    rules: list[AlertRule] = Field(default_factory=default_alert_rules)
    auto_recovery: bool = False
    recovery_threshold: int = Field(default=30, ge=0, le=100)

    @field_validator("modules")
    @classmethod
    def _known_modules(cls, value: list[str] | None) -> list[str] | None:
        unknown = sorted(set(value or []) - set(MODULE_IDS))
        if unknown:
            raise ValueError(f"unknown modules: {', '.join(unknown)}")
        return value


class EngineConfig(BaseModel):
    """Root configuration.

    Every field has a default, so a missing recovery.yml yields a usable
    configuration rooted at the working directory.
    """

    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    max_dependency_depth: int = Field(default=10, ge=1)
    commands: ModuleCommands = Field(default_factory=ModuleCommands)
    modules: dict[str, ModuleOverride] = Field(default_factory=dict)
    integration_tests: dict[str, str] = Field(default_factory=dict)
    command_timeout: int = Field(default=300, ge=1)  # seconds
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @field_validator("modules")
    @classmethod
    def _known_modules(cls, value: dict[str, ModuleOverride]) -> dict[str, ModuleOverride]:
        unknown = sorted(set(value) - set(MODULE_IDS))
        if unknown:
            raise ValueError(f"unknown modules: {', '.join(unknown)}")
        return value

    @property
    def root_path(self) -> Path:
        return Path(self.workspace.root)

    def module_path(self, module_id: str) -> str:
        """Module directory, relative to the workspace root."""
        override = self.modules.get(module_id)
        if override and override.path:
            return override.path
        return f"{self.workspace.packages_dir}/{module_id}"

    def package_name(self, module_id: str) -> str:
        return f"{self.workspace.package_scope}/{module_id}"

    def command_for(self, module_id: str, capability: str) -> str:
        override = self.modules.get(module_id)
        if override and capability in override.commands:
            return override.commands[capability]
        return getattr(self.commands, capability, "")
