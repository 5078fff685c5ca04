"""
InspectionReport — raw facts about one module, as seen by a ModuleInspector.

The engine never reads the filesystem or talks to a compiler itself. An
inspector gathers facts (manifest, compiler config, declared and installed
dependencies, last build outcome) and the health checker, dependency
resolver, and validation rules interpret them.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class InspectionReport(BaseModel):
    module_id: str
    path: str = ""
    exists: bool = False

    # ── Manifest / configuration ─────────────────────────────────
    manifest: dict[str, Any] | None = None
    manifest_valid: bool = False
    compiler_config: dict[str, Any] | None = None
    has_source_dir: bool = False
    source_index: str | None = None  # e.g. "src/index.ts"
    files: list[str] = Field(default_factory=list)  # top-level entries

    # ── Dependencies ─────────────────────────────────────────────
    dependencies: dict[str, str] = Field(default_factory=dict)  # declared: name -> spec
    installed: dict[str, str] = Field(default_factory=dict)     # installed: name -> version

    # ── Build / test facts ───────────────────────────────────────
    last_build_success: bool | None = None  # None = never built
    build_errors: list[str] = Field(default_factory=list)
    test_status: Literal["passing", "failing", "not_configured", "unknown"] = "unknown"

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def scripts(self) -> dict[str, Any]:
        if not self.manifest:
            return {}
        scripts = self.manifest.get("scripts")
        return scripts if isinstance(scripts, dict) else {}

    @property
    def has_build_script(self) -> bool:
        return "build" in self.scripts
