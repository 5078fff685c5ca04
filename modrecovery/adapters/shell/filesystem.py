"""
Filesystem inspector — read module facts straight from the workspace.

Looks at a Node/TypeScript style package directory:

    packages/<module>/
        package.json        manifest (name, version, scripts, dependencies)
        tsconfig.json       compiler config
        src/index.ts        export surface
        dist/               build output
        node_modules/       installed dependencies (or hoisted to the root)

All file access runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from modrecovery.adapters.base import ModuleInspector
from modrecovery.core.models.config import EngineConfig
from modrecovery.core.models.inspection import InspectionReport

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"
COMPILER_CONFIG_FILE = "tsconfig.json"
BUILD_DIR = "dist"
_INDEX_CANDIDATES = ("src/index.ts", "src/index.tsx", "src/index.js", "src/index.mjs")


class FilesystemInspector(ModuleInspector):
    """Inspect modules under ``<root>/<packages_dir>/<module>``."""

    def __init__(self, config: EngineConfig):
        self._config = config
        self._root = Path(config.workspace.root)

    def module_dir(self, module_id: str) -> Path:
        return self._root / self._config.module_path(module_id)

    async def inspect(self, module_id: str) -> InspectionReport:
        return await asyncio.to_thread(self._inspect, module_id)

    def _inspect(self, module_id: str) -> InspectionReport:
        path = self.module_dir(module_id)
        report = InspectionReport(module_id=module_id, path=str(path))

        if not path.is_dir():
            report.errors.append(f"Module directory not found: {path}")
            return report
        report.exists = True
        report.files = sorted(p.name for p in path.iterdir())

        # ── Manifest ─────────────────────────────────────────────
        manifest = self._read_json(path / MANIFEST_FILE, report)
        if manifest is not None:
            report.manifest = manifest
            report.manifest_valid = _manifest_is_valid(manifest)
            if not report.manifest_valid:
                report.warnings.append(f"{MANIFEST_FILE} is missing name or version")
            deps = manifest.get("dependencies")
            if isinstance(deps, dict):
                report.dependencies = {str(k): str(v) for k, v in deps.items()}

        # ── Compiler config ──────────────────────────────────────
        # tsconfig may carry comments; an unparseable one still counts as present
        report.compiler_config = self._read_json(path / COMPILER_CONFIG_FILE, report, lenient=True)

        # ── Source / export surface ──────────────────────────────
        report.has_source_dir = (path / "src").is_dir()
        for candidate in _INDEX_CANDIDATES:
            if (path / candidate).is_file():
                report.source_index = candidate
                break

        # ── Installed dependencies ───────────────────────────────
        for name in report.dependencies:
            version = self._installed_version(path, name)
            if version is not None:
                report.installed[name] = version

        # ── Build / tests ────────────────────────────────────────
        build_dir = path / BUILD_DIR
        if build_dir.is_dir():
            report.last_build_success = any(build_dir.iterdir())
            if not report.last_build_success:
                report.build_errors.append(f"{BUILD_DIR}/ is empty")
        report.test_status = "unknown" if "test" in report.scripts else "not_configured"

        logger.debug(
            "Inspected %s: manifest=%s deps=%d installed=%d",
            module_id, report.manifest_valid, len(report.dependencies), len(report.installed),
        )
        return report

    def _installed_version(self, module_path: Path, package: str) -> str | None:
        for base in (module_path, self._root):
            manifest = base / "node_modules" / package / MANIFEST_FILE
            if manifest.is_file():
                try:
                    data = json.loads(manifest.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError):
                    return ""
                return str(data.get("version", "")) if isinstance(data, dict) else ""
        return None

    @staticmethod
    def _read_json(
        path: Path, report: InspectionReport, lenient: bool = False,
    ) -> dict[str, Any] | None:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            if lenient:
                report.warnings.append(f"Cannot parse {path.name}: {e}")
                return {}
            report.errors.append(f"Cannot parse {path.name}: {e}")
            return None
        if not isinstance(data, dict):
            report.errors.append(f"Expected a JSON object in {path.name}")
            return None
        return data


def _manifest_is_valid(manifest: dict[str, Any]) -> bool:
    return isinstance(manifest.get("name"), str) and isinstance(manifest.get("version"), str)
