"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from modrecovery.adapters.mock import MockAdapter, MockInspector
from modrecovery.core.engine.facade import Engine, RecoveryOperations, build_engine
from modrecovery.core.models.config import EngineConfig


@pytest.fixture
def inspector() -> MockInspector:
    """Inspector where every module looks healthy until told otherwise."""
    return MockInspector()


@pytest.fixture
def adapter() -> MockAdapter:
    """Adapter serving the builder and test-runner roles; succeeds by default."""
    return MockAdapter()


@pytest.fixture
def engine(inspector: MockInspector, adapter: MockAdapter) -> Engine:
    return build_engine(EngineConfig(), inspector=inspector, adapter=adapter)


@pytest.fixture
def ops(engine: Engine) -> RecoveryOperations:
    return engine.operations


def write_package(
    root: Path,
    module_id: str,
    *,
    manifest: dict | None = None,
    tsconfig: bool = True,
    index: bool = True,
    built: bool = True,
    installed: dict[str, str] | None = None,
) -> Path:
    """Lay out one module under ``root/packages/<module_id>``."""
    path = root / "packages" / module_id
    (path / "src").mkdir(parents=True)
    if manifest is None:
        manifest = {
            "name": f"@workspace/{module_id}",
            "version": "1.0.0",
            "main": "dist/index.js",
            "types": "dist/index.d.ts",
            "scripts": {"build": "tsc", "test": "jest"},
        }
    (path / "package.json").write_text(json.dumps(manifest))
    if tsconfig:
        (path / "tsconfig.json").write_text(json.dumps({"compilerOptions": {"outDir": "dist"}}))
    if index:
        (path / "src" / "index.ts").write_text("export {};\n")
    if built:
        (path / "dist").mkdir()
        (path / "dist" / "index.js").write_text("")
    for name, version in (installed or {}).items():
        pkg = path / "node_modules" / name
        pkg.mkdir(parents=True)
        (pkg / "package.json").write_text(json.dumps({"name": name, "version": version}))
    return path


@pytest.fixture
def make_package():
    """Factory fixture: ``make_package(root, module_id, **options)``."""
    return write_package
