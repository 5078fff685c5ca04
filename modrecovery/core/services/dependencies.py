"""
Dependency resolver — walk a module's declared dependency graph.

Direct dependencies come from the module's manifest. Dependencies on
other workspace modules (``<scope>/<module>``) are followed into that
module's own manifest, breadth-first, up to ``max_dependency_depth``
hops. External packages are leaves: their own dependencies belong to the
package manager.

Each dependency is tagged:

    is_direct   declared by the module itself (depth 1)
    status      resolved (installed) / missing
    conflicts   differing version specs for the same package, and
                workspace dependencies that break the layer order
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from modrecovery.adapters.base import ModuleInspector
from modrecovery.core.data.layers import (
    SHARED_PACKAGES,
    execution_tier,
    get_module_layer_info,
    is_known_module,
    require_module,
)
from modrecovery.core.models.inspection import InspectionReport
from modrecovery.core.models.module import DependencyInfo

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass
class _Pending:
    name: str
    spec: str
    depth: int
    required_by: str
    installed: str | None


def workspace_module(package: str, scope: str) -> str | None:
    """Map ``@scope/<id>`` to a module id or shared package, else None."""
    prefix = f"{scope}/"
    if not package.startswith(prefix):
        return None
    name = package[len(prefix):]
    if is_known_module(name) or name in SHARED_PACKAGES:
        return name
    return None


def layer_violations(module_id: str, dependencies: dict[str, str], scope: str) -> list[str]:
    """Workspace dependencies that a module's tier does not allow."""
    allowed = get_module_layer_info(module_id).allowed_dependencies
    violations = []
    for package in dependencies:
        target = workspace_module(package, scope)
        if target is None or target in allowed:
            continue
        if is_known_module(target):
            violations.append(
                f"Layer violation: {module_id} (tier {execution_tier(module_id)}) "
                f"cannot depend on {target} (tier {execution_tier(target)})"
            )
    return violations


class DependencyResolver:
    """Resolve direct and transitive dependencies through an inspector."""

    def __init__(
        self,
        inspector: ModuleInspector,
        scope: str = "@workspace",
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self._inspector = inspector
        self._scope = scope
        self._max_depth = max_depth

    @property
    def max_depth(self) -> int:
        return self._max_depth

    async def analyze_dependencies(self, module_id: str) -> list[DependencyInfo]:
        require_module(module_id)
        report = await self._inspector.inspect(module_id)
        return await self.analyze_report(report)

    async def analyze_report(self, report: InspectionReport) -> list[DependencyInfo]:
        """Resolve the graph rooted at an already-inspected module."""
        found: dict[str, DependencyInfo] = {}
        specs: dict[str, dict[str, str]] = {}  # package -> {requirer: spec}
        reports: dict[str, InspectionReport] = {report.module_id: report}

        queue: deque[_Pending] = deque(
            _Pending(name, spec, 1, report.module_id, report.installed.get(name))
            for name, spec in sorted(report.dependencies.items())
        )

        while queue:
            item = queue.popleft()
            specs.setdefault(item.name, {})[item.required_by] = item.spec
            if item.name in found:
                continue

            found[item.name] = DependencyInfo(
                name=item.name,
                is_direct=item.depth == 1,
                status="resolved" if item.installed is not None else "missing",
                depth=item.depth,
                version=item.installed or "",
                required_by=item.required_by,
            )

            target = workspace_module(item.name, self._scope)
            if item.depth >= self._max_depth or target is None or not is_known_module(target):
                continue
            if target in reports:
                continue

            child = await self._inspect_quietly(target)
            if child is None:
                continue
            reports[target] = child
            for name, spec in sorted(child.dependencies.items()):
                installed = child.installed.get(name, report.installed.get(name))
                queue.append(_Pending(name, spec, item.depth + 1, target, installed))

        # ── Conflicts ────────────────────────────────────────────
        for name, by_requirer in specs.items():
            if len(set(by_requirer.values())) > 1:
                found[name].conflicts.extend(
                    f"{requirer} requires {spec}" for requirer, spec in sorted(by_requirer.items())
                )

        for module_id, module_report in reports.items():
            for package in module_report.dependencies:
                target = workspace_module(package, self._scope)
                if target is None:
                    continue
                found_info = found.get(package)
                if found_info is None:
                    continue
                found_info.conflicts.extend(
                    layer_violations(module_id, {package: ""}, self._scope)
                )

        return sorted(found.values(), key=lambda d: (d.depth, d.name))

    async def _inspect_quietly(self, module_id: str) -> InspectionReport | None:
        try:
            return await self._inspector.inspect(module_id)
        except Exception as e:
            logger.warning("Cannot follow dependencies of %s: %s", module_id, e)
            return None
