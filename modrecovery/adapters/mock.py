"""
Mock collaborators — test doubles for inspection and adapter work.

MockAdapter stands in for the builder and test runner; MockInspector
serves canned InspectionReports. Both are used in mock mode (``--mock``)
and throughout the test suite.
"""

from __future__ import annotations

from modrecovery.adapters.base import Adapter, ExecutionContext, ModuleInspector
from modrecovery.core.models.action import Receipt
from modrecovery.core.models.inspection import InspectionReport


class MockAdapter(Adapter):
    """Universal mock adapter.

    By default, returns success for everything. Can be configured
    with custom responses per action ID, or to fail every action that
    targets a given module.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._failing_modules: dict[str, str] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def executed_ids(self) -> list[str]:
        return [ctx.action.id for ctx in self._call_log]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Set a custom response for a specific action ID."""
        self._responses[action_id] = receipt

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
        )

    def fail_module(self, module_id: str, error: str = "Mock failure") -> None:
        """Fail every action whose target is ``module_id``."""
        self._failing_modules[module_id] = error

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    async def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action = context.action

        if action.id in self._responses:
            return self._responses[action.id].model_copy()

        if action.for_module in self._failing_modules:
            return Receipt.failure(
                adapter=self._name,
                action_id=action.id,
                error=self._failing_modules[action.for_module],
            )

        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._failing_modules.clear()


# ── Inspector ───────────────────────────────────────────────────


def healthy_report(module_id: str, scope: str = "@workspace") -> InspectionReport:
    """A report that scores 100: built, tested, dependencies installed."""
    return InspectionReport(
        module_id=module_id,
        path=f"packages/{module_id}",
        exists=True,
        manifest={
            "name": f"{scope}/{module_id}",
            "version": "1.0.0",
            "main": "dist/index.js",
            "types": "dist/index.d.ts",
            "scripts": {"build": "tsc", "test": "jest"},
            "dependencies": {f"{scope}/core": "^1.0.0"},
        },
        manifest_valid=True,
        compiler_config={"compilerOptions": {"outDir": "dist", "declaration": True}},
        has_source_dir=True,
        source_index="src/index.ts",
        files=["package.json", "tsconfig.json", "src", "dist", "README.md"],
        dependencies={f"{scope}/core": "^1.0.0"},
        installed={f"{scope}/core": "1.0.0"},
        last_build_success=True,
        test_status="passing",
    )


def broken_report(module_id: str, scope: str = "@workspace") -> InspectionReport:
    """A report that scores 20: failed build, failing tests, bad manifest."""
    report = healthy_report(module_id, scope)
    report.manifest_valid = False
    report.last_build_success = False
    report.test_status = "failing"
    return report


class MockInspector(ModuleInspector):
    """Serves configured reports; unconfigured modules look healthy."""

    def __init__(self, scope: str = "@workspace"):
        self._scope = scope
        self._reports: dict[str, InspectionReport] = {}
        self._errors: dict[str, str] = {}
        self.inspected: list[str] = []

    def set_report(self, report: InspectionReport) -> None:
        self._reports[report.module_id] = report

    def set_error(self, module_id: str, error: str = "inspection failed") -> None:
        """Make inspection of ``module_id`` raise."""
        self._errors[module_id] = error

    def clear(self, module_id: str) -> None:
        self._reports.pop(module_id, None)
        self._errors.pop(module_id, None)

    async def inspect(self, module_id: str) -> InspectionReport:
        self.inspected.append(module_id)
        if module_id in self._errors:
            raise RuntimeError(self._errors[module_id])
        report = self._reports.get(module_id) or healthy_report(module_id, self._scope)
        return report.model_copy(deep=True)
