"""
Validation engine — run the rule catalogue against modules.

Rules (id, weight):

    required-files        3   module directory, package.json, src/
    manifest-shape        2   name/version present, name matches scope, build script
    compiler-config       2   tsconfig.json present with compilerOptions
    export-surface        2   entry point declared and a source index exists
    dependency-integrity  3   every dependency installed, no conflicts or layer violations

Each rule yields PASS, WARNING, or FAIL. Score = earned / total weight,
where PASS earns full weight, WARNING half, FAIL nothing. A module is valid
when no rule FAILs. Rules run independently: a rule that raises is recorded
as a WARNING and its siblings still run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from modrecovery.adapters.base import ModuleInspector
from modrecovery.core.data.layers import require_module, require_modules
from modrecovery.core.models.inspection import InspectionReport
from modrecovery.core.models.module import DependencyInfo
from modrecovery.core.models.validation import RuleResult, ValidationResult, ValidationSummary
from modrecovery.core.services.dependencies import DependencyResolver

logger = logging.getLogger(__name__)


@dataclass
class RuleContext:
    """What a rule may look at. Dependencies are resolved at most once."""

    report: InspectionReport
    scope: str
    resolver: DependencyResolver
    _dependencies: list[DependencyInfo] | None = field(default=None, repr=False)

    async def dependencies(self) -> list[DependencyInfo]:
        if self._dependencies is None:
            self._dependencies = await self.resolver.analyze_report(self.report)
        return self._dependencies


@dataclass(frozen=True)
class Rule:
    rule_id: str
    name: str
    weight: int
    remediation: str
    check: Callable[[RuleContext], Awaitable[tuple[str, list[str]]]]


# ── Rule checks ─────────────────────────────────────────────────
# Each returns (status, messages).


async def _required_files(ctx: RuleContext) -> tuple[str, list[str]]:
    report = ctx.report
    if not report.exists:
        return "FAIL", [f"Module directory not found: {report.path}"]
    missing = []
    if "package.json" not in report.files:
        missing.append("package.json")
    if not report.has_source_dir:
        missing.append("src/")
    if missing:
        return "FAIL", [f"Missing required files: {', '.join(missing)}"]
    if "README.md" not in report.files:
        return "WARNING", ["README.md is missing"]
    return "PASS", []


async def _manifest_shape(ctx: RuleContext) -> tuple[str, list[str]]:
    manifest = ctx.report.manifest
    if manifest is None:
        return "FAIL", ["package.json is missing or unreadable"]
    if not ctx.report.manifest_valid:
        return "FAIL", ["package.json must declare a name and a version"]
    messages = []
    expected = f"{ctx.scope}/{ctx.report.module_id}"
    if manifest.get("name") != expected:
        messages.append(f"Package name {manifest.get('name')!r} should be {expected!r}")
    if not ctx.report.has_build_script:
        messages.append("No build script declared")
    return ("WARNING", messages) if messages else ("PASS", [])


async def _compiler_config(ctx: RuleContext) -> tuple[str, list[str]]:
    config = ctx.report.compiler_config
    if config is None:
        return "FAIL", ["tsconfig.json not found"]
    if not isinstance(config.get("compilerOptions"), dict):
        return "WARNING", ["tsconfig.json has no compilerOptions"]
    return "PASS", []


async def _export_surface(ctx: RuleContext) -> tuple[str, list[str]]:
    manifest = ctx.report.manifest or {}
    declared = [key for key in ("main", "module", "exports") if manifest.get(key)]
    if not declared and ctx.report.source_index is None:
        return "FAIL", ["No entry point declared and no src/index found"]
    messages = []
    if not declared:
        messages.append("package.json declares no main/module/exports entry")
    if ctx.report.source_index is None:
        messages.append("No src/index file found")
    if not manifest.get("types") and not manifest.get("typings"):
        messages.append("No type declarations entry (types)")
    return ("WARNING", messages) if messages else ("PASS", [])


async def _dependency_integrity(ctx: RuleContext) -> tuple[str, list[str]]:
    deps = await ctx.dependencies()
    missing = [d.name for d in deps if d.status == "missing"]
    if missing:
        return "FAIL", [f"Missing dependencies: {', '.join(missing)}"]
    conflicts = [f"{d.name}: {c}" for d in deps for c in d.conflicts]
    if conflicts:
        return "WARNING", conflicts
    return "PASS", []


RULES: tuple[Rule, ...] = (
    Rule("required-files", "Required files", 3,
         "Restore package.json and the src/ directory", _required_files),
    Rule("manifest-shape", "Manifest shape", 2,
         "Declare name, version, and a build script in package.json", _manifest_shape),
    Rule("compiler-config", "Compiler configuration", 2,
         "Add a tsconfig.json with compilerOptions", _compiler_config),
    Rule("export-surface", "Export surface", 2,
         "Declare main/types in package.json and add src/index.ts", _export_surface),
    Rule("dependency-integrity", "Dependency integrity", 3,
         "Install missing dependencies and align conflicting versions", _dependency_integrity),
)


async def run_rule(rule: Rule, ctx: RuleContext) -> RuleResult:
    try:
        status, messages = await rule.check(ctx)
    except Exception as e:
        logger.warning("Rule %s failed on %s: %s", rule.rule_id, ctx.report.module_id, e)
        status, messages = "WARNING", [f"Rule could not run: {e}"]
    return RuleResult(
        rule_id=rule.rule_id,
        name=rule.name,
        status=status,
        severity="error" if status == "FAIL" else "warning",
        weight=rule.weight,
        messages=messages,
        remediation=rule.remediation if status != "PASS" else "",
    )


def score_rules(results: list[RuleResult]) -> int:
    total = sum(r.weight for r in results)
    if not total:
        return 0
    earned = sum(
        r.weight if r.status == "PASS" else r.weight / 2 if r.status == "WARNING" else 0
        for r in results
    )
    return round(100 * earned / total)


class ValidationEngine:
    def __init__(
        self,
        inspector: ModuleInspector,
        resolver: DependencyResolver,
        scope: str = "@workspace",
        rules: tuple[Rule, ...] = RULES,
    ):
        self._inspector = inspector
        self._resolver = resolver
        self._scope = scope
        self._rules = rules

    async def validate_module(self, module_id: str) -> ValidationResult:
        """Run every rule against one module.

        Raises:
            InvalidArgumentError: Unknown module id.
        """
        require_module(module_id)
        try:
            report = await self._inspector.inspect(module_id)
        except Exception as e:
            logger.warning("Cannot inspect %s for validation: %s", module_id, e)
            return ValidationResult(
                module_id=module_id,
                is_valid=False,
                score=0,
                errors=[f"Inspection failed: {e}"],
            )

        ctx = RuleContext(report=report, scope=self._scope, resolver=self._resolver)
        results = [await run_rule(rule, ctx) for rule in self._rules]

        errors = [f"{r.rule_id}: {m}" for r in results if r.status == "FAIL" for m in r.messages]
        warnings = [
            f"{r.rule_id}: {m}" for r in results if r.status == "WARNING" for m in r.messages
        ]
        result = ValidationResult(
            module_id=module_id,
            is_valid=not any(r.status == "FAIL" for r in results),
            score=score_rules(results),
            errors=errors,
            warnings=warnings,
            details={
                "rules": [r.model_dump() for r in results],
                "passed": sum(1 for r in results if r.status == "PASS"),
                "failed": sum(1 for r in results if r.status == "FAIL"),
                "warnings": sum(1 for r in results if r.status == "WARNING"),
            },
        )
        logger.debug("Validated %s: valid=%s score=%d", module_id, result.is_valid, result.score)
        return result

    async def validate_modules(self, module_ids: list[str] | None = None) -> ValidationSummary:
        """Validate a selection (``None`` = every module) concurrently."""
        selected = require_modules(module_ids)
        results = list(await asyncio.gather(*(self.validate_module(m) for m in selected)))
        return summarize(results)


def summarize(results: list[ValidationResult]) -> ValidationSummary:
    valid = sum(1 for r in results if r.is_valid)
    recommendations = []
    for result in results:
        for rule in result.details.get("rules", []):
            if rule["status"] == "FAIL":
                recommendations.append(f"[{result.module_id}] {rule['remediation']}")
        if not result.details:
            recommendations.append(f"[{result.module_id}] Investigate why the module cannot be inspected")
    if results and not recommendations:
        recommendations.append("All modules passed validation")
    return ValidationSummary(
        total_modules=len(results),
        valid_modules=valid,
        invalid_modules=len(results) - valid,
        average_score=round(sum(r.score for r in results) / len(results), 2) if results else 0.0,
        results=results,
        recommendations=recommendations,
    )
