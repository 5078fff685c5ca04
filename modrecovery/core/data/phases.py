"""
Recovery phase table.

Five phases run strictly in order. Each phase lists the phases that must be
complete before it may execute; by default that is exactly its predecessors,
so the flow is linear.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Final

from modrecovery.core.data.layers import EXECUTION_TIERS
from modrecovery.core.errors import InvalidArgumentError

TOTAL_PHASES: Final = 5


@dataclass(frozen=True)
class PhaseDefinition:
    """Static description of a recovery phase."""

    number: int
    name: str
    description: str
    estimated_duration: int  # ms, reporting only
    dependencies: tuple[int, ...] = ()

    # ── Phase-specific data ──────────────────────────────────────
    critical_modules: tuple[str, ...] = ()
    layer_order: tuple[tuple[str, ...], ...] = ()
    build_order: tuple[tuple[str, ...], ...] = ()
    integration_tests: tuple[str, ...] = ()
    validation_steps: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "phase": self.number,
            "name": self.name,
            "description": self.description,
            "estimated_duration": self.estimated_duration,
            "dependencies": list(self.dependencies),
        }
        if self.critical_modules:
            data["critical_modules"] = list(self.critical_modules)
        if self.layer_order:
            data["layer_order"] = [list(t) for t in self.layer_order]
        if self.build_order:
            data["build_order"] = [list(t) for t in self.build_order]
        if self.integration_tests:
            data["integration_tests"] = list(self.integration_tests)
        if self.validation_steps:
            data["validation_steps"] = list(self.validation_steps)
        return data


PHASES: Final = MappingProxyType({
    1: PhaseDefinition(
        number=1,
        name="Emergency Stabilization",
        description="Stabilize critical modules and resolve immediate issues",
        estimated_duration=60_000,
        critical_modules=("auth", "i18n"),
    ),
    2: PhaseDefinition(
        number=2,
        name="Dependency Resolution",
        description="Resolve module dependencies following layer architecture",
        estimated_duration=120_000,
        dependencies=(1,),
        layer_order=EXECUTION_TIERS,
    ),
    3: PhaseDefinition(
        number=3,
        name="Build Recovery",
        description="Restore build capability for all modules",
        estimated_duration=180_000,
        dependencies=(1, 2),
        build_order=EXECUTION_TIERS,
    ),
    4: PhaseDefinition(
        number=4,
        name="Integration Testing",
        description="Verify cross-module integration and compatibility",
        estimated_duration=90_000,
        dependencies=(1, 2, 3),
        integration_tests=(
            "core-integrations",
            "layer-integrations",
            "cross-module-compatibility",
        ),
    ),
    5: PhaseDefinition(
        number=5,
        name="Validation and Completion",
        description="Final validation and cleanup",
        estimated_duration=60_000,
        dependencies=(1, 2, 3, 4),
        validation_steps=(
            "module-validation",
            "workspace-health-update",
            "recovery-report-generation",
        ),
    ),
})

EXECUTION_ORDER: Final[tuple[int, ...]] = tuple(sorted(PHASES))


def parse_phase_number(value: Any) -> int:
    """Coerce a caller-supplied phase number, rejecting anything outside 1..5."""
    if value is None or value == "":
        raise InvalidArgumentError("phaseNumber is required")
    if isinstance(value, float) and not value.is_integer():
        raise InvalidArgumentError(
            "phaseNumber must be an integer",
            details={"received": str(value)},
        )
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(
            f"phaseNumber must be between 1 and {TOTAL_PHASES}",
            details={"received": str(value)},
        ) from None
    if isinstance(value, bool) or number not in PHASES:
        raise InvalidArgumentError(
            f"phaseNumber must be between 1 and {TOTAL_PHASES}",
            details={"received": str(value)},
        )
    return number


def get_phase_definition(value: Any) -> PhaseDefinition:
    return PHASES[parse_phase_number(value)]


def phase_name(number: int) -> str:
    definition = PHASES.get(number)
    return definition.name if definition else "Unknown Phase"


def unblocks(number: int) -> list[int]:
    """Phases that list ``number`` among their dependencies."""
    return [n for n, p in PHASES.items() if number in p.dependencies]


def total_estimated_duration() -> int:
    return sum(p.estimated_duration for p in PHASES.values())


def phase_dependencies(value: Any) -> dict[str, Any]:
    """Dependency view of one phase: what it needs and what it unblocks."""
    definition = get_phase_definition(value)
    return {
        "phase": definition.number,
        "name": definition.name,
        "depends_on": list(definition.dependencies),
        "unblocks": unblocks(definition.number),
        "execution_order": list(EXECUTION_ORDER),
        "critical_path": [*definition.dependencies, definition.number],
    }
