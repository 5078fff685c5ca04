"""
Engine health — is the recovery engine itself able to do its job?

Distinct from workspace health (how healthy the modules are): this reports
on the engine's own components: collaborator circuit breakers, adapter
availability, and session counts. Served by ``recoveryctl health`` and
``GET /api/health``.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from modrecovery.core.models.session import RecoverySession
from modrecovery.core.reliability.circuit_breaker import CircuitBreakerRegistry, CircuitState

logger = logging.getLogger(__name__)


@dataclass
class ComponentHealth:
    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.components]
        if "unhealthy" in statuses:
            self.status = "unhealthy"
        elif "degraded" in statuses:
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_circuit_breakers(registry: CircuitBreakerRegistry) -> ComponentHealth:
    """Open breakers mean some module's tooling is currently refused.

    That degrades the engine rather than making it unhealthy: other
    modules still recover.
    """
    if not registry.breakers:
        return ComponentHealth(
            name="circuit_breakers",
            status="healthy",
            message="No circuit breakers registered",
        )

    states = Counter(cb.state for cb in registry.breakers.values())
    total = len(registry.breakers)
    open_count = states[CircuitState.OPEN]
    half_open = states[CircuitState.HALF_OPEN]

    if open_count == total:
        status, message = "unhealthy", f"All {total} circuits open"
    elif open_count or half_open:
        status = "degraded"
        message = f"{open_count}/{total} circuits open, {half_open} half-open"
    else:
        status, message = "healthy", f"All {total} circuits closed"

    return ComponentHealth(
        name="circuit_breakers",
        status=status,
        message=message,
        details=registry.get_status(),
    )


def check_adapters(adapter_status: dict[str, dict[str, Any]]) -> ComponentHealth:
    unavailable = [name for name, s in adapter_status.items() if not s["available"]]
    if not adapter_status:
        return ComponentHealth(name="adapters", status="unknown", message="No adapters registered")
    if unavailable:
        return ComponentHealth(
            name="adapters",
            status="unhealthy",
            message=f"Unavailable: {', '.join(unavailable)}",
            details=adapter_status,
        )
    return ComponentHealth(
        name="adapters",
        status="healthy",
        message=f"{len(adapter_status)} adapters available",
        details=adapter_status,
    )


def check_sessions(sessions: list[RecoverySession]) -> ComponentHealth:
    by_status = Counter(s.status for s in sessions)
    return ComponentHealth(
        name="sessions",
        status="healthy",
        message=f"{len(sessions)} sessions, {by_status['running']} running",
        details={"total": len(sessions), **dict(by_status)},
    )


def check_system_health(
    cb_registry: CircuitBreakerRegistry | None = None,
    adapter_status: dict[str, dict[str, Any]] | None = None,
    sessions: list[RecoverySession] | None = None,
    mock_mode: bool = False,
) -> SystemHealth:
    health = SystemHealth()

    if cb_registry is not None:
        health.add(check_circuit_breakers(cb_registry))

    if adapter_status is not None and not mock_mode:
        health.add(check_adapters(adapter_status))

    if sessions is not None:
        health.add(check_sessions(sessions))

    return health
