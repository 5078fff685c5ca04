"""
Circuit breaker — stop hammering a module whose tooling keeps failing.

One breaker exists per ``<adapter>:<module>`` pair, so a module whose
build is broken does not block builds of its neighbours.

States:
    CLOSED    → Normal operation. Consecutive failures counted.
    OPEN      → Actions rejected with a failed receipt. Timer running.
    HALF_OPEN → One trial action allowed to test recovery.

Transitions:
    CLOSED → OPEN:      failure_count >= threshold
    OPEN → HALF_OPEN:   recovery_timeout elapsed
    HALF_OPEN → CLOSED: trial succeeds
    HALF_OPEN → OPEN:   trial fails
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from modrecovery.core.models.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Breaker for one collaborator/module pair.

    Args:
        name: ``<adapter>:<module>`` or a bare adapter name.
        failure_threshold: Consecutive failures before opening.
        recovery_timeout: Seconds before a trial action is let through.
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 30.0

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    total_rejections: int = 0

    @property
    def module_id(self) -> str | None:
        _, _, module = self.name.partition(":")
        return module or None

    def allow_request(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if time.monotonic() - self.last_failure_time >= self.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
                return True
            self.total_rejections += 1
            return False

        return True

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)
        self.failure_count = 0

    def record_failure(self) -> None:
        self.last_failure_time = time.monotonic()

        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self.state == CircuitState.CLOSED:
            self.failure_count += 1
            if self.failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker closed (used by workspace reset)."""
        self._transition(CircuitState.CLOSED)
        self.failure_count = 0
        self.total_rejections = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "module_id": self.module_id,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "total_rejections": self.total_rejections,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }

    def _transition(self, new_state: CircuitState) -> None:
        old = self.state
        if old == new_state:
            return
        self.state = new_state
        if new_state == CircuitState.CLOSED:
            self.failure_count = 0
        logger.info("Circuit breaker '%s': %s → %s", self.name, old.value, new_state.value)


@dataclass
class CircuitBreakerRegistry:
    """All breakers, created lazily on first use."""

    breakers: dict[str, CircuitBreaker] = field(default_factory=dict)
    default_threshold: int = 5
    default_timeout: float = 30.0

    @classmethod
    def from_config(cls, config: CircuitBreakerConfig) -> CircuitBreakerRegistry:
        return cls(
            default_threshold=config.failure_threshold,
            default_timeout=config.recovery_timeout,
        )

    def get_or_create(self, name: str) -> CircuitBreaker:
        if name not in self.breakers:
            self.breakers[name] = CircuitBreaker(
                name=name,
                failure_threshold=self.default_threshold,
                recovery_timeout=self.default_timeout,
            )
        return self.breakers[name]

    def get_status(self) -> dict[str, dict[str, Any]]:
        return {name: cb.to_dict() for name, cb in self.breakers.items()}

    def reset_module(self, module_id: str) -> int:
        """Close every breaker for one module. Returns how many were reset."""
        count = 0
        for cb in self.breakers.values():
            if cb.module_id == module_id:
                cb.reset()
                count += 1
        return count

    def reset_all(self) -> None:
        for cb in self.breakers.values():
            cb.reset()
