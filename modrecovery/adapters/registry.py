"""
Adapter registry — central dispatch for all collaborator work.

The registry is the single point of adapter management. It handles
registration, lookup, mock mode, circuit breaking, and action execution.
The engine never talks to adapters directly — always through the registry.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from modrecovery.adapters.base import Adapter, ExecutionContext
from modrecovery.core.models.action import Action, Receipt
from modrecovery.core.reliability.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register adapters by role name
        - Mock mode: route every action to a mock that always succeeds
        - Per-module circuit breakers keyed ``<adapter>:<module>``
        - Execute actions, always returning a Receipt
    """

    def __init__(
        self,
        mock_mode: bool = False,
        circuit_breakers: CircuitBreakerRegistry | None = None,
    ):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None
        self._circuit_breakers = circuit_breakers

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    @property
    def circuit_breakers(self) -> CircuitBreakerRegistry | None:
        return self._circuit_breakers

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        """Enable or disable mock mode.

        Args:
            enabled: Whether to use mock mode.
            mock_adapter: Optional custom mock adapter. If None, uses default.
        """
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    @staticmethod
    def breaker_key(action: Action) -> str:
        if action.for_module:
            return f"{action.adapter}:{action.for_module}"
        return action.adapter

    async def execute_action(
        self,
        action: Action,
        workspace_root: str = ".",
        module_path: str | None = None,
    ) -> Receipt:
        """Execute an action through the appropriate adapter.

        This is the main dispatch method. It:
        1. Resolves the adapter (or mock)
        2. Builds the execution context
        3. Validates the action
        4. Checks the circuit breaker
        5. Executes
        6. Returns a Receipt (never raises)
        """
        start_time = time.monotonic()

        context = ExecutionContext(
            action=action,
            workspace_root=workspace_root,
            module_path=module_path,
            params=action.params,
        )

        adapter: Adapter | None = None
        if self._mock_mode and self._mock_adapter:
            adapter = self._mock_adapter
        elif self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.adapter}:{action.id} executed",
                metadata={"mock": True},
            )
        else:
            adapter = self.get(action.adapter)

        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        try:
            is_valid, error_msg = adapter.validate(context)
            if not is_valid:
                return Receipt.failure(
                    adapter=action.adapter,
                    action_id=action.id,
                    error=f"Validation failed: {error_msg}",
                )
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )

        # ── Circuit breaker check ────────────────────────────────
        key = self.breaker_key(action)
        if self._circuit_breakers:
            cb = self._circuit_breakers.get_or_create(key)
            if not cb.allow_request():
                return Receipt.failure(
                    adapter=action.adapter,
                    action_id=action.id,
                    error=f"Circuit breaker OPEN for '{key}'",
                    metadata={"circuit_state": cb.state.value},
                )

        try:
            receipt = await adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        # ── Circuit breaker record ───────────────────────────────
        if self._circuit_breakers:
            cb = self._circuit_breakers.get_or_create(key)
            if receipt.ok:
                cb.record_success()
            elif receipt.failed:
                cb.record_failure()

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
