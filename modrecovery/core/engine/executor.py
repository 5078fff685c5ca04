"""
Action dispatcher — turn module work into Actions and run them.

Recovery operations never build Actions themselves. They ask the
dispatcher to "stabilize auth" or "run the core-integrations tests", and
the dispatcher resolves the configured command, the module directory,
and the collaborator role, then executes through the adapter registry.

Flow:
    (module, capability) → build action → registry.execute_action → receipt
"""

from __future__ import annotations

import logging

from modrecovery.adapters.base import BUILDER, TEST_RUNNER
from modrecovery.adapters.registry import AdapterRegistry
from modrecovery.core.models.action import Action, Capability, Receipt
from modrecovery.core.models.config import EngineConfig
from modrecovery.core.observability.metrics import MetricsRegistry

logger = logging.getLogger(__name__)


class ActionDispatcher:
    def __init__(
        self,
        registry: AdapterRegistry,
        config: EngineConfig,
        metrics: MetricsRegistry | None = None,
    ):
        self._registry = registry
        self._config = config
        self._metrics = metrics

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    def build_module_action(self, module_id: str, capability: Capability) -> Action:
        return Action(
            id=f"module:{module_id}:{capability.value}",
            adapter=BUILDER,
            capability=capability,
            for_module=module_id,
            params={
                "command": self._config.command_for(module_id, capability.value),
                "timeout": self._config.command_timeout,
            },
        )

    def build_integration_action(self, category: str, module_ids: list[str]) -> Action:
        return Action(
            id=f"integration:{category}:{Capability.INTEGRATION.value}",
            adapter=TEST_RUNNER,
            capability=Capability.INTEGRATION,
            params={
                "command": self._config.integration_tests.get(category, ""),
                "timeout": self._config.command_timeout,
                "modules": list(module_ids),
            },
        )

    async def run_module_action(self, module_id: str, capability: Capability) -> Receipt:
        action = self.build_module_action(module_id, capability)
        receipt = await self._registry.execute_action(
            action,
            workspace_root=self._config.workspace.root,
            module_path=self._config.module_path(module_id),
        )
        self._record(action, receipt)
        return receipt

    async def run_integration(self, category: str, module_ids: list[str]) -> Receipt:
        action = self.build_integration_action(category, module_ids)
        receipt = await self._registry.execute_action(
            action, workspace_root=self._config.workspace.root,
        )
        self._record(action, receipt)
        return receipt

    def _record(self, action: Action, receipt: Receipt) -> None:
        if receipt.failed:
            logger.warning("%s failed: %s", action.id, receipt.error)
        else:
            logger.info("%s %s (%dms)", action.id, receipt.status, receipt.duration_ms)
        if self._metrics is not None:
            self._metrics.counter(
                "module_actions", capability=action.capability.value, status=receipt.status,
            ).inc()
