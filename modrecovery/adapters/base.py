"""
Adapter base — the contracts between engine and collaborators.

Two kinds of collaborator exist:

    ModuleInspector   reads raw facts about a module (manifest, compiler
                      config, installed dependencies, last build outcome)
    Adapter           performs work (stabilize, install, build, integration
                      tests) and returns a Receipt

The engine only talks to collaborators through these contracts, never
directly to the filesystem, a compiler, or a package manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from modrecovery.core.models.action import Action, Receipt
from modrecovery.core.models.inspection import InspectionReport

# Registry names of the two work-performing roles.
BUILDER = "builder"
TEST_RUNNER = "tests"


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    workspace_root: str = "."
    module_path: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str:
        """Resolved working directory for the action."""
        if self.module_path:
            return f"{self.workspace_root}/{self.module_path}"
        return self.workspace_root


class Adapter(ABC):
    """Abstract base class for work-performing collaborators.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry under a role name
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'builder', 'tests')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool is available. Fast, never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    async def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ModuleInspector(ABC):
    """Source of raw facts about modules.

    Unlike adapters, inspectors MAY raise: the health checker downgrades
    a failed inspection to an offline result.
    """

    @abstractmethod
    async def inspect(self, module_id: str) -> InspectionReport:
        """Gather the current facts about one module."""
