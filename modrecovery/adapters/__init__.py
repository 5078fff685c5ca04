"""Adapters — collaborator bindings for the recovery engine.

Public re-exports for convenient access.
"""

from modrecovery.adapters.base import (
    BUILDER,
    TEST_RUNNER,
    Adapter,
    ExecutionContext,
    ModuleInspector,
)
from modrecovery.adapters.mock import MockAdapter, MockInspector
from modrecovery.adapters.registry import AdapterRegistry

__all__ = [
    "BUILDER",
    "TEST_RUNNER",
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "MockInspector",
    "ModuleInspector",
]
