"""
Action and Receipt models — the collaborator execution contract.

The engine asks collaborators (builder, test runner) to do work by sending
Actions through the adapter registry and gets Receipts back. Receipts carry
failures as data: a broken build is a ``failed`` receipt, not an exception.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Capability(StrEnum):
    """Things a collaborator can be asked to do."""

    STABILIZE = "stabilize"
    INSTALL = "install"
    BUILD = "build"
    INTEGRATION = "integration"


class Action(BaseModel):
    """A requested collaborator operation.

    ``for_module`` is set for per-module work (stabilize, install, build);
    integration categories run workspace-wide and carry their scope in
    ``params["modules"]``.
    """

    id: str                         # "<scope>:<target>:<capability>"
    adapter: str                    # registry name of the collaborator
    capability: Capability
    for_module: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Outcome of one action. Never raised, always returned."""

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def settled_ok(self) -> bool:
        """Skipped actions (nothing configured to run) count as success."""
        return self.status != "failed"

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
