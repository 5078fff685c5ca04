"""
Module commands — the actions ``update_module`` accepts.

Each action is a tagged variant keyed on ``action``; each has its own typed
result. ``parse_module_action`` turns a raw request body into one of them.

    {"action": "initialize", "module_id": "auth"}
    {"action": "build", "module_id": "payments", "force": true}
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from modrecovery.core.errors import InvalidArgumentError
from modrecovery.core.models.recovery import BuildReport, RecoveryProgress, RecoveryState
from modrecovery.core.models.validation import ValidationResult

ACTION_NAMES = ("initialize", "recover", "validate", "reset", "build")


# ── Actions ─────────────────────────────────────────────────────


class InitializeAction(BaseModel):
    action: Literal["initialize"] = "initialize"
    module_id: str


class RecoverAction(BaseModel):
    action: Literal["recover"] = "recover"
    module_id: str


class ValidateAction(BaseModel):
    action: Literal["validate"] = "validate"
    module_id: str


class ResetAction(BaseModel):
    """Drop the module's recovery state and start again from phase 0."""

    action: Literal["reset"] = "reset"
    module_id: str


class BuildAction(BaseModel):
    action: Literal["build"] = "build"
    module_id: str
    force: bool = False


ModuleAction = Annotated[
    InitializeAction | RecoverAction | ValidateAction | ResetAction | BuildAction,
    Field(discriminator="action"),
]


# ── Results ─────────────────────────────────────────────────────


class InitializeResult(BaseModel):
    action: Literal["initialize"] = "initialize"
    module_id: str
    success: bool = True
    message: str = ""
    state: RecoveryState


class RecoverResult(BaseModel):
    action: Literal["recover"] = "recover"
    module_id: str
    success: bool
    message: str = ""
    progress: RecoveryProgress


class ValidateResult(BaseModel):
    action: Literal["validate"] = "validate"
    module_id: str
    success: bool
    message: str = ""
    validation: ValidationResult


class ResetResult(BaseModel):
    action: Literal["reset"] = "reset"
    module_id: str
    success: bool = True
    message: str = ""
    state: RecoveryState


class BuildResult(BaseModel):
    action: Literal["build"] = "build"
    module_id: str
    success: bool
    message: str = ""
    report: BuildReport


ActionResult = Annotated[
    InitializeResult | RecoverResult | ValidateResult | ResetResult | BuildResult,
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(ModuleAction)


def parse_module_action(data: dict[str, Any]) -> Any:
    """Validate a raw action request.

    Raises:
        InvalidArgumentError: Unknown action name or malformed payload.
    """
    name = data.get("action")
    if not name:
        raise InvalidArgumentError(
            f"action is required. Valid actions: {', '.join(ACTION_NAMES)}"
        )
    if name not in ACTION_NAMES:
        raise InvalidArgumentError(
            f"Invalid action: {name}. Valid actions: {', '.join(ACTION_NAMES)}",
            details={"action": name},
        )
    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise InvalidArgumentError(
            f"Invalid {name} action: {e.errors()[0]['msg']}",
            details={"action": name},
        ) from e
