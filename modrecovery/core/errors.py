"""
Error taxonomy — the only exceptions the engine surfaces to callers.

Every error carries a stable ``code`` that the outer surfaces (HTTP, CLI)
map to their own conventions:

    invalid-argument     bad or unknown identifiers
    not-found            unknown session / module / phase
    failed-precondition  ordering or dependency violation, re-completing a phase
    internal             unexpected collaborator failure
"""

from __future__ import annotations

from typing import Any


class RecoveryError(Exception):
    """Base class for all engine errors."""

    code = "internal"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "error": self.message,
            "details": self.details,
        }


class InvalidArgumentError(RecoveryError):
    """A caller supplied an unknown or malformed identifier."""

    code = "invalid-argument"


class NotFoundError(RecoveryError):
    """A referenced session, module, or phase does not exist."""

    code = "not-found"


class FailedPreconditionError(RecoveryError):
    """The request is valid but the current state does not allow it."""

    code = "failed-precondition"


class InternalError(RecoveryError):
    """An unexpected failure inside the engine or a collaborator."""

    code = "internal"


class PhaseExecutionError(InternalError):
    """Raised by a phase body when the phase cannot complete.

    The orchestrator converts this (and any other exception escaping a
    phase body) into a failed ``PhaseResult``; it never leaks to callers.
    """

    def __init__(self, phase: int, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.phase = phase
