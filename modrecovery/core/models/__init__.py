"""
Domain models — Pydantic types for the recovery engine.

All models are re-exported here for convenient access:

    from modrecovery.core.models import RecoverySession, ModuleHealthCheck, Receipt
"""

from modrecovery.core.models.action import Action, Capability, Receipt
from modrecovery.core.models.commands import (
    BuildAction,
    InitializeAction,
    RecoverAction,
    ResetAction,
    ValidateAction,
    parse_module_action,
)
from modrecovery.core.models.config import EngineConfig
from modrecovery.core.models.inspection import InspectionReport
from modrecovery.core.models.module import (
    BuildHealth,
    DependencyHealth,
    DependencyInfo,
    ModuleHealthCheck,
)
from modrecovery.core.models.recovery import (
    BuildReport,
    BuildStatus,
    RecoveryMetrics,
    RecoveryProgress,
    RecoveryState,
)
from modrecovery.core.models.session import (
    PhaseOptions,
    PhaseProgress,
    PhaseResult,
    RecoverySession,
    SessionProgress,
    WorkspaceHealth,
)
from modrecovery.core.models.validation import RuleResult, ValidationResult, ValidationSummary

__all__ = [
    # action.py
    "Action",
    "Capability",
    "Receipt",
    # commands.py
    "BuildAction",
    "InitializeAction",
    "RecoverAction",
    "ResetAction",
    "ValidateAction",
    "parse_module_action",
    # config.py
    "EngineConfig",
    # inspection.py
    "InspectionReport",
    # module.py
    "BuildHealth",
    "DependencyHealth",
    "DependencyInfo",
    "ModuleHealthCheck",
    # recovery.py
    "BuildReport",
    "BuildStatus",
    "RecoveryMetrics",
    "RecoveryProgress",
    "RecoveryState",
    # session.py
    "PhaseOptions",
    "PhaseProgress",
    "PhaseResult",
    "RecoverySession",
    "SessionProgress",
    "WorkspaceHealth",
    # validation.py
    "RuleResult",
    "ValidationResult",
    "ValidationSummary",
]
