"""
Validation models — rule outcomes, per-module results, batch summaries.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

RuleStatus = Literal["PASS", "FAIL", "WARNING"]


class RuleResult(BaseModel):
    """Outcome of one rule against one module."""

    rule_id: str
    name: str
    status: RuleStatus = "PASS"
    severity: Literal["error", "warning"] = "error"
    weight: int = 1
    messages: list[str] = Field(default_factory=list)
    remediation: str = ""


class ValidationResult(BaseModel):
    module_id: str
    is_valid: bool = False
    score: int = 0
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    def fingerprint(self) -> dict[str, Any]:
        """Everything except the timestamp, for change comparison."""
        return self.model_dump(mode="json", exclude={"timestamp"})


class ValidationSummary(BaseModel):
    total_modules: int = 0
    valid_modules: int = 0
    invalid_modules: int = 0
    average_score: float = 0.0
    results: list[ValidationResult] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
