"""
Audit ledger — append-only record of recovery session lifecycle events.

Every session event (created, phase completed / failed / skipped,
cancelled, finished) is appended as one JSON line. Skips are always
audited: they are the only way to mark a phase complete without running it.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_PATH = ".state/recovery-audit.ndjson"

AuditEvent = Literal[
    "session_created",
    "session_started",
    "phase_completed",
    "phase_failed",
    "phase_skipped",
    "session_cancelled",
    "session_finished",
]


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    session_id: str
    event: AuditEvent
    phase: int | None = None
    status: str = ""
    modules_affected: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    reason: str = ""
    errors: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only NDJSON ledger writer.

    Write failures are logged, never raised: losing an audit line must not
    fail a recovery session.
    """

    def __init__(self, path: Path | None = None):
        self._path = path or Path(DEFAULT_AUDIT_PATH)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s/%s", entry.session_id, entry.event)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self, session_id: str | None = None) -> list[AuditEntry]:
        """Read entries, oldest first, optionally for one session."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = AuditEntry.model_validate(json.loads(line))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
                        continue
                    if session_id is None or entry.session_id == session_id:
                        entries.append(entry)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries
