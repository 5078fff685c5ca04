"""
Session registry — recovery sessions keyed by session id.

Backed by an injected KeyValueStore. Creation is atomic (``add``) and
every change is a read-modify-write through ``update``, so concurrent
callers never lose each other's writes. Sessions are never evicted.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable

from modrecovery.core.errors import InvalidArgumentError, NotFoundError
from modrecovery.core.models.session import RecoverySession
from modrecovery.core.persistence.store import KeyValueStore

logger = logging.getLogger(__name__)


def require_session_id(session_id: str | None) -> str:
    if not session_id or not str(session_id).strip():
        raise InvalidArgumentError("sessionId is required")
    return str(session_id)


class SessionRegistry:
    def __init__(self, store: KeyValueStore[RecoverySession]):
        self._store = store

    async def create(self, session: RecoverySession) -> RecoverySession:
        if not await self._store.add(session.session_id, session):
            raise InvalidArgumentError(
                f"Recovery session {session.session_id} already exists",
                details={"session_id": session.session_id},
            )
        logger.debug("Session registered: %s", session.session_id)
        return session

    async def exists(self, session_id: str) -> bool:
        return await self._store.get(session_id) is not None

    async def get(self, session_id: str) -> RecoverySession | None:
        return await self._store.get(require_session_id(session_id))

    async def require(self, session_id: str) -> RecoverySession:
        session = await self.get(session_id)
        if session is None:
            raise NotFoundError(
                f"Recovery session {session_id} not found",
                details={"session_id": session_id},
            )
        return session

    async def update(
        self, session_id: str, fn: Callable[[RecoverySession], None],
    ) -> RecoverySession:
        updated = await self._store.update(session_id, fn)
        if updated is None:
            raise NotFoundError(
                f"Recovery session {session_id} not found",
                details={"session_id": session_id},
            )
        return updated

    async def all(self) -> list[RecoverySession]:
        return await self._store.values()

    async def counts(self) -> dict[str, int]:
        sessions = await self.all()
        return {"total": len(sessions), **Counter(s.status for s in sessions)}
