"""
Session leases — at most one executor per recovery session.

All callers share one event loop, so check-and-set on a plain set is
atomic; no lock is needed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from modrecovery.core.errors import FailedPreconditionError

logger = logging.getLogger(__name__)


class SessionLeases:
    def __init__(self) -> None:
        self._held: set[str] = set()

    def acquire(self, session_id: str) -> bool:
        if session_id in self._held:
            return False
        self._held.add(session_id)
        return True

    def release(self, session_id: str) -> None:
        self._held.discard(session_id)

    def is_held(self, session_id: str) -> bool:
        return session_id in self._held

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        """Hold the lease for the duration of the block.

        Raises:
            FailedPreconditionError: Another caller is executing the session.
        """
        if not self.acquire(session_id):
            raise FailedPreconditionError(
                f"Recovery session {session_id} is already executing",
                details={"session_id": session_id},
            )
        logger.debug("Lease acquired: %s", session_id)
        try:
            yield
        finally:
            self.release(session_id)
            logger.debug("Lease released: %s", session_id)
