"""Session store capability for in-flight authorization attempts."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from oauth2_strategy.models.security import AuthorizationAttempt
from oauth2_strategy.services.security import states_match

logger = logging.getLogger(__name__)


class AttemptStore(Protocol):
    """Persists one AuthorizationAttempt per session between redirect and callback."""

    async def save(self, session_id: str, attempt: AuthorizationAttempt) -> None:
        """Store ``attempt`` for the session, replacing any previous one."""
        ...

    async def load(self, session_id: str) -> AuthorizationAttempt | None: ...

    async def invalidate(self, session_id: str, state: str | None = None) -> bool:
        """Remove the session's attempt.

        With ``state`` given, the attempt is removed only if it is the one
        issued with that state; a newer attempt for the session is left in
        place. Must be atomic: of several concurrent calls for one session,
        at most one returns True.

        Returns:
            True if a stored attempt was removed
        """
        ...


class InMemoryAttemptStore:
    """Process-local AttemptStore.

    Entries older than ``max_age`` seconds are purged on every write, so
    abandoned logins don't accumulate.
    """

    def __init__(
        self, max_age: float = 600.0, clock: Callable[[], float] = time.time
    ):
        self.max_age = max_age
        self._clock = clock
        self._attempts: dict[str, AuthorizationAttempt] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._attempts)

    async def save(self, session_id: str, attempt: AuthorizationAttempt) -> None:
        async with self._lock:
            self._purge_expired()
            if session_id in self._attempts:
                logger.debug("Replacing pending authorization attempt for session")
            self._attempts[session_id] = attempt

    async def load(self, session_id: str) -> AuthorizationAttempt | None:
        async with self._lock:
            return self._attempts.get(session_id)

    async def invalidate(self, session_id: str, state: str | None = None) -> bool:
        async with self._lock:
            attempt = self._attempts.get(session_id)
            if attempt is None:
                return False
            if state is not None and not states_match(attempt.state, state):
                return False
            del self._attempts[session_id]
            return True

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            session_id
            for session_id, attempt in self._attempts.items()
            if attempt.is_expired(self.max_age, now)
        ]
        for session_id in expired:
            del self._attempts[session_id]
        if expired:
            logger.debug(f"Purged {len(expired)} expired authorization attempts")
