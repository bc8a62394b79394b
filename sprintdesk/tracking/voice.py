"""
Voice-channel session registry.

The chat gateway reports joins and leaves; the registry keeps the start
time of every open session and reports elapsed seconds through an async
callback, normally ``UserService.increment_user_seconds``.

A session is dropped only once its time has been reported. The bulk
operations report each user independently: a user the callback rejects is
logged and skipped, never stopping the rest.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from ..core.errors import SprintDeskError

logger = logging.getLogger(__name__)

SecondsSink = Callable[[str, int], Awaitable[object]]


class VoiceSessionRegistry:
    def __init__(self, on_elapsed: SecondsSink) -> None:
        self._on_elapsed = on_elapsed
        self._sessions: Dict[str, datetime] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def started_at(self, user_id: str) -> Optional[datetime]:
        return self._sessions.get(user_id)

    async def join(self, user_id: str, at: datetime) -> None:
        """Open a session; joining again first flushes the running one."""
        if user_id in self._sessions:
            await self.leave(user_id, at)
        self._sessions[user_id] = at
        logger.debug("Voice session opened for %s", user_id)

    async def _report(self, user_id: str, at: datetime) -> int:
        seconds = max(0, int((at - self._sessions[user_id]).total_seconds()))
        if seconds:
            await self._on_elapsed(user_id, seconds)
        return seconds

    async def leave(self, user_id: str, at: datetime) -> int:
        """
        Close the user's session and report its length in whole seconds.

        If reporting raises, the session stays open and the error propagates.
        """
        if user_id not in self._sessions:
            return 0

        seconds = await self._report(user_id, at)
        del self._sessions[user_id]
        logger.debug("Voice session closed for %s after %ds", user_id, seconds)
        return seconds

    async def flush_all(self, at: datetime) -> Dict[str, int]:
        """Report every open session up to ``at`` and keep them open from there."""
        flushed = {}
        for user_id in list(self._sessions):
            try:
                flushed[user_id] = await self._report(user_id, at)
            except SprintDeskError:
                logger.exception("Could not report call time for %s; keeping its session", user_id)
                continue
            self._sessions[user_id] = at
        if flushed:
            logger.info("Flushed %d open voice sessions", len(flushed))
        return flushed

    async def close_all(self, at: datetime) -> Dict[str, int]:
        """Close every session; time that cannot be reported is logged and dropped."""
        closed = {}
        for user_id in list(self._sessions):
            try:
                closed[user_id] = await self._report(user_id, at)
            except SprintDeskError:
                logger.exception("Could not report call time for %s; dropping its session", user_id)
            del self._sessions[user_id]
        return closed
