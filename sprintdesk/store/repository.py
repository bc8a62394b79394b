"""
Validated, serialized access to the document store.

Every mutation of a team goes through ``mutate_team``, which holds that
team's lock across read, mutate and write so concurrent requests and the
scheduler never clobber each other. Reads do not lock.

Lock order: a team lock may be held while the users lock is taken, never
the reverse.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, TypeVar

from pydantic import TypeAdapter, ValidationError

from ..core.errors import InvalidStateError, NotFoundError, StoreIOError, StoreUnavailableError
from ..schemas.team import TeamDocument
from ..schemas.user import User
from .base import DocumentStore

T = TypeVar("T")

_users_adapter = TypeAdapter(Dict[str, User])


class StateRepository:
    def __init__(
        self,
        store: DocumentStore,
        retry_attempts: int = 3,
        retry_delay: float = 0.1,
        timeout: float = 5.0,
    ) -> None:
        self.store = store
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._team_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        self._users_lock = asyncio.Lock()
        self._logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, store: DocumentStore, settings) -> "StateRepository":
        return cls(
            store,
            retry_attempts=settings.store_retry_attempts,
            retry_delay=settings.store_retry_delay,
            timeout=settings.store_timeout,
        )

    async def _call(self, operation: str, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run one store call with a timeout, retrying with exponential backoff."""
        last_error: Exception = StoreIOError("no attempt made")
        for attempt in range(self.retry_attempts + 1):
            try:
                return await asyncio.wait_for(func(*args), timeout=self.timeout)
            except (StoreIOError, asyncio.TimeoutError) as e:
                last_error = e
                self._logger.warning(
                    "Store %s failed (attempt %d/%d): %s",
                    operation, attempt + 1, self.retry_attempts + 1, str(e) or "timeout"
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))

        self._logger.error("Store %s unavailable after %d attempts", operation, self.retry_attempts + 1)
        raise StoreUnavailableError(f"Store {operation} failed: {str(last_error) or 'timeout'}")

    @asynccontextmanager
    async def _team_lock(self, team_id: str) -> AsyncIterator[None]:
        """Hold the write lock of ``team_id``; idle locks are discarded."""
        lock = self._team_locks.setdefault(team_id, asyncio.Lock())
        self._lock_users[team_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[team_id] -= 1
            if not self._lock_users[team_id]:
                del self._lock_users[team_id]
                del self._team_locks[team_id]

    # Teams

    def _parse_team(self, team_id: str, raw: Dict[str, Any]) -> TeamDocument:
        try:
            return TeamDocument.model_validate(raw)
        except ValidationError as e:
            raise InvalidStateError(f"Team document {team_id} is malformed: {e}") from e

    async def list_team_ids(self) -> List[str]:
        return await self._call("list_team_ids", self.store.list_team_ids)

    async def team_exists(self, team_id: str) -> bool:
        return await self._call("read_team", self.store.read_team, team_id) is not None

    async def load_team(self, team_id: str) -> TeamDocument:
        raw = await self._call("read_team", self.store.read_team, team_id)
        if raw is None:
            raise NotFoundError("Team", team_id)
        return self._parse_team(team_id, raw)

    async def load_teams(self) -> Dict[str, TeamDocument]:
        raw = await self._call("read_teams", self.store.read_teams)
        return {team_id: self._parse_team(team_id, doc) for team_id, doc in raw.items()}

    async def save_team(self, team_id: str, team: TeamDocument) -> None:
        async with self._team_lock(team_id):
            await self._call("write_team", self.store.write_team, team_id, team.model_dump(mode="json"))

    @asynccontextmanager
    async def mutate_team(self, team_id: str, create: bool = False) -> AsyncIterator[TeamDocument]:
        """
        Yield the team document under its write lock and persist it on exit.

        The document is written only when the block exits cleanly and the
        content actually changed. With ``create`` a missing team starts as an
        empty, not-started document.
        """
        async with self._team_lock(team_id):
            raw = await self._call("read_team", self.store.read_team, team_id)
            if raw is None:
                if not create:
                    raise NotFoundError("Team", team_id)
                team = TeamDocument(name=team_id)
                before = None
            else:
                team = self._parse_team(team_id, raw)
                before = team.model_dump(mode="json")

            yield team

            after = team.model_dump(mode="json")
            if after != before:
                await self._call("write_team", self.store.write_team, team_id, after)
                self._logger.debug("Persisted team %s", team_id)

    # Users

    async def load_users(self) -> Dict[str, User]:
        raw = await self._call("read_users", self.store.read_users)
        try:
            return _users_adapter.validate_python(raw)
        except ValidationError as e:
            raise InvalidStateError(f"Users document is malformed: {e}") from e

    async def save_users(self, users: Dict[str, User]) -> None:
        async with self._users_lock:
            await self._call("write_users", self.store.write_users, _users_adapter.dump_python(users, mode="json"))

    @asynccontextmanager
    async def mutate_users(self) -> AsyncIterator[Dict[str, User]]:
        async with self._users_lock:
            users = await self.load_users()
            before = _users_adapter.dump_python(users, mode="json")

            yield users

            after = _users_adapter.dump_python(users, mode="json")
            if after != before:
                await self._call("write_users", self.store.write_users, after)
                self._logger.debug("Persisted users document (%d users)", len(users))
