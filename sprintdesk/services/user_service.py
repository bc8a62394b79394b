from __future__ import annotations

import hmac
import logging
import secrets
from typing import Dict, List, Mapping, Sequence

from ..core.access import AccessTarget, Action, require
from ..core.clock import Clock
from ..core.errors import AuthenticationError, InvalidStateError, NotFoundError
from ..schemas.team import SYSTEM_ACTOR, ActivityEntry, normalize_assignees
from ..schemas.user import ActivityCounters, Role, User
from ..store.repository import StateRepository

TOKEN_BYTES = 16


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


class UserService:
    def __init__(self, repository: StateRepository, clock: Clock, valid_teams: Sequence[str] = ()) -> None:
        self.repository = repository
        self.clock = clock
        self.valid_teams = list(valid_teams)
        self._logger = logging.getLogger(__name__)

    async def authenticate(self, token: str) -> User:
        """Resolve an opaque token to its user."""
        if not token:
            raise AuthenticationError("Missing token")

        users = await self.repository.load_users()
        for user in users.values():
            if hmac.compare_digest(user.token.encode(), token.encode()):
                return user

        self._logger.warning("Rejected unknown token")
        raise AuthenticationError("Invalid token")

    async def get_user(self, user_id: str) -> User:
        users = await self.repository.load_users()
        user = users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def list_users(self, actor: User) -> List[User]:
        require(actor, Action.VIEW_GLOBAL_METRICS, AccessTarget())
        users = await self.repository.load_users()
        return sorted(users.values(), key=lambda u: (u.team, u.display_name))

    async def change_user_role(self, actor: User, user_id: str, role: Role) -> User:
        require(actor, Action.CHANGE_USER_ROLE, AccessTarget())

        async with self.repository.mutate_users() as users:
            user = users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            previous = user.role
            user.role = role
            user.last_activity_at = self.clock.now()

        self._logger.info(
            "Role of %s changed from %s to %s by %s", user_id, previous.value, role.value, actor.id
        )
        return user

    async def change_user_team(self, actor: User, user_id: str, team_id: str) -> User:
        """
        Move a user to another team.

        The user is removed from every task of their previous team (tasks left
        without a named assignee fall back to the unassigned sentinel) and their
        activity counters start over. Members of other teams sharing the display
        name keep their assignments.
        """
        require(actor, Action.CHANGE_USER_TEAM, AccessTarget())
        if team_id not in self.valid_teams:
            raise InvalidStateError(f"Unknown team {team_id}; expected one of {', '.join(self.valid_teams)}")

        user = await self.get_user(user_id)
        if user.team == team_id:
            raise InvalidStateError(f"User {user_id} already belongs to {team_id}")
        previous_team = user.team

        unassigned = 0
        if await self.repository.team_exists(previous_team):
            unassigned = await self._unassign_from_team(previous_team, user.display_name, team_id)

        async with self.repository.mutate_users() as users:
            user = users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.team = team_id
            user.counters = ActivityCounters()
            user.last_activity_at = self.clock.now()

        self._logger.info(
            "User %s moved from %s to %s by %s (%d tasks unassigned)",
            user_id, previous_team, team_id, actor.id, unassigned
        )
        return user

    async def _unassign_from_team(self, old_team: str, display_name: str, new_team: str) -> int:
        changed = 0
        async with self.repository.mutate_team(old_team) as team:
            now = self.clock.now()
            for project in team.projects.values():
                for sprint in project.sprints.values():
                    for task in sprint.tasks.values():
                        if display_name not in task.assignees:
                            continue
                        task.assignees = normalize_assignees(n for n in task.assignees if n != display_name)
                        task.activity_log.append(ActivityEntry(
                            at=now,
                            actor=SYSTEM_ACTOR,
                            action="user_moved",
                            comment=f"{display_name} moved from {old_team} to {new_team}",
                        ))
                        changed += 1
        return changed

    async def regenerate_user_token(self, actor: User, user_id: str) -> str:
        require(actor, Action.MANAGE_TOKENS, AccessTarget())

        token = generate_token()
        async with self.repository.mutate_users() as users:
            user = users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.token = token

        self._logger.info("Token regenerated for %s by %s", user_id, actor.id)
        return token

    async def increment_user_seconds(self, user_id: str, seconds: int) -> User:
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            raise InvalidStateError(f"Call time must be a whole number of seconds, got {seconds!r}")
        if seconds < 0:
            raise InvalidStateError("Call time cannot be negative")

        async with self.repository.mutate_users() as users:
            user = users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.counters.seconds_in_call += seconds
            user.last_activity_at = self.clock.now()

        self._logger.debug("Added %ds of call time to %s", seconds, user_id)
        return user

    async def apply_task_counters(
        self, team_id: str, assigned: Mapping[str, int], completed: Mapping[str, int]
    ) -> None:
        """
        Adjust task counters of ``team_id`` members addressed by display name.

        Unknown names are skipped; counters never go below zero.
        """
        if not any(assigned.values()) and not any(completed.values()):
            return

        async with self.repository.mutate_users() as users:
            by_name: Dict[str, User] = {u.display_name: u for u in users.values() if u.team == team_id}
            now = self.clock.now()
            for name, delta in assigned.items():
                user = by_name.get(name)
                if user is not None and delta:
                    user.counters.tasks_assigned = max(0, user.counters.tasks_assigned + delta)
                    user.last_activity_at = now
            for name, delta in completed.items():
                user = by_name.get(name)
                if user is not None and delta:
                    user.counters.tasks_completed = max(0, user.counters.tasks_completed + delta)
                    user.last_activity_at = now
