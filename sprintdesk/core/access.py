"""
Role-based access decisions.

``authorize`` is a pure function of the acting user, the action and the
target it touches. It never loads state and never raises; ``require`` turns
a denial into a ``PermissionDeniedError`` for the services.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ..schemas.team import TaskState
from ..schemas.user import Role, User
from .errors import DenialReason, PermissionDeniedError

logger = logging.getLogger(__name__)


class Action(str, Enum):
    READ_BACKLOG = "read_backlog"
    READ_SPRINT = "read_sprint"
    READ_TASKS = "read_tasks"
    CREATE_BACKLOG_ITEM = "create_backlog_item"
    EDIT_BACKLOG_ITEM = "edit_backlog_item"
    SELECT_SPRINT_BACKLOG = "select_sprint_backlog"
    CREATE_TASK = "create_task"
    ASSIGN_TASK = "assign_task"
    ADVANCE_SPRINT = "advance_sprint"
    INITIALIZE_PROJECT = "initialize_project"
    CHANGE_TASK_STATE = "change_task_state"
    COMMENT_TASK = "comment_task"
    VIEW_METRICS = "view_metrics"
    VIEW_GLOBAL_METRICS = "view_global_metrics"
    RESET_PROJECT = "reset_project"
    CHANGE_USER_ROLE = "change_user_role"
    CHANGE_USER_TEAM = "change_user_team"
    IMPORT_LEGACY = "import_legacy"
    MANAGE_TOKENS = "manage_tokens"


ADMIN_ONLY_ACTIONS = frozenset({
    Action.RESET_PROJECT,
    Action.CHANGE_USER_ROLE,
    Action.CHANGE_USER_TEAM,
    Action.IMPORT_LEGACY,
    Action.MANAGE_TOKENS,
})

LEADER_ACTIONS = frozenset({
    Action.CREATE_BACKLOG_ITEM,
    Action.EDIT_BACKLOG_ITEM,
    Action.SELECT_SPRINT_BACKLOG,
    Action.CREATE_TASK,
    Action.ASSIGN_TASK,
    Action.ADVANCE_SPRINT,
    Action.INITIALIZE_PROJECT,
})

READ_ACTIONS = frozenset({
    Action.READ_BACKLOG,
    Action.READ_SPRINT,
    Action.READ_TASKS,
})

# States a non-leader assignee may move a task into
MEMBER_TASK_STATES = frozenset({TaskState.IN_PROGRESS, TaskState.DONE})


@dataclass(frozen=True)
class AccessTarget:
    team: Optional[str] = None
    assignees: Sequence[str] = ()
    requested_state: Optional[TaskState] = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[DenialReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = AccessDecision(True)


def _deny(reason: DenialReason) -> AccessDecision:
    return AccessDecision(False, reason)


def authorize(user: User, action: Action, target: AccessTarget) -> AccessDecision:
    role = user.role

    if role == Role.ADMIN:
        return ALLOW
    if role == Role.AUDITOR:
        if action in ADMIN_ONLY_ACTIONS:
            return _deny(DenialReason.INSUFFICIENT_ROLE)
        return ALLOW

    if action in ADMIN_ONLY_ACTIONS or action == Action.VIEW_GLOBAL_METRICS:
        return _deny(DenialReason.INSUFFICIENT_ROLE)

    if target.team is not None and target.team != user.team:
        return _deny(DenialReason.WRONG_TEAM)

    if action in LEADER_ACTIONS:
        return ALLOW if role == Role.LEADER else _deny(DenialReason.INSUFFICIENT_ROLE)

    if action in READ_ACTIONS:
        return ALLOW

    if action == Action.VIEW_METRICS:
        if role in (Role.SCRUM_MASTER, Role.LEADER):
            return ALLOW
        return _deny(DenialReason.INSUFFICIENT_ROLE)

    if action == Action.CHANGE_TASK_STATE:
        if role == Role.LEADER:
            return ALLOW
        if user.display_name not in target.assignees:
            return _deny(DenialReason.NOT_ASSIGNEE)
        if target.requested_state not in MEMBER_TASK_STATES:
            return _deny(DenialReason.INVALID_TRANSITION)
        return ALLOW

    if action == Action.COMMENT_TASK:
        if role == Role.LEADER or user.display_name in target.assignees:
            return ALLOW
        return _deny(DenialReason.NOT_ASSIGNEE)

    return _deny(DenialReason.INSUFFICIENT_ROLE)


def require(user: User, action: Action, target: AccessTarget) -> None:
    """Raise ``PermissionDeniedError`` unless ``authorize`` allows the call."""
    decision = authorize(user, action, target)
    if not decision.allowed:
        logger.warning(
            "Denied %s for user %s (%s) on team %s: %s",
            action.value, user.id, user.role.value, target.team, decision.reason.value
        )
        raise PermissionDeniedError(decision.reason)


__all__ = [
    "Action",
    "AccessTarget",
    "AccessDecision",
    "ADMIN_ONLY_ACTIONS",
    "LEADER_ACTIONS",
    "authorize",
    "require",
]
