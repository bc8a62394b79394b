from __future__ import annotations

import secrets
from datetime import datetime

from ..core.errors import InvalidStateError, NotFoundError
from ..schemas.team import BacklogItem, Project, Sprint, Task, TeamDocument


def new_identifier(prefix: str, now: datetime) -> str:
    """Millisecond timestamp plus a random suffix, e.g. ``HU1718000000000_3fa9c2d1``."""
    millis = int(now.timestamp() * 1000)
    return f"{prefix}{millis}_{secrets.token_hex(4)}"


def require_started(team: TeamDocument) -> None:
    if not team.started:
        raise InvalidStateError(f"Team {team.name} has not initialized its projects")


def require_project(team: TeamDocument, name: str) -> Project:
    require_started(team)
    project = team.get_project(name)
    if project is None:
        raise NotFoundError("Project", f"{team.name}/{name}")
    return project


def require_sprint(project: Project, number: int) -> Sprint:
    sprint = project.sprints.get(number)
    if sprint is None:
        raise NotFoundError("Sprint", f"{project.name}/{number}")
    return sprint


def require_task(sprint: Sprint, task_id: str) -> Task:
    task = sprint.tasks.get(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def require_backlog_item(project: Project, item_id: str) -> BacklogItem:
    item = project.find_backlog_item(item_id)
    if item is None:
        raise NotFoundError("Backlog item", item_id)
    return item
