from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.access import AccessTarget, Action, require
from ..core.clock import Clock
from ..core.errors import InvalidStateError
from ..schemas.team import ActivityEntry, Project, Sprint, Task, TaskState, normalize_assignees
from ..schemas.user import User
from ..store.repository import StateRepository
from .backlog_service import sync_backlog_states
from .common import new_identifier, require_backlog_item, require_project, require_sprint, require_task
from .metrics_service import record_burndown_sample, refresh_team_statistics
from .user_service import UserService


class TaskInput(BaseModel):
    description: str = Field(min_length=1)
    assignees: List[str] = Field(default_factory=list)
    priority: str = "MEDIUM"
    due_date: Optional[date] = None
    backlog_item_id: Optional[str] = None
    estimate_hours: float = Field(default=0, ge=0)


class TaskService:
    def __init__(self, repository: StateRepository, clock: Clock, users: UserService) -> None:
        self.repository = repository
        self.clock = clock
        self.users = users
        self._logger = logging.getLogger(__name__)

    @staticmethod
    def _locate_sprint(project: Project, sprint_number: Optional[int]) -> Sprint:
        if sprint_number is None:
            return project.current_sprint
        return require_sprint(project, sprint_number)

    def _after_task_change(self, project: Project, sprint: Sprint) -> None:
        record_burndown_sample(sprint, self.clock.today())
        if sprint.number == project.current_sprint_number:
            sync_backlog_states(project)

    async def get_tasks(
        self, user: User, team_id: str, project_name: str, sprint_number: Optional[int] = None
    ) -> List[Task]:
        require(user, Action.READ_TASKS, AccessTarget(team=team_id))
        team = await self.repository.load_team(team_id)
        project = require_project(team, project_name)
        return list(self._locate_sprint(project, sprint_number).tasks.values())

    async def create_task(self, user: User, team_id: str, project_name: str, data: TaskInput) -> Task:
        """Create a task in the project's current sprint."""
        require(user, Action.CREATE_TASK, AccessTarget(team=team_id))

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            if data.backlog_item_id:
                require_backlog_item(project, data.backlog_item_id)

            sprint = project.current_sprint
            now = self.clock.now()
            task = Task(
                id=new_identifier("TASK", now),
                description=data.description,
                assignees=normalize_assignees(data.assignees),
                priority=data.priority,
                due_date=data.due_date,
                state=TaskState.TODO,
                backlog_item_id=data.backlog_item_id or None,
                estimate_hours=data.estimate_hours,
                created_at=now,
                created_by=user.display_name,
                activity_log=[ActivityEntry(at=now, actor=user.display_name, action="created", to_state=TaskState.TODO)],
            )
            sprint.tasks[task.id] = task
            self._after_task_change(project, sprint)
            refresh_team_statistics(team, self.clock.today())

        await self.users.apply_task_counters(team_id, Counter(task.named_assignees), {})
        self._logger.info(
            "Created task %s in %s/%s sprint %d (by %s)",
            task.id, team_id, project_name, sprint.number, user.id
        )
        return task

    async def update_task_state(
        self,
        user: User,
        team_id: str,
        project_name: str,
        task_id: str,
        state: TaskState,
        comment: Optional[str] = None,
        sprint_number: Optional[int] = None,
    ) -> Task:
        # Team-level gate first; the assignee check needs the loaded task
        require(user, Action.READ_TASKS, AccessTarget(team=team_id))

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            sprint = self._locate_sprint(project, sprint_number)
            task = require_task(sprint, task_id)
            require(
                user,
                Action.CHANGE_TASK_STATE,
                AccessTarget(team=team_id, assignees=tuple(task.assignees), requested_state=state),
            )

            previous = task.state
            if previous == state:
                raise InvalidStateError(f"Task {task_id} is already {state.value}")

            task.state = state
            task.activity_log.append(ActivityEntry(
                at=self.clock.now(),
                actor=user.display_name,
                action="state_changed",
                comment=comment or None,
                from_state=previous,
                to_state=state,
            ))
            self._after_task_change(project, sprint)
            refresh_team_statistics(team, self.clock.today())

        completed = Counter()
        if state.is_finished and not previous.is_finished:
            completed.update(task.named_assignees)
        elif previous.is_finished and not state.is_finished:
            completed.subtract(task.named_assignees)
        await self.users.apply_task_counters(team_id, {}, completed)

        self._logger.info(
            "Task %s in %s/%s moved %s -> %s by %s",
            task_id, team_id, project_name, previous.value, state.value, user.id
        )
        return task

    async def reassign_task(
        self,
        user: User,
        team_id: str,
        project_name: str,
        task_id: str,
        assignees: List[str],
        sprint_number: Optional[int] = None,
    ) -> Task:
        """Replace the assignee set in one step and log what changed."""
        require(user, Action.ASSIGN_TASK, AccessTarget(team=team_id))
        new_assignees = normalize_assignees(assignees)

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            task = require_task(self._locate_sprint(project, sprint_number), task_id)

            old_named = task.named_assignees
            task.assignees = new_assignees
            removed = [name for name in old_named if name not in task.assignees]
            added = [name for name in task.named_assignees if name not in old_named]
            if not removed and not added:
                raise InvalidStateError(f"Task {task_id} already has these assignees")

            task.activity_log.append(ActivityEntry(
                at=self.clock.now(),
                actor=user.display_name,
                action="reassigned",
                comment=f"{', '.join(removed) or '-'} → {', '.join(added) or '-'}",
            ))

        assigned = Counter(added)
        assigned.subtract(removed)
        await self.users.apply_task_counters(team_id, assigned, {})

        self._logger.info(
            "Task %s in %s/%s reassigned by %s: -%s +%s",
            task_id, team_id, project_name, user.id, removed, added
        )
        return task

    async def add_task_comment(
        self,
        user: User,
        team_id: str,
        project_name: str,
        task_id: str,
        comment: str,
        sprint_number: Optional[int] = None,
    ) -> Task:
        if not comment or not comment.strip():
            raise InvalidStateError("Comment cannot be empty")
        require(user, Action.READ_TASKS, AccessTarget(team=team_id))

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            task = require_task(self._locate_sprint(project, sprint_number), task_id)
            require(user, Action.COMMENT_TASK, AccessTarget(team=team_id, assignees=tuple(task.assignees)))

            task.activity_log.append(ActivityEntry(
                at=self.clock.now(),
                actor=user.display_name,
                action="commented",
                comment=comment.strip(),
            ))

        self._logger.info("Comment added to task %s in %s/%s by %s", task_id, team_id, project_name, user.id)
        return task
