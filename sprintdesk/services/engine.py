"""
ScrumEngine: the single entry point the HTTP layer and bot commands call.

Every public coroutine returns an ``OperationResult``. Domain failures
raised by the services come back as a tagged error instead of an exception.
"""

from __future__ import annotations

import functools
import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from ..core.access import AccessTarget, Action, require
from ..core.clock import Clock
from ..core.errors import InvalidStateError, OperationResult, SprintDeskError
from ..schemas.team import BurndownSeries, TaskState, TeamStatistics
from ..schemas.user import Role, User
from ..store.repository import StateRepository
from ..tracking.voice import VoiceSessionRegistry
from .backlog_service import BacklogItemInput, BacklogItemUpdate, BacklogService
from .common import require_project, require_started
from .legacy import StoryLayout, convert_legacy_team
from .metrics_service import (
    BacklogItemProgress,
    CallTimeRanking,
    GlobalMetrics,
    MemberMetrics,
    ProjectCompletion,
    ProductivityReport,
    VelocityReport,
    backlog_item_progress,
    call_time_ranking,
    global_metrics,
    member_metrics,
    productivity_report,
    project_completion,
    team_velocity,
)
from .sprint_service import ProjectSetup, SprintLifecycleService
from .task_service import TaskInput, TaskService
from .user_service import UserService

logger = logging.getLogger(__name__)


class TeamMetrics(BaseModel):
    team: str
    started: bool
    statistics: TeamStatistics
    velocity: VelocityReport
    projects: List[ProjectCompletion]
    members: List[MemberMetrics]


class ProjectMetrics(BaseModel):
    team: str
    completion: ProjectCompletion
    burndown: BurndownSeries
    backlog_items: Optional[List[BacklogItemProgress]] = None


class AssignedTask(BaseModel):
    project: str
    sprint: int
    task_id: str
    description: str
    state: TaskState
    priority: str
    due_date: Optional[date] = None


class DashboardData(BaseModel):
    role: Role
    team: str
    started: bool = False
    my_tasks: List[AssignedTask] = []
    team_metrics: Optional[TeamMetrics] = None
    project_metrics: List[ProjectMetrics] = []
    global_metrics: Optional[GlobalMetrics] = None


def tagged(func):
    """Turn domain exceptions from ``func`` into a failed ``OperationResult``."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs) -> OperationResult:
        try:
            data = await func(self, *args, **kwargs)
        except SprintDeskError as e:
            logger.info("%s failed: %s (%s)", func.__name__, e.kind.value, e.message)
            return OperationResult.fail(e)
        except ValidationError as e:
            logger.info("%s rejected invalid input: %s", func.__name__, e)
            return OperationResult.fail(InvalidStateError(f"Invalid input: {e}"))
        return OperationResult.ok(data)

    return wrapper


def _as(model, value):
    return value if isinstance(value, model) else model.model_validate(value)


class ScrumEngine:
    def __init__(self, repository: StateRepository, clock: Clock, valid_teams: Sequence[str] = ()) -> None:
        self.repository = repository
        self.clock = clock
        self.users = UserService(repository, clock, valid_teams)
        self.lifecycle = SprintLifecycleService(repository, clock, valid_teams)
        self.backlog = BacklogService(repository, clock)
        self.tasks = TaskService(repository, clock, self.users)
        self.voice = VoiceSessionRegistry(self.users.increment_user_seconds)

    # Identity

    @tagged
    async def authenticate(self, token: str) -> User:
        return await self.users.authenticate(token)

    @tagged
    async def get_user(self, user_id: str) -> User:
        return await self.users.get_user(user_id)

    # Lifecycle

    @tagged
    async def initialize_project(self, user: User, team_id: str, setup: Union[ProjectSetup, Mapping[str, Any]]):
        return await self.lifecycle.initialize_project(user, team_id, _as(ProjectSetup, setup))

    @tagged
    async def advance_sprint(self, user: User, team_id: str, project: str):
        return await self.lifecycle.advance_sprint(user, team_id, project)

    @tagged
    async def reset_project(self, user: User, team_id: str, preserve_backlog: bool = False):
        return await self.lifecycle.reset_project(user, team_id, preserve_backlog)

    # Backlog

    @tagged
    async def get_backlog(self, user: User, team_id: str, project: str):
        return await self.backlog.get_backlog(user, team_id, project)

    @tagged
    async def add_backlog_item(self, user: User, team_id: str, project: str, data):
        return await self.backlog.add_backlog_item(user, team_id, project, _as(BacklogItemInput, data))

    @tagged
    async def bulk_import_backlog_items(self, user: User, team_id: str, project: str, items: Sequence[Any]):
        entries = [_as(BacklogItemInput, item) for item in items]
        return await self.backlog.bulk_import_backlog_items(user, team_id, project, entries)

    @tagged
    async def edit_backlog_item(self, user: User, team_id: str, project: str, item_id: str, changes):
        return await self.backlog.edit_backlog_item(user, team_id, project, item_id, _as(BacklogItemUpdate, changes))

    @tagged
    async def select_sprint_backlog(self, user: User, team_id: str, project: str, item_ids: Sequence[str]):
        return await self.backlog.select_sprint_backlog(user, team_id, project, item_ids)

    # Sprints and tasks

    @tagged
    async def get_sprint(self, user: User, team_id: str, project: str, number: Optional[int] = None):
        return await self.lifecycle.get_sprint(user, team_id, project, number)

    @tagged
    async def get_tasks(self, user: User, team_id: str, project: str, sprint_number: Optional[int] = None):
        return await self.tasks.get_tasks(user, team_id, project, sprint_number)

    @tagged
    async def create_task(self, user: User, team_id: str, project: str, data):
        return await self.tasks.create_task(user, team_id, project, _as(TaskInput, data))

    @tagged
    async def update_task_state(
        self,
        user: User,
        team_id: str,
        project: str,
        task_id: str,
        state: Union[TaskState, str],
        comment: Optional[str] = None,
        sprint_number: Optional[int] = None,
    ):
        try:
            state = TaskState(state)
        except ValueError:
            raise InvalidStateError(f"Unknown task state {state!r}") from None
        return await self.tasks.update_task_state(user, team_id, project, task_id, state, comment, sprint_number)

    @tagged
    async def reassign_task(
        self, user: User, team_id: str, project: str, task_id: str, assignees: List[str],
        sprint_number: Optional[int] = None,
    ):
        return await self.tasks.reassign_task(user, team_id, project, task_id, assignees, sprint_number)

    @tagged
    async def add_task_comment(
        self, user: User, team_id: str, project: str, task_id: str, comment: str,
        sprint_number: Optional[int] = None,
    ):
        return await self.tasks.add_task_comment(user, team_id, project, task_id, comment, sprint_number)

    # Metrics

    async def _team_metrics(self, team_id: str) -> TeamMetrics:
        team = await self.repository.load_team(team_id)
        users = await self.repository.load_users()
        today = self.clock.today()
        return TeamMetrics(
            team=team_id,
            started=team.started,
            statistics=team.statistics,
            velocity=team_velocity(team, today),
            projects=[project_completion(p) for p in team.projects.values()],
            members=member_metrics(team_id, team, users),
        )

    async def _project_metrics(self, user: User, team_id: str, project_name: str) -> ProjectMetrics:
        team = await self.repository.load_team(team_id)
        project = require_project(team, project_name)
        detailed = user.role in (Role.LEADER, Role.ADMIN, Role.AUDITOR)
        return ProjectMetrics(
            team=team_id,
            completion=project_completion(project),
            burndown=project.current_sprint.burndown,
            backlog_items=backlog_item_progress(project) if detailed else None,
        )

    @tagged
    async def get_team_metrics(self, user: User, team_id: str) -> TeamMetrics:
        require(user, Action.VIEW_METRICS, AccessTarget(team=team_id))
        return await self._team_metrics(team_id)

    @tagged
    async def get_project_metrics(self, user: User, team_id: str, project: str) -> ProjectMetrics:
        require(user, Action.VIEW_METRICS, AccessTarget(team=team_id))
        return await self._project_metrics(user, team_id, project)

    @tagged
    async def get_global_metrics(self, user: User) -> GlobalMetrics:
        require(user, Action.VIEW_GLOBAL_METRICS, AccessTarget())
        teams = await self.repository.load_teams()
        users = await self.repository.load_users()
        return global_metrics(teams, users)

    @tagged
    async def get_productivity_report(self, user: User, team_id: str) -> ProductivityReport:
        require(user, Action.VIEW_METRICS, AccessTarget(team=team_id))
        team = await self.repository.load_team(team_id)
        require_started(team)
        users = await self.repository.load_users()
        return productivity_report(team_id, team, users)

    @tagged
    async def get_call_time_ranking(self, user: User) -> CallTimeRanking:
        require(user, Action.VIEW_GLOBAL_METRICS, AccessTarget())
        return call_time_ranking(await self.repository.load_users())

    @tagged
    async def get_dashboard_data(self, user: User) -> DashboardData:
        """
        Role-shaped overview.

        member: own tasks; scrumMaster: own tasks and team metrics; leader:
        team metrics plus per-project detail; admin/auditor: every team.
        """
        dashboard = DashboardData(role=user.role, team=user.team)

        if user.role.is_cross_team:
            teams = await self.repository.load_teams()
            users = await self.repository.load_users()
            dashboard.global_metrics = global_metrics(teams, users)
            return dashboard

        if not await self.repository.team_exists(user.team):
            return dashboard
        team = await self.repository.load_team(user.team)
        dashboard.started = team.started
        if not team.started:
            return dashboard

        for name, project in team.projects.items():
            sprint = project.current_sprint
            for task in sprint.tasks.values():
                if user.display_name in task.assignees:
                    dashboard.my_tasks.append(AssignedTask(
                        project=name,
                        sprint=sprint.number,
                        task_id=task.id,
                        description=task.description,
                        state=task.state,
                        priority=task.priority,
                        due_date=task.due_date,
                    ))

        if user.role in (Role.SCRUM_MASTER, Role.LEADER):
            dashboard.team_metrics = await self._team_metrics(user.team)
        if user.role == Role.LEADER:
            dashboard.project_metrics = [
                await self._project_metrics(user, user.team, name) for name in team.projects
            ]
        return dashboard

    # Users

    @tagged
    async def list_users(self, user: User) -> List[Dict[str, Any]]:
        return [u.public_view() for u in await self.users.list_users(user)]

    @tagged
    async def change_user_role(self, user: User, user_id: str, role: Union[Role, str]):
        try:
            role = Role(role)
        except ValueError:
            raise InvalidStateError(f"Unknown role {role!r}") from None
        return (await self.users.change_user_role(user, user_id, role)).public_view()

    @tagged
    async def change_user_team(self, user: User, user_id: str, team_id: str):
        return (await self.users.change_user_team(user, user_id, team_id)).public_view()

    @tagged
    async def regenerate_user_token(self, user: User, user_id: str) -> str:
        return await self.users.regenerate_user_token(user, user_id)

    @tagged
    async def increment_user_seconds(self, user_id: str, seconds: int):
        return (await self.users.increment_user_seconds(user_id, seconds)).public_view()

    # Legacy ingest

    @tagged
    async def import_legacy_team(
        self, user: User, team_id: str, document: Mapping[str, Any], layout: Union[StoryLayout, str]
    ):
        require(user, Action.IMPORT_LEGACY, AccessTarget(team=team_id))
        try:
            layout = StoryLayout(layout)
        except ValueError:
            known = ", ".join(item.value for item in StoryLayout)
            raise InvalidStateError(f"Unknown legacy layout {layout!r}; expected one of {known}") from None

        team = convert_legacy_team(team_id, document, layout, self.clock.today())
        await self.repository.save_team(team_id, team)
        logger.info("Imported legacy team %s by %s", team_id, user.id)
        return team
