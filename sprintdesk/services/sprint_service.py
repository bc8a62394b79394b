"""
Sprint lifecycle: project initialization, sprint advancement and reset.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, PositiveInt, model_validator

from ..core.access import AccessTarget, Action, require
from ..core.clock import Clock
from ..core.errors import ConflictError, ConflictReason
from ..schemas.team import (
    GENERAL_PROJECT,
    PROJECT_NAMES,
    BacklogState,
    Project,
    ProjectKind,
    Sprint,
    TeamDocument,
    TeamStatistics,
)
from ..schemas.user import User
from ..store.repository import StateRepository
from .common import require_project, require_sprint
from .metrics_service import refresh_team_statistics

DAYS_PER_WEEK = 7


class ProjectSetup(BaseModel):
    project_count: Literal[2, 3]
    durations: Dict[str, PositiveInt]  # sprint length in weeks per project name

    @property
    def project_names(self) -> Tuple[str, ...]:
        return PROJECT_NAMES[:self.project_count]

    @model_validator(mode="after")
    def _durations_match_projects(self) -> "ProjectSetup":
        expected = set(self.project_names)
        given = set(self.durations)
        if expected - given:
            raise ValueError(f"Missing sprint duration for: {', '.join(sorted(expected - given))}")
        if given - expected:
            raise ValueError(f"Unexpected projects: {', '.join(sorted(given - expected))}")
        return self


def compute_end_date(start: date, weeks: int) -> date:
    return start + timedelta(days=weeks * DAYS_PER_WEEK)


def sprint_day_count(sprint: Sprint) -> int:
    return (sprint.end_date - sprint.start_date).days


def new_sprint(number: int, start: date, weeks: int) -> Sprint:
    return Sprint(number=number, start_date=start, end_date=compute_end_date(start, weeks))


def open_task_count(sprint: Sprint) -> int:
    return sum(1 for task in sprint.tasks.values() if not task.state.is_finished)


def advance_project(project: Project, force: bool = False) -> Sprint:
    """Move ``project`` to its next sprint, creating it if absent."""
    current = project.current_sprint
    open_tasks = open_task_count(current)
    if open_tasks and not force:
        raise ConflictError(
            ConflictReason.SPRINT_INCOMPLETE,
            f"Sprint {current.number} of {project.name} still has {open_tasks} unfinished tasks",
        )

    next_number = current.number + 1
    if next_number not in project.sprints:
        project.sprints[next_number] = new_sprint(
            next_number, current.end_date, project.sprint_duration_weeks
        )
    project.current_sprint_number = next_number
    return project.sprints[next_number]


class SprintLifecycleService:
    def __init__(self, repository: StateRepository, clock: Clock, valid_teams: Sequence[str] = ()) -> None:
        self.repository = repository
        self.clock = clock
        self.valid_teams = list(valid_teams)
        self._logger = logging.getLogger(__name__)

    async def initialize_project(self, user: User, team_id: str, setup: ProjectSetup) -> TeamDocument:
        require(user, Action.INITIALIZE_PROJECT, AccessTarget(team=team_id))

        create = team_id in self.valid_teams
        async with self.repository.mutate_team(team_id, create=create) as team:
            if team.started:
                raise ConflictError(
                    ConflictReason.ALREADY_STARTED,
                    f"Team {team_id} is already started; reset it before initializing again",
                )

            today = self.clock.today()
            projects = {}
            for name in setup.project_names:
                weeks = setup.durations[name]
                project = Project(
                    name=name,
                    kind=ProjectKind.GENERAL if name == GENERAL_PROJECT else ProjectKind.DELIVERY,
                    sprint_duration_weeks=weeks,
                    current_sprint_number=1,
                    product_backlog=team.preserved_backlog.pop(name, []),
                    sprints={1: new_sprint(1, today, weeks)},
                )
                projects[name] = project

            team.projects = projects
            team.started = True
            team.started_at = self.clock.now()
            refresh_team_statistics(team, today)

        self._logger.info(
            "Team %s initialized by %s with projects %s",
            team_id, user.id, ", ".join(setup.project_names)
        )
        return team

    async def advance_sprint(self, user: User, team_id: str, project_name: str) -> Sprint:
        """Interactive advance; refuses while the current sprint has open tasks."""
        require(user, Action.ADVANCE_SPRINT, AccessTarget(team=team_id))

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            sprint = advance_project(project, force=False)
            refresh_team_statistics(team, self.clock.today())

        self._logger.info(
            "Advanced %s/%s to sprint %d (by %s)", team_id, project_name, sprint.number, user.id
        )
        return sprint

    async def reset_project(self, user: User, team_id: str, preserve_backlog: bool = False) -> TeamDocument:
        require(user, Action.RESET_PROJECT, AccessTarget(team=team_id))

        async with self.repository.mutate_team(team_id) as team:
            preserved = dict(team.preserved_backlog) if preserve_backlog else {}
            if preserve_backlog:
                for name, project in team.projects.items():
                    items = [item.model_copy(deep=True) for item in project.product_backlog]
                    for item in items:
                        if item.state != BacklogState.DONE:
                            item.state = BacklogState.TODO
                    preserved[name] = items

            team.started = False
            team.started_at = None
            team.projects = {}
            team.statistics = TeamStatistics()
            team.preserved_backlog = preserved
            team.last_reset_at = self.clock.now()
            team.reset_by = user.display_name

        self._logger.info(
            "Team %s reset by %s (backlog preserved: %s)", team_id, user.id, preserve_backlog
        )
        return team

    async def rollover_due_sprints(self, team_id: str, today: Optional[date] = None) -> List[Tuple[str, int]]:
        """
        Force-advance every project of the team whose current sprint ends today.

        Runs under the team lock like any interactive mutation. Calling it again
        on the same day is a no-op because the advanced sprint ends later.
        """
        today = today or self.clock.today()
        advanced: List[Tuple[str, int]] = []

        async with self.repository.mutate_team(team_id) as team:
            if not team.started:
                return advanced

            for name, project in team.projects.items():
                current = project.current_sprint
                if current.end_date != today:
                    continue

                open_tasks = open_task_count(current)
                if open_tasks:
                    self._logger.warning(
                        "Rolling over %s/%s sprint %d with %d unfinished tasks",
                        team_id, name, current.number, open_tasks
                    )
                sprint = advance_project(project, force=True)
                advanced.append((name, sprint.number))

            if advanced:
                refresh_team_statistics(team, today)

        for name, number in advanced:
            self._logger.info("Scheduled rollover moved %s/%s to sprint %d", team_id, name, number)
        return advanced

    async def get_sprint(self, user: User, team_id: str, project_name: str, number: Optional[int] = None) -> Sprint:
        require(user, Action.READ_SPRINT, AccessTarget(team=team_id))
        team = await self.repository.load_team(team_id)
        project = require_project(team, project_name)
        return require_sprint(project, number or project.current_sprint_number)


__all__ = [
    "ProjectSetup",
    "SprintLifecycleService",
    "advance_project",
    "compute_end_date",
    "sprint_day_count",
    "open_task_count",
]
