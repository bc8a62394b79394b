from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, PositiveInt

from ..core.access import AccessTarget, Action, require
from ..core.clock import Clock
from ..core.errors import InvalidStateError
from ..schemas.team import BacklogItem, BacklogState, Project, TaskState
from ..schemas.user import User
from ..store.repository import StateRepository
from .common import new_identifier, require_backlog_item, require_project
from .metrics_service import build_planned_work, refresh_team_statistics
from .sprint_service import sprint_day_count

ACTIVE_BACKLOG_STATES = (BacklogState.IN_SPRINT, BacklogState.IN_PROGRESS)


class BacklogItemInput(BaseModel):
    title: str = ""
    as_a: str = Field(min_length=1)
    i_want: str = Field(min_length=1)
    so_that: str = Field(min_length=1)
    acceptance_criteria: str = ""
    priority: str = "MEDIUM"
    story_points: PositiveInt


class BacklogItemUpdate(BaseModel):
    title: Optional[str] = None
    as_a: Optional[str] = Field(default=None, min_length=1)
    i_want: Optional[str] = Field(default=None, min_length=1)
    so_that: Optional[str] = Field(default=None, min_length=1)
    acceptance_criteria: Optional[str] = None
    priority: Optional[str] = None
    story_points: Optional[PositiveInt] = None
    state: Optional[BacklogState] = None


def sync_backlog_states(project: Project) -> None:
    """
    Derive IN_SPRINT/IN_PROGRESS for the items on the current board.

    An item with any linked task past TODO is IN_PROGRESS, otherwise
    IN_SPRINT. DONE is never derived here; it is set by an explicit edit.
    """
    sprint = project.current_sprint
    board = set(sprint.scrum_board)
    for item in project.product_backlog:
        if item.id not in board or item.state not in ACTIVE_BACKLOG_STATES:
            continue
        started = any(
            task.backlog_item_id == item.id and task.state != TaskState.TODO
            for task in sprint.tasks.values()
        )
        item.state = BacklogState.IN_PROGRESS if started else BacklogState.IN_SPRINT


class BacklogService:
    def __init__(self, repository: StateRepository, clock: Clock) -> None:
        self.repository = repository
        self.clock = clock
        self._logger = logging.getLogger(__name__)

    def _build_item(self, user: User, data: BacklogItemInput) -> BacklogItem:
        now = self.clock.now()
        return BacklogItem(
            id=new_identifier("HU", now),
            state=BacklogState.TODO,
            created_at=now,
            created_by=user.display_name,
            **data.model_dump(),
        )

    async def get_backlog(self, user: User, team_id: str, project_name: str) -> List[BacklogItem]:
        require(user, Action.READ_BACKLOG, AccessTarget(team=team_id))
        team = await self.repository.load_team(team_id)
        return require_project(team, project_name).product_backlog

    async def add_backlog_item(
        self, user: User, team_id: str, project_name: str, data: BacklogItemInput
    ) -> BacklogItem:
        items = await self.bulk_import_backlog_items(user, team_id, project_name, [data])
        return items[0]

    async def bulk_import_backlog_items(
        self, user: User, team_id: str, project_name: str, entries: Sequence[BacklogItemInput]
    ) -> List[BacklogItem]:
        require(user, Action.CREATE_BACKLOG_ITEM, AccessTarget(team=team_id))
        if not entries:
            raise InvalidStateError("No backlog items to import")

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            created = [self._build_item(user, entry) for entry in entries]
            project.product_backlog.extend(created)
            refresh_team_statistics(team, self.clock.today())

        self._logger.info(
            "Added %d backlog items to %s/%s (by %s)", len(created), team_id, project_name, user.id
        )
        return created

    async def edit_backlog_item(
        self, user: User, team_id: str, project_name: str, item_id: str, changes: BacklogItemUpdate
    ) -> BacklogItem:
        require(user, Action.EDIT_BACKLOG_ITEM, AccessTarget(team=team_id))

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            item = require_backlog_item(project, item_id)

            fields = changes.model_dump(exclude_unset=True, exclude_none=True)
            new_state = fields.pop("state", None)
            if new_state is not None:
                self._check_explicit_state(item, BacklogState(new_state))

            for name, value in fields.items():
                setattr(item, name, value)
            if new_state is not None:
                item.state = BacklogState(new_state)

            refresh_team_statistics(team, self.clock.today())

        self._logger.info("Edited backlog item %s in %s/%s (by %s)", item_id, team_id, project_name, user.id)
        return item

    @staticmethod
    def _check_explicit_state(item: BacklogItem, target: BacklogState) -> None:
        if target != BacklogState.DONE:
            raise InvalidStateError(
                f"Backlog item state {target.value} is derived; only DONE can be set explicitly"
            )
        if item.state not in ACTIVE_BACKLOG_STATES:
            raise InvalidStateError(
                f"Backlog item {item.id} is {item.state.value} and cannot be marked DONE"
            )

    async def select_sprint_backlog(
        self, user: User, team_id: str, project_name: str, item_ids: Sequence[str]
    ) -> List[str]:
        """Replace the current sprint's board and reset its planned-work baseline."""
        require(user, Action.SELECT_SPRINT_BACKLOG, AccessTarget(team=team_id))
        selected = list(dict.fromkeys(item_ids))

        async with self.repository.mutate_team(team_id) as team:
            project = require_project(team, project_name)
            items = [require_backlog_item(project, item_id) for item_id in selected]
            for item in items:
                if item.state == BacklogState.DONE:
                    raise InvalidStateError(f"Backlog item {item.id} is already DONE")

            sprint = project.current_sprint
            chosen = set(selected)

            # An item lives on one board at a time
            for number, other in project.sprints.items():
                if number != sprint.number:
                    other.scrum_board = [i for i in other.scrum_board if i not in chosen]

            for dropped_id in set(sprint.scrum_board) - chosen:
                dropped = project.find_backlog_item(dropped_id)
                if dropped is not None and dropped.state in ACTIVE_BACKLOG_STATES:
                    dropped.state = BacklogState.TODO

            sprint.scrum_board = selected
            for item in items:
                if item.state == BacklogState.TODO:
                    item.state = BacklogState.IN_SPRINT
            sync_backlog_states(project)

            total_points = sum(item.story_points for item in items)
            sprint.burndown.planned_work = build_planned_work(total_points, sprint_day_count(sprint))
            refresh_team_statistics(team, self.clock.today())

        self._logger.info(
            "Selected %d items (%d points) for %s/%s sprint %d",
            len(selected), total_points, team_id, project_name, sprint.number
        )
        return selected
