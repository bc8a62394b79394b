"""
Explicit migration of positional legacy documents.

Older deployments stored backlog items and tasks as bare arrays whose field
order changed between revisions. Nothing here guesses the order: callers
name the layout the document was written with, and every record must have
exactly that layout's field count.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..core.errors import InvalidStateError
from ..schemas.team import (
    DELIVERY_PROJECT,
    GENERAL_PROJECT,
    PROJECT_NAMES,
    SECOND_DELIVERY_PROJECT,
    ActivityEntry,
    BacklogItem,
    BacklogState,
    BurndownPoint,
    BurndownSeries,
    Project,
    ProjectKind,
    Sprint,
    Task,
    TaskState,
    TeamDocument,
)
from ..schemas.user import ActivityCounters, Role, User
from .metrics_service import refresh_team_statistics
from .user_service import generate_token

logger = logging.getLogger(__name__)


class StoryLayout(str, Enum):
    # [id, as_a, i_want, so_that, acceptance_criteria, priority, points, state, created_at, created_by]
    CRITERIA = "story-10-criteria"
    # [id, title, as_a, i_want, so_that, priority, points, state, created_at, created_by]
    TITLE = "story-10-title"


STORY_FIELDS: Dict[StoryLayout, Sequence[str]] = {
    StoryLayout.CRITERIA: (
        "id", "as_a", "i_want", "so_that", "acceptance_criteria",
        "priority", "story_points", "state", "created_at", "created_by",
    ),
    StoryLayout.TITLE: (
        "id", "title", "as_a", "i_want", "so_that",
        "priority", "story_points", "state", "created_at", "created_by",
    ),
}

TASK_FIELDS = (
    "state", "description", "assignees", "priority", "due_date",
    "backlog_item_id", "estimate_hours", "created_at", "created_by", "activity_log",
)

BACKLOG_STATES = {
    "POR_HACER": BacklogState.TODO,
    "EN_SPRINT": BacklogState.IN_SPRINT,
    "EN_PROCESO": BacklogState.IN_PROGRESS,
    "COMPLETADO": BacklogState.DONE,
}

TASK_STATES = {
    "POR_HACER": TaskState.TODO,
    "EN_PROCESO": TaskState.IN_PROGRESS,
    "COMPLETADO": TaskState.DONE,
    "VERIFICADO": TaskState.VERIFIED,
}

ROLES = {
    "miembro": Role.MEMBER,
    "scrumMaster": Role.SCRUM_MASTER,
    "lider": Role.LEADER,
    "admin": Role.ADMIN,
    "auditor": Role.AUDITOR,
}

DURATION_KEYS = {
    GENERAL_PROJECT: "duracion-sprint-gent",
    DELIVERY_PROJECT: "duracion-sprint-proyecto",
    SECOND_DELIVERY_PROJECT: "duracion-sprint-proyecto2",
}


def _positional(record: Any, fields: Sequence[str], what: str) -> Dict[str, Any]:
    if not isinstance(record, list):
        raise InvalidStateError(f"{what} is not a positional record")
    if len(record) != len(fields):
        raise InvalidStateError(
            f"{what} has {len(record)} fields; the named layout expects {len(fields)}"
        )
    return dict(zip(fields, record))


def _lookup(mapping: Mapping[str, Any], key: Any, what: str) -> Any:
    try:
        return mapping[key]
    except (KeyError, TypeError):
        raise InvalidStateError(f"Unknown {what}: {key!r}") from None


def _legacy_date(value: Any, what: str) -> date:
    """Legacy dates are [day, month, year] arrays."""
    try:
        day, month, year = (int(part) for part in value)
        return date(year, month, day)
    except (TypeError, ValueError) as e:
        raise InvalidStateError(f"{what} is not a [day, month, year] date: {value!r}") from e


def convert_story(record: Any, layout: StoryLayout) -> BacklogItem:
    fields = _positional(record, STORY_FIELDS[layout], "Backlog item")
    fields["state"] = _lookup(BACKLOG_STATES, fields["state"], "backlog state")
    fields["acceptance_criteria"] = fields.get("acceptance_criteria") or ""
    fields["title"] = fields.get("title") or ""
    return BacklogItem.model_validate(fields)


def convert_task(task_id: str, record: Any) -> Task:
    fields = _positional(record, TASK_FIELDS, f"Task {task_id}")
    fields["id"] = task_id
    fields["state"] = _lookup(TASK_STATES, fields["state"], "task state")
    fields["backlog_item_id"] = fields["backlog_item_id"] or None
    fields["due_date"] = fields["due_date"] or None
    fields["estimate_hours"] = fields["estimate_hours"] or 0
    fields["assignees"] = fields["assignees"] or []
    fields["activity_log"] = [
        ActivityEntry(
            at=entry.get("fecha"),
            actor=entry.get("usuario") or "unknown",
            action=entry.get("accion") or "update",
            comment=entry.get("comentario"),
        )
        for entry in fields["activity_log"] or []
    ]
    return Task.model_validate(fields)


def _convert_burndown(raw: Optional[Mapping[str, Any]]) -> BurndownSeries:
    raw = raw or {}
    planned = [BurndownPoint(day=p["dia"], work=p["trabajo"]) for p in raw.get("plannedWork") or []]
    actual = [
        BurndownPoint(
            day=p["dia"],
            work=p["trabajo"],
            recorded_on=p["fecha"][:10] if p.get("fecha") else None,
        )
        for p in raw.get("actualWork") or []
    ]
    return BurndownSeries(planned_work=planned, actual_work=actual)


def _convert_project(name: str, raw: Mapping[str, Any], weeks: Optional[int], layout: StoryLayout) -> Project:
    sprints: Dict[int, Sprint] = {}
    for key, value in raw.items():
        if not key.startswith("sprint") or key == "sprintActual":
            continue
        number = int(key[len("sprint"):])
        sprints[number] = Sprint(
            number=number,
            start_date=_legacy_date(value.get("fechaIni"), f"{name} {key} start"),
            end_date=_legacy_date(value.get("fechaFin"), f"{name} {key} end"),
            scrum_board=list(value.get("scrumBoard") or []),
            tasks={task_id: convert_task(task_id, task) for task_id, task in (value.get("tasks") or {}).items()},
            burndown=_convert_burndown(value.get("burndownChart")),
        )

    if weeks is None and 1 in sprints:
        weeks = max(1, (sprints[1].end_date - sprints[1].start_date).days // 7)

    return Project(
        name=name,
        kind=ProjectKind.GENERAL if name == GENERAL_PROJECT else ProjectKind.DELIVERY,
        sprint_duration_weeks=weeks or 1,
        current_sprint_number=int(raw.get("sprintActual", 1)),
        product_backlog=[convert_story(record, layout) for record in raw.get("productBacklog") or []],
        sprints=sprints,
    )


def convert_legacy_team(team_id: str, raw: Mapping[str, Any], layout: StoryLayout, today: date) -> TeamDocument:
    """Build a current team document from a legacy one written with ``layout``."""
    try:
        projects = {}
        for name in PROJECT_NAMES:
            if raw.get(name):
                weeks = raw.get(DURATION_KEYS[name])
                projects[name] = _convert_project(name, raw[name], int(weeks) if weeks else None, layout)

        started = raw.get("started") in ("y", True)
        team = TeamDocument(name=team_id, started=started and bool(projects), projects=projects)
    except ValidationError as e:
        raise InvalidStateError(f"Legacy document for {team_id} does not convert: {e}") from e
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise InvalidStateError(f"Legacy document for {team_id} is malformed: {e}") from e

    refresh_team_statistics(team, today)
    logger.info(
        "Converted legacy team %s (%s): %d projects, %d backlog items",
        team_id, layout.value, len(projects),
        sum(len(p.product_backlog) for p in projects.values())
    )
    return team


def convert_legacy_users(raw: Mapping[str, Any]) -> Dict[str, User]:
    users: Dict[str, User] = {}
    for user_id, data in raw.items():
        stats: List[int] = list(data.get("stats") or [0, 0, 0]) + [0, 0, 0]
        try:
            users[user_id] = User(
                id=user_id,
                display_name=data["nickname"],
                role=_lookup(ROLES, data.get("rol", "miembro"), "role"),
                team=data.get("grupo", ""),
                token=data.get("token") or generate_token(),
                counters=ActivityCounters(
                    seconds_in_call=stats[0], tasks_assigned=stats[1], tasks_completed=stats[2]
                ),
                last_activity_at=data.get("ultimaActividad"),
            )
        except (KeyError, ValidationError) as e:
            raise InvalidStateError(f"Legacy user {user_id} is malformed: {e}") from e
    return users
