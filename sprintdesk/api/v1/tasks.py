from fastapi import APIRouter, Depends
from typing import List, Optional
from pydantic import BaseModel

from ...core.auth import get_current_user
from ...schemas.team import TaskState
from ...schemas.user import User
from ...services.engine import ScrumEngine
from ...services.task_service import TaskInput
from ..deps import get_engine, unwrap

router = APIRouter()


class TaskStateRequest(BaseModel):
    state: TaskState
    comment: Optional[str] = None


class TaskAssignRequest(BaseModel):
    assignees: List[str]


class TaskCommentRequest(BaseModel):
    comment: str


@router.get("/{team}/{project}")
async def get_tasks(
    team: str,
    project: str,
    sprint: Optional[int] = None,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Get the tasks of a sprint (the current one by default)"""
    return unwrap(await engine.get_tasks(current_user, team, project, sprint))


@router.post("/{team}/{project}", status_code=201)
async def create_task(
    team: str,
    project: str,
    task: TaskInput,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.create_task(current_user, team, project, task))


@router.post("/{team}/{project}/{task_id}/state")
async def update_task_state(
    team: str,
    project: str,
    task_id: str,
    body: TaskStateRequest,
    sprint: Optional[int] = None,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.update_task_state(
        current_user, team, project, task_id, body.state, body.comment, sprint
    ))


@router.post("/{team}/{project}/{task_id}/assign")
async def reassign_task(
    team: str,
    project: str,
    task_id: str,
    body: TaskAssignRequest,
    sprint: Optional[int] = None,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.reassign_task(current_user, team, project, task_id, body.assignees, sprint))


@router.post("/{team}/{project}/{task_id}/comment")
async def add_task_comment(
    team: str,
    project: str,
    task_id: str,
    body: TaskCommentRequest,
    sprint: Optional[int] = None,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.add_task_comment(current_user, team, project, task_id, body.comment, sprint))
