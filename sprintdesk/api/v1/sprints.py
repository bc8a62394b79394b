from fastapi import APIRouter, Depends
from typing import List
from pydantic import BaseModel

from ...core.auth import get_current_user
from ...schemas.user import User
from ...services.engine import ScrumEngine
from ..deps import get_engine, unwrap

router = APIRouter()


class SprintSelectionRequest(BaseModel):
    item_ids: List[str]


@router.get("/{team}/{project}")
async def get_current_sprint(
    team: str,
    project: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.get_sprint(current_user, team, project))


@router.get("/{team}/{project}/{number}")
async def get_sprint(
    team: str,
    project: str,
    number: int,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Get sprint details"""
    return unwrap(await engine.get_sprint(current_user, team, project, number))


@router.post("/{team}/{project}/advance")
async def advance_sprint(
    team: str,
    project: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Close the current sprint and move to the next one"""
    return unwrap(await engine.advance_sprint(current_user, team, project))


@router.post("/{team}/{project}/select")
async def select_sprint_backlog(
    team: str,
    project: str,
    body: SprintSelectionRequest,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Set the current sprint's scrum board"""
    selected = unwrap(await engine.select_sprint_backlog(current_user, team, project, body.item_ids))
    return {"selected": selected}
