from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...core.auth import get_current_user
from ...schemas.user import User
from ...services.engine import ScrumEngine
from ...services.sprint_service import ProjectSetup
from ..deps import get_engine, unwrap

router = APIRouter()


class ResetRequest(BaseModel):
    preserve_backlog: bool = False


@router.post("/{team}/initialize")
async def initialize_project(
    team: str,
    setup: ProjectSetup,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Start a team's projects with their first sprints"""
    return unwrap(await engine.initialize_project(current_user, team, setup))


@router.post("/{team}/reset")
async def reset_project(
    team: str,
    body: ResetRequest,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Return a team to the not-started state"""
    return unwrap(await engine.reset_project(current_user, team, body.preserve_backlog))
