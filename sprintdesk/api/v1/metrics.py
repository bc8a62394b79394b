from fastapi import APIRouter, Depends

from ...core.auth import get_current_user
from ...schemas.user import User
from ...services.engine import ScrumEngine
from ..deps import get_engine, unwrap

router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Overview shaped by the caller's role"""
    return unwrap(await engine.get_dashboard_data(current_user))


@router.get("/team/{team}")
async def get_team_metrics(
    team: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.get_team_metrics(current_user, team))


@router.get("/project/{team}/{project}")
async def get_project_metrics(
    team: str,
    project: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.get_project_metrics(current_user, team, project))


@router.get("/global")
async def get_global_metrics(
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.get_global_metrics(current_user))


@router.get("/productivity/{team}")
async def get_productivity_report(
    team: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Per-member productivity ranked by score"""
    return unwrap(await engine.get_productivity_report(current_user, team))


@router.get("/ranking")
async def get_call_time_ranking(
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.get_call_time_ranking(current_user))
