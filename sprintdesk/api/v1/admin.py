from fastapi import APIRouter, Depends
from typing import Any, Dict
from pydantic import BaseModel

from ...core.auth import get_current_user
from ...schemas.user import Role, User
from ...services.engine import ScrumEngine
from ...services.legacy import StoryLayout
from ..deps import get_engine, unwrap

router = APIRouter()


class RoleChangeRequest(BaseModel):
    role: Role


class TeamChangeRequest(BaseModel):
    team: str


class LegacyImportRequest(BaseModel):
    layout: StoryLayout
    document: Dict[str, Any]


@router.get("/users")
async def list_users(
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.list_users(current_user))


@router.post("/users/{user_id}/role")
async def change_user_role(
    user_id: str,
    body: RoleChangeRequest,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.change_user_role(current_user, user_id, body.role))


@router.post("/users/{user_id}/team")
async def change_user_team(
    user_id: str,
    body: TeamChangeRequest,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Move a user to another team and unassign them from their tasks"""
    return unwrap(await engine.change_user_team(current_user, user_id, body.team))


@router.post("/users/{user_id}/token")
async def regenerate_user_token(
    user_id: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    token = unwrap(await engine.regenerate_user_token(current_user, user_id))
    return {"user_id": user_id, "token": token}


@router.post("/teams/{team}/import")
async def import_legacy_team(
    team: str,
    body: LegacyImportRequest,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Replace a team's state with a converted legacy document"""
    return unwrap(await engine.import_legacy_team(current_user, team, body.document, body.layout))
