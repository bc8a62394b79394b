from fastapi import APIRouter, Depends
from typing import List
from pydantic import BaseModel, Field

from ...core.auth import get_current_user
from ...schemas.user import User
from ...services.backlog_service import BacklogItemInput, BacklogItemUpdate
from ...services.engine import ScrumEngine
from ..deps import get_engine, unwrap

router = APIRouter()


class BulkImportRequest(BaseModel):
    items: List[BacklogItemInput] = Field(min_length=1)


@router.get("/{team}/{project}")
async def get_backlog(
    team: str,
    project: str,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.get_backlog(current_user, team, project))


@router.post("/{team}/{project}", status_code=201)
async def add_backlog_item(
    team: str,
    project: str,
    item: BacklogItemInput,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.add_backlog_item(current_user, team, project, item))


@router.post("/{team}/{project}/bulk", status_code=201)
async def bulk_import_backlog_items(
    team: str,
    project: str,
    body: BulkImportRequest,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    """Add several backlog items in one write"""
    return unwrap(await engine.bulk_import_backlog_items(current_user, team, project, body.items))


@router.put("/{team}/{project}/{item_id}")
async def edit_backlog_item(
    team: str,
    project: str,
    item_id: str,
    changes: BacklogItemUpdate,
    engine: ScrumEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user)
):
    return unwrap(await engine.edit_backlog_item(current_user, team, project, item_id, changes))
