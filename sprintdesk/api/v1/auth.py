from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ...core.auth import create_access_token, get_current_user
from ...schemas.user import User
from ...services.engine import ScrumEngine
from ..deps import get_engine, unwrap

router = APIRouter()


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    body: TokenRequest,
    request: Request,
    engine: ScrumEngine = Depends(get_engine)
):
    """Exchange a user's opaque token for a signed access token"""

    user = unwrap(await engine.authenticate(body.token))
    access_token = create_access_token(
        {"sub": user.id, "role": user.role.value, "team": user.team},
        request.app.state.settings
    )

    return TokenResponse(access_token=access_token, user=user.public_view())


@router.get("/me")
async def who_am_i(current_user: User = Depends(get_current_user)):
    return current_user.public_view()
