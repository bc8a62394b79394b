from typing import Any, Dict

from fastapi import HTTPException, Request, status

from ..core.errors import ErrorKind, OperationResult
from ..services.engine import ScrumEngine

ERROR_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
}


def get_engine(request: Request) -> ScrumEngine:
    return request.app.state.engine


def unwrap(result: OperationResult) -> Any:
    """Return the payload of a successful result or raise the matching HTTP error."""
    if result.success:
        return result.data

    error = result.error
    raise HTTPException(
        status_code=ERROR_STATUS.get(error.kind, status.HTTP_400_BAD_REQUEST),
        detail=error.model_dump(mode="json"),
    )
