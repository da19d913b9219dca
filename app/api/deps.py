"""
Shared route dependencies
"""
from fastapi import HTTPException, Request, status

from app.core.errors import ErrorCode, GeozoneError, GeofenceValidationError, GeometryDecodeError, PersistenceError
from app.services.edit_session import EditSessionManager


def get_session_manager(request: Request) -> EditSessionManager:
    """Dependency for the app-scoped edit session manager"""
    return request.app.state.session_manager


def error_status(error: GeozoneError) -> int:
    if isinstance(error, PersistenceError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, GeofenceValidationError) and error.code == ErrorCode.INVALID_STATE:
        return status.HTTP_409_CONFLICT
    if isinstance(error, (GeofenceValidationError, GeometryDecodeError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_503_SERVICE_UNAVAILABLE


def error_detail(error: GeozoneError) -> dict:
    code = getattr(error, "code", None)
    return {"code": code.value if code else None, "message": error.message}


def raise_for_error(error: GeozoneError) -> None:
    raise HTTPException(status_code=error_status(error), detail=error_detail(error))
