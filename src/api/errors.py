"""
Exception handlers translating authorization errors into HTTP responses.
"""

import re

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.kernel.errors import AuthorizationError, Forbidden, Unauthenticated
from src.schemas.common import ErrorResponse, ForbiddenResponse


def _error_code(exc: Exception) -> str:
    """RoleDoesNotExist -> role_does_not_exist"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).lower()


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    headers = None
    if isinstance(exc, Forbidden):
        body = ForbiddenResponse(detail=exc.message, required_permissions=exc.required_permissions)
    else:
        body = ErrorResponse(detail=exc.message, code=_error_code(exc))
        if isinstance(exc, Unauthenticated):
            headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.http_status,
        content=body.model_dump(),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthorizationError, authorization_error_handler)
