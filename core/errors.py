import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTP error rendered as ``{"error": message, **extra}``."""

    def __init__(self, status_code: int, error: str, extra: Optional[Dict[str, Any]] = None):
        body = {"error": error}
        if extra:
            body.update(extra)
        super().__init__(status_code=status_code, detail=body)
        self.error = error


def unauthorized() -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


def bad_request(error: str, **extra: Any) -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, error, extra or None)


def not_found(error: str) -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, error)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    from security.auth import is_unauthenticated_call

    # The body is parsed before auth dependencies run; credentials are checked first
    if is_unauthenticated_call(request):
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
