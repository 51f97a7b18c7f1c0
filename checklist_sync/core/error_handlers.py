"""Global exception handlers for FastAPI.

Every error leaves the local API in the same envelope:
``{"success": false, "error": {"code", "message"}}``. Store and unexpected
failures are logged with their traceback and only described when DEBUG is on.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from checklist_sync.config import settings
from checklist_sync.core.errors import (
    ChecklistSyncError,
    NotFoundError,
    RemoteRejectedError,
    TransientError,
    UnauthenticatedError,
    UnavailableError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    UnauthenticatedError: (status.HTTP_401_UNAUTHORIZED, "UNAUTHENTICATED"),
    UnavailableError: (status.HTTP_503_SERVICE_UNAVAILABLE, "UNAVAILABLE"),
    TransientError: (status.HTTP_503_SERVICE_UNAVAILABLE, "TRANSIENT"),
    RemoteRejectedError: (status.HTTP_502_BAD_GATEWAY, "REMOTE_REJECTED"),
    NotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
}


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: list | None = None,
) -> JSONResponse:
    error: dict = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _internal_error(request: Request, exc: Exception, code: str, public: str) -> JSONResponse:
    logger.error(
        "%s on %s %s: %s", code, request.method, request.url.path, exc, exc_info=exc
    )
    message = f"{public} ({exc})" if settings.DEBUG else public
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, code, message)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Body or path parameters that do not match the route's schema."""
    details = [
        {
            # drop the leading "body" / "path" segment
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "The request does not match the expected shape.",
        details,
    )


async def sync_error_handler(
    request: Request, exc: ChecklistSyncError
) -> JSONResponse:
    """Gateway and sync engine errors, by type."""
    status_code, code = ERROR_STATUS.get(
        type(exc), (status.HTTP_500_INTERNAL_SERVER_ERROR, "SYNC_ERROR")
    )
    logger.info("%s on %s %s: %s", code, request.method, request.url.path, exc)
    return _error_response(status_code, code, exc.message)


async def invalid_answer_handler(
    request: Request, exc: ValueError
) -> JSONResponse:
    """Answers the gateway cannot store (unknown field type, unsupported value shape)."""
    return _error_response(status.HTTP_400_BAD_REQUEST, "INVALID_ANSWER", str(exc))


async def store_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    return _internal_error(
        request, exc, "STORE_ERROR", "The local store could not complete the request."
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    return _internal_error(request, exc, "INTERNAL_ERROR", "Unexpected error.")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ChecklistSyncError, sync_error_handler)
    app.add_exception_handler(ValueError, invalid_answer_handler)
    app.add_exception_handler(SQLAlchemyError, store_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
