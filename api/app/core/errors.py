"""
Domain errors raised by the service layer.

Routers and dependencies raise ``HTTPException`` for request-level problems;
services raise these so they stay independent of FastAPI. A single handler
renders both shapes as ``{"detail", "message", "code"}``.
"""
import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for business-rule violations."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class BadRequestError(DomainError):
    pass


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


def _error_body(message: str, code: str) -> dict:
    return {"detail": message, "message": message, "code": code}


def setup_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        logger.info(
            "request.rejected",
            path=request.url.path,
            status_code=exc.status_code,
            code=exc.code,
            reason=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.code),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if not isinstance(exc.detail, str):
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail},
                headers=exc.headers,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, f"HTTP_{exc.status_code}"),
            headers=exc.headers,
        )
