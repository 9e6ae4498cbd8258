import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def register_exception_handlers(app):
    """
    Register global exception handlers for standardized error responses.
    """

    @app.exception_handler(ValidationError)
    async def domain_validation_handler(request: Request, exc: ValidationError):
        logger.warning(f"Validation error for {request.url.path}: {exc.field}: {exc.message}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Validation error",
                "detail": exc.message,
                "field": exc.field,
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=404,
            content={
                "error": "HTTP error",
                "detail": str(exc),
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(ForbiddenError)
    async def forbidden_handler(request: Request, exc: ForbiddenError):
        return JSONResponse(
            status_code=403,
            content={
                "error": "HTTP error",
                "detail": exc.message,
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "error": "Validation error",
                "detail": "Invalid request data",
                "path": str(request.url.path),
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTP error",
                "detail": exc.detail,
                "path": str(request.url.path),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path} - Error: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred",
                "path": str(request.url.path),
            },
        )
