"""
Global Error Handlers for FenceSense
Every error leaves the API as {"error", "detail", "path", ...}.
"""

import logging
import traceback
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from exceptions import FenceSenseException
from config.settings import get_settings

logger = logging.getLogger(__name__)


def error_body(request: Request, code: str, detail: Any, **extra) -> Dict[str, Any]:
    body = {"error": code, "detail": detail, "path": str(request.url.path)}
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id:
        body["correlation_id"] = correlation_id
    body.update({k: v for k, v in extra.items() if v})
    return body


def setup_error_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers on the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    settings = get_settings()

    @app.exception_handler(FenceSenseException)
    async def fencesense_exception_handler(
        request: Request,
        exc: FenceSenseException
    ) -> JSONResponse:
        """Handle custom FenceSense exceptions"""
        # Client mistakes are expected traffic, server faults are not
        log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            log_level,
            f"FenceSense error: {exc.code} - {exc.message}",
            extra={
                "code": exc.code,
                "status_code": exc.status_code,
                "path": str(request.url.path),
                "method": request.method,
                "details": exc.details
            }
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.code, exc.message, details=exc.details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTP exceptions (404 routes, 405 methods, ...)"""
        logger.warning(
            f"HTTP error: {exc.status_code} - {exc.detail}",
            extra={"status_code": exc.status_code, "path": str(request.url.path), "method": request.method}
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, "HTTP_ERROR", exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors"""
        formatted_errors = [
            {
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "unknown")
            }
            for error in exc.errors()
        ]
        logger.warning(
            f"Validation error on {request.url.path}",
            extra={"path": str(request.url.path), "method": request.method, "errors": formatted_errors}
        )
        return JSONResponse(
            status_code=422,
            content=error_body(
                request, "VALIDATION_ERROR", "Request validation failed",
                validation_errors=formatted_errors,
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions"""
        logger.error(
            f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
            exc_info=True,
            extra={"path": str(request.url.path), "method": request.method, "exception_type": type(exc).__name__}
        )

        # Only show detailed error in debug mode
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"
        return JSONResponse(
            status_code=500,
            content=error_body(
                request, "INTERNAL_SERVER_ERROR", detail,
                traceback=traceback.format_exc() if settings.DEBUG else None,
            ),
        )
