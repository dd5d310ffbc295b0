from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bepit.core.context import get_request_id

logger = logging.getLogger("bepit.errors")


class AppError(Exception):
    status_code: int = 500
    error_type: str = "APP_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RegionNotFoundError(AppError):
    status_code = 404
    error_type = "REGION_NOT_FOUND"


class ResourceNotFoundError(AppError):
    status_code = 404
    error_type = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    error_type = "CONFLICT"


class AdminAuthError(AppError):
    status_code = 401
    error_type = "UNAUTHORIZED"


class StoreUnavailableError(AppError):
    status_code = 500
    error_type = "STORE_UNAVAILABLE"


def _error_payload(error_type: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {
            "type": error_type,
            "message": message,
        }
    }
    if details:
        payload["error"]["details"] = details
    trace_id = get_request_id()
    if trace_id:
        payload["error"]["traceId"] = trace_id
    return payload


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(exc.error_type, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [
            ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_payload(
                "VALIDATION_ERROR",
                "Requisição inválida.",
                {"fields": [field for field in fields if field]},
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request.unhandled_error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content=_error_payload("INTERNAL_ERROR", "Erro interno no cérebro do robô."),
        )
