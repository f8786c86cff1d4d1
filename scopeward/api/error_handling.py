from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scopeward.api.schemas import Envelope, ErrorBody
from scopeward.logging import get_logger
from scopeward.service.errors import ServiceError
from scopeward.storage.errors import StoreError

logger = get_logger(__name__)


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: str = "server_error",
) -> JSONResponse:
    error_body = ErrorBody(code=code, message=message, details=details)
    envelope = Envelope(status="error", error=error_body)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Render authentication and store failures as error envelopes."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(
            exc.status_code, exc.message, exc.detail or None, code=exc.error_code
        )

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        # Infrastructure faults, never a credential problem
        logger.error(
            "token_store_error",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(503, "token store unavailable", code="service_unavailable")


__all__ = ["register_exception_handlers"]
