"""
Typed error -> HTTP status mapping.

Every ``OrderMgmtError`` leaves the API as ``{"code", "message"}`` with the
status of its category: validation, transition and conflict errors are 400,
access is 403, lookups are 404.  Request-body validation failures are
reported as 400 ``VALIDATION_ERROR`` as well.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ordermgmt_kernel.exceptions import (
    AccessDeniedError,
    EntityNotFoundError,
    JobNotFoundError,
    OrderMgmtError,
    SettlementImportNotFoundError,
    TransientStoreError,
)
from ordermgmt_kernel.logging_config import get_logger

logger = get_logger("api.errors")

_NOT_FOUND = (EntityNotFoundError, JobNotFoundError, SettlementImportNotFoundError)


def status_for(exc: OrderMgmtError) -> int:
    if isinstance(exc, AccessDeniedError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, _NOT_FOUND):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, TransientStoreError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


async def _domain_error(request: Request, exc: OrderMgmtError) -> JSONResponse:
    code = status_for(exc)
    logger.info(
        "api_request_rejected",
        extra={"path": request.url.path, "code": exc.code, "status_code": code},
    )
    return JSONResponse(status_code=code, content={"code": exc.code, "message": str(exc)})


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderMgmtError, _domain_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
