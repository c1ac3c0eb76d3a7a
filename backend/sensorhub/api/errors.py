"""Map service errors onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import TelemetryError, describe_validation_errors

logger = logging.getLogger(__name__)


async def telemetry_error_handler(request: Request, exc: TelemetryError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.transient else None
    if exc.status_code >= 500:
        logger.error("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"errors": exc.message},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = describe_validation_errors(exc.errors())
    logger.warning("%s %s rejected: %s", request.method, request.url.path, detail)
    return JSONResponse(status_code=400, content={"errors": detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TelemetryError, telemetry_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
