"""
Maps application errors to HTTP responses.

Body shape: {"success": false, "error": {"kind": ..., "message": ...}}
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from autoblog.utils.errors import (
    AutoblogError,
    ConfigurationError,
    ContentQualityError,
    JobBusyError,
    JobNotFoundError,
    MissingPrerequisiteError,
    PersistenceError,
    ProviderError,
    StepError,
    TrendsError,
)

logger = logging.getLogger(__name__)

# Checked in order, most specific first
STATUS_CODES = (
    (JobNotFoundError, 404),
    (JobBusyError, 409),
    (MissingPrerequisiteError, 409),
    (StepError, 409),
    (ConfigurationError, 400),
    (ProviderError, 502),
    (ContentQualityError, 502),
    (TrendsError, 502),
    (PersistenceError, 500),
)


def status_code_for(exc: AutoblogError) -> int:
    for error_class, status_code in STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500


def error_body(kind: str, message: str) -> dict:
    return {"success": False, "error": {"kind": kind, "message": message}}


async def autoblog_error_handler(request: Request, exc: AutoblogError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content=error_body(exc.kind, exc.message))


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content=error_body("validation_error", str(exc)))
