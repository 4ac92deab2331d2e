"""
FastAPI exception handlers.

WHY: Every error leaves the API in one envelope,
{"error", "message", "status_code", "details"}, and field names inside
details use the same camelCase as request and response bodies, so the
portal's forms can map an error straight onto the offending input.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from client_portal.core.exceptions import AppException


logger = logging.getLogger(__name__)

# Location prefixes FastAPI puts in front of the payload path
_REQUEST_LOCATIONS = {"body", "query", "path"}


def camel_field(path: str) -> str:
    """Wire name of a dotted snake_case field path, e.g. deliverables.0.name."""
    return ".".join(part if part.isdigit() else to_camel(part) for part in path.split("."))


def _envelope(
    status_code: int, error: str, message: str, details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "status_code": status_code,
            "details": details,
        },
    )


def _camel_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {**item, "field": camel_field(item["field"])} if item.get("field") else item
        for item in errors
    ]


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render an AppException (ValidationError, ConflictError, ...).

    Context keys are camelized; sensitive keys were already dropped by
    AppException.to_dict.
    """
    if exc.status_code >= 500:
        logger.warning(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}"
        )
    content = exc.to_dict()
    details = content["details"]
    if details:
        details = {to_camel(key): value for key, value in details.items()}
        if isinstance(details.get("errors"), list):
            details["errors"] = _camel_errors(details["errors"])
    return _envelope(exc.status_code, content["error"], content["message"], details)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Render request-body validation failures as a 400 ValidationError.

    WHY: Schema errors and service-level ValidationError share the same
    {field, message} list, so clients only parse one shape. Field paths
    come from the request aliases and are already camelCase.
    """
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error["loc"]]
        if location and location[0] in _REQUEST_LOCATIONS:
            location = location[1:]
        errors.append({"field": ".".join(location), "message": error["msg"]})

    return _envelope(400, "ValidationError", "Request validation failed", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404), wrong methods (405) and other framework errors."""
    return _envelope(exc.status_code, "HTTPException", exc.detail)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for unexpected exceptions.

    The traceback is logged; the client only sees a generic message.
    """
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return _envelope(500, "InternalServerError", "An unexpected error occurred")
