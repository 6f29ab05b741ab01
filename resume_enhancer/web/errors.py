"""API error helpers and exception handlers.

Every non-2xx response body is ``{"error": "<message>"}``.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import EnhancerError
from ..redaction import redact_for_log, redact_text

logger = logging.getLogger("resume_enhancer.web.api")


class APIError(Exception):
    """Application-level API error with an HTTP status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


def bad_request(message: str) -> APIError:
    return APIError(400, message)


async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def enhancer_error_handler(request: Request, exc: EnhancerError) -> JSONResponse:
    """Map domain errors to their status; upstream failures become 500."""
    if exc.status_code >= 500:
        logger.warning(
            "api_upstream_error path=%s type=%s message=%s",
            request.url.path,
            exc.error_type,
            redact_text(exc.message),
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Normalize FastAPI validation errors to the ``{"error"}`` shape."""
    logger.info("api_invalid_request path=%s errors=%s", request.url.path, redact_for_log(list(exc.errors())))
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        problems.append(f"{location}: {item.get('msg', 'invalid')}" if location else str(item.get("msg", "invalid")))
    message = "Invalid request payload"
    if problems:
        message = f"{message}: {'; '.join(problems)}"
    return JSONResponse(status_code=400, content={"error": message})


async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api_unhandled_error path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})
