"""
Error responses

Every ShipquoteError becomes {"error": {...}} with the error's http_status.
Outside development, server-side errors whose text looks like it carries
internal details (credentials, connection strings) are replaced with a
generic message; the original is logged.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from shipquote.core.config import settings
from shipquote.core.exceptions import ShipquoteError

logger = logging.getLogger(__name__)

SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "token",
    "credential",
    "api_key",
    "sqlalchemy",
    "asyncpg",
    "postgresql",
    "redis://",
    "traceback",
]

GENERIC_MESSAGE = "An internal error occurred. Please try again later."


def is_sensitive_error(message: str) -> bool:
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def error_body(exc: ShipquoteError) -> dict:
    body = exc.to_dict()
    if (
        settings.ENVIRONMENT != "development"
        and exc.http_status >= 500
        and is_sensitive_error(f"{exc.message} {body.get('details')}")
    ):
        body["message"] = GENERIC_MESSAGE
        body["details"] = {}
    return {"error": body}


async def shipquote_error_handler(request: Request, exc: ShipquoteError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc!r}")
    return JSONResponse(status_code=exc.http_status, content=error_body(exc))
