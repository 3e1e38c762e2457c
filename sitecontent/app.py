"""
FastAPI application entry point for the content store.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from sitecontent.config import get_settings
from sitecontent.errors import (
    AuthError,
    ContentForbidden,
    ContentInvalid,
    ContentNotFound,
    DocumentCorrupted,
    PasswordPolicyError,
    SiteContentError,
    StorageError,
    StorageNotConfigured,
)
from sitecontent.routes import router

logger = logging.getLogger(__name__)


async def sitecontent_exception_handler(
    request: Request, exc: SiteContentError
) -> JSONResponse:
    """Map store and auth errors to HTTP responses."""
    if isinstance(exc, (PasswordPolicyError, ContentInvalid)):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, AuthError):
        # Expected outcome, not a system error.
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED, content={"error": str(exc)}
        )
    elif isinstance(exc, ContentForbidden):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, ContentNotFound):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, StorageNotConfigured):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, DocumentCorrupted):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    elif isinstance(exc, StorageError):
        status_code = status.HTTP_502_BAD_GATEWAY
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Site Content Backend", version="0.1.0")
    app.add_exception_handler(SiteContentError, sitecontent_exception_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
