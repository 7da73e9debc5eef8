"""
FastAPI application entry point for the vendor proxy service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.config import get_settings
from backend.routes import router
from providers.base import ProviderError

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        messages.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    return "; ".join(messages) or "Invalid request"


async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error(f"{request.url.path} failed with {exc.status_code}: {exc.message}")
    content = {"error": exc.message}
    if exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Proxy error on {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Unexpected server error"})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="AI Studio Proxy (FastAPI)", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(ProviderError, provider_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    return app


app = create_app()
