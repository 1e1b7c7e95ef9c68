# assist_gateway/api/errors.py
import logging
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from assist_gateway.core.config import get_settings
from assist_gateway.core.cors import cors_headers
from assist_gateway.core.exceptions import GatewayError, RemoteServiceError

logger = logging.getLogger(__name__)


def request_cors_headers(request: Request) -> Dict[str, str]:
    """Headers computed by the endpoint, or from global settings if it never ran"""
    headers = getattr(request.state, "cors_headers", None)
    if headers is None:
        headers = cors_headers(request.headers.get("origin"), get_settings().allowed_origins)
    return headers


def error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers=request_cors_headers(request),
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(request, exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(RemoteServiceError)
    async def remote_error_handler(request: Request, exc: RemoteServiceError):
        logger.error(f"Assistant service error on {request.url.path}: {exc!r}")
        return error_response(request, 500, exc.message or "Internal Server Error")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return error_response(request, 500, "Internal Server Error")
