from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException

from app.context import get_service_context
from app.router import ApiRouter
from app.routers.health import router as health_router
from config.settings import settings
from ops.structured_logger import setup_logging
from utils.request_context import clear_request_id, request_id_from_headers, set_request_id

setup_logging("DEBUG" if settings.DEBUG else "INFO")

app = FastAPI(title="OTP Burner API", version="1.0.0")
log = logging.getLogger("otp.api")

API_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def get_api_router() -> ApiRouter:
    return ApiRouter(get_service_context())


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or ""


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    set_request_id(rid)
    try:
        response = await call_next(request)
    finally:
        clear_request_id()
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    rid = _get_request_id(request)
    log.warning(
        "http_exception",
        extra={
            "extra": {
                "event": "http_exception",
                "status_code": exc.status_code,
                "detail": exc.detail,
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            }
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _get_request_id(request)
    log.error(
        "internal_unhandled_exception",
        extra={
            "extra": {
                "event": "internal_unhandled_exception",
                "error_type": type(exc).__name__,
                "message": str(exc),
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            }
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "internal_unhandled_exception", "request_id": rid, "revision": os.getenv("K_REVISION") or ""},
    )


@app.api_route("/api/{proxy:path}", methods=API_METHODS)
async def api_proxy(proxy: str, request: Request) -> Response:
    raw = await request.body()
    event: Dict[str, Any] = {
        "httpMethod": request.method,
        "path": request.url.path,
        "headers": dict(request.headers),
        "queryStringParameters": dict(request.query_params) or None,
        "pathParameters": {"proxy": proxy},
        "body": raw.decode("utf-8", errors="replace") if raw else None,
    }
    # Provider calls are blocking httpx; keep them off the event loop.
    result = await run_in_threadpool(get_api_router().handle, event)
    return Response(content=result.body, status_code=result.status_code, headers=result.headers)


app.include_router(health_router, tags=["health"])


def lambda_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Entry point for API-gateway style hosting; returns {statusCode, headers, body}."""
    set_request_id(request_id_from_headers(event.get("headers")))
    try:
        return get_api_router().handle(event).to_dict()
    finally:
        clear_request_id()
