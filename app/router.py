from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from app.context import ServiceContext
from leasing.lifecycle import numbers_payload
from models.errors import (
    MethodNotAllowedError,
    RouteNotFoundError,
    ServiceError,
    ValidationError,
)

log = logging.getLogger("otp.router")

CORS_ALLOW_HEADERS = "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token"
CORS_ALLOW_METHODS = "GET,POST,PUT,DELETE,OPTIONS"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


class Route(Enum):
    NUMBER = ("leaseNumber", "number")
    CURRENT_NUMBER = ("current-number",)
    VIRTUAL_NUMBERS = ("virtual-numbers",)
    MESSAGES = ("messages",)

    @property
    def segments(self) -> Tuple[str, ...]:
        return self.value

    @classmethod
    def match(cls, segment: str) -> Optional["Route"]:
        for route in cls:
            if segment in route.segments:
                return route
        return None


@dataclass
class ApiResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None

    def to_dict(self) -> Dict[str, Any]:
        return {"statusCode": self.status_code, "headers": dict(self.headers), "body": self.body}


def _header(headers: Optional[Mapping[str, Any]], name: str) -> str:
    name = name.lower()
    for k, v in (headers or {}).items():
        if str(k).lower() == name:
            return str(v or "")
    return ""


def resolve_method(event: Mapping[str, Any]) -> str:
    """The hosting gateway decides where the verb lives; take the first one present."""
    rc = event.get("requestContext") or {}
    candidates = (
        event.get("httpMethod"),
        (rc.get("http") or {}).get("method"),
        rc.get("httpMethod"),
    )
    for m in candidates:
        if m:
            return str(m).upper()
    return ""


def resolve_path(event: Mapping[str, Any]) -> str:
    proxy = (event.get("pathParameters") or {}).get("proxy")
    if proxy is not None:
        return str(proxy).strip("/")
    raw = str(event.get("rawPath") or event.get("path") or "").strip("/")
    if raw == "api":
        return ""
    if raw.startswith("api/"):
        raw = raw[len("api/"):]
    return raw


def cors_origin(request_origin: str, allowed_origins: List[str]) -> str:
    # Echo an allow-listed origin, otherwise answer for the first one.
    if not allowed_origins:
        return "*"
    if request_origin and request_origin in allowed_origins:
        return request_origin
    return allowed_origins[0]


Handler = Callable[[ServiceContext, Mapping[str, Any]], Tuple[int, Dict[str, Any]]]


def _lease(ctx: ServiceContext, event: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
    return 200, ctx.numbers.lease().to_payload()


def _release(ctx: ServiceContext, event: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
    return 200, {"message": ctx.numbers.release(event.get("body"))}


def _current_number(ctx: ServiceContext, event: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
    return 200, numbers_payload(ctx.numbers.get_current())


def _virtual_numbers(ctx: ServiceContext, event: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
    return 200, numbers_payload(ctx.numbers.get_all(), include_msisdn=True)


def _messages(ctx: ServiceContext, event: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
    return 200, ctx.messages.get_messages().to_payload()


ROUTES: Dict[Route, Dict[str, Handler]] = {
    Route.NUMBER: {"POST": _lease, "DELETE": _release},
    Route.CURRENT_NUMBER: {"GET": _current_number},
    Route.VIRTUAL_NUMBERS: {"GET": _virtual_numbers},
    Route.MESSAGES: {"GET": _messages},
}


class ApiRouter:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    def _headers(self, event: Mapping[str, Any]) -> Dict[str, str]:
        origin = cors_origin(_header(event.get("headers"), "origin"), self.ctx.allowed_origins)
        return {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Vary": "Origin",
            **SECURITY_HEADERS,
        }

    def handle(self, event: Mapping[str, Any]) -> ApiResponse:
        headers = self._headers(event)
        method = resolve_method(event)
        path = resolve_path(event)

        log.info("api_request", extra={"extra": {"event": "api_request", "method": method, "path": path}})

        if not method:
            log.error(
                "api_method_missing",
                extra={"extra": {"event": "api_method_missing", "event_keys": sorted(event.keys())}},
            )
            err = ValidationError("HTTP method is required")
            return ApiResponse(err.status_code, headers, json.dumps(err.to_body()))

        if method == "OPTIONS":
            return ApiResponse(200, headers, "")

        try:
            status, body = self._dispatch(method, path, event)
        except ServiceError as e:
            log.warning(
                "api_error",
                extra={
                    "extra": {
                        "event": "api_error",
                        "method": method,
                        "path": path,
                        "status_code": e.status_code,
                        "error_type": type(e).__name__,
                        "detail": e.message,
                    }
                },
            )
            return ApiResponse(e.status_code, headers, json.dumps(e.to_body()))
        except Exception as e:
            log.error(
                "api_unhandled_exception",
                extra={
                    "extra": {
                        "event": "api_unhandled_exception",
                        "method": method,
                        "path": path,
                        "error_type": type(e).__name__,
                        "message": str(e),
                    }
                },
                exc_info=True,
            )
            body = {"message": "Internal server error", "error": str(e)}
            return ApiResponse(500, headers, json.dumps(body))

        return ApiResponse(status, headers, json.dumps(body))

    def _dispatch(self, method: str, path: str, event: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
        route = Route.match(path)
        if route is None:
            raise RouteNotFoundError(f"Route not found: {method} /api/{path}")

        handlers = ROUTES[route]
        handler = handlers.get(method)
        if handler is None:
            raise MethodNotAllowedError(
                f"Method {method} not allowed for /api/{path}",
                allowed_methods=list(handlers),
            )
        return handler(self.ctx, event)
