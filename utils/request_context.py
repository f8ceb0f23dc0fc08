from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Any, Mapping, Optional

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

def set_request_id(rid: str) -> None:
    _request_id_var.set(rid or "")

def get_request_id() -> str:
    return _request_id_var.get() or ""

def clear_request_id() -> None:
    _request_id_var.set("")

def request_id_from_headers(headers: Optional[Mapping[str, Any]]) -> str:
    # API gateways do not normalise header case.
    for k, v in (headers or {}).items():
        if str(k).lower() == "x-request-id" and v:
            return str(v)
    return str(uuid.uuid4())
