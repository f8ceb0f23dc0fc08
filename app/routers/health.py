from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter

from app.context import get_service_context
from config.settings import settings

router = APIRouter()


@router.get("/health")
def health():
    # Liveness only: no provider call, no secrets.
    rev = os.getenv("K_REVISION") or ""
    svc = os.getenv("K_SERVICE") or "otp-burner"
    ctx = get_service_context()

    payload: Dict[str, Any] = {
        "ok": True,
        "service": "otp-burner-api",
        "cloudrun_service": svc,
        "revision": rev,
        "environment": settings.ENVIRONMENT,
        "provider_configured": settings.provider_configured,
        "provider_token_cached": ctx.tokens.has_valid_token(),
        "max_leased_number_count": settings.MAX_LEASED_NUMBER_COUNT,
        "debug": bool(settings.DEBUG),
        "time_unix": time.time(),
    }

    if not payload["provider_configured"]:
        payload["ok"] = False

    return payload
