from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from config.settings import settings
from models.errors import ProviderError
from provider.token_manager import TokenManager

log = logging.getLogger("otp.provider.gateway")


class ProviderGateway:
    """Authenticated JSON calls against the provider's messaging API."""

    def __init__(
        self,
        tokens: TokenManager,
        base_url: Optional[str] = None,
        content_language: Optional[str] = None,
        http: Optional[httpx.Client] = None,
    ):
        self.tokens = tokens
        self.base_url = (base_url or settings.TELSTRA_API_BASE_URL).rstrip("/")
        self.content_language = content_language or settings.TELSTRA_CONTENT_LANGUAGE
        self.http = http or tokens.http

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Content-Language": self.content_language,
        }

    def call(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON.

        Raises ProviderError on non-2xx (status 500 for local transport
        failures) and lets AuthenticationError from the token fetch through.
        """
        method = method.upper()
        token = self.tokens.get_access_token()
        url = f"{self.base_url}{path}"

        kwargs: Dict[str, Any] = {"headers": self._headers(token)}
        if params:
            kwargs["params"] = params
        if method != "GET":
            kwargs["json"] = body if body is not None else {}

        t0 = time.time()
        try:
            r = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            dt_ms = int((time.time() - t0) * 1000)
            log.error(
                "provider_call_exception",
                extra={
                    "extra": {
                        "event": "provider_call_exception",
                        "method": method,
                        "path": path,
                        "error_type": type(e).__name__,
                        "message": str(e),
                        "latency_ms": dt_ms,
                    }
                },
            )
            raise ProviderError(status=500, data=str(e)) from e

        dt_ms = int((time.time() - t0) * 1000)
        data = _decode(r)

        if r.status_code < 200 or r.status_code >= 300:
            log.warning(
                "provider_call_failed",
                extra={
                    "extra": {
                        "event": "provider_call_failed",
                        "method": method,
                        "path": path,
                        "status_code": r.status_code,
                        "resp": data,
                        "latency_ms": dt_ms,
                    }
                },
            )
            raise ProviderError(status=r.status_code, data=data)

        log.info(
            "provider_call_result",
            extra={
                "extra": {
                    "event": "provider_call_result",
                    "method": method,
                    "path": path,
                    "status_code": r.status_code,
                    "latency_ms": dt_ms,
                }
            },
        )
        return data


def _decode(r: httpx.Response) -> Any:
    if not r.content:
        return {}
    try:
        return r.json()
    except ValueError:
        return (r.text or "")[:500]
