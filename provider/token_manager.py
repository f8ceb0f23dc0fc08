from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx

from config.settings import settings
from models.errors import AuthenticationError

log = logging.getLogger("otp.provider.token")


class TokenManager:
    """
    OAuth2 client-credentials token cache for the provider.

    A cached token is handed out until `issued_at + expires_in - buffer`;
    past that point, or after any failed grant, a fresh grant is requested.
    Failures clear the cache and raise AuthenticationError. There is no retry:
    the caller decides what a failed token means for its request.

    Two concurrent refreshes are harmless (both tokens are valid), so the
    cache is not locked.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        auth_url: Optional[str] = None,
        scope: Optional[str] = None,
        buffer_seconds: Optional[int] = None,
        http: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id if client_id is not None else settings.TELSTRA_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.TELSTRA_CLIENT_SECRET
        self.auth_url = auth_url or settings.TELSTRA_AUTH_URL
        self.scope = scope if scope is not None else settings.TELSTRA_SCOPE
        self.buffer_seconds = buffer_seconds if buffer_seconds is not None else settings.TOKEN_EXPIRY_BUFFER_SECONDS
        self.http = http or httpx.Client(timeout=settings.PROVIDER_TIMEOUT_SECONDS)
        self.clock = clock

        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = None

    def has_valid_token(self) -> bool:
        return bool(self._token and self._expires_at is not None and self.clock() < self._expires_at)

    def get_access_token(self) -> str:
        if self.has_valid_token():
            return self._token  # type: ignore[return-value]

        if not self.client_id or not self.client_secret:
            self.invalidate()
            log.error("provider_token_not_configured", extra={"extra": {"event": "provider_token_not_configured"}})
            raise AuthenticationError("Provider client credentials are not configured")

        log.info("provider_token_fetch", extra={"extra": {"event": "provider_token_fetch"}})
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            r = self.http.post(
                self.auth_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            self.invalidate()
            log.error(
                "provider_token_exception",
                extra={"extra": {"event": "provider_token_exception", "error_type": type(e).__name__, "message": str(e)}},
            )
            raise AuthenticationError("Failed to authenticate with Telstra API.") from e

        try:
            data = r.json()
        except ValueError:
            data = {"status_code": r.status_code, "text": (r.text or "")[:500]}

        token = data.get("access_token") if isinstance(data, dict) else None
        if r.status_code >= 400 or not token:
            self.invalidate()
            log.error(
                "provider_token_rejected",
                extra={"extra": {"event": "provider_token_rejected", "status_code": r.status_code, "resp": data}},
            )
            raise AuthenticationError("Failed to authenticate with Telstra API.", error=data)

        try:
            ttl = float(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            ttl = 0.0

        self._token = str(token)
        self._expires_at = self.clock() + ttl - self.buffer_seconds
        log.info(
            "provider_token_ok",
            extra={"extra": {"event": "provider_token_ok", "expires_in": ttl, "buffer_seconds": self.buffer_seconds}},
        )
        return self._token
