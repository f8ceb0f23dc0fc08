from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

import httpx

from config.settings import Settings, settings as default_settings
from leasing.lifecycle import NumberLifecycleManager
from leasing.messages import MessageRetriever
from provider.gateway import ProviderGateway
from provider.token_manager import TokenManager


@dataclass
class ServiceContext:
    """Everything one process needs to serve requests, token cache included."""

    tokens: TokenManager
    gateway: ProviderGateway
    numbers: NumberLifecycleManager
    messages: MessageRetriever
    allowed_origins: List[str]


def build_service_context(
    cfg: Optional[Settings] = None,
    http: Optional[httpx.Client] = None,
) -> ServiceContext:
    cfg = cfg or default_settings
    http = http or httpx.Client(timeout=cfg.PROVIDER_TIMEOUT_SECONDS)
    tokens = TokenManager(
        client_id=cfg.TELSTRA_CLIENT_ID,
        client_secret=cfg.TELSTRA_CLIENT_SECRET,
        auth_url=cfg.TELSTRA_AUTH_URL,
        scope=cfg.TELSTRA_SCOPE,
        buffer_seconds=cfg.TOKEN_EXPIRY_BUFFER_SECONDS,
        http=http,
    )
    gateway = ProviderGateway(
        tokens,
        base_url=cfg.TELSTRA_API_BASE_URL,
        content_language=cfg.TELSTRA_CONTENT_LANGUAGE,
        http=http,
    )
    numbers = NumberLifecycleManager(gateway, max_count=cfg.MAX_LEASED_NUMBER_COUNT)
    messages = MessageRetriever(numbers, limit=cfg.MESSAGES_FETCH_LIMIT)
    return ServiceContext(
        tokens=tokens,
        gateway=gateway,
        numbers=numbers,
        messages=messages,
        allowed_origins=cfg.allowed_origins,
    )


@lru_cache
def get_service_context() -> ServiceContext:
    return build_service_context()
