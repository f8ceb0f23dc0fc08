from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from config.settings import settings
from models.errors import AuthenticationError, NotFoundError, ProviderError
from models.schema import PATH_MESSAGES, Message, MessagesResult
from leasing.lifecycle import NumberLifecycleManager

log = logging.getLogger("otp.messages")

# Canonical field -> provider keys, tried in order.
FIELD_VARIANTS: Tuple[Tuple[str, Sequence[str]], ...] = (
    ("from", ("from", "sourceNumber")),
    ("body", ("messageContent", "body")),
    ("to", ("to", "destinationNumber")),
    ("receivedAt", ("receivedTimestamp", "createTimestamp", "timestamp")),
)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _first_present(raw: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value if isinstance(value, str) else str(value)
    return None


def normalize_message(raw: Mapping[str, Any]) -> Message:
    fields: Dict[str, Optional[str]] = {name: _first_present(raw, keys) for name, keys in FIELD_VARIANTS}
    return Message.model_validate(fields)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    v = value.strip()
    # Epoch milliseconds. Checked first: fromisoformat reads long digit runs as basic-format dates.
    if v.lstrip("-").isdigit():
        try:
            return datetime.fromtimestamp(int(v) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(v)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def sort_newest_first(messages: List[Message]) -> List[Message]:
    # Undated messages go to the end.
    return sorted(messages, key=lambda m: parse_timestamp(m.received_at) or _OLDEST, reverse=True)


class MessageRetriever:
    """Fetch the account's recent inbound messages in canonical shape."""

    def __init__(self, numbers: NumberLifecycleManager, limit: Optional[int] = None):
        self.numbers = numbers
        self.gateway = numbers.gateway
        self.limit = limit if limit is not None else settings.MESSAGES_FETCH_LIMIT

    def get_messages(self) -> MessagesResult:
        try:
            active = self.numbers.fetch_numbers()
        except AuthenticationError:
            raise
        except ProviderError as e:
            raise e.with_message("Failed to fetch messages")

        if not active:
            raise NotFoundError("No active numbers to fetch messages for. Try leasing a number first.")

        # Account-scoped: messages to any of our numbers come back together.
        try:
            data = self.gateway.call("GET", PATH_MESSAGES, params={"limit": self.limit})
        except ProviderError as e:
            raise e.with_message("Failed to fetch messages")

        raw_messages = data.get("messages") if isinstance(data, dict) else None
        raw_messages = [m for m in (raw_messages or []) if isinstance(m, dict)]
        log.debug("messages_raw", extra={"extra": {"event": "messages_raw", "resp": data}})

        messages = sort_newest_first([normalize_message(m) for m in raw_messages])
        log.info(
            "messages_fetched",
            extra={"extra": {"event": "messages_fetched", "count": len(messages), "active_numbers": len(active)}},
        )
        return MessagesResult(messages=messages, active_numbers=[vn.number for vn in active])
