from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from config.settings import settings
from models.errors import (
    AuthenticationError,
    MismatchError,
    NotFoundError,
    ProviderError,
    ServiceError,
    ValidationError,
)
from models.schema import PATH_VIRTUAL_NUMBERS, LeaseResult, VirtualNumber
from ops.structured_logger import number_hint
from provider.gateway import ProviderGateway

log = logging.getLogger("otp.numbers")

# Release accepts any of these body keys; first match wins.
RELEASE_ID_FIELDS = ("number", "virtualNumber", "phoneNumber")


def parse_virtual_numbers(data: Any) -> List[VirtualNumber]:
    items = (data or {}).get("virtualNumbers") if isinstance(data, dict) else None
    out: List[VirtualNumber] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        number = item.get("virtualNumber")
        if not number:
            continue
        expiry = item.get("expiryDate")
        out.append(VirtualNumber(number=str(number), expiry_date=str(expiry) if expiry else None))
    return out


def release_identifier(raw_body: Optional[str]) -> Optional[str]:
    """
    Pull the number to release out of a raw JSON request body.

    Returns None when there is no body at all. A body that is not JSON, or
    that names no number, is a ValidationError.
    """
    if not raw_body:
        return None
    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid JSON in request body")

    if isinstance(payload, dict):
        for key in RELEASE_ID_FIELDS:
            value = payload.get(key)
            if value:
                return str(value)
    raise ValidationError("Missing virtual number to release")


class NumberLifecycleManager:
    """
    Lease, release and list virtual numbers.

    The provider is the only authority on which numbers are leased, so every
    operation starts from a fresh listing rather than anything remembered
    from an earlier request.
    """

    def __init__(self, gateway: ProviderGateway, max_count: Optional[int] = None):
        self.gateway = gateway
        self.max_count = max_count if max_count is not None else settings.MAX_LEASED_NUMBER_COUNT

    def fetch_numbers(self) -> List[VirtualNumber]:
        data = self.gateway.call("GET", PATH_VIRTUAL_NUMBERS)
        return parse_virtual_numbers(data)

    def lease(self) -> LeaseResult:
        try:
            existing = self.fetch_numbers()
        except AuthenticationError:
            raise
        except ProviderError as e:
            raise e.with_message("Failed to lease numbers")

        log.info(
            "lease_existing",
            extra={"extra": {"event": "lease_existing", "existing": len(existing), "max": self.max_count}},
        )

        if len(existing) >= self.max_count:
            return LeaseResult(
                message=(
                    f"Already have {len(existing)} virtual numbers (max: {self.max_count}). "
                    "Not leasing additional numbers."
                ),
                virtual_numbers=existing,
                leased_count=len(existing),
                max_count=self.max_count,
            )

        to_lease = self.max_count - len(existing)
        leased: List[VirtualNumber] = []
        # One at a time; a failed lease is logged and the loop carries on.
        for i in range(to_lease):
            try:
                data = self.gateway.call("POST", PATH_VIRTUAL_NUMBERS, body={})
            except ServiceError as e:
                log.error(
                    "lease_number_failed",
                    extra={
                        "extra": {
                            "event": "lease_number_failed",
                            "attempt": i + 1,
                            "of": to_lease,
                            "error_type": type(e).__name__,
                            "status_code": e.status_code,
                            "error": e.error,
                        }
                    },
                )
                continue

            number = data.get("virtualNumber") if isinstance(data, dict) else None
            if not number:
                log.error(
                    "lease_number_missing",
                    extra={"extra": {"event": "lease_number_missing", "attempt": i + 1, "of": to_lease, "resp": data}},
                )
                continue

            expiry = data.get("expiryDate")
            leased.append(VirtualNumber(number=str(number), expiry_date=str(expiry) if expiry else None))
            log.info(
                "lease_number_ok",
                extra={"extra": {"event": "lease_number_ok", "attempt": i + 1, "of": to_lease, "dest": number_hint(str(number))}},
            )

        everything = existing + leased
        return LeaseResult(
            message=f"Successfully leased {len(leased)} new virtual numbers",
            virtual_numbers=everything,
            leased_count=len(everything),
            max_count=self.max_count,
        )

    def release(self, raw_body: Optional[str]) -> str:
        number = release_identifier(raw_body)

        try:
            live = self.fetch_numbers()
        except AuthenticationError:
            raise
        except ProviderError as e:
            raise e.with_message("Failed to release number")

        if number is None:
            if not live:
                raise NotFoundError("No active numbers found to release for this session")
            raise NotFoundError("No virtual number specified to release")

        if number not in {vn.number for vn in live}:
            if not live:
                raise NotFoundError("No active numbers found to release for this session")
            raise MismatchError("Requested number does not match any current leased numbers")

        try:
            self.gateway.call("DELETE", f"{PATH_VIRTUAL_NUMBERS}/{quote(number, safe='')}")
        except ProviderError as e:
            if e.status == 404:
                # Expired or released elsewhere between the listing and the delete.
                log.info(
                    "release_already_gone",
                    extra={"extra": {"event": "release_already_gone", "dest": number_hint(number)}},
                )
                return "Number was already released or not found with Telstra."
            raise e.with_message("Failed to release number")

        log.info("release_ok", extra={"extra": {"event": "release_ok", "dest": number_hint(number)}})
        return f"Number {number} released successfully"

    def get_current(self) -> List[VirtualNumber]:
        try:
            numbers = self.fetch_numbers()
        except ServiceError as e:
            raise ProviderError(
                status=500,
                data=e.error if e.error is not None else e.message,
                message="Failed to check for active numbers with Telstra",
            ) from e
        if not numbers:
            raise NotFoundError("No active numbers leased")
        return numbers

    def get_all(self) -> List[VirtualNumber]:
        try:
            return self.fetch_numbers()
        except ServiceError as e:
            # Secondary listing: stay up for the UI even when the provider is not.
            log.warning(
                "list_numbers_degraded",
                extra={"extra": {"event": "list_numbers_degraded", "error_type": type(e).__name__, "status_code": e.status_code}},
            )
            return []


def numbers_payload(numbers: List[VirtualNumber], include_msisdn: bool = False) -> Dict[str, Any]:
    return {"virtualNumbers": [vn.to_payload(include_msisdn=include_msisdn) for vn in numbers]}
