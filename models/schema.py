from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Provider endpoints (relative to TELSTRA_API_BASE_URL)
PATH_VIRTUAL_NUMBERS = "/virtual-numbers"
PATH_MESSAGES = "/messages"


class VirtualNumber(BaseModel):
    number: str
    expiry_date: Optional[str] = None

    def to_payload(self, include_msisdn: bool = False) -> Dict[str, Any]:
        # The UI reads whichever of these keys it knows about.
        out: Dict[str, Any] = {
            "number": self.number,
            "virtualNumber": self.number,
            "subscriptionId": self.number,
        }
        if include_msisdn:
            out["msisdn"] = self.number
        if self.expiry_date:
            out["expiryDate"] = self.expiry_date
        return out


class LeaseResult(BaseModel):
    message: str
    virtual_numbers: List[VirtualNumber] = Field(default_factory=list)
    leased_count: int
    max_count: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "virtualNumbers": [vn.to_payload() for vn in self.virtual_numbers],
            "leasedCount": self.leased_count,
            "maxCount": self.max_count,
        }


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    body: Optional[str] = None
    received_at: Optional[str] = Field(default=None, alias="receivedAt")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class MessagesResult(BaseModel):
    messages: List[Message] = Field(default_factory=list)
    active_numbers: List[str] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "messages": [m.to_payload() for m in self.messages],
            "activeNumbers": list(self.active_numbers),
        }
