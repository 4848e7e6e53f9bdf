"""
Payment Payload Wire Format

The JSON record carried by a "receive money" QR code or written to an NFC
tag:

    {"type": "payment", "receiverId": "...", "amount": 25,
     "description": "coffee", "timestamp": 1700000000000}

DESIGN DECISION: `amount` is a JSON number of minor units. Whole floats
(25.0) are accepted because some encoders emit them; fractional values,
booleans and strings are rejected rather than rounded or coerced.

Any `senderId` in the payload is ignored. The sender is always the
authenticated user who scanned or tapped.
"""

import json
from typing import Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from payledger.models.ledger import utc_now


PAYMENT_TYPE = "payment"


class PaymentPayload(BaseModel):
    """Decoded QR / NFC payment intent."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    type: Literal["payment"]
    receiver_id: str = Field(
        ...,
        alias="receiverId",
        min_length=1,
    )
    amount: int = Field(
        ...,
        description="Amount in minor currency units"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    timestamp: Optional[int] = Field(
        default=None,
        description="Creation time in epoch milliseconds"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def validate_amount(cls, v: Any) -> int:
        """Positive whole number; no bool, string or fractional coercion."""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("amount must be a number")
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("amount must be a whole number of minor units")
        if v <= 0:
            raise ValueError("Amount must be greater than 0")
        return int(v)

    @field_validator('timestamp', mode='before')
    @classmethod
    def validate_timestamp(cls, v: Any) -> Optional[int]:
        if v is None:
            return None
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("timestamp must be epoch milliseconds")
        return int(v)

    @classmethod
    def for_receiver(
        cls,
        receiver_id: str,
        amount: int,
        description: str,
    ) -> 'PaymentPayload':
        """Build the payload an account shows to get paid."""
        return cls(
            type=PAYMENT_TYPE,
            receiver_id=receiver_id,
            amount=amount,
            description=description,
            timestamp=int(utc_now().timestamp() * 1000),
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"))

    def to_ndef(self) -> list['NdefRecord']:
        """Records to write to an NFC tag."""
        return [NdefRecord.text(self.to_json())]


class NdefRecord(BaseModel):
    """One record of an NDEF message, as read from or written to a tag."""

    record_type: str = Field(..., min_length=1)
    data: bytes = b""
    encoding: str = "utf-8"

    @classmethod
    def text(cls, content: str, encoding: str = "utf-8") -> 'NdefRecord':
        return cls(
            record_type="text",
            data=content.encode(encoding),
            encoding=encoding,
        )

    def decode_text(self) -> str:
        return self.data.decode(self.encoding)
