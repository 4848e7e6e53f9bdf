"""
Payment Intent Decoders

DESIGN DECISION: Every way of starting a payment (typed form, scanned QR
code, tapped NFC tag) goes through one decoder contract and produces the
same TransferRequest. The transfer engine therefore has a single entry
point and never knows where a request came from.

Decoders:
- Only validate and normalize; they never read or write the ledger
- Raise InvalidPayloadError with a human-readable reason
- Take the sender from the authenticated caller, never from the payload
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from payledger.intents.payload import PAYMENT_TYPE, NdefRecord, PaymentPayload
from payledger.models.ledger import TransactionType, TransferRequest


class DecodeError(Exception):
    """Base exception for payment intents that cannot be decoded."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InvalidPayloadError(DecodeError):
    """The payload is malformed or is not a payment intent."""
    pass


def describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into one readable line."""
    parts = []
    for item in error.errors():
        field = ".".join(str(p) for p in item["loc"]) or "payload"
        message = item["msg"].removeprefix("Value error, ")
        parts.append(f"{field}: {message}")
    return "; ".join(parts)


def parse_payment_payload(text: str) -> PaymentPayload:
    """
    Parse and validate payment payload JSON.

    Raises:
        InvalidPayloadError: If the text is not a valid payment payload
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        raise InvalidPayloadError("Payload is not valid JSON")

    if not isinstance(data, dict):
        raise InvalidPayloadError("Payload must be a JSON object")
    if data.get("type") != PAYMENT_TYPE:
        raise InvalidPayloadError("Not a payment code")

    try:
        return PaymentPayload.model_validate(data)
    except ValidationError as e:
        raise InvalidPayloadError(describe_validation_error(e))


class ManualTransferForm(BaseModel):
    """Fields of the "send money" form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    sender_id: str = ""
    receiver_id: str = ""
    amount: int = Field(default=0, strict=True)
    description: str = ""
    idempotency_key: Optional[str] = None


class PaymentDecoder(ABC):
    """Turns one kind of payment signal into a TransferRequest."""

    source: str = "payment"
    transaction_type: TransactionType = TransactionType.TRANSFER

    @abstractmethod
    def decode(self, raw: Any, sender_id: Optional[str] = None) -> TransferRequest:
        """
        Decode a raw payment intent.

        Args:
            raw: Source-specific input
            sender_id: Authenticated sender

        Raises:
            DecodeError: If no valid request can be produced
        """
        pass

    @staticmethod
    def _require_sender(sender_id: Optional[str]) -> str:
        if not sender_id or not sender_id.strip():
            raise DecodeError("An authenticated sender is required")
        return sender_id.strip()

    def _to_request(self, payload: PaymentPayload, sender_id: str) -> TransferRequest:
        return TransferRequest(
            sender_id=sender_id,
            receiver_id=payload.receiver_id,
            amount=payload.amount,
            description=payload.description,
            transaction_type=self.transaction_type,
        )


class ManualTransferDecoder(PaymentDecoder):
    """Form input is already typed; only presence and sign are checked."""

    source = "manual"

    def decode(
        self,
        raw: ManualTransferForm,
        sender_id: Optional[str] = None,
    ) -> TransferRequest:
        sender_id = self._require_sender(sender_id or raw.sender_id)

        issues = []
        if not raw.receiver_id:
            issues.append("Receiver ID is required")
        if raw.amount <= 0:
            issues.append("Amount must be greater than 0")
        if not raw.description:
            issues.append("Description is required")
        if issues:
            raise InvalidPayloadError("; ".join(issues))

        return TransferRequest(
            sender_id=sender_id,
            receiver_id=raw.receiver_id,
            amount=raw.amount,
            description=raw.description,
            transaction_type=self.transaction_type,
            idempotency_key=raw.idempotency_key,
        )


class QRPayloadDecoder(PaymentDecoder):
    """Decodes the JSON text of a scanned payment QR code."""

    source = "qr"

    def decode(self, raw: str, sender_id: Optional[str] = None) -> TransferRequest:
        sender_id = self._require_sender(sender_id)
        return self._to_request(parse_payment_payload(raw), sender_id)


class NFCPayloadDecoder(PaymentDecoder):
    """
    Decodes a payment read from an NFC tag.

    The first `text` record of the NDEF message carries the same JSON as a
    payment QR code. Raw text (already extracted from the tag) is accepted
    too.
    """

    source = "nfc"
    transaction_type = TransactionType.NFC

    def decode(
        self,
        raw: Union[str, Sequence[NdefRecord]],
        sender_id: Optional[str] = None,
    ) -> TransferRequest:
        sender_id = self._require_sender(sender_id)
        text = raw if isinstance(raw, str) else self._first_text(raw)
        return self._to_request(parse_payment_payload(text), sender_id)

    @staticmethod
    def _first_text(records: Sequence[NdefRecord]) -> str:
        for record in records:
            if record.record_type == "text":
                try:
                    return record.decode_text()
                except (UnicodeDecodeError, LookupError):
                    raise InvalidPayloadError("Tag text record could not be decoded")
        raise InvalidPayloadError("Tag has no text record")
