"""Payment intent decoding: manual form, QR code and NFC tag."""

from payledger.intents.decoders import (
    DecodeError,
    InvalidPayloadError,
    ManualTransferDecoder,
    ManualTransferForm,
    NFCPayloadDecoder,
    PaymentDecoder,
    QRPayloadDecoder,
    describe_validation_error,
    parse_payment_payload,
)
from payledger.intents.payload import PAYMENT_TYPE, NdefRecord, PaymentPayload

__all__ = [
    "PAYMENT_TYPE",
    "PaymentPayload",
    "NdefRecord",
    "DecodeError",
    "InvalidPayloadError",
    "PaymentDecoder",
    "ManualTransferForm",
    "ManualTransferDecoder",
    "QRPayloadDecoder",
    "NFCPayloadDecoder",
    "describe_validation_error",
    "parse_payment_payload",
]
