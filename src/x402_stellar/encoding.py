import base64
import binascii
from typing import Union

from pydantic import ValidationError

from x402_stellar.types import (
    PaymentPayload,
    PaymentResponseHeader,
    SettleResponse,
)


class InvalidPaymentHeaderError(ValueError):
    """Raised when an X-PAYMENT or X-PAYMENT-RESPONSE value cannot be decoded."""


def safe_base64_encode(data: Union[str, bytes]) -> str:
    """Safely encode string or bytes to base64 string.

    Args:
        data: String or bytes to encode

    Returns:
        Base64 encoded string
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Safely decode base64 string to bytes and then to utf-8 string.

    Args:
        data: Base64 encoded string

    Returns:
        Decoded utf-8 string
    """
    return base64.b64decode(data, validate=True).decode("utf-8")


def encode_payment_header(payment: PaymentPayload) -> str:
    """Encode a payment payload to an X-PAYMENT header value.

    Args:
        payment: Payment payload carrying the signed transaction envelope

    Returns:
        Base64 encoded JSON
    """
    return safe_base64_encode(payment.model_dump_json(by_alias=True, exclude_none=True))


def decode_payment_header(header: str) -> PaymentPayload:
    """Decode an X-PAYMENT header value.

    Args:
        header: Base64 encoded payment payload

    Returns:
        Decoded PaymentPayload object

    Raises:
        InvalidPaymentHeaderError: If the header is not base64 JSON of a payment payload
    """
    try:
        return PaymentPayload.model_validate_json(safe_base64_decode(header))
    # non-ASCII input raises a plain ValueError from b64decode
    except (binascii.Error, UnicodeDecodeError, ValidationError, ValueError) as e:
        raise InvalidPaymentHeaderError(f"Invalid payment header: {e}") from e


def encode_payment_response_header(settlement: SettleResponse) -> str:
    """Encode a settlement result to an X-PAYMENT-RESPONSE header value."""
    header = PaymentResponseHeader(settlement=settlement)
    return safe_base64_encode(header.model_dump_json(by_alias=True))


def decode_payment_response_header(header: str) -> PaymentResponseHeader:
    """Decode an X-PAYMENT-RESPONSE header value.

    Raises:
        InvalidPaymentHeaderError: If the header cannot be decoded
    """
    try:
        return PaymentResponseHeader.model_validate_json(safe_base64_decode(header))
    # non-ASCII input raises a plain ValueError from b64decode
    except (binascii.Error, UnicodeDecodeError, ValidationError, ValueError) as e:
        raise InvalidPaymentHeaderError(f"Invalid payment response header: {e}") from e
