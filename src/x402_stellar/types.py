from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing_extensions import (
    TypedDict,
)  # use `typing_extensions.TypedDict` instead of `typing.TypedDict` on Python < 3.12

from x402_stellar.networks import (
    NETWORK_PASSPHRASES,
    STELLAR_FUTURENET,
    STELLAR_MAINNET,
    STELLAR_TESTNET,
    SupportedNetworks,
    to_x402_network,
)

X402_VERSION = 1

# Uses "stellar-payment" to indicate a standard Stellar payment operation
STELLAR_SCHEME = "stellar-payment"

# Price can be stroops (int or integer string) or an XLM amount ("0.1 XLM")
Price = Union[str, int]


def _validate_integer_string(v: str, name: str) -> str:
    try:
        int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer encoded as a string")
    return v


class PaymentRequirements(BaseModel):
    scheme: str
    network: str
    max_amount_required: str
    resource: str
    description: str
    mime_type: str
    output_schema: Optional[dict[str, Any]] = None
    pay_to: str
    max_timeout_seconds: int
    extra: Optional[dict[str, Any]] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("max_amount_required")
    def validate_max_amount_required(cls, v):
        return _validate_integer_string(v, "max_amount_required")


# Returned by a server as json alongside a 402 response code
class x402PaymentRequiredResponse(BaseModel):
    x402_version: int
    accepts: list[PaymentRequirements]
    error: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class StellarPaymentPayload(BaseModel):
    """Scheme payload for Stellar: a base64 XDR transaction envelope.

    The envelope normally carries its own signatures. Signatures produced
    separately can be passed as base64 XDR DecoratedSignatures.
    """

    transaction: str
    signatures: Optional[list[str]] = None


class PaymentPayload(BaseModel):
    """Decoded content of the X-PAYMENT header."""

    x402_version: int
    scheme: str
    network: str
    payload: StellarPaymentPayload

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class VerifyRequest(BaseModel):
    """Body of the facilitator /verify endpoint."""

    x402_version: int
    payment_header: str
    payment_requirements: PaymentRequirements

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SettleRequest(BaseModel):
    """Body of the facilitator /settle endpoint."""

    x402_version: int
    payment_header: str
    payment_requirements: PaymentRequirements

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class VerifyResponse(BaseModel):
    is_valid: bool = Field(alias="isValid")
    invalid_reason: Optional[str] = Field(None, alias="invalidReason")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SettleResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    tx_hash: Optional[str] = None
    network_id: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaymentResponseHeader(BaseModel):
    """Decoded content of the X-PAYMENT-RESPONSE header."""

    settlement: SettleResponse


class SupportedKind(BaseModel):
    x402_version: int = X402_VERSION
    scheme: str
    network: str

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SupportedResponse(BaseModel):
    kinds: list[SupportedKind]


class RouteOptions(BaseModel):
    description: str = ""
    mime_type: str = ""
    output_schema: Optional[dict[str, Any]] = None
    max_timeout_seconds: Optional[int] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RouteConfig(BaseModel):
    """Payment requirements for one protected route.

    Example:
        routes = {
            "/api/premium/weather": RouteConfig(
                price="1000000",  # 0.1 XLM in stroops
                network="testnet",
                config=RouteOptions(description="Premium weather data"),
            )
        }
    """

    price: str
    network: str = "testnet"
    config: Optional[RouteOptions] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("price", mode="before")
    def validate_price(cls, v):
        if isinstance(v, int):
            v = str(v)
        return _validate_integer_string(v, "price")

    @field_validator("network")
    def validate_network(cls, v):
        to_x402_network(v)
        return v

    @property
    def x402_network(self) -> str:
        return to_x402_network(self.network)


RoutesConfig = dict[str, Union[RouteConfig, dict[str, Any]]]


class VerifyPaymentRequest(BaseModel):
    """Request body of the pre-protocol facilitator verify endpoint."""

    signed_transaction: str
    expected_recipient: str
    expected_amount: str
    expected_network: str

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class VerifyPaymentResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    message: Optional[str] = None


class SettlePaymentResponse(BaseModel):
    settled: bool
    transaction_hash: Optional[str] = None
    amount: Optional[str] = None
    recipient: Optional[str] = None
    network: Optional[str] = None
    # ISO string or Unix seconds, depending on the facilitator
    timestamp: Optional[Union[str, int]] = None
    status: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class X402PaymentRequest(BaseModel):
    """A direct payment, amount in XLM (e.g. "0.1")."""

    amount: str
    recipient: str
    network: str = STELLAR_TESTNET
    memo: Optional[str] = None


class X402PaymentResponse(BaseModel):
    transaction_hash: str
    sender: str
    amount: str
    recipient: str
    timestamp: int

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UnsupportedSchemeException(Exception):
    pass


class PaywallConfig(TypedDict, total=False):
    """Configuration for paywall UI customization"""

    app_name: str
    app_logo: str


__all__ = [
    "X402_VERSION",
    "STELLAR_SCHEME",
    "STELLAR_MAINNET",
    "STELLAR_TESTNET",
    "STELLAR_FUTURENET",
    "NETWORK_PASSPHRASES",
    "SupportedNetworks",
    "Price",
    "PaymentRequirements",
    "x402PaymentRequiredResponse",
    "StellarPaymentPayload",
    "PaymentPayload",
    "VerifyRequest",
    "SettleRequest",
    "VerifyResponse",
    "SettleResponse",
    "PaymentResponseHeader",
    "SupportedKind",
    "SupportedResponse",
    "RouteOptions",
    "RouteConfig",
    "RoutesConfig",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "SettlePaymentResponse",
    "X402PaymentRequest",
    "X402PaymentResponse",
    "UnsupportedSchemeException",
    "PaywallConfig",
]
