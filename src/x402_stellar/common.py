from typing import Any, Optional

from x402_stellar.networks import to_x402_network
from x402_stellar.stellar.units import xlm_to_stroops
from x402_stellar.types import (
    STELLAR_SCHEME,
    X402_VERSION,
    PaymentPayload,
    PaymentRequirements,
    Price,
    RouteConfig,
)

x402_VERSION = X402_VERSION


def process_price_to_atomic_amount(price: Price) -> str:
    """Convert a route price to an amount in stroops.

    Args:
        price: Stroops as an int or integer string ("1000000"), or an XLM
            amount suffixed with the asset code ("0.1 XLM")

    Returns:
        Amount in stroops as an integer string

    Raises:
        ValueError: If the price cannot be parsed or is negative
    """
    if isinstance(price, bool):
        raise ValueError(f"Invalid price type: {type(price)}")

    if isinstance(price, int):
        stroops = price
    elif isinstance(price, str):
        text = price.strip()
        if text.upper().endswith("XLM"):
            stroops = int(xlm_to_stroops(text[:-3].strip()))
        else:
            try:
                stroops = int(text)
            except ValueError:
                raise ValueError(
                    f"Invalid price: {price}. Use stroops (e.g. '1000000') or XLM (e.g. '0.1 XLM')"
                )
    else:
        raise ValueError(f"Invalid price type: {type(price)}")

    if stroops < 0:
        raise ValueError(f"Price must not be negative: {price}")
    return str(stroops)


def build_payment_requirements(
    price: Price,
    pay_to_address: str,
    resource: str,
    network: str,
    description: str = "",
    mime_type: str = "",
    output_schema: Optional[dict[str, Any]] = None,
    max_timeout_seconds: int = 60,
    extra: Optional[dict[str, Any]] = None,
) -> PaymentRequirements:
    """Construct the requirements a resource server advertises for one route."""
    return PaymentRequirements(
        scheme=STELLAR_SCHEME,
        network=to_x402_network(network),
        max_amount_required=process_price_to_atomic_amount(price),
        resource=resource,
        description=description,
        mime_type=mime_type,
        output_schema=output_schema,
        pay_to=pay_to_address,
        max_timeout_seconds=max_timeout_seconds,
        extra=extra,
    )


def route_config_options(route: RouteConfig, default_max_timeout_seconds: int = 60) -> dict[str, Any]:
    """Flatten a RouteConfig into middleware keyword arguments."""
    options = route.config
    max_timeout_seconds = default_max_timeout_seconds
    if options and options.max_timeout_seconds is not None:
        max_timeout_seconds = options.max_timeout_seconds

    return {
        "price": route.price,
        "network": route.network,
        "description": options.description if options else "",
        "mime_type": options.mime_type if options else "",
        "output_schema": options.output_schema if options else None,
        "max_deadline_seconds": max_timeout_seconds,
    }


def find_matching_payment_requirements(
    payment_requirements: list[PaymentRequirements],
    payment: PaymentPayload,
) -> Optional[PaymentRequirements]:
    """Pick the offered requirements the payment was made against.

    Matches on scheme and network; returns None if nothing matches.
    """
    for requirements in payment_requirements:
        if (
            requirements.scheme == payment.scheme
            and requirements.network == payment.network
        ):
            return requirements
    return None
