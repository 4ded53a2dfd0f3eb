import logging
from typing import Any, Callable, Optional, Union

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse

from x402_stellar.common import (
    build_payment_requirements,
    find_matching_payment_requirements,
    process_price_to_atomic_amount,
    route_config_options,
    x402_VERSION,
)
from x402_stellar.encoding import (
    InvalidPaymentHeaderError,
    decode_payment_header,
    encode_payment_response_header,
)
from x402_stellar.facilitator import AsyncFacilitatorClient, FacilitatorConfigLike
from x402_stellar.networks import to_x402_network
from x402_stellar.path import path_is_match
from x402_stellar.paywall import get_paywall_html, is_browser_request
from x402_stellar.stellar.wallet import is_valid_address
from x402_stellar.types import (
    PaywallConfig,
    Price,
    RouteConfig,
    RoutesConfig,
    x402PaymentRequiredResponse,
)

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


def require_payment(
    price: Price,
    pay_to_address: str,
    path: Union[str, list[str]] = "*",
    description: str = "",
    mime_type: str = "",
    output_schema: Optional[dict[str, Any]] = None,
    max_deadline_seconds: int = 60,
    facilitator_config: Optional[FacilitatorConfigLike] = None,
    network: str = "stellar-testnet",
    resource: Optional[str] = None,
    paywall_config: Optional[PaywallConfig] = None,
    custom_paywall_html: Optional[str] = None,
):
    """Generate a FastAPI middleware that gates payments for an endpoint.

    Args:
        price (Price): Payment price in stroops (e.g. "1000000" or 1000000),
            or an XLM amount such as "0.1 XLM"
        pay_to_address (str): Stellar address (G...) to receive the payment
        path (str | list[str], optional): Path to gate with payments. Defaults to "*" for all paths.
        description (str, optional): Description of what is being purchased. Defaults to "".
        mime_type (str, optional): MIME type of the resource. Defaults to "".
        output_schema (dict, optional): JSON schema of the response body.
        max_deadline_seconds (int, optional): Maximum time allowed for payment. Defaults to 60.
        facilitator_config (FacilitatorConfig | dict | str): Facilitator to verify and settle
            payments with. Required; there is no public default.
        network (str, optional): Stellar network. Defaults to "stellar-testnet".
        resource (Optional[str], optional): Resource URL. Defaults to None (uses request URL).
        paywall_config (Optional[PaywallConfig], optional): Configuration for paywall UI customization.
        custom_paywall_html (Optional[str], optional): Custom HTML to display for paywall instead of default.

    Returns:
        Callable: FastAPI middleware function that checks for valid payment before processing requests
    """
    if not facilitator_config:
        raise ValueError("Facilitator configuration is required - no default available")

    network = to_x402_network(network)

    if not is_valid_address(pay_to_address):
        raise ValueError(f"Invalid Stellar address: {pay_to_address}")

    try:
        amount = process_price_to_atomic_amount(price)
    except ValueError as e:
        raise ValueError(f"Invalid price: {price}. Error: {e}")

    facilitator = AsyncFacilitatorClient(facilitator_config)

    async def middleware(request: Request, call_next: Callable):
        # Skip if the path is not the same as the path in the middleware
        if not path_is_match(path, request.url.path):
            return await call_next(request)

        payment_requirements = [
            build_payment_requirements(
                price=amount,
                pay_to_address=pay_to_address,
                resource=resource or str(request.url),
                network=network,
                description=description,
                mime_type=mime_type,
                output_schema=output_schema,
                max_timeout_seconds=max_deadline_seconds,
            )
        ]

        def x402_response(error: str):
            """Create a 402 response with payment requirements."""
            request_headers = dict(request.headers)
            status_code = 402

            if is_browser_request(request_headers):
                html_content = custom_paywall_html or get_paywall_html(
                    error, payment_requirements, paywall_config
                )
                return HTMLResponse(content=html_content, status_code=status_code)

            response_data = x402PaymentRequiredResponse(
                x402_version=x402_VERSION,
                accepts=payment_requirements,
                error=error,
            ).model_dump(by_alias=True)

            return JSONResponse(content=response_data, status_code=status_code)

        payment_header = request.headers.get(PAYMENT_HEADER, "")

        if payment_header == "":
            return x402_response(f"{PAYMENT_HEADER} header is required")

        try:
            payment = decode_payment_header(payment_header)
        except InvalidPaymentHeaderError as e:
            logger.warning(
                "Invalid payment header format from %s: %s",
                request.client.host if request.client else "unknown",
                e,
            )
            return x402_response("Invalid payment header format")

        selected_payment_requirements = find_matching_payment_requirements(
            payment_requirements, payment
        )

        if not selected_payment_requirements:
            return x402_response("No matching payment requirements found")

        verify_response = await facilitator.verify(
            payment_header, selected_payment_requirements
        )

        if not verify_response.is_valid:
            error_reason = verify_response.invalid_reason or "Unknown error"
            return x402_response(f"Invalid payment: {error_reason}")

        request.state.payment_details = selected_payment_requirements
        request.state.verify_response = verify_response

        response = await call_next(request)

        # Early return without settling if the response is not a 2xx
        if response.status_code < 200 or response.status_code >= 300:
            return response

        try:
            settle_response = await facilitator.settle(
                payment_header, selected_payment_requirements
            )
        except Exception as e:
            logger.exception("Settlement raised for %s", request.url.path)
            return x402_response(f"Settle failed: {e}")

        if not settle_response.success:
            return x402_response(
                "Settle failed: " + (settle_response.error or "Unknown error")
            )

        response.headers[PAYMENT_RESPONSE_HEADER] = encode_payment_response_header(
            settle_response
        )
        response.headers["Access-Control-Expose-Headers"] = PAYMENT_RESPONSE_HEADER
        return response

    return middleware


def payment_middleware(
    pay_to_address: str,
    routes: RoutesConfig,
    facilitator_config: FacilitatorConfigLike,
    paywall_config: Optional[PaywallConfig] = None,
    custom_paywall_html: Optional[str] = None,
):
    """Generate one FastAPI middleware that gates several routes.

    Args:
        pay_to_address (str): Stellar address (G...) to receive payments
        routes (RoutesConfig): Path pattern -> RouteConfig (or an equivalent dict).
            The first matching pattern wins.
        facilitator_config: Facilitator to verify and settle payments with

    Example:
        app.middleware("http")(
            payment_middleware(
                "GB...",
                {"/api/premium/*": {"price": "1000000", "network": "testnet"}},
                FacilitatorConfig(url="https://facilitator.example.com"),
            )
        )
    """
    route_middlewares = []
    for pattern, route in routes.items():
        route_middlewares.append(
            (
                pattern,
                require_payment(
                    pay_to_address=pay_to_address,
                    path=pattern,
                    facilitator_config=facilitator_config,
                    paywall_config=paywall_config,
                    custom_paywall_html=custom_paywall_html,
                    **route_config_options(RouteConfig.model_validate(route)),
                ),
            )
        )

    async def middleware(request: Request, call_next: Callable):
        for pattern, route_middleware in route_middlewares:
            if path_is_match(pattern, request.url.path):
                return await route_middleware(request, call_next)
        return await call_next(request)

    return middleware
