import json
import logging
from typing import Any, Dict, Optional, Union

from flask import Flask, g, request

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
from x402_stellar.facilitator import FacilitatorClient, FacilitatorConfigLike
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


class ResponseWrapper:
    """Wrapper to capture and buffer response for settlement logic."""

    def __init__(self, start_response):
        self.original_start_response = start_response
        self.status_code = None
        self.status = None
        self.headers = []
        self.write_callable_chunks = []

    def __call__(self, status, headers, exc_info=None):
        # Buffer the status, headers and write callable chunks
        self.status = status
        self.status_code = int(status.split()[0])
        self.headers = list(headers)

        def buffered_write(data):
            if data:
                self.write_callable_chunks.append(data)

        return buffered_write

    def add_header(self, name, value):
        """Add a header to the response."""
        self.headers.append((name, value))

    def send_response(self, body_chunks):
        """Send the buffered response after settlement."""
        write = self.original_start_response(self.status, self.headers)
        # Send data written via write callable first
        for chunk in self.write_callable_chunks:
            if chunk:
                write(chunk)
        # Then send data from response iterator
        for chunk in body_chunks:
            if chunk:
                write(chunk)


class PaymentMiddleware:
    """
    Flask middleware for x402 payment requirements on Stellar.
    Allows multiple registrations with different path patterns and configurations.

    Usage:
        middleware = PaymentMiddleware(app)
        middleware.add(path="/weather", price="1000000", pay_to_address="GB...",
                       facilitator_config=FacilitatorConfig(url="http://localhost:3002"))
        middleware.add_routes("GB...", {"/premium/*": {"price": "5000000"}}, facilitator_config)
    """

    def __init__(self, app: Flask):
        self.app = app
        self.middleware_configs = []
        self.original_wsgi_app = app.wsgi_app

    def add(
        self,
        price: Price,
        pay_to_address: str,
        path: Union[str, list[str]] = "*",
        description: str = "",
        mime_type: str = "",
        output_schema: Optional[Dict[str, Any]] = None,
        max_deadline_seconds: int = 60,
        facilitator_config: Optional[FacilitatorConfigLike] = None,
        network: str = "stellar-testnet",
        resource: Optional[str] = None,
        paywall_config: Optional[PaywallConfig] = None,
        custom_paywall_html: Optional[str] = None,
    ):
        """
        Add a payment middleware configuration.

        Args:
            price (Price): Payment price in stroops, or an XLM amount ("0.1 XLM")
            pay_to_address (str): Stellar address (G...) to receive payment
            path (str | list[str], optional): Path(s) to protect. Defaults to "*".
            description (str, optional): Description of the resource
            mime_type (str, optional): MIME type of the resource
            output_schema (dict, optional): JSON schema of the response body
            max_deadline_seconds (int, optional): Max time for payment
            facilitator_config (FacilitatorConfig | dict | str): Facilitator config. Required.
            network (str, optional): Stellar network. Defaults to "stellar-testnet".
            resource (str, optional): Resource URL
            paywall_config (PaywallConfig, optional): Paywall UI customization config
            custom_paywall_html (str, optional): Custom HTML to display for paywall instead of default
        """
        if not facilitator_config:
            raise ValueError("Facilitator configuration is required - no default available")

        config = {
            "price": price,
            "pay_to_address": pay_to_address,
            "path": path,
            "description": description,
            "mime_type": mime_type,
            "output_schema": output_schema,
            "max_deadline_seconds": max_deadline_seconds,
            "facilitator_config": facilitator_config,
            "network": network,
            "resource": resource,
            "paywall_config": paywall_config,
            "custom_paywall_html": custom_paywall_html,
        }
        self.middleware_configs.append(config)

        # Apply the middleware to the app
        self._apply_middleware()

    def add_routes(
        self,
        pay_to_address: str,
        routes: RoutesConfig,
        facilitator_config: FacilitatorConfigLike,
        paywall_config: Optional[PaywallConfig] = None,
        custom_paywall_html: Optional[str] = None,
    ):
        """
        Protect several routes at once.

        Args:
            pay_to_address (str): Stellar address (G...) to receive payments
            routes (RoutesConfig): Path pattern -> RouteConfig (or an equivalent dict)
            facilitator_config: Facilitator to verify and settle payments with
        """
        for pattern, route in routes.items():
            self.add(
                pay_to_address=pay_to_address,
                path=pattern,
                facilitator_config=facilitator_config,
                paywall_config=paywall_config,
                custom_paywall_html=custom_paywall_html,
                **route_config_options(RouteConfig.model_validate(route)),
            )

    def _apply_middleware(self):
        """Apply all middleware configurations to the Flask app."""
        current_wsgi_app = self.original_wsgi_app

        for config in self.middleware_configs:
            middleware = self._create_middleware(config, current_wsgi_app)
            current_wsgi_app = middleware

        self.app.wsgi_app = current_wsgi_app

    def _create_middleware(self, config: Dict[str, Any], next_app):
        """Create a WSGI middleware function for the given configuration."""

        network = to_x402_network(config["network"])

        if not is_valid_address(config["pay_to_address"]):
            raise ValueError(f"Invalid Stellar address: {config['pay_to_address']}")

        try:
            amount = process_price_to_atomic_amount(config["price"])
        except ValueError as e:
            raise ValueError(f"Invalid price: {config['price']}. Error: {e}")

        facilitator = FacilitatorClient(config["facilitator_config"])

        def middleware(environ, start_response):
            # Create Flask request context
            with self.app.request_context(environ):
                # Skip if the path is not the same as the path in the middleware
                if not path_is_match(config["path"], request.path):
                    return next_app(environ, start_response)

                payment_requirements = [
                    build_payment_requirements(
                        price=amount,
                        pay_to_address=config["pay_to_address"],
                        resource=config["resource"] or request.url,
                        network=network,
                        description=config["description"],
                        mime_type=config["mime_type"],
                        output_schema=config["output_schema"],
                        max_timeout_seconds=config["max_deadline_seconds"],
                    )
                ]

                def x402_response(error: str):
                    """Create a 402 response with payment requirements."""
                    request_headers = dict(request.headers)
                    status = "402 Payment Required"

                    if is_browser_request(request_headers):
                        html_content = config[
                            "custom_paywall_html"
                        ] or get_paywall_html(
                            error, payment_requirements, config["paywall_config"]
                        )
                        body = html_content.encode("utf-8")
                        headers = [
                            ("Content-Type", "text/html; charset=utf-8"),
                            ("Content-Length", str(len(body))),
                        ]

                        start_response(status, headers)
                        return [body]

                    response_data = x402PaymentRequiredResponse(
                        x402_version=x402_VERSION,
                        accepts=payment_requirements,
                        error=error,
                    ).model_dump(by_alias=True)
                    body = json.dumps(response_data).encode("utf-8")

                    headers = [
                        ("Content-Type", "application/json"),
                        ("Content-Length", str(len(body))),
                    ]

                    start_response(status, headers)
                    return [body]

                payment_header = request.headers.get(PAYMENT_HEADER, "")

                if payment_header == "":
                    return x402_response(f"{PAYMENT_HEADER} header is required")

                try:
                    payment = decode_payment_header(payment_header)
                except InvalidPaymentHeaderError as e:
                    logger.warning("Invalid payment header from %s: %s", request.remote_addr, e)
                    return x402_response("Invalid payment header format")

                selected_payment_requirements = find_matching_payment_requirements(
                    payment_requirements, payment
                )

                if not selected_payment_requirements:
                    return x402_response("No matching payment requirements found")

                verify_response = facilitator.verify(
                    payment_header, selected_payment_requirements
                )

                if not verify_response.is_valid:
                    error_reason = verify_response.invalid_reason or "Unknown error"
                    return x402_response(f"Invalid payment: {error_reason}")

                # Store payment details in Flask g object
                g.payment_details = selected_payment_requirements
                g.verify_response = verify_response

                # Create response wrapper to capture status and headers
                response_wrapper = ResponseWrapper(start_response)

                # Process the request and buffer all response chunks
                response_body_chunks = []
                app_iter = next_app(environ, response_wrapper)
                try:
                    for chunk in app_iter:
                        response_body_chunks.append(chunk)
                finally:
                    if hasattr(app_iter, "close"):
                        app_iter.close()

                # Only settle successful (2xx) responses
                if (
                    response_wrapper.status_code is not None
                    and 200 <= response_wrapper.status_code < 300
                ):
                    try:
                        settle_response = facilitator.settle(
                            payment_header, selected_payment_requirements
                        )
                    except Exception as e:
                        # Settlement error - discard buffered response and return 402
                        logger.exception("Settlement raised for %s", request.path)
                        return x402_response("Settle failed: " + (str(e) or "Unknown error"))

                    if not settle_response.success:
                        # Settlement failed - discard buffered response and return 402
                        return x402_response(
                            "Settle failed: " + (settle_response.error or "Unknown error")
                        )

                    response_wrapper.add_header(
                        PAYMENT_RESPONSE_HEADER,
                        encode_payment_response_header(settle_response),
                    )
                    response_wrapper.add_header(
                        "Access-Control-Expose-Headers", PAYMENT_RESPONSE_HEADER
                    )

                # Send the buffered response
                response_wrapper.send_response(response_body_chunks)
                return []

        return middleware
