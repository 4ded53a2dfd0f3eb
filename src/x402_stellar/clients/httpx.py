import asyncio
from typing import Dict, List, Optional

from httpx import AsyncClient, Request, Response
from stellar_sdk import Keypair

from x402_stellar.clients.base import (
    PaymentError,
    PaymentSelectorCallable,
    x402Client,
)
from x402_stellar.types import x402PaymentRequiredResponse


class HttpxHooks:
    def __init__(self, client: x402Client):
        self.client = client

    async def on_request(self, request: Request):
        """Handle request before it is sent."""
        pass

    async def on_response(self, response: Response) -> Response:
        """Handle response after it is received."""

        # If this is not a 402, just return the response
        if response.status_code != 402:
            return response

        try:
            # Raises RuntimeError when the response was built without a request
            request = response.request

            # A paid retry that still gets a 402 is returned as is
            if request.extensions.get("x402_is_retry"):
                return response

            # Read the response content before parsing
            await response.aread()

            data = response.json()
            payment_response = x402PaymentRequiredResponse(**data)

            selected_requirements = self.client.select_payment_requirements(
                payment_response.accepts
            )

            # Loading the source account from Horizon is a blocking request
            payment_header = await asyncio.to_thread(
                self.client.create_payment_header,
                selected_requirements,
                payment_response.x402_version,
            )

            # Mark this request as a retry; extensions are per request
            request.extensions["x402_is_retry"] = True
            request.headers["X-PAYMENT"] = payment_header
            request.headers["Access-Control-Expose-Headers"] = "X-PAYMENT-RESPONSE"

            async with AsyncClient() as client:
                retry_response = await client.send(request)

                # Copy the retry response data to the original response
                response.status_code = retry_response.status_code
                response.headers = retry_response.headers
                response._content = retry_response._content
                return response

        except PaymentError:
            raise
        except Exception as e:
            raise PaymentError(f"Failed to handle payment: {e}") from e


def x402_payment_hooks(
    keypair: Keypair,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    horizon_url: Optional[str] = None,
) -> Dict[str, List]:
    """Create httpx event hooks dictionary for handling 402 Payment Required responses.

    Args:
        keypair: Stellar keypair used to sign payments
        max_value: Optional maximum allowed payment amount in stroops
        payment_requirements_selector: Optional custom selector for payment requirements.
            Should be a callable that takes (accepts, network_filter, scheme_filter, max_value)
            and returns a PaymentRequirements object.
        horizon_url: Optional Horizon URL overriding the network default

    Returns:
        Dictionary of event hooks that can be directly assigned to client.event_hooks
    """
    client = x402Client(
        keypair,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
        horizon_url=horizon_url,
    )
    hooks = HttpxHooks(client)

    return {
        "request": [hooks.on_request],
        "response": [hooks.on_response],
    }


class x402HttpxClient(AsyncClient):
    """AsyncClient with built-in x402 payment handling."""

    def __init__(
        self,
        keypair: Keypair,
        max_value: Optional[int] = None,
        payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
        horizon_url: Optional[str] = None,
        **kwargs,
    ):
        """Initialize an AsyncClient with x402 payment handling.

        Args:
            keypair: Stellar keypair used to sign payments
            max_value: Optional maximum allowed payment amount in stroops
            payment_requirements_selector: Optional custom selector for payment requirements
            horizon_url: Optional Horizon URL overriding the network default
            **kwargs: Additional arguments to pass to AsyncClient
        """
        super().__init__(**kwargs)
        self.event_hooks = x402_payment_hooks(
            keypair, max_value, payment_requirements_selector, horizon_url
        )
