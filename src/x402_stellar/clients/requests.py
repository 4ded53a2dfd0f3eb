import json
import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from stellar_sdk import Keypair

from x402_stellar.clients.base import (
    PaymentError,
    PaymentSelectorCallable,
    x402Client,
)
from x402_stellar.types import x402PaymentRequiredResponse

logger = logging.getLogger(__name__)


class x402HTTPAdapter(HTTPAdapter):
    """HTTP adapter that pays 402 Payment Required responses and retries once."""

    def __init__(
        self,
        client: x402Client,
        **kwargs,
    ):
        """Initialize the adapter.

        Args:
            client: x402Client used to select requirements and sign payments
            **kwargs: Additional arguments for HTTPAdapter
        """
        super().__init__(**kwargs)
        self.client = client
        self._is_retry = False

    def send(self, request: requests.PreparedRequest, **kwargs) -> requests.Response:
        """Send a request, paying and retrying once on a 402.

        Raises:
            PaymentError: If payment handling fails
        """
        # A retry goes out as is; a second 402 is returned to the caller
        if self._is_retry:
            self._is_retry = False
            return super().send(request, **kwargs)

        response = super().send(request, **kwargs)

        if response.status_code != 402:
            return response

        try:
            data = json.loads(response.content.decode("utf-8"))
            payment_response = x402PaymentRequiredResponse(**data)

            selected_requirements = self.client.select_payment_requirements(
                payment_response.accepts
            )

            payment_header = self.client.create_payment_header(
                selected_requirements, payment_response.x402_version
            )

            self._is_retry = True
            request.headers["X-PAYMENT"] = payment_header
            request.headers["Access-Control-Expose-Headers"] = "X-PAYMENT-RESPONSE"

            retry_response = super().send(request, **kwargs)
            self._is_retry = False

            # Copy the retry response onto the original
            response.status_code = retry_response.status_code
            response.headers = retry_response.headers
            response._content = retry_response.content
            return response

        except PaymentError:
            self._is_retry = False
            raise
        except Exception as e:
            self._is_retry = False
            logger.warning("Failed to handle payment for %s: %s", request.url, e)
            raise PaymentError(f"Failed to handle payment: {e}") from e


def x402_http_adapter(
    keypair: Keypair,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    horizon_url: Optional[str] = None,
    **kwargs,
) -> x402HTTPAdapter:
    """Create an HTTP adapter that handles 402 Payment Required responses.

    Args:
        keypair: Stellar keypair used to sign payments
        max_value: Optional maximum allowed payment amount in stroops
        payment_requirements_selector: Optional custom selector for payment requirements
        horizon_url: Optional Horizon URL overriding the network default
        **kwargs: Additional arguments for HTTPAdapter

    Returns:
        x402HTTPAdapter to mount on a requests.Session
    """
    client = x402Client(
        keypair,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
        horizon_url=horizon_url,
    )
    return x402HTTPAdapter(client, **kwargs)


def x402_requests(
    keypair: Keypair,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    horizon_url: Optional[str] = None,
    **kwargs,
) -> requests.Session:
    """Create a requests session that pays for x402 resources.

    Example:
        session = x402_requests(Keypair.from_secret("S..."))
        response = session.get("https://api.example.com/premium")
    """
    session = requests.Session()
    adapter = x402_http_adapter(
        keypair,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
        horizon_url=horizon_url,
        **kwargs,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
