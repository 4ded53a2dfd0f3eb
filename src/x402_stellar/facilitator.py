"""Client for the x402 facilitator service.

The facilitator handles blockchain interactions for a resource server:

- /verify checks that a payment is valid without submitting it (fast)
- /settle submits the payment to the Stellar network (waits for the ledger)

Remote failures never raise from verify/settle. They come back as
VerifyResponse(is_valid=False) or SettleResponse(success=False) carrying
the reason.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Union

import httpx
from pydantic import ValidationError

from x402_stellar.networks import STELLAR_TESTNET
from x402_stellar.types import (
    X402_VERSION,
    PaymentRequirements,
    SettlePaymentResponse,
    SettleRequest,
    SettleResponse,
    SupportedResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class FacilitatorConfig:
    """Where the facilitator service lives. There is no default facilitator."""

    url: str
    timeout: float = DEFAULT_TIMEOUT
    http_client: Any = None  # Optional httpx.Client / httpx.AsyncClient

    def __post_init__(self):
        if not self.url:
            raise ValueError("Facilitator URL is required - no default available")

    @classmethod
    def from_env(cls) -> "FacilitatorConfig":
        """Read X402_FACILITATOR_URL and X402_FACILITATOR_TIMEOUT."""
        return cls(
            url=os.getenv("X402_FACILITATOR_URL", ""),
            timeout=float(os.getenv("X402_FACILITATOR_TIMEOUT", DEFAULT_TIMEOUT)),
        )


FacilitatorConfigLike = Union[FacilitatorConfig, dict, str]


def _coerce_config(config: FacilitatorConfigLike) -> FacilitatorConfig:
    if isinstance(config, FacilitatorConfig):
        return config
    if isinstance(config, str):
        return FacilitatorConfig(url=config)
    if isinstance(config, dict):
        return FacilitatorConfig(
            url=config.get("url", ""),
            timeout=config.get("timeout", DEFAULT_TIMEOUT),
            http_client=config.get("http_client"),
        )
    raise TypeError(f"Unsupported facilitator config: {type(config)}")


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return data.get("invalidReason") or data.get("error") or data.get("message")


class _BaseFacilitatorClient:
    def __init__(self, config: FacilitatorConfigLike) -> None:
        config = _coerce_config(config)
        self._url = config.url.rstrip("/")
        self._timeout = config.timeout
        self._http_client = config.http_client
        self._owns_client = config.http_client is None

    @property
    def url(self) -> str:
        """Get facilitator URL."""
        return self._url

    @staticmethod
    def _request_body(
        request_cls,
        payment_header: str,
        payment_requirements: PaymentRequirements,
        x402_version: int,
    ) -> dict[str, Any]:
        return request_cls(
            x402_version=x402_version,
            payment_header=payment_header,
            payment_requirements=payment_requirements,
        ).model_dump(by_alias=True)

    def _map_verify(self, response: httpx.Response) -> VerifyResponse:
        if not response.is_success:
            reason = _error_detail(response) or f"HTTP {response.status_code}"
            logger.warning(
                "Facilitator verify failed (%s): %s", response.status_code, reason
            )
            return VerifyResponse(is_valid=False, invalid_reason=reason)
        try:
            return VerifyResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Invalid facilitator verify response: %s", e)
            return VerifyResponse(
                is_valid=False, invalid_reason=f"Invalid facilitator response: {e}"
            )

    def _map_settle(self, response: httpx.Response) -> SettleResponse:
        if not response.is_success:
            error = _error_detail(response) or f"HTTP {response.status_code}"
            logger.warning(
                "Facilitator settle failed (%s): %s", response.status_code, error
            )
            return SettleResponse(success=False, error=error)
        try:
            return SettleResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Invalid facilitator settle response: %s", e)
            return SettleResponse(
                success=False, error=f"Invalid facilitator response: {e}"
            )

    def _map_supported(self, response: httpx.Response) -> SupportedResponse:
        if response.status_code != 200:
            raise ValueError(
                f"Facilitator get_supported failed ({response.status_code}): {response.text}"
            )
        return SupportedResponse.model_validate(response.json())


class FacilitatorClient(_BaseFacilitatorClient):
    """Synchronous facilitator client backed by httpx.Client."""

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self._timeout, follow_redirects=True)
        return self._http_client

    def close(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client and self._http_client:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> FacilitatorClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def verify(
        self,
        payment_header: str,
        payment_requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> VerifyResponse:
        """Verify a payment with the facilitator without settling it.

        Args:
            payment_header: The raw X-PAYMENT header value
            payment_requirements: Requirements to verify against
            x402_version: Protocol version to send

        Returns:
            VerifyResponse; is_valid=False on any failure
        """
        body = self._request_body(
            VerifyRequest, payment_header, payment_requirements, x402_version
        )
        try:
            response = self._get_client().post(f"{self._url}/verify", json=body)
        except httpx.HTTPError as e:
            logger.warning("Facilitator verify request failed: %s", e)
            return VerifyResponse(is_valid=False, invalid_reason=f"Network error: {e}")
        return self._map_verify(response)

    def settle(
        self,
        payment_header: str,
        payment_requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> SettleResponse:
        """Ask the facilitator to submit the payment to the network.

        Returns:
            SettleResponse; success=False on any failure
        """
        body = self._request_body(
            SettleRequest, payment_header, payment_requirements, x402_version
        )
        try:
            response = self._get_client().post(f"{self._url}/settle", json=body)
        except httpx.HTTPError as e:
            logger.warning("Facilitator settle request failed: %s", e)
            return SettleResponse(success=False, error=f"Network error: {e}")
        return self._map_settle(response)

    def supported(self) -> SupportedResponse:
        """Get the (scheme, network) kinds the facilitator handles.

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the facilitator answers with an error
        """
        return self._map_supported(self._get_client().get(f"{self._url}/supported"))


class AsyncFacilitatorClient(_BaseFacilitatorClient):
    """Asynchronous facilitator client backed by httpx.AsyncClient."""

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        # A caller-supplied client is reused; otherwise each call gets its own
        # client so the facilitator is not tied to one event loop.
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            yield client

    async def verify(
        self,
        payment_header: str,
        payment_requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> VerifyResponse:
        """Async counterpart of FacilitatorClient.verify."""
        body = self._request_body(
            VerifyRequest, payment_header, payment_requirements, x402_version
        )
        try:
            async with self._client() as client:
                response = await client.post(f"{self._url}/verify", json=body)
        except httpx.HTTPError as e:
            logger.warning("Facilitator verify request failed: %s", e)
            return VerifyResponse(is_valid=False, invalid_reason=f"Network error: {e}")
        return self._map_verify(response)

    async def settle(
        self,
        payment_header: str,
        payment_requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> SettleResponse:
        """Async counterpart of FacilitatorClient.settle."""
        body = self._request_body(
            SettleRequest, payment_header, payment_requirements, x402_version
        )
        try:
            async with self._client() as client:
                response = await client.post(f"{self._url}/settle", json=body)
        except httpx.HTTPError as e:
            logger.warning("Facilitator settle request failed: %s", e)
            return SettleResponse(success=False, error=f"Network error: {e}")
        return self._map_settle(response)

    async def supported(self) -> SupportedResponse:
        async with self._client() as client:
            response = await client.get(f"{self._url}/supported")
        return self._map_supported(response)


# ============================================================================
# Pre-protocol endpoints
#
# Facilitators deployed before the paymentHeader contract take the signed
# transaction and the expected values directly.
# ============================================================================


def _post_json(url: str, body: dict[str, Any], timeout: float) -> tuple[httpx.Response, dict]:
    response = httpx.post(url, json=body, timeout=timeout)
    try:
        data = response.json()
    except json.JSONDecodeError:
        data = {}
    return response, data if isinstance(data, dict) else {}


def verify_payment(
    facilitator_url: str,
    signed_transaction: str,
    expected_recipient: str,
    expected_amount: str,
    expected_network: str = STELLAR_TESTNET,
    timeout: float = DEFAULT_TIMEOUT,
) -> VerifyPaymentResponse:
    """Verify a signed transaction through the facilitator without submitting it.

    Args:
        facilitator_url: Full URL of the facilitator verify endpoint
        signed_transaction: Base64 XDR of the signed transaction envelope
        expected_recipient: Expected payment recipient (G...)
        expected_amount: Expected payment amount in stroops
        expected_network: Expected network ("stellar-testnet", "stellar-mainnet")

    Returns:
        VerifyPaymentResponse; valid=False on HTTP or network errors
    """
    body = VerifyPaymentRequest(
        signed_transaction=signed_transaction,
        expected_recipient=expected_recipient,
        expected_amount=expected_amount,
        expected_network=expected_network,
    ).model_dump(by_alias=True)

    try:
        response, data = _post_json(facilitator_url, body, timeout)
    except httpx.HTTPError as e:
        logger.warning("Facilitator verify request failed: %s", e)
        return VerifyPaymentResponse(valid=False, error="Network error", message=str(e))

    if not response.is_success:
        return VerifyPaymentResponse(
            valid=False,
            error=data.get("error") or "Verification failed",
            message=data.get("message") or f"HTTP {response.status_code}",
        )

    try:
        return VerifyPaymentResponse.model_validate(data)
    except ValidationError as e:
        return VerifyPaymentResponse(
            valid=False, error="Verification failed", message=str(e)
        )


def settle_payment(
    facilitator_url: str,
    signed_transaction: str,
    expected_network: str = STELLAR_TESTNET,
    timeout: float = DEFAULT_TIMEOUT,
) -> SettlePaymentResponse:
    """Submit a signed transaction through the facilitator.

    Args:
        facilitator_url: Full URL of the facilitator settle endpoint
        signed_transaction: Base64 XDR of the signed transaction envelope
        expected_network: Expected network

    Returns:
        SettlePaymentResponse with the transaction hash; settled=False on
        HTTP or network errors
    """
    body = {
        "signedTransaction": signed_transaction,
        "expectedNetwork": expected_network,
    }

    try:
        response, data = _post_json(facilitator_url, body, timeout)
    except httpx.HTTPError as e:
        logger.warning("Facilitator settle request failed: %s", e)
        return SettlePaymentResponse(settled=False, error="Network error", message=str(e))

    if not response.is_success:
        return SettlePaymentResponse(
            settled=False,
            error=data.get("error") or "Settlement failed",
            message=data.get("message") or f"HTTP {response.status_code}",
        )

    try:
        return SettlePaymentResponse.model_validate(data)
    except ValidationError as e:
        # The transaction may already be on-chain; keep what the facilitator reported
        logger.warning("Unexpected settle response from facilitator: %s", e)
        settled = data.get("settled") is True
        transaction_hash = data.get("transactionHash")
        return SettlePaymentResponse(
            settled=settled,
            transaction_hash=transaction_hash if isinstance(transaction_hash, str) else None,
            error=None if settled else "Settlement failed",
            message=str(e),
        )


def verify_payment_simple(
    facilitator_url: str,
    signed_transaction: str,
    expected_recipient: str,
    expected_amount: str,
    expected_network: str = STELLAR_TESTNET,
) -> VerifyPaymentResponse:
    """verify_payment against "<facilitator_url>/verify"."""
    if not facilitator_url:
        raise ValueError("Facilitator URL is required - no default available")
    return verify_payment(
        f"{facilitator_url.rstrip('/')}/verify",
        signed_transaction,
        expected_recipient,
        expected_amount,
        expected_network,
    )


def settle_payment_simple(
    facilitator_url: str,
    signed_transaction: str,
    expected_network: str = STELLAR_TESTNET,
) -> SettlePaymentResponse:
    """settle_payment against "<facilitator_url>/settle"."""
    if not facilitator_url:
        raise ValueError("Facilitator URL is required - no default available")
    return settle_payment(
        f"{facilitator_url.rstrip('/')}/settle",
        signed_transaction,
        expected_network,
    )


def create_payment_response(settlement: SettlePaymentResponse) -> dict[str, Any]:
    """Summarize a settlement for an X-PAYMENT-RESPONSE style header."""
    return {
        "transactionHash": settlement.transaction_hash,
        "amount": settlement.amount,
        "currency": "XLM",
        "recipient": settlement.recipient,
        "network": settlement.network,
        "timestamp": settlement.timestamp,
        "status": settlement.status,
    }
