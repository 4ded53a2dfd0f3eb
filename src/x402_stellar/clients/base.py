from typing import Callable, List, Optional

from stellar_sdk import Keypair

from x402_stellar.common import x402_VERSION
from x402_stellar.encoding import decode_payment_response_header, encode_payment_header
from x402_stellar.networks import SUPPORTED_STELLAR_NETWORKS
from x402_stellar.stellar.transaction import build_payment_transaction
from x402_stellar.stellar.units import stroops_to_xlm
from x402_stellar.types import (
    STELLAR_SCHEME,
    PaymentPayload,
    PaymentRequirements,
    PaymentResponseHeader,
    StellarPaymentPayload,
    UnsupportedSchemeException,
)

# Define type for the payment requirements selector
PaymentSelectorCallable = Callable[
    [List[PaymentRequirements], Optional[str], Optional[str], Optional[int]],
    PaymentRequirements,
]


def decode_x_payment_response(header: str) -> PaymentResponseHeader:
    """Decode the X-PAYMENT-RESPONSE header.

    Args:
        header: The X-PAYMENT-RESPONSE header to decode

    Returns:
        The decoded payment response; its settlement carries:
        - success: bool
        - tx_hash: str (hex)
        - network_id: str
    """
    return decode_payment_response_header(header)


class PaymentError(Exception):
    """Base class for payment-related errors."""

    pass


class PaymentAmountExceededError(PaymentError):
    """Raised when payment amount exceeds maximum allowed value."""

    pass


class x402Client:
    """Base client for handling x402 payments on Stellar."""

    def __init__(
        self,
        keypair: Keypair,
        max_value: Optional[int] = None,
        payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
        horizon_url: Optional[str] = None,
    ):
        """Initialize the x402 client.

        Args:
            keypair: stellar_sdk Keypair (with secret) that pays
            max_value: Optional maximum allowed payment amount in stroops
            payment_requirements_selector: Optional custom selector for payment requirements
            horizon_url: Optional Horizon URL overriding the network default
        """
        self.keypair = keypair
        self.max_value = max_value
        self.horizon_url = horizon_url
        self._payment_requirements_selector = (
            payment_requirements_selector or self.default_payment_requirements_selector
        )

    @staticmethod
    def default_payment_requirements_selector(
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
        max_value: Optional[int] = None,
    ) -> PaymentRequirements:
        """Select payment requirements from the list of accepted requirements.

        Args:
            accepts: List of accepted payment requirements
            network_filter: Optional network to filter by
            scheme_filter: Optional scheme to filter by
            max_value: Optional maximum allowed payment amount

        Returns:
            Selected payment requirements

        Raises:
            UnsupportedSchemeException: If no supported scheme is found
            PaymentAmountExceededError: If payment amount exceeds max_value
        """
        for paymentRequirements in accepts:
            scheme = paymentRequirements.scheme
            network = paymentRequirements.network

            # Check scheme filter
            if scheme_filter and scheme != scheme_filter:
                continue

            # Check network filter
            if network_filter and network != network_filter:
                continue

            if scheme == STELLAR_SCHEME and network in SUPPORTED_STELLAR_NETWORKS:
                # Check max value if set
                if max_value is not None:
                    max_amount = int(paymentRequirements.max_amount_required)
                    if max_amount > max_value:
                        raise PaymentAmountExceededError(
                            f"Payment amount {max_amount} exceeds maximum allowed value {max_value}"
                        )

                return paymentRequirements

        raise UnsupportedSchemeException("No supported payment scheme found")

    def select_payment_requirements(
        self,
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
    ) -> PaymentRequirements:
        """Select payment requirements using the configured selector.

        Raises:
            UnsupportedSchemeException: If no supported scheme is found
            PaymentAmountExceededError: If payment amount exceeds max_value
        """
        return self._payment_requirements_selector(
            accepts, network_filter, scheme_filter, self.max_value
        )

    def create_payment_header(
        self,
        payment_requirements: PaymentRequirements,
        x402_version: int = x402_VERSION,
    ) -> str:
        """Create a payment header for the given requirements.

        Builds a native payment of maxAmountRequired stroops to payTo, signs
        it with the client's keypair, and wraps the envelope XDR in a
        payment payload. Nothing is submitted; the facilitator settles it.

        Args:
            payment_requirements: Selected payment requirements
            x402_version: x402 protocol version

        Returns:
            Base64 X-PAYMENT header value
        """
        envelope = build_payment_transaction(
            source_keypair=self.keypair,
            destination_address=payment_requirements.pay_to,
            amount=stroops_to_xlm(payment_requirements.max_amount_required),
            network=payment_requirements.network,
            horizon_url=self.horizon_url,
        )
        envelope.sign(self.keypair)

        payment = PaymentPayload(
            x402_version=x402_version,
            scheme=payment_requirements.scheme,
            network=payment_requirements.network,
            payload=StellarPaymentPayload(transaction=envelope.to_xdr()),
        )
        return encode_payment_header(payment)
