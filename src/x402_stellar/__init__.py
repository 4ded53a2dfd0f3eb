"""x402-stellar: x402 internet native payments on the Stellar network."""

# Stellar support
from x402_stellar.stellar import (
    build_payment_transaction,
    generate_keypair,
    get_account_balance,
    get_horizon_client,
    get_horizon_url,
    get_keypair_from_secret,
    get_network_passphrase,
    is_valid_address,
    sign_and_submit_payment,
    stroops_to_xlm,
    verify_transaction,
    wait_for_transaction,
    xlm_to_stroops,
)

# Clients
from x402_stellar.clients.base import (
    x402Client,
    decode_x_payment_response,
    PaymentError,
    PaymentAmountExceededError,
)

# Facilitator
from x402_stellar.facilitator import (
    AsyncFacilitatorClient,
    FacilitatorClient,
    FacilitatorConfig,
    settle_payment,
    verify_payment,
)

# Types
from x402_stellar.types import (
    STELLAR_SCHEME,
    PaymentRequirements,
    PaymentPayload,
    StellarPaymentPayload,
    x402PaymentRequiredResponse,
    VerifyResponse,
    SettleResponse,
    RouteConfig,
)

# Networks
from x402_stellar.networks import (
    SupportedNetworks,
    SUPPORTED_STELLAR_NETWORKS,
    to_x402_network,
)

# Encoding
from x402_stellar.encoding import (
    decode_payment_header,
    encode_payment_header,
)

# Common utilities
from x402_stellar.common import process_price_to_atomic_amount, x402_VERSION


__all__ = [
    # Stellar
    "build_payment_transaction",
    "generate_keypair",
    "get_account_balance",
    "get_horizon_client",
    "get_horizon_url",
    "get_keypair_from_secret",
    "get_network_passphrase",
    "is_valid_address",
    "sign_and_submit_payment",
    "stroops_to_xlm",
    "verify_transaction",
    "wait_for_transaction",
    "xlm_to_stroops",
    # Clients
    "x402Client",
    "decode_x_payment_response",
    "PaymentError",
    "PaymentAmountExceededError",
    # Facilitator
    "AsyncFacilitatorClient",
    "FacilitatorClient",
    "FacilitatorConfig",
    "settle_payment",
    "verify_payment",
    # Types
    "STELLAR_SCHEME",
    "PaymentRequirements",
    "PaymentPayload",
    "StellarPaymentPayload",
    "x402PaymentRequiredResponse",
    "VerifyResponse",
    "SettleResponse",
    "RouteConfig",
    # Networks
    "SupportedNetworks",
    "SUPPORTED_STELLAR_NETWORKS",
    "to_x402_network",
    # Encoding
    "decode_payment_header",
    "encode_payment_header",
    # Common
    "process_price_to_atomic_amount",
    "x402_VERSION",
]
