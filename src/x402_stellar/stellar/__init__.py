"""Stellar network support for x402 payments."""

from x402_stellar.stellar.account import get_account_balance
from x402_stellar.stellar.horizon import (
    get_horizon_client,
    get_horizon_url,
    get_network_passphrase,
)
from x402_stellar.stellar.transaction import (
    TransactionSubmissionError,
    TransactionTimeoutError,
    build_payment_transaction,
    sign_and_submit_payment,
    submit_transaction,
    verify_transaction,
    wait_for_transaction,
)
from x402_stellar.stellar.units import STROOPS_PER_XLM, stroops_to_xlm, xlm_to_stroops
from x402_stellar.stellar.wallet import (
    generate_keypair,
    get_keypair_from_secret,
    is_valid_address,
)

__all__ = [
    "get_account_balance",
    "get_horizon_client",
    "get_horizon_url",
    "get_network_passphrase",
    "TransactionSubmissionError",
    "TransactionTimeoutError",
    "build_payment_transaction",
    "sign_and_submit_payment",
    "submit_transaction",
    "verify_transaction",
    "wait_for_transaction",
    "STROOPS_PER_XLM",
    "stroops_to_xlm",
    "xlm_to_stroops",
    "generate_keypair",
    "get_keypair_from_secret",
    "is_valid_address",
]
