"""Build, sign, submit and confirm Stellar payment transactions."""

import json
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from stellar_sdk import Asset, Keypair, TransactionBuilder, TransactionEnvelope
from stellar_sdk.exceptions import BadRequestError, NotFoundError

from x402_stellar.stellar.horizon import get_horizon_client, get_network_passphrase

logger = logging.getLogger(__name__)

# 100 stroops (0.00001 XLM)
BASE_FEE = 100

# Seconds until a built transaction expires
TRANSACTION_TIMEOUT = 180

POLL_INTERVAL_SECONDS = 1


class TransactionSubmissionError(Exception):
    """Raised when Horizon rejects a submitted transaction."""

    def __init__(self, message: str, result_codes: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.result_codes = result_codes


class TransactionTimeoutError(TimeoutError):
    """Raised when a transaction does not appear on the ledger in time."""


def build_payment_transaction(
    source_keypair: Keypair,
    destination_address: str,
    amount: str,
    network: str = "stellar-testnet",
    memo: Optional[str] = None,
    horizon_url: Optional[str] = None,
) -> TransactionEnvelope:
    """
    Build an unsigned native (XLM) payment transaction.

    Loads the source account from Horizon to get its current sequence
    number. The returned envelope must be signed before submission.

    Args:
        source_keypair: Sender's keypair
        destination_address: Recipient's address (G...)
        amount: Amount in XLM (e.g. "0.1")
        network: Network name
        memo: Optional text memo (at most 28 bytes)
        horizon_url: Optional custom Horizon URL

    Returns:
        Unsigned TransactionEnvelope
    """
    server = get_horizon_client(network, horizon_url)
    source_account = server.load_account(source_keypair.public_key)

    builder = TransactionBuilder(
        source_account=source_account,
        network_passphrase=get_network_passphrase(network),
        base_fee=BASE_FEE,
    ).append_payment_op(
        destination=destination_address,
        asset=Asset.native(),
        amount=amount,
    )
    if memo:
        builder.add_text_memo(memo)

    return builder.set_timeout(TRANSACTION_TIMEOUT).build()


def sign_and_submit_payment(
    source_keypair: Keypair,
    destination_address: str,
    amount: str,
    network: str = "stellar-testnet",
    memo: Optional[str] = None,
    horizon_url: Optional[str] = None,
) -> str:
    """
    Build, sign and submit a native payment.

    Returns:
        Transaction hash

    Raises:
        TransactionSubmissionError: If Horizon rejects the transaction
    """
    envelope = build_payment_transaction(
        source_keypair, destination_address, amount, network, memo, horizon_url
    )
    envelope.sign(source_keypair)
    return submit_transaction(envelope, network, horizon_url)


def submit_transaction(
    envelope: TransactionEnvelope,
    network: str = "stellar-testnet",
    horizon_url: Optional[str] = None,
) -> str:
    """
    Submit a signed envelope to Horizon.

    Returns:
        Transaction hash

    Raises:
        TransactionSubmissionError: If Horizon rejects the transaction
    """
    server = get_horizon_client(network, horizon_url)
    try:
        response = server.submit_transaction(envelope)
    except BadRequestError as e:
        extras = e.extras or {}
        logger.error("Transaction submission failed: %s", extras)
        result_codes = extras.get("result_codes")
        raise TransactionSubmissionError(
            f"Transaction failed: {json.dumps(result_codes)}", result_codes
        ) from e
    return response["hash"]


def verify_transaction(
    transaction_hash: str,
    network: str = "stellar-testnet",
    expected_sender: Optional[str] = None,
    expected_recipient: Optional[str] = None,
    expected_amount: Optional[str] = None,
    horizon_url: Optional[str] = None,
) -> bool:
    """
    Check that a transaction succeeded and matches the expected parameters.

    Args:
        transaction_hash: Transaction hash to look up
        network: Network name
        expected_sender: Expected source account
        expected_recipient: Expected payment destination
        expected_amount: Expected amount in XLM

    Returns:
        True if the transaction exists, succeeded and matches
    """
    try:
        server = get_horizon_client(network, horizon_url)
        transaction = server.transactions().transaction(transaction_hash).call()

        if not transaction.get("successful"):
            logger.error("Transaction %s was not successful", transaction_hash)
            return False

        if not expected_sender and not expected_recipient and not expected_amount:
            return True

        if expected_sender and transaction.get("source_account") != expected_sender:
            logger.error("Sender mismatch for transaction %s", transaction_hash)
            return False

        operations = server.operations().for_transaction(transaction_hash).call()
        records = operations.get("_embedded", {}).get("records", [])
        payment_op = next(
            (
                op
                for op in records
                if op.get("type") == "payment" and op.get("asset_type") == "native"
            ),
            None,
        )
        if payment_op is None:
            logger.error("No payment operation found in transaction %s", transaction_hash)
            return False

        if expected_recipient and payment_op.get("to") != expected_recipient:
            logger.error("Recipient mismatch for transaction %s", transaction_hash)
            return False

        if expected_amount and not _amounts_equal(payment_op.get("amount"), expected_amount):
            logger.error("Amount mismatch for transaction %s", transaction_hash)
            return False

        return True
    except Exception:
        logger.exception("Error verifying transaction %s", transaction_hash)
        return False


def wait_for_transaction(
    transaction_hash: str,
    network: str = "stellar-testnet",
    timeout_seconds: float = 30,
    horizon_url: Optional[str] = None,
) -> bool:
    """
    Poll Horizon until a transaction appears on the ledger.

    Stellar closes a ledger roughly every 5 seconds, so transactions usually
    appear quickly. A 404 means "not yet"; any other error propagates.

    Returns:
        The transaction's "successful" flag

    Raises:
        TransactionTimeoutError: If the transaction is not found in time
    """
    server = get_horizon_client(network, horizon_url)
    deadline = time.monotonic() + timeout_seconds

    while time.monotonic() < deadline:
        try:
            transaction = server.transactions().transaction(transaction_hash).call()
            return bool(transaction.get("successful"))
        except NotFoundError:
            time.sleep(POLL_INTERVAL_SECONDS)

    raise TransactionTimeoutError(
        f"Transaction not found after {timeout_seconds} seconds"
    )


def _amounts_equal(actual: Optional[str], expected: str) -> bool:
    # Horizon reports amounts with 7 decimal places ("0.1000000")
    try:
        return actual is not None and Decimal(actual) == Decimal(expected)
    except InvalidOperation:
        return False
