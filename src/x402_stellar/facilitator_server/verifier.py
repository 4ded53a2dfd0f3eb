"""Verification and settlement of Stellar x402 payments.

A payment is a signed native payment transaction carried as base64 XDR in
the X-PAYMENT header. Verification is offline apart from the network
passphrase; settlement submits the envelope to Horizon.
"""

import logging
import time
from typing import Optional, Tuple

from stellar_sdk import DecoratedSignature, Keypair, Payment, TransactionEnvelope
from stellar_sdk import xdr as stellar_xdr
from stellar_sdk.exceptions import BadSignatureError, SdkError

from x402_stellar.encoding import InvalidPaymentHeaderError, decode_payment_header
from x402_stellar.facilitator_server.config import FacilitatorSettings
from x402_stellar.stellar.horizon import get_network_passphrase
from x402_stellar.stellar.transaction import (
    TransactionSubmissionError,
    submit_transaction,
)
from x402_stellar.stellar.units import xlm_to_stroops
from x402_stellar.types import (
    STELLAR_SCHEME,
    X402_VERSION,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


def _parse_envelope(payment: PaymentPayload, network: str) -> TransactionEnvelope:
    envelope = TransactionEnvelope.from_xdr(
        payment.payload.transaction, get_network_passphrase(network)
    )
    for signature in payment.payload.signatures or []:
        envelope.signatures.append(
            DecoratedSignature.from_xdr_object(
                stellar_xdr.DecoratedSignature.from_xdr(signature)
            )
        )
    return envelope


def _is_signed_by_source(envelope: TransactionEnvelope) -> bool:
    source = Keypair.from_public_key(envelope.transaction.source.account_id)
    tx_hash = envelope.hash()
    for signature in envelope.signatures:
        try:
            source.verify(tx_hash, signature.signature)
            return True
        except BadSignatureError:
            continue
    return False


def _check_time_bounds(envelope: TransactionEnvelope) -> Optional[str]:
    preconditions = envelope.transaction.preconditions
    time_bounds = preconditions.time_bounds if preconditions else None
    if time_bounds is None:
        return None

    now = int(time.time())
    if time_bounds.max_time and time_bounds.max_time < now:
        return "Transaction has expired"
    if time_bounds.min_time and time_bounds.min_time > now:
        return "Transaction is not valid yet"
    return None


def _paid_amount(envelope: TransactionEnvelope, pay_to: str) -> Optional[int]:
    """Stroops paid to pay_to in native payment operations, None if there are none."""
    paid = None
    for operation in envelope.transaction.operations:
        if (
            isinstance(operation, Payment)
            and operation.asset.is_native()
            and operation.destination.account_id == pay_to
        ):
            paid = (paid or 0) + int(xlm_to_stroops(operation.amount))
    return paid


def check_payment(
    payment_header: str,
    requirements: PaymentRequirements,
    settings: FacilitatorSettings,
) -> Tuple[Optional[str], Optional[TransactionEnvelope]]:
    """Run every verification check on a payment.

    Returns:
        (None, envelope) when the payment is valid, otherwise
        (reason, envelope or None)
    """
    try:
        payment = decode_payment_header(payment_header)
    except InvalidPaymentHeaderError as e:
        return str(e), None

    if payment.x402_version != X402_VERSION:
        return f"Unsupported x402 version: {payment.x402_version}", None

    if payment.scheme != STELLAR_SCHEME or requirements.scheme != payment.scheme:
        return f"Unsupported scheme: {payment.scheme}", None

    if payment.network != requirements.network or payment.network != settings.network:
        return (
            f"Invalid network. Expected {settings.network}, got {payment.network}",
            None,
        )

    try:
        envelope = _parse_envelope(payment, payment.network)
    except Exception as e:  # malformed XDR surfaces as several error types
        logger.debug("Could not parse transaction envelope: %s", e)
        return f"Invalid transaction envelope: {e}", None

    if not _is_signed_by_source(envelope):
        return "Transaction is not signed by its source account", envelope

    expired = _check_time_bounds(envelope)
    if expired:
        return expired, envelope

    paid = _paid_amount(envelope, requirements.pay_to)
    if paid is None:
        return f"No native payment to {requirements.pay_to}", envelope

    required = int(requirements.max_amount_required)
    if paid < required:
        return (
            f"Insufficient amount. Required {required} stroops, got {paid}",
            envelope,
        )

    return None, envelope


def verify_payment_header(
    payment_header: str,
    requirements: PaymentRequirements,
    settings: FacilitatorSettings,
) -> VerifyResponse:
    reason, envelope = check_payment(payment_header, requirements, settings)
    if reason:
        logger.info("Payment rejected: %s", reason)
        return VerifyResponse(is_valid=False, invalid_reason=reason)

    logger.info(
        "Payment verified for %s -> %s",
        envelope.transaction.source.account_id,
        requirements.pay_to,
    )
    return VerifyResponse(is_valid=True)


def settle_payment_header(
    payment_header: str,
    requirements: PaymentRequirements,
    settings: FacilitatorSettings,
) -> SettleResponse:
    """Re-verify a payment and submit it to the Stellar network."""
    reason, envelope = check_payment(payment_header, requirements, settings)
    if reason:
        logger.info("Settlement rejected: %s", reason)
        return SettleResponse(success=False, error=reason)

    try:
        tx_hash = submit_transaction(envelope, settings.network, settings.horizon_url)
    except TransactionSubmissionError as e:
        return SettleResponse(success=False, error=str(e))
    except SdkError as e:
        logger.error("Error submitting transaction: %s", e, exc_info=True)
        return SettleResponse(success=False, error=f"Horizon error: {e}")

    logger.info("Transaction settled successfully: %s", tx_hash)
    return SettleResponse(success=True, tx_hash=tx_hash, network_id=settings.network)
