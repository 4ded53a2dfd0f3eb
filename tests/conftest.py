import pytest
from stellar_sdk import Account, Asset, Keypair, Network, TransactionBuilder

from x402_stellar.encoding import encode_payment_header
from x402_stellar.types import (
    STELLAR_SCHEME,
    PaymentPayload,
    PaymentRequirements,
    StellarPaymentPayload,
)


def build_envelope(
    source: Keypair,
    destination: str,
    amount: str = "0.1",
    passphrase: str = Network.TESTNET_NETWORK_PASSPHRASE,
    time_bounds=None,
    sign: bool = True,
):
    """Build a native payment envelope without touching Horizon."""
    builder = TransactionBuilder(
        source_account=Account(source.public_key, 1),
        network_passphrase=passphrase,
        base_fee=100,
    ).append_payment_op(destination=destination, asset=Asset.native(), amount=amount)
    if time_bounds:
        builder.add_time_bounds(*time_bounds)
    else:
        builder.set_timeout(180)
    envelope = builder.build()
    if sign:
        envelope.sign(source)
    return envelope


def payment_header_for(envelope, network="stellar-testnet", scheme=STELLAR_SCHEME, **kwargs):
    return encode_payment_header(
        PaymentPayload(
            x402_version=kwargs.pop("x402_version", 1),
            scheme=scheme,
            network=network,
            payload=StellarPaymentPayload(transaction=envelope.to_xdr(), **kwargs),
        )
    )


@pytest.fixture
def payer():
    return Keypair.random()


@pytest.fixture
def pay_to():
    return Keypair.random().public_key


@pytest.fixture
def payment_requirements(pay_to):
    return PaymentRequirements(
        scheme=STELLAR_SCHEME,
        network="stellar-testnet",
        max_amount_required="1000000",
        resource="https://example.com/premium",
        description="Premium content",
        mime_type="application/json",
        pay_to=pay_to,
        max_timeout_seconds=60,
    )


@pytest.fixture
def payment_header(payer, pay_to):
    return payment_header_for(build_envelope(payer, pay_to))
