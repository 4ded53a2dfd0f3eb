import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from stellar_sdk import Keypair, Network
from stellar_sdk.exceptions import ConnectionError as HorizonConnectionError

from conftest import build_envelope, payment_header_for
from x402_stellar.encoding import encode_payment_header
from x402_stellar.facilitator_server.app import create_app
from x402_stellar.facilitator_server.config import FacilitatorSettings
from x402_stellar.facilitator_server.verifier import (
    check_payment,
    settle_payment_header,
    verify_payment_header,
)
from x402_stellar.stellar.transaction import TransactionSubmissionError
from x402_stellar.types import PaymentPayload, StellarPaymentPayload


@pytest.fixture
def settings():
    return FacilitatorSettings(network="testnet")


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


def request_body(header, payment_requirements):
    return {
        "x402Version": 1,
        "paymentHeader": header,
        "paymentRequirements": payment_requirements.model_dump(by_alias=True),
    }


class TestSettings:
    def test_defaults(self):
        settings = FacilitatorSettings()
        assert settings.network == "stellar-testnet"
        assert settings.horizon_url is None
        assert settings.port == 8000
        assert settings.log_level == "INFO"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STELLAR_NETWORK", "mainnet")
        monkeypatch.setenv("STELLAR_HORIZON_URL", "https://horizon.example.com")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = FacilitatorSettings.from_env()

        assert settings.network == "stellar-mainnet"
        assert settings.horizon_url == "https://horizon.example.com"
        assert settings.port == 9000
        assert settings.log_level == "DEBUG"

    def test_unsupported_network(self):
        with pytest.raises(ValueError, match="Unsupported network"):
            FacilitatorSettings(network="base")


class TestCheckPayment:
    def test_valid_payment(self, payment_header, payment_requirements, settings):
        reason, envelope = check_payment(payment_header, payment_requirements, settings)
        assert reason is None
        assert envelope is not None

    def test_overpayment_is_accepted(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to, amount="1"))
        assert check_payment(header, payment_requirements, settings)[0] is None

    def test_invalid_header(self, payment_requirements, settings):
        reason, envelope = check_payment("not_base64", payment_requirements, settings)
        assert reason.startswith("Invalid payment header")
        assert envelope is None

    def test_non_ascii_header(self, payment_requirements, settings):
        reason, envelope = check_payment("payé", payment_requirements, settings)
        assert reason.startswith("Invalid payment header")
        assert envelope is None

    def test_unsupported_version(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to), x402_version=2)
        assert check_payment(header, payment_requirements, settings)[0] == "Unsupported x402 version: 2"

    def test_unsupported_scheme(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to), scheme="exact")
        assert check_payment(header, payment_requirements, settings)[0] == "Unsupported scheme: exact"

    def test_network_mismatch(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to), network="stellar-mainnet")
        reason = check_payment(header, payment_requirements, settings)[0]
        assert reason == "Invalid network. Expected stellar-testnet, got stellar-mainnet"

    def test_facilitator_network_mismatch(self, payment_header, payment_requirements):
        mainnet = FacilitatorSettings(network="mainnet")
        assert check_payment(payment_header, payment_requirements, mainnet)[0].startswith(
            "Invalid network"
        )

    def test_malformed_envelope(self, payment_requirements, settings):
        header = encode_payment_header(
            PaymentPayload(
                x402_version=1,
                scheme="stellar-payment",
                network="stellar-testnet",
                payload=StellarPaymentPayload(transaction="bm90IHhkcg=="),
            )
        )
        reason = check_payment(header, payment_requirements, settings)[0]
        assert reason.startswith("Invalid transaction envelope")

    def test_unsigned(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to, sign=False))
        reason = check_payment(header, payment_requirements, settings)[0]
        assert reason == "Transaction is not signed by its source account"

    def test_signed_by_someone_else(self, payer, pay_to, payment_requirements, settings):
        envelope = build_envelope(payer, pay_to, sign=False)
        envelope.sign(Keypair.random())
        reason = check_payment(payment_header_for(envelope), payment_requirements, settings)[0]
        assert reason == "Transaction is not signed by its source account"

    def test_signed_for_other_network(self, payer, pay_to, payment_requirements, settings):
        envelope = build_envelope(
            payer, pay_to, passphrase=Network.PUBLIC_NETWORK_PASSPHRASE
        )
        reason = check_payment(payment_header_for(envelope), payment_requirements, settings)[0]
        assert reason == "Transaction is not signed by its source account"

    def test_detached_signature(self, payer, pay_to, payment_requirements, settings):
        envelope = build_envelope(payer, pay_to, sign=False)
        signature = payer.sign_decorated(envelope.hash())
        header = payment_header_for(envelope, signatures=[signature.to_xdr_object().to_xdr()])

        assert check_payment(header, payment_requirements, settings)[0] is None

    def test_expired(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to, time_bounds=(0, 1000)))
        assert check_payment(header, payment_requirements, settings)[0] == "Transaction has expired"

    def test_not_valid_yet(self, payer, pay_to, payment_requirements, settings):
        now = int(time.time())
        header = payment_header_for(
            build_envelope(payer, pay_to, time_bounds=(now + 3600, now + 7200))
        )
        reason = check_payment(header, payment_requirements, settings)[0]
        assert reason == "Transaction is not valid yet"

    def test_wrong_destination(self, payer, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, Keypair.random().public_key))
        reason = check_payment(header, payment_requirements, settings)[0]
        assert reason == f"No native payment to {payment_requirements.pay_to}"

    def test_insufficient_amount(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to, amount="0.09"))
        reason = check_payment(header, payment_requirements, settings)[0]
        assert reason == "Insufficient amount. Required 1000000 stroops, got 900000"


class TestSettlePaymentHeader:
    def test_submits_and_reports_hash(self, payment_header, payment_requirements, settings):
        with patch(
            "x402_stellar.facilitator_server.verifier.submit_transaction",
            return_value="abc123",
        ) as submit:
            response = settle_payment_header(payment_header, payment_requirements, settings)

        assert response.success is True
        assert response.tx_hash == "abc123"
        assert response.network_id == "stellar-testnet"
        assert submit.call_args[0][1:] == ("stellar-testnet", None)

    def test_invalid_payment_is_not_submitted(self, payer, pay_to, payment_requirements, settings):
        header = payment_header_for(build_envelope(payer, pay_to, sign=False))
        with patch("x402_stellar.facilitator_server.verifier.submit_transaction") as submit:
            response = settle_payment_header(header, payment_requirements, settings)

        assert response.success is False
        assert response.error == "Transaction is not signed by its source account"
        submit.assert_not_called()

    def test_rejected_by_horizon(self, payment_header, payment_requirements, settings):
        with patch(
            "x402_stellar.facilitator_server.verifier.submit_transaction",
            side_effect=TransactionSubmissionError('Transaction failed: {"transaction": "tx_bad_seq"}'),
        ):
            response = settle_payment_header(payment_header, payment_requirements, settings)

        assert response.success is False
        assert "tx_bad_seq" in response.error

    def test_horizon_unreachable(self, payment_header, payment_requirements, settings):
        with patch(
            "x402_stellar.facilitator_server.verifier.submit_transaction",
            side_effect=HorizonConnectionError("connection refused"),
        ):
            response = settle_payment_header(payment_header, payment_requirements, settings)

        assert response.success is False
        assert response.error.startswith("Horizon error")


def test_verify_payment_header(payment_header, payment_requirements, settings):
    assert verify_payment_header(payment_header, payment_requirements, settings).is_valid is True


class TestApp:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "Stellar X402 Facilitator",
            "network": "stellar-testnet",
        }

    def test_supported(self, client):
        response = client.get("/supported")
        assert response.json() == {
            "kinds": [{"x402Version": 1, "scheme": "stellar-payment", "network": "stellar-testnet"}]
        }

    def test_verify(self, client, payment_header, payment_requirements):
        response = client.post("/verify", json=request_body(payment_header, payment_requirements))
        assert response.status_code == 200
        assert response.json() == {"isValid": True, "invalidReason": None}

    def test_verify_invalid(self, client, payer, pay_to, payment_requirements):
        header = payment_header_for(build_envelope(payer, pay_to, amount="0.01"))
        response = client.post("/verify", json=request_body(header, payment_requirements))
        assert response.status_code == 200
        assert response.json()["isValid"] is False
        assert response.json()["invalidReason"].startswith("Insufficient amount")

    def test_verify_rejects_malformed_body(self, client):
        response = client.post("/verify", json={"paymentHeader": "abc"})
        assert response.status_code == 422

    def test_settle(self, client, payment_header, payment_requirements):
        with patch(
            "x402_stellar.facilitator_server.verifier.submit_transaction",
            return_value="abc123",
        ):
            response = client.post("/settle", json=request_body(payment_header, payment_requirements))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "error": None,
            "txHash": "abc123",
            "networkId": "stellar-testnet",
        }

    def test_verify_non_ascii_header(self, client, payment_requirements):
        response = client.post("/verify", json=request_body("payé", payment_requirements))
        assert response.status_code == 200
        assert response.json()["isValid"] is False
        assert response.json()["invalidReason"].startswith("Invalid payment header")

    def test_settle_non_ascii_header(self, client, payment_requirements):
        with patch("x402_stellar.facilitator_server.verifier.submit_transaction") as submit:
            response = client.post("/settle", json=request_body("payé", payment_requirements))

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"].startswith("Invalid payment header")
        submit.assert_not_called()
