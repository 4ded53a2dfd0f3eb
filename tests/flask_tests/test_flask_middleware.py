from unittest.mock import patch

import pytest
from flask import Flask, g

from conftest import build_envelope, payment_header_for
from x402_stellar.encoding import decode_payment_response_header
from x402_stellar.flask.middleware import PaymentMiddleware
from x402_stellar.types import SettleResponse, VerifyResponse

FACILITATOR_URL = "https://facilitator.example.com"


@pytest.fixture
def facilitator():
    with patch("x402_stellar.flask.middleware.FacilitatorClient") as MockFacilitator:
        instance = MockFacilitator.return_value
        instance.verify.return_value = VerifyResponse(is_valid=True)
        instance.settle.return_value = SettleResponse(
            success=True, tx_hash="abc123", network_id="stellar-testnet"
        )
        yield instance


def create_app_with_middleware(configs):
    app = Flask(__name__)

    @app.route("/protected")
    def protected():
        return {"message": "protected"}

    @app.route("/unprotected")
    def unprotected():
        return {"message": "unprotected"}

    @app.route("/broken")
    def broken():
        return {"error": "broken"}, 500

    middleware = PaymentMiddleware(app)
    for cfg in configs:
        middleware.add(**cfg)
    return app


def protected_config(pay_to, **kwargs):
    config = {
        "price": "1000000",
        "pay_to_address": pay_to,
        "path": ["/protected", "/broken"],
        "facilitator_config": FACILITATOR_URL,
    }
    config.update(kwargs)
    return config


def test_payment_required_for_protected_route(facilitator, pay_to):
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/protected")
        assert resp.status_code == 402
        assert resp.json["error"] == "X-PAYMENT header is required"
        assert resp.json["accepts"][0]["payTo"] == pay_to
        assert resp.json["accepts"][0]["resource"] == "http://localhost/protected"


def test_unprotected_route(facilitator, pay_to):
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/unprotected")
        assert resp.status_code == 200
        assert resp.json == {"message": "unprotected"}


def test_invalid_payment_header(facilitator, pay_to):
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": "not_base64"})
        assert resp.status_code == 402
        assert resp.json["error"] == "Invalid payment header format"


def test_non_ascii_payment_header(facilitator, pay_to):
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": "payé"})
        assert resp.status_code == 402
        assert resp.json["error"] == "Invalid payment header format"
        facilitator.verify.assert_not_called()


def test_no_matching_requirements(facilitator, payer, pay_to):
    app = create_app_with_middleware([protected_config(pay_to)])
    header = payment_header_for(build_envelope(payer, pay_to), network="stellar-futurenet")
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": header})
        assert resp.status_code == 402
        assert resp.json["error"] == "No matching payment requirements found"


def test_verification_failure(facilitator, pay_to, payment_header):
    facilitator.verify.return_value = VerifyResponse(
        is_valid=False, invalid_reason="Transaction has expired"
    )
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": payment_header})
        assert resp.status_code == 402
        assert resp.json["error"] == "Invalid payment: Transaction has expired"
    facilitator.settle.assert_not_called()


def test_successful_payment(facilitator, pay_to, payment_header):
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": payment_header})
        assert resp.status_code == 200
        assert resp.json == {"message": "protected"}
        assert resp.headers["Access-Control-Expose-Headers"] == "X-PAYMENT-RESPONSE"
        settlement = decode_payment_response_header(resp.headers["X-PAYMENT-RESPONSE"]).settlement
        assert settlement.tx_hash == "abc123"


def test_settlement_failure(facilitator, pay_to, payment_header):
    facilitator.settle.return_value = SettleResponse(success=False, error="tx_insufficient_balance")
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": payment_header})
        assert resp.status_code == 402
        assert resp.json["error"] == "Settle failed: tx_insufficient_balance"
        assert "message" not in resp.json


def test_error_response_is_not_settled(facilitator, pay_to, payment_header):
    app = create_app_with_middleware([protected_config(pay_to)])
    with app.test_client() as client:
        resp = client.get("/broken", headers={"X-PAYMENT": payment_header})
        assert resp.status_code == 500
        assert "X-PAYMENT-RESPONSE" not in resp.headers
    facilitator.settle.assert_not_called()


def test_path_pattern_matching(facilitator, pay_to):
    app = Flask(__name__)

    @app.route("/foo")
    def foo():
        return {"foo": True}

    @app.route("/bar/123")
    def bar():
        return {"bar": True}

    @app.route("/baz/abc")
    def baz():
        return {"baz": True}

    middleware = PaymentMiddleware(app)
    middleware.add(
        price="1000",
        pay_to_address=pay_to,
        path=["/foo", "/bar/*", "regex:^/baz/\\d+$"],
        facilitator_config=FACILITATOR_URL,
    )
    with app.test_client() as client:
        assert client.get("/foo").status_code == 402
        assert client.get("/bar/123").status_code == 402
        assert client.get("/baz/abc").status_code == 200


def test_multiple_middleware_configs(facilitator, pay_to):
    app = Flask(__name__)

    @app.route("/a")
    def a():
        return {"a": True}

    @app.route("/b")
    def b():
        return {"b": True}

    middleware = PaymentMiddleware(app)
    middleware.add(price="1000", pay_to_address=pay_to, path="/a", facilitator_config=FACILITATOR_URL)
    middleware.add(
        price="2 XLM", pay_to_address=pay_to, path="/b", facilitator_config=FACILITATOR_URL
    )
    with app.test_client() as client:
        assert client.get("/a").json["accepts"][0]["maxAmountRequired"] == "1000"
        assert client.get("/b").json["accepts"][0]["maxAmountRequired"] == "20000000"


def test_add_routes(facilitator, pay_to):
    app = Flask(__name__)

    @app.route("/premium/report")
    def report():
        return {"report": True}

    middleware = PaymentMiddleware(app)
    middleware.add_routes(
        pay_to,
        {"/premium/*": {"price": "5000000", "network": "mainnet"}},
        FACILITATOR_URL,
    )
    with app.test_client() as client:
        resp = client.get("/premium/report")
        assert resp.status_code == 402
        assert resp.json["accepts"][0]["network"] == "stellar-mainnet"
        assert resp.json["accepts"][0]["maxAmountRequired"] == "5000000"


def test_payment_details_in_g(facilitator, pay_to, payment_header):
    app = Flask(__name__)

    @app.route("/protected")
    def protected():
        return {
            "pay_to": g.payment_details.pay_to,
            "is_valid": g.verify_response.is_valid,
        }

    middleware = PaymentMiddleware(app)
    middleware.add(
        price="1000000", pay_to_address=pay_to, path="/protected", facilitator_config=FACILITATOR_URL
    )
    with app.test_client() as client:
        resp = client.get("/protected", headers={"X-PAYMENT": payment_header})
        assert resp.status_code == 200
        assert resp.json == {"pay_to": pay_to, "is_valid": True}


def test_browser_gets_paywall(facilitator, pay_to):
    app = create_app_with_middleware(
        [protected_config(pay_to, paywall_config={"app_name": "Weather"})]
    )
    with app.test_client() as client:
        resp = client.get(
            "/protected", headers={"Accept": "text/html", "User-Agent": "Mozilla/5.0"}
        )
        assert resp.status_code == 402
        assert resp.content_type.startswith("text/html")
        assert b"Weather" in resp.data


def test_add_requires_facilitator_config(pay_to):
    middleware = PaymentMiddleware(Flask(__name__))
    with pytest.raises(ValueError, match="Facilitator configuration is required"):
        middleware.add(price="100", pay_to_address=pay_to)


def test_add_rejects_invalid_address():
    middleware = PaymentMiddleware(Flask(__name__))
    with pytest.raises(ValueError, match="Invalid Stellar address"):
        middleware.add(price="100", pay_to_address="0x1", facilitator_config=FACILITATOR_URL)
