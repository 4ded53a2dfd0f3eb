import base64
import json

import pytest

from x402_stellar.encoding import (
    InvalidPaymentHeaderError,
    decode_payment_header,
    decode_payment_response_header,
    encode_payment_header,
    encode_payment_response_header,
    safe_base64_decode,
    safe_base64_encode,
)
from x402_stellar.types import PaymentPayload, SettleResponse, StellarPaymentPayload


def test_safe_base64_encode():
    assert safe_base64_encode("hello") == "aGVsbG8="
    assert safe_base64_encode("") == ""
    assert safe_base64_encode("hello 世界") == "aGVsbG8g5LiW55WM"
    assert safe_base64_encode(b"\x00\x01\x02") == "AAEC"


def test_safe_base64_decode():
    assert safe_base64_decode("aGVsbG8=") == "hello"
    assert safe_base64_decode("") == ""
    assert safe_base64_decode("aGVsbG8g5LiW55WM") == "hello 世界"

    # Test invalid base64
    with pytest.raises(Exception):
        safe_base64_decode("invalid base64!")

    # Test non-utf8 bytes
    with pytest.raises(UnicodeDecodeError):
        safe_base64_decode("//79")


def test_encode_payment_header_is_camel_case_json():
    payment = PaymentPayload(
        x402_version=1,
        scheme="stellar-payment",
        network="stellar-testnet",
        payload=StellarPaymentPayload(transaction="AAAA"),
    )
    header = encode_payment_header(payment)

    data = json.loads(base64.b64decode(header))
    assert data == {
        "x402Version": 1,
        "scheme": "stellar-payment",
        "network": "stellar-testnet",
        "payload": {"transaction": "AAAA"},
    }
    assert decode_payment_header(header) == payment


def test_decode_payment_header_keeps_detached_signatures():
    header = safe_base64_encode(
        json.dumps(
            {
                "x402Version": 1,
                "scheme": "stellar-payment",
                "network": "stellar-testnet",
                "payload": {"transaction": "AAAA", "signatures": ["BBBB"]},
            }
        )
    )
    assert decode_payment_header(header).payload.signatures == ["BBBB"]


@pytest.mark.parametrize(
    "header",
    [
        "not_base64",
        safe_base64_encode("not json"),
        safe_base64_encode(json.dumps({"x402Version": 1})),
        base64.b64encode(b"\xff\xfe\xfd").decode(),
        "payé",
    ],
)
def test_decode_payment_header_invalid(header):
    with pytest.raises(InvalidPaymentHeaderError, match="Invalid payment header"):
        decode_payment_header(header)


def test_invalid_payment_header_error_is_value_error():
    with pytest.raises(ValueError):
        decode_payment_header("%%%")


def test_payment_response_header_wraps_settlement():
    settlement = SettleResponse(success=True, tx_hash="abc", network_id="stellar-testnet")
    header = encode_payment_response_header(settlement)

    data = json.loads(base64.b64decode(header))
    assert data == {
        "settlement": {
            "success": True,
            "error": None,
            "txHash": "abc",
            "networkId": "stellar-testnet",
        }
    }
    assert decode_payment_response_header(header).settlement == settlement


def test_decode_payment_response_header_invalid():
    with pytest.raises(InvalidPaymentHeaderError, match="Invalid payment response header"):
        decode_payment_response_header(safe_base64_encode("{}"))


def test_decode_payment_response_header_non_ascii():
    with pytest.raises(InvalidPaymentHeaderError, match="Invalid payment response header"):
        decode_payment_response_header("réponse")
