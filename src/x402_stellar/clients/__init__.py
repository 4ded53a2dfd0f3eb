"""
HTTP client integrations for x402 payment handling.

Core exports (always available):
    - x402Client: Base client that selects requirements and signs payments
    - decode_x_payment_response: Decode X-PAYMENT-RESPONSE header

Clients:
    from x402_stellar.clients.httpx import x402HttpxClient
    from x402_stellar.clients.requests import x402_requests
"""

from x402_stellar.clients.base import (
    PaymentAmountExceededError,
    PaymentError,
    decode_x_payment_response,
    x402Client,
)

__all__ = [
    "x402Client",
    "decode_x_payment_response",
    "PaymentError",
    "PaymentAmountExceededError",
]
