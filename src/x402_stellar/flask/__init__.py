"""
Flask middleware for x402 payment requirements on Stellar.

Install: pip install x402-stellar[flask]
Usage:   from x402_stellar.flask.middleware import PaymentMiddleware

Example:
    from flask import Flask
    from x402_stellar.flask.middleware import PaymentMiddleware

    app = Flask(__name__)
    middleware = PaymentMiddleware(app)
    middleware.add(
        path="/weather",
        price="0.1 XLM",
        pay_to_address="GB...",
        facilitator_config="http://localhost:8000",
    )
"""
