"""
FastAPI middleware for x402 payment requirements on Stellar.

Install: pip install x402-stellar[fastapi]
Usage:   from x402_stellar.fastapi.middleware import require_payment

Example:
    from fastapi import FastAPI
    from x402_stellar.facilitator import FacilitatorConfig
    from x402_stellar.fastapi.middleware import require_payment

    app = FastAPI()
    app.middleware("http")(
        require_payment(
            price="1000000",
            pay_to_address="GB...",
            path="/weather",
            facilitator_config=FacilitatorConfig(url="http://localhost:8000"),
        )
    )
"""
