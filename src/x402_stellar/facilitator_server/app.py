"""
Stellar x402 Facilitator Server

A standalone FastAPI server that provides verify and settle endpoints for
Stellar payment transactions.
"""

import logging
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from x402_stellar.facilitator_server.config import FacilitatorSettings
from x402_stellar.facilitator_server.verifier import (
    settle_payment_header,
    verify_payment_header,
)
from x402_stellar.types import (
    STELLAR_SCHEME,
    SettleRequest,
    SettleResponse,
    SupportedKind,
    SupportedResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[FacilitatorSettings] = None) -> FastAPI:
    settings = settings or FacilitatorSettings.from_env()

    app = FastAPI(
        title="Stellar X402 Facilitator",
        description="Facilitator service for Stellar X402 payments",
        version="0.1.0",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "Stellar X402 Facilitator",
            "network": settings.network,
        }

    @app.get("/supported")
    def get_supported() -> SupportedResponse:
        """Get supported payment kinds"""
        return SupportedResponse(
            kinds=[SupportedKind(scheme=STELLAR_SCHEME, network=settings.network)]
        )

    # Sync handlers: Horizon calls block, so FastAPI runs them in its threadpool
    @app.post("/verify")
    def verify(request: VerifyRequest) -> VerifyResponse:
        """Verify a Stellar payment without submitting it"""
        return verify_payment_header(
            request.payment_header, request.payment_requirements, settings
        )

    @app.post("/settle")
    def settle(request: SettleRequest) -> SettleResponse:
        """Settle a Stellar payment by submitting it to the network"""
        return settle_payment_header(
            request.payment_header, request.payment_requirements, settings
        )

    return app


def main():
    load_dotenv()
    settings = FacilitatorSettings.from_env()

    logging.basicConfig(level=settings.log_level)
    logger.info("Starting Stellar X402 Facilitator for network: %s", settings.network)

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
