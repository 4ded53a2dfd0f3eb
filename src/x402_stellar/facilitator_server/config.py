import os
from dataclasses import dataclass
from typing import Optional

from x402_stellar.networks import STELLAR_TESTNET, to_x402_network


@dataclass
class FacilitatorSettings:
    """Runtime settings of the facilitator service."""

    network: str = STELLAR_TESTNET
    horizon_url: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    def __post_init__(self):
        self.network = to_x402_network(self.network)
        self.log_level = self.log_level.upper()

    @classmethod
    def from_env(cls) -> "FacilitatorSettings":
        """Read STELLAR_NETWORK, STELLAR_HORIZON_URL, HOST, PORT and LOG_LEVEL."""
        return cls(
            network=os.getenv("STELLAR_NETWORK", STELLAR_TESTNET),
            horizon_url=os.getenv("STELLAR_HORIZON_URL") or None,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", 8000)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
