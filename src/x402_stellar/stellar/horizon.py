"""Horizon client and network passphrase helpers for x402 payments."""

import logging
from typing import Optional

from stellar_sdk import Network, Server

from x402_stellar.networks import normalize_network

logger = logging.getLogger(__name__)


# Default Horizon URLs
MAINNET_HORIZON_URL = "https://horizon.stellar.org"
TESTNET_HORIZON_URL = "https://horizon-testnet.stellar.org"
FUTURENET_HORIZON_URL = "https://horizon-futurenet.stellar.org"
LOCAL_HORIZON_URL = "http://localhost:8000"

_HORIZON_URLS = {
    "mainnet": MAINNET_HORIZON_URL,
    "testnet": TESTNET_HORIZON_URL,
    "futurenet": FUTURENET_HORIZON_URL,
    "local": LOCAL_HORIZON_URL,
    "standalone": LOCAL_HORIZON_URL,
}

_NETWORK_PASSPHRASES = {
    "mainnet": Network.PUBLIC_NETWORK_PASSPHRASE,
    "testnet": Network.TESTNET_NETWORK_PASSPHRASE,
    "futurenet": Network.FUTURENET_NETWORK_PASSPHRASE,
    "local": Network.STANDALONE_NETWORK_PASSPHRASE,
    "standalone": Network.STANDALONE_NETWORK_PASSPHRASE,
}


def get_horizon_url(network: str = "stellar-testnet", custom_url: Optional[str] = None) -> str:
    """
    Get the Horizon URL for a given Stellar network.

    Args:
        network: Network name ("stellar-testnet", "testnet", "mainnet", "public", ...)
        custom_url: Optional custom Horizon URL to use instead of default

    Returns:
        Horizon URL string. Unknown networks fall back to testnet.
    """
    if custom_url:
        return custom_url

    url = _HORIZON_URLS.get(normalize_network(network))
    if url is None:
        logger.warning('Unknown network "%s", defaulting to testnet', network)
        return TESTNET_HORIZON_URL
    return url


def get_horizon_client(network: str = "stellar-testnet", custom_url: Optional[str] = None) -> Server:
    """
    Create a Horizon server client for the given network.

    Args:
        network: Network name
        custom_url: Optional custom Horizon URL to use instead of default

    Returns:
        stellar_sdk Server instance

    Example:
        >>> server = get_horizon_client("stellar-testnet")
        >>> account = server.load_account("GB...")
    """
    return Server(horizon_url=get_horizon_url(network, custom_url))


def get_network_passphrase(network: str = "stellar-testnet") -> str:
    """
    Get the passphrase transactions on the given network are signed with.

    Passphrases keep a transaction signed for one network from being
    replayed on another. Unknown networks fall back to testnet.
    """
    passphrase = _NETWORK_PASSPHRASES.get(normalize_network(network))
    if passphrase is None:
        logger.warning('Unknown network "%s", defaulting to testnet', network)
        return Network.TESTNET_NETWORK_PASSPHRASE
    return passphrase
