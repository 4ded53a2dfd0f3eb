from typing import Literal


SupportedNetworks = Literal["stellar-mainnet", "stellar-testnet", "stellar-futurenet"]

STELLAR_MAINNET = "stellar-mainnet"
STELLAR_TESTNET = "stellar-testnet"
STELLAR_FUTURENET = "stellar-futurenet"

SUPPORTED_STELLAR_NETWORKS = [STELLAR_MAINNET, STELLAR_TESTNET, STELLAR_FUTURENET]

NETWORK_PASSPHRASES = {
    STELLAR_MAINNET: "Public Global Stellar Network ; September 2015",
    STELLAR_TESTNET: "Test SDF Network ; September 2015",
    STELLAR_FUTURENET: "Test SDF Future Network ; October 2022",
}


def normalize_network(network: str) -> str:
    """Reduce any accepted network spelling to its short name.

    "stellar-testnet" and "testnet" both become "testnet"; Stellar's own name
    for the main network, "public", becomes "mainnet".
    """
    return network.lower().replace("stellar-", "").replace("public", "mainnet")


def to_x402_network(network: str) -> str:
    """Map a short or prefixed network name to its x402 network identifier.

    Raises:
        ValueError: If the network is not one of the public Stellar networks
    """
    x402_network = f"stellar-{normalize_network(network)}"
    if x402_network not in SUPPORTED_STELLAR_NETWORKS:
        raise ValueError(
            f"Unsupported network: {network}. Must be one of: {SUPPORTED_STELLAR_NETWORKS}"
        )
    return x402_network
