"""Stellar keypair utilities for x402 payments."""

from stellar_sdk import Keypair, StrKey


def get_keypair_from_secret(secret_key: str) -> Keypair:
    """
    Create a Keypair from a Stellar secret key.

    Args:
        secret_key: Secret seed starting with "S" (56 characters)

    Returns:
        Keypair instance

    Raises:
        ValueError: If the secret key is malformed

    Example:
        >>> keypair = get_keypair_from_secret("SBZVMB74P76QZ3222UZCUGDKDNDQZPDOPVCHFDQFMHZQ7EUYZ2BRQZ4Q")
        >>> print(keypair.public_key)
    """
    try:
        return Keypair.from_secret(secret_key)
    except Exception as e:
        raise ValueError(f"Invalid Stellar secret key: {e}")


def generate_keypair() -> Keypair:
    """
    Generate a new random keypair.

    Returns:
        Keypair instance
    """
    return Keypair.random()


def is_valid_address(address: str) -> bool:
    """Check that an address is a well-formed G... account ID."""
    return StrKey.is_valid_ed25519_public_key(address)
