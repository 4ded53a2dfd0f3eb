import logging
from typing import Optional

from x402_stellar.stellar.horizon import get_horizon_client
from x402_stellar.stellar.units import xlm_to_stroops

logger = logging.getLogger(__name__)


def get_account_balance(
    account_address: str,
    network: str = "stellar-testnet",
    horizon_url: Optional[str] = None,
) -> str:
    """
    Get an account's native (XLM) balance in stroops.

    Args:
        account_address: Stellar address (G...)
        network: Network name
        horizon_url: Optional custom Horizon URL

    Returns:
        Balance in stroops as a string; "0" if the account has no native
        balance or cannot be loaded
    """
    try:
        server = get_horizon_client(network, horizon_url)
        account = server.accounts().account_id(account_address).call()

        native_balance = next(
            (b for b in account.get("balances", []) if b.get("asset_type") == "native"),
            None,
        )
        if native_balance is None:
            return "0"

        return xlm_to_stroops(native_balance["balance"])
    except Exception:
        logger.exception("Error getting account balance for %s", account_address)
        return "0"
