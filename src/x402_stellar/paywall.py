import html
import json
from typing import Any, Dict, List, Optional

from x402_stellar.stellar.units import stroops_to_xlm
from x402_stellar.types import X402_VERSION, PaymentRequirements, PaywallConfig


def is_browser_request(headers: Dict[str, Any]) -> bool:
    """
    Determine if request is from a browser vs API client.

    Args:
        headers: Dictionary of request headers (case-insensitive keys)

    Returns:
        True if request appears to be from a browser, False otherwise
    """
    headers_lower = {k.lower(): v for k, v in headers.items()}
    accept_header = headers_lower.get("accept", "")
    user_agent = headers_lower.get("user-agent", "")

    return "text/html" in accept_header and "Mozilla" in user_agent


def create_x402_config(
    error: str,
    payment_requirements: List[PaymentRequirements],
    paywall_config: Optional[PaywallConfig] = None,
) -> Dict[str, Any]:
    """Create the window.x402 configuration object for the paywall page."""
    requirements = payment_requirements[0] if payment_requirements else None
    config = paywall_config or {}

    return {
        "amount": stroops_to_xlm(requirements.max_amount_required) if requirements else "0",
        "currency": "XLM",
        "paymentRequirements": [req.model_dump(by_alias=True) for req in payment_requirements],
        "network": requirements.network if requirements else "",
        "currentUrl": requirements.resource if requirements else "",
        "error": error,
        "x402Version": X402_VERSION,
        "appName": config.get("app_name", ""),
        "appLogo": config.get("app_logo", ""),
    }


def get_paywall_html(
    error: str,
    payment_requirements: List[PaymentRequirements],
    paywall_config: Optional[PaywallConfig] = None,
) -> str:
    """Render the HTML page shown to browsers hitting a paid route."""
    x402_config = create_x402_config(error, payment_requirements, paywall_config)
    title = x402_config["appName"] or "Payment Required"
    description = ""
    if payment_requirements and payment_requirements[0].description:
        description = f"<p>{html.escape(payment_requirements[0].description)}</p>"
    # "</" must not appear inside the inline script
    config_json = json.dumps(x402_config).replace("</", "<\\/")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{html.escape(title)}</title>
  <script>window.x402 = {config_json};</script>
</head>
<body>
  <h1>Payment Required</h1>
  {description}
  <p>This resource costs {html.escape(x402_config["amount"])} XLM on {html.escape(x402_config["network"])}.</p>
  <p>Send a signed Stellar payment in the X-PAYMENT header to access it.</p>
</body>
</html>
"""
