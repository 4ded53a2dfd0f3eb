"""
Reference facilitator service for Stellar x402 payments.

Install: pip install x402-stellar[facilitator]
Run:     x402-stellar-facilitator   (reads STELLAR_NETWORK, STELLAR_HORIZON_URL,
                                      HOST, PORT and LOG_LEVEL, also from .env)
"""
