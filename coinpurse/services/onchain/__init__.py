"""On-chain balance lookup."""

from coinpurse.services.onchain.balance import (
    AddressBalanceClient,
    BalanceLookupError,
    BalanceProviderUnavailableError,
    InvalidAddressError,
)

__all__ = [
    "AddressBalanceClient",
    "BalanceLookupError",
    "BalanceProviderUnavailableError",
    "InvalidAddressError",
]
