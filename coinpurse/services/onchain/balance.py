"""
On-Chain Address Balance Lookup

Looks up a Bitcoin address on an Esplora-compatible API
(mempool.space by default):

    GET {base_url}/address/{address}

    {
      "address": "bc1q...",
      "chain_stats":   {"funded_txo_sum": 150000, "spent_txo_sum": 50000, ...},
      "mempool_stats": {"funded_txo_sum": 0,      "spent_txo_sum": 0, ...}
    }

balance = (chain funded - chain spent) + (mempool funded - mempool spent)

ERRORS:
- 400/404 from the provider means the address is invalid or unknown:
  InvalidAddressError, not retried.
- Network errors, timeouts, 5xx and malformed bodies are retried, then
  surface as BalanceProviderUnavailableError.
"""

from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from coinpurse.config import OnChainSettings, get_settings
from coinpurse.models.ledger import AddressBalance


logger = structlog.get_logger(__name__)


class BalanceLookupError(Exception):
    """Base exception for balance lookups."""
    pass


class InvalidAddressError(BalanceLookupError):
    """The address is malformed or unknown to the provider."""

    def __init__(self, address: str, message: str):
        self.address = address
        super().__init__(message)


class BalanceProviderUnavailableError(BalanceLookupError):
    """The provider could not be reached or returned garbage."""
    pass


class AddressBalanceClient:
    """Fetches confirmed + unconfirmed balances for an address."""

    def __init__(
        self,
        settings: Optional[OnChainSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
    ):
        self._settings = settings or get_settings().onchain
        self._http_client = http_client
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=5)

    def _validate_address(self, address: str) -> str:
        address = (address or "").strip()
        if not address or any(ch.isspace() for ch in address) or "/" in address:
            raise InvalidAddressError(address, f"Not a valid Bitcoin address: {address!r}")
        return address

    async def get_balance(self, address: str) -> AddressBalance:
        """
        Fetch the balance of an address.

        Raises:
            InvalidAddressError: If the address is rejected
            BalanceProviderUnavailableError: If the provider keeps failing
        """
        address = self._validate_address(address)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(BalanceProviderUnavailableError),
            reraise=True,
        ):
            with attempt:
                payload = await self._fetch(address)
                return self._parse(address, payload)

    async def _fetch(self, address: str) -> Any:
        url = f"{self._settings.base_url.rstrip('/')}/address/{address}"
        timeout = self._settings.request_timeout_seconds
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning("balance_lookup_transport_error", address=address, error=str(e))
            raise BalanceProviderUnavailableError(f"Balance provider unreachable: {e!r}") from e

        if response.status_code in (400, 404):
            raise InvalidAddressError(
                address,
                f"Address {address!r} was rejected by the provider ({response.status_code})",
            )
        if response.is_error:
            raise BalanceProviderUnavailableError(
                f"Balance provider returned HTTP {response.status_code}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise BalanceProviderUnavailableError("Balance provider returned invalid JSON") from e

    def _parse(self, address: str, payload: Any) -> AddressBalance:
        try:
            chain = payload["chain_stats"]
            mempool = payload.get("mempool_stats") or {}
            return AddressBalance(
                address=address,
                confirmed_funded=int(chain["funded_txo_sum"]),
                confirmed_spent=int(chain["spent_txo_sum"]),
                mempool_funded=int(mempool.get("funded_txo_sum", 0)),
                mempool_spent=int(mempool.get("spent_txo_sum", 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise BalanceProviderUnavailableError(
                f"Unexpected balance payload: {e!r}"
            ) from e
