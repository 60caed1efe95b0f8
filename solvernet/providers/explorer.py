"""Etherscan-family ABI lookups for verified contracts."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..cache import TTLCache
from ..config import Settings, settings as default_settings
from ..core.order.errors import AbiLookupError, AbiRateLimited, AbiUnavailable, UnknownChain
from .base import AbiLookupService, Provider

logger = logging.getLogger(__name__)


# chain id -> (API host, settings attribute holding its key)
EXPLORER_APIS: Dict[int, Dict[str, str]] = {
    1: {"url": "https://api.etherscan.io", "key": "etherscan_api_key"},
    11155111: {"url": "https://api-sepolia.etherscan.io", "key": "etherscan_api_key"},
    17000: {"url": "https://api-holesky.etherscan.io", "key": "etherscan_api_key"},
    8453: {"url": "https://api.basescan.org", "key": "basescan_api_key"},
    84532: {"url": "https://api-sepolia.basescan.org", "key": "basescan_api_key"},
    10: {"url": "https://api-optimistic.etherscan.io", "key": "optimism_api_key"},
    42161: {"url": "https://api.arbiscan.io", "key": "arbiscan_api_key"},
}

# Explorers accept this placeholder and answer with a rate-limited, key-less quota
PLACEHOLDER_API_KEY = "YourApiKeyToken"

_NOT_VERIFIED = "Contract not verified or API key required"


class ExplorerProvider(Provider, AbiLookupService):
    """Fetches contract ABIs from the block explorer of each supported chain."""

    name = "explorer"

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        timeout_s: Optional[int] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.timeout_s = timeout_s or self.settings.request_timeout_seconds
        self._cache = cache or TTLCache(
            default_ttl=self.settings.abi_cache_ttl_seconds,
            max_size=self.settings.max_cache_size,
        )

    @staticmethod
    def supports(chain_id: int) -> bool:
        return chain_id in EXPLORER_APIS

    def _api_key(self, chain_id: int) -> str:
        return self.settings.explorer_api_key(EXPLORER_APIS[chain_id]["key"]) or PLACEHOLDER_API_KEY

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        configured = sorted(
            chain_id for chain_id, api in EXPLORER_APIS.items()
            if self.settings.explorer_api_key(api["key"])
        )
        return {"status": "healthy", "chains_with_keys": configured, "cached_abis": self._cache.size()}

    async def fetch_raw(self, address: str, chain_id: int) -> Dict[str, Any]:
        """Call ``module=contract&action=getabi`` and return the explorer's JSON body.

        Raises:
            UnknownChain: no explorer is configured for ``chain_id``
            AbiUnavailable: the explorer answered with ``status: "0"`` / ``NOTOK``
            AbiLookupError: transport failure or unreadable response
        """

        api = EXPLORER_APIS.get(chain_id)
        if api is None:
            raise UnknownChain(chain_id)

        params = {
            "module": "contract",
            "action": "getabi",
            "address": address,
            "apikey": self._api_key(chain_id),
        }
        try:
            async with httpx.AsyncClient(base_url=api["url"], timeout=self.timeout_s) as client:
                response = await client.get("/api", params=params, headers={"accept": "application/json"})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise AbiLookupError(
                f"Block explorer API error: {exc.response.status_code} {exc.response.reason_phrase}",
                details={"chain_id": chain_id, "address": address},
            ) from exc
        except (httpx.RequestError, ValueError) as exc:
            raise AbiLookupError(
                f"Block explorer request failed: {exc}",
                details={"chain_id": chain_id, "address": address},
            ) from exc

        if not isinstance(data, dict):
            raise AbiLookupError("Block explorer returned an unexpected response")

        if data.get("status") == "0" or data.get("message") == "NOTOK":
            result = data.get("result") or _NOT_VERIFIED
            logger.warning(f"Explorer for chain {chain_id} returned no ABI for {address}: {result}")
            error_cls = AbiRateLimited if "rate limit" in str(result).lower() else AbiUnavailable
            raise error_cls(str(result), details={"chain_id": chain_id, "address": address, "raw": data})

        return data

    async def get_abi(self, address: str, chain_id: int) -> List[Dict[str, Any]]:
        """Return the decoded ABI entries, cached per (chain, address)."""

        cache_key = f"abi:{chain_id}:{address.lower()}"

        async def _load() -> List[Dict[str, Any]]:
            data = await self.fetch_raw(address, chain_id)
            return parse_abi_result(data.get("result"))

        return await self._cache.get_or_load(cache_key, _load)


def parse_abi_result(result: Any) -> List[Dict[str, Any]]:
    """Explorers return the ABI as a JSON-encoded string in ``result``."""

    if isinstance(result, list):
        return result
    if not isinstance(result, str):
        raise AbiLookupError("Block explorer response has no ABI")
    try:
        abi = json.loads(result)
    except ValueError as exc:
        raise AbiUnavailable(result or _NOT_VERIFIED) from exc
    if not isinstance(abi, list):
        raise AbiLookupError("Block explorer ABI is not a list")
    return abi
