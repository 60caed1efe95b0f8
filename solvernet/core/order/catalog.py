"""Asset catalog: which assets can be used on which chains."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...services.address import is_valid_address, is_zero_address
from .constants import (
    CHAIN_METADATA,
    NATIVE_MAX_AMOUNT,
    NATIVE_MIN_AMOUNT,
    NETWORK_CHAINS,
    REMOTE_MAX_AMOUNT,
    REMOTE_MIN_AMOUNT,
    STATIC_ASSETS,
    Network,
)
from .errors import UnknownChain
from .models import Asset


def native_asset(chain_id: int) -> Asset:
    meta = CHAIN_METADATA[chain_id]
    return Asset(
        chain_id=chain_id,
        symbol=meta['native_symbol'],
        name=meta['native_name'],
        decimals=meta['native_decimals'],
        address=None,
        is_native=True,
        min_amount=NATIVE_MIN_AMOUNT,
        max_amount=NATIVE_MAX_AMOUNT,
    )


def _static_registry(network: Network) -> Dict[int, List[Asset]]:
    registry: Dict[int, List[Asset]] = {}
    for chain_id in NETWORK_CHAINS[network]:
        assets = [native_asset(chain_id)]
        for entry in STATIC_ASSETS.get(chain_id, []):
            assets.append(
                Asset(
                    chain_id=chain_id,
                    symbol=entry['symbol'],
                    name=entry['name'],
                    decimals=entry['decimals'],
                    address=entry['address'],
                    is_native=False,
                    min_amount=entry['min_amount'],
                    max_amount=entry['max_amount'],
                )
            )
        registry[chain_id] = assets
    return registry


class AssetCatalog:
    """Resolves the assets valid on each chain of the configured network.

    Starts from the static registry. When a solver provider is supplied and
    ``remote`` is enabled, ``ensure_loaded()`` replaces it once with the
    solver's token list; the result is then fixed for the process lifetime.

    Usage:
        catalog = AssetCatalog("mainnet")
        usdc = catalog.get_asset(8453, "0x8335...")
        assets = catalog.assets_for_chain(8453)
    """

    def __init__(
        self,
        network: Network = "mainnet",
        *,
        solver_provider: Optional[Any] = None,
        remote: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if network not in NETWORK_CHAINS:
            raise ValueError(f"Unknown network {network!r}")
        self.network: Network = network
        self._solver = solver_provider
        self._remote = remote and solver_provider is not None
        self._logger = logger or logging.getLogger(__name__)
        self._assets: Dict[int, List[Asset]] = _static_registry(network)
        self._remote_loaded = False

    async def ensure_loaded(self) -> bool:
        """Fetch the remote token list once. Returns True if assets are available."""

        if not self._remote or self._remote_loaded:
            return bool(self._assets)
        try:
            tokens = await self._solver.get_tokens()
        except Exception as exc:
            self._logger.warning(f"Failed to load solver token list, keeping static registry: {exc}")
            return bool(self._assets)

        remote_assets = self._map_remote_tokens(tokens)
        if remote_assets:
            self._assets = remote_assets
        self._remote_loaded = True
        asset_count = sum(len(items) for items in self._assets.values())
        self._logger.info(f"Asset catalog loaded from solver: {len(self._assets)} chains, {asset_count} assets")
        return bool(self._assets)

    def _map_remote_tokens(self, tokens: List[Dict[str, Any]]) -> Dict[int, List[Asset]]:
        """Keep enabled tokens on this network's chains; zero address means native."""

        mapped: Dict[int, List[Asset]] = {}
        supported = set(NETWORK_CHAINS[self.network])
        for token in tokens:
            chain_id = token.get('chainId')
            if not token.get('enabled') or chain_id not in supported:
                continue
            address = token.get('address') or ''
            if is_zero_address(address):
                asset = native_asset(chain_id)
            else:
                if not is_valid_address(address):
                    self._logger.debug(f"Skipping token with malformed address: {token}")
                    continue
                asset = Asset(
                    chain_id=chain_id,
                    symbol=token.get('symbol', ''),
                    name=token.get('name', ''),
                    decimals=int(token.get('decimals', 18)),
                    address=address,
                    is_native=False,
                    min_amount=token.get('expenseMin') or REMOTE_MIN_AMOUNT,
                    max_amount=token.get('expenseMax') or REMOTE_MAX_AMOUNT,
                )
            bucket = mapped.setdefault(chain_id, [])
            if any(existing.key == asset.key for existing in bucket):
                continue
            bucket.append(asset)

        ordered: Dict[int, List[Asset]] = {}
        for chain_id in NETWORK_CHAINS[self.network]:
            if chain_id in mapped:
                ordered[chain_id] = sorted(mapped[chain_id], key=lambda item: not item.is_native)
        return ordered

    # ─────────────────────────────────────────────────────────────────────────
    # Public lookup methods
    # ─────────────────────────────────────────────────────────────────────────

    def chain_ids(self) -> List[int]:
        return list(self._assets.keys())

    def chains(self) -> List[Dict[str, Any]]:
        return [self.chain(chain_id) for chain_id in self.chain_ids()]

    def chain(self, chain_id: int) -> Dict[str, Any]:
        if chain_id not in self._assets:
            raise UnknownChain(chain_id)
        return {'id': chain_id, **CHAIN_METADATA[chain_id]}

    def assets_for_chain(self, chain_id: int) -> List[Asset]:
        if chain_id not in self._assets:
            raise UnknownChain(chain_id)
        return list(self._assets[chain_id])

    def get_asset(self, chain_id: int, address: Optional[str] = None) -> Optional[Asset]:
        """Find an asset by address; ``None`` or the zero address means native."""

        native = not address or is_zero_address(address)
        for asset in self.assets_for_chain(chain_id):
            if native and asset.is_native:
                return asset
            if not native and asset.address and asset.address.lower() == address.lower():
                return asset
        return None

    def find_by_symbol(self, chain_id: int, symbol: str) -> Optional[Asset]:
        target = symbol.strip().lower()
        for asset in self.assets_for_chain(chain_id):
            if asset.symbol.lower() == target:
                return asset
        return None

    @staticmethod
    def is_native(asset: Asset) -> bool:
        return asset.is_native

    def explorer_tx_url(self, chain_id: int, tx_hash: Optional[str]) -> Optional[str]:
        if not tx_hash:
            return None
        base = (CHAIN_METADATA.get(chain_id) or {}).get('explorer_url')
        if not base:
            return None
        return f"{base}/tx/{tx_hash}"
