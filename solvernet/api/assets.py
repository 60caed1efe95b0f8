from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from ..config import DEFAULT_SOLVER_URLS, settings
from ..core.order.catalog import AssetCatalog
from ..core.order.constants import NETWORK_CHAINS
from ..core.order.errors import UnknownChain
from ..providers.solver import SolverProvider

router = APIRouter(prefix="/api/assets")

_catalogs: Dict[str, AssetCatalog] = {}


async def get_catalog(network: Optional[str] = None) -> AssetCatalog:
    """Shared catalog per network; the remote token list is fetched once."""

    network = network or settings.network
    if network not in NETWORK_CHAINS:
        raise HTTPException(status_code=400, detail=f"Unknown network {network!r}")

    catalog = _catalogs.get(network)
    if catalog is None:
        solver = None
        if settings.use_remote_token_list:
            base_url = settings.resolved_solver_url if network == settings.network else DEFAULT_SOLVER_URLS[network]
            solver = SolverProvider(base_url=base_url)
        catalog = AssetCatalog(network, solver_provider=solver, remote=settings.use_remote_token_list)
        _catalogs[network] = catalog
    await catalog.ensure_loaded()
    return catalog


def _chain_payload(catalog: AssetCatalog, chain_id: int) -> Dict[str, Any]:
    return {
        **catalog.chain(chain_id),
        "assets": [asset.to_dict() for asset in catalog.assets_for_chain(chain_id)],
    }


@router.get("")
async def list_assets(network: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    """Supported chains of a network with the assets usable on each."""

    catalog = await get_catalog(network)
    return {
        "network": catalog.network,
        "chains": [_chain_payload(catalog, chain_id) for chain_id in catalog.chain_ids()],
    }


@router.get("/{chain_id}")
async def chain_assets(chain_id: int, network: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    catalog = await get_catalog(network)
    try:
        return _chain_payload(catalog, chain_id)
    except UnknownChain as exc:
        raise HTTPException(status_code=404, detail=exc.message)
