from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..core.order.errors import AbiLookupError, AbiUnavailable, UnknownChain
from ..core.order.models import ContractFunction
from ..providers.explorer import ExplorerProvider
from ..services.address import is_valid_address

router = APIRouter(prefix="/api/abi")

_explorer: Optional[ExplorerProvider] = None


def get_explorer() -> ExplorerProvider:
    global _explorer
    if _explorer is None:
        _explorer = ExplorerProvider()
    return _explorer


def _error(status_code: int, error: str, details: Optional[Any] = None) -> JSONResponse:
    body: Dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _parse_chain_id(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@router.get("")
async def get_abi(
    address: Optional[str] = Query(default=None),
    chain_id: Optional[str] = Query(default=None, alias="chainId"),
    explorer: ExplorerProvider = Depends(get_explorer),
):
    """Proxy the explorer's ``getabi`` response for a verified contract."""

    if not address or not chain_id:
        return _error(400, "Missing address or chainId")

    parsed_chain = _parse_chain_id(chain_id)
    if parsed_chain is None or not explorer.supports(parsed_chain):
        return _error(400, "Unsupported chain")

    try:
        return await explorer.fetch_raw(address, parsed_chain)
    except UnknownChain:
        return _error(400, "Unsupported chain")
    except AbiUnavailable as exc:
        return _error(400, "Failed to fetch ABI", exc.message)
    except AbiLookupError as exc:
        return _error(500, "Failed to fetch ABI", exc.message)


@router.get("/functions")
async def get_write_functions(
    address: Optional[str] = Query(default=None),
    chain_id: Optional[str] = Query(default=None, alias="chainId"),
    explorer: ExplorerProvider = Depends(get_explorer),
):
    """List the contract's state-changing functions for the call picker."""

    if not address or not chain_id:
        return _error(400, "Missing address or chainId")
    if not is_valid_address(address):
        return _error(400, "Invalid address format")

    parsed_chain = _parse_chain_id(chain_id)
    if parsed_chain is None or not explorer.supports(parsed_chain):
        return _error(400, "Unsupported chain")

    try:
        abi = await explorer.get_abi(address, parsed_chain)
    except AbiUnavailable as exc:
        return _error(400, "Failed to fetch ABI", exc.message)
    except AbiLookupError as exc:
        return _error(500, "Failed to fetch ABI", exc.message)

    functions = [
        ContractFunction.from_abi(entry)
        for entry in abi
        if isinstance(entry, dict) and entry.get("type") == "function"
    ]
    return {
        "address": address,
        "chainId": parsed_chain,
        "functions": [
            {**fn.to_abi(), "signature": fn.signature}
            for fn in functions
            if fn.is_write
        ],
    }
